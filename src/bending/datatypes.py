"""Core data structures for the ray propagation engine.

Rays, media and configuration are immutable ``NamedTuple``s holding JAX
arrays, so a propagation pass can hand its output to the rendering layer
without copying.  Double precision is switched on here because every other
module imports this one first.
"""

import enum
from typing import Callable, NamedTuple, Optional, Sequence, Tuple, Union

import jax
import jax.numpy as jnp
import numpy as np

jax.config.update("jax_enable_x64", True)


# ---------------------------------------------------------------------------
# Physical constants
# ---------------------------------------------------------------------------

SPEED_OF_LIGHT = 2.99792458e8   # m/s
NANOMETER = 1e-9                # m per nm

WAVELENGTH_RED = 650.0          # default laser wavelength (nm)
MIN_WAVELENGTH = 380.0          # visible range used for white light (nm)
MAX_WAVELENGTH = 700.0

WHITE = "white"                 # laser colour sentinel for full-spectrum light

# Just below grazing incidence; keeps the Fresnel denominators away from zero.
MAX_INCIDENCE_ANGLE = 0.5 * np.pi - 1e-6


class InvalidGeometryError(ValueError):
    """Raised when a medium polygon is degenerate or self-intersecting."""


# ---------------------------------------------------------------------------
# Refractive index providers
# ---------------------------------------------------------------------------

IndexProvider = Callable[[float], float]


def constant_index(n: float) -> IndexProvider:
    """A non-dispersive medium: the same index at every wavelength."""
    n = float(n)

    def index_of_refraction(wavelength: float) -> float:
        return n

    return index_of_refraction


class DispersionFunction(NamedTuple):
    """Wavelength-dependent index that matches *reference_index* exactly.

    The index is a linear combination of the dispersion of air and of BK7
    glass, weighted so that it equals ``reference_index`` at
    ``reference_wavelength`` (nm).  Indices close to 1 therefore disperse like
    air and indices near 1.5 like crown glass.
    """
    reference_index: float
    reference_wavelength: float = 589.3

    def __call__(self, wavelength: float) -> float:
        n_air = air_index(self.reference_wavelength)
        n_glass = sellmeier_index(self.reference_wavelength)
        x = (self.reference_index - n_air) / (n_glass - n_air)
        return x * sellmeier_index(wavelength) + (1.0 - x) * air_index(wavelength)


def air_index(wavelength: float) -> float:
    """Refractive index of air at *wavelength* (nm)."""
    inv_sq = (wavelength * 1e-3) ** -2  # 1/um^2
    return 1.0 + 5792105e-8 / (238.0185 - inv_sq) + 167917e-8 / (57.362 - inv_sq)


# BK7 Sellmeier coefficients (B in 1, C in um^2)
_SELLMEIER_B = (1.03961212, 0.231792344, 1.01046945)
_SELLMEIER_C = (0.00600069867, 0.0200179144, 103.560653)


def sellmeier_index(wavelength: float) -> float:
    """Refractive index of BK7 glass at *wavelength* (nm)."""
    l2 = (wavelength * 1e-3) ** 2
    total = 1.0
    for b, c in zip(_SELLMEIER_B, _SELLMEIER_C):
        total += b * l2 / (l2 - c)
    return float(np.sqrt(total))


AIR = constant_index(1.0)
WATER = constant_index(1.333)
GLASS = constant_index(1.5)
DIAMOND = constant_index(2.419)


# ---------------------------------------------------------------------------
# Ray representation
# ---------------------------------------------------------------------------

class RayKind(enum.Enum):
    INCIDENT = "incident"
    REFLECTED = "reflected"
    REFRACTED = "refracted"


class Termination(enum.Enum):
    """Why a ray segment ends where it does."""
    ESCAPED = "escaped"        # left the simulation domain
    INTERFACE = "interface"    # split at a medium boundary
    MAX_DEPTH = "max_depth"    # reached a boundary with no generations left
    DEGENERATE = "degenerate"  # zero-length direction


class Beam(NamedTuple):
    """The seed of a propagation pass.

    ``origin`` and ``direction`` are shape (2,) JAX arrays; the direction is
    a unit vector.  ``wavelength`` is the vacuum wavelength in nm.
    """
    origin: jnp.ndarray
    direction: jnp.ndarray
    power: float = 1.0
    wavelength: float = WAVELENGTH_RED


class Ray(NamedTuple):
    """A single finished ray segment.

    Rays are never modified after creation; reflection and refraction make
    new rays.  ``ray_id`` is the pre-order position inside the pass that
    produced the ray and doubles as its identity for wave particles.
    """
    origin: jnp.ndarray
    direction: jnp.ndarray
    length: float
    power: float
    wavelength: float       # vacuum wavelength (nm)
    refractive_index: float  # of the medium travelled
    kind: RayKind = RayKind.INCIDENT
    depth: int = 0
    ray_id: int = 0
    parent_id: Optional[int] = None
    termination: Termination = Termination.ESCAPED

    @property
    def end(self) -> jnp.ndarray:
        return self.origin + self.length * self.direction

    @property
    def wavelength_in_medium(self) -> float:
        return self.wavelength / self.refractive_index

    @property
    def frequency(self) -> float:
        return SPEED_OF_LIGHT / (self.wavelength * NANOMETER)

    @property
    def speed(self) -> float:
        """Phase velocity in the ray's medium (m/s)."""
        return SPEED_OF_LIGHT / self.refractive_index

    @property
    def angle(self) -> float:
        return float(jnp.arctan2(self.direction[1], self.direction[0]))


class RayNode(NamedTuple):
    """A ray and the rays it split into (reflected first, then refracted)."""
    ray: Ray
    children: Tuple["RayNode", ...] = ()


def flatten(nodes: Sequence[RayNode]) -> Tuple[Ray, ...]:
    """Pre-order listing: each ray before its children, reflected subtree first."""
    rays = []
    stack = list(reversed(nodes))
    while stack:
        node = stack.pop()
        rays.append(node.ray)
        stack.extend(reversed(node.children))
    return tuple(rays)


class RayTree(NamedTuple):
    """The forest produced by one propagation pass."""
    roots: Tuple[RayNode, ...] = ()

    @property
    def rays(self) -> Tuple[Ray, ...]:
        return flatten(self.roots)

    def children_of(self, ray_id: int) -> Tuple[Ray, ...]:
        return tuple(r for r in self.rays if r.parent_id == ray_id)


# ---------------------------------------------------------------------------
# Media
# ---------------------------------------------------------------------------

class Medium(NamedTuple):
    """A simple polygon (counter-clockwise, shape (V, 2)) and its index."""
    vertices: jnp.ndarray
    index_of_refraction: IndexProvider
    name: str = "prism"

    def index_at(self, wavelength: float) -> float:
        return float(self.index_of_refraction(wavelength))


def _signed_area(pts: np.ndarray) -> float:
    x, y = pts[:, 0], pts[:, 1]
    return 0.5 * float(np.sum(x * np.roll(y, -1) - np.roll(x, -1) * y))


def _segments_cross(p1, p2, q1, q2) -> bool:
    """Proper or touching intersection of two closed segments."""
    def orient(a, b, c):
        return (b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0])

    d1, d2 = orient(q1, q2, p1), orient(q1, q2, p2)
    d3, d4 = orient(p1, p2, q1), orient(p1, p2, q2)
    if d1 * d2 < 0 and d3 * d4 < 0:
        return True

    def on_segment(a, b, c):
        return (min(a[0], b[0]) <= c[0] <= max(a[0], b[0])
                and min(a[1], b[1]) <= c[1] <= max(a[1], b[1]))

    return ((d1 == 0 and on_segment(q1, q2, p1)) or (d2 == 0 and on_segment(q1, q2, p2))
            or (d3 == 0 and on_segment(p1, p2, q1)) or (d4 == 0 and on_segment(p1, p2, q2)))


def _is_self_intersecting(pts: np.ndarray) -> bool:
    n = len(pts)
    for i in range(n):
        a1, a2 = pts[i], pts[(i + 1) % n]
        for j in range(i + 1, n):
            # adjacent edges share a vertex by construction
            if j == i + 1 or (i == 0 and j == n - 1):
                continue
            if _segments_cross(a1, a2, pts[j], pts[(j + 1) % n]):
                return True
    return False


def make_medium(
    vertices,
    index: Union[float, IndexProvider] = 1.5,
    name: str = "prism",
) -> Medium:
    """Validate a polygon and return it as a counter-clockwise ``Medium``.

    Consecutive duplicate vertices are dropped.  Raises
    ``InvalidGeometryError`` for polygons with fewer than three distinct
    vertices, non-finite coordinates, zero area or crossing edges.
    """
    pts = np.asarray(vertices, dtype=np.float64)
    if pts.ndim != 2 or pts.shape[1] != 2:
        raise InvalidGeometryError(f"{name}: vertices must have shape (V, 2), got {pts.shape}")
    if not np.all(np.isfinite(pts)):
        raise InvalidGeometryError(f"{name}: vertices must be finite")

    keep = [p for i, p in enumerate(pts) if i == 0 or not np.array_equal(p, pts[i - 1])]
    if len(keep) > 1 and np.array_equal(keep[0], keep[-1]):
        keep.pop()
    pts = np.array(keep)

    if len(pts) < 3:
        raise InvalidGeometryError(f"{name}: a polygon needs at least 3 distinct vertices")
    area = _signed_area(pts)
    extent = float(np.prod(np.ptp(pts, axis=0)))
    if extent == 0.0 or abs(area) <= 1e-12 * extent:
        raise InvalidGeometryError(f"{name}: polygon has zero area")
    if _is_self_intersecting(pts):
        raise InvalidGeometryError(f"{name}: polygon edges intersect")
    if area < 0:
        pts = pts[::-1].copy()

    provider = index if callable(index) else constant_index(index)
    return Medium(vertices=jnp.asarray(pts), index_of_refraction=provider, name=name)


# ---------------------------------------------------------------------------
# Laser
# ---------------------------------------------------------------------------

class Laser(NamedTuple):
    """Emission point, pointing angle (radians) and colour of the light source."""
    emission_point: Tuple[float, float] = (-8e-6, 8e-6)
    angle: float = -0.25 * np.pi
    power: float = 1.0
    wavelength: Union[float, str] = WAVELENGTH_RED
    on: bool = True
    wave: bool = False

    @property
    def direction(self) -> jnp.ndarray:
        return jnp.array([np.cos(self.angle), np.sin(self.angle)])

    @property
    def is_white(self) -> bool:
        return isinstance(self.wavelength, str) and self.wavelength == WHITE


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

# (x_min, y_min, x_max, y_max) in metres
DEFAULT_DOMAIN = (-2e-5, -1.2e-5, 2e-5, 1.2e-5)


class PropagationConfig(NamedTuple):
    """Tuning constants for a propagation pass.

    ``max_depth`` counts ray generations including the incident ray, so a
    single tree never holds more than ``2**max_depth - 1`` rays.  A branch
    therefore traverses at most ``max_depth - 1`` boundary crossings; the
    ray that reaches its next boundary with no generations left stops there.
    ``epsilon`` is relative to the domain diagonal.
    """
    max_depth: int = 16
    min_power: float = 1e-3
    domain: Tuple[float, float, float, float] = DEFAULT_DOMAIN
    epsilon: float = 1e-9
    environment: IndexProvider = AIR
    white_light_samples: int = 16

    @property
    def tolerance(self) -> float:
        x0, y0, x1, y1 = self.domain
        return self.epsilon * float(np.hypot(x1 - x0, y1 - y0))


def validate_config(config: PropagationConfig) -> PropagationConfig:
    if config.max_depth < 1:
        raise ValueError(f"max_depth must be at least 1, got {config.max_depth}")
    if config.min_power < 0:
        raise ValueError(f"min_power must be non-negative, got {config.min_power}")
    x0, y0, x1, y1 = config.domain
    if not (x1 > x0 and y1 > y0):
        raise ValueError(f"domain {config.domain} is empty")
    if config.epsilon <= 0:
        raise ValueError(f"epsilon must be positive, got {config.epsilon}")
    if config.white_light_samples < 1:
        raise ValueError("white_light_samples must be at least 1")
    return config


# ---------------------------------------------------------------------------
# Example media: the prism toolbox shapes
# ---------------------------------------------------------------------------

def _regular_polygon(sides: int, radius: float, center, rotation: float = 0.0) -> np.ndarray:
    angles = rotation + 2.0 * np.pi * np.arange(sides) / sides
    return np.stack([center[0] + radius * np.cos(angles),
                     center[1] + radius * np.sin(angles)], axis=-1)


def prism_prototypes(
    index: Union[float, IndexProvider] = 1.5,
    size: float = 2e-6,
    center=(0.0, 0.0),
) -> Tuple[Medium, ...]:
    """The stock prisms: triangle, trapezoid, square, pentagon, semicircle.

    The semicircle is approximated by a 32-segment polygon.
    """
    cx, cy = center
    triangle = _regular_polygon(3, size, center, rotation=0.5 * np.pi)
    trapezoid = np.array([
        [cx - size, cy - 0.5 * size],
        [cx + size, cy - 0.5 * size],
        [cx + 0.5 * size, cy + 0.5 * size],
        [cx - 0.5 * size, cy + 0.5 * size],
    ])
    square = np.array([
        [cx - 0.5 * size, cy - 0.5 * size],
        [cx + 0.5 * size, cy - 0.5 * size],
        [cx + 0.5 * size, cy + 0.5 * size],
        [cx - 0.5 * size, cy + 0.5 * size],
    ])
    pentagon = _regular_polygon(5, size, center, rotation=0.5 * np.pi)
    arc = np.linspace(0.0, np.pi, 33)
    semicircle = np.stack([cx + size * np.cos(arc), cy + size * np.sin(arc)], axis=-1)

    return (
        make_medium(triangle, index, name="triangle"),
        make_medium(trapezoid, index, name="trapezoid"),
        make_medium(square, index, name="square"),
        make_medium(pentagon, index, name="pentagon"),
        make_medium(semicircle, index, name="semicircle"),
    )
