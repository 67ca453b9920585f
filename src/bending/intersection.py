"""Ray/polygon intersection for the media in a scene.

All polygon edges of a scene are stacked into flat arrays once per
propagation pass (``stack_edges``) so that a single vectorised test checks
a ray against every edge.  The per-edge math is branchless ``jnp``; only
the final pick of the nearest hit converts to Python values.

Coordinate convention
---------------------
* 2-D model coordinates, metres by default.
* Medium polygons are counter-clockwise, so the normal ``(dy, -dx)`` of the
  edge ``(dx, dy)`` points out of the polygon.
* Distances along a ray are in the same units as the coordinates; the
  direction vector is a unit vector.
"""

from typing import NamedTuple, Optional, Sequence

import jax.numpy as jnp

from .datatypes import IndexProvider, Medium
from .refraction import advance


# Guards against division by zero for edges parallel to the ray.
_EPS = 1e-15
# Slack on the edge parameter so that hits exactly on a vertex are kept.
_EDGE_TOL = 1e-12


class EdgeSet(NamedTuple):
    """Every edge of every medium, in polygon order then edge order."""
    starts: jnp.ndarray      # (E, 2)
    ends: jnp.ndarray        # (E, 2)
    normals: jnp.ndarray     # (E, 2) outward unit normals
    medium_ids: jnp.ndarray  # (E,)
    edge_ids: jnp.ndarray    # (E,)

    @property
    def size(self) -> int:
        return int(self.starts.shape[0])


class Crossing(NamedTuple):
    """The nearest boundary a ray meets."""
    point: jnp.ndarray
    distance: float
    normal: jnp.ndarray   # outward normal of the polygon edge
    medium_id: int
    edge_id: int
    entering: bool        # True when the ray goes into ``medium_id``
    n1: float             # index of the medium being left
    n2: float             # index of the medium being entered


def _cross(a: jnp.ndarray, b: jnp.ndarray) -> jnp.ndarray:
    return a[..., 0] * b[..., 1] - a[..., 1] * b[..., 0]


def stack_edges(media: Sequence[Medium]) -> EdgeSet:
    """Flatten the polygon edges of *media* into an ``EdgeSet``."""
    if not media:
        empty = jnp.zeros((0, 2))
        none = jnp.zeros((0,), dtype=jnp.int32)
        return EdgeSet(empty, empty, empty, none, none)

    starts, ends, medium_ids, edge_ids = [], [], [], []
    for m, medium in enumerate(media):
        v = medium.vertices
        count = v.shape[0]
        starts.append(v)
        ends.append(jnp.roll(v, -1, axis=0))
        medium_ids.append(jnp.full((count,), m, dtype=jnp.int32))
        edge_ids.append(jnp.arange(count, dtype=jnp.int32))

    starts = jnp.concatenate(starts, axis=0)
    ends = jnp.concatenate(ends, axis=0)
    edge = ends - starts
    normals = jnp.stack([edge[:, 1], -edge[:, 0]], axis=-1)
    normals = normals / jnp.linalg.norm(normals, axis=-1, keepdims=True)
    return EdgeSet(
        starts=starts,
        ends=ends,
        normals=normals,
        medium_ids=jnp.concatenate(medium_ids),
        edge_ids=jnp.concatenate(edge_ids),
    )


def intersect_edges(
    origin: jnp.ndarray,
    direction: jnp.ndarray,
    starts: jnp.ndarray,
    ends: jnp.ndarray,
    min_distance: float,
) -> tuple[jnp.ndarray, jnp.ndarray]:
    """Distance along the ray to every edge.

    Parameters
    ----------
    origin : (2,) array - ray starting point.
    direction : (2,) array - unit direction of the ray.
    starts, ends : (E, 2) arrays - edge end points.
    min_distance : scalar - hits at or closer than this are rejected, so a
        ray leaving a boundary does not hit it again.

    Returns
    -------
    t   : (E,) array - distance to each edge, ``inf`` where there is no hit.
    hit : (E,) bool array.

    Notes
    -----
    Solves ``origin + t * direction = start + s * (end - start)`` for every
    edge at once.  Edges parallel to the ray never count as hit.
    """
    edge = ends - starts
    w = starts - origin

    denom = _cross(direction, edge)
    parallel = jnp.abs(denom) < _EPS
    safe_denom = jnp.where(parallel, 1.0, denom)

    t = _cross(w, edge) / safe_denom
    s = _cross(w, direction) / safe_denom

    hit = (~parallel) & (t > min_distance) & (s >= -_EDGE_TOL) & (s <= 1.0 + _EDGE_TOL)
    return jnp.where(hit, t, jnp.inf), hit


def contains_point(vertices: jnp.ndarray, point: jnp.ndarray) -> bool:
    """Even-odd test: is *point* strictly inside the polygon?"""
    a = vertices
    b = jnp.roll(vertices, -1, axis=0)
    straddles = (a[:, 1] > point[1]) != (b[:, 1] > point[1])
    dy = jnp.where(straddles, b[:, 1] - a[:, 1], 1.0)
    x_cross = a[:, 0] + (point[1] - a[:, 1]) * (b[:, 0] - a[:, 0]) / dy
    crossings = jnp.sum(straddles & (point[0] < x_cross))
    return bool(crossings % 2 == 1)


def index_at(
    point: jnp.ndarray,
    media: Sequence[Medium],
    wavelength: float,
    environment: IndexProvider,
    exclude: Optional[int] = None,
) -> float:
    """Refractive index at *point*: the first medium containing it wins."""
    for m, medium in enumerate(media):
        if m == exclude:
            continue
        if contains_point(medium.vertices, point):
            return medium.index_at(wavelength)
    return float(environment(wavelength))


def distance_to_domain_edge(
    origin: jnp.ndarray,
    direction: jnp.ndarray,
    domain,
) -> float:
    """How far the ray travels before leaving the rectangular *domain*.

    Returns 0 when the origin is already outside in the travel direction.
    """
    x0, y0, x1, y1 = domain
    lower = jnp.array([x0, y0])
    upper = jnp.array([x1, y1])
    moving = jnp.abs(direction) > _EPS
    safe_dir = jnp.where(moving, direction, 1.0)
    bound = jnp.where(direction > 0, upper, lower)
    t = jnp.where(moving, (bound - origin) / safe_dir, jnp.inf)
    return max(float(jnp.min(t)), 0.0)


def find_crossing(
    origin: jnp.ndarray,
    direction: jnp.ndarray,
    media: Sequence[Medium],
    edges: EdgeSet,
    wavelength: float,
    environment: IndexProvider,
    epsilon: float,
) -> Optional[Crossing]:
    """Nearest boundary strictly ahead of *origin*, or None.

    Edges within *epsilon* of the nearest distance (a ray through a vertex)
    are resolved to the lowest medium index, then the lowest edge index.
    Indices on either side are evaluated at *wavelength*; the medium being
    left and the medium being entered are found by probing *epsilon* before
    and after the hit point, skipping the polygon whose edge was hit.
    """
    if edges.size == 0:
        return None

    t, hit = intersect_edges(origin, direction, edges.starts, edges.ends, epsilon)
    if not bool(jnp.any(hit)):
        return None

    t_min = jnp.min(t)
    candidates = t <= t_min + epsilon
    k = int(jnp.argmax(candidates))

    distance = float(t[k])
    point = advance(origin, direction, distance)
    normal = edges.normals[k]
    medium_id = int(edges.medium_ids[k])
    entering = bool(jnp.dot(direction, normal) < 0)

    own_index = media[medium_id].index_at(wavelength)
    if entering:
        n1 = index_at(advance(point, direction, -epsilon), media, wavelength, environment, exclude=medium_id)
        n2 = own_index
    else:
        n1 = own_index
        n2 = index_at(advance(point, direction, epsilon), media, wavelength, environment, exclude=medium_id)

    return Crossing(
        point=point,
        distance=distance,
        normal=normal,
        medium_id=medium_id,
        edge_id=int(edges.edge_ids[k]),
        entering=entering,
        n1=n1,
        n2=n2,
    )
