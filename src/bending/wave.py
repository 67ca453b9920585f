"""Wave particle kinematics for the wave display mode.

Each ray emits a stream of wave particles at its origin, one every
particle width of travel, so the density does not depend on the frame
rate.  Particles move along their ray at the phase velocity of its medium
and are retired past the end of the segment, outside the visible view, or
when their ray disappears from a new propagation pass.

Every call returns a fresh ``WaveState``; a published state is never
modified.
"""

import logging
import math
from types import MappingProxyType
from typing import Mapping, NamedTuple, Optional, Sequence, Tuple

import jax.numpy as jnp

from .color import Color, map_wavelength_to_color
from .datatypes import DEFAULT_DOMAIN, NANOMETER, SPEED_OF_LIGHT, Ray

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# View mapping
# ---------------------------------------------------------------------------

class ModelViewTransform(NamedTuple):
    """Uniform scale with an inverted y axis (model y up, view y down)."""
    scale: float
    offset_x: float = 0.0
    offset_y: float = 0.0

    def model_to_view(self, x, y):
        return self.offset_x + self.scale * x, self.offset_y - self.scale * y


# (x_min, y_min, x_max, y_max) in view pixels
DEFAULT_VIEW_BOUNDS = (0.0, 0.0, 1024.0, 618.0)
DEFAULT_TRANSFORM = ModelViewTransform(
    scale=1024.0 / (DEFAULT_DOMAIN[2] - DEFAULT_DOMAIN[0]),
    offset_x=512.0,
    offset_y=309.0,
)

WAVE_HEIGHT = 1.5e-6    # thickness of the drawn beam (m)
TIME_SCALE = 5e-14      # simulated seconds per wall-clock second


class WaveConfig(NamedTuple):
    """Wave mode settings.

    ``particle_width`` of None uses the wavelength inside the medium, so
    one particle spans one wavelength.
    """
    light_speed: float = SPEED_OF_LIGHT
    particle_width: Optional[float] = None
    particle_height: float = WAVE_HEIGHT
    transform: ModelViewTransform = DEFAULT_TRANSFORM
    view_bounds: Tuple[float, float, float, float] = DEFAULT_VIEW_BOUNDS
    time_scale: float = TIME_SCALE

    def width_for(self, ray: Ray) -> float:
        if self.particle_width is not None:
            return float(self.particle_width)
        return ray.wavelength_in_medium * NANOMETER


# ---------------------------------------------------------------------------
# Particles and population
# ---------------------------------------------------------------------------

class WaveParticle(NamedTuple):
    ray_id: int
    position: float   # distance from the ray origin
    x: float
    y: float
    width: float
    height: float
    velocity: float
    color: Color
    gradient_color: Color
    phase: float      # 0 or pi; alternate particles render as dark stripes
    angle: float


_EMPTY = MappingProxyType({})


class WaveState(NamedTuple):
    """Particle population keyed by ``ray_id``, plus the spawn bookkeeping."""
    particles: Mapping[int, Tuple[WaveParticle, ...]] = _EMPTY
    spawn_distance: Mapping[int, float] = _EMPTY
    spawn_count: Mapping[int, int] = _EMPTY
    time: float = 0.0

    def particles_for(self, ray: Ray) -> Tuple[WaveParticle, ...]:
        return self.particles.get(ray.ray_id, ())

    @property
    def total(self) -> int:
        return sum(len(p) for p in self.particles.values())


# Relative slack on spawn and retirement decisions; running float sums of dt
# drift by a few ulps.
_SPAWN_SLACK = 1e-9


def validate_wave_config(config: WaveConfig) -> WaveConfig:
    if config.light_speed <= 0:
        raise ValueError(f"light_speed must be positive, got {config.light_speed}")
    if config.particle_width is not None and config.particle_width <= 0:
        raise ValueError(f"particle_width must be positive, got {config.particle_width}")
    if config.particle_height <= 0:
        raise ValueError(f"particle_height must be positive, got {config.particle_height}")
    if config.time_scale <= 0:
        raise ValueError(f"time_scale must be positive, got {config.time_scale}")
    return config


def _advance_ray(ray: Ray, state: WaveState, dt: float, config: WaveConfig):
    velocity = config.light_speed / ray.refractive_index
    step = velocity * dt
    width = config.width_for(ray)

    previous = state.particles.get(ray.ray_id, ())
    carried = state.spawn_distance.get(ray.ray_id, 0.0) + step
    count = state.spawn_count.get(ray.ray_id, 0)

    # A spawn happens each time the carried distance reaches one width; the
    # k-th new particle has since travelled carried - k * width.  Only the
    # ones still on the segment are materialised.
    spawned = int(math.floor(carried / width + _SPAWN_SLACK))
    first = max(1, int(math.ceil((carried - ray.length) / width - _SPAWN_SLACK)))
    ks = jnp.arange(first, spawned + 1)
    new_positions = jnp.maximum(carried - ks * width, 0.0)
    new_phases = jnp.pi * ((count + ks - 1) % 2)

    old_positions = jnp.array([p.position for p in previous]) + step
    old_phases = jnp.array([p.phase for p in previous])

    positions = jnp.concatenate([old_positions, new_positions]).astype(jnp.float64)
    phases = jnp.concatenate([old_phases, new_phases]).astype(jnp.float64)

    xs = ray.origin[0] + positions * ray.direction[0]
    ys = ray.origin[1] + positions * ray.direction[1]
    vx, vy = config.transform.model_to_view(xs, ys)
    x0, y0, x1, y1 = config.view_bounds
    keep = (
        (positions >= 0.0) & (positions <= ray.length + _SPAWN_SLACK * width)
        & (vx >= x0) & (vx <= x1) & (vy >= y0) & (vy <= y1)
    )

    color = map_wavelength_to_color(ray.wavelength)
    gradient = color.darker(0.3)
    angle = ray.angle
    particles = tuple(
        WaveParticle(
            ray_id=ray.ray_id,
            position=float(positions[i]),
            x=float(xs[i]),
            y=float(ys[i]),
            width=width,
            height=config.particle_height,
            velocity=velocity,
            color=color,
            gradient_color=gradient,
            phase=float(phases[i]),
            angle=angle,
        )
        for i in range(positions.shape[0]) if bool(keep[i])
    )
    remainder = max(carried - spawned * width, 0.0)
    return particles, remainder, count + spawned


def advance(
    rays: Sequence[Ray],
    state: WaveState = WaveState(),
    dt: float = 0.0,
    config: WaveConfig = WaveConfig(),
) -> WaveState:
    """Move every particle by ``velocity * dt`` and spawn or retire as needed.

    *dt* is simulated time in seconds.  Populations of rays missing from
    *rays* are dropped; rays of zero length never emit.
    """
    if dt < 0:
        raise ValueError(f"dt must be non-negative, got {dt}")
    validate_wave_config(config)

    particles, spawn_distance, spawn_count = {}, {}, {}
    for ray in rays:
        if ray.length <= 0.0:
            continue
        kept, remainder, count = _advance_ray(ray, state, dt, config)
        particles[ray.ray_id] = kept
        spawn_distance[ray.ray_id] = remainder
        spawn_count[ray.ray_id] = count

    new_state = WaveState(
        particles=MappingProxyType(particles),
        spawn_distance=MappingProxyType(spawn_distance),
        spawn_count=MappingProxyType(spawn_count),
        time=state.time + dt,
    )
    logger.debug("Wave tick dt=%g: %d particles on %d rays", dt, new_state.total, len(particles))
    return new_state


def step_wave_particles(
    rays: Sequence[Ray],
    dt: float,
    state: Optional[WaveState] = None,
    config: WaveConfig = WaveConfig(),
) -> WaveState:
    """One animation tick; ``result.particles`` maps each ray id to its particles."""
    return advance(rays, WaveState() if state is None else state, dt, config)
