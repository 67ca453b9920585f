"""Recursive ray propagation through a set of media.

Every boundary crossing either reflects the whole ray (total internal
reflection) or splits it into a reflected and a refracted ray according to
the Fresnel equations.  Recursion stops when a ray escapes the simulation
domain, when a child would carry no more than ``min_power`` or when the
tree already holds ``max_depth`` generations.
"""

import itertools
import logging
from typing import Iterator, Optional, Sequence, Tuple

import jax.numpy as jnp

from .datatypes import (
    Beam,
    Laser,
    Medium,
    PropagationConfig,
    Ray,
    RayKind,
    RayNode,
    RayTree,
    Termination,
    validate_config,
)
from .intersection import EdgeSet, distance_to_domain_edge, find_crossing, index_at, stack_edges
from .ray_fan import generate_beam, generate_white_light_fan
from .refraction import split_at_interface

logger = logging.getLogger(__name__)


class _Pass:
    """State shared by the recursion of a single propagation pass."""

    def __init__(self, media: Sequence[Medium], config: PropagationConfig):
        self.media = tuple(media)
        self.config = config
        self.edges: EdgeSet = stack_edges(self.media)
        self.tolerance = config.tolerance
        self.ids: Iterator[int] = itertools.count()
        self.truncated = 0


def _trace(
    state: _Pass,
    origin: jnp.ndarray,
    direction: jnp.ndarray,
    power: float,
    wavelength: float,
    n: float,
    kind: RayKind,
    depth: int,
    parent_id: Optional[int],
) -> RayNode:
    """Build the node for one ray and, recursively, for its children.

    The ray id is drawn before the children are traced, so ids follow the
    pre-order of the tree.
    """
    config = state.config
    ray_id = next(state.ids)

    def make_ray(length, termination):
        return Ray(
            origin=origin,
            direction=direction,
            length=float(length),
            power=power,
            wavelength=wavelength,
            refractive_index=n,
            kind=kind,
            depth=depth,
            ray_id=ray_id,
            parent_id=parent_id,
            termination=termination,
        )

    to_edge = distance_to_domain_edge(origin, direction, config.domain)
    crossing = find_crossing(
        origin, direction, state.media, state.edges,
        wavelength, config.environment, state.tolerance,
    )

    if crossing is None or crossing.distance > to_edge:
        return RayNode(make_ray(to_edge, Termination.ESCAPED))

    if depth + 1 >= config.max_depth:
        state.truncated += 1
        return RayNode(make_ray(crossing.distance, Termination.MAX_DEPTH))

    ray = make_ray(crossing.distance, Termination.INTERFACE)
    interaction = split_at_interface(direction, crossing.normal, crossing.n1, crossing.n2)

    children = []
    reflected_power = power * interaction.reflectance
    if reflected_power > config.min_power:
        children.append(_trace(
            state, crossing.point, interaction.reflected_dir, reflected_power,
            wavelength, crossing.n1, RayKind.REFLECTED, depth + 1, ray_id,
        ))

    if not interaction.total_internal_reflection:
        refracted_power = power * interaction.transmittance
        if refracted_power > config.min_power:
            children.append(_trace(
                state, crossing.point, interaction.refracted_dir, refracted_power,
                wavelength, crossing.n2, RayKind.REFRACTED, depth + 1, ray_id,
            ))

    return RayNode(ray, tuple(children))


def _root(state: _Pass, beam: Beam) -> RayNode:
    origin = jnp.asarray(beam.origin, dtype=jnp.float64)
    direction = jnp.asarray(beam.direction, dtype=jnp.float64)
    n = index_at(origin, state.media, beam.wavelength, state.config.environment)

    norm = float(jnp.linalg.norm(direction))
    if norm < 1e-12:
        ray = Ray(
            origin=origin,
            direction=jnp.array([1.0, 0.0]),
            length=0.0,
            power=float(beam.power),
            wavelength=float(beam.wavelength),
            refractive_index=n,
            ray_id=next(state.ids),
            termination=Termination.DEGENERATE,
        )
        return RayNode(ray)

    return _trace(
        state, origin, direction / norm, float(beam.power), float(beam.wavelength),
        n, RayKind.INCIDENT, 0, None,
    )


def propagate_beams(
    beams: Sequence[Beam],
    media: Sequence[Medium],
    config: PropagationConfig = PropagationConfig(),
) -> RayTree:
    """Propagate several source beams in one pass (one tree root per beam).

    Ray ids are unique across the whole forest.
    """
    validate_config(config)
    state = _Pass(media, config)
    roots = tuple(_root(state, beam) for beam in beams)
    tree = RayTree(roots)

    if state.truncated:
        logger.info(
            "max_depth=%d cut %d branch(es) short; raise it or min_power for a complete tree",
            config.max_depth, state.truncated,
        )
    logger.debug(
        "Propagated %d beam(s) through %d media: %d rays",
        len(beams), len(state.media), len(tree.rays),
    )
    return tree


def propagate_beam(
    beam: Beam,
    media: Sequence[Medium],
    config: PropagationConfig = PropagationConfig(),
) -> RayTree:
    """Propagate a single incident beam; ``config`` carries max_depth and min_power."""
    return propagate_beams((beam,), media, config)


def propagate_laser(
    laser: Laser,
    media: Sequence[Medium],
    config: PropagationConfig = PropagationConfig(),
) -> RayTree:
    """Ray tree for the current laser state; empty while the laser is off."""
    if not laser.on:
        return RayTree()
    if laser.is_white:
        beams = generate_white_light_fan(
            laser.emission_point, laser.direction, laser.power, config.white_light_samples,
        )
    else:
        beams = (generate_beam(laser.emission_point, laser.direction, laser.power, laser.wavelength),)
    return propagate_beams(beams, media, config)


def propagate(
    laser_origin,
    laser_direction,
    power: float,
    wavelength: float,
    is_white_light: bool,
    media: Sequence[Medium],
    config: PropagationConfig = PropagationConfig(),
) -> Tuple[Ray, ...]:
    """Flattened ray list for one laser emission.

    Pure function of its inputs: identical arguments give identical rays in
    identical order.  With ``is_white_light`` the *wavelength* argument is
    ignored and the visible spectrum is sampled instead.
    """
    if is_white_light:
        beams = generate_white_light_fan(laser_origin, laser_direction, power, config.white_light_samples)
    else:
        beams = (generate_beam(laser_origin, laser_direction, power, wavelength),)
    return propagate_beams(beams, media, config).rays
