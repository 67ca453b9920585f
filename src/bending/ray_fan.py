"""Beam generation for monochromatic and white-light lasers.

White light is modelled as a fan of monochromatic beams that share the
laser's origin and direction and split its power equally; each beam then
disperses on its own inside the prisms.
"""

import jax.numpy as jnp

from .datatypes import MAX_WAVELENGTH, MIN_WAVELENGTH, Beam, WAVELENGTH_RED


def _normalize(v):
    norm = jnp.linalg.norm(v)
    return jnp.where(norm > 0, v / jnp.where(norm > 0, norm, 1.0), v)


def generate_beam(origin, direction, power=1.0, wavelength=WAVELENGTH_RED) -> Beam:
    """A single monochromatic beam with a unit (or zero) direction vector."""
    origin = jnp.asarray(origin, dtype=jnp.float64)
    direction = _normalize(jnp.asarray(direction, dtype=jnp.float64))
    return Beam(origin=origin, direction=direction, power=float(power), wavelength=float(wavelength))


def generate_white_light_fan(origin, direction, power=1.0, num_wavelengths=16):
    """Generate one beam per sampled wavelength of the visible spectrum.

    Parameters
    ----------
    origin : (2,) array-like
        Laser emission point.
    direction : (2,) array-like
        Laser pointing direction (normalised here).
    power : float
        Total laser power, shared equally by the beams.
    num_wavelengths : int
        Number of evenly spaced samples from ``MIN_WAVELENGTH`` to
        ``MAX_WAVELENGTH`` inclusive.  A single sample sits in the middle of
        the range.

    Returns
    -------
    beams : tuple of Beam
        Ordered from short (violet) to long (red) wavelengths.
    """
    if num_wavelengths == 1:
        wavelengths = jnp.array([0.5 * (MIN_WAVELENGTH + MAX_WAVELENGTH)])
    else:
        wavelengths = jnp.linspace(MIN_WAVELENGTH, MAX_WAVELENGTH, num_wavelengths)

    share = float(power) / num_wavelengths
    return tuple(
        generate_beam(origin, direction, share, float(w))
        for w in wavelengths
    )
