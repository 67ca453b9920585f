"""Wavelength to display colour.

A fixed table of the visible spectrum is linearly interpolated with
``jnp.interp``; wavelengths outside the table clamp to its end points.
"""

from typing import NamedTuple, Union

import jax.numpy as jnp

from .datatypes import WHITE, Ray


class Color(NamedTuple):
    """8-bit RGB plus a 0..1 alpha."""
    r: int
    g: int
    b: int
    a: float = 1.0

    def to_hex(self) -> str:
        return "#{:02x}{:02x}{:02x}".format(self.r, self.g, self.b)

    def darker(self, factor: float = 0.5) -> "Color":
        return Color(int(self.r * factor), int(self.g * factor), int(self.b * factor), self.a)

    def with_alpha(self, alpha: float) -> "Color":
        return self._replace(a=float(alpha))


WHITE_COLOR = Color(255, 255, 255)

# Knots of the spectrum (nm -> RGB); the ends fade as the eye loses sensitivity.
SPECTRUM_WAVELENGTHS = jnp.array([380.0, 420.0, 440.0, 490.0, 510.0, 580.0, 645.0, 700.0, 780.0])
SPECTRUM_RGB = jnp.array([
    [76.0, 0.0, 76.0],
    [85.0, 0.0, 255.0],
    [0.0, 0.0, 255.0],
    [0.0, 255.0, 255.0],
    [0.0, 255.0, 0.0],
    [255.0, 255.0, 0.0],
    [255.0, 0.0, 0.0],
    [255.0, 0.0, 0.0],
    [76.0, 0.0, 0.0],
])


def map_wavelength_to_color(wavelength: Union[float, str]) -> Color:
    """Display colour for a vacuum *wavelength* in nm, or ``WHITE``."""
    if isinstance(wavelength, str):
        if wavelength != WHITE:
            raise ValueError(f"unknown laser colour {wavelength!r}")
        return WHITE_COLOR

    channels = [
        jnp.interp(wavelength, SPECTRUM_WAVELENGTHS, SPECTRUM_RGB[:, c])
        for c in range(3)
    ]
    r, g, b = (int(jnp.round(ch)) for ch in channels)
    return Color(r, g, b)


def ray_color(ray: Ray) -> Color:
    """Colour of a ray in geometric mode; fainter rays are more transparent."""
    alpha = min(max(ray.power, 0.0), 1.0) ** 0.5
    return map_wavelength_to_color(ray.wavelength).with_alpha(alpha)
