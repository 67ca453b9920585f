"""Reflection, Snell's law and Fresnel power splitting at a boundary.

The vector helpers are branchless JAX functions; ``split_at_interface``
makes the discrete decisions (total internal reflection or a two-way split)
on concrete values and is what the propagation engine calls.
"""

from typing import NamedTuple, Optional

import jax.numpy as jnp

from .datatypes import MAX_INCIDENCE_ANGLE


def reflect(incident_dir: jnp.ndarray, normal: jnp.ndarray) -> jnp.ndarray:
    """Mirror *incident_dir* about the line of *normal* (either orientation)."""
    return incident_dir - 2.0 * jnp.dot(incident_dir, normal) * normal


def snell_refraction(
    incident_dir: jnp.ndarray,
    normal: jnp.ndarray,
    n1: float,
    n2: float,
) -> tuple[jnp.ndarray, jnp.ndarray]:
    """Compute the refracted ray direction using the vector form of Snell's law.

    Parameters
    ----------
    incident_dir : (2,) array
        Unit direction vector of the incoming ray.
    normal : (2,) array
        Unit surface normal facing the incoming ray (pointing back into the
        n1 side).
    n1 : float
        Refractive index of the medium the ray is leaving.
    n2 : float
        Refractive index of the medium the ray is entering.

    Returns
    -------
    refracted_dir : (2,) array
        Unit direction vector of the refracted ray.  Under total internal
        reflection the value is still finite but meaningless.
    valid : scalar bool array
        True when a refracted ray exists (no TIR).
    """
    eta = n1 / n2

    cos_i = -jnp.dot(incident_dir, normal)
    # The normal may face either way; only the magnitude matters here.
    cos_i = jnp.abs(cos_i)

    sin2_t = eta ** 2 * (1.0 - cos_i ** 2)

    valid = sin2_t <= 1.0
    sin2_t_safe = jnp.clip(sin2_t, 0.0, 1.0)

    cos_t = jnp.sqrt(1.0 - sin2_t_safe)

    facing = jnp.where(jnp.dot(incident_dir, normal) > 0, -normal, normal)
    refracted = eta * incident_dir + (eta * cos_i - cos_t) * facing

    refracted = refracted / (jnp.linalg.norm(refracted) + 1e-300)

    return refracted, valid


def incidence_angle(incident_dir: jnp.ndarray, normal: jnp.ndarray) -> jnp.ndarray:
    """Angle between the ray and the boundary normal, in [0, pi/2]."""
    cos_i = jnp.clip(jnp.abs(jnp.dot(incident_dir, normal)), 0.0, 1.0)
    return jnp.arccos(cos_i)


def fresnel_reflectance(n1: float, n2: float, theta1: float) -> jnp.ndarray:
    """Reflectance for unpolarized light, the mean of the s and p terms.

    *theta1* is clamped to ``MAX_INCIDENCE_ANGLE`` so that grazing rays never
    divide by zero.  Returns 1 under total internal reflection.
    """
    theta1 = jnp.minimum(theta1, MAX_INCIDENCE_ANGLE)
    cos_i = jnp.cos(theta1)
    sin_t = n1 * jnp.sin(theta1) / n2
    tir = sin_t >= 1.0
    cos_t = jnp.sqrt(jnp.clip(1.0 - sin_t ** 2, 0.0, 1.0))

    r_s = (n1 * cos_i - n2 * cos_t) / (n1 * cos_i + n2 * cos_t)
    r_p = (n2 * cos_i - n1 * cos_t) / (n2 * cos_i + n1 * cos_t)
    reflectance = 0.5 * (r_s ** 2 + r_p ** 2)
    return jnp.where(tir, 1.0, jnp.clip(reflectance, 0.0, 1.0))


class Interaction(NamedTuple):
    """Outcome of a ray meeting a boundary."""
    reflected_dir: jnp.ndarray
    refracted_dir: Optional[jnp.ndarray]  # None under total internal reflection
    reflectance: float
    transmittance: float
    theta1: float
    theta2: Optional[float]

    @property
    def total_internal_reflection(self) -> bool:
        return self.refracted_dir is None


def split_at_interface(
    incident_dir: jnp.ndarray,
    normal: jnp.ndarray,
    n1: float,
    n2: float,
) -> Interaction:
    """Apply Snell's law and the Fresnel equations at one crossing.

    Total internal reflection happens when ``n1 * sin(theta1) > n2``; the
    whole power is then reflected.  Otherwise ``R`` and ``T = 1 - R``
    partition the power between the reflected and the refracted ray.
    """
    theta1 = float(incidence_angle(incident_dir, normal))
    reflected = reflect(incident_dir, normal)

    if n1 * jnp.sin(theta1) > n2:
        return Interaction(reflected, None, 1.0, 0.0, theta1, None)

    theta2 = float(jnp.arcsin(jnp.clip(n1 * jnp.sin(theta1) / n2, -1.0, 1.0)))
    refracted, _ = snell_refraction(incident_dir, normal, n1, n2)
    reflectance = float(fresnel_reflectance(n1, n2, theta1))
    return Interaction(reflected, refracted, reflectance, 1.0 - reflectance, theta1, theta2)


def advance(point: jnp.ndarray, direction: jnp.ndarray, distance) -> jnp.ndarray:
    """Point *distance* along a unit *direction*; negative distances step back."""
    return point + distance * direction
