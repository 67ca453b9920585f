"""Unit tests for reflection, Snell's law and the Fresnel split."""

import jax.numpy as jnp
import numpy as np
import pytest

from src.bending.refraction import (
    advance,
    fresnel_reflectance,
    incidence_angle,
    reflect,
    snell_refraction,
    split_at_interface,
)


# ---- helpers ----------------------------------------------------------------

def _angle_between(v1, v2):
    """Angle in radians between two unit vectors."""
    cos = jnp.clip(jnp.dot(v1, v2), -1.0, 1.0)
    return jnp.arccos(cos)


def _incoming(angle_deg):
    """Unit vector travelling down onto the y = 0 plane at *angle_deg*."""
    a = np.radians(angle_deg)
    return jnp.array([np.sin(a), -np.cos(a)])


UP = jnp.array([0.0, 1.0])


# ---- reflect ------------------------------------------------------------------

class TestReflect:

    def test_mirror_about_normal(self):
        d = _incoming(45.0)
        r = reflect(d, UP)
        np.testing.assert_allclose(r, [np.sin(np.pi / 4), np.cos(np.pi / 4)], atol=1e-12)

    def test_normal_orientation_does_not_matter(self):
        d = _incoming(30.0)
        np.testing.assert_allclose(reflect(d, UP), reflect(d, -UP), atol=1e-12)

    def test_reflected_is_unit(self):
        r = reflect(_incoming(70.0), UP)
        assert float(jnp.linalg.norm(r)) == pytest.approx(1.0, abs=1e-12)


# ---- snell_refraction -------------------------------------------------------

class TestSnellRefraction:

    def test_normal_incidence_passes_straight(self):
        refracted, valid = snell_refraction(jnp.array([0.0, -1.0]), UP, 1.0, 1.5)
        assert valid
        np.testing.assert_allclose(refracted, [0.0, -1.0], atol=1e-12)

    @pytest.mark.parametrize("n1,n2,angle_deg", [
        (1.0, 1.5, 30.0),
        (1.0, 1.333, 60.0),
        (1.5, 1.0, 20.0),
        (1.0, 2.419, 45.0),
    ])
    def test_snells_law_holds(self, n1, n2, angle_deg):
        refracted, valid = snell_refraction(_incoming(angle_deg), UP, n1, n2)
        assert valid
        theta2 = float(_angle_between(refracted, -UP))
        assert n1 * np.sin(np.radians(angle_deg)) == pytest.approx(n2 * np.sin(theta2), abs=1e-10)

    def test_either_normal_orientation(self):
        a, _ = snell_refraction(_incoming(30.0), UP, 1.0, 1.5)
        b, _ = snell_refraction(_incoming(30.0), -UP, 1.0, 1.5)
        np.testing.assert_allclose(a, b, atol=1e-12)

    def test_total_internal_reflection_flagged(self):
        _, valid = snell_refraction(_incoming(60.0), UP, 1.5, 1.0)
        assert not valid


# ---- Fresnel ------------------------------------------------------------------

class TestFresnel:

    def test_normal_incidence(self):
        assert float(fresnel_reflectance(1.0, 1.5, 0.0)) == pytest.approx(0.04, abs=1e-12)

    def test_thirty_degrees(self):
        assert float(fresnel_reflectance(1.0, 1.5, np.radians(30.0))) == pytest.approx(0.0415, abs=5e-4)

    def test_matched_indices_reflect_nothing(self):
        assert float(fresnel_reflectance(1.5, 1.5, 0.7)) == pytest.approx(0.0, abs=1e-12)

    def test_total_internal_reflection(self):
        assert float(fresnel_reflectance(1.5, 1.0, np.radians(60.0))) == 1.0

    def test_grazing_incidence_is_finite(self):
        r = float(fresnel_reflectance(1.0, 1.5, 0.5 * np.pi))
        assert np.isfinite(r)
        assert 0.99 < r <= 1.0


# ---- split_at_interface -------------------------------------------------------

class TestSplitAtInterface:

    @pytest.mark.parametrize("n1,n2,angle_deg", [
        (1.0, 1.5, 0.0),
        (1.0, 1.5, 45.0),
        (1.5, 1.0, 30.0),
        (1.333, 1.5, 80.0),
    ])
    def test_power_is_conserved(self, n1, n2, angle_deg):
        result = split_at_interface(_incoming(angle_deg), UP, n1, n2)
        assert not result.total_internal_reflection
        assert result.reflectance + result.transmittance == pytest.approx(1.0, abs=1e-12)
        assert 0.0 <= result.reflectance <= 1.0

    def test_refraction_angle(self):
        result = split_at_interface(_incoming(30.0), UP, 1.0, 1.5)
        assert result.theta1 == pytest.approx(np.radians(30.0), abs=1e-12)
        assert result.theta2 == pytest.approx(np.arcsin(0.5 / 1.5), abs=1e-12)

    def test_critical_angle(self):
        critical = np.arcsin(1.0 / 1.5)
        below = split_at_interface(_incoming(np.degrees(critical - 0.01)), UP, 1.5, 1.0)
        above = split_at_interface(_incoming(np.degrees(critical + 0.01)), UP, 1.5, 1.0)

        assert not below.total_internal_reflection
        assert above.total_internal_reflection
        assert above.reflectance == 1.0
        assert above.transmittance == 0.0
        assert above.theta2 is None

    def test_transmittance_vanishes_at_critical_angle(self):
        critical = float(np.arcsin(1.0 / 1.5))
        transmitted = [1.0 - float(fresnel_reflectance(1.5, 1.0, critical - d)) for d in (1e-2, 1e-4, 1e-6)]
        assert transmitted[0] > transmitted[1] > transmitted[2] > 0.0
        assert 1.0 - float(fresnel_reflectance(1.5, 1.0, critical)) == pytest.approx(0.0, abs=1e-6)

    def test_tir_direction_is_mirror(self):
        d = _incoming(60.0)
        result = split_at_interface(d, UP, 1.5, 1.0)
        np.testing.assert_allclose(result.reflected_dir, reflect(d, UP), atol=1e-12)


# ---- geometry helpers -------------------------------------------------------

class TestHelpers:

    def test_incidence_angle(self):
        assert float(incidence_angle(_incoming(25.0), UP)) == pytest.approx(np.radians(25.0), abs=1e-12)
        assert float(incidence_angle(_incoming(25.0), -UP)) == pytest.approx(np.radians(25.0), abs=1e-12)

    def test_advance(self):
        p = advance(jnp.array([1.0, 2.0]), jnp.array([0.6, 0.8]), 5.0)
        np.testing.assert_allclose(p, [4.0, 6.0], atol=1e-12)

    def test_advance_backwards(self):
        p = advance(jnp.array([1.0, 2.0]), jnp.array([0.6, 0.8]), -5.0)
        np.testing.assert_allclose(p, [-2.0, -2.0], atol=1e-12)
