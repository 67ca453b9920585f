"""Tests for the simulation model: recomputation on change and wave stepping."""

import numpy as np
import pytest

from src.bending.datatypes import WHITE, Laser, PropagationConfig, Termination, prism_prototypes
from src.bending.model import BendingLightModel
from src.bending.wave import WaveConfig


# ---- helpers ---------------------------------------------------------------

def _square():
    # shifted down so the default beam enters through the top face, not a corner
    return prism_prototypes(center=(0.0, -5e-7))[2]


# ---- propagation on change ---------------------------------------------------

class TestRecompute:

    def test_empty_scene(self):
        model = BendingLightModel()
        assert len(model.rays) == 1
        assert model.rays[0].termination == Termination.ESCAPED
        assert model.passes == 1

    def test_adding_a_prism_splits_the_beam(self):
        model = BendingLightModel()
        model.add_medium(_square())
        assert len(model.rays) > 1
        assert model.rays[0].termination == Termination.INTERFACE
        assert model.passes == 2

    def test_remove_medium(self):
        square = _square()
        model = BendingLightModel(media=[square])
        model.remove_medium(square)
        assert model.media == ()
        assert len(model.rays) == 1

    def test_remove_unknown_medium(self):
        model = BendingLightModel(media=[_square()])
        with pytest.raises(ValueError):
            model.remove_medium(_square())

    def test_unchanged_laser_does_not_recompute(self):
        model = BendingLightModel(media=[_square()])
        tree = model.tree
        model.set_laser(Laser())
        model.set_laser(power=1.0)
        assert model.passes == 1
        assert model.tree is tree

    def test_array_emission_point(self):
        model = BendingLightModel(media=[_square()])
        model.set_laser(emission_point=np.array([-9e-6, 9e-6]))
        assert model.laser.emission_point == (-9e-6, 9e-6)
        assert model.passes == 2

        model.set_laser(emission_point=np.array([-9e-6, 9e-6]))
        assert model.passes == 2

    def test_laser_off(self):
        model = BendingLightModel(media=[_square()])
        model.set_laser(on=False)
        assert model.rays == ()
        assert model.passes == 2

    def test_white_light(self):
        model = BendingLightModel(laser=Laser(wavelength=WHITE))
        assert len(model.tree.roots) == model.config.white_light_samples

    def test_config(self):
        model = BendingLightModel(media=[_square()])
        model.set_config(PropagationConfig(max_depth=1))
        assert len(model.rays) == 1
        assert model.rays[0].termination == Termination.MAX_DEPTH

    def test_invalid_config(self):
        with pytest.raises(ValueError):
            BendingLightModel(config=PropagationConfig(max_depth=0))

    def test_invalid_wave_config(self):
        with pytest.raises(ValueError):
            BendingLightModel(wave_config=WaveConfig(particle_width=0.0))


# ---- wave mode ---------------------------------------------------------------

class TestStep:

    def test_ray_mode_has_no_particles(self):
        model = BendingLightModel(media=[_square()])
        assert model.step(0.1).total == 0

    def test_wave_mode_emits(self):
        model = BendingLightModel(media=[_square()], laser=Laser(wave=True))
        state = model.step(0.1)
        assert state.total > 0
        assert model.particles is state
        assert state.time == pytest.approx(0.1 * model.wave_config.time_scale)

    def test_new_pass_discards_particles(self):
        model = BendingLightModel(media=[_square()], laser=Laser(wave=True))
        model.step(0.1)
        model.set_laser(angle=-0.3)
        assert model.particles.total == 0
