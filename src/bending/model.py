"""Simulation state: the laser, the media and the rays they produce.

The model recomputes the ray tree synchronously whenever the laser or the
media change, instead of wiring up listeners.  Readers only ever see
complete snapshots: ``tree``, ``rays`` and ``particles`` are replaced, never
modified, and a new propagation pass discards all live wave particles.
"""

import logging
from typing import Optional, Sequence, Tuple

from .datatypes import Laser, Medium, PropagationConfig, Ray, RayTree, validate_config
from .trace import propagate_laser
from .wave import WaveConfig, WaveState, advance, validate_wave_config

logger = logging.getLogger(__name__)


def _plain_laser(laser: Laser) -> Laser:
    """Laser with Python floats only, so two states compare with ``==``."""
    x, y = (float(c) for c in laser.emission_point)
    wavelength = laser.wavelength if isinstance(laser.wavelength, str) else float(laser.wavelength)
    return laser._replace(
        emission_point=(x, y), angle=float(laser.angle), power=float(laser.power), wavelength=wavelength,
    )


class BendingLightModel:
    """Owns the current ray tree and wave particle population.

    Attributes:
        config (PropagationConfig): depth, power and domain limits
        wave_config (WaveConfig): particle size, speed and view settings
        passes (int): number of propagation passes run so far
    """

    def __init__(
        self,
        media: Sequence[Medium] = (),
        laser: Laser = Laser(),
        config: PropagationConfig = PropagationConfig(),
        wave_config: WaveConfig = WaveConfig(),
    ):
        self.config = validate_config(config)
        self.wave_config = validate_wave_config(wave_config)
        self.passes = 0
        self._laser = _plain_laser(laser)
        self._media: Tuple[Medium, ...] = tuple(media)
        self._tree = RayTree()
        self._particles = WaveState()
        self._recompute()

    # -- snapshots ----------------------------------------------------------

    @property
    def laser(self) -> Laser:
        return self._laser

    @property
    def media(self) -> Tuple[Medium, ...]:
        return self._media

    @property
    def tree(self) -> RayTree:
        return self._tree

    @property
    def rays(self) -> Tuple[Ray, ...]:
        return self._tree.rays

    @property
    def particles(self) -> WaveState:
        return self._particles

    # -- mutations ----------------------------------------------------------

    def set_laser(self, laser: Optional[Laser] = None, **changes) -> Laser:
        """Replace the laser, or update some of its fields.

        Nothing is recomputed when the resulting laser equals the current one.
        """
        new_laser = _plain_laser((laser if laser is not None else self._laser)._replace(**changes))
        if new_laser == self._laser:
            return self._laser
        self._laser = new_laser
        self._recompute()
        return new_laser

    def set_media(self, media: Sequence[Medium]) -> None:
        self._media = tuple(media)
        self._recompute()

    def add_medium(self, medium: Medium) -> None:
        self.set_media(self._media + (medium,))

    def remove_medium(self, medium: Medium) -> None:
        remaining = tuple(m for m in self._media if m is not medium)
        if len(remaining) == len(self._media):
            raise ValueError(f"medium {medium.name!r} is not part of the scene")
        self.set_media(remaining)

    def set_config(self, config: PropagationConfig) -> None:
        self.config = validate_config(config)
        self._recompute()

    def step(self, dt: float) -> WaveState:
        """Advance the animation by *dt* wall-clock seconds.

        Only wave mode has anything to animate; in ray mode the current
        (empty) population is returned unchanged.
        """
        if not (self._laser.on and self._laser.wave):
            return self._particles
        self._particles = advance(
            self.rays, self._particles, dt * self.wave_config.time_scale, self.wave_config,
        )
        return self._particles

    def _recompute(self) -> None:
        self._tree = propagate_laser(self._laser, self._media, self.config)
        self._particles = WaveState()
        self.passes += 1
        logger.debug("Propagation pass %d: %d rays", self.passes, len(self._tree.rays))
