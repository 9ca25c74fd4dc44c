"""
Fixed-rate kinetics: formation rates are a configured constant vector.

Used as the default plug-in (boundary-driven devolatilization only, zero rates)
and as a deterministic stub in tests.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from core.layout import SpeciesLayout
from kinetics.base import SpeciesKineticsBase
from properties.liquid import LiquidDensityModel

logger = logging.getLogger(__name__)


class FixedRateKinetics(SpeciesKineticsBase):
    def __init__(
        self,
        layout: SpeciesLayout,
        density_model: LiquidDensityModel,
        lc0: int,
        rates: Optional[Sequence[float]] = None,
    ) -> None:
        super().__init__(layout, density_model, lc0)
        if rates is None:
            fixed = np.zeros(layout.size, dtype=np.float64)
        else:
            fixed = np.asarray(rates, dtype=np.float64)
            if fixed.shape != (layout.size,):
                raise ValueError(f"rates shape {fixed.shape} != ({layout.size},)")
        self.fixed_rates = fixed
        self.n_constant_updates = 0
        self.n_rate_updates = 0

    def kinetic_constants(self) -> None:
        self.n_constant_updates += 1

    def formation_rates(self) -> None:
        self.n_rate_updates += 1
        self._R = self.fixed_rates.copy()


def build_fixed_rate_kinetics(
    layout: SpeciesLayout,
    density_model: LiquidDensityModel,
    lc0: int,
    *,
    rates: Optional[Sequence[float]] = None,
    uniform_rate: Optional[float] = None,
) -> FixedRateKinetics:
    """Factory used by the case YAML (kinetics.factory)."""
    if rates is not None and uniform_rate is not None:
        raise ValueError("Give either 'rates' or 'uniform_rate', not both.")
    if uniform_rate is not None:
        rates = np.full(layout.size, float(uniform_rate), dtype=np.float64)
    model = FixedRateKinetics(layout, density_model, lc0, rates=rates)
    logger.info("Fixed-rate kinetics: %d species, max |R| = %.3e mol/L/s",
                layout.size, float(np.max(np.abs(model.fixed_rates))) if layout.size else 0.0)
    return model
