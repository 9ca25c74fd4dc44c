"""
Liquid (melt) density for the devolatilizing polymer.

Single correlation used by the step core:
    rho(T) = rho_ref + drho_dT * (T - T_ref)     [kg/m^3]

No clipping is applied: a non-positive density makes the liquid volume
non-positive, which the state transform reports as a failure.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging

import numpy as np

from core.types import CaseConfig

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class LiquidDensityModel:
    rho_ref: float  # kg/m3
    T_ref: float  # K
    drho_dT: float  # kg/m3/K

    def density(self, T: float) -> float:
        """Return melt density [kg/m3] at temperature T [K]."""
        T = float(T)
        if not np.isfinite(T):
            raise ValueError(f"Non-finite temperature T={T}")
        return self.rho_ref + self.drho_dT * (T - self.T_ref)


def build_liquid_density_model(cfg: CaseConfig) -> LiquidDensityModel:
    """Construct the melt density model from config."""
    liq = cfg.liquid
    model = LiquidDensityModel(
        rho_ref=float(liq.rho_ref),
        T_ref=float(liq.T_ref),
        drho_dT=float(liq.drho_dT),
    )
    logger.debug(
        "Liquid density model: rho_ref=%.3f kg/m3 at T_ref=%.2f K, drho_dT=%.4e",
        model.rho_ref,
        model.T_ref,
        model.drho_dT,
    )
    return model
