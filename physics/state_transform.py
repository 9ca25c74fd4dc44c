"""
Right-hand side of the devolatilization population balance.

Per evaluation (t, n):
    T, P, W          <- program
    m_L, m_G, n_L, n_G <- kinetics aggregation over the boundary
    V_L = (m_L / 1000) / rho(T)            [m^3]
    c   = n / (V_L * 1000)                 [mol/L]
    kinetics: set_status -> acceleration coefficient -> constants -> rates
    dn/dt = R * (V_L * 1000)               [mol/s]

The evaluator never writes files, never touches the step counter and never
moves the boundary. A collapsed or non-finite liquid volume raises
LiquidVolumeError instead of producing NaN/Inf.
"""

from __future__ import annotations

import logging

import numpy as np

from core.types import DevolatilizationError, FloatArray, PhaseAggregates, check_species_vector
from kinetics.base import BoundaryLike, KineticsModel, resolve_lc
from physics.tga_program import ThermogravimetricProgram

logger = logging.getLogger(__name__)

MIN_LIQUID_VOLUME_DEFAULT = 1.0e-15  # m3


class LiquidVolumeError(DevolatilizationError):
    """Liquid volume below the floor (or non-finite); concentrations are undefined."""

    def __init__(self, t: float, m_liq: float, V_l: float, floor: float) -> None:
        self.t = float(t)
        self.m_liq = float(m_liq)
        self.V_l = float(V_l)
        self.floor = float(floor)
        super().__init__(
            f"Liquid volume V_L={self.V_l:.3e} m3 below floor {self.floor:.3e} at t={self.t:.6e} "
            f"(mass_liq={self.m_liq:.3e} g)"
        )


class NonFiniteDerivativeError(DevolatilizationError):
    """The kinetics model returned NaN/Inf formation rates."""


def compute_phase_aggregates(
    kinetics: KineticsModel,
    n: FloatArray,
    T: float,
    lc: int,
) -> PhaseAggregates:
    """Gas/liquid moles and masses, melt density and liquid volume at boundary ``lc``."""
    n_gas = kinetics.sum_gas(n, lc)
    n_liq = kinetics.sum_liquid(n, lc)
    m_gas = kinetics.sum_gas_mw(n, lc)
    m_liq = kinetics.sum_liquid_mw(n, lc)
    rho_l = kinetics.liquid_density(T)
    V_l = (m_liq / 1000.0) / rho_l if rho_l != 0.0 else float("nan")
    return PhaseAggregates(lc=int(lc), n_gas=n_gas, n_liq=n_liq, m_gas=m_gas, m_liq=m_liq, rho_l=rho_l, V_l=V_l)


class StateTransform:
    """Derivative evaluator dn/dt = f(t, n; boundary)."""

    def __init__(
        self,
        kinetics: KineticsModel,
        program: ThermogravimetricProgram,
        *,
        min_liquid_volume: float = MIN_LIQUID_VOLUME_DEFAULT,
    ) -> None:
        if min_liquid_volume < 0.0:
            raise ValueError(f"min_liquid_volume must be non-negative, got {min_liquid_volume}")
        self.kinetics = kinetics
        self.program = program
        self.min_liquid_volume = float(min_liquid_volume)
        self.size = int(kinetics.layout.size)
        self.n_evaluations = 0

    def check_liquid_volume(self, t: float, phases: PhaseAggregates) -> None:
        V_l = phases.V_l
        if not np.isfinite(V_l) or V_l <= self.min_liquid_volume:
            raise LiquidVolumeError(t, phases.m_liq, V_l, self.min_liquid_volume)

    def __call__(self, t: float, n: FloatArray, boundary: BoundaryLike = None) -> np.ndarray:
        return self.evaluate(t, n, boundary)

    def evaluate(self, t: float, n: FloatArray, boundary: BoundaryLike = None) -> np.ndarray:
        n = np.asarray(n, dtype=np.float64)
        check_species_vector(n, self.size)
        lc = resolve_lc(boundary, self.kinetics.boundary)
        self.n_evaluations += 1

        T = self.program.temperature(t)
        P = self.program.pressure(t)
        W = self.program.initial_mass

        phases = compute_phase_aggregates(self.kinetics, n, T, lc)
        self.check_liquid_volume(t, phases)
        V_liters = phases.V_l_liters

        c = n / V_liters

        self.kinetics.set_status(T, P, c)
        self.kinetics.update_initial_acceleration_coefficient(V_liters, W)
        self.kinetics.kinetic_constants()
        self.kinetics.formation_rates()

        dn_dt = np.asarray(self.kinetics.R, dtype=np.float64) * V_liters
        if dn_dt.shape != (self.size,):
            raise ValueError(f"formation-rate vector shape {dn_dt.shape} != ({self.size},)")
        if not np.all(np.isfinite(dn_dt)):
            bad = int(np.count_nonzero(~np.isfinite(dn_dt)))
            raise NonFiniteDerivativeError(
                f"{bad} non-finite entries in dn/dt at t={float(t):.6e} (T={T:.3f} K, LC={lc})"
            )
        return dn_dt
