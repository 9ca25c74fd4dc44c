"""
Thermogravimetric program: T(t), P(t), initial mass, and the boiling-point lookup.

Boiling temperature of a linear hydrocarbon with n carbon atoms:
    Tb(n) = w0 + (w1 - w0) / (1 + (w3 / n)**w2)        [K]
The chain-length boundary at temperature T is the smallest chain length whose
boiling temperature still exceeds T: everything that boils at or below T is gas.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Optional

import numpy as np

from core.types import CaseConfig, FloatArray

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BoilingCurve:
    """Boiling temperature by chain length, tabulated for n = 1..n_units."""

    n_units: int
    w0: float
    w1: float
    w2: float
    w3: float
    Tb: FloatArray = field(init=False)

    def __post_init__(self) -> None:
        n = np.arange(1, int(self.n_units) + 1, dtype=np.float64)
        self.Tb = self._formula(n)
        if not np.all(np.diff(self.Tb) > 0.0):
            raise ValueError("Boiling curve must be strictly increasing in chain length.")

    def _formula(self, n):
        return self.w0 + (self.w1 - self.w0) / (1.0 + (self.w3 / n) ** self.w2)

    def temperature(self, chain_length: int) -> float:
        """Boiling temperature [K] of ``chain_length``; chain lengths < 1 map to the lower asymptote w0."""
        n = int(chain_length)
        if n < 1:
            return float(self.w0)
        if n <= self.n_units:
            return float(self.Tb[n - 1])
        return float(self._formula(float(n)))

    def boundary_for_temperature(self, T: float) -> int:
        """Minimum liquid chain length at T, clamped to [1, n_units]."""
        n_volatile = int(np.searchsorted(self.Tb, float(T), side="right"))
        return min(max(n_volatile + 1, 1), int(self.n_units))


@dataclass(slots=True)
class ThermogravimetricProgram:
    """Immutable temperature/pressure history of one run.

    Either a linear ramp (optionally held at ``T_max``) or a tabulated history.
    """

    curve: BoilingCurve
    initial_mass: float  # g
    P0: float  # Pa
    T0: float = 573.15
    heating_rate: float = 0.0  # K/s
    T_max: Optional[float] = None
    table_t: Optional[FloatArray] = None
    table_T: Optional[FloatArray] = None

    def __post_init__(self) -> None:
        if self.table_t is not None:
            if self.table_T is None or self.table_t.shape != self.table_T.shape:
                raise ValueError("table_t and table_T must both be given with equal shapes.")
            if self.table_t.size < 2:
                raise ValueError("Temperature table needs at least two rows.")
            if not np.all(np.diff(self.table_t) > 0.0):
                raise ValueError("Temperature table times must be strictly increasing.")

    def temperature(self, t: float) -> float:
        """T(t) [K]."""
        if self.table_t is not None:
            return float(np.interp(float(t), self.table_t, self.table_T))
        T = self.T0 + self.heating_rate * float(t)
        if self.T_max is not None:
            T = min(T, self.T_max)
        return float(T)

    def pressure(self, t: float) -> float:
        """P(t) [Pa]; constant over the run."""
        return float(self.P0)

    def boundary_for_temperature(self, T: float) -> int:
        return self.curve.boundary_for_temperature(T)

    def boiling_temperature(self, chain_length: int) -> float:
        return self.curve.temperature(chain_length)

    def is_non_decreasing(self) -> bool:
        """True when T(t) never decreases (LC then never needs to regress)."""
        if self.table_T is not None:
            return bool(np.all(np.diff(self.table_T) >= 0.0))
        return self.heating_rate >= 0.0


def load_temperature_table(path: Path) -> tuple[np.ndarray, np.ndarray]:
    """Load a two-column CSV (t[s], T[K]); '#' starts a comment."""
    data = np.loadtxt(Path(path), delimiter=",", comments="#", ndmin=2)
    if data.shape[1] < 2:
        raise ValueError(f"Temperature table {path} needs two columns (t, T), got {data.shape[1]}")
    return np.asarray(data[:, 0], dtype=np.float64), np.asarray(data[:, 1], dtype=np.float64)


def build_program(cfg: CaseConfig) -> ThermogravimetricProgram:
    """Construct the program and its boiling curve from config."""
    pc = cfg.program
    curve = BoilingCurve(
        n_units=int(cfg.species.max_chain_length),
        w0=float(pc.tb_w0),
        w1=float(pc.tb_w1),
        w2=float(pc.tb_w2),
        w3=float(pc.tb_w3),
    )
    table_t = table_T = None
    if pc.kind == "table":
        table_t, table_T = load_temperature_table(pc.table_file)
        logger.info("Loaded temperature table %s (%d rows).", pc.table_file, table_t.size)
    program = ThermogravimetricProgram(
        curve=curve,
        initial_mass=float(pc.initial_mass),
        P0=float(pc.P),
        T0=float(pc.T0),
        heating_rate=float(pc.heating_rate),
        T_max=None if pc.T_max is None else float(pc.T_max),
        table_t=table_t,
        table_T=table_T,
    )
    if not program.is_non_decreasing():
        logger.warning("Temperature program decreases somewhere; boundary.policy=%s decides LC regression.",
                       cfg.boundary.policy)
    return program
