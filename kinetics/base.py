"""
Kinetics-model interface consumed by the step core, plus the shared bookkeeping base.

The step core never looks inside a mechanism. It needs:
- boundary access: max_number_of_units, min_number_of_units, set_min_number_of_units
- aggregation over the species vector: sum_gas / sum_liquid (+ _mw), sum_classes (+ _mw)
- liquid_density(T)
- set_status(T, P, c), update_initial_acceleration_coefficient(volume_l, initial_mass),
  kinetic_constants(), formation_rates(), and the formation-rate vector R [mol/L/s]

SpeciesKineticsBase implements everything except kinetic_constants/formation_rates,
which concrete mechanisms provide.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Tuple, Union, runtime_checkable

import numpy as np

from core.layout import SpeciesLayout
from core.types import FloatArray, PhaseBoundary
from properties.liquid import LiquidDensityModel

logger = logging.getLogger(__name__)

BoundaryLike = Union[PhaseBoundary, int, None]


@runtime_checkable
class KineticsModel(Protocol):
    layout: SpeciesLayout

    @property
    def max_number_of_units(self) -> int: ...

    @property
    def min_number_of_units(self) -> int: ...

    @property
    def boundary(self) -> PhaseBoundary: ...

    def set_min_number_of_units(self, lc: int, t: Optional[float] = None) -> PhaseBoundary: ...

    def sum_gas(self, n: FloatArray, lc: Optional[int] = None) -> float: ...

    def sum_liquid(self, n: FloatArray, lc: Optional[int] = None) -> float: ...

    def sum_gas_mw(self, n: FloatArray, lc: Optional[int] = None) -> float: ...

    def sum_liquid_mw(self, n: FloatArray, lc: Optional[int] = None) -> float: ...

    def sum_classes(self, n: FloatArray) -> Tuple[float, float, float]: ...

    def sum_classes_mw(self, n: FloatArray) -> Tuple[float, float, float]: ...

    def liquid_density(self, T: float) -> float: ...

    def set_status(self, T: float, P: float, c: FloatArray) -> None: ...

    def update_initial_acceleration_coefficient(self, volume_l: float, initial_mass: float) -> None: ...

    def kinetic_constants(self) -> None: ...

    def formation_rates(self) -> None: ...

    @property
    def R(self) -> FloatArray: ...


def resolve_lc(boundary: BoundaryLike, default: PhaseBoundary) -> int:
    """Turn an explicit boundary (PhaseBoundary or int) into LC; None means ``default``."""
    if boundary is None:
        return int(default.lc)
    if isinstance(boundary, PhaseBoundary):
        return int(boundary.lc)
    return int(boundary)


class SpeciesKineticsBase:
    """Boundary ownership, aggregation, density and status storage shared by all mechanisms."""

    def __init__(self, layout: SpeciesLayout, density_model: LiquidDensityModel, lc0: int) -> None:
        self.layout = layout
        self.density_model = density_model
        self._boundary = PhaseBoundary(lc=layout.check_lc(lc0))
        self.T = float("nan")
        self.P = float("nan")
        self.c = np.zeros(layout.size, dtype=np.float64)
        self.volume_l = float("nan")  # liquid volume [L]
        self.initial_mass = float("nan")  # g
        self._R = np.zeros(layout.size, dtype=np.float64)

    # ------------------------------------------------------------------
    # Boundary
    # ------------------------------------------------------------------
    @property
    def max_number_of_units(self) -> int:
        return int(self.layout.n_units)

    @property
    def min_number_of_units(self) -> int:
        return int(self._boundary.lc)

    @property
    def boundary(self) -> PhaseBoundary:
        return self._boundary

    def set_min_number_of_units(self, lc: int, t: Optional[float] = None) -> PhaseBoundary:
        """Commit a new LC; returns the new versioned boundary."""
        lc = self.layout.check_lc(lc)
        self._boundary = self._boundary.advanced(lc, t)
        logger.debug("Committed LC=%d (version %d) at t=%s", lc, self._boundary.version, t)
        return self._boundary

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------
    def sum_gas(self, n: FloatArray, lc: Optional[int] = None) -> float:
        return self.layout.sum_gas(n, resolve_lc(lc, self._boundary))

    def sum_liquid(self, n: FloatArray, lc: Optional[int] = None) -> float:
        return self.layout.sum_liquid(n, resolve_lc(lc, self._boundary))

    def sum_gas_mw(self, n: FloatArray, lc: Optional[int] = None) -> float:
        return self.layout.sum_gas_mw(n, resolve_lc(lc, self._boundary))

    def sum_liquid_mw(self, n: FloatArray, lc: Optional[int] = None) -> float:
        return self.layout.sum_liquid_mw(n, resolve_lc(lc, self._boundary))

    def sum_classes(self, n: FloatArray) -> Tuple[float, float, float]:
        return self.layout.sum_classes(n)

    def sum_classes_mw(self, n: FloatArray) -> Tuple[float, float, float]:
        return self.layout.sum_classes_mw(n)

    # ------------------------------------------------------------------
    # Thermodynamic status
    # ------------------------------------------------------------------
    def liquid_density(self, T: float) -> float:
        return self.density_model.density(T)

    def set_status(self, T: float, P: float, c: FloatArray) -> None:
        c = np.asarray(c, dtype=np.float64)
        if c.shape != (self.layout.size,):
            raise ValueError(f"concentration shape {c.shape} != ({self.layout.size},)")
        self.T = float(T)
        self.P = float(P)
        self.c = c

    def update_initial_acceleration_coefficient(self, volume_l: float, initial_mass: float) -> None:
        """Store the current liquid volume [L] and initial mass [g]; mechanisms read them."""
        self.volume_l = float(volume_l)
        self.initial_mass = float(initial_mass)

    def kinetic_constants(self) -> None:
        raise NotImplementedError

    def formation_rates(self) -> None:
        raise NotImplementedError

    @property
    def R(self) -> FloatArray:
        """Net formation rates [mol/L/s]."""
        return self._R
