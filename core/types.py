"""
Strongly typed containers for case configuration, phase boundary, and per-step records.

Global shape and unit conventions (law of the land):
- N: max tracked chain length; species vector length is 3*N + n_extra
- Species order: paraffins [0, N), olefins [N, 2N), diolefins [2N, 3N), auxiliary [3N, 3N+n_extra)
- Chain length of paraffin/olefin/diolefin index i (within its block) is i + 1
- n: mole counts [mol]; masses [g]; liquid volume V_L [m^3]; density [kg/m^3]
- Concentrations c = n / (V_L * 1000) in mol/L (== kmol/m^3)
- LC: minimum chain length in the liquid phase; chain lengths < LC are gas
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np
from numpy.typing import NDArray

FloatArray = NDArray[np.float64]

N_EXTRA_SPECIES_DEFAULT = 34
MW_CH2 = 14.027  # g/mol
MW_H2 = 2.016  # g/mol


class DevolatilizationError(RuntimeError):
    """Base class for checked failures of a devolatilization run."""


@dataclass(slots=True)
class CaseMeta:
    """Metadata for the case block."""

    id: str
    title: str = ""
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("case.id must be provided.")


@dataclass(slots=True)
class CasePaths:
    """Case-level paths (resolved by the loader).

    Attributes
    ----------
    output_root : Path
        Root directory under which per-run directories are created.
    case_dir : Path
        Directory of the current run (set by the driver).
    """

    output_root: Path
    case_dir: Path

    def __post_init__(self) -> None:
        for name in ("output_root", "case_dir"):
            v = getattr(self, name)
            if not isinstance(v, Path):
                raise TypeError(f"{name} must be pathlib.Path (loader must convert str -> Path).")


@dataclass(slots=True)
class CaseSpecies:
    """Species vector definition: chain-length blocks and auxiliary species."""

    max_chain_length: int
    n_extra_species: int = N_EXTRA_SPECIES_DEFAULT
    mw_unit: float = MW_CH2
    mw_h2: float = MW_H2
    extra_mw: Union[float, List[float]] = MW_CH2

    def __post_init__(self) -> None:
        if int(self.max_chain_length) < 2:
            raise ValueError(f"max_chain_length must be >= 2, got {self.max_chain_length}")
        if int(self.n_extra_species) < 0:
            raise ValueError(f"n_extra_species must be >= 0, got {self.n_extra_species}")
        if self.mw_unit <= 0.0 or self.mw_h2 < 0.0:
            raise ValueError("mw_unit must be positive and mw_h2 non-negative.")
        if isinstance(self.extra_mw, (list, tuple)):
            if len(self.extra_mw) != int(self.n_extra_species):
                raise ValueError(
                    f"extra_mw has {len(self.extra_mw)} entries, expected n_extra_species={self.n_extra_species}"
                )
            if any(float(v) <= 0.0 for v in self.extra_mw):
                raise ValueError("extra_mw entries must be positive.")
        elif float(self.extra_mw) <= 0.0:
            raise ValueError("extra_mw must be positive.")


@dataclass(slots=True)
class CaseLiquid:
    """Linear melt density rho(T) = rho_ref + drho_dT * (T - T_ref)."""

    rho_ref: float = 750.0  # kg/m3
    T_ref: float = 600.0  # K
    drho_dT: float = -0.55  # kg/m3/K

    def __post_init__(self) -> None:
        if self.rho_ref <= 0.0:
            raise ValueError(f"liquid.rho_ref must be positive, got {self.rho_ref}")


@dataclass(slots=True)
class CaseProgram:
    """Thermogravimetric temperature/pressure program and boiling-point correlation.

    kind == "ramp": T(t) = min(T0 + heating_rate * t, T_max)
    kind == "table": T(t) interpolated from a CSV file with columns t[s], T[K]
    Boiling temperature of chain length n: Tb(n) = w0 + (w1 - w0) / (1 + (w3 / n)**w2)
    """

    initial_mass: float  # g
    kind: str = "ramp"
    T0: float = 573.15
    heating_rate: float = 10.0 / 60.0  # K/s
    T_max: Optional[float] = None
    P: float = 101325.0  # Pa
    table_file: Optional[Path] = None
    tb_w0: float = 67.328
    tb_w1: float = 1191.8
    tb_w2: float = 0.90918
    tb_w3: float = 20.941

    def __post_init__(self) -> None:
        if self.kind not in ("ramp", "table"):
            raise ValueError(f"program.kind must be 'ramp' or 'table', got {self.kind!r}")
        if self.initial_mass <= 0.0:
            raise ValueError(f"program.initial_mass must be positive, got {self.initial_mass}")
        if self.P <= 0.0:
            raise ValueError(f"program.P must be positive, got {self.P}")
        if self.kind == "table" and self.table_file is None:
            raise ValueError("program.kind='table' requires program.table_file.")
        if self.tb_w1 <= self.tb_w0 or self.tb_w3 <= 0.0 or self.tb_w2 <= 0.0:
            raise ValueError("boiling correlation requires tb_w1 > tb_w0, tb_w2 > 0, tb_w3 > 0.")


@dataclass(slots=True)
class CaseInitial:
    """Initial chain-length distribution of the melt (all liquid paraffins)."""

    distribution: str = "most_probable"
    mean_chain_length: float = 40.0

    def __post_init__(self) -> None:
        if self.distribution != "most_probable":
            raise ValueError(f"Unsupported initial.distribution {self.distribution!r}")
        if self.mean_chain_length <= 1.0:
            raise ValueError(f"initial.mean_chain_length must exceed 1, got {self.mean_chain_length}")


@dataclass(slots=True)
class CaseKinetics:
    """Kinetics plug-in: 'module:callable' factory and its keyword parameters."""

    factory: str = "kinetics.fixed:build_fixed_rate_kinetics"
    params: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if ":" not in self.factory:
            raise ValueError(f"kinetics.factory must look like 'module:callable', got {self.factory!r}")


@dataclass(slots=True)
class CaseTime:
    """Time control settings for the stiff integrator."""

    t0: float
    t_end: float
    method: str = "BDF"
    rtol: float = 1.0e-6
    atol: float = 1.0e-12
    first_step: Optional[float] = None
    max_step: float = math.inf
    max_steps: Optional[int] = None

    def __post_init__(self) -> None:
        if self.t_end <= self.t0:
            raise ValueError(f"time.t_end must exceed t0 (t0={self.t0}, t_end={self.t_end})")
        if self.method not in ("BDF", "LSODA", "Radau"):
            raise ValueError(f"time.method must be one of BDF/LSODA/Radau, got {self.method!r}")
        if self.max_step <= 0.0:
            raise ValueError(f"time.max_step must be positive, got {self.max_step}")


@dataclass(slots=True)
class CaseBoundary:
    """Phase-boundary policy: 'monotonic' never regresses LC; 'follow' tracks the lookup."""

    policy: str = "monotonic"

    def __post_init__(self) -> None:
        if self.policy not in ("monotonic", "follow"):
            raise ValueError(f"boundary.policy must be 'monotonic' or 'follow', got {self.policy!r}")


@dataclass(slots=True)
class CaseChecks:
    """Diagnostics checks configuration."""

    min_liquid_volume_m3: float = 1.0e-15
    mass_tol_rel: float = 1.0e-6


@dataclass(slots=True)
class CaseConfig:
    """Top-level case configuration container."""

    case: CaseMeta
    paths: CasePaths
    species: CaseSpecies
    program: CaseProgram
    time: CaseTime
    liquid: CaseLiquid = field(default_factory=CaseLiquid)
    initial: CaseInitial = field(default_factory=CaseInitial)
    kinetics: CaseKinetics = field(default_factory=CaseKinetics)
    boundary: CaseBoundary = field(default_factory=CaseBoundary)
    checks: CaseChecks = field(default_factory=CaseChecks)

    def __post_init__(self) -> None:
        for name, cls in (
            ("species", CaseSpecies),
            ("program", CaseProgram),
            ("time", CaseTime),
            ("liquid", CaseLiquid),
            ("initial", CaseInitial),
            ("kinetics", CaseKinetics),
            ("boundary", CaseBoundary),
            ("checks", CaseChecks),
        ):
            if not isinstance(getattr(self, name), cls):
                raise TypeError(f"{name} must be {cls.__name__} (loader must build dataclass).")
        if self.initial.mean_chain_length >= self.species.max_chain_length:
            raise ValueError(
                f"initial.mean_chain_length={self.initial.mean_chain_length} must be below "
                f"max_chain_length={self.species.max_chain_length}"
            )


@dataclass(frozen=True, slots=True)
class PhaseBoundary:
    """Committed liquid/gas chain-length boundary.

    ``version`` increases by one at every commit so consumers can detect that the
    ODE structure changed; ``t_committed`` is the time of the step that committed it.
    """

    lc: int
    version: int = 0
    t_committed: Optional[float] = None

    def advanced(self, lc_new: int, t: Optional[float] = None) -> "PhaseBoundary":
        return PhaseBoundary(lc=int(lc_new), version=self.version + 1, t_committed=t)


@dataclass(frozen=True, slots=True)
class BoundaryTransition:
    """A committed change of LC with the boiling temperatures bracketing it."""

    t: float
    T: float
    lc_old: int
    lc_new: int
    Tb_old: float
    Tb_new: float


@dataclass(slots=True)
class PhaseAggregates:
    """Phase totals derived from a species vector at a given boundary.

    n_* in mol, m_* in g, rho_l in kg/m^3, V_l in m^3.
    """

    lc: int
    n_gas: float
    n_liq: float
    m_gas: float
    m_liq: float
    rho_l: float
    V_l: float

    @property
    def n_tot(self) -> float:
        return self.n_liq + self.n_gas

    @property
    def m_tot(self) -> float:
        return self.m_liq + self.m_gas

    @property
    def V_l_liters(self) -> float:
        return self.V_l * 1000.0


@dataclass(slots=True)
class StepSummary:
    """Everything one accepted-step report writes (console and both streams)."""

    step: int
    t: float
    T: float
    P: float
    lc: int
    res_liq: float
    phases: PhaseAggregates
    mass_fractions: Tuple[float, float, float]  # paraffins, olefins, diolefins
    mole_fractions: Tuple[float, float, float]

    def as_dict(self) -> Dict[str, float]:
        return {
            "step": self.step,
            "t": self.t,
            "T": self.T,
            "P": self.P,
            "LC": self.lc,
            "res_liq": self.res_liq,
            "mass_liq": self.phases.m_liq,
            "mass_gas": self.phases.m_gas,
            "mass_tot": self.phases.m_tot,
            "mol_liq": self.phases.n_liq,
            "mol_gas": self.phases.n_gas,
            "mol_tot": self.phases.n_tot,
        }


def check_species_vector(n: FloatArray, size: int) -> None:
    """Validate the species vector shape before any aggregation."""
    if n.ndim != 1:
        raise ValueError(f"species vector must be 1D, got shape {n.shape}")
    if n.shape != (size,):
        raise ValueError(f"species vector shape {n.shape} != ({size},)")
