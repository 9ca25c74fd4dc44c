"""
Species-vector layout and phase/class aggregation.

Principles:
- Block order is fixed: paraffins, olefins, diolefins (chain lengths 1..N each), then auxiliary species.
- Gas phase = the three chain-length classes with chain length < LC.
- Liquid phase = the three classes with chain length >= LC, plus all auxiliary species.
- Index math lives here; callers aggregate only through SpeciesLayout helpers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Tuple

import numpy as np

from .types import CaseConfig, FloatArray, check_species_vector

CLASS_NAMES: Tuple[str, str, str] = ("paraffins", "olefins", "diolefins")


@dataclass(slots=True)
class SpeciesLayout:
    """Layout of the species mole vector."""

    n_units: int
    n_extra: int
    mw: FloatArray  # (size,) g/mol
    size: int = field(init=False)
    blocks: Dict[str, slice] = field(init=False)
    _gas_masks: Dict[int, np.ndarray] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        N = int(self.n_units)
        self.size = 3 * N + int(self.n_extra)
        if self.mw.shape != (self.size,):
            raise ValueError(f"mw shape {self.mw.shape} != ({self.size},)")
        if np.any(self.mw <= 0.0):
            raise ValueError("molecular weights must be positive.")
        self.blocks = {
            "paraffins": slice(0, N),
            "olefins": slice(N, 2 * N),
            "diolefins": slice(2 * N, 3 * N),
            "extra": slice(3 * N, self.size),
        }
        self._gas_masks = {}

    def chain_lengths(self) -> np.ndarray:
        """Chain length per index; 0 for auxiliary species."""
        N = self.n_units
        per_block = np.arange(1, N + 1)
        return np.concatenate([per_block, per_block, per_block, np.zeros(self.n_extra, dtype=int)])

    def check_lc(self, lc: int) -> int:
        lc = int(lc)
        if lc < 1 or lc > self.n_units:
            raise ValueError(f"LC={lc} outside [1, {self.n_units}]")
        return lc

    def gas_mask(self, lc: int) -> np.ndarray:
        """Boolean mask of gas-phase species for boundary ``lc`` (cached)."""
        lc = self.check_lc(lc)
        mask = self._gas_masks.get(lc)
        if mask is None:
            cl = self.chain_lengths()
            mask = (cl >= 1) & (cl < lc)
            mask.setflags(write=False)
            self._gas_masks[lc] = mask
        return mask

    def liquid_mask(self, lc: int) -> np.ndarray:
        return ~self.gas_mask(lc)

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------
    def sum_gas(self, n: FloatArray, lc: int) -> float:
        check_species_vector(n, self.size)
        return float(np.sum(n[self.gas_mask(lc)]))

    def sum_liquid(self, n: FloatArray, lc: int) -> float:
        check_species_vector(n, self.size)
        return float(np.sum(n[self.liquid_mask(lc)]))

    def sum_gas_mw(self, n: FloatArray, lc: int) -> float:
        check_species_vector(n, self.size)
        mask = self.gas_mask(lc)
        return float(np.dot(n[mask], self.mw[mask]))

    def sum_liquid_mw(self, n: FloatArray, lc: int) -> float:
        check_species_vector(n, self.size)
        mask = self.liquid_mask(lc)
        return float(np.dot(n[mask], self.mw[mask]))

    def sum_classes(self, n: FloatArray) -> Tuple[float, float, float]:
        """Moles per class (paraffins, olefins, diolefins) over all chain lengths."""
        check_species_vector(n, self.size)
        return tuple(float(np.sum(n[self.blocks[name]])) for name in CLASS_NAMES)  # type: ignore[return-value]

    def sum_classes_mw(self, n: FloatArray) -> Tuple[float, float, float]:
        """Mass per class (paraffins, olefins, diolefins) over all chain lengths [g]."""
        check_species_vector(n, self.size)
        return tuple(  # type: ignore[return-value]
            float(np.dot(n[self.blocks[name]], self.mw[self.blocks[name]])) for name in CLASS_NAMES
        )


def build_molecular_weights(
    n_units: int,
    n_extra: int,
    *,
    mw_unit: float,
    mw_h2: float,
    extra_mw,
) -> np.ndarray:
    """Paraffin CnH2n+2, olefin CnH2n, diolefin CnH2n-2 by carbon number; auxiliary from config."""
    cl = np.arange(1, n_units + 1, dtype=np.float64)
    paraffins = cl * mw_unit + mw_h2
    olefins = cl * mw_unit
    diolefins = np.maximum(cl * mw_unit - mw_h2, mw_unit)
    if np.isscalar(extra_mw):
        extra = np.full(n_extra, float(extra_mw), dtype=np.float64)
    else:
        extra = np.asarray(extra_mw, dtype=np.float64)
    return np.concatenate([paraffins, olefins, diolefins, extra])


def build_layout(cfg: CaseConfig) -> SpeciesLayout:
    """Build SpeciesLayout from the species block of the case config."""
    sp = cfg.species
    mw = build_molecular_weights(
        int(sp.max_chain_length),
        int(sp.n_extra_species),
        mw_unit=float(sp.mw_unit),
        mw_h2=float(sp.mw_h2),
        extra_mw=sp.extra_mw,
    )
    return SpeciesLayout(n_units=int(sp.max_chain_length), n_extra=int(sp.n_extra_species), mw=mw)
