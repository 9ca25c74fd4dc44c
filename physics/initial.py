from __future__ import annotations

import logging

import numpy as np

from core.layout import SpeciesLayout
from core.types import CaseConfig

logger = logging.getLogger(__name__)


def most_probable_weights(n_units: int, mean_chain_length: float, lc0: int) -> np.ndarray:
    """
    Number fractions p**(i-1) * (1 - p) of the most probable distribution, p = 1 - 1/mu,
    restricted to chain lengths i >= lc0 (shorter chains start outside the melt).
    """
    mu = float(mean_chain_length)
    if mu <= 1.0:
        raise ValueError(f"mean chain length must exceed 1, got {mu}")
    p = 1.0 - 1.0 / mu
    i = np.arange(1, n_units + 1, dtype=np.float64)
    w = (1.0 - p) * p ** (i - 1.0)
    w[i < lc0] = 0.0
    return w


def build_initial_moles(cfg: CaseConfig, layout: SpeciesLayout, initial_mass: float, lc0: int) -> np.ndarray:
    """
    Build the initial mole vector: liquid paraffins only, scaled so the melt mass equals W.
    """
    w = most_probable_weights(layout.n_units, cfg.initial.mean_chain_length, lc0)
    n = np.zeros(layout.size, dtype=np.float64)
    par = layout.blocks["paraffins"]
    mass_per_unit = float(np.dot(w, layout.mw[par]))
    if mass_per_unit <= 0.0:
        raise ValueError(f"Initial distribution is empty for LC0={lc0} and N={layout.n_units}")
    n[par] = w * (float(initial_mass) / mass_per_unit)
    logger.info(
        "Initial melt: %.6e mol paraffins, %.6e g, number-average chain length %.2f (LC0=%d).",
        float(np.sum(n[par])),
        float(np.dot(n[par], layout.mw[par])),
        float(np.dot(np.arange(1, layout.n_units + 1), n[par]) / np.sum(n[par])),
        lc0,
    )
    return n
