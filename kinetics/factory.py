"""
Resolve the kinetics plug-in named in the case YAML ('package.module:callable').
"""

from __future__ import annotations

import importlib
import logging
from typing import Any, Callable, Mapping

from core.layout import SpeciesLayout
from kinetics.base import KineticsModel
from properties.liquid import LiquidDensityModel

logger = logging.getLogger(__name__)


def load_factory(target: str) -> Callable[..., Any]:
    """Import ``module:callable`` and return the callable."""
    module_name, _, attr = str(target).partition(":")
    if not module_name or not attr:
        raise ValueError(f"Kinetics factory must look like 'module:callable', got {target!r}")
    module = importlib.import_module(module_name)
    factory = getattr(module, attr, None)
    if factory is None or not callable(factory):
        raise ImportError(f"{module_name!r} has no callable {attr!r}")
    return factory


def build_kinetics(
    target: str,
    layout: SpeciesLayout,
    density_model: LiquidDensityModel,
    lc0: int,
    params: Mapping[str, Any] | None = None,
) -> KineticsModel:
    """Build the run's single kinetics instance."""
    factory = load_factory(target)
    model = factory(layout, density_model, lc0, **dict(params or {}))
    if not isinstance(model, KineticsModel):
        raise TypeError(f"Kinetics factory {target!r} returned {type(model).__name__}, not a KineticsModel")
    logger.info("Kinetics model %s built via %s (LC0=%d).", type(model).__name__, target, lc0)
    return model
