"""
Step-by-step stiff integration with one report per accepted step.

Current scope:
- Wraps scipy.integrate OdeSolver classes (BDF / LSODA / Radau) and drives them with step().
- After every accepted step: evaluate dn/dt at the accepted point and call the reporter.
- A boundary commit inside the reporter changes the ODE structure; the solver is then
  rebuilt from the accepted (t, n) so no Jacobian/history from the old structure is reused.
- Exceptions raised by the right-hand side (e.g. LiquidVolumeError) propagate to the caller.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import numpy as np
from scipy.integrate import BDF, LSODA, Radau

from core.types import CaseTime, DevolatilizationError

logger = logging.getLogger(__name__)

_METHODS = {"BDF": BDF, "LSODA": LSODA, "Radau": Radau}


class IntegrationError(DevolatilizationError):
    """The integrator could not complete the run."""


@dataclass(slots=True)
class IntegrationDiagnostics:
    """Counters for one integration run."""

    n_steps: int = 0
    n_restarts: int = 0
    n_rhs_reported: int = 0
    t_final: float = float("nan")
    status: str = "running"
    message: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class IntegrationResult:
    """Final accepted state and diagnostics."""

    t: float
    y: np.ndarray
    success: bool
    diag: IntegrationDiagnostics
    message: Optional[str] = None


def _build_solver(method: str, rhs: Callable, t0: float, y0: np.ndarray, t_end: float, time_cfg: CaseTime):
    cls = _METHODS.get(method)
    if cls is None:
        raise IntegrationError(f"Unknown integration method {method!r}; expected one of {sorted(_METHODS)}")
    kwargs: Dict[str, Any] = {
        "rtol": float(time_cfg.rtol),
        "atol": float(time_cfg.atol),
        "max_step": float(time_cfg.max_step),
    }
    if time_cfg.first_step is not None:
        kwargs["first_step"] = min(float(time_cfg.first_step), float(t_end) - float(t0))
    return cls(rhs, float(t0), np.array(y0, dtype=np.float64, copy=True), float(t_end), **kwargs)


def integrate_with_reporting(
    rhs: Callable[[float, np.ndarray], np.ndarray],
    reporter: Callable[[float, np.ndarray, np.ndarray], None],
    y0: np.ndarray,
    time_cfg: CaseTime,
    *,
    boundary_version: Callable[[], int],
    max_steps: Optional[int] = None,
) -> IntegrationResult:
    """
    Integrate from time_cfg.t0 to time_cfg.t_end, reporting each accepted step.

    ``boundary_version`` returns the committed boundary version; a change across a
    report triggers a solver restart.
    """
    t_end = float(time_cfg.t_end)
    method = str(time_cfg.method)
    step_cap = max_steps if max_steps is not None else time_cfg.max_steps
    diag = IntegrationDiagnostics()

    solver = _build_solver(method, rhs, time_cfg.t0, y0, t_end, time_cfg)
    t = float(time_cfg.t0)
    y = np.array(y0, dtype=np.float64, copy=True)

    while True:
        if step_cap is not None and diag.n_steps >= int(step_cap):
            diag.status = "failed"
            diag.message = f"Reached max_steps={step_cap} before t_end={t_end:.6e} (t={t:.6e})"
            diag.t_final = t
            return IntegrationResult(t=t, y=y, success=False, diag=diag, message=diag.message)

        msg = solver.step()
        if solver.status == "failed":
            diag.status = "failed"
            diag.message = f"{method} step failed at t={solver.t:.6e}: {msg}"
            diag.t_final = t
            logger.error(diag.message)
            return IntegrationResult(t=t, y=y, success=False, diag=diag, message=diag.message)

        t = float(solver.t)
        y = np.array(solver.y, dtype=np.float64, copy=True)
        diag.n_steps += 1

        dy = rhs(t, y)
        diag.n_rhs_reported += 1

        version_before = boundary_version()
        reporter(t, y, dy)
        changed = boundary_version() != version_before

        if solver.status == "finished" or t >= t_end or math.isclose(t, t_end, rel_tol=0.0, abs_tol=1e-12 * max(1.0, abs(t_end))):
            break

        if changed:
            diag.n_restarts += 1
            logger.debug("Boundary changed at t=%.6e; restarting %s from the accepted state.", t, method)
            solver = _build_solver(method, rhs, t, y, t_end, time_cfg)

    diag.status = "finished"
    diag.t_final = t
    diag.extra["nfev_last_solver"] = int(getattr(solver, "nfev", 0))
    return IntegrationResult(t=t, y=y, success=True, diag=diag)
