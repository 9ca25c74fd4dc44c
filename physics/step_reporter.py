"""
Accepted-step reporting and boundary advancement.

Called once per accepted integration step, in time order:
1. increment the step counter
2. re-derive phase aggregates, liquid residual and class fractions (summarize_step)
3. console line (logging, INFO)
4. one row to each output stream
5. boundary check/commit through BoundaryMonitor.apply

Stream write errors are logged and do not stop the run; the simulation state
does not depend on the report.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Tuple

import numpy as np

from core.types import BoundaryTransition, FloatArray, StepSummary
from kinetics.base import KineticsModel
from outputs.writers import GasDistributionWriter
from physics.boundary import BoundaryMonitor
from physics.state_transform import compute_phase_aggregates
from physics.tga_program import ThermogravimetricProgram

logger = logging.getLogger(__name__)


def _fractions(totals: Tuple[float, float, float]) -> Tuple[float, float, float]:
    total = float(sum(totals))
    if total <= 0.0 or not math.isfinite(total):
        return (math.nan, math.nan, math.nan)
    return tuple(float(x) / total for x in totals)  # type: ignore[return-value]


def summarize_step(
    kinetics: KineticsModel,
    program: ThermogravimetricProgram,
    t: float,
    n: FloatArray,
    step: int,
) -> StepSummary:
    """Physical quantities of one accepted state at the committed boundary."""
    n = np.asarray(n, dtype=np.float64)
    T = program.temperature(t)
    P = program.pressure(t)
    W = program.initial_mass
    lc = int(kinetics.min_number_of_units)

    phases = compute_phase_aggregates(kinetics, n, T, lc)
    mole_fractions = _fractions(kinetics.sum_classes(n))
    mass_fractions = _fractions(kinetics.sum_classes_mw(n))
    if math.isnan(mass_fractions[0]):
        logger.warning("Zero paraffin+olefin+diolefin total at step %d (t=%.6e); fractions written as NaN.", step, t)

    return StepSummary(
        step=int(step),
        t=float(t),
        T=T,
        P=P,
        lc=lc,
        res_liq=phases.m_liq / W,
        phases=phases,
        mass_fractions=mass_fractions,
        mole_fractions=mole_fractions,
    )


def log_step(summary: StepSummary) -> None:
    """Emit one-line step summary."""
    ph = summary.phases
    logger.info(
        "step=%d t=%.6e T=%.3f LC=%d res_liq=%.6e m_liq=%.6e m_gas=%.6e m_tot=%.6e",
        summary.step,
        summary.t,
        summary.T,
        summary.lc,
        summary.res_liq,
        ph.m_liq,
        ph.m_gas,
        ph.m_tot,
    )


class StepReporter:
    def __init__(
        self,
        kinetics: KineticsModel,
        program: ThermogravimetricProgram,
        writer: GasDistributionWriter,
        monitor: BoundaryMonitor,
        *,
        mass_tol_rel: float = 1.0e-6,
    ) -> None:
        self.kinetics = kinetics
        self.program = program
        self.writer = writer
        self.monitor = monitor
        self.mass_tol_rel = float(mass_tol_rel)
        self.step = 0
        self.transitions: List[BoundaryTransition] = []
        self.last_summary: Optional[StepSummary] = None
        self._m_tot_prev: Optional[float] = None

    def _check_mass(self, summary: StepSummary) -> None:
        m_tot = summary.phases.m_tot
        if self._m_tot_prev is not None:
            slack = self.mass_tol_rel * self.program.initial_mass
            if m_tot > self._m_tot_prev + slack:
                logger.warning(
                    "Tracked mass increased at step %d: %.9e g -> %.9e g (tol %.3e g).",
                    summary.step,
                    self._m_tot_prev,
                    m_tot,
                    slack,
                )
        self._m_tot_prev = m_tot

    def __call__(self, t: float, n: FloatArray, dn_dt: Optional[FloatArray] = None) -> None:
        self.report(t, n, dn_dt)

    def report(self, t: float, n: FloatArray, dn_dt: Optional[FloatArray] = None) -> None:
        self.step += 1
        summary = summarize_step(self.kinetics, self.program, t, n, self.step)
        self.last_summary = summary

        log_step(summary)
        self._check_mass(summary)

        try:
            self.writer.write(summary)
        except OSError as exc:
            logger.warning("Failed to write distribution rows at step %d: %s", self.step, exc)

        transition = self.monitor.apply(self.kinetics, t, summary.T)
        if transition is not None:
            self.transitions.append(transition)
