"""
Liquid/gas boundary monitor.

check() is pure: it compares the committed LC with the program's lookup at the
current temperature and returns the transition to apply (or None). apply() is
the only path that mutates the kinetics boundary and is called by the step
reporter once per accepted step, never from trial evaluations.

Policies:
- "monotonic": lookups below the committed LC are ignored (LC never regresses)
- "follow": every change of the lookup is committed
"""

from __future__ import annotations

import logging
from typing import Optional

from core.types import BoundaryTransition
from kinetics.base import KineticsModel
from physics.tga_program import ThermogravimetricProgram

logger = logging.getLogger(__name__)

POLICIES = ("monotonic", "follow")
_RULE = "-----------------------------------------------------"


def format_transition_banner(transition: BoundaryTransition) -> str:
    return "\n".join(
        [
            "",
            _RULE,
            " New boiling temperature (in K)",
            _RULE,
            f"  * {transition.Tb_old:g} -> {transition.Tb_new:g}",
            _RULE,
        ]
    )


class BoundaryMonitor:
    def __init__(self, program: ThermogravimetricProgram, *, policy: str = "monotonic") -> None:
        if policy not in POLICIES:
            raise ValueError(f"Unknown boundary policy {policy!r}; expected one of {POLICIES}")
        self.program = program
        self.policy = policy
        self._ignored_lookups: set[int] = set()

    def check(self, t: float, T: float, lc_current: int) -> Optional[BoundaryTransition]:
        lc_new = int(self.program.boundary_for_temperature(T))
        lc_current = int(lc_current)
        if lc_new == lc_current:
            return None
        if lc_new < lc_current and self.policy == "monotonic":
            if lc_new not in self._ignored_lookups:
                self._ignored_lookups.add(lc_new)
                logger.debug(
                    "Boundary lookup LC=%d below committed LC=%d at t=%.6e T=%.3f; not regressing (policy=monotonic).",
                    lc_new,
                    lc_current,
                    t,
                    T,
                )
            return None
        return BoundaryTransition(
            t=float(t),
            T=float(T),
            lc_old=lc_current,
            lc_new=lc_new,
            Tb_old=self.program.boiling_temperature(lc_current - 1),
            Tb_new=self.program.boiling_temperature(lc_new - 1),
        )

    def apply(self, kinetics: KineticsModel, t: float, T: float) -> Optional[BoundaryTransition]:
        """Check, announce and commit a boundary change on the kinetics model."""
        transition = self.check(t, T, kinetics.min_number_of_units)
        if transition is None:
            return None
        logger.info(format_transition_banner(transition))
        boundary = kinetics.set_min_number_of_units(transition.lc_new, t)
        logger.info(
            "LC %d -> %d at t=%.6e s, T=%.3f K (boundary version %d).",
            transition.lc_old,
            transition.lc_new,
            t,
            T,
            boundary.version,
        )
        return transition
