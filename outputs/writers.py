"""
Output helpers:
- GasDistributionWriter: the two fixed-width time-series streams
  (GasDistributionMass.out, GasDistributionMoles.out), one row per accepted step.
- format_mass_row / format_mole_row: stateless row formatting.
- write_run_summary: atomic JSON summary at the end of a run.

Row format: step column 7 wide, all others 16 wide, left-justified; floats in
scientific notation with 6 digits after the point; LC as an integer.
"""

from __future__ import annotations

import json
import logging
import math
import os
from pathlib import Path
from typing import Any, Mapping, Optional, TextIO, Tuple

from core.types import DevolatilizationError, StepSummary

logger = logging.getLogger(__name__)

MASS_FILENAME = "GasDistributionMass.out"
MOLE_FILENAME = "GasDistributionMoles.out"

STEP_WIDTH = 7
COL_WIDTH = 16

MASS_COLUMNS: Tuple[str, ...] = (
    "#(1)",
    "time[s](2)",
    "T[K](3)",
    "LC[-](4)",
    "res_liq(5)",
    "mass_liq[g](6)",
    "mass_gas[g](7)",
    "mass_tot[g](8)",
    "P_w(9)",
    "O_w(10)",
    "D_w(11)",
)

MOLE_COLUMNS: Tuple[str, ...] = (
    "#(1)",
    "time[s](2)",
    "T[K](3)",
    "LC[-](4)",
    "res_liq(5)",
    "mol_liq[mol](6)",
    "mol_gas[mol](7)",
    "mol_tot[mol](8)",
    "P_x(9)",
    "O_x(10)",
    "D_x(11)",
)


class OutputStreamError(DevolatilizationError):
    """Output stream could not be opened, or was used outside its open/close window."""


def _fmt_float(value: float) -> str:
    return f"{float(value):<{COL_WIDTH}.6e}"


def _fmt_int(value: int, width: int = COL_WIDTH) -> str:
    return f"{int(value):<{width}d}"


def format_header(columns: Tuple[str, ...]) -> str:
    head, *rest = columns
    return f"{head:<{STEP_WIDTH}}" + "".join(f"{c:<{COL_WIDTH}}" for c in rest)


def _format_row(summary: StepSummary, liq: float, gas: float, fractions: Tuple[float, float, float]) -> str:
    parts = [
        _fmt_int(summary.step, STEP_WIDTH),
        _fmt_float(summary.t),
        _fmt_float(summary.T),
        _fmt_int(summary.lc),
        _fmt_float(summary.res_liq),
        _fmt_float(liq),
        _fmt_float(gas),
        _fmt_float(liq + gas),
    ]
    parts.extend(_fmt_float(x) for x in fractions)
    return "".join(parts)


def format_mass_row(summary: StepSummary) -> str:
    ph = summary.phases
    return _format_row(summary, ph.m_liq, ph.m_gas, summary.mass_fractions)


def format_mole_row(summary: StepSummary) -> str:
    ph = summary.phases
    return _format_row(summary, ph.n_liq, ph.n_gas, summary.mole_fractions)


class GasDistributionWriter:
    """Owns both output streams for one run.

    Use as a context manager (or call open()/close()); open failures raise
    OutputStreamError, close() is idempotent.
    """

    def __init__(self, out_dir: Path | str) -> None:
        self.out_dir = Path(out_dir)
        self.mass_path = self.out_dir / MASS_FILENAME
        self.mole_path = self.out_dir / MOLE_FILENAME
        self._fh_mass: Optional[TextIO] = None
        self._fh_mole: Optional[TextIO] = None
        self._closed = False
        self.n_rows = 0
        # per-stream count of step rows lost to write errors
        self.missed_rows = {MASS_FILENAME: 0, MOLE_FILENAME: 0}

    @property
    def is_open(self) -> bool:
        return self._fh_mass is not None and self._fh_mole is not None

    def open(self) -> "GasDistributionWriter":
        if self.is_open:
            raise OutputStreamError("Output streams already open.")
        if self._closed:
            raise OutputStreamError("Output streams were closed; reopening is not supported.")
        try:
            self.out_dir.mkdir(parents=True, exist_ok=True)
            self._fh_mass = self.mass_path.open("w", encoding="utf-8")
            self._fh_mole = self.mole_path.open("w", encoding="utf-8")
        except OSError as exc:
            self.close()
            raise OutputStreamError(f"Cannot open output streams in {self.out_dir}: {exc}") from exc
        self._fh_mass.write(format_header(MASS_COLUMNS) + "\n")
        self._fh_mole.write(format_header(MOLE_COLUMNS) + "\n")
        self._flush()
        logger.info("Opened %s and %s", self.mass_path, self.mole_path)
        return self

    def _flush(self) -> None:
        for fh in (self._fh_mass, self._fh_mole):
            if fh is not None:
                fh.flush()

    def write(self, summary: StepSummary) -> None:
        if not self.is_open:
            raise OutputStreamError("write() called on output streams that are not open.")
        rows = (
            (MASS_FILENAME, self._fh_mass, format_mass_row(summary)),
            (MOLE_FILENAME, self._fh_mole, format_mole_row(summary)),
        )
        for i, (name, fh, row) in enumerate(rows):
            try:
                fh.write(row + "\n")
                fh.flush()
            except OSError:
                for missed, _, _ in rows[i:]:
                    self.missed_rows[missed] += 1
                logger.error("Step %d row missing from %s.", summary.step, name)
                raise
        self.n_rows += 1

    def close(self) -> None:
        for attr in ("_fh_mass", "_fh_mole"):
            fh = getattr(self, attr)
            if fh is not None:
                try:
                    fh.close()
                finally:
                    setattr(self, attr, None)
        self._closed = True

    def __enter__(self) -> "GasDistributionWriter":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _json_safe(value: Any) -> Any:
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, Mapping):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


def write_run_summary(run_dir: Path, summary: Mapping[str, Any]) -> Path:
    """
    Write summary.json to the run directory.

    Uses atomic write (temp file + rename) to avoid corruption.
    """
    run_dir = Path(run_dir)
    out_path = run_dir / "summary.json"
    tmp_path = run_dir / "summary.json.tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(_json_safe(dict(summary)), f, indent=2)
    os.replace(tmp_path, out_path)
    logger.info("Wrote run summary: %s", out_path)
    return out_path
