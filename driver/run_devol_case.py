"""
Driver to run one polymer devolatilization case.

Responsibilities:
- Load CaseConfig from YAML.
- Build program / layout / density / kinetics / initial melt.
- Open both distribution streams before the first step; close them on every exit path.
- Integrate with one report per accepted step; stop early on checked failures.
- Write summary.json into the run directory.
"""

from __future__ import annotations

import argparse
import logging
import math
import shutil
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import yaml

from core.layout import build_layout
from core.logging_utils import attach_file_handler, detach_file_handler, get_log_level_from_env, setup_logging
from core.types import (
    CaseBoundary,
    CaseChecks,
    CaseConfig,
    CaseInitial,
    CaseKinetics,
    CaseLiquid,
    CaseMeta,
    CasePaths,
    CaseProgram,
    CaseSpecies,
    CaseTime,
    DevolatilizationError,
)
from kinetics.factory import build_kinetics
from outputs.writers import GasDistributionWriter, OutputStreamError, write_run_summary
from physics.boundary import BoundaryMonitor
from physics.initial import build_initial_moles
from physics.state_transform import StateTransform
from physics.step_reporter import StepReporter
from physics.tga_program import build_program
from properties.liquid import build_liquid_density_model
from solvers.integrator import integrate_with_reporting

logger = logging.getLogger(__name__)

# Raised by the YAML loader and the model builders for a bad case file.
_CONFIG_ERRORS = (KeyError, TypeError, ValueError, OSError, ImportError, yaml.YAMLError)


# -----------------------------------------------------------------------------
# YAML loader
# -----------------------------------------------------------------------------
def _resolve_path(base: Path, value: str | Path) -> Path:
    """Resolve a possibly relative path against base."""
    path = Path(value)
    return path if path.is_absolute() else (base / path).resolve()


def _read_yaml_text(cfg_file: Path) -> str:
    try:
        return cfg_file.read_text(encoding="utf-8-sig")
    except UnicodeDecodeError:
        return cfg_file.read_text()


def _opt_float(value) -> Optional[float]:
    return None if value is None else float(value)


def _load_case_config(cfg_path: str | Path) -> CaseConfig:
    """Load YAML file into CaseConfig with nested dataclasses."""
    cfg_file = Path(cfg_path).expanduser().resolve()
    raw = yaml.safe_load(_read_yaml_text(cfg_file)) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Case file {cfg_file} must contain a mapping at top level.")
    base = cfg_file.parent

    case_raw = raw.get("case", {}) or {}
    case_cfg = CaseMeta(
        id=str(case_raw.get("id", cfg_file.stem)),
        title=str(case_raw.get("title", "")),
        notes=case_raw.get("notes", None),
    )

    paths_raw = raw.get("paths", {}) or {}
    output_root = _resolve_path(base, paths_raw.get("output_root", "out"))
    paths_cfg = CasePaths(output_root=output_root, case_dir=output_root / case_cfg.id)

    species_raw = raw["species"]
    species_cfg = CaseSpecies(
        max_chain_length=int(species_raw["max_chain_length"]),
        n_extra_species=int(species_raw.get("n_extra_species", 34)),
        mw_unit=float(species_raw.get("mw_unit", 14.027)),
        mw_h2=float(species_raw.get("mw_h2", 2.016)),
        extra_mw=species_raw.get("extra_mw", 14.027),
    )

    liquid_raw = raw.get("liquid", {}) or {}
    liquid_cfg = CaseLiquid(
        rho_ref=float(liquid_raw.get("rho_ref", 750.0)),
        T_ref=float(liquid_raw.get("T_ref", 600.0)),
        drho_dT=float(liquid_raw.get("drho_dT", -0.55)),
    )

    prog_raw = raw["program"]
    table_file = prog_raw.get("table_file", None)
    program_cfg = CaseProgram(
        initial_mass=float(prog_raw["initial_mass"]),
        kind=str(prog_raw.get("kind", "ramp")),
        T0=float(prog_raw.get("T0", 573.15)),
        heating_rate=float(prog_raw.get("heating_rate", 10.0 / 60.0)),
        T_max=_opt_float(prog_raw.get("T_max", None)),
        P=float(prog_raw.get("P", 101325.0)),
        table_file=_resolve_path(base, table_file) if table_file else None,
        tb_w0=float(prog_raw.get("tb_w0", 67.328)),
        tb_w1=float(prog_raw.get("tb_w1", 1191.8)),
        tb_w2=float(prog_raw.get("tb_w2", 0.90918)),
        tb_w3=float(prog_raw.get("tb_w3", 20.941)),
    )

    init_raw = raw.get("initial", {}) or {}
    init_cfg = CaseInitial(
        distribution=str(init_raw.get("distribution", "most_probable")),
        mean_chain_length=float(init_raw.get("mean_chain_length", 40.0)),
    )

    kin_raw = raw.get("kinetics", {}) or {}
    kin_cfg = CaseKinetics(
        factory=str(kin_raw.get("factory", "kinetics.fixed:build_fixed_rate_kinetics")),
        params=dict(kin_raw.get("params", {}) or {}),
    )

    time_raw = raw["time"]
    max_steps = time_raw.get("max_steps", None)
    time_cfg = CaseTime(
        t0=float(time_raw.get("t0", 0.0)),
        t_end=float(time_raw["t_end"]),
        method=str(time_raw.get("method", "BDF")),
        rtol=float(time_raw.get("rtol", 1.0e-6)),
        atol=float(time_raw.get("atol", 1.0e-12)),
        first_step=_opt_float(time_raw.get("first_step", None)),
        max_step=float(time_raw.get("max_step", math.inf)),
        max_steps=None if max_steps is None else int(max_steps),
    )

    boundary_raw = raw.get("boundary", {}) or {}
    boundary_cfg = CaseBoundary(policy=str(boundary_raw.get("policy", "monotonic")))

    checks_raw = raw.get("checks", {}) or {}
    checks_cfg = CaseChecks(
        min_liquid_volume_m3=float(checks_raw.get("min_liquid_volume_m3", 1.0e-15)),
        mass_tol_rel=float(checks_raw.get("mass_tol_rel", 1.0e-6)),
    )

    return CaseConfig(
        case=case_cfg,
        paths=paths_cfg,
        species=species_cfg,
        program=program_cfg,
        time=time_cfg,
        liquid=liquid_cfg,
        initial=init_cfg,
        kinetics=kin_cfg,
        boundary=boundary_cfg,
        checks=checks_cfg,
    )


def _prepare_run_dir(cfg: CaseConfig, cfg_path: str | Path, out_override: Optional[Path] = None) -> Path:
    """Create per-run output directory and copy cfg yaml into it."""
    if out_override is not None:
        run_dir = Path(out_override)
    else:
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        run_dir = Path(cfg.paths.output_root) / cfg.case.id / stamp
    run_dir.mkdir(parents=True, exist_ok=True)

    cfg.paths.case_dir = run_dir

    try:
        shutil.copy2(cfg_path, run_dir / "config.yaml")
    except OSError as exc:  # pragma: no cover - best-effort copy
        logger.warning("Failed to copy cfg to run dir: %s", exc)
    return run_dir


# -----------------------------------------------------------------------------
# Main driver
# -----------------------------------------------------------------------------
def run_case(
    cfg_path: str | Path,
    *,
    dry_run: bool = False,
    max_steps: Optional[int] = None,
    out_dir: Optional[str | Path] = None,
    log_level: int | str = logging.INFO,
) -> int:
    """Run one devolatilization case. Return 0 on success, 2 on checked failure, 99 otherwise."""
    level = get_log_level_from_env(default=log_level)
    setup_logging(level=level)
    file_handler = None
    writer: Optional[GasDistributionWriter] = None
    summary: Dict[str, Any] = {"exit_reason": "not_started"}
    run_dir: Optional[Path] = None
    try:
        try:
            cfg = _load_case_config(cfg_path)
        except _CONFIG_ERRORS as exc:
            logger.error("Invalid case file %s: %s", cfg_path, exc)
            return 2

        logger.info("Case: %s (%s)", cfg.case.id, cfg_path)
        run_dir = _prepare_run_dir(cfg, cfg_path, Path(out_dir) if out_dir is not None else None)
        logger.info("Run directory: %s", run_dir)
        file_handler = attach_file_handler(run_dir / "run.log", level=level)

        try:
            program = build_program(cfg)
            layout = build_layout(cfg)
            density = build_liquid_density_model(cfg)

            T_start = program.temperature(cfg.time.t0)
            lc0 = program.boundary_for_temperature(T_start)
            logger.info(
                "N=%d species=%d T(t0)=%.3f K LC0=%d (Tb(LC0-1)=%.3f K) W=%.6e g",
                layout.n_units,
                layout.size,
                T_start,
                lc0,
                program.boiling_temperature(lc0 - 1),
                program.initial_mass,
            )

            kinetics = build_kinetics(cfg.kinetics.factory, layout, density, lc0, cfg.kinetics.params)
            n0 = build_initial_moles(cfg, layout, program.initial_mass, lc0)
        except _CONFIG_ERRORS as exc:
            logger.error("Cannot build models for case %s: %s", cfg.case.id, exc)
            summary = {"exit_reason": "config_error", "message": str(exc)}
            return 2

        rhs = StateTransform(kinetics, program, min_liquid_volume=cfg.checks.min_liquid_volume_m3)
        monitor = BoundaryMonitor(program, policy=cfg.boundary.policy)

        if dry_run:
            rhs(cfg.time.t0, n0)
            logger.info("Dry run requested: config and models built; skipping time loop.")
            summary = {"exit_reason": "dry_run", "LC0": lc0}
            return 0

        try:
            writer = GasDistributionWriter(run_dir).open()
        except OutputStreamError as exc:
            logger.error("%s", exc)
            summary = {"exit_reason": "output_open_failed"}
            return 2

        reporter = StepReporter(kinetics, program, writer, monitor, mass_tol_rel=cfg.checks.mass_tol_rel)

        try:
            result = integrate_with_reporting(
                rhs,
                reporter,
                n0,
                cfg.time,
                boundary_version=lambda: kinetics.boundary.version,
                max_steps=max_steps,
            )
        except DevolatilizationError as exc:
            logger.error("Run aborted at step %d: %s", reporter.step, exc)
            summary = _build_summary(reporter, rhs, kinetics, exit_reason=type(exc).__name__, message=str(exc))
            return 2

        summary = _build_summary(
            reporter,
            rhs,
            kinetics,
            exit_reason="completed" if result.success else "integration_failed",
            message=result.message,
            t_final=result.t,
            n_restarts=result.diag.n_restarts,
        )
        if not result.success:
            logger.error("Integration failed: %s", result.message)
            return 2
        logger.info(
            "Completed run: t=%.6e after %d steps, LC=%d, %d boundary transitions, %d RHS evaluations.",
            result.t,
            reporter.step,
            kinetics.min_number_of_units,
            len(reporter.transitions),
            rhs.n_evaluations,
        )
        return 0
    except Exception:
        tb = traceback.format_exc()
        logger.error("Unhandled exception:\n%s", tb)
        summary = {"exit_reason": "unhandled_exception"}
        return 99
    finally:
        if writer is not None:
            writer.close()
        if run_dir is not None:
            try:
                write_run_summary(run_dir, summary)
            except OSError as exc:
                logger.warning("Failed to write run summary: %s", exc)
        detach_file_handler(file_handler)


def _build_summary(reporter: StepReporter, rhs: StateTransform, kinetics, **extra) -> Dict[str, Any]:
    last = reporter.last_summary
    out: Dict[str, Any] = {
        "steps": reporter.step,
        "rhs_evaluations": rhs.n_evaluations,
        "LC_final": kinetics.min_number_of_units,
        "boundary_version": kinetics.boundary.version,
        "rows_written": reporter.writer.n_rows,
        "rows_missed": dict(reporter.writer.missed_rows),
        "transitions": [
            {"t": tr.t, "T": tr.T, "LC_old": tr.lc_old, "LC_new": tr.lc_new, "Tb_old": tr.Tb_old, "Tb_new": tr.Tb_new}
            for tr in reporter.transitions
        ],
    }
    if last is not None:
        out["last_step"] = last.as_dict()
    out.update(extra)
    return out


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a polymer devolatilization case.")
    parser.add_argument("case_yaml", help="Path to case YAML file.")
    parser.add_argument(
        "--dry_run",
        action="store_true",
        help="Load config, build models and evaluate dn/dt once; skip time stepping.",
    )
    parser.add_argument(
        "--max_steps",
        type=int,
        default=None,
        help="Override time.max_steps (default: use YAML).",
    )
    parser.add_argument(
        "--out",
        default=None,
        help="Write outputs to this directory instead of <output_root>/<case_id>/<timestamp>.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    return run_case(args.case_yaml, dry_run=args.dry_run, max_steps=args.max_steps, out_dir=args.out)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
