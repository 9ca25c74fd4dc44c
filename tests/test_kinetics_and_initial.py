"""
Kinetics plug-in resolution, fixed-rate model and the initial melt.
"""

from __future__ import annotations

import numpy as np
import pytest

import kinetics.fixed
from core.layout import SpeciesLayout, build_molecular_weights
from core.types import (
    CaseConfig,
    CaseInitial,
    CaseMeta,
    CasePaths,
    CaseProgram,
    CaseSpecies,
    CaseTime,
)
from kinetics.base import KineticsModel, SpeciesKineticsBase
from kinetics.factory import build_kinetics, load_factory
from kinetics.fixed import FixedRateKinetics, build_fixed_rate_kinetics
from physics.initial import build_initial_moles, most_probable_weights
from properties.liquid import LiquidDensityModel


def _make_layout(n_units: int = 30, n_extra: int = 4) -> SpeciesLayout:
    mw = build_molecular_weights(n_units, n_extra, mw_unit=14.027, mw_h2=2.016, extra_mw=14.027)
    return SpeciesLayout(n_units=n_units, n_extra=n_extra, mw=mw)


def _make_density() -> LiquidDensityModel:
    return LiquidDensityModel(rho_ref=750.0, T_ref=600.0, drho_dT=-0.55)


def _make_cfg(tmp_path, n_units: int = 30, mean_chain_length: float = 15.0) -> CaseConfig:
    return CaseConfig(
        case=CaseMeta(id="unit"),
        paths=CasePaths(output_root=tmp_path, case_dir=tmp_path / "unit"),
        species=CaseSpecies(max_chain_length=n_units, n_extra_species=4),
        program=CaseProgram(initial_mass=10.0),
        time=CaseTime(t0=0.0, t_end=1.0),
        initial=CaseInitial(mean_chain_length=mean_chain_length),
    )


# ============================================================================
# Factory
# ============================================================================


def test_default_factory_builds_fixed_model():
    model = build_kinetics("kinetics.fixed:build_fixed_rate_kinetics", _make_layout(), _make_density(), 11, {})
    assert isinstance(model, FixedRateKinetics)
    assert isinstance(model, KineticsModel)
    assert model.min_number_of_units == 11
    assert model.max_number_of_units == 30


def test_factory_params_forwarded():
    model = build_kinetics(
        "kinetics.fixed:build_fixed_rate_kinetics", _make_layout(), _make_density(), 11, {"uniform_rate": -2.0e-4}
    )
    assert np.all(model.fixed_rates == -2.0e-4)


def test_load_factory_errors():
    with pytest.raises(ValueError, match="module:callable"):
        load_factory("kinetics.fixed")
    with pytest.raises(ImportError):
        load_factory("kinetics.nonexistent_mechanism:build")
    with pytest.raises(ImportError, match="no callable"):
        load_factory("kinetics.fixed:does_not_exist")


def test_factory_must_return_kinetics_model(monkeypatch):
    monkeypatch.setattr(kinetics.fixed, "build_fixed_rate_kinetics", lambda *args, **kwargs: object())
    with pytest.raises(TypeError, match="not a KineticsModel"):
        build_kinetics("kinetics.fixed:build_fixed_rate_kinetics", _make_layout(), _make_density(), 11)


# ============================================================================
# Fixed-rate model and shared base
# ============================================================================


def test_fixed_rates_validation():
    layout = _make_layout()
    with pytest.raises(ValueError, match="rates shape"):
        FixedRateKinetics(layout, _make_density(), 11, rates=np.zeros(3))
    with pytest.raises(ValueError, match="either"):
        build_fixed_rate_kinetics(layout, _make_density(), 11, rates=np.zeros(layout.size), uniform_rate=1.0)


def test_rates_vector_is_a_copy():
    layout = _make_layout()
    model = FixedRateKinetics(layout, _make_density(), 11, rates=np.ones(layout.size))
    model.formation_rates()
    model.R[0] = 99.0
    model.formation_rates()
    assert model.R[0] == 1.0


def test_set_min_number_of_units_versions():
    model = FixedRateKinetics(_make_layout(), _make_density(), 11)
    b1 = model.set_min_number_of_units(12, 3.0)
    b2 = model.set_min_number_of_units(13, 4.0)
    assert (b1.lc, b1.version, b1.t_committed) == (12, 1, 3.0)
    assert (b2.lc, b2.version) == (13, 2)
    assert model.boundary is b2
    with pytest.raises(ValueError, match="outside"):
        model.set_min_number_of_units(31)


def test_base_requires_mechanism():
    base = SpeciesKineticsBase(_make_layout(), _make_density(), 11)
    with pytest.raises(NotImplementedError):
        base.kinetic_constants()
    with pytest.raises(NotImplementedError):
        base.formation_rates()


def test_aggregation_defaults_to_committed_boundary():
    layout = _make_layout()
    model = FixedRateKinetics(layout, _make_density(), 11)
    n = np.ones(layout.size)
    assert model.sum_gas(n) == layout.sum_gas(n, 11)
    assert model.sum_gas(n, 14) == layout.sum_gas(n, 14)


# ============================================================================
# Initial melt
# ============================================================================


def test_most_probable_weights():
    w = most_probable_weights(30, 10.0, 1)
    p = 0.9
    assert w[0] == pytest.approx(0.1)
    assert w[4] == pytest.approx(0.1 * p**4)
    w_cut = most_probable_weights(30, 10.0, 11)
    assert np.all(w_cut[:10] == 0.0)
    np.testing.assert_allclose(w_cut[10:], w[10:])
    with pytest.raises(ValueError, match="exceed 1"):
        most_probable_weights(30, 1.0, 1)


def test_initial_moles_are_liquid_paraffins_with_mass_w(tmp_path):
    cfg = _make_cfg(tmp_path)
    layout = _make_layout()
    n0 = build_initial_moles(cfg, layout, 10.0, 11)

    assert float(np.dot(n0, layout.mw)) == pytest.approx(10.0)
    assert layout.sum_gas(n0, 11) == 0.0
    assert np.all(n0[layout.blocks["olefins"]] == 0.0)
    assert np.all(n0[layout.blocks["diolefins"]] == 0.0)
    assert np.all(n0[layout.blocks["extra"]] == 0.0)
    assert np.all(n0[10:30] > 0.0)


def test_mean_chain_length_must_fit_layout(tmp_path):
    with pytest.raises(ValueError, match="mean_chain_length"):
        _make_cfg(tmp_path, n_units=30, mean_chain_length=40.0)
