"""
Derivative evaluator dn/dt = f(t, n; boundary).

Tests:
1. Hand-computed derivative for a small species vector
2. Concentrations and status handed to the kinetics model
3. Explicit boundary argument is honoured and never committed
4. Collapsed / non-positive liquid volume raises LiquidVolumeError
5. Non-finite formation rates raise NonFiniteDerivativeError
"""

from __future__ import annotations

import numpy as np
import pytest

from core.layout import SpeciesLayout, build_molecular_weights
from kinetics.fixed import FixedRateKinetics
from physics.state_transform import (
    LiquidVolumeError,
    NonFiniteDerivativeError,
    StateTransform,
    compute_phase_aggregates,
)
from physics.tga_program import BoilingCurve, ThermogravimetricProgram
from properties.liquid import LiquidDensityModel

N_UNITS = 20
N_EXTRA = 2
T0 = 450.0  # LC = 11 on the default boiling curve


def _make_program(T0: float = T0, heating_rate: float = 0.0, initial_mass: float = 100.0) -> ThermogravimetricProgram:
    curve = BoilingCurve(n_units=N_UNITS, w0=67.328, w1=1191.8, w2=0.90918, w3=20.941)
    return ThermogravimetricProgram(
        curve=curve, initial_mass=initial_mass, P0=101325.0, T0=T0, heating_rate=heating_rate
    )


def _make_model(rates=None, drho_dT: float = -0.55, program=None):
    program = program or _make_program()
    mw = build_molecular_weights(N_UNITS, N_EXTRA, mw_unit=14.027, mw_h2=2.016, extra_mw=14.027)
    layout = SpeciesLayout(n_units=N_UNITS, n_extra=N_EXTRA, mw=mw)
    density = LiquidDensityModel(rho_ref=750.0, T_ref=600.0, drho_dT=drho_dT)
    lc0 = program.boundary_for_temperature(program.temperature(0.0))
    kinetics = FixedRateKinetics(layout, density, lc0, rates=rates)
    return layout, kinetics, program


def _make_state(layout: SpeciesLayout) -> np.ndarray:
    n = np.zeros(layout.size)
    n[14] = 0.2  # paraffin C15 (liquid)
    n[N_UNITS + 11] = 0.1  # olefin C12 (liquid)
    n[4] = 0.05  # paraffin C5 (gas)
    return n


# ============================================================================
# Derivative
# ============================================================================


def test_hand_computed_derivative():
    layout, kin, program = _make_model(rates=np.linspace(-1.0e-3, 1.0e-3, 3 * N_UNITS + N_EXTRA))
    assert kin.min_number_of_units == 11
    rhs = StateTransform(kin, program)
    n = _make_state(layout)

    dn = rhs(0.0, n)

    m_liq = 0.2 * (15 * 14.027 + 2.016) + 0.1 * (12 * 14.027)
    rho = 750.0 - 0.55 * (T0 - 600.0)
    V_liters = m_liq / rho  # (g / 1000) / (kg/m3) * 1000
    np.testing.assert_allclose(dn, kin.fixed_rates * V_liters, rtol=1e-12, atol=0.0)
    assert rhs.n_evaluations == 1


def test_status_passed_to_kinetics():
    layout, kin, program = _make_model()
    rhs = StateTransform(kin, program)
    n = _make_state(layout)

    rhs(0.0, n)

    phases = compute_phase_aggregates(kin, n, T0, 11)
    assert kin.T == pytest.approx(T0)
    assert kin.P == pytest.approx(101325.0)
    assert kin.volume_l == pytest.approx(phases.V_l_liters)
    assert kin.initial_mass == pytest.approx(100.0)
    np.testing.assert_allclose(kin.c, n / phases.V_l_liters)
    assert kin.n_constant_updates == 1
    assert kin.n_rate_updates == 1


def test_zero_rates_give_zero_derivative():
    layout, kin, program = _make_model()
    dn = StateTransform(kin, program)(0.0, _make_state(layout))
    assert dn.shape == (layout.size,)
    assert np.all(dn == 0.0)


def test_explicit_boundary_is_used_and_not_committed():
    rates = np.ones(3 * N_UNITS + N_EXTRA)
    layout, kin, program = _make_model(rates=rates)
    rhs = StateTransform(kin, program)
    n = _make_state(layout)
    before = kin.boundary

    # LC=13: olefin C12 moves to the gas phase, only paraffin C15 stays liquid
    dn = rhs(0.0, n, 13)

    m_liq = 0.2 * (15 * 14.027 + 2.016)
    rho = 750.0 - 0.55 * (T0 - 600.0)
    np.testing.assert_allclose(dn, rates * (m_liq / rho), rtol=1e-12)
    assert kin.boundary is before
    assert kin.min_number_of_units == 11


def test_evaluation_does_not_move_boundary_under_ramp():
    program = _make_program(heating_rate=1.0)
    layout, kin, _ = _make_model(program=program)
    rhs = StateTransform(kin, program)
    n = _make_state(layout)
    for t in (0.0, 30.0, 60.0):
        rhs(t, n)
    assert kin.boundary.version == 0
    assert kin.min_number_of_units == 11


def test_wrong_vector_shape_raises():
    layout, kin, program = _make_model()
    with pytest.raises(ValueError, match="species vector shape"):
        StateTransform(kin, program)(0.0, np.zeros(layout.size - 1))


# ============================================================================
# Failure paths
# ============================================================================


def test_empty_liquid_raises():
    layout, kin, program = _make_model()
    n = np.zeros(layout.size)
    n[4] = 1.0  # gas only
    with pytest.raises(LiquidVolumeError) as excinfo:
        StateTransform(kin, program)(0.0, n)
    assert excinfo.value.m_liq == 0.0
    assert excinfo.value.V_l == 0.0


def test_volume_floor_raises():
    layout, kin, program = _make_model()
    n = np.zeros(layout.size)
    n[14] = 1.0e-12  # ~2e-10 g of liquid, V_L ~ 3e-16 m3
    with pytest.raises(LiquidVolumeError, match="below floor"):
        StateTransform(kin, program, min_liquid_volume=1.0e-15)(0.0, n)
    # same state passes with a zero floor
    dn = StateTransform(kin, program, min_liquid_volume=0.0)(0.0, n)
    assert np.all(np.isfinite(dn))


def test_negative_density_raises():
    # rho = 750 + 10 * (460 - 600) < 0
    layout, kin, program = _make_model(drho_dT=10.0, program=_make_program(T0=460.0))
    with pytest.raises(LiquidVolumeError):
        StateTransform(kin, program)(0.0, _make_state(layout))


def test_non_finite_rates_raise():
    rates = np.zeros(3 * N_UNITS + N_EXTRA)
    rates[3] = np.nan
    layout, kin, program = _make_model(rates=rates)
    with pytest.raises(NonFiniteDerivativeError, match="1 non-finite"):
        StateTransform(kin, program)(0.0, _make_state(layout))


def test_negative_floor_rejected():
    _, kin, program = _make_model()
    with pytest.raises(ValueError, match="non-negative"):
        StateTransform(kin, program, min_liquid_volume=-1.0)
