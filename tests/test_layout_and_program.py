"""
Species layout aggregation and thermogravimetric program lookups.

Tests:
1. Layout size, blocks and molecular weights
2. Gas/liquid split follows LC; auxiliary species are always liquid
3. Boiling curve is increasing and matches n-decane
4. boundary_for_temperature / boiling_temperature are consistent
5. Ramp, hold and tabulated temperature histories
"""

from __future__ import annotations

import numpy as np
import pytest

from core.layout import SpeciesLayout, build_molecular_weights
from physics.tga_program import BoilingCurve, ThermogravimetricProgram, load_temperature_table


def _make_layout(n_units: int = 20, n_extra: int = 2) -> SpeciesLayout:
    mw = build_molecular_weights(n_units, n_extra, mw_unit=14.027, mw_h2=2.016, extra_mw=14.027)
    return SpeciesLayout(n_units=n_units, n_extra=n_extra, mw=mw)


def _make_curve(n_units: int = 20) -> BoilingCurve:
    return BoilingCurve(n_units=n_units, w0=67.328, w1=1191.8, w2=0.90918, w3=20.941)


# ============================================================================
# Layout
# ============================================================================


def test_layout_size_and_blocks():
    layout = _make_layout(20, 34)
    assert layout.size == 3 * 20 + 34
    assert layout.blocks["paraffins"] == slice(0, 20)
    assert layout.blocks["olefins"] == slice(20, 40)
    assert layout.blocks["diolefins"] == slice(40, 60)
    assert layout.blocks["extra"] == slice(60, 94)


def test_molecular_weights_by_class():
    layout = _make_layout(20, 2)
    # chain length 10: C10H22 / C10H20 / C10H18
    assert layout.mw[9] == pytest.approx(10 * 14.027 + 2.016)
    assert layout.mw[20 + 9] == pytest.approx(10 * 14.027)
    assert layout.mw[40 + 9] == pytest.approx(10 * 14.027 - 2.016)
    assert np.all(layout.mw[60:] == pytest.approx(14.027))


def test_mw_shape_mismatch_raises():
    with pytest.raises(ValueError, match="mw shape"):
        SpeciesLayout(n_units=4, n_extra=2, mw=np.ones(5))


def test_gas_liquid_split_follows_lc():
    layout = _make_layout(20, 2)
    n = np.zeros(layout.size)
    n[4] = 1.0  # paraffin C5
    n[20 + 11] = 2.0  # olefin C12
    n[40 + 2] = 0.5  # diolefin C3
    n[60] = 0.25  # auxiliary

    assert layout.sum_gas(n, 11) == pytest.approx(1.5)
    assert layout.sum_liquid(n, 11) == pytest.approx(2.25)
    assert layout.sum_gas(n, 13) == pytest.approx(3.5)
    assert layout.sum_liquid(n, 13) == pytest.approx(0.25)

    m_gas = 1.0 * layout.mw[4] + 0.5 * layout.mw[42]
    m_liq = 2.0 * layout.mw[31] + 0.25 * layout.mw[60]
    assert layout.sum_gas_mw(n, 11) == pytest.approx(m_gas)
    assert layout.sum_liquid_mw(n, 11) == pytest.approx(m_liq)


def test_lc_one_means_no_gas():
    layout = _make_layout(20, 2)
    n = np.ones(layout.size)
    assert layout.sum_gas(n, 1) == 0.0
    assert layout.sum_liquid(n, 1) == pytest.approx(layout.size)


def test_lc_out_of_range_raises():
    layout = _make_layout(20, 2)
    with pytest.raises(ValueError, match="outside"):
        layout.gas_mask(0)
    with pytest.raises(ValueError, match="outside"):
        layout.gas_mask(21)


def test_class_sums_exclude_auxiliary():
    layout = _make_layout(5, 3)
    n = np.arange(layout.size, dtype=float)
    P, O, D = layout.sum_classes(n)
    assert (P, O, D) == (float(np.sum(n[0:5])), float(np.sum(n[5:10])), float(np.sum(n[10:15])))
    Pm, Om, Dm = layout.sum_classes_mw(n)
    assert Pm == pytest.approx(float(np.dot(n[0:5], layout.mw[0:5])))


def test_wrong_vector_shape_raises():
    layout = _make_layout(5, 3)
    with pytest.raises(ValueError, match="species vector shape"):
        layout.sum_gas(np.zeros(layout.size + 1), 2)


# ============================================================================
# Boiling curve
# ============================================================================


def test_boiling_curve_increasing_and_decane():
    curve = _make_curve(60)
    assert np.all(np.diff(curve.Tb) > 0.0)
    # n-decane boils at 447.3 K
    assert curve.temperature(10) == pytest.approx(447.3, abs=1.0)
    assert curve.temperature(0) == pytest.approx(67.328)


def test_boundary_lookup_brackets_temperature():
    curve = _make_curve(60)
    for T in (300.0, 450.0, 520.0, 600.0, 700.0):
        lc = curve.boundary_for_temperature(T)
        assert curve.temperature(lc - 1) <= T < curve.temperature(lc)


def test_boundary_lookup_known_values():
    curve = _make_curve(20)
    assert curve.boundary_for_temperature(450.0) == 11
    assert curve.boundary_for_temperature(475.0) == 12
    assert curve.boundary_for_temperature(520.0) == 14


def test_boundary_lookup_clamped():
    curve = _make_curve(20)
    assert curve.boundary_for_temperature(10.0) == 1
    assert curve.boundary_for_temperature(5000.0) == 20


# ============================================================================
# Program
# ============================================================================


def test_ramp_and_hold():
    prog = ThermogravimetricProgram(
        curve=_make_curve(), initial_mass=10.0, P0=101325.0, T0=500.0, heating_rate=2.0, T_max=600.0
    )
    assert prog.temperature(0.0) == 500.0
    assert prog.temperature(25.0) == 550.0
    assert prog.temperature(1000.0) == 600.0
    assert prog.pressure(123.0) == 101325.0
    assert prog.is_non_decreasing()


def test_tabulated_history(tmp_path):
    path = tmp_path / "history.csv"
    path.write_text("# t, T\n0, 500\n10, 600\n20, 550\n")
    t, T = load_temperature_table(path)
    prog = ThermogravimetricProgram(
        curve=_make_curve(), initial_mass=1.0, P0=1.0e5, table_t=t, table_T=T
    )
    assert prog.temperature(5.0) == pytest.approx(550.0)
    assert prog.temperature(15.0) == pytest.approx(575.0)
    assert prog.temperature(100.0) == pytest.approx(550.0)
    assert not prog.is_non_decreasing()


def test_table_requires_increasing_times():
    with pytest.raises(ValueError, match="strictly increasing"):
        ThermogravimetricProgram(
            curve=_make_curve(),
            initial_mass=1.0,
            P0=1.0e5,
            table_t=np.array([0.0, 0.0]),
            table_T=np.array([500.0, 510.0]),
        )
