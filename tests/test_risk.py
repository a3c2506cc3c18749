import numpy as np
import pytest

from yield_curve_engine.bonds import Bond, price_from_yield
from yield_curve_engine.risk import (
    convexity,
    duration_from_dv01,
    dv01,
    macaulay_duration,
    modified_duration,
    price_yield_table,
    rate_shock_table,
    yield_risk_table,
)
from yield_curve_engine.scenarios import rate_risk_bonds


@pytest.fixture(scope="module")
def bond():
    return Bond("RISK_10Y", 10.0, 0.05, 2, 1000.0, 1000.0)


def test_zero_coupon_macaulay_equals_maturity():
    z = Bond("Z7", 7.0, 0.0, 2, 700.0, 1000.0)
    assert macaulay_duration(z, 0.05) == pytest.approx(7.0, abs=1e-12)


def test_modified_duration_relation(bond):
    y = 0.06
    assert modified_duration(bond, y) == pytest.approx(macaulay_duration(bond, y) / 1.03)
    assert macaulay_duration(bond, y) < bond.maturity


def test_dv01_sign_and_duration_consistency(bond):
    y = 0.06
    d = dv01(bond, y)
    assert d < 0.0, "+1bp should lower the price of a plain bond"

    implied = duration_from_dv01(d, price_from_yield(bond, y))
    assert implied == pytest.approx(modified_duration(bond, y), rel=1e-3)


def test_convexity_matches_finite_difference(bond):
    y, h = 0.06, 1e-4
    p0 = price_from_yield(bond, y)
    fd = (price_from_yield(bond, y + h) + price_from_yield(bond, y - h) - 2 * p0) / (p0 * h ** 2)
    assert convexity(bond, y) > 0.0
    assert convexity(bond, y) == pytest.approx(fd, rel=1e-4)


def test_rate_shock_hits_long_bonds_hardest():
    shocked = rate_shock_table(rate_risk_bonds(), base_yield=0.05, shock_bp=100)
    assert (shocked["price_change"] < 0).all()
    assert shocked["pct_change"].is_monotonic_decreasing, "longer maturity => larger % loss"


def test_price_yield_table_shows_convexity(bond):
    table = price_yield_table(bond, ytm=0.06, span=0.04, step=0.005)
    assert len(table) == 17
    assert table["yield"].iloc[0] == pytest.approx(0.02)

    at_ytm = table.iloc[8]
    assert at_ytm["yield"] == pytest.approx(0.06)
    assert at_ytm["actual_price"] == pytest.approx(at_ytm["duration_estimate"], abs=1e-8)
    assert (table["actual_price"] >= table["duration_estimate"] - 1e-9).all()


def test_yield_risk_table_flags_failed_yields():
    bonds = [
        Bond("OK", 5.0, 0.04, 2, 98.0, 100.0),
        Bond("BAD", 1.0, 0.05, 1, 1.0, 100.0),
    ]
    table = yield_risk_table(bonds)
    assert list(table["flags"]) == ["", "NO_CONVERGENCE"]
    assert np.isfinite(table.loc[0, ["ytm", "mac_duration", "mod_duration", "convexity", "dv01"]].astype(float)).all()
    assert table.loc[1, ["ytm", "dv01"]].isna().all()


def test_yield_risk_table_accepts_generators():
    bonds = rate_risk_bonds()
    table = yield_risk_table(b for b in bonds)
    assert list(table["bond_id"]) == [b.bond_id for b in bonds]
    assert (table["flags"] == "").all()
