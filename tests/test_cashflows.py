import numpy as np
import pytest

from yield_curve_engine.bonds import Bond
from yield_curve_engine.cashflows import (
    bond_cashflows,
    build_cashflow_matrix,
    cashflow_table,
    generate_cashflow_times,
)
from yield_curve_engine.exceptions import InputError
from yield_curve_engine.scenarios import mixed_frequency_dataset, triangular_dataset
from yield_curve_engine.utils import payment_time_keys, from_time_key


@pytest.fixture(scope="module")
def bonds():
    return [
        Bond("Q", 0.75, 0.04, 4, 100.2, 100.0),
        Bond("S", 1.0, 0.05, 2, 100.9, 100.0),
    ]


def test_pooled_times_sorted_and_deduplicated(bonds):
    times = generate_cashflow_times(bonds)
    assert np.allclose(times, [0.25, 0.5, 0.75, 1.0])
    assert np.all(np.diff(times) > 0)


def test_rows_hold_coupons_and_principal(bonds):
    cf = build_cashflow_matrix(bonds)
    assert cf.shape == (2, 4)
    assert np.allclose(cf.matrix[0], [1.0, 1.0, 101.0, 0.0])
    assert np.allclose(cf.matrix[1], [0.0, 2.5, 0.0, 102.5])
    assert np.allclose(cf.prices, [100.2, 100.9])
    assert cf.bond_ids == ["Q", "S"]


def test_nonzero_entries_exactly_at_payment_times():
    bonds = mixed_frequency_dataset()
    cf = build_cashflow_matrix(bonds)
    for i, b in enumerate(bonds):
        expected = {from_time_key(k) for k in payment_time_keys(b)}
        actual = {float(cf.times[j]) for j in np.flatnonzero(cf.matrix[i])}
        assert actual == expected, f"bond {b.bond_id} cashflows off its schedule"
        assert cf.matrix[i, np.flatnonzero(cf.matrix[i])[-1]] == pytest.approx(b.face + b.face * b.coupon_rate / b.freq)


def test_zero_coupon_bond_only_pays_at_maturity():
    cf = build_cashflow_matrix([Bond("Z", 2.0, 0.0, 2, 90.0, 100.0)])
    assert np.allclose(cf.times, [2.0])
    assert np.allclose(cf.matrix, [[100.0]])


def test_non_integer_period_count_rejected():
    with pytest.raises(InputError) as exc:
        build_cashflow_matrix([Bond("ODD", 0.6, 0.05, 2, 100.0, 100.0)])
    assert exc.value.bond_id == "ODD"


def test_schedule_tolerance_is_configurable():
    near = Bond("NEAR", 1.05, 0.0, 2, 95.0, 100.0)
    with pytest.raises(InputError):
        build_cashflow_matrix([near])

    cf = build_cashflow_matrix([near], tol=0.2)
    assert np.allclose(cf.times, [1.0])
    assert np.allclose(cf.matrix, [[100.0]])


@pytest.mark.parametrize("decimals", [0, 1])
def test_coarse_time_keys_rejected_for_quarterly(decimals):
    # 0 decimals folds quarters into 0/1; 1 decimal shifts 0.25 to 0.2
    with pytest.raises(InputError) as exc:
        build_cashflow_matrix([Bond("Q", 1.0, 0.04, 4, 100.0, 100.0)], decimals=decimals)
    assert exc.value.bond_id == "Q"


def test_semiannual_resolves_at_one_decimal():
    cf = build_cashflow_matrix([Bond("S", 1.0, 0.04, 2, 100.0, 100.0)], decimals=1)
    assert np.allclose(cf.times, [0.5, 1.0])
    assert cf.time_keys == (5, 10)


def test_empty_portfolio_rejected():
    with pytest.raises(InputError):
        build_cashflow_matrix([])


def test_duplicate_ids_rejected():
    b = Bond("X", 1.0, 0.05, 1, 100.0, 100.0)
    with pytest.raises(InputError):
        build_cashflow_matrix([b, b])


def test_bond_cashflows_on_foreign_axis():
    b = Bond("S", 1.0, 0.05, 2, 100.9, 100.0)
    assert np.allclose(bond_cashflows(b, [0.25, 0.5, 1.0]), [0.0, 2.5, 102.5])

    with pytest.raises(InputError) as exc:
        bond_cashflows(b, [1.0])
    assert exc.value.time == pytest.approx(0.5)


def test_cashflow_table_and_frame():
    bonds = triangular_dataset()
    table = cashflow_table(bonds)
    assert len(table) == sum(len(payment_time_keys(b)) for b in bonds)
    assert table.groupby("bond_id")["is_principal"].sum().eq(1).all()

    frame = build_cashflow_matrix(bonds).to_frame()
    assert frame.shape == (6, 6)
    assert list(frame.index) == [b.bond_id for b in bonds]
