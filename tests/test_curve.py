import numpy as np
import pytest

from yield_curve_engine.bonds import Bond
from yield_curve_engine.cashflows import build_cashflow_matrix
from yield_curve_engine.curves import (
    bootstrap_steps,
    condition_number,
    curve_qc_report,
    curve_table,
    is_triangular,
    least_squares_solve,
    reprice,
    solve_discount_factors,
)
from yield_curve_engine.exceptions import InputError, SingularSystemError
from yield_curve_engine.scenarios import (
    mixed_frequency_dataset,
    overdetermined_dataset,
    triangular_dataset,
)


@pytest.fixture(scope="module")
def tri_matrix():
    return build_cashflow_matrix(triangular_dataset())


@pytest.fixture(scope="module")
def tri_dfs(tri_matrix):
    return solve_discount_factors(tri_matrix)


@pytest.fixture(scope="module")
def over_matrix():
    return build_cashflow_matrix(overdetermined_dataset())


@pytest.mark.parametrize("maturity,freq,price,face", [(2.0, 2, 90.0, 100.0), (1.0, 1, 952.38, 1000.0)])
def test_single_zero_discount_factor_is_price_over_face(maturity, freq, price, face):
    cf = build_cashflow_matrix([Bond("Z", maturity, 0.0, freq, price, face)])
    dfs = solve_discount_factors(cf)
    assert dfs.method == "bootstrap"
    assert dfs.factors[0] == pytest.approx(price / face, abs=1e-14)


def test_triangular_detection(tri_matrix):
    assert is_triangular(tri_matrix.matrix)
    assert not is_triangular(build_cashflow_matrix(mixed_frequency_dataset()).matrix)
    assert not is_triangular(np.array([[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])), "more rows than columns"
    assert not is_triangular(np.array([[0.0, 0.0], [1.0, 1.0]])), "zero diagonal"


def test_triangular_round_trip(tri_matrix, tri_dfs):
    assert tri_dfs.method == "bootstrap"
    assert len(tri_dfs.factors) == len(tri_matrix.times)
    assert np.allclose(tri_dfs.times, tri_matrix.times)
    assert np.max(np.abs(reprice(tri_matrix, tri_dfs) - tri_matrix.prices)) < 1e-8


def test_discount_factors_price_matches_matrix(tri_matrix, tri_dfs):
    for b, p in zip(tri_matrix.bonds, reprice(tri_matrix, tri_dfs)):
        assert tri_dfs.price(b) == pytest.approx(p, abs=1e-10)

    with pytest.raises(InputError):
        tri_dfs.price(Bond("OFF", 0.75, 0.04, 4, 100.0, 100.0))


def test_forced_bootstrap_on_non_triangular_matrix_raises(over_matrix):
    with pytest.raises(InputError):
        solve_discount_factors(over_matrix, method="bootstrap")


def test_unknown_solver_methods_raise_input_error(over_matrix):
    with pytest.raises(InputError, match="cholesky"):
        solve_discount_factors(over_matrix, method="cholesky")
    with pytest.raises(InputError, match="qr"):
        least_squares_solve(over_matrix.matrix, over_matrix.prices, method="qr")
    with pytest.raises(InputError):
        solve_discount_factors(over_matrix, lstsq_method="qr")


def test_least_squares_on_overdetermined_system(over_matrix):
    dfs = solve_discount_factors(over_matrix)
    lsq = dfs.least_squares

    assert dfs.method == "least_squares"
    assert lsq is not None
    assert lsq.rank == over_matrix.shape[1]
    assert len(lsq.residuals) == over_matrix.shape[0]
    assert np.allclose(lsq.residuals, over_matrix.matrix @ dfs.factors - over_matrix.prices)
    assert np.isfinite(lsq.condition_number) and lsq.condition_number >= 1.0
    assert np.all(np.isfinite(dfs.factors))


def test_normal_equations_agree_with_svd_solve(over_matrix):
    svd = least_squares_solve(over_matrix.matrix, over_matrix.prices, method="lstsq")
    normal = least_squares_solve(over_matrix.matrix, over_matrix.prices, method="normal")
    assert normal.method == "normal"
    assert np.allclose(svd.discount_factors, normal.discount_factors, rtol=1e-6)


def test_least_squares_matches_direct_solve_on_square_system():
    # longest bond first: invertible but not triangular
    bonds = [Bond("L", 2.0, 0.05, 1, 101.0, 100.0), Bond("S", 1.0, 0.04, 1, 99.5, 100.0)]
    cf = build_cashflow_matrix(bonds)
    assert not is_triangular(cf.matrix)

    direct = np.linalg.solve(cf.matrix, cf.prices)
    for method in ("lstsq", "normal"):
        lsq = least_squares_solve(cf.matrix, cf.prices, method=method)
        assert np.allclose(lsq.discount_factors, direct, atol=1e-12)
        assert np.max(np.abs(lsq.residuals)) < 1e-9


def test_underdetermined_system_raises_instead_of_defaulting():
    cf = build_cashflow_matrix(mixed_frequency_dataset())
    assert cf.shape == (7, 8)
    with pytest.raises(SingularSystemError):
        solve_discount_factors(cf)


def test_collinear_rows_are_singular():
    C = np.array([[1.0, 2.0], [2.0, 4.0], [3.0, 6.0]])
    with pytest.raises(SingularSystemError):
        least_squares_solve(C, np.array([1.0, 2.0, 3.0]))
    assert condition_number(np.eye(3)) == pytest.approx(1.0)


def test_bootstrap_steps_mirror_solver(tri_matrix, tri_dfs):
    steps = bootstrap_steps(tri_matrix)
    assert [s.step_number for s in steps] == list(range(1, 7))
    assert np.allclose([s.time for s in steps], tri_matrix.times)
    assert np.array_equal([s.discount_factor for s in steps], tri_dfs.factors)

    for s in steps:
        assert s.spot_rate == pytest.approx(-np.log(s.discount_factor) / s.time, rel=1e-12)

    assert steps[0].equation == "100.50 = 101.50 × DF(0.5)"
    assert steps[1].equation == "101.20 = 1.75 × 0.9901 + 101.75 × DF(1)"
    assert steps[1].description == "Solving for DF(1) from bond 2"


def test_bootstrap_steps_require_triangular_matrix(over_matrix):
    with pytest.raises(InputError):
        bootstrap_steps(over_matrix)


def test_curve_qc_report_flags(tri_dfs):
    qc = curve_qc_report(tri_dfs)
    assert qc["df_positive"].all()
    assert qc["df_monotone"].all()
    assert np.isfinite(qc["zero_cc"]).all()


def test_curve_table_columns(tri_dfs):
    table = curve_table(tri_dfs, "annual")
    assert list(table.columns) == ["time", "df", "spot", "forward"]
    assert np.isnan(table["forward"].iloc[0])
    assert table["forward"].iloc[1:].notna().all()
