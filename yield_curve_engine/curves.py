from __future__ import annotations

import logging
import numpy as np
import pandas as pd
from dataclasses import dataclass
from typing import List, Optional, Union

from scipy import linalg

from .bonds import Bond
from .cashflows import CashflowMatrix
from .exceptions import InputError, SingularSystemError
from .rates import Compounding, discount_factors_to_spot_rates, spot_rate, spot_rates_to_forward_rates
from .settings import DEFAULT_SETTINGS, EngineSettings
from .utils import from_time_key, payment_time_keys, to_time_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeastSquaresResult:
    discount_factors: np.ndarray
    residuals: np.ndarray        # fitted minus market price: C d - p
    condition_number: float      # 2-norm condition number of C'C
    rank: int
    method: str = "lstsq"


@dataclass(frozen=True)
class DiscountFactors:
    """
    Discount factors on the cashflow-matrix time axis.

    method is "bootstrap" (exact back-substitution) or "least_squares";
    least_squares holds the fit diagnostics in the latter case.
    """
    times: np.ndarray
    factors: np.ndarray
    method: str = "bootstrap"
    least_squares: Optional[LeastSquaresResult] = None

    def __post_init__(self):
        if len(self.times) != len(self.factors):
            raise InputError("times and factors must have the same length.")

    def price(self, bond: Bond) -> float:
        """PV of a bond's cashflows; every payment time must be on the axis."""
        key_index = {to_time_key(t): j for j, t in enumerate(self.times)}
        keys = payment_time_keys(bond)
        coupon = bond.face * bond.coupon_rate / bond.freq

        pv = 0.0
        for i, k in enumerate(keys):
            j = key_index.get(k)
            if j is None:
                raise InputError(
                    f"{bond.bond_id}: no discount factor for t={from_time_key(k):g}.",
                    bond_id=bond.bond_id,
                    time=from_time_key(k),
                )
            cf = coupon + (bond.face if i == len(keys) - 1 else 0.0)
            pv += cf * float(self.factors[j])
        return pv


@dataclass(frozen=True)
class BootstrapStep:
    step_number: int
    time: float
    description: str
    equation: str
    discount_factor: float
    spot_rate: float   # continuous compounding


def is_triangular(matrix: np.ndarray, tol: float = DEFAULT_SETTINGS.zero_tol) -> bool:
    """
    True when every bond introduces exactly one new time:
    rows <= cols, nothing right of the diagonal, nonzero diagonal.
    """
    matrix = np.asarray(matrix, dtype=float)
    if matrix.ndim != 2 or matrix.shape[0] == 0:
        return False

    n, m = matrix.shape
    if n > m:
        return False

    for i in range(n):
        if np.any(np.abs(matrix[i, i + 1:]) > tol):
            return False
        if abs(matrix[i, i]) <= tol:
            return False
    return True


def _fmt_time(t: float) -> str:
    return f"{t:g}"


def _back_substitute(
    cf: CashflowMatrix,
    tol: float,
    trace: Optional[List[BootstrapStep]] = None,
) -> np.ndarray:
    """
    Sequential bootstrap: each row's last nonzero cashflow is the single
    unknown; everything earlier must already be solved.

    Used by both the solver and the step tracer.
    """
    matrix, times, prices = cf.matrix, cf.times, cf.prices
    n_rows, n_cols = matrix.shape
    factors = np.full(n_cols, np.nan)

    for i in range(n_rows):
        row = matrix[i]
        bond_id = cf.bonds[i].bond_id if i < len(cf.bonds) else str(i + 1)

        nz = np.flatnonzero(np.abs(row) > tol)
        if nz.size == 0:
            raise InputError(f"{bond_id}: row has no cashflows.", bond_id=bond_id)

        last = int(nz[-1])
        earlier = nz[:-1]

        if not np.isnan(factors[last]):
            raise InputError(
                f"{bond_id}: DF({_fmt_time(times[last])}) already fixed by an earlier bond.",
                bond_id=bond_id,
                time=float(times[last]),
            )
        if np.any(np.isnan(factors[earlier])):
            missing = float(times[earlier[np.isnan(factors[earlier])][0]])
            raise InputError(
                f"{bond_id}: cashflow at t={_fmt_time(missing)} precedes any bond maturing there.",
                bond_id=bond_id,
                time=missing,
            )

        known = float(np.dot(row[earlier], factors[earlier]))
        df = (prices[i] - known) / row[last]
        factors[last] = df

        if trace is not None:
            parts = [f"{row[j]:.2f} × {factors[j]:.4f}" for j in earlier]
            parts.append(f"{row[last]:.2f} × DF({_fmt_time(times[last])})")

            if df > 0:
                s = spot_rate(df, float(times[last]), Compounding.CONTINUOUS)
            else:
                logger.warning("Non-positive DF %.6f at t=%s from %s", df, times[last], bond_id)
                s = float("nan")

            trace.append(
                BootstrapStep(
                    step_number=i + 1,
                    time=float(times[last]),
                    description=f"Solving for DF({_fmt_time(times[last])}) from bond {bond_id}",
                    equation=f"{prices[i]:.2f} = " + " + ".join(parts),
                    discount_factor=float(df),
                    spot_rate=s,
                )
            )

    if np.any(np.isnan(factors)):
        missing = float(times[np.isnan(factors)][0])
        raise InputError(f"No bond matures at t={_fmt_time(missing)}.", time=missing)

    return factors


def bootstrap_discount_factors(cf: CashflowMatrix, tol: float = DEFAULT_SETTINGS.zero_tol) -> np.ndarray:
    if not is_triangular(cf.matrix, tol):
        raise InputError("Cashflow matrix is not triangular; bootstrap needs one new time per bond.")
    return _back_substitute(cf, tol)


def bootstrap_steps(cf: CashflowMatrix, tol: float = DEFAULT_SETTINGS.zero_tol) -> List[BootstrapStep]:
    """Step-by-step derivation of the triangular bootstrap, for display."""
    if not is_triangular(cf.matrix, tol):
        raise InputError("Cashflow matrix is not triangular; no step-by-step bootstrap.")

    steps: List[BootstrapStep] = []
    _back_substitute(cf, tol, trace=steps)
    return steps


def condition_number(matrix: np.ndarray) -> float:
    """2-norm condition number of C'C (largest / smallest singular value)."""
    C = np.asarray(matrix, dtype=float)
    sv = linalg.svdvals(C.T @ C)
    if sv.size == 0 or sv[-1] <= 0:
        return float("inf")
    return float(sv[0] / sv[-1])


def least_squares_solve(
    matrix: np.ndarray,
    prices: np.ndarray,
    method: str = "lstsq",
    max_condition: float = DEFAULT_SETTINGS.max_condition,
) -> LeastSquaresResult:
    """
    Minimise ||C d - p||^2.

    method="lstsq"  : SVD-based scipy.linalg.lstsq (default)
    method="normal" : normal equations C'C d = C'p

    Rank-deficient or ill-conditioned systems raise SingularSystemError.
    """
    C = np.asarray(matrix, dtype=float)
    p = np.asarray(prices, dtype=float)

    if C.ndim != 2 or C.shape[0] == 0 or C.shape[1] == 0:
        raise InputError("Cashflow matrix must be a non-empty 2-D array.")
    if C.shape[0] != p.shape[0]:
        raise InputError("One price per cashflow-matrix row is required.")
    if method not in ("lstsq", "normal"):
        raise InputError(f"Unknown least-squares method: {method!r}; use 'lstsq' or 'normal'.")

    n_rows, n_cols = C.shape
    rank = int(np.linalg.matrix_rank(C))
    if rank < n_cols:
        logger.error("Least squares: rank %s < %s unknown times (%s bonds)", rank, n_cols, n_rows)
        raise SingularSystemError(
            f"Cashflow matrix has rank {rank} but {n_cols} unknown times; discount factors are not identified."
        )

    cond = condition_number(C)
    if not np.isfinite(cond) or cond > max_condition:
        logger.error("Least squares: condition number %.3e above limit %.3e", cond, max_condition)
        raise SingularSystemError(f"Normal-equations matrix is numerically singular (cond={cond:.3e}).")

    if method == "lstsq":
        d, _, _, _ = linalg.lstsq(C, p)
    else:
        try:
            d = linalg.solve(C.T @ C, C.T @ p, assume_a="pos")
        except (linalg.LinAlgError, ValueError) as exc:
            logger.error("Normal equations solve failed: %s", exc)
            raise SingularSystemError(f"Normal equations could not be solved: {exc}") from exc

    d = np.asarray(d, dtype=float)
    if not np.all(np.isfinite(d)):
        raise SingularSystemError("Least-squares solution contains non-finite discount factors.")

    residuals = C @ d - p
    if np.any(d <= 0):
        logger.warning("Least squares produced non-positive discount factors: %s", d[d <= 0])
    logger.debug("Least squares (%s): cond=%.3e max|resid|=%.3e", method, cond, np.max(np.abs(residuals)))

    return LeastSquaresResult(
        discount_factors=d,
        residuals=residuals,
        condition_number=cond,
        rank=rank,
        method=method,
    )


def solve_discount_factors(
    cf: CashflowMatrix,
    method: str = "auto",
    lstsq_method: str = "lstsq",
    settings: Optional[EngineSettings] = None,
) -> DiscountFactors:
    """
    One discount factor per pooled time.

    method="auto" bootstraps when the matrix is triangular and falls back to
    least squares otherwise; "bootstrap" / "least_squares" force a path.
    """
    settings = settings or DEFAULT_SETTINGS
    if method not in ("auto", "bootstrap", "least_squares"):
        raise InputError(f"Unknown solve method: {method!r}; use 'auto', 'bootstrap' or 'least_squares'.")

    triangular = is_triangular(cf.matrix, settings.zero_tol)

    if method == "bootstrap" or (method == "auto" and triangular):
        factors = bootstrap_discount_factors(cf, settings.zero_tol)
        logger.debug("Bootstrapped %s discount factors", len(factors))
        return DiscountFactors(times=cf.times.copy(), factors=factors, method="bootstrap")

    logger.debug("Matrix %s not triangular; using least squares", cf.shape)
    lsq = least_squares_solve(cf.matrix, cf.prices, method=lstsq_method, max_condition=settings.max_condition)
    return DiscountFactors(
        times=cf.times.copy(),
        factors=lsq.discount_factors,
        method="least_squares",
        least_squares=lsq,
    )


def reprice(cf: CashflowMatrix, dfs: DiscountFactors) -> np.ndarray:
    """Model prices C d for every bond of the matrix."""
    if len(dfs.factors) != cf.matrix.shape[1]:
        raise InputError("Discount factors do not match the cashflow-matrix time axis.")
    return cf.matrix @ np.asarray(dfs.factors, dtype=float)


def curve_table(dfs: DiscountFactors, compounding: Union[Compounding, str] = Compounding.CONTINUOUS) -> pd.DataFrame:
    spots = discount_factors_to_spot_rates(dfs, compounding)
    fwds = spot_rates_to_forward_rates(spots)

    return pd.DataFrame(
        {
            "time": np.asarray(dfs.times, dtype=float),
            "df": np.asarray(dfs.factors, dtype=float),
            "spot": [s.rate for s in spots],
            "forward": [np.nan] + [f.rate for f in fwds],
        }
    )


def curve_qc_report(dfs: DiscountFactors) -> pd.DataFrame:
    times = np.asarray(dfs.times, dtype=float)
    factors = np.asarray(dfs.factors, dtype=float)

    positive = factors > 0
    with np.errstate(divide="ignore", invalid="ignore"):
        zeros = np.where(positive, -np.log(np.where(positive, factors, 1.0)) / times, np.nan)

    return pd.DataFrame(
        {
            "time": times,
            "df": factors,
            "zero_cc": zeros,
            "df_positive": positive,
            "df_monotone": np.r_[True, np.diff(factors) <= 1e-10],
        }
    )
