from __future__ import annotations

import logging
import numpy as np
import pandas as pd
from dataclasses import dataclass
from typing import Sequence, Tuple

from .bonds import Bond, coupon_payment, validate_portfolio
from .exceptions import InputError
from .settings import DEFAULT_SETTINGS
from .utils import from_time_key, payment_time_keys, to_time_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CashflowMatrix:
    """
    C[i, j] = cashflow of bond i at pooled time j.

    times are ascending and distinct; time_keys are the integer keys they
    were built from (see utils.to_time_key).
    """
    matrix: np.ndarray
    times: np.ndarray
    time_keys: Tuple[int, ...]
    prices: np.ndarray
    bonds: Tuple[Bond, ...]

    @property
    def shape(self) -> Tuple[int, int]:
        return self.matrix.shape

    @property
    def bond_ids(self):
        return [b.bond_id for b in self.bonds]

    def to_frame(self) -> pd.DataFrame:
        out = pd.DataFrame(self.matrix, index=self.bond_ids, columns=self.times)
        out.index.name = "bond_id"
        out.columns.name = "time"
        return out


def generate_cashflow_time_keys(
    bonds: Sequence[Bond],
    decimals: int = DEFAULT_SETTINGS.time_decimals,
    tol: float = DEFAULT_SETTINGS.schedule_tol,
) -> Tuple[int, ...]:
    keys = set()
    for b in bonds:
        keys.update(payment_time_keys(b, decimals, tol))
    return tuple(sorted(keys))


def generate_cashflow_times(
    bonds: Sequence[Bond],
    decimals: int = DEFAULT_SETTINGS.time_decimals,
    tol: float = DEFAULT_SETTINGS.schedule_tol,
) -> np.ndarray:
    """Sorted distinct payment times (years) pooled across all bonds."""
    bonds = validate_portfolio(bonds, tol)
    keys = generate_cashflow_time_keys(bonds, decimals, tol)
    return np.array([from_time_key(k, decimals) for k in keys], dtype=float)


def _fill_row(bond: Bond, key_index: dict, row: np.ndarray, decimals: int, tol: float) -> None:
    coupon = coupon_payment(bond)
    keys = payment_time_keys(bond, decimals, tol)

    for i, k in enumerate(keys):
        j = key_index.get(k)
        if j is None:
            raise InputError(
                f"{bond.bond_id}: payment at t={from_time_key(k, decimals)} is not on the time axis.",
                bond_id=bond.bond_id,
                time=from_time_key(k, decimals),
            )
        row[j] += coupon
        if i == len(keys) - 1:
            row[j] += bond.face


def bond_cashflows(
    bond: Bond,
    times: Sequence[float],
    decimals: int = DEFAULT_SETTINGS.time_decimals,
    tol: float = DEFAULT_SETTINGS.schedule_tol,
) -> np.ndarray:
    """One bond's cashflows laid out on an arbitrary time axis."""
    key_index = {to_time_key(t, decimals): j for j, t in enumerate(times)}
    row = np.zeros(len(times), dtype=float)
    _fill_row(bond, key_index, row, decimals, tol)
    return row


def build_cashflow_matrix(
    bonds: Sequence[Bond],
    decimals: int = DEFAULT_SETTINGS.time_decimals,
    tol: float = DEFAULT_SETTINGS.schedule_tol,
) -> CashflowMatrix:
    bonds = validate_portfolio(bonds, tol)

    keys = generate_cashflow_time_keys(bonds, decimals, tol)
    key_index = {k: j for j, k in enumerate(keys)}

    matrix = np.zeros((len(bonds), len(keys)), dtype=float)
    for i, b in enumerate(bonds):
        _fill_row(b, key_index, matrix[i], decimals, tol)

    logger.debug("Cashflow matrix built: %s bonds x %s times", matrix.shape[0], matrix.shape[1])

    return CashflowMatrix(
        matrix=matrix,
        times=np.array([from_time_key(k, decimals) for k in keys], dtype=float),
        time_keys=keys,
        prices=np.array([b.price for b in bonds], dtype=float),
        bonds=tuple(bonds),
    )


def cashflow_table(
    bonds: Sequence[Bond],
    decimals: int = DEFAULT_SETTINGS.time_decimals,
    tol: float = DEFAULT_SETTINGS.schedule_tol,
) -> pd.DataFrame:
    """Long format: one row per (bond, payment)."""
    bonds = validate_portfolio(bonds, tol)
    rows = []

    for b in bonds:
        coupon = coupon_payment(b)
        keys = payment_time_keys(b, decimals, tol)
        for i, k in enumerate(keys):
            last = i == len(keys) - 1
            cf = coupon + (b.face if last else 0.0)
            rows.append((b.bond_id, b.maturity, b.coupon_rate, b.freq, b.face, from_time_key(k, decimals), cf, last))

    return pd.DataFrame(
        rows,
        columns=["bond_id", "maturity", "coupon_rate", "freq", "face", "time", "cashflow", "is_principal"],
    )
