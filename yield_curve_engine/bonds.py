from __future__ import annotations

import numpy as np
import pandas as pd
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence

from .exceptions import InputError
from .settings import DEFAULT_SETTINGS
from .utils import SUPPORTED_FREQUENCIES, payment_count


@dataclass(frozen=True)
class Bond:
    bond_id: str
    maturity: float        # years
    coupon_rate: float     # decimal, e.g. 0.05 = 5%
    freq: int = 2
    price: float = 100.0   # market (clean) price, same units as face
    face: float = 100.0


def validate_bond(bond: Bond, tol: float = DEFAULT_SETTINGS.schedule_tol) -> None:
    if not bond.bond_id:
        raise InputError("Bond id must be non-empty.")
    if not (bond.maturity > 0):
        raise InputError(f"{bond.bond_id}: maturity must be positive.", bond_id=bond.bond_id)
    if bond.freq not in SUPPORTED_FREQUENCIES:
        raise InputError(f"{bond.bond_id}: supported frequencies: 1, 2, 4.", bond_id=bond.bond_id)
    if not (bond.coupon_rate >= 0):
        raise InputError(f"{bond.bond_id}: coupon rate must be >= 0.", bond_id=bond.bond_id)
    if not (bond.price > 0):
        raise InputError(f"{bond.bond_id}: price must be positive.", bond_id=bond.bond_id)
    if not (bond.face > 0):
        raise InputError(f"{bond.bond_id}: face value must be positive.", bond_id=bond.bond_id)
    payment_count(bond, tol)


def validate_portfolio(bonds: Sequence[Bond], tol: float = DEFAULT_SETTINGS.schedule_tol) -> List[Bond]:
    bonds = list(bonds)
    if not bonds:
        raise InputError("Bond portfolio is empty.")

    seen = set()
    for b in bonds:
        validate_bond(b, tol)
        if b.bond_id in seen:
            raise InputError(f"Duplicate bond id {b.bond_id!r}.", bond_id=b.bond_id)
        seen.add(b.bond_id)
    return bonds


def coupon_payment(bond: Bond) -> float:
    return bond.face * bond.coupon_rate / bond.freq


def period_cashflows(bond: Bond, tol: float = DEFAULT_SETTINGS.schedule_tol) -> np.ndarray:
    """Cashflow per period 1..n; the last one includes the face value."""
    n = payment_count(bond, tol)
    cfs = np.full(n, coupon_payment(bond), dtype=float)
    cfs[-1] += bond.face
    return cfs


def payment_schedule(bond: Bond) -> pd.DataFrame:
    validate_bond(bond)
    cfs = period_cashflows(bond)
    n = len(cfs)
    periods = np.arange(1, n + 1)

    return pd.DataFrame(
        {
            "period": periods,
            "time": periods / bond.freq,
            "payment": cfs,
            "type": ["coupon"] * (n - 1) + ["coupon+principal"],
        }
    )


def price_from_yield(bond: Bond, ytm: float) -> float:
    """
    Price per bond (same units as face) at a yield compounded at the bond's
    own frequency:  P = sum CF_i / (1 + y/f)^i.
    """
    base = 1.0 + ytm / bond.freq
    if base <= 0:
        raise InputError(f"{bond.bond_id}: yield {ytm} implies a non-positive discount base.", bond_id=bond.bond_id)

    cfs = period_cashflows(bond)
    i = np.arange(1, len(cfs) + 1, dtype=float)
    return float(np.sum(cfs * base ** (-i)))


def bond_summary(bond: Bond, ytm: float) -> Dict[str, float]:
    """Price at a yield plus premium/discount and current yield."""
    price = price_from_yield(bond, ytm)
    pd_amount = price - bond.face

    if abs(pd_amount) < 1e-9 * bond.face:
        label = "par"
    elif pd_amount > 0:
        label = "premium"
    else:
        label = "discount"

    return {
        "bond_id": bond.bond_id,
        "price": price,
        "premium_discount": pd_amount,
        "premium_discount_pct": 100.0 * pd_amount / bond.face,
        "label": label,
        "current_yield": bond.face * bond.coupon_rate / price,
    }


def sort_by_maturity(bonds: Iterable[Bond]) -> List[Bond]:
    return sorted(bonds, key=lambda b: b.maturity)
