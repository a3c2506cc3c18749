from __future__ import annotations

from typing import List

from .exceptions import InputError
from .settings import DEFAULT_SETTINGS

SUPPORTED_FREQUENCIES = (1, 2, 4)


def to_time_key(t: float, decimals: int = DEFAULT_SETTINGS.time_decimals) -> int:
    """Canonical integer key for a time in years (units of 10**-decimals years)."""
    return int(round(float(t) * 10 ** decimals))


def from_time_key(key: int, decimals: int = DEFAULT_SETTINGS.time_decimals) -> float:
    return key / float(10 ** decimals)


def payment_count(bond, tol: float = DEFAULT_SETTINGS.schedule_tol) -> int:
    """
    Number of scheduled payments = maturity * freq.

    Raises InputError when the product is not (numerically) an integer, e.g.
    maturity=0.6 with freq=2, instead of rounding a partial period away.
    """
    periods = bond.maturity * bond.freq
    n = int(round(periods))
    if abs(periods - n) > tol:
        raise InputError(
            f"{bond.bond_id}: maturity {bond.maturity} x freq {bond.freq} = {periods:.6g} "
            "is not a whole number of periods.",
            bond_id=bond.bond_id,
        )
    if n < 1:
        raise InputError(f"{bond.bond_id}: schedule has no payments.", bond_id=bond.bond_id)
    return n


def payment_time_keys(
    bond,
    decimals: int = DEFAULT_SETTINGS.time_decimals,
    tol: float = DEFAULT_SETTINGS.schedule_tol,
) -> List[int]:
    """
    Time keys of the bond's nonzero payments, ending at maturity.

    A zero-coupon bond only pays at maturity, so it contributes one key.
    Every payment time must be exact at the given precision; otherwise
    payments would merge, land on t=0 or shift, and InputError is raised.
    """
    n = payment_count(bond, tol)
    scale = 10 ** decimals
    periods = [n] if bond.coupon_rate == 0 else range(1, n + 1)

    if any((i * scale) % bond.freq for i in periods):
        raise InputError(
            f"{bond.bond_id}: {decimals} time decimals cannot resolve payments at frequency {bond.freq}.",
            bond_id=bond.bond_id,
        )
    return [int(i * scale // bond.freq) for i in periods]
