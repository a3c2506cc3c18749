from __future__ import annotations

import numpy as np
import pandas as pd
from typing import Optional, Sequence

from .bonds import Bond, period_cashflows, price_from_yield
from .settings import EngineSettings
from .ytm import ytm_results


def _discounted(bond: Bond, ytm: float):
    cfs = period_cashflows(bond)
    i = np.arange(1, len(cfs) + 1, dtype=float)
    base = 1.0 + ytm / bond.freq
    return cfs, i, base, cfs * base ** (-i)


def macaulay_duration(bond: Bond, ytm: float) -> float:
    """PV-weighted average time (years) of the bond's cashflows."""
    _, i, _, pv = _discounted(bond, ytm)
    return float(np.sum((i / bond.freq) * pv) / np.sum(pv))


def modified_duration(bond: Bond, ytm: float) -> float:
    return macaulay_duration(bond, ytm) / (1.0 + ytm / bond.freq)


def convexity(bond: Bond, ytm: float) -> float:
    """(1/P) d2P/dy2 in years^2, for compounding at the bond's frequency."""
    cfs, i, base, pv = _discounted(bond, ytm)
    d2 = np.sum(cfs * i * (i + 1) * base ** (-(i + 2))) / bond.freq ** 2
    return float(d2 / np.sum(pv))


def dv01(bond: Bond, ytm: float, bump_bp: float = 1.0) -> float:
    """Price change for a +bump_bp yield move (negative for a long bond)."""
    h = bump_bp / 10000.0
    return price_from_yield(bond, ytm + h) - price_from_yield(bond, ytm)


def duration_from_dv01(dv01_value: float, price: float, bump_bp: float = 1.0) -> float:
    return -dv01_value / (price * bump_bp / 10000.0)


def yield_risk_table(bonds: Sequence[Bond], settings: Optional[EngineSettings] = None) -> pd.DataFrame:
    """YTM, durations, convexity and DV01 per bond at its own market yield."""
    bonds = list(bonds)
    rows = []
    for b, res in zip(bonds, ytm_results(bonds, settings)):
        if not res.converged:
            rows.append((b.bond_id, np.nan, np.nan, np.nan, np.nan, np.nan, "NO_CONVERGENCE"))
            continue
        y = res.ytm
        rows.append(
            (
                b.bond_id,
                y,
                macaulay_duration(b, y),
                modified_duration(b, y),
                convexity(b, y),
                dv01(b, y),
                "",
            )
        )

    return pd.DataFrame(
        rows,
        columns=["bond_id", "ytm", "mac_duration", "mod_duration", "convexity", "dv01", "flags"],
    )


def rate_shock_table(bonds: Sequence[Bond], base_yield: float, shock_bp: float) -> pd.DataFrame:
    """Reprice every bond at base_yield and base_yield + shock_bp."""
    shift = shock_bp / 10000.0
    rows = []
    for b in bonds:
        p0 = price_from_yield(b, base_yield)
        p1 = price_from_yield(b, base_yield + shift)
        rows.append((b.bond_id, b.maturity, b.coupon_rate, p0, p1, p1 - p0, 100.0 * (p1 - p0) / p0))

    return pd.DataFrame(
        rows,
        columns=["bond_id", "maturity", "coupon_rate", "original_price", "shocked_price", "price_change", "pct_change"],
    )


def price_yield_table(bond: Bond, ytm: float, span: float = 0.04, step: float = 0.005) -> pd.DataFrame:
    """
    Actual price versus the first-order (modified duration) estimate on a
    yield grid around ytm. The gap between the two is the convexity effect.
    """
    if step <= 0:
        raise ValueError("step must be positive")

    p0 = price_from_yield(bond, ytm)
    d_mod = modified_duration(bond, ytm)

    lo = max(0.0, ytm - span)
    n = int(np.floor((ytm + span - lo) / step + 1e-9)) + 1
    yields = lo + step * np.arange(n)

    actual = np.array([price_from_yield(bond, y) for y in yields], dtype=float)
    estimate = p0 - d_mod * p0 * (yields - ytm)

    return pd.DataFrame({"yield": yields, "actual_price": actual, "duration_estimate": estimate})
