"""
Curve-based repricing and mispricing signals.

A bond is "cheap" (buy) when the market price sits below the price implied by
the bootstrapped spot curve, and "rich" (sell) when above it.
"""
from __future__ import annotations

import logging
import numpy as np
import pandas as pd
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Union

from .bonds import Bond, period_cashflows, sort_by_maturity, validate_portfolio
from .cashflows import build_cashflow_matrix
from .curves import bootstrap_discount_factors, is_triangular
from .exceptions import DomainError, InputError
from .rates import Compounding, SpotRate, discount_factor, spot_rate
from .settings import DEFAULT_SETTINGS, EngineSettings
from .utils import to_time_key

logger = logging.getLogger(__name__)


class Signal(Enum):
    BUY = "buy"     # underpriced
    SELL = "sell"   # overpriced
    FAIR = "fair"


@dataclass(frozen=True)
class MispricingPolicy:
    """Percent-mispricing thresholds for the buy / sell signals."""
    buy_below: float = -0.5
    sell_above: float = 0.5

    def __post_init__(self):
        if self.buy_below > self.sell_above:
            raise ValueError("buy_below must not exceed sell_above")

    def classify(self, percent_mispricing: float) -> Signal:
        if percent_mispricing < self.buy_below:
            return Signal.BUY
        if percent_mispricing > self.sell_above:
            return Signal.SELL
        return Signal.FAIR


@dataclass(frozen=True)
class MispricingResult:
    bond_id: str
    market_price: float
    theoretical_price: float
    mispricing: float            # market - theoretical
    percent_mispricing: float    # mispricing / theoretical * 100
    signal: Signal


def bootstrap_spot_curve(
    bonds: Sequence[Bond],
    compounding: Union[Compounding, str] = Compounding.ANNUAL,
    settings: Optional[EngineSettings] = None,
) -> List[SpotRate]:
    """
    Spot rate at each bond's maturity, shortest first.

    Bonds are sorted by maturity and bootstrapped exactly; for annual
    compounding a zero gives (face/price)^(1/T) - 1 and a coupon bond solves
    its final payment after discounting the earlier coupons on the curve
    built so far. Every bond must add exactly one new payment time.
    """
    settings = settings or DEFAULT_SETTINGS
    compounding = Compounding.parse(compounding)

    ordered = sort_by_maturity(validate_portfolio(bonds, settings.schedule_tol))
    cf = build_cashflow_matrix(ordered, settings.time_decimals, settings.schedule_tol)
    if not is_triangular(cf.matrix, settings.zero_tol):
        raise InputError(
            "Spot curve bootstrap needs one bond per payment date "
            "(e.g. annual bonds maturing at 1, 2, 3, ... years)."
        )

    factors = bootstrap_discount_factors(cf, settings.zero_tol)
    curve = [SpotRate(float(t), spot_rate(float(d), float(t), compounding), compounding) for t, d in zip(cf.times, factors)]

    logger.debug("Spot curve: %s", [(s.time, round(s.rate, 6)) for s in curve])
    return curve


def rate_for_time(curve: Sequence[SpotRate], t: float) -> float:
    """
    Spot rate at the closest curve time; flat beyond the last point.

    Ties go to the shorter time whatever order the curve is given in.
    """
    if not curve:
        raise DomainError("Spot curve is empty.", time=t)

    ordered = sorted(curve, key=lambda s: s.time)
    times = np.array([s.time for s in ordered], dtype=float)
    if t >= times[-1]:
        return float(ordered[-1].rate)
    return float(ordered[int(np.argmin(np.abs(times - t)))].rate)


def theoretical_price(
    bond: Bond,
    curve: Sequence[SpotRate],
    tol: float = DEFAULT_SETTINGS.schedule_tol,
) -> float:
    """PV of the bond's cashflows discounted at the curve's spot rates."""
    if not curve:
        raise DomainError("Spot curve is empty.")

    compounding = curve[0].compounding
    cfs = period_cashflows(bond, tol)

    pv = 0.0
    for i, cf in enumerate(cfs, start=1):
        t = i / bond.freq
        pv += cf * discount_factor(rate_for_time(curve, t), t, compounding)
    return pv


def _reference_curves(
    bonds: List[Bond],
    compounding: Compounding,
    settings: EngineSettings,
) -> Dict[str, List[SpotRate]]:
    # each bond is judged against the points bootstrapped from strictly
    # shorter bonds; the shortest bond only has its own point
    full = bootstrap_spot_curve(bonds, compounding, settings)
    out = {}
    for b in bonds:
        mat_key = to_time_key(b.maturity, settings.time_decimals)
        shorter = [s for s in full if to_time_key(s.time, settings.time_decimals) < mat_key]
        if not shorter:
            shorter = [s for s in full if to_time_key(s.time, settings.time_decimals) == mat_key]
        out[b.bond_id] = shorter
    return out


def analyze_mispricing(
    bonds: Sequence[Bond],
    curve: Optional[Sequence[SpotRate]] = None,
    policy: Optional[MispricingPolicy] = None,
    compounding: Union[Compounding, str] = Compounding.ANNUAL,
    settings: Optional[EngineSettings] = None,
) -> List[MispricingResult]:
    """
    Theoretical price, mispricing and buy/sell/fair signal per bond.

    With an explicit curve every bond is priced on it. Otherwise the curve is
    bootstrapped from the bonds themselves and each bond is priced on the
    part of it implied by shorter maturities.
    """
    settings = settings or DEFAULT_SETTINGS
    policy = policy or MispricingPolicy()
    bonds = validate_portfolio(bonds, settings.schedule_tol)

    if curve is not None:
        curve = list(curve)
        if not curve:
            raise DomainError("Spot curve is empty.")
        references = {b.bond_id: curve for b in bonds}
    else:
        references = _reference_curves(bonds, Compounding.parse(compounding), settings)

    results: List[MispricingResult] = []
    for b in bonds:
        theo = theoretical_price(b, references[b.bond_id], settings.schedule_tol)
        if theo <= 0:
            raise DomainError(f"{b.bond_id}: non-positive theoretical price {theo}.", bond_id=b.bond_id)

        mis = b.price - theo
        pct = 100.0 * mis / theo
        signal = policy.classify(pct)
        if signal is not Signal.FAIR:
            logger.info("%s %s: market %.2f vs theoretical %.2f (%.2f%%)", b.bond_id, signal.value, b.price, theo, pct)

        results.append(MispricingResult(b.bond_id, b.price, theo, mis, pct, signal))

    return results


def mispricing_table(
    bonds: Sequence[Bond],
    curve: Optional[Sequence[SpotRate]] = None,
    policy: Optional[MispricingPolicy] = None,
    compounding: Union[Compounding, str] = Compounding.ANNUAL,
    settings: Optional[EngineSettings] = None,
) -> pd.DataFrame:
    results = analyze_mispricing(bonds, curve, policy, compounding, settings)
    return pd.DataFrame(
        {
            "bond_id": [r.bond_id for r in results],
            "market_price": [r.market_price for r in results],
            "theoretical_price": [r.theoretical_price for r in results],
            "mispricing": [r.mispricing for r in results],
            "percent_mispricing": [r.percent_mispricing for r in results],
            "signal": [r.signal.value for r in results],
        }
    )
