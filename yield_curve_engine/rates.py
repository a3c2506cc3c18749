from __future__ import annotations

import logging
import numpy as np
from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence, Union

from .exceptions import DomainError

logger = logging.getLogger(__name__)


class Compounding(Enum):
    """Compounding convention of a spot rate."""

    CONTINUOUS = "continuous"
    ANNUAL = "annual"
    SEMIANNUAL = "semiannual"

    @classmethod
    def parse(cls, value: Union["Compounding", str]) -> "Compounding":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise DomainError(f"Unknown compounding convention: {value!r}") from None


@dataclass(frozen=True)
class SpotRate:
    time: float
    rate: float
    compounding: Compounding = Compounding.CONTINUOUS


@dataclass(frozen=True)
class ForwardRate:
    start: float
    time: float   # end of the forward period
    rate: float


def spot_rate(df: float, t: float, compounding: Union[Compounding, str] = Compounding.CONTINUOUS) -> float:
    """
    Annualized spot rate implied by a discount factor D(t):

    - continuous:  -ln(D) / t
    - annual:      (1/D)^(1/t) - 1
    - semiannual:  2 * ((1/D)^(1/(2t)) - 1)
    """
    compounding = Compounding.parse(compounding)
    if not (t > 0):
        raise DomainError(f"Spot rate undefined at t={t}; times must be strictly positive.", time=t)
    if not (df > 0):
        raise DomainError(f"Discount factor {df} at t={t} must be positive.", time=t)

    if compounding is Compounding.CONTINUOUS:
        return float(-np.log(df) / t)
    if compounding is Compounding.ANNUAL:
        return float((1.0 / df) ** (1.0 / t) - 1.0)
    return float(2.0 * ((1.0 / df) ** (1.0 / (2.0 * t)) - 1.0))


def discount_factor(rate: float, t: float, compounding: Union[Compounding, str] = Compounding.CONTINUOUS) -> float:
    """Inverse of spot_rate."""
    compounding = Compounding.parse(compounding)
    if t < 0:
        raise DomainError(f"Negative time t={t}.", time=t)

    if compounding is Compounding.CONTINUOUS:
        return float(np.exp(-rate * t))
    if compounding is Compounding.ANNUAL:
        base = 1.0 + rate
    else:
        base = 1.0 + rate / 2.0
        t = 2.0 * t
    if base <= 0:
        raise DomainError(f"Rate {rate} implies a non-positive compounding base.", time=t)
    return float(base ** (-t))


def discount_factors_to_spot_rates(
    dfs,
    compounding: Union[Compounding, str] = Compounding.CONTINUOUS,
) -> List[SpotRate]:
    """Spot rate for every (time, factor) pair of a DiscountFactors object."""
    compounding = Compounding.parse(compounding)
    return [
        SpotRate(float(t), spot_rate(float(d), float(t), compounding), compounding)
        for t, d in zip(dfs.times, dfs.factors)
    ]


def spot_rates_to_forward_rates(spot_rates: Sequence[SpotRate], strict: bool = False) -> List[ForwardRate]:
    """
    Forward rate between adjacent curve points:

        f(t1, t2) = (s2 * t2 - s1 * t1) / (t2 - t1)

    Exact for continuously-compounded spots; for annual / semiannual spots it
    is the usual linear approximation.

    Fewer than two points gives an empty list (strict=True raises instead).
    """
    spot_rates = list(spot_rates)
    if len(spot_rates) < 2:
        if strict:
            raise DomainError("Forward rates need at least two spot points.")
        return []

    out: List[ForwardRate] = []
    for prev, cur in zip(spot_rates[:-1], spot_rates[1:]):
        t1, t2 = prev.time, cur.time
        if not (t2 > t1):
            raise DomainError(f"Spot times must be strictly ascending ({t1} -> {t2}).", time=t2)

        fwd = (cur.rate * t2 - prev.rate * t1) / (t2 - t1)
        if fwd < 0:
            logger.warning("Negative forward rate %.6f between t=%s and t=%s", fwd, t1, t2)
        out.append(ForwardRate(start=t1, time=t2, rate=fwd))

    return out
