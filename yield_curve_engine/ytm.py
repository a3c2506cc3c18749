from __future__ import annotations

import logging
import numpy as np
import pandas as pd
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .bonds import Bond, period_cashflows, validate_bond
from .exceptions import ConvergenceError
from .settings import DEFAULT_SETTINGS, EngineSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class YTMResult:
    bond_id: str
    ytm: float                     # NaN when the solve failed
    error: Optional[str] = None
    iterations: int = 0

    @property
    def converged(self) -> bool:
        return self.error is None


def _price_and_derivative(cfs: np.ndarray, y: float, freq: int) -> Tuple[float, float]:
    base = 1.0 + y / freq
    i = np.arange(1, len(cfs) + 1, dtype=float)
    disc = base ** (-i)
    pv = float(np.sum(cfs * disc))
    dpv = float(-np.sum(cfs * i * disc) / (freq * base))
    return pv, dpv


def _solve_ytm(bond: Bond, settings: EngineSettings) -> Tuple[float, int]:
    validate_bond(bond, settings.schedule_tol)
    cfs = period_cashflows(bond, settings.schedule_tol)
    y = float(bond.coupon_rate)

    for iteration in range(1, settings.ytm_max_iter + 1):
        pv, dpv = _price_and_derivative(cfs, y, bond.freq)
        error = pv - bond.price
        logger.debug("%s Newton iter %s: y=%.10f error=%.3e", bond.bond_id, iteration, y, error)

        if abs(error) < settings.ytm_tol:
            return y, iteration

        if dpv == 0.0:
            raise ConvergenceError(
                f"{bond.bond_id}: zero price derivative at y={y}.",
                bond_id=bond.bond_id,
                last_iterate=y,
                iterations=iteration,
            )

        y = y - error / dpv

        if not (settings.ytm_lower <= y <= settings.ytm_upper):
            raise ConvergenceError(
                f"{bond.bond_id}: yield iterate {y:.4f} left [{settings.ytm_lower}, {settings.ytm_upper}].",
                bond_id=bond.bond_id,
                last_iterate=y,
                iterations=iteration,
            )

    raise ConvergenceError(
        f"{bond.bond_id}: no convergence after {settings.ytm_max_iter} iterations.",
        bond_id=bond.bond_id,
        last_iterate=y,
        iterations=settings.ytm_max_iter,
    )


def calculate_ytm(bond: Bond, settings: Optional[EngineSettings] = None) -> float:
    """
    Yield to maturity with compounding at the bond's own frequency:

        price = sum CF_i / (1 + y/f)^i

    Newton-Raphson from y0 = coupon rate. Raises ConvergenceError when the
    iteration leaves [ytm_lower, ytm_upper] or runs out of iterations.
    """
    settings = settings or DEFAULT_SETTINGS
    y, iterations = _solve_ytm(bond, settings)
    logger.debug("%s YTM %.8f after %s iterations", bond.bond_id, y, iterations)
    return y


def ytm_results(bonds: Sequence[Bond], settings: Optional[EngineSettings] = None) -> List[YTMResult]:
    """YTM per bond; convergence failures become explicit failed results."""
    settings = settings or DEFAULT_SETTINGS
    out: List[YTMResult] = []

    for b in bonds:
        try:
            y, iterations = _solve_ytm(b, settings)
        except ConvergenceError as exc:
            logger.warning("YTM failed for %s: %s", b.bond_id, exc)
            out.append(YTMResult(b.bond_id, float("nan"), error=str(exc), iterations=exc.iterations))
        else:
            out.append(YTMResult(b.bond_id, y, iterations=iterations))

    return out


def ytm_table(bonds: Sequence[Bond], settings: Optional[EngineSettings] = None) -> pd.DataFrame:
    bonds = list(bonds)
    results = ytm_results(bonds, settings)

    return pd.DataFrame(
        {
            "bond_id": [b.bond_id for b in bonds],
            "maturity": [b.maturity for b in bonds],
            "coupon_rate": [b.coupon_rate for b in bonds],
            "freq": [b.freq for b in bonds],
            "price": [b.price for b in bonds],
            "face": [b.face for b in bonds],
            "ytm": [r.ytm for r in results],
            "flags": ["" if r.converged else "NO_CONVERGENCE" for r in results],
        }
    )
