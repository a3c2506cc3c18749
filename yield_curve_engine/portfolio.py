from __future__ import annotations

import logging
import numpy as np
import pandas as pd
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from .bonds import Bond
from .cashflows import CashflowMatrix, build_cashflow_matrix
from .curves import BootstrapStep, DiscountFactors, bootstrap_steps, reprice, solve_discount_factors
from .rates import Compounding, ForwardRate, SpotRate, discount_factors_to_spot_rates, spot_rates_to_forward_rates
from .settings import DEFAULT_SETTINGS, EngineSettings
from .ytm import YTMResult, ytm_results

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurveAnalysis:
    matrix: CashflowMatrix
    discount_factors: DiscountFactors
    compounding: Compounding
    spot_rates: List[SpotRate]
    forward_rates: List[ForwardRate]
    ytm: List[YTMResult]
    steps: List[BootstrapStep]   # empty unless the matrix was bootstrapped

    def summary(self) -> pd.DataFrame:
        """Per-bond market price, curve-implied price and YTM."""
        model = reprice(self.matrix, self.discount_factors)
        return pd.DataFrame(
            {
                "bond_id": self.matrix.bond_ids,
                "maturity": [b.maturity for b in self.matrix.bonds],
                "price": self.matrix.prices,
                "model_price": model,
                "residual": model - self.matrix.prices,
                "ytm": [r.ytm for r in self.ytm],
                "flags": ["" if r.converged else "NO_CONVERGENCE" for r in self.ytm],
            }
        )


def analyze_portfolio(
    bonds: Sequence[Bond],
    compounding: Union[Compounding, str] = Compounding.CONTINUOUS,
    settings: Optional[EngineSettings] = None,
    lstsq_method: str = "lstsq",
) -> CurveAnalysis:
    """
    bonds -> cashflow matrix -> discount factors -> spot / forward rates,
    plus per-bond YTM and (for triangular portfolios) the bootstrap trace.

    Solver errors propagate; YTM failures are reported per bond.
    """
    settings = settings or DEFAULT_SETTINGS
    compounding = Compounding.parse(compounding)

    cf = build_cashflow_matrix(bonds, settings.time_decimals, settings.schedule_tol)
    dfs = solve_discount_factors(cf, method="auto", lstsq_method=lstsq_method, settings=settings)

    spots = discount_factors_to_spot_rates(dfs, compounding)
    fwds = spot_rates_to_forward_rates(spots)
    steps = bootstrap_steps(cf, settings.zero_tol) if dfs.method == "bootstrap" else []

    logger.info(
        "Curve from %s bonds / %s times via %s (%s)",
        cf.shape[0],
        cf.shape[1],
        dfs.method,
        compounding.value,
    )
    if dfs.least_squares is not None:
        logger.info(
            "Least squares: cond=%.3e, max |residual|=%.4f",
            dfs.least_squares.condition_number,
            float(np.max(np.abs(dfs.least_squares.residuals))),
        )

    return CurveAnalysis(
        matrix=cf,
        discount_factors=dfs,
        compounding=compounding,
        spot_rates=spots,
        forward_rates=fwds,
        ytm=ytm_results(cf.bonds, settings),
        steps=steps,
    )
