from __future__ import annotations

from dataclasses import dataclass, replace as _replace


@dataclass(frozen=True)
class EngineSettings:
    """
    Numerical knobs shared across the engine.

    - time_decimals: precision of the integer time keys (3 -> 1/1000 year)
    - zero_tol: entries with |x| <= zero_tol count as zero in the cashflow matrix
    - schedule_tol: max distance of maturity * freq from an integer
    - ytm_*: Newton-Raphson bounds for yield to maturity
    - max_condition: least-squares systems above this are treated as singular
    """
    time_decimals: int = 3
    zero_tol: float = 1e-10
    schedule_tol: float = 1e-6
    ytm_max_iter: int = 100
    ytm_tol: float = 1e-8
    ytm_lower: float = -0.5
    ytm_upper: float = 2.0
    max_condition: float = 1e14

    def __post_init__(self):
        if self.time_decimals < 2:
            raise ValueError("time_decimals must be at least 2 to resolve quarterly payments")
        if self.ytm_lower >= self.ytm_upper:
            raise ValueError("ytm_lower must be below ytm_upper")
        if self.ytm_max_iter <= 0:
            raise ValueError("ytm_max_iter must be positive")

    def replace(self, **changes) -> "EngineSettings":
        return _replace(self, **changes)


DEFAULT_SETTINGS = EngineSettings()
