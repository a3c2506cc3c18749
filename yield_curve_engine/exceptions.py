from __future__ import annotations

from typing import Optional


class EngineError(Exception):
    """Base class for every failure raised by the engine.

    Carries the bond and/or time the failure relates to so callers can
    report it next to the right row.
    """

    def __init__(self, message: str, *, bond_id: Optional[str] = None, time: Optional[float] = None):
        super().__init__(message)
        self.bond_id = bond_id
        self.time = time


class InputError(EngineError, ValueError):
    """Malformed bond, empty portfolio or broken cashflow-matrix invariant."""


class DomainError(EngineError, ValueError):
    """Rate conversion outside its domain (t <= 0, df <= 0, too few points)."""


class SingularSystemError(EngineError, ArithmeticError):
    """Least-squares system is rank deficient or numerically degenerate."""


class ConvergenceError(EngineError, ArithmeticError):
    """Yield root finding did not converge or left the plausible domain."""

    def __init__(
        self,
        message: str,
        *,
        bond_id: Optional[str] = None,
        time: Optional[float] = None,
        last_iterate: Optional[float] = None,
        iterations: int = 0,
    ):
        super().__init__(message, bond_id=bond_id, time=time)
        self.last_iterate = last_iterate
        self.iterations = iterations
