"""
Yield Curve Bootstrapping Engine

Modules:
- bonds: bond records, validation, yield pricing + payment schedule
- cashflows: cashflow matrix on a pooled, integer-keyed time axis
- curves: discount factors (triangular bootstrap / least squares) + step trace
- rates: compounding conventions, spot and forward rates
- ytm: yield to maturity (Newton-Raphson)
- arbitrage: spot-curve repricing and buy/sell/fair signals
- risk: duration / convexity / DV01 / rate shocks
- portfolio: end-to-end curve analysis of a bond set
- scenarios: example datasets
"""
import logging

logging.getLogger(__name__).addHandler(logging.NullHandler())
