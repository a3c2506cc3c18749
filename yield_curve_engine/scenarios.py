from __future__ import annotations

import numpy as np
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

from .bonds import Bond


def triangular_dataset() -> List[Bond]:
    """Semiannual bonds maturing every six months: one new time per bond."""
    return [
        Bond("1", 0.5, 0.030, 2, 100.5, 100.0),
        Bond("2", 1.0, 0.035, 2, 101.2, 100.0),
        Bond("3", 1.5, 0.040, 2, 102.1, 100.0),
        Bond("4", 2.0, 0.045, 2, 103.5, 100.0),
        Bond("5", 2.5, 0.050, 2, 105.2, 100.0),
        Bond("6", 3.0, 0.055, 2, 107.1, 100.0),
    ]


def mixed_frequency_dataset() -> List[Bond]:
    """
    Semiannual and quarterly bonds with overlapping maturities.

    8 payment times but only 7 bonds: the discount factors are not
    identified and the least-squares solve raises SingularSystemError.
    """
    return [
        Bond("1", 0.5, 0.030, 2, 100.5, 100.0),
        Bond("2", 0.75, 0.032, 4, 100.8, 100.0),
        Bond("3", 1.0, 0.035, 2, 101.2, 100.0),
        Bond("4", 1.0, 0.036, 4, 101.5, 100.0),
        Bond("5", 1.5, 0.040, 2, 102.1, 100.0),
        Bond("6", 2.0, 0.045, 2, 103.5, 100.0),
        Bond("7", 2.0, 0.046, 4, 103.8, 100.0),
    ]


def overdetermined_dataset() -> List[Bond]:
    """mixed_frequency_dataset plus quarterly 1.25Y and 1.75Y bonds: 9 bonds, 8 times."""
    return mixed_frequency_dataset() + [
        Bond("8", 1.25, 0.038, 4, 101.9, 100.0),
        Bond("9", 1.75, 0.042, 4, 102.9, 100.0),
    ]


# annual-coupon bonds quoted per 1000 face for the arbitrage walkthrough
ARBITRAGE_SCENARIOS: Dict[str, List[Bond]] = {
    "no_arbitrage": [
        Bond("B1", 1.0, 0.00, 1, 952.38, 1000.0),
        Bond("B2", 2.0, 0.00, 1, 907.03, 1000.0),
        Bond("B3", 3.0, 0.05, 1, 1000.00, 1000.0),
    ],
    "mispriced_bond": [
        Bond("B1", 1.0, 0.00, 1, 952.38, 1000.0),
        Bond("B2", 2.0, 0.00, 1, 907.03, 1000.0),
        Bond("B3", 3.0, 0.05, 1, 1020.00, 1000.0),
    ],
    "multiple_mispricings": [
        Bond("B1", 1.0, 0.00, 1, 960.00, 1000.0),
        Bond("B2", 2.0, 0.00, 1, 900.00, 1000.0),
        Bond("B3", 3.0, 0.05, 1, 1015.00, 1000.0),
        Bond("B4", 4.0, 0.06, 1, 1050.00, 1000.0),
    ],
}


def arbitrage_scenario(name: str) -> List[Bond]:
    try:
        return list(ARBITRAGE_SCENARIOS[name])
    except KeyError:
        raise KeyError(f"Unknown scenario {name!r}; choose from {sorted(ARBITRAGE_SCENARIOS)}") from None


def rate_risk_bonds(face: float = 1000.0) -> List[Bond]:
    """Short / medium / long semiannual bonds for rate-shock comparisons."""
    return [
        Bond("2Y_3.0", 2.0, 0.030, 2, face, face),
        Bond("5Y_4.0", 5.0, 0.040, 2, face, face),
        Bond("10Y_5.0", 10.0, 0.050, 2, face, face),
        Bond("30Y_5.5", 30.0, 0.055, 2, face, face),
    ]


def new_bond(bond_id: str) -> Bond:
    return Bond(bond_id, 1.0, 0.05, 2, 100.0, 100.0)


def add_price_noise(bonds: Sequence[Bond], magnitude: float = 0.1, seed: Optional[int] = None) -> List[Bond]:
    """
    Return copies of the bonds with prices shifted by U(-magnitude/2, magnitude/2).

    Pass a seed for reproducible output.
    """
    rng = np.random.default_rng(seed)
    noise = (rng.random(len(bonds)) - 0.5) * magnitude
    return [replace(b, price=b.price + float(e)) for b, e in zip(bonds, noise)]
