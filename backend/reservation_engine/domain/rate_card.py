"""
Duration-tiered rate cards.

The longest price tier that fits the remaining duration is always used first.
Eg. for a 12 hours reservation with tiers of 7 hours, 3 hours and the hourly
base price, the card is 7h + 3h + 1h + 1h.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence

from .errors import RateCardExhaustedError
from .records import Price

BASE_DURATION = 60
MINUTES_PER_HOUR = Decimal(60)


@dataclass(frozen=True)
class TierAllotment:
    price: Price
    duration: int

    @property
    def hourly_rate(self) -> Decimal:
        return Decimal(self.price.amount) * MINUTES_PER_HOUR / Decimal(self.price.billed_duration)


def base_price(prices: Sequence[Price]) -> Optional[Price]:
    for price in prices:
        if price.duration == BASE_DURATION:
            return price
    for price in prices:
        if not price.duration:
            return price
    return None


def _longest_fitting(prices: Sequence[Price], remaining: int) -> Optional[Price]:
    best: Optional[Price] = None
    for price in prices:
        if price.duration is None or price.duration <= 0 or price.duration > remaining:
            continue
        if best is None or price.duration > (best.duration or 0):
            best = price
    return best


def resolve_rate_card(prices: Sequence[Price], total_duration: int) -> list[TierAllotment]:
    """
    Decompose `total_duration` minutes over the rate card, longest tier first.
    Allotted durations sum exactly to `total_duration`; the result is sorted by
    allotted duration, longest first.
    """
    fallback = base_price(prices)
    allotments: list[TierAllotment] = []
    remaining = total_duration
    while remaining > 0:
        tier = _longest_fitting(prices, remaining) or fallback
        if tier is None:
            raise RateCardExhaustedError(f"no price covers the remaining {remaining} minutes")
        tier_duration = tier.duration if tier.duration and tier.duration > 0 else BASE_DURATION
        current = min(remaining, tier_duration)
        allotments.append(TierAllotment(price=tier, duration=current))
        remaining -= current

    # sorted() is stable: equal durations keep their discovery order
    return sorted(allotments, key=lambda a: a.duration, reverse=True)
