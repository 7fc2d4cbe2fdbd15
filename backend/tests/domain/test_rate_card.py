from decimal import Decimal

import pytest
from reservation_engine.domain.errors import RateCardExhaustedError
from reservation_engine.domain.rate_card import TierAllotment, base_price, resolve_rate_card
from reservation_engine.domain.records import Price

HOURLY = Price(amount=1000, duration=60)
THREE_HOURS = Price(amount=2400, duration=180)
SEVEN_HOURS = Price(amount=4900, duration=420)


def test_longest_tier_first_then_base_repeated() -> None:
    card = resolve_rate_card([HOURLY, THREE_HOURS, SEVEN_HOURS], 12 * 60)
    assert [a.duration for a in card] == [420, 180, 60, 60]
    assert [a.price for a in card] == [SEVEN_HOURS, THREE_HOURS, HOURLY, HOURLY]


def test_duration_equal_to_one_tier_yields_single_allotment() -> None:
    card = resolve_rate_card([HOURLY, THREE_HOURS], 180)
    assert card == [TierAllotment(price=THREE_HOURS, duration=180)]


def test_shortfall_below_base_duration_is_a_partial_base_allotment() -> None:
    card = resolve_rate_card([HOURLY, THREE_HOURS], 210)
    assert [a.duration for a in card] == [180, 30]
    assert card[1].price == HOURLY


@pytest.mark.parametrize("total", [1, 59, 61, 125, 600, 1441])
def test_allotments_sum_to_total_duration(total: int) -> None:
    card = resolve_rate_card([HOURLY, THREE_HOURS, SEVEN_HOURS], total)
    assert sum(a.duration for a in card) == total


def test_zero_and_negative_tiers_are_skipped() -> None:
    card = resolve_rate_card([Price(amount=0, duration=0), Price(amount=5, duration=-30), HOURLY], 120)
    assert [a.price for a in card] == [HOURLY, HOURLY]


def test_row_without_duration_acts_as_base_price() -> None:
    hourly = Price(amount=800)
    assert base_price([THREE_HOURS, hourly]) == hourly
    card = resolve_rate_card([THREE_HOURS, hourly], 240)
    assert [a.duration for a in card] == [180, 60]


def test_missing_base_price_raises() -> None:
    with pytest.raises(RateCardExhaustedError):
        resolve_rate_card([THREE_HOURS], 200)


def test_hourly_rate_of_a_tier() -> None:
    assert TierAllotment(price=SEVEN_HOURS, duration=420).hourly_rate == Decimal(700)
    assert TierAllotment(price=HOURLY, duration=30).hourly_rate == Decimal(1000)
