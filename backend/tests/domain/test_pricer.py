from datetime import datetime, timedelta, timezone
from typing import Sequence

import pytest
from reservation_engine.domain.errors import InvalidReservableTypeError
from reservation_engine.domain.ledger import CreditGrant, CreditLedger, PrepaidPackBalance
from reservation_engine.domain.pricer import PricingOptions, ReservationPricer
from reservation_engine.domain.records import (
    Price,
    RequestedSlot,
    ReservableKind,
    ReservationRequest,
    Resource,
    Role,
    User,
)

NOW = datetime(2026, 3, 1, 8, 0)
DAY = datetime(2026, 3, 2, 9, 0)
HOURLY = Price(amount=1000, duration=60)
THREE_HOURS = Price(amount=2400, duration=180)
CUSTOMER = User(id=1)


def _slots(*minutes: int, start: datetime = DAY, offered: bool = False) -> tuple[RequestedSlot, ...]:
    slots = []
    cursor = start
    for length in minutes:
        end = cursor + timedelta(minutes=length)
        slots.append(RequestedSlot(start_at=cursor, end_at=end, availability_id=1, offered=offered))
        cursor = end
    return tuple(slots)


def _request(
    slots: Sequence[RequestedSlot],
    kind: ReservableKind = ReservableKind.MACHINE,
    operator: User = CUSTOMER,
) -> ReservationRequest:
    return ReservationRequest(
        customer=CUSTOMER,
        operator=operator,
        resource=Resource(id=3, kind=kind),
        slots=tuple(slots),
    )


def _price(request, rate_card=(HOURLY,), ledger=CreditLedger(), options=None):
    return ReservationPricer(options).price(request, rate_card=list(rate_card), ledger=ledger, at=NOW)


def test_half_hour_on_hourly_card() -> None:
    breakdown = _price(_request(_slots(30)))
    assert breakdown.amount == 500
    assert len(breakdown.slots) == 1
    assert breakdown.slots[0].promo is False


def test_prepaid_minutes_cover_two_hours() -> None:
    ledger = CreditLedger(packs=(PrepaidPackBalance(id=9, minutes=120),))
    breakdown = _price(_request(_slots(60, 60)), ledger=ledger)
    assert [e.price for e in breakdown.slots] == [0, 0]
    assert breakdown.prepaid_minutes_used == 120

    debit = ledger.debit(breakdown, NOW)
    assert debit.packs == ((9, 120),)
    assert ledger.available_prepaid_minutes(NOW) - debit.prepaid_minutes == 0


def test_prepaid_balance_runs_out_then_full_rate() -> None:
    ledger = CreditLedger(packs=(PrepaidPackBalance(id=9, minutes=90),))
    breakdown = _price(_request(_slots(60, 60, 60)), ledger=ledger)
    assert [e.price for e in breakdown.slots] == [0, 500, 1000]
    assert breakdown.prepaid_minutes_used == 90


def test_credit_hours_cover_first_slots_in_input_order() -> None:
    ledger = CreditLedger(grant=CreditGrant(credit_id=2, hours=2))
    breakdown = _price(_request(_slots(60, 60, 60, 60)), ledger=ledger)
    assert [e.price for e in breakdown.slots] == [0, 0, 1000, 1000]
    assert [e.promo for e in breakdown.slots] == [True, True, False, False]
    assert breakdown.credit_hours_used == 2


def test_credits_are_used_before_prepaid_minutes() -> None:
    ledger = CreditLedger(grant=CreditGrant(credit_id=2, hours=1), packs=(PrepaidPackBalance(id=9, minutes=60),))
    breakdown = _price(_request(_slots(60, 60, 60)), ledger=ledger)
    assert [e.price for e in breakdown.slots] == [0, 0, 1000]
    assert breakdown.credit_hours_used == 1
    assert breakdown.prepaid_minutes_used == 60


def test_tiers_are_consumed_in_order_across_slots() -> None:
    breakdown = _price(_request(_slots(60, 60, 60, 60)), rate_card=(HOURLY, THREE_HOURS))
    assert [e.price for e in breakdown.slots] == [800, 800, 800, 1000]


def test_slot_straddling_two_tiers_gets_blended_rate() -> None:
    breakdown = _price(_request(_slots(120, 120)), rate_card=(HOURLY, THREE_HOURS))
    assert [e.price for e in breakdown.slots] == [1600, 1800]
    assert breakdown.amount == 3400


def test_grouping_by_day_resolves_one_card_per_day() -> None:
    slots = (*_slots(120), *_slots(60, start=DAY + timedelta(days=1)))
    request = _request(slots)
    pooled = _price(request, rate_card=(HOURLY, THREE_HOURS))
    per_day = _price(
        request,
        rate_card=(HOURLY, THREE_HOURS),
        options=PricingOptions(extended_prices_in_same_day=True, timezone=timezone.utc),
    )
    assert pooled.amount == 2400
    assert per_day.amount == 3000


def test_training_is_priced_per_session() -> None:
    ledger = CreditLedger(grant=CreditGrant(credit_id=2, hours=1))
    breakdown = _price(
        _request(_slots(180, 90), kind=ReservableKind.TRAINING),
        rate_card=(Price(amount=2500),),
        ledger=ledger,
    )
    assert [e.price for e in breakdown.slots] == [0, 2500]


def test_staff_offer_makes_the_slot_free() -> None:
    manager = User(id=2, role=Role.MANAGER)
    breakdown = _price(_request(_slots(60, offered=True), operator=manager))
    assert breakdown.amount == 0
    assert breakdown.slots[0].promo is True


def test_event_cannot_be_priced() -> None:
    with pytest.raises(InvalidReservableTypeError):
        _price(_request(_slots(60), kind=ReservableKind.EVENT))


@pytest.mark.parametrize("minutes", [(30,), (45, 15, 20), (60, 90, 120, 25), (7, 13, 200)])
def test_amount_is_sum_of_elements_in_input_order(minutes: tuple[int, ...]) -> None:
    slots = _slots(*minutes)
    ledger = CreditLedger(grant=CreditGrant(credit_id=2, hours=1), packs=(PrepaidPackBalance(id=9, minutes=50),))
    breakdown = _price(_request(slots), rate_card=(HOURLY, THREE_HOURS), ledger=ledger)
    assert breakdown.amount == sum(e.price for e in breakdown.slots)
    assert [e.start_at for e in breakdown.slots] == [s.start_at for s in slots]


def test_pricing_twice_gives_identical_breakdowns() -> None:
    ledger = CreditLedger(grant=CreditGrant(credit_id=2, hours=1), packs=(PrepaidPackBalance(id=9, minutes=30),))
    request = _request(_slots(60, 45, 90))
    first = _price(request, rate_card=(HOURLY, THREE_HOURS), ledger=ledger)
    second = _price(request, rate_card=(HOURLY, THREE_HOURS), ledger=ledger)
    assert first == second
    assert ledger.available_prepaid_minutes(NOW) == 30
