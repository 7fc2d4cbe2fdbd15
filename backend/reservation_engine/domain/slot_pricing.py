from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from .records import RequestedSlot, SlotPrice

MINUTES_PER_HOUR = Decimal(60)
ZERO = Decimal(0)


def to_minor_units(value: Decimal) -> int:
    """Round a currency amount to whole minor units (cents), half up."""
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def price_slot(
    slot: RequestedSlot,
    hourly_rate: Decimal,
    *,
    privileged: bool,
    has_credits: bool = False,
    prepaid_minutes: int = 0,
    is_division: bool = True,
) -> tuple[int, SlotPrice]:
    """
    Price a single slot.

    Credits and staff offers waive the rate first; prepaid minutes then reduce
    the billable duration of whatever rate is left. `is_division` is False when
    the slot is the whole availability, billed flat regardless of its length.

    Returns the prepaid minutes left after this slot and the slot's price element.
    """
    slot_rate = ZERO if has_credits or (slot.offered and privileged) else hourly_rate
    slot_minutes = slot.minutes

    if is_division:
        real_price = slot_rate * slot_minutes / MINUTES_PER_HOUR
    else:
        real_price = slot_rate

    consumed = 0
    if real_price > 0 and prepaid_minutes > 0:
        consumed = min(slot_minutes, prepaid_minutes)
        real_price = slot_rate * (slot_minutes - consumed) / MINUTES_PER_HOUR

    element = SlotPrice(
        start_at=slot.start_at,
        price=to_minor_units(real_price),
        promo=slot_rate != hourly_rate,
    )
    return prepaid_minutes - consumed, element
