from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo
from decimal import Decimal
from typing import Sequence

from ..utils.time import local_date
from .errors import InvalidReservableTypeError, RateCardExhaustedError
from .ledger import CreditLedger
from .rate_card import TierAllotment, base_price, resolve_rate_card
from .records import Price, PriceBreakdown, ReservableKind, RequestedSlot, ReservationRequest, SlotPrice
from .slot_pricing import price_slot

logger = logging.getLogger(__name__)

# kinds billed proportionally to the slot duration (vs. flat per slot)
DIVISIBLE_KINDS = (ReservableKind.MACHINE, ReservableKind.SPACE)
PRICEABLE_KINDS = (*DIVISIBLE_KINDS, ReservableKind.TRAINING)


@dataclass(frozen=True)
class PricingOptions:
    extended_prices_in_same_day: bool = False
    timezone: tzinfo = timezone.utc


def _tier_rates(slots: Sequence[RequestedSlot], allotments: Sequence[TierAllotment]) -> list[Decimal]:
    """
    Hourly rate of each slot, consuming the tiers in order across the group.
    A slot straddling two tiers gets the duration-weighted rate of both.
    """
    remaining = [a.duration for a in allotments]
    cursor = 0
    rates: list[Decimal] = []
    for slot in slots:
        need = slot.minutes
        if need <= 0:
            index = min(cursor, len(allotments) - 1)
            rates.append(allotments[index].hourly_rate if allotments else Decimal(0))
            continue
        cost = Decimal(0)
        while need > 0:
            if cursor >= len(allotments):
                raise RateCardExhaustedError("rate card shorter than the slots it prices")
            taken = min(need, remaining[cursor])
            cost += allotments[cursor].hourly_rate * taken
            remaining[cursor] -= taken
            need -= taken
            if remaining[cursor] == 0:
                cursor += 1
        rates.append(cost / slot.minutes)
    return rates


class ReservationPricer:
    def __init__(self, options: PricingOptions | None = None) -> None:
        self.options = options or PricingOptions()

    def grouped_slots(self, slots: Sequence[RequestedSlot]) -> list[list[int]]:
        """Indexes of the slots priced together: one group per calendar day, or all in one."""
        if not self.options.extended_prices_in_same_day:
            return [list(range(len(slots)))]
        groups: dict[date, list[int]] = {}
        for index, slot in enumerate(slots):
            groups.setdefault(local_date(slot.start_at, self.options.timezone), []).append(index)
        return list(groups.values())

    def slot_rates(self, slots: Sequence[RequestedSlot], rate_card: Sequence[Price], kind: ReservableKind) -> list[Decimal]:
        if kind == ReservableKind.TRAINING:
            flat = base_price(rate_card)
            if flat is None:
                raise RateCardExhaustedError("no session price for this training")
            return [Decimal(flat.amount)] * len(slots)

        rates: list[Decimal] = [Decimal(0)] * len(slots)
        for group in self.grouped_slots(slots):
            group_slots = [slots[i] for i in group]
            total = sum(max(s.minutes, 0) for s in group_slots)
            allotments = resolve_rate_card(rate_card, total)
            for index, rate in zip(group, _tier_rates(group_slots, allotments)):
                rates[index] = rate
        return rates

    def price(
        self,
        request: ReservationRequest,
        *,
        rate_card: Sequence[Price],
        ledger: CreditLedger,
        at: datetime,
    ) -> PriceBreakdown:
        """
        Price every requested slot. The first N slots, in the order given, are
        covered by the N available credit hours; prepaid minutes are consumed
        left to right. The ledger is only read.
        """
        kind = request.resource.kind
        if kind not in PRICEABLE_KINDS:
            raise InvalidReservableTypeError(f"cannot price a reservation of {kind!r}")

        slots = request.slots
        rates = self.slot_rates(slots, rate_card, kind)
        hours_available = ledger.available_hours()
        prepaid_available = ledger.available_prepaid_minutes(at)

        prepaid = prepaid_available
        elements: list[SlotPrice] = []
        for index, (slot, rate) in enumerate(zip(slots, rates)):
            prepaid, element = price_slot(
                slot,
                rate,
                privileged=request.privileged,
                has_credits=index < hours_available,
                prepaid_minutes=prepaid,
                is_division=kind in DIVISIBLE_KINDS,
            )
            elements.append(element)

        breakdown = PriceBreakdown(
            amount=sum(e.price for e in elements),
            slots=tuple(elements),
            credit_hours_used=min(hours_available, len(slots)),
            prepaid_minutes_used=prepaid_available - prepaid,
        )
        logger.debug(
            "priced %d slots of %s #%d for user %d: %d",
            len(slots),
            kind,
            request.resource.id,
            request.customer.id,
            breakdown.amount,
        )
        return breakdown
