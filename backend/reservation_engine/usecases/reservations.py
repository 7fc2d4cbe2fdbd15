from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from ..domain.cart import Cart, CartTotal, CouponFn, ReservationItem, SubscriptionItem
from ..domain.errors import NotFoundError
from ..domain.ledger import LedgerDebit
from ..domain.pricer import PricingOptions, ReservationPricer
from ..domain.records import (
    Plan,
    PriceBreakdown,
    RequestedSlot,
    ReservableKind,
    ReservationRequest,
    Resource,
    Subscription,
    User,
)
from ..domain.repositories import BookingRepositories
from ..domain.validator import ValidationResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Parties:
    customer: User
    operator: User
    resource: Resource
    pending_plan: Optional[Plan]


@dataclass(frozen=True)
class Quote:
    parties: Parties
    validation: ValidationResult
    breakdown: Optional[PriceBreakdown] = None
    total: Optional[CartTotal] = None


@dataclass(frozen=True)
class Commit:
    reservation_id: int
    parties: Parties
    breakdown: PriceBreakdown
    debit: LedgerDebit
    subscription: Optional[Subscription] = None


async def load_parties(
    repos: BookingRepositories,
    *,
    customer_id: int,
    operator_id: int,
    resource_kind: ReservableKind,
    resource_id: int,
    plan_id: Optional[int] = None,
) -> Parties:
    customer = await repos.users.get(customer_id)
    if customer is None:
        raise NotFoundError("customer not found")
    operator = customer if operator_id == customer_id else await repos.users.get(operator_id)
    if operator is None:
        raise NotFoundError("operator not found")
    resource = await repos.catalog.get_resource(resource_kind, resource_id)
    if resource is None:
        raise NotFoundError("resource not found")
    pending_plan = None
    if plan_id is not None:
        pending_plan = await repos.catalog.get_plan(plan_id)
        if pending_plan is None:
            raise NotFoundError("plan not found")
    return Parties(customer=customer, operator=operator, resource=resource, pending_plan=pending_plan)


async def build_reservation_item(
    repos: BookingRepositories,
    parties: Parties,
    slots: Sequence[RequestedSlot],
    *,
    options: PricingOptions,
    now: datetime,
) -> ReservationItem:
    """Load everything pricing and validation read for this request, at this instant."""
    customer, resource = parties.customer, parties.resource
    plan = parties.pending_plan or customer.subscribed_plan(now)
    availability_ids = {slot.availability_id for slot in slots}

    availabilities = await repos.availabilities.get_many(availability_ids)
    reserved = await repos.availabilities.reserved_slots(resource, availability_ids)
    rate_card = await repos.prices.rate_card(resource, customer.group_id, plan.id if plan else None)
    ledger = await repos.ledger.load(
        customer,
        resource,
        plan=plan,
        new_plan_being_bought=parties.pending_plan is not None,
    )
    request = ReservationRequest(
        customer=customer,
        operator=parties.operator,
        resource=resource,
        slots=tuple(slots),
        plan=plan,
    )
    return ReservationItem(
        request=request,
        rate_card=rate_card,
        ledger=ledger,
        availabilities=availabilities,
        at=now,
        reserved_slots=reserved,
        pricer=ReservationPricer(options),
    )


async def quote_reservation(
    repos: BookingRepositories,
    *,
    customer_id: int,
    operator_id: int,
    resource_kind: ReservableKind,
    resource_id: int,
    slots: Sequence[RequestedSlot],
    options: PricingOptions,
    now: datetime,
    plan_id: Optional[int] = None,
    coupon: Optional[str] = None,
    apply_coupon: Optional[CouponFn] = None,
) -> Quote:
    """Validate and price a reservation without writing anything."""
    parties = await load_parties(
        repos,
        customer_id=customer_id,
        operator_id=operator_id,
        resource_kind=resource_kind,
        resource_id=resource_id,
        plan_id=plan_id,
    )
    item = await build_reservation_item(repos, parties, slots, options=options, now=now)
    cart = Cart(customer=parties.customer, items=[item], coupon=coupon, apply_coupon=apply_coupon)
    if parties.pending_plan is not None:
        cart.items.append(SubscriptionItem(plan=parties.pending_plan))

    validation = cart.validate(now)
    if not validation.valid:
        logger.info("reservation rejected for user %d: %s", customer_id, validation.reason)
        return Quote(parties=parties, validation=validation)

    total = cart.total()
    return Quote(parties=parties, validation=validation, breakdown=total.breakdowns[0], total=total)


async def commit_reservation(
    repos: BookingRepositories,
    *,
    customer_id: int,
    operator_id: int,
    resource_kind: ReservableKind,
    resource_id: int,
    slots: Sequence[RequestedSlot],
    options: PricingOptions,
    now: datetime,
    plan_id: Optional[int] = None,
) -> Commit:
    """
    Persist a reservation and debit the customer's balances.

    Must run inside the caller's transaction: the resource lock taken here is
    held until it ends, so a concurrent commit on the same resource re-reads
    occupancy and balances only after this one is done.
    """
    parties = await load_parties(
        repos,
        customer_id=customer_id,
        operator_id=operator_id,
        resource_kind=resource_kind,
        resource_id=resource_id,
        plan_id=plan_id,
    )
    await repos.reservations.lock_resource(parties.resource)

    item = await build_reservation_item(repos, parties, slots, options=options, now=now)
    cart = Cart(customer=parties.customer, items=[item])
    if parties.pending_plan is not None:
        cart.items.append(SubscriptionItem(plan=parties.pending_plan))
    cart.validate(now).raise_for_failure()

    breakdown = item.price()
    debit = item.ledger.debit(breakdown, now)
    subscription = None
    if parties.pending_plan is not None:
        # starts the credit period the debit below is counted against
        subscription = await repos.subscriptions.create(parties.customer, parties.pending_plan, start=now)
    reservation_id = await repos.reservations.create(
        customer=parties.customer,
        operator=parties.operator,
        resource=parties.resource,
        slots=item.request.slots,
        breakdown=breakdown,
    )
    if not debit.empty:
        await repos.ledger.save_debit(parties.customer, debit)
    logger.info(
        "reservation %d committed: %d slots, %d credit hours, %d prepaid minutes",
        reservation_id,
        len(slots),
        debit.hours,
        debit.prepaid_minutes,
    )
    return Commit(
        reservation_id=reservation_id,
        parties=parties,
        breakdown=breakdown,
        debit=debit,
        subscription=subscription,
    )
