"""
Shopping cart items.

Every item a customer can pay for exposes the same two capabilities: `price()`
and `validate(context)`. A cart sums its items and applies the coupon on the
total; it is valid only if every item is.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Mapping, Optional, Protocol, Sequence

from .errors import ErrorKind
from .ledger import CreditLedger
from .pricer import ReservationPricer
from .records import Availability, Plan, Price, PriceBreakdown, ReservationRequest, SlotRecord, User
from .validator import SlotFailure, ValidationContext, ValidationResult, validate_slots

CouponFn = Callable[[int, str, int], int]


@dataclass(frozen=True)
class CartContext:
    customer: User
    now: datetime
    pending_plan: Optional[Plan] = None


class Priceable(Protocol):
    def price(self) -> PriceBreakdown: ...

    def validate(self, context: CartContext) -> ValidationResult: ...


def _unavailable(message: str) -> ValidationResult:
    return ValidationResult(failures=(SlotFailure(None, ErrorKind.ITEM_UNAVAILABLE, message),))


@dataclass(frozen=True)
class ReservationItem:
    request: ReservationRequest
    rate_card: Sequence[Price]
    ledger: CreditLedger
    availabilities: Mapping[int, Availability]
    at: datetime
    reserved_slots: Sequence[SlotRecord] = ()
    pricer: ReservationPricer = field(default_factory=ReservationPricer)

    def price(self) -> PriceBreakdown:
        return self.pricer.price(self.request, rate_card=self.rate_card, ledger=self.ledger, at=self.at)

    def validate(self, context: CartContext) -> ValidationResult:
        validation = ValidationContext(
            customer=self.request.customer,
            operator=self.request.operator,
            resource=self.request.resource,
            availabilities=self.availabilities,
            now=context.now,
            reserved_slots=self.reserved_slots,
            pending_plan=context.pending_plan,
        )
        return validate_slots(self.request.slots, validation)


@dataclass(frozen=True)
class SubscriptionItem:
    plan: Plan

    def price(self) -> PriceBreakdown:
        return PriceBreakdown(amount=self.plan.amount)

    def validate(self, context: CartContext) -> ValidationResult:
        if self.plan.disabled:
            return _unavailable("plan is disabled")
        if self.plan.group_id is not None and self.plan.group_id != context.customer.group_id:
            return _unavailable("plan is reserved for another group")
        if context.customer.subscribed_plan(context.now) is not None:
            return _unavailable("customer already has an active subscription")
        return ValidationResult()


@dataclass(frozen=True)
class PrepaidPackOffer:
    id: int
    resource_id: int
    amount: int
    minutes: int
    group_id: Optional[int] = None
    disabled: bool = False


@dataclass(frozen=True)
class PrepaidPackItem:
    pack: PrepaidPackOffer

    def price(self) -> PriceBreakdown:
        return PriceBreakdown(amount=self.pack.amount)

    def validate(self, context: CartContext) -> ValidationResult:
        if self.pack.disabled:
            return _unavailable("prepaid pack is disabled")
        if self.pack.group_id is not None and self.pack.group_id != context.customer.group_id:
            return _unavailable("prepaid pack is reserved for another group")
        return ValidationResult()


@dataclass(frozen=True)
class GenericItem:
    label: str
    amount: int

    def price(self) -> PriceBreakdown:
        return PriceBreakdown(amount=self.amount)

    def validate(self, context: CartContext) -> ValidationResult:
        return ValidationResult()


@dataclass(frozen=True)
class CartTotal:
    before_coupon: int
    total: int
    coupon: Optional[str]
    breakdowns: tuple[PriceBreakdown, ...]


@dataclass
class Cart:
    customer: User
    items: list[Priceable]
    coupon: Optional[str] = None
    apply_coupon: Optional[CouponFn] = None

    def pending_plan(self) -> Optional[Plan]:
        for item in self.items:
            if isinstance(item, SubscriptionItem):
                return item.plan
        return None

    def validate(self, now: datetime) -> ValidationResult:
        context = CartContext(customer=self.customer, now=now, pending_plan=self.pending_plan())
        failures: list[SlotFailure] = []
        for item in self.items:
            failures.extend(item.validate(context).failures)
        return ValidationResult(failures=tuple(failures))

    def total(self) -> CartTotal:
        breakdowns = tuple(item.price() for item in self.items)
        before_coupon = sum(b.amount for b in breakdowns)
        total = before_coupon
        if self.coupon and self.apply_coupon is not None:
            total = self.apply_coupon(before_coupon, self.coupon, self.customer.id)
        return CartTotal(before_coupon=before_coupon, total=total, coupon=self.coupon, breakdowns=breakdowns)
