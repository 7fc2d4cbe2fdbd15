from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Mapping, Optional, Sequence

from .errors import ERRORS_BY_KIND, ErrorKind
from .records import Availability, Plan, ReservableKind, RequestedSlot, Resource, SlotRecord, User


@dataclass(frozen=True)
class SlotFailure:
    slot: Optional[RequestedSlot]
    kind: ErrorKind
    message: str


@dataclass(frozen=True)
class ValidationResult:
    failures: tuple[SlotFailure, ...] = ()

    @property
    def valid(self) -> bool:
        return not self.failures

    @property
    def failing_slot(self) -> Optional[RequestedSlot]:
        return self.failures[0].slot if self.failures else None

    @property
    def reason(self) -> Optional[ErrorKind]:
        return self.failures[0].kind if self.failures else None

    def raise_for_failure(self) -> None:
        if not self.failures:
            return
        first = self.failures[0]
        raise ERRORS_BY_KIND[first.kind](first.message, slot=first.slot)


@dataclass(frozen=True)
class ValidationContext:
    """Everything the validator reads, already loaded by the caller."""

    customer: User
    operator: User
    resource: Resource
    availabilities: Mapping[int, Availability]
    now: datetime
    reserved_slots: Sequence[SlotRecord] = ()
    pending_plan: Optional[Plan] = None

    def occupied(self) -> set[tuple[int, datetime, datetime]]:
        return {(s.availability_id, s.start_at, s.end_at) for s in self.reserved_slots if s.canceled_at is None}

    def may_book_restricted(self, availability: Availability) -> bool:
        plan = self.customer.subscribed_plan(self.now)
        if plan is not None and plan.id in availability.plan_ids:
            return True
        if self.pending_plan is not None and self.pending_plan.id in availability.plan_ids:
            return True
        return (self.operator.manager and self.operator.id != self.customer.id) or self.operator.admin


def check_slot(
    slot: RequestedSlot,
    context: ValidationContext,
    occupied: Optional[set[tuple[int, datetime, datetime]]] = None,
) -> Optional[SlotFailure]:
    """First failing rule for this slot, or None when it can be booked."""
    availability = context.availabilities.get(slot.availability_id)
    if availability is None:
        return SlotFailure(slot, ErrorKind.SLOT_AVAILABILITY_MISSING, "slot availability does not exist")
    if context.resource.id not in availability.resource_ids:
        return SlotFailure(slot, ErrorKind.SLOT_AVAILABILITY_MISSING, "availability is not open for this resource")
    if slot.start_at < availability.start_at or slot.end_at > availability.end_at:
        return SlotFailure(slot, ErrorKind.SLOT_AVAILABILITY_MISSING, "slot is outside its availability")

    if availability.kind == ReservableKind.MACHINE:
        taken = occupied if occupied is not None else context.occupied()
        if slot.key in taken:
            return SlotFailure(slot, ErrorKind.SLOT_ALREADY_RESERVED, "slot is reserved")
    elif availability.kind == ReservableKind.SPACE and context.resource.disabled:
        return SlotFailure(slot, ErrorKind.SPACE_DISABLED, "space is disabled")
    elif availability.full:
        return SlotFailure(slot, ErrorKind.AVAILABILITY_FULL, "availability is complete")

    if availability.plan_ids and not context.may_book_restricted(availability):
        return SlotFailure(slot, ErrorKind.SLOT_RESTRICTED_TO_SUBSCRIBERS, "slot is restricted for subscribers")
    return None


def validate_slots(slots: Iterable[RequestedSlot], context: ValidationContext) -> ValidationResult:
    """Check every slot; the reservation is valid only if none fails."""
    occupied = context.occupied()
    requested: set[tuple[int, datetime, datetime]] = set()
    failures = []
    for slot in slots:
        if slot.key in requested:
            failures.append(SlotFailure(slot, ErrorKind.SLOT_ALREADY_RESERVED, "slot is requested twice"))
            continue
        requested.add(slot.key)
        failure = check_slot(slot, context, occupied)
        if failure is not None:
            failures.append(failure)
    return ValidationResult(failures=tuple(failures))
