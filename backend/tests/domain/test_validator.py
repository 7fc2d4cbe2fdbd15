from datetime import datetime, timedelta

import pytest
from reservation_engine.domain.errors import ErrorKind, SlotRestrictedToSubscribersError
from reservation_engine.domain.records import (
    Availability,
    Plan,
    RequestedSlot,
    ReservableKind,
    Resource,
    Role,
    SlotRecord,
    Subscription,
    User,
)
from reservation_engine.domain.validator import ValidationContext, check_slot, validate_slots

NOW = datetime(2026, 3, 2, 9, 0)
START = NOW + timedelta(days=1)
MEMBER = User(id=1, subscription=Subscription(plan=Plan(id=7), expired_at=NOW + timedelta(days=30)))


def _slot(availability_id: int = 1, hours: int = 0) -> RequestedSlot:
    start = START + timedelta(hours=hours)
    return RequestedSlot(start_at=start, end_at=start + timedelta(hours=1), availability_id=availability_id)


def _context(
    availability: Availability,
    *,
    operator: User = MEMBER,
    resource: Resource | None = None,
    reserved: tuple[SlotRecord, ...] = (),
    pending_plan: Plan | None = None,
) -> ValidationContext:
    return ValidationContext(
        customer=MEMBER,
        operator=operator,
        resource=resource or Resource(id=3, kind=availability.kind),
        availabilities={availability.id: availability},
        now=NOW,
        reserved_slots=reserved,
        pending_plan=pending_plan,
    )


def _availability(kind: ReservableKind = ReservableKind.MACHINE, **kwargs: object) -> Availability:
    kwargs.setdefault("resource_ids", frozenset({3}))
    return Availability(id=1, kind=kind, start_at=START, end_at=START + timedelta(hours=4), **kwargs)  # type: ignore[arg-type]


def test_missing_availability() -> None:
    failure = check_slot(_slot(availability_id=99), _context(_availability()))
    assert failure is not None
    assert failure.kind == ErrorKind.SLOT_AVAILABILITY_MISSING


def test_reserved_machine_slot_is_rejected_unless_canceled() -> None:
    slot = _slot()
    taken = SlotRecord(id=5, availability_id=1, start_at=slot.start_at, end_at=slot.end_at)
    failure = check_slot(slot, _context(_availability(), reserved=(taken,)))
    assert failure is not None
    assert failure.kind == ErrorKind.SLOT_ALREADY_RESERVED

    canceled = SlotRecord(id=5, availability_id=1, start_at=slot.start_at, end_at=slot.end_at, canceled_at=NOW)
    assert check_slot(slot, _context(_availability(), reserved=(canceled,))) is None


def test_disabled_space() -> None:
    availability = _availability(ReservableKind.SPACE)
    resource = Resource(id=3, kind=ReservableKind.SPACE, disabled=True)
    failure = check_slot(_slot(), _context(availability, resource=resource))
    assert failure is not None
    assert failure.kind == ErrorKind.SPACE_DISABLED


def test_full_training() -> None:
    availability = _availability(ReservableKind.TRAINING, capacity=4, reserved_places=4)
    failure = check_slot(_slot(), _context(availability))
    assert failure is not None
    assert failure.kind == ErrorKind.AVAILABILITY_FULL
    assert check_slot(_slot(), _context(_availability(ReservableKind.TRAINING, capacity=4, reserved_places=3))) is None


def test_machine_capacity_is_never_full() -> None:
    availability = _availability(capacity=1, reserved_places=1)
    assert check_slot(_slot(), _context(availability)) is None


def test_other_plan_subscriber_is_restricted() -> None:
    availability = _availability(plan_ids=frozenset({5}))
    failure = check_slot(_slot(), _context(availability))
    assert failure is not None
    assert failure.kind == ErrorKind.SLOT_RESTRICTED_TO_SUBSCRIBERS


@pytest.mark.parametrize(
    "operator, pending_plan, allowed",
    [
        (User(id=2, role=Role.MANAGER), None, True),
        (User(id=1, role=Role.MANAGER), None, False),
        (User(id=1, role=Role.ADMIN), None, True),
        (MEMBER, Plan(id=5), True),
        (MEMBER, Plan(id=6), False),
    ],
)
def test_restricted_slot_exceptions(operator: User, pending_plan: Plan | None, allowed: bool) -> None:
    availability = _availability(plan_ids=frozenset({5}))
    failure = check_slot(_slot(), _context(availability, operator=operator, pending_plan=pending_plan))
    assert (failure is None) is allowed


def test_validate_slots_reports_every_failure_first_one_wins() -> None:
    availability = _availability(plan_ids=frozenset({5}))
    slots = [_slot(hours=0), _slot(availability_id=99, hours=1)]
    result = validate_slots(slots, _context(availability))
    assert not result.valid
    assert [f.kind for f in result.failures] == [
        ErrorKind.SLOT_RESTRICTED_TO_SUBSCRIBERS,
        ErrorKind.SLOT_AVAILABILITY_MISSING,
    ]
    assert result.failing_slot == slots[0]

    with pytest.raises(SlotRestrictedToSubscribersError) as excinfo:
        result.raise_for_failure()
    assert excinfo.value.slot == slots[0]


def test_valid_request() -> None:
    result = validate_slots([_slot(hours=0), _slot(hours=1)], _context(_availability()))
    assert result.valid
    assert result.reason is None
    result.raise_for_failure()


@pytest.mark.parametrize("hours", [-1, 4, 30 * 24])
def test_slot_outside_its_availability(hours: int) -> None:
    failure = check_slot(_slot(hours=hours), _context(_availability()))
    assert failure is not None
    assert failure.kind == ErrorKind.SLOT_AVAILABILITY_MISSING


def test_slot_straddling_availability_end() -> None:
    slot = RequestedSlot(
        start_at=START + timedelta(hours=3, minutes=30),
        end_at=START + timedelta(hours=4, minutes=30),
        availability_id=1,
    )
    failure = check_slot(slot, _context(_availability()))
    assert failure is not None
    assert failure.kind == ErrorKind.SLOT_AVAILABILITY_MISSING


def test_availability_of_another_resource() -> None:
    availability = _availability(resource_ids=frozenset({4}))
    failure = check_slot(_slot(), _context(availability))
    assert failure is not None
    assert failure.kind == ErrorKind.SLOT_AVAILABILITY_MISSING


def test_same_slot_twice_in_one_request() -> None:
    slots = [_slot(hours=0), _slot(hours=1), _slot(hours=0)]
    result = validate_slots(slots, _context(_availability()))
    assert [f.kind for f in result.failures] == [ErrorKind.SLOT_ALREADY_RESERVED]
    assert result.failures[0].slot == slots[2]


def test_same_training_session_twice_in_one_request() -> None:
    availability = _availability(ReservableKind.TRAINING, capacity=10)
    result = validate_slots([_slot(), _slot()], _context(availability))
    assert result.reason == ErrorKind.SLOT_ALREADY_RESERVED
