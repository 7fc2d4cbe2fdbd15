from datetime import datetime, timedelta
from typing import Optional, Sequence

import pytest
from reservation_engine.domain.records import Availability, ReservableKind, Role, SlotRecord, User
from reservation_engine.domain.repositories import BookingRepositories
from reservation_engine.domain.visibility import Level, VisibilityOptions
from reservation_engine.usecases import availabilities as uc

NOW = datetime(2026, 3, 2, 9, 0)
DAY = NOW + timedelta(days=1)


def _availability(availability_id: int, kind: ReservableKind, locked: bool = False) -> Availability:
    slot = SlotRecord(id=availability_id * 10, availability_id=availability_id, start_at=DAY, end_at=DAY + timedelta(hours=1))
    return Availability(
        id=availability_id,
        kind=kind,
        start_at=DAY,
        end_at=DAY + timedelta(hours=1),
        locked=locked,
        slots=(slot,),
    )


class FakeUsers:
    async def get(self, user_id: int) -> Optional[User]:
        return {1: User(id=1), 2: User(id=2, role=Role.ADMIN)}.get(user_id)


class FakeAvailabilities:
    def __init__(self) -> None:
        self.calls: list[tuple[ReservableKind, Optional[list[int]], datetime, datetime]] = []
        self.rows = {
            ReservableKind.MACHINE: [_availability(1, ReservableKind.MACHINE), _availability(2, ReservableKind.MACHINE, locked=True)],
            ReservableKind.TRAINING: [_availability(3, ReservableKind.TRAINING)],
            ReservableKind.EVENT: [_availability(4, ReservableKind.EVENT)],
        }

    async def list_for(
        self,
        kind: ReservableKind,
        resource_ids: Optional[Sequence[int]],
        start: datetime,
        end: datetime,
    ) -> list[Availability]:
        self.calls.append((kind, None if resource_ids is None else list(resource_ids), start, end))
        return self.rows.get(kind, [])


def _repos(availabilities: FakeAvailabilities) -> BookingRepositories:
    return BookingRepositories(
        users=FakeUsers(),
        catalog=None,  # type: ignore[arg-type]
        availabilities=availabilities,  # type: ignore[arg-type]
        prices=None,  # type: ignore[arg-type]
        ledger=None,  # type: ignore[arg-type]
        reservations=None,  # type: ignore[arg-type]
        subscriptions=None,  # type: ignore[arg-type]
    )


@pytest.mark.asyncio
async def test_member_lists_visible_slots_of_requested_resources() -> None:
    availabilities = FakeAvailabilities()
    slots = await uc.list_availabilities(
        _repos(availabilities),
        viewer_id=1,
        start=NOW - timedelta(days=7),
        end=NOW + timedelta(days=7),
        resource_ids={ReservableKind.MACHINE: [3], ReservableKind.TRAINING: []},
        options=VisibilityOptions(),
        now=NOW,
    )
    assert [s.id for s in slots] == [10]
    # trainings without ids are not fetched; the member window starts now
    assert availabilities.calls == [(ReservableKind.MACHINE, [3], NOW, NOW + timedelta(days=7))]


@pytest.mark.asyncio
async def test_admin_sees_locked_availabilities_and_events() -> None:
    availabilities = FakeAvailabilities()
    items = await uc.list_availabilities(
        _repos(availabilities),
        viewer_id=2,
        start=NOW - timedelta(days=7),
        end=NOW + timedelta(days=7),
        resource_ids={ReservableKind.MACHINE: [3], ReservableKind.TRAINING: [5]},
        options=VisibilityOptions(events_in_calendar=True),
        now=NOW,
        level=Level.AVAILABILITY,
        events=True,
    )
    assert [a.id for a in items] == [3, 4, 1, 2]
    event_call = next(c for c in availabilities.calls if c[0] == ReservableKind.EVENT)
    assert event_call[1] is None
    assert event_call[2] == NOW - timedelta(days=7)


@pytest.mark.asyncio
async def test_anonymous_visitor_window_past_horizon_is_empty() -> None:
    availabilities = FakeAvailabilities()
    items = await uc.list_availabilities(
        _repos(availabilities),
        viewer_id=None,
        start=NOW + timedelta(days=60),
        end=NOW + timedelta(days=90),
        resource_ids={ReservableKind.MACHINE: [3]},
        options=VisibilityOptions(),
        now=NOW,
    )
    assert items == []
    assert availabilities.calls == []


@pytest.mark.asyncio
async def test_inverted_range_is_rejected() -> None:
    with pytest.raises(ValueError):
        await uc.list_availabilities(
            _repos(FakeAvailabilities()),
            viewer_id=None,
            start=NOW,
            end=NOW,
            resource_ids={},
            options=VisibilityOptions(),
            now=NOW,
        )
