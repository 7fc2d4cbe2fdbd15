from datetime import datetime, timedelta, timezone
from typing import Any, cast

import pytest
from fastapi import HTTPException
from reservation_engine.domain.records import Availability, ReservableKind, SlotRecord
from reservation_engine.domain.visibility import Level, VisibilityOptions
from reservation_engine.routers import availabilities as router
from sqlalchemy.ext.asyncio import AsyncSession

START = datetime(2026, 3, 3, 9, 0)
SLOT = SlotRecord(id=10, availability_id=1, start_at=START, end_at=START + timedelta(hours=1))
AVAILABILITY = Availability(
    id=1,
    kind=ReservableKind.MACHINE,
    start_at=START,
    end_at=START + timedelta(hours=1),
    plan_ids=frozenset({5, 2}),
    slots=(SLOT,),
)


def _patch(monkeypatch: pytest.MonkeyPatch, result: list[Any]) -> list[dict[str, Any]]:
    calls: list[dict[str, Any]] = []

    async def fake(*args: object, **kwargs: Any) -> list[Any]:
        calls.append(kwargs)
        return result

    monkeypatch.setattr(router, "build_repositories", lambda s: s)  # type: ignore[assignment]
    monkeypatch.setattr(router.availability_usecase, "list_availabilities", fake)
    return calls


async def _list(**kwargs: Any) -> Any:
    params: dict[str, Any] = {
        "start": datetime(2026, 3, 2, 10, 0, tzinfo=timezone(timedelta(hours=1))),
        "end": datetime(2026, 3, 9, tzinfo=timezone.utc),
        "machine_ids": [3],
        "space_ids": [],
        "training_ids": [],
        "events": False,
        "level": Level.SLOT,
        "session": cast(AsyncSession, object()),
        "viewer_id": None,
        "options": VisibilityOptions(),
    }
    params.update(kwargs)
    return await router.list_availabilities(**params)


@pytest.mark.asyncio
async def test_slot_level_returns_slots(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _patch(monkeypatch, [SLOT])
    result = await _list()
    assert [s.slot_id for s in result] == [10]
    assert calls[0]["start"] == datetime(2026, 3, 2, 9, 0)
    assert calls[0]["resource_ids"][ReservableKind.MACHINE] == [3]


@pytest.mark.asyncio
async def test_availability_level_returns_availabilities(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch(monkeypatch, [AVAILABILITY])
    result = await _list(level=Level.AVAILABILITY)
    assert result[0].availability_id == 1
    assert result[0].plan_ids == [2, 5]
    assert result[0].full is False


@pytest.mark.asyncio
async def test_naive_range_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch(monkeypatch, [])
    with pytest.raises(HTTPException) as excinfo:
        await _list(start=datetime(2026, 3, 2))
    assert excinfo.value.status_code == 400
