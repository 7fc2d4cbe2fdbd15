from datetime import datetime
from typing import Mapping, Optional, Sequence

from ..domain.records import Availability, ReservableKind
from ..domain.repositories import BookingRepositories
from ..domain.visibility import AvailabilityWindowResolver, Level, Visible, VisibilityOptions


async def list_availabilities(
    repos: BookingRepositories,
    *,
    viewer_id: Optional[int],
    start: datetime,
    end: datetime,
    resource_ids: Mapping[ReservableKind, Sequence[int]],
    options: VisibilityOptions,
    now: datetime,
    level: Level = Level.SLOT,
    events: bool = False,
) -> Visible:
    """
    List what the viewer may see between `start` and `end`.
    Events are listed regardless of ids; other kinds only for the requested resources.
    """
    if start >= end:
        raise ValueError("start must be earlier than end")
    viewer = await repos.users.get(viewer_id) if viewer_id is not None else None
    resolver = AvailabilityWindowResolver(viewer, options, now=now, level=level)

    fetched: dict[ReservableKind, list[Availability]] = {}
    for kind in resolver.enabled_kinds(events=events):
        ids = None if kind == ReservableKind.EVENT else list(resource_ids.get(kind, ()))
        if ids is not None and not ids:
            continue
        window_start, window_end = resolver.window(kind, start, end)
        if window_start > window_end:
            continue
        fetched[kind] = await repos.availabilities.list_for(kind, ids, window_start, window_end)
    return resolver.index(start, end, fetched, events=events)
