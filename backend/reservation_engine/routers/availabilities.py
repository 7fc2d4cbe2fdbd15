from datetime import datetime
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_optional_user_id, get_session, get_visibility_options
from ..domain.records import Availability, ReservableKind
from ..domain.visibility import Level, VisibilityOptions
from ..infrastructure.repositories import build_repositories
from ..schemas import AvailabilityRead, SlotRead
from ..usecases import availabilities as availability_usecase
from ..utils.time import to_utc_naive, utc_now_naive

router = APIRouter(prefix="/availabilities", tags=["availabilities"])


@router.get("", response_model=Union[List[AvailabilityRead], List[SlotRead]])
async def list_availabilities(
    start: datetime = Query(..., description="start datetime with timezone (ISO 8601)"),
    end: datetime = Query(..., description="end datetime with timezone (ISO 8601)"),
    machine_ids: List[int] = Query(default=[]),
    space_ids: List[int] = Query(default=[]),
    training_ids: List[int] = Query(default=[]),
    events: bool = Query(default=False),
    level: Level = Query(default=Level.SLOT),
    session: AsyncSession = Depends(get_session),
    viewer_id: Optional[int] = Depends(get_optional_user_id),
    options: VisibilityOptions = Depends(get_visibility_options),
) -> Union[list[AvailabilityRead], list[SlotRead]]:
    if start.tzinfo is None or end.tzinfo is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start/end must have timezone")
    repos = build_repositories(session)
    try:
        items = await availability_usecase.list_availabilities(
            repos,
            viewer_id=viewer_id,
            start=to_utc_naive(start),
            end=to_utc_naive(end),
            resource_ids={
                ReservableKind.MACHINE: machine_ids,
                ReservableKind.SPACE: space_ids,
                ReservableKind.TRAINING: training_ids,
            },
            options=options,
            now=utc_now_naive(),
            level=level,
            events=events,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    if level == Level.AVAILABILITY:
        return [AvailabilityRead.from_domain(a) for a in items if isinstance(a, Availability)]
    return [SlotRead.from_domain(s) for s in items if not isinstance(s, Availability)]
