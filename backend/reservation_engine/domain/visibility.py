from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Iterable, Mapping, Optional, Union

from dateutil.relativedelta import relativedelta

from .records import Availability, PlanInterval, ReservableKind, SlotRecord, User

# how far back staff members can look
PRIVILEGED_LOOK_BACK = relativedelta(months=1)

# order in which kinds are listed in a calendar
CALENDAR_ORDER = (
    ReservableKind.TRAINING,
    ReservableKind.EVENT,
    ReservableKind.MACHINE,
    ReservableKind.SPACE,
)


class Level(StrEnum):
    SLOT = "slot"
    AVAILABILITY = "availability"


@dataclass(frozen=True)
class VisibilityOptions:
    visibility_yearly: int = 3
    visibility_others: int = 1
    reservation_deadline: int = 0
    machines_module: bool = True
    spaces_module: bool = False
    trainings_module: bool = True
    events_in_calendar: bool = False


Visible = Union[list[Availability], list[SlotRecord]]


class AvailabilityWindowResolver:
    """
    Filters availabilities down to what a viewer is allowed to see in a time window.

    Admins and managers see everything from one month ago onwards. Members and
    anonymous visitors cannot book before the reservation deadline nor see further
    than the visibility horizon: `visibility_others` months, or `visibility_yearly`
    months for yearly subscribers (for trainings, only once they validated one).
    """

    def __init__(
        self,
        viewer: Optional[User],
        options: VisibilityOptions,
        *,
        now: datetime,
        level: Level = Level.SLOT,
    ) -> None:
        self.viewer = viewer
        self.options = options
        self.now = now
        self.level = level
        self.maximum_visibility = {
            "year": now + relativedelta(months=options.visibility_yearly),
            "other": now + relativedelta(months=options.visibility_others),
        }
        self.minimum_visibility = now + timedelta(minutes=options.reservation_deadline)

    @property
    def privileged(self) -> bool:
        return self.viewer is not None and self.viewer.privileged

    def enabled_kinds(self, *, events: bool = False) -> list[ReservableKind]:
        flags = {
            ReservableKind.TRAINING: self.options.trainings_module,
            ReservableKind.EVENT: events and self.options.events_in_calendar,
            ReservableKind.MACHINE: self.options.machines_module,
            ReservableKind.SPACE: self.options.spaces_module,
        }
        return [kind for kind in CALENDAR_ORDER if flags[kind]]

    def subscription_year(self) -> bool:
        if self.viewer is None or self.viewer.subscription is None:
            return False
        subscription = self.viewer.subscription
        return subscription.plan.interval == PlanInterval.YEAR and subscription.active_at(self.now)

    def show_more_trainings(self) -> bool:
        # a rolling subscription must not allow a first training booked far ahead
        return self.viewer is not None and self.viewer.trainings_count > 0 and self.subscription_year()

    def window(self, kind: ReservableKind, range_start: datetime, range_end: datetime) -> tuple[datetime, datetime]:
        if self.privileged:
            return max(range_start, self.now - PRIVILEGED_LOOK_BACK), range_end

        end_at = self.maximum_visibility["other"]
        if kind != ReservableKind.TRAINING and self.subscription_year():
            end_at = self.maximum_visibility["year"]
        if kind == ReservableKind.TRAINING and self.show_more_trainings():
            end_at = self.maximum_visibility["year"]
        return max(range_start, self.minimum_visibility), min(end_at, range_end)

    def _tag_visible(self, availability: Availability) -> bool:
        if not availability.tag_ids:
            return True
        return self.viewer is not None and bool(availability.tag_ids & self.viewer.tag_ids)

    def visible(
        self,
        availabilities: Iterable[Availability],
        kind: ReservableKind,
        range_start: datetime,
        range_end: datetime,
    ) -> list[Availability]:
        window_start, window_end = self.window(kind, range_start, range_end)
        result: list[Availability] = []
        for availability in availabilities:
            if availability.kind != kind:
                continue
            if availability.start_at > window_end or availability.end_at < window_start:
                continue
            if not self.privileged and (availability.locked or not self._tag_visible(availability)):
                continue
            slots = tuple(s for s in availability.slots if s.start_at > window_start and s.end_at < window_end)
            if not slots:
                continue
            result.append(replace(availability, slots=slots))
        return result

    def resolve(
        self,
        availabilities: Iterable[Availability],
        kind: ReservableKind,
        range_start: datetime,
        range_end: datetime,
    ) -> Visible:
        visible = self.visible(availabilities, kind, range_start, range_end)
        if self.level == Level.SLOT:
            return [slot for availability in visible for slot in availability.slots]
        return visible

    def index(
        self,
        range_start: datetime,
        range_end: datetime,
        availabilities: Mapping[ReservableKind, Iterable[Availability]],
        *,
        events: bool = False,
    ) -> list:
        """Everything visible in the window, trainings first, then events, machines and spaces."""
        items: list = []
        for kind in self.enabled_kinds(events=events):
            items.extend(self.resolve(availabilities.get(kind, ()), kind, range_start, range_end))
        return items
