from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Optional

from dateutil.relativedelta import relativedelta


class ReservableKind(StrEnum):
    MACHINE = "machines"
    SPACE = "space"
    TRAINING = "training"
    EVENT = "event"


class Role(StrEnum):
    ADMIN = "admin"
    MANAGER = "manager"
    MEMBER = "member"


class PlanInterval(StrEnum):
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


PLAN_PERIODS = {
    PlanInterval.WEEK: relativedelta(weeks=1),
    PlanInterval.MONTH: relativedelta(months=1),
    PlanInterval.YEAR: relativedelta(years=1),
}


@dataclass(frozen=True)
class Plan:
    id: int
    interval: PlanInterval = PlanInterval.MONTH
    amount: int = 0
    group_id: Optional[int] = None
    disabled: bool = False

    def expiry_from(self, start: datetime) -> datetime:
        return start + PLAN_PERIODS[self.interval]


@dataclass(frozen=True)
class Subscription:
    plan: Plan
    expired_at: datetime

    def active_at(self, at: datetime) -> bool:
        return self.expired_at >= at


@dataclass(frozen=True)
class User:
    id: int
    role: Role = Role.MEMBER
    group_id: Optional[int] = None
    tag_ids: frozenset[int] = frozenset()
    subscription: Optional[Subscription] = None
    trainings_count: int = 0

    @property
    def admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def manager(self) -> bool:
        return self.role == Role.MANAGER

    @property
    def privileged(self) -> bool:
        return self.role in (Role.ADMIN, Role.MANAGER)

    def subscribed_plan(self, at: datetime) -> Optional[Plan]:
        if self.subscription is None or not self.subscription.active_at(at):
            return None
        return self.subscription.plan

    def acts_for_other(self, customer: "User") -> bool:
        """True when a staff member books on behalf of someone else."""
        return self.privileged and self.id != customer.id


@dataclass(frozen=True)
class Resource:
    id: int
    kind: ReservableKind
    name: str = ""
    disabled: bool = False


@dataclass(frozen=True)
class Price:
    amount: int
    duration: Optional[int] = None
    group_id: Optional[int] = None
    plan_id: Optional[int] = None

    @property
    def billed_duration(self) -> int:
        """Minutes the amount pays for; rows without a duration are hourly."""
        return self.duration if self.duration and self.duration > 0 else 60


@dataclass(frozen=True)
class SlotRecord:
    id: int
    availability_id: int
    start_at: datetime
    end_at: datetime
    canceled_at: Optional[datetime] = None


@dataclass(frozen=True)
class Availability:
    id: int
    kind: ReservableKind
    start_at: datetime
    end_at: datetime
    capacity: Optional[int] = None
    reserved_places: int = 0
    plan_ids: frozenset[int] = frozenset()
    tag_ids: frozenset[int] = frozenset()
    locked: bool = False
    resource_ids: frozenset[int] = frozenset()
    slots: tuple[SlotRecord, ...] = ()

    @property
    def full(self) -> bool:
        if self.kind == ReservableKind.MACHINE or self.capacity is None:
            return False
        return self.reserved_places >= self.capacity


@dataclass(frozen=True)
class RequestedSlot:
    start_at: datetime
    end_at: datetime
    availability_id: int
    offered: bool = False
    id: Optional[int] = None

    @property
    def minutes(self) -> int:
        return int((self.end_at - self.start_at).total_seconds() // 60)

    @property
    def key(self) -> tuple[int, datetime, datetime]:
        return (self.availability_id, self.start_at, self.end_at)


@dataclass(frozen=True)
class ReservationRequest:
    customer: User
    operator: User
    resource: Resource
    slots: tuple[RequestedSlot, ...]
    plan: Optional[Plan] = None

    @property
    def privileged(self) -> bool:
        return self.operator.acts_for_other(self.customer)


@dataclass(frozen=True)
class SlotPrice:
    start_at: datetime
    price: int
    promo: bool


@dataclass(frozen=True)
class PriceBreakdown:
    amount: int
    slots: tuple[SlotPrice, ...] = ()
    credit_hours_used: int = 0
    prepaid_minutes_used: int = 0
