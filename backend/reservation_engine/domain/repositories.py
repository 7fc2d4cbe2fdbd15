from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Protocol, Sequence

from .ledger import CreditLedger, LedgerDebit
from .records import (
    Availability,
    Plan,
    Price,
    PriceBreakdown,
    RequestedSlot,
    ReservableKind,
    Resource,
    SlotRecord,
    Subscription,
    User,
)


class UserRepository(Protocol):
    async def get(self, user_id: int) -> User | None: ...


class CatalogRepository(Protocol):
    async def get_resource(self, kind: ReservableKind, resource_id: int) -> Resource | None: ...

    async def get_plan(self, plan_id: int) -> Plan | None: ...


class AvailabilityRepository(Protocol):
    async def get_many(self, availability_ids: Iterable[int]) -> dict[int, Availability]: ...

    async def list_for(
        self,
        kind: ReservableKind,
        resource_ids: Sequence[int] | None,
        start: datetime,
        end: datetime,
    ) -> list[Availability]: ...

    async def reserved_slots(self, resource: Resource, availability_ids: Iterable[int]) -> list[SlotRecord]: ...


class PriceRepository(Protocol):
    async def rate_card(self, resource: Resource, group_id: int | None, plan_id: int | None) -> list[Price]: ...


class LedgerRepository(Protocol):
    async def load(
        self,
        customer: User,
        resource: Resource,
        *,
        plan: Optional[Plan],
        new_plan_being_bought: bool,
    ) -> CreditLedger: ...

    async def save_debit(self, customer: User, debit: LedgerDebit) -> None: ...


class SubscriptionRepository(Protocol):
    async def create(self, customer: User, plan: Plan, *, start: datetime) -> Subscription: ...


class ReservationRepository(Protocol):
    async def lock_resource(self, resource: Resource) -> None: ...

    async def create(
        self,
        *,
        customer: User,
        operator: User,
        resource: Resource,
        slots: Sequence[RequestedSlot],
        breakdown: PriceBreakdown,
    ) -> int: ...


@dataclass(frozen=True)
class BookingRepositories:
    users: UserRepository
    catalog: CatalogRepository
    availabilities: AvailabilityRepository
    prices: PriceRepository
    ledger: LedgerRepository
    reservations: ReservationRepository
    subscriptions: SubscriptionRepository
