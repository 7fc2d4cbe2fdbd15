from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import Select, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .. import models
from ..domain import records
from ..domain.errors import ItemUnavailableError
from ..domain.ledger import CreditGrant, CreditLedger, LedgerDebit, PrepaidPackBalance
from ..domain.repositories import (
    AvailabilityRepository,
    BookingRepositories,
    CatalogRepository,
    LedgerRepository,
    PriceRepository,
    ReservationRepository,
    SubscriptionRepository,
    UserRepository,
)
from ..utils.time import utc_now_naive


def _eq_or_null(column: Any, value: Optional[int]) -> Any:
    return column.is_(None) if value is None else column == value


def _plan_record(plan: models.Plan) -> records.Plan:
    return records.Plan(
        id=plan.id,
        interval=plan.interval,
        amount=plan.amount,
        group_id=plan.group_id,
        disabled=plan.disabled,
    )


class SqlAlchemyUserRepository(UserRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, user_id: int) -> records.User | None:
        user = await self.session.scalar(select(models.User).where(models.User.id == user_id))
        if user is None:
            return None

        subscription = await self.session.scalar(
            select(models.Subscription)
            .options(selectinload(models.Subscription.plan))
            .where(models.Subscription.user_id == user_id)
            .order_by(models.Subscription.created_at.desc())
            .limit(1)
        )
        tag_ids = await self.session.scalars(select(models.UserTag.tag_id).where(models.UserTag.user_id == user_id))
        trainings = await self.session.scalar(
            select(func.count()).select_from(models.UserTraining).where(models.UserTraining.user_id == user_id)
        )
        return records.User(
            id=user.id,
            role=user.role,
            group_id=user.group_id,
            tag_ids=frozenset(tag_ids.all()),
            subscription=(
                records.Subscription(plan=_plan_record(subscription.plan), expired_at=subscription.expired_at)
                if subscription is not None
                else None
            ),
            trainings_count=int(trainings or 0),
        )


class SqlAlchemyCatalogRepository(CatalogRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_resource(self, kind: records.ReservableKind, resource_id: int) -> records.Resource | None:
        resource = await self.session.scalar(
            select(models.Resource).where(models.Resource.id == resource_id, models.Resource.kind == kind)
        )
        if resource is None:
            return None
        return records.Resource(id=resource.id, kind=resource.kind, name=resource.name, disabled=resource.disabled)

    async def get_plan(self, plan_id: int) -> records.Plan | None:
        plan = await self.session.scalar(select(models.Plan).where(models.Plan.id == plan_id))
        return _plan_record(plan) if plan is not None else None


class SqlAlchemyAvailabilityRepository(AvailabilityRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _ids_by_availability(self, column: Any, owner: Any, ids: list[int]) -> dict[int, set[int]]:
        rows = await self.session.execute(select(owner, column).where(owner.in_(ids)))
        grouped: dict[int, set[int]] = defaultdict(set)
        for availability_id, value in rows.all():
            grouped[availability_id].add(value)
        return grouped

    async def _reserved_places(self, ids: list[int]) -> dict[int, int]:
        stmt = (
            select(models.Slot.availability_id, func.count(func.distinct(models.SlotReservation.reservation_id)))
            .join(models.SlotReservation, models.SlotReservation.slot_id == models.Slot.id)
            .where(models.Slot.availability_id.in_(ids), models.SlotReservation.canceled_at.is_(None))
            .group_by(models.Slot.availability_id)
        )
        rows = await self.session.execute(stmt)
        return {availability_id: int(count) for availability_id, count in rows.all()}

    async def _load(self, stmt: Select[Any]) -> list[records.Availability]:
        rows = (await self.session.scalars(stmt.options(selectinload(models.Availability.slots)))).unique().all()
        ids = [row.id for row in rows]
        if not ids:
            return []
        plans = await self._ids_by_availability(
            models.AvailabilityPlan.plan_id, models.AvailabilityPlan.availability_id, ids
        )
        tags = await self._ids_by_availability(models.AvailabilityTag.tag_id, models.AvailabilityTag.availability_id, ids)
        resources = await self._ids_by_availability(
            models.AvailabilityResource.resource_id, models.AvailabilityResource.availability_id, ids
        )
        reserved = await self._reserved_places(ids)
        return [
            records.Availability(
                id=row.id,
                kind=row.available_type,
                start_at=row.start_at,
                end_at=row.end_at,
                capacity=row.nb_total_places,
                reserved_places=reserved.get(row.id, 0),
                plan_ids=frozenset(plans.get(row.id, ())),
                tag_ids=frozenset(tags.get(row.id, ())),
                locked=row.lock,
                resource_ids=frozenset(resources.get(row.id, ())),
                slots=tuple(
                    records.SlotRecord(id=s.id, availability_id=row.id, start_at=s.start_at, end_at=s.end_at)
                    for s in row.slots
                ),
            )
            for row in rows
        ]

    async def get_many(self, availability_ids: Iterable[int]) -> dict[int, records.Availability]:
        ids = list(set(availability_ids))
        if not ids:
            return {}
        found = await self._load(select(models.Availability).where(models.Availability.id.in_(ids)))
        return {availability.id: availability for availability in found}

    async def list_for(
        self,
        kind: records.ReservableKind,
        resource_ids: Sequence[int] | None,
        start: datetime,
        end: datetime,
    ) -> list[records.Availability]:
        stmt = select(models.Availability).where(
            models.Availability.available_type == kind,
            models.Availability.start_at <= end,
            models.Availability.end_at >= start,
        )
        if resource_ids is not None:
            stmt = stmt.join(
                models.AvailabilityResource,
                models.AvailabilityResource.availability_id == models.Availability.id,
            ).where(models.AvailabilityResource.resource_id.in_(list(resource_ids)))
        return await self._load(stmt.order_by(models.Availability.start_at))

    async def reserved_slots(
        self,
        resource: records.Resource,
        availability_ids: Iterable[int],
    ) -> list[records.SlotRecord]:
        stmt = (
            select(models.Slot, models.SlotReservation.canceled_at)
            .join(models.SlotReservation, models.SlotReservation.slot_id == models.Slot.id)
            .join(models.Reservation, models.Reservation.id == models.SlotReservation.reservation_id)
            .where(
                models.Reservation.resource_id == resource.id,
                models.Slot.availability_id.in_(list(availability_ids)),
            )
        )
        rows = await self.session.execute(stmt)
        return [
            records.SlotRecord(
                id=slot.id,
                availability_id=slot.availability_id,
                start_at=slot.start_at,
                end_at=slot.end_at,
                canceled_at=canceled_at,
            )
            for slot, canceled_at in rows.all()
        ]


class SqlAlchemyPriceRepository(PriceRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def rate_card(
        self,
        resource: records.Resource,
        group_id: int | None,
        plan_id: int | None,
    ) -> list[records.Price]:
        stmt = (
            select(models.Price)
            .where(
                models.Price.resource_id == resource.id,
                _eq_or_null(models.Price.group_id, group_id),
                _eq_or_null(models.Price.plan_id, plan_id),
            )
            .order_by(models.Price.id)
        )
        rows = await self.session.scalars(stmt)
        return [
            records.Price(amount=p.amount, duration=p.duration, group_id=p.group_id, plan_id=p.plan_id)
            for p in rows.all()
        ]


class SqlAlchemyLedgerRepository(LedgerRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def load(
        self,
        customer: records.User,
        resource: records.Resource,
        *,
        plan: Optional[records.Plan],
        new_plan_being_bought: bool,
    ) -> CreditLedger:
        grant: Optional[CreditGrant] = None
        hours_used = 0
        if plan is not None:
            credit = await self.session.scalar(
                select(models.Credit).where(
                    models.Credit.plan_id == plan.id,
                    models.Credit.resource_id == resource.id,
                )
            )
            if credit is not None:
                grant = CreditGrant(credit_id=credit.id, hours=credit.hours)
                used = await self.session.scalar(
                    select(models.UserCredit.hours_used).where(
                        models.UserCredit.user_id == customer.id,
                        models.UserCredit.credit_id == credit.id,
                    )
                )
                hours_used = int(used or 0)

        rows = await self.session.execute(
            select(models.UserPrepaidPack, models.PrepaidPack.minutes)
            .join(models.PrepaidPack, models.PrepaidPack.id == models.UserPrepaidPack.prepaid_pack_id)
            .where(
                models.UserPrepaidPack.user_id == customer.id,
                models.PrepaidPack.resource_id == resource.id,
            )
        )
        packs = tuple(
            PrepaidPackBalance(
                id=user_pack.id,
                minutes=minutes,
                minutes_used=user_pack.minutes_used,
                expires_at=user_pack.expires_at,
            )
            for user_pack, minutes in rows.all()
        )
        return CreditLedger(
            grant=grant,
            hours_used=hours_used,
            packs=packs,
            new_plan_being_bought=new_plan_being_bought,
        )

    async def save_debit(self, customer: records.User, debit: LedgerDebit) -> None:
        if debit.hours and debit.credit_id is not None:
            user_credit = await self.session.scalar(
                select(models.UserCredit)
                .where(
                    models.UserCredit.user_id == customer.id,
                    models.UserCredit.credit_id == debit.credit_id,
                )
                .with_for_update()
            )
            if user_credit is None:
                user_credit = models.UserCredit(user_id=customer.id, credit_id=debit.credit_id, hours_used=0)
                self.session.add(user_credit)
            user_credit.hours_used += debit.hours

        for pack_id, minutes in debit.packs:
            await self.session.execute(
                update(models.UserPrepaidPack)
                .where(models.UserPrepaidPack.id == pack_id)
                .values(minutes_used=models.UserPrepaidPack.minutes_used + minutes)
            )
        await self.session.flush()


class SqlAlchemySubscriptionRepository(SubscriptionRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, customer: records.User, plan: records.Plan, *, start: datetime) -> records.Subscription:
        # serialises purchases of the same customer across resources
        await self.session.execute(select(models.User.id).where(models.User.id == customer.id).with_for_update())
        active = await self.session.scalar(
            select(func.count())
            .select_from(models.Subscription)
            .where(models.Subscription.user_id == customer.id, models.Subscription.expired_at >= start)
        )
        if active:
            raise ItemUnavailableError("customer already has an active subscription")

        expired_at = plan.expiry_from(start)
        self.session.add(
            models.Subscription(user_id=customer.id, plan_id=plan.id, expired_at=expired_at, created_at=start)
        )
        # a new period starts with the plan credits untouched
        await self.session.execute(
            delete(models.UserCredit).where(
                models.UserCredit.user_id == customer.id,
                models.UserCredit.credit_id.in_(select(models.Credit.id).where(models.Credit.plan_id == plan.id)),
            )
        )
        await self.session.flush()
        return records.Subscription(plan=plan, expired_at=expired_at)


class SqlAlchemyReservationRepository(ReservationRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def lock_resource(self, resource: records.Resource) -> None:
        # held until the surrounding transaction ends
        await self.session.execute(
            select(models.Resource.id).where(models.Resource.id == resource.id).with_for_update()
        )

    async def _slot_row(self, slot: records.RequestedSlot) -> models.Slot:
        row = await self.session.scalar(
            select(models.Slot).where(
                models.Slot.availability_id == slot.availability_id,
                models.Slot.start_at == slot.start_at,
                models.Slot.end_at == slot.end_at,
            )
        )
        if row is None:
            row = models.Slot(availability_id=slot.availability_id, start_at=slot.start_at, end_at=slot.end_at)
            self.session.add(row)
            await self.session.flush()
        return row

    async def create(
        self,
        *,
        customer: records.User,
        operator: records.User,
        resource: records.Resource,
        slots: Sequence[records.RequestedSlot],
        breakdown: records.PriceBreakdown,
    ) -> int:
        reservation = models.Reservation(
            user_id=customer.id,
            operator_id=operator.id,
            resource_id=resource.id,
            amount=breakdown.amount,
            created_at=utc_now_naive(),
        )
        self.session.add(reservation)
        await self.session.flush()

        for slot, element in zip(slots, breakdown.slots):
            row = await self._slot_row(slot)
            self.session.add(
                models.SlotReservation(
                    slot_id=row.id,
                    reservation_id=reservation.id,
                    offered=slot.offered,
                    price=element.price,
                )
            )
        await self.session.flush()
        return reservation.id


def build_repositories(session: AsyncSession) -> BookingRepositories:
    return BookingRepositories(
        users=SqlAlchemyUserRepository(session),
        catalog=SqlAlchemyCatalogRepository(session),
        availabilities=SqlAlchemyAvailabilityRepository(session),
        prices=SqlAlchemyPriceRepository(session),
        ledger=SqlAlchemyLedgerRepository(session),
        reservations=SqlAlchemyReservationRepository(session),
        subscriptions=SqlAlchemySubscriptionRepository(session),
    )
