from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql.sqltypes import BigInteger, Boolean, DateTime, Integer, String

from .domain.records import PlanInterval, ReservableKind, Role


class Base(DeclarativeBase):
    pass


def _enum(enum_cls: type) -> Enum:
    return Enum(
        enum_cls,
        values_callable=lambda cls: [e.value for e in cls],
        native_enum=False,
    )


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[Role] = mapped_column(_enum(Role), nullable=False, default=Role.MEMBER)
    group_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    subscriptions: Mapped[list["Subscription"]] = relationship(back_populates="user")


class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class UserTag(Base):
    __tablename__ = "user_tags"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), primary_key=True)
    tag_id: Mapped[int] = mapped_column(ForeignKey("tags.id"), primary_key=True)


class Plan(Base):
    __tablename__ = "plans"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    interval: Mapped[PlanInterval] = mapped_column(_enum(PlanInterval), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    group_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    disabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (Index("idx_subscriptions_user", "user_id"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    plan_id: Mapped[int] = mapped_column(ForeignKey("plans.id"), nullable=False)
    expired_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    user: Mapped["User"] = relationship(back_populates="subscriptions")
    plan: Mapped["Plan"] = relationship()


class Resource(Base):
    """A reservable machine, space, training or event."""

    __tablename__ = "resources"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    kind: Mapped[ReservableKind] = mapped_column(_enum(ReservableKind), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    disabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class UserTraining(Base):
    __tablename__ = "user_trainings"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), primary_key=True)
    training_id: Mapped[int] = mapped_column(ForeignKey("resources.id"), primary_key=True)


class Availability(Base):
    __tablename__ = "availabilities"
    __table_args__ = (
        CheckConstraint("start_at < end_at", name="chk_availabilities_time"),
        Index("idx_availabilities_window", "available_type", "start_at", "end_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    available_type: Mapped[ReservableKind] = mapped_column(_enum(ReservableKind), nullable=False)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    nb_total_places: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    lock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    slots: Mapped[list["Slot"]] = relationship(back_populates="availability", order_by="Slot.start_at")


class AvailabilityResource(Base):
    __tablename__ = "availability_resources"

    availability_id: Mapped[int] = mapped_column(ForeignKey("availabilities.id"), primary_key=True)
    resource_id: Mapped[int] = mapped_column(ForeignKey("resources.id"), primary_key=True)


class AvailabilityPlan(Base):
    __tablename__ = "availability_plans"

    availability_id: Mapped[int] = mapped_column(ForeignKey("availabilities.id"), primary_key=True)
    plan_id: Mapped[int] = mapped_column(ForeignKey("plans.id"), primary_key=True)


class AvailabilityTag(Base):
    __tablename__ = "availability_tags"

    availability_id: Mapped[int] = mapped_column(ForeignKey("availabilities.id"), primary_key=True)
    tag_id: Mapped[int] = mapped_column(ForeignKey("tags.id"), primary_key=True)


class Slot(Base):
    __tablename__ = "slots"
    __table_args__ = (
        CheckConstraint("start_at < end_at", name="chk_slots_time"),
        UniqueConstraint("availability_id", "start_at", "end_at", name="uq_slots"),
        Index("idx_slots_availability", "availability_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    availability_id: Mapped[int] = mapped_column(ForeignKey("availabilities.id"), nullable=False)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    availability: Mapped["Availability"] = relationship(back_populates="slots")


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        Index("idx_res_user", "user_id"),
        Index("idx_res_resource", "resource_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    operator_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    resource_id: Mapped[int] = mapped_column(ForeignKey("resources.id"), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    slot_reservations: Mapped[list["SlotReservation"]] = relationship(back_populates="reservation")


class SlotReservation(Base):
    __tablename__ = "slot_reservations"
    __table_args__ = (
        Index("idx_slot_res_slot", "slot_id"),
        Index("idx_slot_res_reservation", "reservation_id"),
        UniqueConstraint("slot_id", "reservation_id", name="uq_slot_res_slot_reservation"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    slot_id: Mapped[int] = mapped_column(ForeignKey("slots.id"), nullable=False)
    reservation_id: Mapped[int] = mapped_column(ForeignKey("reservations.id"), nullable=False)
    offered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    canceled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)

    slot: Mapped["Slot"] = relationship()
    reservation: Mapped["Reservation"] = relationship(back_populates="slot_reservations")


class Price(Base):
    __tablename__ = "prices"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="chk_prices_amount"),
        Index("idx_prices_lookup", "resource_id", "group_id", "plan_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    resource_id: Mapped[int] = mapped_column(ForeignKey("resources.id"), nullable=False)
    group_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    plan_id: Mapped[Optional[int]] = mapped_column(ForeignKey("plans.id"), nullable=True)
    duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)


class Credit(Base):
    """Free hours (or training sessions) a plan grants on a resource."""

    __tablename__ = "credits"
    __table_args__ = (UniqueConstraint("plan_id", "resource_id", name="uq_credits_plan_resource"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    plan_id: Mapped[int] = mapped_column(ForeignKey("plans.id"), nullable=False)
    resource_id: Mapped[int] = mapped_column(ForeignKey("resources.id"), nullable=False)
    hours: Mapped[int] = mapped_column(Integer, nullable=False)


class UserCredit(Base):
    __tablename__ = "user_credits"
    __table_args__ = (
        CheckConstraint("hours_used >= 0", name="chk_user_credits_hours"),
        UniqueConstraint("user_id", "credit_id", name="uq_user_credits"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    credit_id: Mapped[int] = mapped_column(ForeignKey("credits.id"), nullable=False)
    hours_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class PrepaidPack(Base):
    __tablename__ = "prepaid_packs"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    resource_id: Mapped[int] = mapped_column(ForeignKey("resources.id"), nullable=False)
    group_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    disabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class UserPrepaidPack(Base):
    __tablename__ = "user_prepaid_packs"
    __table_args__ = (
        CheckConstraint("minutes_used >= 0", name="chk_user_packs_minutes"),
        Index("idx_user_packs_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    prepaid_pack_id: Mapped[int] = mapped_column(ForeignKey("prepaid_packs.id"), nullable=False)
    minutes_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    prepaid_pack: Mapped["PrepaidPack"] = relationship()
