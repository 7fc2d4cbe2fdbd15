from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_serializer, model_validator

from .config import get_settings
from .domain.errors import ErrorKind
from .domain.records import Availability, PriceBreakdown, ReservableKind, RequestedSlot, SlotRecord
from .domain.validator import ValidationResult
from .utils.time import get_zone, to_utc_naive, utc_naive_to_local


def _local_iso(dt: datetime) -> str:
    zone = get_zone(get_settings().timezone)
    if dt.tzinfo is None:
        return utc_naive_to_local(dt, zone).isoformat()
    return dt.astimezone(zone).isoformat()


class SlotIn(BaseModel):
    availability_id: int
    start_at: datetime
    end_at: datetime
    offered: bool = False

    @model_validator(mode="after")
    def _check_times(self) -> "SlotIn":
        if self.start_at.tzinfo is None or self.end_at.tzinfo is None:
            raise ValueError("start_at/end_at must have timezone")
        if self.start_at >= self.end_at:
            raise ValueError("start_at must be earlier than end_at")
        return self

    def to_requested(self) -> RequestedSlot:
        return RequestedSlot(
            start_at=to_utc_naive(self.start_at),
            end_at=to_utc_naive(self.end_at),
            availability_id=self.availability_id,
            offered=self.offered,
        )


class ReservationCommitCreate(BaseModel):
    customer_id: Optional[int] = Field(default=None, description="defaults to the operator")
    resource_kind: ReservableKind
    resource_id: int
    slots: List[SlotIn] = Field(min_length=1)
    plan_id: Optional[int] = Field(default=None, description="plan bought in the same order")

    def requested_slots(self) -> list[RequestedSlot]:
        return [slot.to_requested() for slot in self.slots]


class ReservationQuoteCreate(ReservationCommitCreate):
    coupon: Optional[str] = None


class SlotPriceRead(BaseModel):
    start_at: datetime
    price: int
    promo: bool

    @field_serializer("start_at")
    def _ser_datetime(self, dt: datetime) -> str:
        return _local_iso(dt)


class PriceElementsRead(BaseModel):
    slots: List[SlotPriceRead]


class PriceBreakdownRead(BaseModel):
    amount: int
    elements: PriceElementsRead

    @classmethod
    def from_domain(cls, breakdown: PriceBreakdown) -> "PriceBreakdownRead":
        return cls(
            amount=breakdown.amount,
            elements=PriceElementsRead(
                slots=[SlotPriceRead(start_at=e.start_at, price=e.price, promo=e.promo) for e in breakdown.slots]
            ),
        )


class FailingSlotRead(BaseModel):
    availability_id: int
    start_at: datetime
    end_at: datetime

    @field_serializer("start_at", "end_at")
    def _ser_datetime(self, dt: datetime) -> str:
        return _local_iso(dt)


class ValidationRead(BaseModel):
    valid: bool
    reason: Optional[ErrorKind] = None
    failing_slot: Optional[FailingSlotRead] = None

    @classmethod
    def from_domain(cls, result: ValidationResult) -> "ValidationRead":
        slot = result.failing_slot
        return cls(
            valid=result.valid,
            reason=result.reason,
            failing_slot=(
                FailingSlotRead(availability_id=slot.availability_id, start_at=slot.start_at, end_at=slot.end_at)
                if slot is not None
                else None
            ),
        )


class QuoteRead(BaseModel):
    validation: ValidationRead
    price: Optional[PriceBreakdownRead] = None
    before_coupon: Optional[int] = None
    total: Optional[int] = None


class ReservationRead(BaseModel):
    reservation_id: int
    price: PriceBreakdownRead
    credit_hours_used: int
    prepaid_minutes_used: int


class SlotRead(BaseModel):
    slot_id: int
    availability_id: int
    start_at: datetime
    end_at: datetime

    @field_serializer("start_at", "end_at")
    def _ser_datetime(self, dt: datetime) -> str:
        return _local_iso(dt)

    @classmethod
    def from_domain(cls, slot: SlotRecord) -> "SlotRead":
        return cls(slot_id=slot.id, availability_id=slot.availability_id, start_at=slot.start_at, end_at=slot.end_at)


class AvailabilityRead(BaseModel):
    availability_id: int
    kind: ReservableKind
    start_at: datetime
    end_at: datetime
    capacity: Optional[int]
    reserved_places: int
    full: bool
    plan_ids: List[int]
    tag_ids: List[int]
    slots: List[SlotRead]

    @field_serializer("start_at", "end_at")
    def _ser_datetime(self, dt: datetime) -> str:
        return _local_iso(dt)

    @classmethod
    def from_domain(cls, availability: Availability) -> "AvailabilityRead":
        return cls(
            availability_id=availability.id,
            kind=availability.kind,
            start_at=availability.start_at,
            end_at=availability.end_at,
            capacity=availability.capacity,
            reserved_places=availability.reserved_places,
            full=availability.full,
            plan_ids=sorted(availability.plan_ids),
            tag_ids=sorted(availability.tag_ids),
            slots=[SlotRead.from_domain(s) for s in availability.slots],
        )
