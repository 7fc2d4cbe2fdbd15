from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .records import RequestedSlot


class ErrorKind(StrEnum):
    SLOT_AVAILABILITY_MISSING = "slot_availability_missing"
    SLOT_ALREADY_RESERVED = "slot_already_reserved"
    SPACE_DISABLED = "space_disabled"
    AVAILABILITY_FULL = "availability_full"
    SLOT_RESTRICTED_TO_SUBSCRIBERS = "slot_restricted_to_subscribers"
    ITEM_UNAVAILABLE = "item_unavailable"


class ReservationError(Exception):
    """Base class for every error raised by the reservation engine."""


class NotFoundError(ReservationError):
    pass


class BookingValidationError(ReservationError):
    """A cart item or one of its slots cannot be booked. Recoverable: the caller can change the request."""

    kind: ErrorKind

    def __init__(self, message: str, *, slot: Optional["RequestedSlot"] = None) -> None:
        super().__init__(message)
        self.slot = slot


class SlotAvailabilityMissingError(BookingValidationError):
    kind = ErrorKind.SLOT_AVAILABILITY_MISSING


class SlotAlreadyReservedError(BookingValidationError):
    kind = ErrorKind.SLOT_ALREADY_RESERVED


class SpaceDisabledError(BookingValidationError):
    kind = ErrorKind.SPACE_DISABLED


class AvailabilityFullError(BookingValidationError):
    kind = ErrorKind.AVAILABILITY_FULL


class SlotRestrictedToSubscribersError(BookingValidationError):
    kind = ErrorKind.SLOT_RESTRICTED_TO_SUBSCRIBERS


class ItemUnavailableError(BookingValidationError):
    kind = ErrorKind.ITEM_UNAVAILABLE


ERRORS_BY_KIND: dict[ErrorKind, type[BookingValidationError]] = {
    cls.kind: cls
    for cls in (
        SlotAvailabilityMissingError,
        SlotAlreadyReservedError,
        SpaceDisabledError,
        AvailabilityFullError,
        SlotRestrictedToSubscribersError,
        ItemUnavailableError,
    )
}


class InvalidReservableTypeError(ReservationError):
    """Pricing was asked for a resource kind the slot engine does not price."""


class RateCardExhaustedError(ReservationError):
    """No price row can cover the remaining duration, not even a base hourly rate."""


class LedgerError(ReservationError):
    """A commit would drive a credit or prepaid balance below zero."""
