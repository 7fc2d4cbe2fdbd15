from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_coupon_applier, get_current_user_id, get_pricing_options, get_session
from ..domain.cart import CouponFn
from ..domain.errors import (
    BookingValidationError,
    InvalidReservableTypeError,
    LedgerError,
    NotFoundError,
    RateCardExhaustedError,
    SlotAlreadyReservedError,
)
from ..domain.pricer import PricingOptions
from ..infrastructure.repositories import build_repositories
from ..schemas import (
    FailingSlotRead,
    PriceBreakdownRead,
    QuoteRead,
    ReservationCommitCreate,
    ReservationQuoteCreate,
    ReservationRead,
    ValidationRead,
)
from ..usecases import reservations as reservation_usecase
from ..utils.audit_log import emit_audit_log, initiator_for
from ..utils.time import utc_now_naive

router = APIRouter(prefix="/reservations", tags=["reservations"])


def _pricing_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, InvalidReservableTypeError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="pricing failed")


def _validation_detail(exc: BookingValidationError) -> dict[str, Any]:
    detail: dict[str, Any] = {"reason": exc.kind.value, "message": str(exc)}
    if exc.slot is not None:
        detail["slot"] = FailingSlotRead(
            availability_id=exc.slot.availability_id,
            start_at=exc.slot.start_at,
            end_at=exc.slot.end_at,
        ).model_dump(mode="json")
    return detail


@router.post("/quote", response_model=QuoteRead)
async def quote_reservation(
    payload: ReservationQuoteCreate,
    session: AsyncSession = Depends(get_session),
    operator_id: int = Depends(get_current_user_id),
    options: PricingOptions = Depends(get_pricing_options),
    apply_coupon: Optional[CouponFn] = Depends(get_coupon_applier),
) -> QuoteRead:
    repos = build_repositories(session)
    customer_id = payload.customer_id or operator_id
    try:
        quote = await reservation_usecase.quote_reservation(
            repos,
            customer_id=customer_id,
            operator_id=operator_id,
            resource_kind=payload.resource_kind,
            resource_id=payload.resource_id,
            slots=payload.requested_slots(),
            options=options,
            now=utc_now_naive(),
            plan_id=payload.plan_id,
            coupon=payload.coupon,
            apply_coupon=apply_coupon,
        )
    except (NotFoundError, InvalidReservableTypeError, RateCardExhaustedError) as exc:
        raise _pricing_http_error(exc) from exc

    try:
        emit_audit_log(
            action="reservation.quoted" if quote.validation.valid else "reservation.rejected",
            initiator=initiator_for(customer_id, operator_id),
            customer_id=customer_id,
            operator_id=operator_id,
            resource_kind=payload.resource_kind,
            resource_id=payload.resource_id,
            slot_count=len(payload.slots),
            amount=quote.breakdown.amount if quote.breakdown else None,
            reason=quote.validation.reason,
        )
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed") from exc

    return QuoteRead(
        validation=ValidationRead.from_domain(quote.validation),
        price=PriceBreakdownRead.from_domain(quote.breakdown) if quote.breakdown else None,
        before_coupon=quote.total.before_coupon if quote.total else None,
        total=quote.total.total if quote.total else None,
    )


@router.post("", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: ReservationCommitCreate,
    session: AsyncSession = Depends(get_session),
    operator_id: int = Depends(get_current_user_id),
    options: PricingOptions = Depends(get_pricing_options),
) -> ReservationRead:
    repos = build_repositories(session)
    customer_id = payload.customer_id or operator_id
    async with session.begin():
        try:
            commit = await reservation_usecase.commit_reservation(
                repos,
                customer_id=customer_id,
                operator_id=operator_id,
                resource_kind=payload.resource_kind,
                resource_id=payload.resource_id,
                slots=payload.requested_slots(),
                options=options,
                now=utc_now_naive(),
                plan_id=payload.plan_id,
            )
        except SlotAlreadyReservedError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        except BookingValidationError as exc:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=_validation_detail(exc),
            ) from exc
        except LedgerError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        except (NotFoundError, InvalidReservableTypeError, RateCardExhaustedError) as exc:
            raise _pricing_http_error(exc) from exc

    try:
        emit_audit_log(
            action="reservation.committed",
            initiator=initiator_for(customer_id, operator_id),
            customer_id=customer_id,
            operator_id=operator_id,
            resource_kind=payload.resource_kind,
            resource_id=payload.resource_id,
            reservation_id=commit.reservation_id,
            slot_count=len(payload.slots),
            amount=commit.breakdown.amount,
        )
        if not commit.debit.empty:
            emit_audit_log(
                action="ledger.debited",
                initiator="system",
                customer_id=customer_id,
                operator_id=operator_id,
                resource_kind=payload.resource_kind,
                resource_id=payload.resource_id,
                reservation_id=commit.reservation_id,
                extra={
                    "credit_hours": commit.debit.hours,
                    "prepaid_minutes": commit.debit.prepaid_minutes,
                },
            )
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed") from exc

    return ReservationRead(
        reservation_id=commit.reservation_id,
        price=PriceBreakdownRead.from_domain(commit.breakdown),
        credit_hours_used=commit.debit.hours,
        prepaid_minutes_used=commit.debit.prepaid_minutes,
    )
