from typing import AsyncIterator, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from .config import Settings, get_settings
from .database import async_session
from .domain.cart import CouponFn
from .domain.pricer import PricingOptions
from .domain.visibility import VisibilityOptions


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


def _parse_user_id(x_user_id: str) -> int:
    try:
        return int(x_user_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid X-User-Id") from exc


async def get_current_user_id(x_user_id: str | None = Header(default=None)) -> int:
    if x_user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="X-User-Id header required")
    return _parse_user_id(x_user_id)


async def get_optional_user_id(x_user_id: str | None = Header(default=None)) -> Optional[int]:
    """Anonymous visitors may browse the calendar."""
    if x_user_id is None:
        return None
    return _parse_user_id(x_user_id)


def get_pricing_options(settings: Settings = Depends(get_settings)) -> PricingOptions:
    return settings.pricing_options()


def get_visibility_options(settings: Settings = Depends(get_settings)) -> VisibilityOptions:
    return settings.visibility_options()


def get_coupon_applier() -> Optional[CouponFn]:
    """Coupon lookup lives outside this service; deployments override this dependency."""
    return None
