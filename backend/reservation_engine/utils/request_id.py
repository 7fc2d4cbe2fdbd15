from __future__ import annotations

import uuid
from contextvars import ContextVar, Token
from typing import Optional

REQUEST_ID_HEADER = "X-Request-ID"

_request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)


def generate_request_id() -> str:
    """Generate a random request id."""
    return uuid.uuid4().hex


def set_request_id(request_id: str | None) -> Token[str | None]:
    """Store request id in context (None to clear). Returns the token to restore the previous one."""
    return _request_id_ctx.set(request_id)


def reset_request_id(token: Token[str | None]) -> None:
    _request_id_ctx.reset(token)


def get_request_id() -> Optional[str]:
    """Return current request id if set."""
    return _request_id_ctx.get()
