from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from .request_id import get_request_id

AuditAction = Literal[
    "reservation.quoted",
    "reservation.rejected",
    "reservation.committed",
    "ledger.debited",
]
AuditInitiator = Literal["customer", "staff", "system"]

_audit_logger = logging.getLogger("audit")
_audit_logger.setLevel(logging.INFO)
if not _audit_logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    _audit_logger.addHandler(handler)
_audit_logger.propagate = False


def _enum_to_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if hasattr(value, "value"):
        return str(value.value)
    return str(value)


def initiator_for(customer_id: int, operator_id: int) -> AuditInitiator:
    return "customer" if customer_id == operator_id else "staff"


def emit_audit_log(
    *,
    action: AuditAction,
    initiator: AuditInitiator,
    customer_id: int,
    operator_id: Optional[int],
    resource_kind: Any,
    resource_id: int,
    reservation_id: Optional[int] = None,
    slot_count: Optional[int] = None,
    amount: Optional[int] = None,
    reason: Any = None,
    message: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Emit structured JSON audit log. Raises RuntimeError if logging fails."""
    payload: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": "info",
        "action": action,
        "initiator": initiator,
        "request_id": get_request_id(),
        "customer_id": customer_id,
        "operator_id": operator_id,
        "resource_kind": _enum_to_str(resource_kind),
        "resource_id": resource_id,
        "reservation_id": reservation_id,
        "slot_count": slot_count,
        "amount": amount,
        "reason": _enum_to_str(reason),
    }
    if message is not None:
        payload["message"] = message
    if extra:
        payload.update(extra)

    # Drop None values to keep the log compact.
    compact_payload = {k: v for k, v in payload.items() if v is not None}
    try:
        _audit_logger.info(json.dumps(compact_payload, ensure_ascii=True, default=str))
    except Exception as exc:
        raise RuntimeError("failed to emit audit log") from exc
