from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from .request_id import get_request_id

AuditAction = Literal[
    "booking.created",
    "booking.cancelled",
    "booking.compensated",
    "slots.reconciled",
    "profile.renamed",
]
AuditInitiator = Literal["user", "system"]


def _build_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
    logger.propagate = False
    return logger


_audit_logger = _build_logger("audit")


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def emit_audit_log(
    *,
    action: AuditAction,
    initiator: AuditInitiator,
    class_key: Optional[str] = None,
    user_id: Optional[str] = None,
    booking_id: Optional[str] = None,
    class_status: Optional[Any] = None,
    slots_from: Optional[int] = None,
    slots_to: Optional[int] = None,
    message: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """
    Write one JSON line to the "audit" logger.

    Seat counter changes carry slots_from/slots_to; booking events carry the
    booking id and the class status seen at write time. Unset fields are
    omitted. Raises RuntimeError if the line cannot be written.
    """
    fields: dict[str, Any] = {
        "booking_id": booking_id,
        "class_key": class_key,
        "user_id": user_id,
        "class_status": class_status,
        "slots_from": slots_from,
        "slots_to": slots_to,
        "message": message,
        **(extra or {}),
    }
    record = {
        "timestamp": datetime.now(timezone.utc),
        "level": "info",
        "action": action,
        "initiator": initiator,
        "request_id": get_request_id(),
    }
    record.update((key, value) for key, value in fields.items() if value is not None)
    try:
        line = json.dumps({k: v for k, v in record.items() if v is not None}, default=_json_default, ensure_ascii=True)
        _audit_logger.info(line)
    except Exception as exc:  # pragma: no cover - depends on handler
        raise RuntimeError("failed to emit audit log") from exc
