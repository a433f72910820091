from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from .request_id import get_request_id

AuditAction = Literal[
    "booking.created",
    "booking.status_changed",
    "slot.created",
    "slot.deleted",
]
AuditInitiator = Literal["customer", "admin", "system"]


def _build_logger() -> logging.Logger:
    logger = logging.getLogger("audit")
    logger.setLevel(logging.INFO)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
    # One JSON object per line; keep it out of the application log format.
    logger.propagate = False
    return logger


_audit_logger = _build_logger()


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def emit_audit_log(
    *,
    action: AuditAction,
    initiator: AuditInitiator,
    booking_id: Optional[int] = None,
    slot_id: Optional[int] = None,
    user_id: Optional[int] = None,
    actor_id: Optional[int] = None,
    status_from: Optional[str] = None,
    status_to: Optional[str] = None,
    slot_effect: Optional[str] = None,
    message: Optional[str] = None,
) -> None:
    """
    Write one audit record for a committed booking or slot change.

    Empty fields are omitted. Raises RuntimeError when the record cannot be
    written, so callers can surface the failure instead of losing the trail.
    """
    record = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "action": action,
        "initiator": initiator,
        "request_id": get_request_id(),
        "booking_id": booking_id,
        "slot_id": slot_id,
        "user_id": user_id,
        "actor_id": actor_id,
        "status_from": _plain(status_from),
        "status_to": _plain(status_to),
        "slot_effect": _plain(slot_effect),
        "message": message,
    }
    line = json.dumps({k: v for k, v in record.items() if v is not None}, ensure_ascii=True)
    try:
        _audit_logger.info(line)
    except Exception as exc:
        raise RuntimeError("failed to emit audit log") from exc
