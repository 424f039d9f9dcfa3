"""Append-only audit trail for auth failures, verification reviews and order changes.

Rows are only ever inserted. Callers own the transaction: create_log flushes so
the entry gets an id, and the surrounding service commits it together with the
change it describes.
"""
from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from fastapi import Request
from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog

CATEGORY_STATUS_CHANGE = "status_change"
CATEGORY_FAILED_ATTEMPT = "failed_attempt"
CATEGORY_VERIFICATION = "verification"
CATEGORY_PAYOUT = "payout"
CATEGORY_DELIVERY = "delivery"

# Column widths from app.models.audit_log
_LIMITS = {
    "category": 32,
    "title": 255,
    "actor_email": 255,
    "ip_address": 64,
    "user_agent": 500,
    "message": 100_000,
}


def _clip(field: str, value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()[: _LIMITS[field]]
    return text or None


def _json_safe(value: Any) -> Any:
    """Coerce enums, dates and Decimals so the JSON column accepts them."""
    if isinstance(value, enum.Enum):
        return value.value
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(v) for v in value]
    return str(value)


def request_origin(request: Request) -> dict[str, str | None]:
    """ip_address / user_agent keyword arguments for create_log."""
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


def create_log(
    db: Session,
    category: str,
    title: str,
    message: str,
    *,
    order_id: int | None = None,
    subject_user_id: int | None = None,
    actor_user_id: int | None = None,
    actor_email: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    meta: dict[str, Any] | None = None,
) -> AuditLog:
    entry = AuditLog(
        category=_clip("category", category) or CATEGORY_STATUS_CHANGE,
        title=_clip("title", title) or "-",
        message=_clip("message", message) or "-",
        order_id=order_id,
        subject_user_id=subject_user_id,
        actor_user_id=actor_user_id,
        actor_email=_clip("actor_email", actor_email),
        ip_address=_clip("ip_address", ip_address),
        user_agent=_clip("user_agent", user_agent),
        meta=_json_safe(meta) if meta is not None else None,
    )
    db.add(entry)
    db.flush()
    return entry
