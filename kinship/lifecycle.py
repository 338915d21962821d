"""Moderation lifecycle of a person record and the dustbin retention countdown.

    pending <-> approved --soft delete--> deleted --recover--> approved
                                          deleted --purge-->   (record removed)

Recovery always lands in approved. The retention window is advisory: it drives the
dustbin countdown, it does not block an early purge.
"""
import enum
from datetime import datetime, timezone

from .errors import InvariantViolation
from .models import Status

RETENTION_DAYS = 30


class Action(str, enum.Enum):
    APPROVE = "approve"
    UNAPPROVE = "unapprove"
    SOFT_DELETE = "delete"
    RECOVER = "recover"
    PURGE = "purge"


_ALLOWED_FROM = {
    Action.APPROVE: {Status.PENDING, Status.APPROVED},
    Action.UNAPPROVE: {Status.PENDING, Status.APPROVED},
    Action.SOFT_DELETE: {Status.PENDING, Status.APPROVED},
    Action.RECOVER: {Status.DELETED, Status.APPROVED},
    Action.PURGE: {Status.PENDING, Status.APPROVED, Status.DELETED},
}

_TARGET = {
    Action.APPROVE: Status.APPROVED,
    Action.UNAPPROVE: Status.PENDING,
    Action.SOFT_DELETE: Status.DELETED,
    Action.RECOVER: Status.APPROVED,
    Action.PURGE: None,
}


def next_status(current: Status, action: Action) -> Status | None:
    """Status after `action`, or None when the action removes the record.

    Raises InvariantViolation for transitions the lifecycle does not allow, e.g.
    approving a deleted record or recovering a pending one.
    """
    if current not in _ALLOWED_FROM[action]:
        raise InvariantViolation(f"Cannot {action.value} a {current.value} record")
    return _TARGET[action]


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_timestamp(value) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def days_remaining(deleted_at, now: datetime | None = None) -> int:
    """Whole days left before a deleted record is due for purge, clamped to [0, 30]."""
    if not deleted_at:
        return RETENTION_DAYS
    deleted = _parse_timestamp(deleted_at)
    if deleted is None:
        return RETENTION_DAYS
    now = now or datetime.now(timezone.utc)
    elapsed = (now - deleted).days
    return min(RETENTION_DAYS, max(0, RETENTION_DAYS - elapsed))


def is_purge_due(deleted_at, now: datetime | None = None) -> bool:
    return bool(deleted_at) and days_remaining(deleted_at, now) == 0
