"""Obligation instance lifecycle.

Open statuses (``pending``, ``due_48h``, ``overdue``) are a pure function of
the business date and ``internal_target_at``; they can be computed on every
read or written eagerly by a sweep with identical results. Done statuses
(``on_time_done``, ``late_done``) are authoritative and only change through
``complete`` and ``unmark``.

All dates are compared in the business timezone, at day granularity: an
instance completed at any moment of its target day is on time.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional, Tuple
from uuid import UUID
from zoneinfo import ZoneInfo

from app.core.config import settings
from app.core.exceptions import InvalidStateTransitionError, ValidationError

PENDING = "pending"
DUE_48H = "due_48h"
OVERDUE = "overdue"
ON_TIME_DONE = "on_time_done"
LATE_DONE = "late_done"

OPEN_STATUSES = (PENDING, DUE_48H, OVERDUE)
DONE_STATUSES = (ON_TIME_DONE, LATE_DONE)
ALL_STATUSES = OPEN_STATUSES + DONE_STATUSES


def is_done(status: str) -> bool:
    return status in DONE_STATUSES


def business_today(now: datetime, tz_name: Optional[str] = None) -> date:
    """Calendar date of ``now`` in the business timezone. Naive values are taken as UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(tz_name or settings.business_timezone)).date()


def derive_open_status(internal_target_at: date, today: date, due_soon_hours: Optional[int] = None) -> str:
    """Status of an instance that is not completed.

    ``overdue`` once the target day has passed, ``due_48h`` while the target
    day is within the due-soon window (the target day itself included),
    ``pending`` otherwise.
    """
    hours = settings.obligations.due_soon_hours if due_soon_hours is None else due_soon_hours
    days_left = (internal_target_at - today).days
    if days_left < 0:
        return OVERDUE
    if days_left * 24 <= hours:
        return DUE_48H
    return PENDING


def open_status_window(
    status: str, today: date, due_soon_hours: Optional[int] = None
) -> Tuple[Optional[date], Optional[date]]:
    """Inclusive ``internal_target_at`` range that derives ``status`` on ``today``.

    ``None`` leaves that side of the range open. Used to push status filters
    into the query instead of filtering computed rows.
    """
    hours = settings.obligations.due_soon_hours if due_soon_hours is None else due_soon_hours
    last_due_soon = today + timedelta(days=hours // 24)
    if status == OVERDUE:
        return None, today - timedelta(days=1)
    if status == DUE_48H:
        return today, last_due_soon
    if status == PENDING:
        return last_due_soon + timedelta(days=1), None
    raise ValidationError(f"{status} is not an open status")


def completion_status(internal_target_at: date, completed_on: date) -> str:
    return ON_TIME_DONE if completed_on <= internal_target_at else LATE_DONE


def effective_status(instance: Any, now: datetime) -> str:
    """Status as it should be read at ``now``."""
    if instance.completed_at is not None:
        if is_done(instance.status):
            return instance.status
        return completion_status(instance.internal_target_at, business_today(instance.completed_at))
    return derive_open_status(instance.internal_target_at, business_today(now))


def validate_completion_notes(notes: Optional[str]) -> str:
    """Manual completion notes must have a minimum length once stripped.

    Raises:
        ValidationError: If notes are missing or too short.
    """
    minimum = settings.obligations.min_completion_notes_length
    cleaned = (notes or "").strip()
    if len(cleaned) < minimum:
        raise ValidationError(f"Completion notes must have at least {minimum} characters")
    return cleaned


def complete(
    instance: Any,
    now: datetime,
    notes: Optional[str] = None,
    manual: bool = True,
    actor_id: Optional[UUID] = None,
) -> bool:
    """Complete an instance.

    Manual completion validates the notes before anything is touched. Cascade
    completion (``manual=False``) writes the fixed system note instead.

    Returns:
        True if the instance changed, False if it was already done.
    """
    if manual:
        notes = validate_completion_notes(notes)
    else:
        notes = settings.obligations.cascade_completion_note

    if is_done(instance.status) or instance.completed_at is not None:
        return False

    instance.status = completion_status(instance.internal_target_at, business_today(now))
    instance.completed_at = now
    instance.completion_notes = notes
    instance.completed_by = actor_id
    return True


def unmark(instance: Any, now: datetime) -> str:
    """Revert a completed instance to the open status that fits ``now``.

    Raises:
        InvalidStateTransitionError: If the instance is not completed.
    """
    if not is_done(instance.status):
        raise InvalidStateTransitionError(
            f"Instance {getattr(instance, 'id', '')} is not completed (status={instance.status})"
        )
    instance.completed_at = None
    instance.completion_notes = None
    instance.completed_by = None
    instance.status = derive_open_status(instance.internal_target_at, business_today(now))
    return instance.status


def refresh(instance: Any, now: datetime) -> bool:
    """Write the derived open status onto an open instance. Returns whether it changed."""
    if is_done(instance.status):
        return False
    status = derive_open_status(instance.internal_target_at, business_today(now))
    if status == instance.status:
        return False
    instance.status = status
    return True
