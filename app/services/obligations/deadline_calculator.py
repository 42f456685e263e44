"""Deadline calculation for obligation instances.

Given an obligation schedule and a competence period, ``compute`` returns the
legal due date and the internal target date. Both dates fall in the *due
period*: the competence period moved forward by ``due_period_offset``
periods (years for annual obligations).

Monthly and annual:
    * ``legal_due_rule`` is the day of the due month, ``None`` meaning the
      last day of the month.
    * ``internal_target_day`` is the day of the same month.
    * Days beyond the month length are clamped to the last day.

Weekly:
    * Days are ISO weekday ordinals (1 = Monday ... 7 = Sunday) of the due
      week, ``legal_due_rule=None`` meaning Sunday.

The internal target is finally clamped to be on or before the due date.
"""

import calendar
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

from app.core.exceptions import ValidationError
from app.services.obligations.competence import Competence, WEEK, kind_for_frequency

FREQUENCIES = ("weekly", "monthly", "annual")


@dataclass(frozen=True)
class ObligationSchedule:
    frequency: str
    internal_target_day: int
    legal_due_rule: Optional[int] = None
    due_period_offset: int = 0

    @classmethod
    def from_obligation(cls, obligation: Any, link: Any = None) -> "ObligationSchedule":
        """Build the effective schedule, applying per-link overrides when set."""
        internal_day = obligation.internal_target_day
        due_rule = obligation.legal_due_rule
        if link is not None:
            if getattr(link, "internal_target_day_override", None) is not None:
                internal_day = link.internal_target_day_override
            if getattr(link, "legal_due_rule_override", None) is not None:
                due_rule = link.legal_due_rule_override
        return cls(
            frequency=obligation.frequency,
            internal_target_day=internal_day,
            legal_due_rule=due_rule,
            due_period_offset=obligation.due_period_offset or 0,
        )


@dataclass(frozen=True)
class Deadlines:
    due_at: date
    internal_target_at: date


def validate_schedule(schedule: ObligationSchedule) -> None:
    """Reject day values that cannot be resolved for the schedule's frequency."""
    if schedule.frequency not in FREQUENCIES:
        raise ValidationError(f"Unknown obligation frequency: {schedule.frequency!r}")

    upper = 7 if schedule.frequency == "weekly" else 31
    if not 1 <= schedule.internal_target_day <= upper:
        raise ValidationError(
            f"internal_target_day must be between 1 and {upper} for {schedule.frequency} obligations"
        )
    if schedule.legal_due_rule is not None and not 1 <= schedule.legal_due_rule <= upper:
        raise ValidationError(
            f"legal_due_rule must be between 1 and {upper} for {schedule.frequency} obligations"
        )
    if schedule.due_period_offset < 0:
        raise ValidationError("due_period_offset cannot be negative")


def _day_in_month(year: int, month: int, day: Optional[int]) -> date:
    last_day = calendar.monthrange(year, month)[1]
    if day is None:
        return date(year, month, last_day)
    return date(year, month, min(day, last_day))


def compute(schedule: ObligationSchedule, competence: Competence) -> Deadlines:
    """Compute the due date and internal target for one competence period.

    Args:
        schedule: Effective obligation schedule
        competence: Competence period the instance refers to

    Returns:
        Deadlines with ``internal_target_at <= due_at``

    Raises:
        ValidationError: If the schedule is invalid or does not fit the competence kind.
    """
    validate_schedule(schedule)
    if kind_for_frequency(schedule.frequency) != competence.kind:
        raise ValidationError(
            f"Competence {competence.token} does not fit a {schedule.frequency} obligation"
        )

    if competence.kind == WEEK:
        due_week = competence.shift(schedule.due_period_offset)
        due_at = date.fromisocalendar(due_week.year, due_week.number, schedule.legal_due_rule or 7)
        internal = date.fromisocalendar(due_week.year, due_week.number, schedule.internal_target_day)
    else:
        step = 12 if schedule.frequency == "annual" else 1
        due_month = competence.shift(schedule.due_period_offset * step)
        due_at = _day_in_month(due_month.year, due_month.number, schedule.legal_due_rule)
        internal = _day_in_month(due_month.year, due_month.number, schedule.internal_target_day)

    return Deadlines(due_at=due_at, internal_target_at=min(internal, due_at))
