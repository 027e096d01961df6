"""
SLA engine for support tickets.

A priority defines two targets in minutes from ticket creation: first
response and resolution. Each target is in one of four states:

    met       done on time
    ok        not done, deadline not close
    due_soon  not done, deadline within the warning window
    breached  past the deadline, done or not
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple

from django.conf import settings
from django.utils import timezone

MET = 'met'
OK = 'ok'
DUE_SOON = 'due_soon'
BREACHED = 'breached'


@dataclass(frozen=True)
class SlaState:
    first_response: Optional[str]
    resolution: Optional[str]

    @property
    def breached(self) -> bool:
        return BREACHED in (self.first_response, self.resolution)

    @property
    def due_soon(self) -> bool:
        return DUE_SOON in (self.first_response, self.resolution)


def compute_sla_deadlines(priority, opened_at: datetime) -> Tuple[Optional[datetime], Optional[datetime]]:
    """(first response due, resolution due). Both None without a priority."""
    if priority is None:
        return None, None
    return (
        opened_at + timedelta(minutes=priority.response_sla_minutes),
        opened_at + timedelta(minutes=priority.resolve_sla_minutes),
    )


def deadline_state(
    due_at: Optional[datetime],
    done_at: Optional[datetime],
    now: datetime,
    warning_window: timedelta,
) -> Optional[str]:
    if due_at is None:
        return None
    if done_at is not None:
        return MET if done_at <= due_at else BREACHED
    if now > due_at:
        return BREACHED
    if now >= due_at - warning_window:
        return DUE_SOON
    return OK


def get_sla_state(ticket, now: Optional[datetime] = None, warning_window: Optional[timedelta] = None) -> SlaState:
    now = now or timezone.now()
    if warning_window is None:
        warning_window = timedelta(minutes=settings.SLA_WARNING_MINUTES)
    return SlaState(
        first_response=deadline_state(ticket.first_response_due_at, ticket.first_response_at, now, warning_window),
        resolution=deadline_state(ticket.resolve_due_at, ticket.resolved_at, now, warning_window),
    )
