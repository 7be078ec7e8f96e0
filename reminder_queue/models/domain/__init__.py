"""
Domain subpackage for the reminder claim queue.
"""

from .reminder_domain import (
    ClaimBatch,
    ClaimedEvent,
    Reminder,
    ReminderEvent,
    ReminderStatus,
)

__all__ = [
    "ClaimBatch",
    "ClaimedEvent",
    "Reminder",
    "ReminderEvent",
    "ReminderStatus",
]
