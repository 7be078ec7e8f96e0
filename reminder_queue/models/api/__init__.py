"""
External request/response shapes (camelCase on the wire).
"""

from .base import CamelModel, parse_request
from .reminder_request import (
    AckSentRequest,
    CancelReminderRequest,
    ClaimDueRequest,
    CreateReminderRequest,
    FailRequest,
    ListRemindersRequest,
)
from .reminder_response import (
    AckSentResponse,
    ClaimDueResponse,
    ClaimedEventResponse,
    CreateReminderResponse,
    FailResponse,
    ListRemindersResponse,
    ReminderResponse,
)

__all__ = [
    "AckSentRequest",
    "AckSentResponse",
    "CamelModel",
    "CancelReminderRequest",
    "ClaimDueRequest",
    "ClaimDueResponse",
    "ClaimedEventResponse",
    "CreateReminderRequest",
    "CreateReminderResponse",
    "FailRequest",
    "FailResponse",
    "ListRemindersRequest",
    "ListRemindersResponse",
    "ReminderResponse",
    "parse_request",
]
