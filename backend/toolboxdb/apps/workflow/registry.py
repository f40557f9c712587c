from __future__ import annotations

from .guards import (
    guard_supervision_unassign,
    guard_talk_cancellation,
    guard_talk_completion,
)

WORKFLOWS = {
    "scheduled_talk": {
        "transitions": {
            "PENDING": {
                "COMPLETED": [guard_talk_completion],
                "OVERDUE": [],
                "CANCELLED": [guard_talk_cancellation],
            },
            "OVERDUE": {
                "COMPLETED": [guard_talk_completion],
                "CANCELLED": [guard_talk_cancellation],
            },
            "COMPLETED": {},
            "CANCELLED": {},
        }
    },
    "course_assignment": {
        "transitions": {
            "ACTIVE": {"INACTIVE": []},
            "INACTIVE": {},
        }
    },
    "supervisor_assignment": {
        "transitions": {
            "ACTIVE": {"INACTIVE": [guard_supervision_unassign]},
            "INACTIVE": {},
        }
    },
}
