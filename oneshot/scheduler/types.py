"""Core type definitions for the task registry.

This module defines:
- Time helpers (millisecond timestamps)
- Task status values
- Snapshot types returned to callers (TaskInfo, RegistryStatus)
"""
import math
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable

# A target time is either a datetime or a Unix timestamp in milliseconds.
TargetTime = datetime | int | float

# Zero-argument unit of work. The return value is handed back to the timer facility.
TaskCallback = Callable[[], Any]


# ============== Time Helpers ==============

def now_ms() -> int:
    """Get current timestamp in milliseconds."""
    return int(time.time() * 1000)


def to_ms(value: TargetTime) -> int:
    """Convert a target time to a Unix timestamp in milliseconds.

    Naive datetimes are interpreted in local time, like ``datetime.timestamp()``.
    Non-finite floats (inf, nan) raise ValueError.
    """
    if isinstance(value, datetime):
        return int(value.timestamp() * 1000)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(
            f"target time must be a datetime or a millisecond timestamp, got {type(value).__name__}"
        )
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"target time must be finite, got {value!r}")
    return int(value)


# ============== Task Status ==============

class TaskStatus(str, Enum):
    """Status of a task held by the registry.

    Cancelled and completed tasks are removed from the registry, so only
    these two values are ever stored.
    """
    SCHEDULED = "scheduled"   # Timer armed, waiting to fire
    EXECUTING = "executing"   # Callback is running


# ============== Snapshot Types ==============

@dataclass(frozen=True)
class TaskInfo:
    """Public view of a scheduled task."""
    id: int
    target_time: TargetTime

    def to_dict(self) -> dict[str, Any]:
        target = self.target_time
        return {
            "id": self.id,
            "target_time": target.isoformat() if isinstance(target, datetime) else target,
        }


@dataclass
class RegistryStatus:
    """Status of a task registry."""
    tasks_total: int
    tasks_scheduled: int
    tasks_executing: int
    next_task_id: int
    next_run_at_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tasks_total": self.tasks_total,
            "tasks_scheduled": self.tasks_scheduled,
            "tasks_executing": self.tasks_executing,
            "next_task_id": self.next_task_id,
            "next_run_at_ms": self.next_run_at_ms,
        }
