"""Data models for registered tasks."""
from dataclasses import dataclass, field
from typing import Any

from .types import TargetTime, TaskCallback, TaskInfo, TaskStatus


@dataclass
class Task:
    """A task that is scheduled to run at a specific time.

    Owned exclusively by a TaskRegistry; callers only ever see TaskInfo snapshots.
    """
    id: int
    target_time: TargetTime
    callback: TaskCallback

    # Timer armed for the current scheduling, replaced on every reschedule
    timer_handle: Any = None
    # Bumped on every arm; a timer from an older generation is stale
    generation: int = 0
    status: TaskStatus = TaskStatus.SCHEDULED

    # Target time in ms, cached at arm time
    target_ms: int = field(default=0, repr=False)

    def to_info(self) -> TaskInfo:
        """Snapshot without callback or timer handle."""
        return TaskInfo(id=self.id, target_time=self.target_time)
