"""One-shot task scheduling: registry, task models and timer facilities."""
from .models import Task
from .registry import TaskRegistry
from .timer import LoopTimer, TimerFacility, VirtualHandle, VirtualTimer
from .types import RegistryStatus, TaskInfo, TaskStatus, now_ms, to_ms

__all__ = [
    "Task",
    "TaskRegistry",
    "TaskInfo",
    "TaskStatus",
    "RegistryStatus",
    "TimerFacility",
    "LoopTimer",
    "VirtualTimer",
    "VirtualHandle",
    "now_ms",
    "to_ms",
]
