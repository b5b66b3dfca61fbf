"""oneshot - a minimal one-shot task scheduler"""
from .scheduler import (
    LoopTimer,
    RegistryStatus,
    TaskInfo,
    TaskRegistry,
    TaskStatus,
    VirtualTimer,
)

__version__ = "0.1.0"

__all__ = [
    "TaskRegistry",
    "TaskInfo",
    "TaskStatus",
    "RegistryStatus",
    "LoopTimer",
    "VirtualTimer",
]
