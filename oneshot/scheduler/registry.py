"""Task registry: one-shot tasks keyed by id, fired through an injected timer.

Lifecycle of a task:
- create: allocate id, store as SCHEDULED, arm a timer
- fire: mark EXECUTING, run the callback, remove
- cancel: disarm the timer, remove
- reschedule: disarm the timer, update the target time, arm a new timer

Stale timers (from a cancelled or rescheduled task) are guarded twice: the
handle is disarmed, and the fire path ignores any timer whose task id is gone
or whose generation is no longer current.
"""
from typing import Any

from loguru import logger

from ..config import settings
from .models import Task
from .timer import TimerFacility
from .types import (
    RegistryStatus,
    TargetTime,
    TaskCallback,
    TaskInfo,
    TaskStatus,
    to_ms,
)

logger = logger.bind(module="scheduler.registry")


class TaskRegistry:
    """Registry of pending one-shot tasks.

    All methods are synchronous and never run a callback on the caller's
    stack. Callbacks run in the timer facility's execution context, one at a
    time. Errors raised by a callback are not caught here; the task is still
    removed and the error reaches the timer facility.
    """

    def __init__(self, timer: TimerFacility, due_delay_ms: int | None = None):
        """Initialize registry.

        Args:
            timer: Single-shot timer facility used for all wakeups
            due_delay_ms: Delay for tasks whose target time already passed
                (defaults to settings.due_delay_ms)
        """
        self.timer = timer
        self.due_delay_ms = max(0, settings.due_delay_ms if due_delay_ms is None else due_delay_ms)
        self._tasks: dict[int, Task] = {}
        self._next_task_id = 1

    # ============== Public API ==============

    def create(self, target_time: TargetTime, callback: TaskCallback) -> int:
        """Create and schedule a new task.

        Returns:
            The task id, used to cancel or reschedule the task
        """
        task_id = self._next_task_id
        task = Task(id=task_id, target_time=target_time, callback=callback)
        # Only a successfully armed task enters the registry
        self._arm(task, target_time)

        self._next_task_id += 1
        self._tasks[task_id] = task
        logger.debug(f"Task {task_id} created, scheduled for {target_time}")
        return task_id

    def cancel(self, task_id: int) -> bool:
        """Cancel a task and remove it.

        Returns:
            True if the task was found and cancelled, False otherwise
        """
        task = self._tasks.pop(task_id, None)
        if task is None:
            logger.warning(f"Task {task_id} not found, cannot cancel")
            return False

        self.timer.disarm(task.timer_handle)
        task.timer_handle = None
        logger.debug(f"Task {task_id} cancelled and removed")
        return True

    def reschedule(self, task_id: int, new_target_time: TargetTime) -> bool:
        """Move a task to a new target time, keeping its id.

        Returns:
            True if the task was found and rescheduled, False otherwise
        """
        task = self._tasks.get(task_id)
        if task is None:
            logger.warning(f"Task {task_id} not found, cannot reschedule")
            return False

        # Arm first: if that fails the old timer and target time stay in place
        old_handle = self._arm(task, new_target_time)
        self.timer.disarm(old_handle)
        logger.debug(f"Task {task_id} rescheduled for {new_target_time}")
        return True

    def list(self) -> list[TaskInfo]:
        """Snapshot of all scheduled tasks, in insertion order."""
        return [
            task.to_info()
            for task in self._tasks.values()
            if task.status == TaskStatus.SCHEDULED
        ]

    def get(self, task_id: int) -> TaskInfo | None:
        """Snapshot of one scheduled task, or None."""
        task = self._tasks.get(task_id)
        if task is None or task.status != TaskStatus.SCHEDULED:
            return None
        return task.to_info()

    def status(self) -> RegistryStatus:
        """Counts of held tasks and the earliest pending target time."""
        scheduled = [t for t in self._tasks.values() if t.status == TaskStatus.SCHEDULED]
        return RegistryStatus(
            tasks_total=len(self._tasks),
            tasks_scheduled=len(scheduled),
            tasks_executing=len(self._tasks) - len(scheduled),
            next_task_id=self._next_task_id,
            next_run_at_ms=min((t.target_ms for t in scheduled), default=None),
        )

    # ============== Lifecycle ==============

    def close(self) -> None:
        """Disarm every outstanding timer and drop all tasks.

        The id counter is kept, so ids stay unique if the registry is reused.
        """
        count = len(self._tasks)
        for task in self._tasks.values():
            self.timer.disarm(task.timer_handle)
            task.timer_handle = None
        self._tasks.clear()
        logger.info(f"Registry closed, {count} pending tasks disarmed")

    def __enter__(self) -> "TaskRegistry":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    # ============== Internal ==============

    def _arm(self, task: Task, target_time: TargetTime) -> Any:
        """Arm a fresh timer for ``target_time`` and make it the task's current one.

        The task is only updated once the timer is armed, so a conversion or
        arming error leaves it untouched.

        Returns:
            The task's previous timer handle, for the caller to disarm
        """
        target_ms = to_ms(target_time)
        delay_ms = target_ms - self.timer.now_ms()

        generation = task.generation + 1
        task_id = task.id

        if delay_ms > 0:
            logger.debug(f"Task {task_id} scheduled to run in {delay_ms}ms")
        else:
            logger.warning(f"Task {task_id} is scheduled in the past, running as soon as possible")
            delay_ms = self.due_delay_ms

        handle = self.timer.arm(delay_ms, lambda: self._fire(task_id, generation))

        old_handle = task.timer_handle
        task.target_time = target_time
        task.target_ms = target_ms
        task.generation = generation
        task.timer_handle = handle
        task.status = TaskStatus.SCHEDULED
        return old_handle

    def _fire(self, task_id: int, generation: int) -> Any:
        """Run a task whose timer elapsed, then remove it.

        A timer for an unknown id or an older generation is a no-op.
        """
        task = self._tasks.get(task_id)
        if task is None:
            logger.debug(f"Task {task_id} not found on fire (may have been cancelled)")
            return None
        if task.generation != generation or task.status != TaskStatus.SCHEDULED:
            logger.debug(f"Ignoring stale timer for task {task_id} (generation {generation})")
            return None

        logger.debug(f"Executing task {task_id}")
        task.status = TaskStatus.EXECUTING
        task.timer_handle = None
        try:
            return task.callback()
        finally:
            # The callback may have cancelled or rescheduled its own task
            if self._tasks.get(task_id) is task and task.status == TaskStatus.EXECUTING:
                del self._tasks[task_id]
                logger.debug(f"Task {task_id} completed and removed")
