"""Tests for the timer facilities."""
import asyncio
import pytest
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from oneshot.scheduler import LoopTimer, TaskRegistry, VirtualTimer, now_ms, to_ms
from datetime import datetime, timezone


class TestTimeHelpers:
    """Tests for millisecond conversions."""

    def test_to_ms_datetime(self):
        dt = datetime(2024, 1, 15, 14, 0, 0, tzinfo=timezone.utc)
        assert to_ms(dt) == 1705327200000

    def test_to_ms_numbers(self):
        assert to_ms(1500) == 1500
        assert to_ms(1500.9) == 1500

    def test_to_ms_rejects_other_types(self):
        with pytest.raises(TypeError):
            to_ms("2024-01-15")
        with pytest.raises(TypeError):
            to_ms(True)

    def test_to_ms_rejects_non_finite(self):
        with pytest.raises(ValueError):
            to_ms(float("inf"))
        with pytest.raises(ValueError):
            to_ms(float("nan"))

    def test_now_ms_is_recent(self):
        assert abs(now_ms() - to_ms(datetime.now())) < 1000


class TestVirtualTimer:
    """Tests for the simulated clock."""

    def test_clock_only_moves_on_advance(self):
        timer = VirtualTimer(start_ms=1000)
        assert timer.now_ms() == 1000
        timer.advance(250)
        assert timer.now_ms() == 1250
        timer.advance_to(1100)
        assert timer.now_ms() == 1250

    def test_arm_and_fire(self):
        timer = VirtualTimer(start_ms=0)
        fired = []
        timer.arm(100, lambda: fired.append(timer.now_ms()))

        assert timer.advance(99) == 0
        assert timer.advance(1) == 1
        assert fired == [100]
        assert timer.pending == 0

    def test_negative_delay_clamps_to_now(self):
        timer = VirtualTimer(start_ms=500)
        handle = timer.arm(-100, lambda: None)
        assert handle.due_ms == 500

    def test_disarm_is_idempotent(self):
        timer = VirtualTimer(start_ms=0)
        fired = []
        handle = timer.arm(10, lambda: fired.append(1))

        timer.disarm(handle)
        timer.disarm(handle)
        timer.disarm(None)
        timer.advance(100)

        assert fired == []
        assert not handle.active

    def test_disarm_after_fire_is_safe(self):
        timer = VirtualTimer(start_ms=0)
        fired = []
        handle = timer.arm(10, lambda: fired.append(1))
        timer.advance(10)
        timer.disarm(handle)

        assert fired == [1]
        assert handle.fired

    def test_ties_fire_in_arming_order(self):
        timer = VirtualTimer(start_ms=0)
        order = []
        for name in "abc":
            timer.arm(10, lambda name=name: order.append(name))
        timer.advance(10)
        assert order == ["a", "b", "c"]

    def test_run_all_fires_chained_timers(self):
        timer = VirtualTimer(start_ms=0)
        fired = []

        def first():
            fired.append("first")
            timer.arm(5000, lambda: fired.append("second"))

        timer.arm(100, first)
        assert timer.run_all() == 2
        assert fired == ["first", "second"]
        assert timer.now_ms() == 5100

    def test_disarm_removes_handle_from_queue(self):
        timer = VirtualTimer(start_ms=0)
        handles = [timer.arm(10_000 + i, lambda: None) for i in range(50)]
        for handle in handles[:-1]:
            timer.disarm(handle)

        assert timer.pending == 1
        assert len(timer._queue) == 1
        assert timer.next_due_ms() == 10_049

    def test_next_due_ms_skips_disarmed(self):
        timer = VirtualTimer(start_ms=0)
        early = timer.arm(10, lambda: None)
        timer.arm(20, lambda: None)
        timer.disarm(early)
        assert timer.next_due_ms() == 20


class TestLoopTimer:
    """Tests for the asyncio-backed timer."""

    def test_create_outside_running_loop_leaves_no_task(self):
        registry = TaskRegistry(LoopTimer(), due_delay_ms=0)

        with pytest.raises(RuntimeError):
            registry.create(now_ms() + 1000, lambda: None)
        assert len(registry) == 0
        assert registry.list() == []

    @pytest.mark.asyncio
    async def test_registry_on_event_loop(self):
        registry = TaskRegistry(LoopTimer(), due_delay_ms=0)
        fired = []

        registry.create(now_ms() + 200, lambda: fired.append("later"))
        registry.create(now_ms() - 1000, lambda: fired.append("past"))
        assert fired == []

        await asyncio.sleep(0.02)
        assert fired == ["past"]
        assert len(registry) == 1

        await asyncio.sleep(0.5)
        assert fired == ["past", "later"]
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_cancel_on_event_loop(self):
        registry = TaskRegistry(LoopTimer(), due_delay_ms=0)
        fired = []

        task_id = registry.create(now_ms() + 20, lambda: fired.append(1))
        assert registry.cancel(task_id) is True

        await asyncio.sleep(0.05)
        assert fired == []

    @pytest.mark.asyncio
    async def test_reschedule_on_event_loop(self):
        registry = TaskRegistry(LoopTimer(), due_delay_ms=0)
        fired = []

        task_id = registry.create(now_ms() + 10, lambda: fired.append(1))
        registry.reschedule(task_id, now_ms() + 300)

        await asyncio.sleep(0.05)
        assert fired == []
        assert task_id in registry

        await asyncio.sleep(0.5)
        assert fired == [1]

    @pytest.mark.asyncio
    async def test_callback_error_goes_to_handler(self):
        errors = []
        registry = TaskRegistry(LoopTimer(on_error=errors.append), due_delay_ms=0)
        fired = []

        def boom():
            raise RuntimeError("boom")

        task_id = registry.create(now_ms(), boom)
        registry.create(now_ms(), lambda: fired.append(1))

        await asyncio.sleep(0.02)
        assert len(errors) == 1
        assert isinstance(errors[0], RuntimeError)
        assert task_id not in registry
        assert fired == [1]

    @pytest.mark.asyncio
    async def test_async_callback_is_scheduled(self):
        errors = []
        registry = TaskRegistry(LoopTimer(on_error=errors.append), due_delay_ms=0)
        done = asyncio.Event()

        async def job():
            await asyncio.sleep(0)
            done.set()

        registry.create(now_ms(), job)
        await asyncio.wait_for(done.wait(), timeout=1)
        assert errors == []
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_async_callback_error_goes_to_handler(self):
        errors = []
        timer = LoopTimer(on_error=errors.append)
        registry = TaskRegistry(timer, due_delay_ms=0)

        async def job():
            raise ValueError("async boom")

        registry.create(now_ms(), job)
        await asyncio.sleep(0.02)

        assert len(errors) == 1
        assert isinstance(errors[0], ValueError)

    @pytest.mark.asyncio
    async def test_disarm_is_safe_after_fire(self):
        timer = LoopTimer()
        fired = []
        handle = timer.arm(0, lambda: fired.append(1))

        await asyncio.sleep(0.01)
        timer.disarm(handle)
        timer.disarm(handle)
        timer.disarm(None)
        assert fired == [1]
