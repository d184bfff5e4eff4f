import threading

import pytest

from acquired_gateway.exceptions import GatewayError
from acquired_gateway.services.scheduler import ScheduleService


class Clock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def scheduler(clock):
    return ScheduleService(group="acfw", delay=30, clock=clock)


class TestSchedule:
    """Tests for ScheduleService.schedule()."""

    @pytest.mark.unit
    def test_unregistered_hook_rejected(self, scheduler):
        with pytest.raises(GatewayError, match="Failed to schedule action."):
            scheduler.schedule("unknown", {})

    @pytest.mark.unit
    def test_action_runs_after_delay(self, scheduler, clock):
        calls = []
        scheduler.register("hook", lambda **kwargs: calls.append(kwargs))

        action = scheduler.schedule("hook", {"webhook_data": "{}", "hash": "abc"})

        assert action.run_at == 1030.0
        assert scheduler.run_due() == 0
        assert calls == []

        clock.now = 1030.0
        assert scheduler.run_due() == 1
        assert calls == [{"webhook_data": "{}", "hash": "abc"}]
        assert scheduler.get_pending() == []

    @pytest.mark.unit
    def test_pending_filtered_by_hook(self, scheduler):
        scheduler.register("a", lambda **kwargs: None)
        scheduler.register("b", lambda **kwargs: None)
        scheduler.schedule("a", {})
        scheduler.schedule("b", {})
        scheduler.schedule("b", {})
        assert len(scheduler.get_pending("b")) == 2
        assert len(scheduler.get_pending()) == 3

    @pytest.mark.unit
    def test_actions_run_in_time_order(self, scheduler, clock):
        order = []
        scheduler.register("hook", lambda name: order.append(name))
        scheduler.schedule("hook", {"name": "first"})
        clock.now += 5
        scheduler.schedule("hook", {"name": "second"})

        scheduler.run_due(now=clock.now + 60)
        assert order == ["first", "second"]

    @pytest.mark.unit
    def test_failed_action_dropped(self, scheduler, clock):
        calls = []

        def failing(**kwargs):
            calls.append(kwargs)
            raise GatewayError("boom")

        scheduler.register("hook", failing)
        scheduler.schedule("hook", {})
        assert scheduler.run_due(now=clock.now + 30) == 1
        assert scheduler.run_due(now=clock.now + 60) == 0
        assert len(calls) == 1

    @pytest.mark.unit
    def test_args_copied(self, scheduler):
        scheduler.register("hook", lambda **kwargs: None)
        args = {"hash": "abc"}
        action = scheduler.schedule("hook", args)
        args["hash"] = "changed"
        assert action.args == {"hash": "abc"}


class TestPolling:
    """Tests for the background polling thread."""

    @pytest.mark.unit
    def test_start_runs_due_actions(self):
        ran = threading.Event()
        scheduler = ScheduleService(group="acfw", delay=0)
        scheduler.register("hook", lambda: ran.set())
        scheduler.schedule("hook", {})

        scheduler.start(interval=0.01)
        try:
            assert ran.wait(timeout=2)
        finally:
            scheduler.stop()
