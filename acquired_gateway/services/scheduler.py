import threading
import time
from dataclasses import dataclass, field
from typing import Callable

import structlog

from acquired_gateway.exceptions import GatewayError

logger = structlog.get_logger(__name__)


@dataclass(order=True)
class ScheduledAction:
    run_at: float
    hook: str = field(compare=False)
    args: dict = field(compare=False, default_factory=dict)


class ScheduleService:
    """Deferred single actions, run after a fixed delay.

    Queued args are plain data. Handlers are expected to re-verify whatever
    they receive, since the queue is not a trust boundary.
    """

    def __init__(self, group: str, delay: float = 30, clock: Callable[[], float] = time.time):
        self.group = group
        self.delay = delay
        self.clock = clock
        self._handlers: dict[str, Callable[..., None]] = {}
        self._actions: list[ScheduledAction] = []
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def register(self, hook: str, handler: Callable[..., None]) -> None:
        with self._lock:
            self._handlers[hook] = handler

    def schedule(self, hook: str, args: dict) -> ScheduledAction:
        with self._lock:
            if hook not in self._handlers:
                raise GatewayError("Failed to schedule action.")
            action = ScheduledAction(run_at=self.clock() + self.delay, hook=hook, args=dict(args))
            self._actions.append(action)
            self._actions.sort()

        logger.debug("action_scheduled", hook=hook, group=self.group, run_at=action.run_at)
        return action

    def get_pending(self, hook: str | None = None) -> list[ScheduledAction]:
        with self._lock:
            return [a for a in self._actions if hook is None or a.hook == hook]

    def run_due(self, now: float | None = None) -> int:
        """Run every action whose time has come. Returns the number run."""
        now = self.clock() if now is None else now
        with self._lock:
            due = [a for a in self._actions if a.run_at <= now]
            self._actions = [a for a in self._actions if a.run_at > now]

        for action in due:
            handler = self._handlers[action.hook]
            try:
                handler(**action.args)
            except Exception as e:
                # A failed action is dropped, as the host scheduler marks it failed.
                logger.error("scheduled_action_failed", hook=action.hook, error=str(e))

        return len(due)

    def start(self, interval: float = 1.0) -> None:
        self._stop.clear()
        self._thread = threading.Thread(target=self._poll, args=(interval,), daemon=True)
        self._thread.start()

    def _poll(self, interval: float) -> None:
        while not self._stop.wait(interval):
            self.run_due()

    def stop(self) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
