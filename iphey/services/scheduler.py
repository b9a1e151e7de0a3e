"""Background scheduler that triggers periodic maintenance tasks."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict

LOGGER = logging.getLogger("iphey.scheduler")


@dataclass
class ScheduledTask:
    name: str
    interval: float
    handler: Callable[[], None]
    last_run: float = 0.0


class SchedulerService:
    def __init__(self, tick: float = 1.0) -> None:
        self.tick = tick
        self._tasks: Dict[str, ScheduledTask] = {}
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()

    def add_task(self, name: str, interval: float, handler: Callable[[], None], *, run_immediately: bool = False) -> None:
        # last_run=now defers the first run by one interval
        last_run = 0.0 if run_immediately else time.time()
        self._tasks[name] = ScheduledTask(name=name, interval=interval, handler=handler, last_run=last_run)

    @property
    def running(self) -> bool:
        return self._thread is not None

    def run_pending(self, now: float | None = None) -> list[str]:
        """Run every due task once; returns the names that ran."""
        now = time.time() if now is None else now
        ran: list[str] = []
        for task in list(self._tasks.values()):
            if now - task.last_run >= task.interval:
                try:
                    task.handler()
                except Exception as exc:
                    LOGGER.exception("Scheduled task %s failed: %s", task.name, exc)
                task.last_run = now
                ran.append(task.name)
        return ran

    def start(self) -> None:
        if self._thread:
            return

        def _loop():
            while not self._stop.is_set():
                self.run_pending()
                self._stop.wait(self.tick)

        self._thread = threading.Thread(target=_loop, name="iphey-scheduler", daemon=True)
        self._thread.start()
        LOGGER.info("Scheduler started with %s task(s)", len(self._tasks))

    def stop(self) -> None:
        if self._thread:
            self._stop.set()
            self._thread.join(timeout=2)
            self._thread = None
            self._stop.clear()
