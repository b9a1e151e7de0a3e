"""Thread-backed queue for fire-and-forget background work.

Cache revalidation and warming run here so request threads never block on
them.  A job's exception is logged and dropped: the logger is the only
failure channel by contract.
"""

from __future__ import annotations

import atexit
import logging
import queue
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass(slots=True)
class BackgroundJob:
    task_id: str
    func: Callable[..., Any]
    args: tuple[Any, ...]
    kwargs: dict[str, Any]
    description: str | None = None


class TaskQueue:
    """Small thread pool that keeps background work off the web threads."""

    def __init__(self, name: str, max_workers: int = 2, logger: Optional[logging.Logger] = None) -> None:
        self.name = name
        self.max_workers = max(1, int(max_workers))
        self._queue: queue.Queue[Optional[BackgroundJob]] = queue.Queue()
        self._workers: list[threading.Thread] = []
        self._shutdown = threading.Event()
        self._logger = logger or logging.getLogger(f"iphey.task_queue.{name}")
        self._started = False
        self._lock = threading.Lock()
        self._failed = 0
        self._completed = 0

    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            self._started = True
            for idx in range(self.max_workers):
                worker = threading.Thread(
                    target=self._worker_loop,
                    name=f"{self.name}-worker-{idx+1}",
                    daemon=True,
                )
                self._workers.append(worker)
                worker.start()
            atexit.register(self.shutdown)
            self._logger.info("Task queue '%s' started with %s workers", self.name, self.max_workers)

    def submit(
        self,
        func: Callable[..., Any],
        *args: Any,
        description: str | None = None,
        **kwargs: Any,
    ) -> str:
        if not self._started:
            self.start()
        job = BackgroundJob(
            task_id=str(uuid.uuid4()),
            func=func,
            args=args,
            kwargs=kwargs,
            description=description,
        )
        self._queue.put(job)
        self._logger.debug("Background job %s queued (%s)", job.task_id, description or func.__name__)
        return job.task_id

    def join(self, timeout: float | None = None) -> bool:
        """Block until every queued job has run; False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                if deadline is None:
                    self._queue.all_tasks_done.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._queue.all_tasks_done.wait(remaining)
        return True

    def shutdown(self) -> None:
        if self._shutdown.is_set():
            return
        self._shutdown.set()
        for _ in self._workers:
            self._queue.put(None)
        for worker in self._workers:
            worker.join(timeout=2)
        self._workers.clear()
        self._logger.info("Task queue '%s' stopped", self.name)

    def _worker_loop(self) -> None:
        while not self._shutdown.is_set():
            try:
                job = self._queue.get(timeout=0.5)
            except queue.Empty:
                continue
            if job is None:
                self._queue.task_done()
                break
            try:
                self._execute(job)
            finally:
                self._queue.task_done()

    def _execute(self, job: BackgroundJob) -> None:
        desc = job.description or job.func.__name__
        self._logger.debug("Running job %s (%s)", job.task_id, desc)
        try:
            job.func(*job.args, **job.kwargs)
        except Exception as exc:  # noqa: BLE001
            with self._lock:
                self._failed += 1
            self._logger.exception("Background job %s (%s) failed: %s", job.task_id, desc, exc)
        else:
            with self._lock:
                self._completed += 1
            self._logger.debug("Job %s finished", job.task_id)

    def stats(self) -> dict[str, Any]:
        """Return basic queue statistics."""
        with self._lock:
            completed, failed = self._completed, self._failed
        return {
            "name": self.name,
            "workers": len(self._workers),
            "max_workers": self.max_workers,
            "queued": self._queue.qsize(),
            "completed": completed,
            "failed": failed,
            "shutdown": self._shutdown.is_set(),
            "started": self._started,
        }
