import sys
import threading
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from iphey.bootstrap import bootstrap_services
from iphey.caching import KvCacheStore
from iphey.services.scheduler import SchedulerService
from iphey.services.tasks import TaskQueue

from conftest import IPINFO_URL, FakeResponse


def test_task_queue_runs_jobs_and_survives_failures():
    queue = TaskQueue("test", max_workers=2)
    done = []

    def boom():
        raise RuntimeError("nope")

    queue.submit(boom, description="failing")
    queue.submit(done.append, "ok")
    assert queue.join(timeout=2)

    stats = queue.stats()
    assert done == ["ok"]
    assert stats["failed"] == 1
    assert stats["completed"] == 1
    queue.shutdown()
    assert queue.stats()["shutdown"] is True


def test_task_queue_join_times_out():
    queue = TaskQueue("slow", max_workers=1)
    release = threading.Event()
    queue.submit(release.wait, 2)
    assert queue.join(timeout=0.05) is False
    release.set()
    assert queue.join(timeout=2)
    queue.shutdown()


def test_scheduler_runs_due_tasks_once_per_interval():
    scheduler = SchedulerService()
    calls = []
    scheduler.add_task("rewarm", interval=60, handler=lambda: calls.append(1), run_immediately=True)

    assert scheduler.run_pending(now=1000.0) == ["rewarm"]
    assert scheduler.run_pending(now=1030.0) == []
    assert scheduler.run_pending(now=1060.0) == ["rewarm"]
    assert len(calls) == 2


def test_scheduler_handler_errors_are_contained():
    scheduler = SchedulerService()

    def broken():
        raise RuntimeError("fail")

    scheduler.add_task("broken", interval=1, handler=broken, run_immediately=True)
    assert scheduler.run_pending(now=5.0) == ["broken"]


def test_cold_start_warming_submits_one_job(make_config, fake_session, runner):
    ctx = bootstrap_services(make_config(cache_warming_enabled=True, cache_warming_delay_ms=1), session=fake_session, tasks=runner)
    fake_session.on(IPINFO_URL, lambda url, **_kw: FakeResponse({"ip": url.split("/")[3]}))
    ctx.start_background()

    assert [job[3] for job in runner.jobs] == ["cache-warming"]
    assert ctx.scheduler.running is False

    runner.run_all()
    assert ctx.warmer.get_warmed_count() == len(ctx.warmer.candidates)


def test_periodic_rewarm_registers_scheduler_task(make_config, fake_session, runner):
    ctx = bootstrap_services(make_config(cache_warming_interval_seconds=3600), session=fake_session, tasks=runner)
    ctx.start_background()
    try:
        assert ctx.scheduler.running is True
        assert runner.jobs == []
        ctx.scheduler.run_pending(now=10**12)
        assert [job[3] for job in runner.jobs] == ["cache-rewarm"]
    finally:
        ctx.scheduler.stop()


def test_kv_backend_bootstrap_creates_database(make_config, fake_session, runner, tmp_path):
    ctx = bootstrap_services(make_config(cache_backend="kv"), session=fake_session, tasks=runner)
    try:
        assert isinstance(ctx.insight.cache, KvCacheStore)
        assert (tmp_path / "data" / "iphey_cache.db").exists()
    finally:
        ctx.engine.dispose()


def test_task_queue_counts_every_job_across_workers():
    queue = TaskQueue("busy", max_workers=4)

    def fail():
        raise ValueError("x")

    for idx in range(200):
        queue.submit(fail if idx % 2 else (lambda: None))
    assert queue.join(timeout=5)

    stats = queue.stats()
    assert stats["completed"] == 100
    assert stats["failed"] == 100
    queue.shutdown()
