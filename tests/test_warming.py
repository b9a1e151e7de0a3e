import sys
import threading
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from iphey.services.warming import DEFAULT_WARM_IPS, CacheWarmer


def test_warm_cache_continues_past_failures():
    seen = []

    def lookup(ip):
        seen.append(ip)
        if ip == "ip1":
            raise RuntimeError("upstream down")
        return ip

    warmer = CacheWarmer(["ip1", "ip2", "ip3"])
    run = warmer.warm_cache(lookup, enabled=True, delay_between_requests_ms=0)

    assert seen == ["ip1", "ip2", "ip3"]
    assert run.succeeded == 2
    assert run.failed == 1
    assert warmer.get_warmed_count() == 2
    assert warmer.is_in_progress() is False
    assert warmer.stats()["lastRun"]["failed"] == 1


def test_warm_cache_disabled_is_a_noop():
    calls = []
    warmer = CacheWarmer(["ip1"])
    assert warmer.warm_cache(calls.append, enabled=False) is None
    assert calls == []
    assert warmer.last_run is None


def test_warm_cache_sleeps_between_lookups_only():
    sleeps = []
    warmer = CacheWarmer(["a", "b", "c"], sleep=sleeps.append)
    warmer.warm_cache(lambda ip: ip, delay_between_requests_ms=250)
    assert sleeps == [0.25, 0.25]


def test_warmed_count_accumulates_across_runs():
    warmer = CacheWarmer(["a", "b"], sleep=lambda _s: None)
    warmer.warm_cache(lambda ip: ip)
    warmer.warm_cache(lambda ip: ip)
    assert warmer.get_warmed_count() == 4


def test_concurrent_run_is_rejected_while_in_progress():
    release = threading.Event()
    entered = threading.Event()

    def blocking_lookup(ip):
        entered.set()
        release.wait(2)

    warmer = CacheWarmer(["a"], sleep=lambda _s: None)
    worker = threading.Thread(target=warmer.warm_cache, args=(blocking_lookup,))
    worker.start()
    assert entered.wait(2)

    assert warmer.is_in_progress() is True
    assert warmer.warm_cache(lambda ip: ip) is None

    release.set()
    worker.join(2)
    assert warmer.is_in_progress() is False
    assert warmer.get_warmed_count() == 1


def test_default_candidates_are_public_resolvers():
    assert "8.8.8.8" in DEFAULT_WARM_IPS
    assert "1.1.1.1" in DEFAULT_WARM_IPS
    assert len(set(DEFAULT_WARM_IPS)) == len(DEFAULT_WARM_IPS)
