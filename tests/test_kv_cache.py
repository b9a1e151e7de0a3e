import sys
from pathlib import Path

import pytest
from sqlalchemy import select

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from iphey.caching import KvCacheStore, create_cache, create_kv_engine
from iphey.caching.kv import KvCacheRow
from iphey.services.normalization import NormalizedIpInsight

from conftest import ManualClock


@pytest.fixture()
def engine():
    eng = create_kv_engine("sqlite://")
    yield eng
    eng.dispose()


def _store(engine, clock, namespace="ip-insight"):
    return create_cache(
        namespace,
        backend="kv",
        ttl_ms=1000,
        stale_ttl_ms=5000,
        engine=engine,
        serializer=NormalizedIpInsight.to_dict,
        deserializer=NormalizedIpInsight.from_dict,
        clock=clock,
    )


def test_kv_round_trips_insight_records(engine):
    clock = ManualClock()
    store = _store(engine, clock)
    assert isinstance(store, KvCacheStore)

    insight = NormalizedIpInsight(ip="8.8.8.8", country="US", org="AS15169 Google LLC")
    store.set("8.8.8.8", insight)

    entry = store.get("8.8.8.8")
    assert entry is not None
    assert entry.data == insight
    assert entry.stored_at == clock.now


def test_kv_row_expires_at_end_of_stale_window(engine):
    clock = ManualClock()
    store = _store(engine, clock)
    store.set("1.1.1.1", NormalizedIpInsight(ip="1.1.1.1"))

    with store._session() as session:
        row = session.scalars(select(KvCacheRow)).one()
        assert row.key == "ip-insight:1.1.1.1"
        assert row.expires_at == pytest.approx(clock.now + 5.0)


def test_kv_entries_visible_across_store_instances(engine):
    clock = ManualClock()
    writer = _store(engine, clock)
    reader = _store(engine, clock)
    writer.set("9.9.9.9", NormalizedIpInsight(ip="9.9.9.9", country="CH"))

    clock.advance_ms(1500)
    lookup = reader.get_with_stale("9.9.9.9")
    assert lookup.hit
    assert lookup.is_stale is True
    assert lookup.entry.data.country == "CH"


def test_kv_expired_rows_removed_on_read(engine):
    clock = ManualClock()
    store = _store(engine, clock)
    store.set("8.8.4.4", NormalizedIpInsight(ip="8.8.4.4"))

    clock.advance_ms(6000)
    assert store.get_with_stale("8.8.4.4").entry is None
    assert store.stats()["items"] == 0


def test_kv_corrupt_payload_degrades_to_miss(engine):
    clock = ManualClock()
    store = _store(engine, clock)
    with store._session() as session:
        session.add(
            KvCacheRow(
                key="ip-insight:1.0.0.1",
                payload="{not json",
                stored_at=clock.now,
                expires_at=clock.now + 5,
            )
        )

    assert store.get("1.0.0.1") is None
    assert store.stats()["items"] == 0


def test_kv_clear_only_touches_own_namespace(engine):
    clock = ManualClock()
    ours = _store(engine, clock, namespace="ours")
    theirs = _store(engine, clock, namespace="theirs")
    ours.set("k", NormalizedIpInsight(ip="1.1.1.1"))
    theirs.set("k", NormalizedIpInsight(ip="1.1.1.1"))

    ours.clear()
    assert ours.get("k") is None
    assert theirs.get("k") is not None


def test_kv_discard_spares_a_row_rewritten_after_the_read(engine):
    clock = ManualClock()
    store = _store(engine, clock)
    store.set("8.8.8.8", NormalizedIpInsight(ip="8.8.8.8", city="Old"))
    old_entry = store._read("ip-insight:8.8.8.8")
    clock.advance_ms(10)
    store.set("8.8.8.8", NormalizedIpInsight(ip="8.8.8.8", city="New"))

    store._discard("ip-insight:8.8.8.8", old_entry)
    assert store.get("8.8.8.8").data.city == "New"

    store._discard("ip-insight:8.8.8.8", store._read("ip-insight:8.8.8.8"))
    assert store.get("8.8.8.8") is None
