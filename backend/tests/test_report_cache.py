"""Tests for the consumer-side report cache and stale-while-revalidate loads."""
import asyncio
import json
from datetime import datetime

import pytest

from quotedigest.client.identity import IdentityResolver
from quotedigest.client.report_cache import (
    MESSAGES,
    STALE_MESSAGE,
    STATUS_ERROR,
    STATUS_IDENTITY_TIMEOUT,
    STATUS_LOADING,
    STATUS_NOT_GENERATED,
    STATUS_READY,
    STATUS_UNAVAILABLE,
    CacheEntry,
    ReportCacheSlot,
    ReportConsumer,
    ServiceReportFetcher,
    should_replace,
)
from quotedigest.core.exceptions import RecommendationEmptyCatalog, ReportNotFound, StorageUnavailable
from quotedigest.services.report_service import PeriodReportService

W03 = "2025-W03"
W04 = "2025-W04"


def make_report(report_id, period_key=W03, sent_at="2025-01-20T06:00:00"):
    return {"id": report_id, "period_key": period_key, "sent_at": sent_at, "quote_count": 3}


class FakeFetcher:
    """Returns queued responses in order (the last one repeats); exceptions are raised."""

    def __init__(self, *responses, gate=None):
        self.responses = list(responses)
        self.gate = gate
        self.calls = []

    async def fetch(self, user_id, period_key):
        self.calls.append((user_id, period_key))
        if self.gate is not None:
            await self.gate.wait()
        response = self.responses[min(len(self.calls), len(self.responses)) - 1]
        if isinstance(response, Exception):
            raise response
        return response


def resolver(user_id="u1"):
    return IdentityResolver(provider=lambda: user_id, attempts=1, backoff_seconds=0, timeout_seconds=1.0)


def consumer_for(fetcher, slot=None, period_key=W03, **kwargs):
    states = []
    consumer = ReportConsumer(
        fetcher,
        kwargs.pop("identity_resolver", None) or resolver(),
        period_key_fn=kwargs.pop("period_key_fn", None) or (lambda: period_key),
        cache_slot=slot or ReportCacheSlot(),
        on_state=states.append,
    )
    return consumer, states


def cached_slot(report, period_key=W03, user_id="u1"):
    slot = ReportCacheSlot()
    slot.put(CacheEntry(user_id=user_id, period_key=period_key, report=report, fetched_at=0.0))
    return slot


# ---------------------------------------------------------------------------
# should_replace
# ---------------------------------------------------------------------------

def test_should_replace():
    current = make_report("r1")
    assert should_replace(None, current) is True
    assert should_replace(current, None) is False
    assert should_replace(current, dict(current)) is False
    assert should_replace(current, make_report("r2", sent_at="2025-01-21T06:00:00")) is True
    assert should_replace(current, make_report("r2", sent_at="2025-01-19T06:00:00")) is False
    assert should_replace(current, make_report("r1", sent_at="2025-01-20T07:00:00")) is True
    assert should_replace(current, make_report("r2", sent_at=None)) is True


# ---------------------------------------------------------------------------
# Cache slot
# ---------------------------------------------------------------------------

def test_slot_requires_matching_user_and_key(tmp_path):
    path = tmp_path / "cache" / "report.json"
    slot = ReportCacheSlot(path)
    slot.put(CacheEntry(user_id="u1", period_key=W03, report=make_report("r1"), fetched_at=1.0))

    reopened = ReportCacheSlot(path)
    assert reopened.get("u1", W03).report["id"] == "r1"
    assert reopened.get("u2", W03) is None
    assert reopened.get("u1", W04) is None

    reopened.invalidate()
    assert not path.exists()
    assert reopened.get("u1", W03) is None


def test_unreadable_slot_file_is_a_miss(tmp_path):
    path = tmp_path / "report.json"
    path.write_text("{not json", encoding="utf-8")
    assert ReportCacheSlot(path).get("u1", W03) is None

    path.write_text(json.dumps({"user_id": "u1"}), encoding="utf-8")
    assert ReportCacheSlot(path).get("u1", W03) is None


# ---------------------------------------------------------------------------
# Loads
# ---------------------------------------------------------------------------

def test_miss_shows_loading_then_ready():
    fetcher = FakeFetcher(make_report("r1"))
    consumer, states = consumer_for(fetcher)

    state = asyncio.run(consumer.load())
    assert [s.status for s in states] == [STATUS_LOADING, STATUS_READY]
    assert state.report["id"] == "r1"
    assert consumer.cache_slot.get("u1", W03).report["id"] == "r1"


def test_concurrent_loads_share_one_fetch():
    async def scenario():
        gate = asyncio.Event()
        fetcher = FakeFetcher(make_report("r1"), gate=gate)
        consumer, _ = consumer_for(fetcher)

        async def release():
            await asyncio.sleep(0.01)
            gate.set()

        first, second, _ = await asyncio.gather(consumer.load(), consumer.load(), release())
        return consumer, fetcher, first, second

    consumer, fetcher, first, second = asyncio.run(scenario())
    assert consumer.fetch_count == 1
    assert len(fetcher.calls) == 1
    assert first == second
    assert first.status == STATUS_READY


def test_cache_hit_serves_immediately_and_equal_refresh_does_not_rerender():
    async def scenario():
        report = make_report("r1")
        consumer, states = consumer_for(FakeFetcher(dict(report)), slot=cached_slot(report))
        served = await consumer.load()
        await consumer.wait_for_refresh()
        return consumer, states, served

    consumer, states, served = asyncio.run(scenario())
    assert served.status == STATUS_READY
    assert served.report["id"] == "r1"
    assert consumer.fetch_count == 1
    assert len(states) == 1


def test_newer_refresh_replaces_cached_report():
    async def scenario():
        newer = make_report("r2", sent_at="2025-01-21T06:00:00")
        consumer, states = consumer_for(FakeFetcher(newer), slot=cached_slot(make_report("r1")))
        await consumer.load()
        await consumer.wait_for_refresh()
        return consumer, states

    consumer, states = asyncio.run(scenario())
    assert [s.report["id"] for s in states] == ["r1", "r2"]
    assert consumer.cache_slot.get("u1", W03).report["id"] == "r2"


def test_older_refresh_is_discarded():
    async def scenario():
        older = make_report("r0", sent_at="2025-01-19T06:00:00")
        consumer, states = consumer_for(FakeFetcher(older), slot=cached_slot(make_report("r1")))
        await consumer.load()
        await consumer.wait_for_refresh()
        return consumer, states

    consumer, states = asyncio.run(scenario())
    assert consumer.state.report["id"] == "r1"
    assert len(states) == 1
    assert consumer.cache_slot.get("u1", W03).report["id"] == "r1"


def test_previous_period_cache_is_never_shown():
    current = make_report("r4", period_key=W04)
    fetcher = FakeFetcher(current)
    consumer, states = consumer_for(fetcher, slot=cached_slot(make_report("r3")), period_key=W04)

    asyncio.run(consumer.load())
    assert states[0].status == STATUS_LOADING
    assert states[0].report is None
    assert all(s.report is None or s.report["period_key"] == W04 for s in states)
    assert fetcher.calls == [("u1", W04)]
    assert consumer.cache_slot.get("u1", W04).report["id"] == "r4"


def test_cache_of_another_user_is_a_miss():
    consumer, states = consumer_for(FakeFetcher(make_report("mine")), slot=cached_slot(make_report("theirs"), user_id="u2"))
    asyncio.run(consumer.load())
    assert states[0].status == STATUS_LOADING
    assert consumer.state.report["id"] == "mine"


def test_result_discarded_after_deactivate():
    async def scenario():
        gate = asyncio.Event()
        consumer, states = consumer_for(FakeFetcher(make_report("r1"), gate=gate))
        task = asyncio.ensure_future(consumer.load())
        await asyncio.sleep(0.01)
        consumer.deactivate()
        gate.set()
        await task
        return consumer, states

    consumer, states = asyncio.run(scenario())
    assert [s.status for s in states] == [STATUS_LOADING]
    assert consumer.state.status == STATUS_LOADING
    assert consumer.cache_slot.get("u1", W03) is None


def test_result_discarded_when_period_moves_on():
    async def scenario():
        gate = asyncio.Event()
        keys = [W03]
        consumer, states = consumer_for(FakeFetcher(make_report("r3"), gate=gate), period_key_fn=lambda: keys[0])
        task = asyncio.ensure_future(consumer.load())
        await asyncio.sleep(0.01)
        keys[0] = W04
        gate.set()
        await task
        return consumer

    consumer = asyncio.run(scenario())
    assert consumer.state.report is None
    assert consumer.cache_slot.get("u1", W03) is None


def test_not_generated_is_distinct_from_unavailable():
    consumer, _ = consumer_for(FakeFetcher(ReportNotFound("u1", W03)))
    state = asyncio.run(consumer.load())
    assert state.status == STATUS_NOT_GENERATED
    assert state.message == MESSAGES[STATUS_NOT_GENERATED]

    consumer, _ = consumer_for(FakeFetcher(StorageUnavailable("down")))
    state = asyncio.run(consumer.load())
    assert state.status == STATUS_UNAVAILABLE
    assert state.message == MESSAGES[STATUS_UNAVAILABLE]
    assert state.message != MESSAGES[STATUS_NOT_GENERATED]


def test_storage_failure_keeps_cached_report_marked_stale():
    async def scenario():
        consumer, _ = consumer_for(FakeFetcher(StorageUnavailable("down")), slot=cached_slot(make_report("r1")))
        await consumer.load()
        await consumer.wait_for_refresh()
        return consumer

    state = asyncio.run(scenario()).state
    assert state.status == STATUS_READY
    assert state.report["id"] == "r1"
    assert state.stale is True
    assert state.message == STALE_MESSAGE


def test_background_not_found_keeps_cached_report():
    async def scenario():
        consumer, states = consumer_for(FakeFetcher(ReportNotFound("u1", W03)), slot=cached_slot(make_report("r1")))
        await consumer.load()
        await consumer.wait_for_refresh()
        return consumer, states

    consumer, states = asyncio.run(scenario())
    assert consumer.state.report["id"] == "r1"
    assert len(states) == 1


@pytest.mark.parametrize("failure", [RecommendationEmptyCatalog("empty"), ValueError("Invalid period key")])
def test_unexpected_fetch_error_ends_in_error_state(failure):
    consumer, states = consumer_for(FakeFetcher(failure))
    state = asyncio.run(consumer.load())
    assert state.status == STATUS_ERROR
    assert state.message == MESSAGES[STATUS_ERROR]
    assert [s.status for s in states] == [STATUS_LOADING, STATUS_ERROR]


def test_unexpected_refresh_error_keeps_cached_report():
    async def scenario():
        consumer, states = consumer_for(FakeFetcher(RuntimeError("boom")), slot=cached_slot(make_report("r1")))
        await consumer.load()
        await consumer.wait_for_refresh()
        return consumer, states

    consumer, states = asyncio.run(scenario())
    assert consumer.state.status == STATUS_READY
    assert consumer.state.report["id"] == "r1"
    assert len(states) == 1


def test_cache_hit_keeps_stale_marker_until_refresh_confirms():
    async def scenario():
        report = make_report("r1")
        gate = asyncio.Event()
        gate.set()
        fetcher = FakeFetcher(StorageUnavailable("down"), dict(report), gate=gate)
        consumer, _ = consumer_for(fetcher, slot=cached_slot(report))

        await consumer.load()
        await consumer.wait_for_refresh()
        assert consumer.state.stale is True

        gate.clear()
        reloaded = await consumer.load()
        stale_after_hit = reloaded.stale, reloaded.message
        gate.set()
        await consumer.wait_for_refresh()
        return consumer, stale_after_hit

    consumer, stale_after_hit = asyncio.run(scenario())
    assert stale_after_hit == (True, STALE_MESSAGE)
    assert consumer.state.stale is False
    assert consumer.state.message is None
    assert consumer.state.report["id"] == "r1"


def test_identity_timeout_never_fetches():
    timeout_resolver = IdentityResolver(provider=lambda: "demo-user", attempts=2, backoff_seconds=0, timeout_seconds=1.0)
    fetcher = FakeFetcher(make_report("r1"))
    consumer, _ = consumer_for(fetcher, identity_resolver=timeout_resolver)

    state = asyncio.run(consumer.load())
    assert state.status == STATUS_IDENTITY_TIMEOUT
    assert state.message == MESSAGES[STATUS_IDENTITY_TIMEOUT]
    assert consumer.fetch_count == 0
    assert fetcher.calls == []


# ---------------------------------------------------------------------------
# Service-backed fetcher
# ---------------------------------------------------------------------------

@pytest.fixture
def service():
    return PeriodReportService(weekly_target=7, recommendation_limit=2, tz_offset_min=180)


def test_service_fetcher_generates_and_serializes(db, session_factory, service, default_catalog, add_quote):
    add_quote("u1", "Love is patient", datetime(2025, 1, 14, 10, 0), author="Seneca")
    fetcher = ServiceReportFetcher(session_factory=session_factory, service=service, generate=True)

    payload = asyncio.run(fetcher.fetch("u1", W03))
    assert payload["period_key"] == W03
    assert payload["metrics"]["quote_count"] == 1
    assert payload["delta"] == {"quote_count": 0, "unique_author_count": 0, "active_day_count": 0}
    assert isinstance(payload["sent_at"], str)


def test_service_fetcher_read_only_raises_not_found(db, session_factory, service):
    fetcher = ServiceReportFetcher(session_factory=session_factory, service=service)
    with pytest.raises(ReportNotFound):
        asyncio.run(fetcher.fetch("u1", W03))
