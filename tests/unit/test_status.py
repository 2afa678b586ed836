"""Status reporter tests."""

from datetime import timedelta

import pytest

from intentflow.status import InMemoryStatusReporter
from intentflow.status.redis import RedisStatusReporter


@pytest.mark.asyncio
async def test_entries_kept_in_order_per_session():
    reporter = InMemoryStatusReporter()
    await reporter.append("s1", "Planning workflow")
    await reporter.append("s2", "other session")
    await reporter.append("s1", "Workflow planned with 2 steps")

    entries = await reporter.latest("s1")
    assert [e.message for e in entries] == ["Planning workflow", "Workflow planned with 2 steps"]
    assert all(e.session_id == "s1" for e in entries)
    assert await reporter.latest("unknown") == []


@pytest.mark.asyncio
async def test_latest_since_filters_older_entries():
    reporter = InMemoryStatusReporter()
    first = await reporter.append("s1", "one")
    second = await reporter.append("s1", "two")

    assert await reporter.latest("s1", since=second.timestamp) == []
    later = await reporter.latest("s1", since=first.timestamp - timedelta(seconds=1))
    assert [e.message for e in later] == ["one", "two"]
    newer = await reporter.latest("s1", since=first.timestamp)
    assert "one" not in [e.message for e in newer]


@pytest.mark.asyncio
async def test_clear_drops_session_entries():
    reporter = InMemoryStatusReporter()
    await reporter.append("s1", "one")
    await reporter.append("s2", "two")
    await reporter.clear("s1")

    assert await reporter.latest("s1") == []
    assert len(await reporter.latest("s2")) == 1


@pytest.mark.asyncio
async def test_returned_entries_are_a_snapshot():
    reporter = InMemoryStatusReporter()
    await reporter.append("s1", "one")
    snapshot = await reporter.latest("s1")
    await reporter.append("s1", "two")
    assert len(snapshot) == 1


def test_redis_status_key_layout():
    reporter = RedisStatusReporter(ttl_seconds=60)
    assert reporter._key("abc") == "intentflow:status:abc"
    assert reporter.ttl_seconds == 60
