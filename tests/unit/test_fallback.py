"""Primary/secondary provider failover tests."""

import pytest

from intentflow.exceptions import CircuitOpenError, ProviderError
from intentflow.resilience import FallbackAgentSelector


def _rate_limited():
    return ProviderError("Too Many Requests", status_code=429)


@pytest.mark.asyncio
async def test_primary_used_while_healthy(provider_factory, clock):
    primary = provider_factory(["a", "b"], name="primary")
    secondary = provider_factory([], name="secondary")
    selector = FallbackAgentSelector(primary, secondary, clock=clock)

    assert await selector.complete("one") == "a"
    assert await selector.complete("two") == "b"
    assert secondary.calls == []
    assert selector.get_status()["using_fallback"] is False


@pytest.mark.asyncio
async def test_rate_limit_answered_by_secondary(provider_factory, clock, status):
    primary = provider_factory([_rate_limited(), "primary again"], name="primary")
    secondary = provider_factory(["from secondary"], name="secondary")
    selector = FallbackAgentSelector(primary, secondary, status_reporter=status, clock=clock)

    assert await selector.complete("q", session_id="s1") == "from secondary"
    assert selector.get_status()["primary_fail_count"] == 1
    assert selector.get_status()["using_fallback"] is False

    assert await selector.complete("q", session_id="s1") == "primary again"
    assert selector.get_status()["primary_fail_count"] == 0

    messages = [entry.message for entry in await status.latest("s1")]
    assert messages == ["Primary provider rate limited, switching to secondary"]


@pytest.mark.asyncio
async def test_cooldown_after_repeated_rate_limits(provider_factory, clock):
    primary = provider_factory(
        [_rate_limited(), CircuitOpenError("completion:primary"), _rate_limited(), "recovered"],
        name="primary",
    )
    secondary = provider_factory(["s1", "s2", "s3", "s4"], name="secondary")
    selector = FallbackAgentSelector(
        primary, secondary, max_primary_failures=3, cooldown_seconds=60.0, clock=clock
    )

    for _ in range(3):
        await selector.complete("q")
    status = selector.get_status()
    assert status["using_fallback"] is True
    assert status["cooldown_until"] == clock.now + 60.0

    # primary skipped during cooldown
    assert await selector.complete("q") == "s4"
    assert len(primary.calls) == 3

    clock.advance(60)
    assert await selector.complete("q") == "recovered"
    assert selector.get_status() == {
        "using_fallback": False,
        "primary_fail_count": 0,
        "cooldown_until": None,
    }


@pytest.mark.asyncio
async def test_other_errors_propagate_without_fallback(provider_factory, clock):
    primary = provider_factory([ProviderError("Invalid API key", status_code=401)])
    secondary = provider_factory(["unused"])
    selector = FallbackAgentSelector(primary, secondary, clock=clock)

    with pytest.raises(ProviderError):
        await selector.complete("q")
    assert secondary.calls == []
    assert selector.get_status()["primary_fail_count"] == 0


@pytest.mark.asyncio
async def test_without_secondary_errors_surface(provider_factory, clock):
    primary = provider_factory([_rate_limited()])
    selector = FallbackAgentSelector(primary, None, clock=clock)

    with pytest.raises(ProviderError):
        await selector.complete("q")


@pytest.mark.asyncio
async def test_prompt_arguments_forwarded(provider_factory, clock):
    primary = provider_factory([_rate_limited()])
    secondary = provider_factory(["ok"])
    selector = FallbackAgentSelector(primary, secondary, clock=clock)

    await selector.complete("the prompt", system_prompt="be terse", session_id="s9")
    assert secondary.calls == [
        {"prompt": "the prompt", "system_prompt": "be terse", "session_id": "s9"}
    ]


class DownReporter:
    async def append(self, session_id, message):
        raise ConnectionError("redis down")


@pytest.mark.asyncio
async def test_status_failures_do_not_block_secondary(provider_factory, clock):
    primary = provider_factory([_rate_limited()], name="primary")
    secondary = provider_factory(["ok", "still ok"], name="secondary")
    selector = FallbackAgentSelector(
        primary, secondary, max_primary_failures=1, status_reporter=DownReporter(), clock=clock
    )

    assert await selector.complete("q", session_id="s1") == "ok"
    assert await selector.complete("q", session_id="s1") == "still ok"
    assert len(primary.calls) == 1
    assert selector.get_status()["using_fallback"] is True
