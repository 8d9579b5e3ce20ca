"""Tests for debounced, last-writer-wins writes."""
import asyncio
import logging

import pytest

from syllabus_data.debounce import Debouncer


@pytest.mark.asyncio
async def test_rescheduling_replaces_the_waiting_write() -> None:
    calls: list[str] = []
    debouncer = Debouncer(delay=0.01)

    debouncer.schedule("title", calls.append, "W")
    debouncer.schedule("title", calls.append, "We")
    debouncer.schedule("title", calls.append, "Week one")
    assert debouncer.is_pending("title")

    await asyncio.sleep(0.05)

    assert calls == ["Week one"]
    assert not debouncer.is_pending("title")


@pytest.mark.asyncio
async def test_keys_are_independent() -> None:
    calls: list[tuple[str, str]] = []
    debouncer = Debouncer(delay=0.01)

    debouncer.schedule(("class", 1), lambda: calls.append(("class", "1")))
    debouncer.schedule(("class", 2), lambda: calls.append(("class", "2")))
    await asyncio.sleep(0.05)

    assert sorted(calls) == [("class", "1"), ("class", "2")]


@pytest.mark.asyncio
async def test_cancel_only_affects_waiting_writes() -> None:
    calls: list[int] = []
    debouncer = Debouncer(delay=0.01)

    debouncer.schedule("k", calls.append, 1)
    assert debouncer.cancel("k")
    assert not debouncer.cancel("k")

    await asyncio.sleep(0.05)
    assert calls == []


@pytest.mark.asyncio
async def test_in_flight_write_is_not_cancelled() -> None:
    """Once the quiet period has elapsed the write runs to completion; a newer edit simply lands after it."""
    results: list[str] = []
    started = asyncio.Event()
    release = asyncio.Event()
    debouncer = Debouncer(delay=0.01)

    async def slow_write(value: str) -> None:
        started.set()
        await release.wait()
        results.append(value)

    debouncer.schedule("k", slow_write, "first")
    await started.wait()

    assert not debouncer.cancel("k")
    debouncer.schedule("k", results.append, "second")
    release.set()
    await asyncio.sleep(0.05)

    assert results == ["first", "second"]


@pytest.mark.asyncio
async def test_flush_runs_waiting_writes_now() -> None:
    calls: list[str] = []
    debouncer = Debouncer(delay=60)

    async def write(value: str) -> None:
        calls.append(value)

    debouncer.schedule("a", write, "x")
    debouncer.schedule("b", write, "y")
    await debouncer.flush()

    assert calls == ["x", "y"]
    assert not debouncer.is_pending("a")


@pytest.mark.asyncio
async def test_flush_propagates_write_errors() -> None:
    debouncer = Debouncer(delay=60)

    def fail() -> None:
        raise RuntimeError("save failed")

    debouncer.schedule("k", fail)

    with pytest.raises(RuntimeError, match="save failed"):
        await debouncer.flush()


@pytest.mark.asyncio
async def test_failed_fired_write_is_logged_and_collected(
    caplog: pytest.LogCaptureFixture, monkeypatch: pytest.MonkeyPatch
) -> None:
    # configure_logging (run by the CLI tests) stops propagation to the root logger
    monkeypatch.setattr(logging.getLogger("syllabus_data"), "propagate", True)
    calls: list[str] = []
    debouncer = Debouncer(delay=0.01)

    def fail() -> None:
        raise RuntimeError("save failed")

    debouncer.schedule("k", fail)
    await asyncio.sleep(0.05)
    debouncer.schedule("k", calls.append, "retry")
    await asyncio.sleep(0.05)
    await debouncer.flush()

    assert calls == ["retry"]
    assert "Debounced write for 'k' failed" in caplog.text


def test_schedule_requires_a_running_loop() -> None:
    with pytest.raises(RuntimeError):
        Debouncer().schedule("k", print)
