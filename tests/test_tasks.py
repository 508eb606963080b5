"""Tests for BackgroundTasks: fire-and-forget execution and the error channel."""

import asyncio

from companion_chat.tasks import BackgroundTasks


async def _ok(results: list) -> None:
    await asyncio.sleep(0)
    results.append("done")


async def _fail() -> None:
    raise RuntimeError("disk full")


async def test_submit_runs_in_background():
    tasks = BackgroundTasks()
    results: list = []
    task = tasks.submit(_ok(results), name="ok")
    assert task is not None
    assert tasks.pending == 1

    await tasks.drain()
    assert results == ["done"]
    assert tasks.pending == 0
    assert not tasks.errors


async def test_failure_goes_to_error_channel():
    tasks = BackgroundTasks()
    seen = []
    tasks.add_error_listener(lambda name, error: seen.append((name, str(error))))

    tasks.submit(_fail(), name="persist")
    await tasks.drain()

    assert [(name, str(error)) for name, error in tasks.errors] == [("persist", "disk full")]
    assert seen == [("persist", "disk full")]


async def test_broken_listener_is_contained():
    tasks = BackgroundTasks()

    def broken(name, error):
        raise ValueError("listener bug")

    tasks.add_error_listener(broken)
    tasks.submit(_fail(), name="x")
    await tasks.drain()
    assert len(tasks.errors) == 1


async def test_error_channel_is_bounded():
    tasks = BackgroundTasks(max_errors=2)
    for _ in range(3):
        tasks.submit(_fail())
    await tasks.drain()
    assert len(tasks.errors) == 2


def test_submit_without_loop_runs_immediately():
    tasks = BackgroundTasks()
    results: list = []
    assert tasks.submit(_ok(results)) is None
    assert results == ["done"]


def test_failure_without_loop_is_recorded():
    tasks = BackgroundTasks()
    tasks.submit(_fail(), name="sync")
    assert tasks.errors[0][0] == "sync"


async def test_submit_inside_loop_does_not_wait():
    tasks = BackgroundTasks()
    results: list = []
    tasks.submit(_ok(results))
    assert results == []
    await tasks.drain()
    assert results == ["done"]
