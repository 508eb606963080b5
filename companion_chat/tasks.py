"""Fire-and-forget side effects.

Work that must not block the reply path (compliance recording, persistence)
is submitted here. Outside an event loop there is nothing to schedule on and
the work runs inline (see ``submit``). Failures are logged and pushed onto a bounded error
channel that callers can inspect or subscribe to; they never propagate to
the submitter.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

ErrorListener = Callable[[str, BaseException], None]


class BackgroundTasks:
    def __init__(self, max_errors: int = 50) -> None:
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[ErrorListener] = []
        self.errors: deque[tuple[str, BaseException]] = deque(maxlen=max_errors)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def add_error_listener(self, listener: ErrorListener) -> None:
        self._listeners.append(listener)

    def submit(self, coro: Awaitable[Any], name: str = "background") -> asyncio.Task | None:
        """Schedule ``coro`` without awaiting it.

        Inside a running event loop the coroutine becomes a task. Without one
        (synchronous callers such as a CLI or a plain ``process()`` call) it
        runs to completion via ``asyncio.run`` before ``submit`` returns, so
        the caller does block on the work. The non-blocking guarantee only
        holds inside a loop, which is how the HTTP layer and ChatSession
        call it.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self._guarded(coro, name))
            return None

        task = loop.create_task(self._guarded(coro, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every task submitted so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _guarded(self, coro: Awaitable[Any], name: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Background task %s failed: %s", name, e)
            self._report(name, e)

    def _report(self, name: str, error: BaseException) -> None:
        self.errors.append((name, error))
        for listener in self._listeners:
            try:
                listener(name, error)
            except Exception as e:
                logger.warning("Error listener raised: %s", e)
