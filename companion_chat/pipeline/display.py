"""Timed delivery of parsed segments to a UI.

One display run at a time per sequencer:

    typing start → typing_duration → typing end →
    for each segment: display_delay → on_message_add → (schedule retraction)

Retractions run as independent asyncio tasks so they can outlive the run
that scheduled them. cancel() stops further sequencing and drops every
pending retraction; segments already added stay added. An add that is
already being awaited is not interrupted, but nothing is scheduled for it
once it returns.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from companion_chat.models import Segment

logger = logging.getLogger(__name__)

DEFAULT_TYPING_SENDER = "角色"
DEFAULT_TYPING_DURATION = 800

MessageAddCallback = Callable[[Segment], Awaitable[None]]
MessageRetractCallback = Callable[[str], Awaitable[None]]
TypingStartCallback = Callable[[str], None]
TypingEndCallback = Callable[[], None]


async def _sleep_ms(ms: float) -> None:
    await asyncio.sleep(max(ms, 0) / 1000)


class MessageDisplaySequencer:
    def __init__(
        self,
        on_message_add: MessageAddCallback,
        on_message_retract: MessageRetractCallback | None = None,
        on_typing_start: TypingStartCallback | None = None,
        on_typing_end: TypingEndCallback | None = None,
        typing_duration: float = DEFAULT_TYPING_DURATION,
    ) -> None:
        self.on_message_add = on_message_add
        self.on_message_retract = on_message_retract
        self.on_typing_start = on_typing_start
        self.on_typing_end = on_typing_end
        self.typing_duration = typing_duration

        self._displaying = False
        self._generation = 0
        self._retractions: dict[str, asyncio.Task] = {}

    @property
    def is_displaying(self) -> bool:
        return self._displaying

    @property
    def pending_retractions(self) -> int:
        return len(self._retractions)

    async def display_messages(self, segments: list[Segment]) -> None:
        """Deliver ``segments`` in order; no-op if a run is already active."""
        if self._displaying or not segments:
            return

        self._displaying = True
        generation = self._generation
        try:
            sender = segments[0].original_sender or DEFAULT_TYPING_SENDER
            if self.on_typing_start:
                self.on_typing_start(sender)
            await _sleep_ms(self.typing_duration)
            if generation != self._generation:
                return
            if self.on_typing_end:
                self.on_typing_end()

            for segment in segments:
                if generation != self._generation:
                    return
                await _sleep_ms(segment.display_delay)
                if generation != self._generation:
                    return
                await self.on_message_add(segment)
                # cancel() may have landed while the add was awaited
                if generation != self._generation:
                    return
                if segment.should_retract and segment.retract_delay is not None:
                    self._schedule_retraction(segment)
        finally:
            if generation == self._generation:
                self._displaying = False

    def _schedule_retraction(self, segment: Segment) -> None:
        if self.on_message_retract is None or segment.id in self._retractions:
            return
        task = asyncio.create_task(
            self._retract_later(segment.id, segment.retract_delay),
            name=f"retract-{segment.id}",
        )
        self._retractions[segment.id] = task

    async def _retract_later(self, message_id: str, delay: float) -> None:
        try:
            await _sleep_ms(delay)
            await self.on_message_retract(message_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Retraction of %s failed: %s", message_id, e)
        finally:
            self._retractions.pop(message_id, None)

    def cancel(self) -> None:
        """Stop the active run and drop every pending retraction."""
        for task in self._retractions.values():
            task.cancel()
        self._retractions.clear()
        self._generation += 1
        self._displaying = False

    def destroy(self) -> None:
        self.cancel()
