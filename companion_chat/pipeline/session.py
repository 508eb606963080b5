"""One conversation with one character.

A turn goes: build messages → LLM → ResponseProcessor → parser →
MessageDisplaySequencer. Plain replies skip the sequencer and are delivered
as a single text message straight away.

With a store and a conversation id the session starts from the stored log
and appends every completed turn to it.
"""

from __future__ import annotations

import logging
import random
from typing import NamedTuple

from companion_chat.conversations import append_turns, get_conversation
from companion_chat.llm import LLM, CancelToken
from companion_chat.models import Character, ChatTurn, Segment, SplitterOptions, new_message_id
from companion_chat.prompts import build_system_prompt, load_global_prompts
from companion_chat.storage import KeyValueStore

from .display import MessageDisplaySequencer
from .processor import ResponseProcessor
from .segments import has_structured_format, parse_ai_response

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 10


class ReplyPlan(NamedTuple):
    """A processed reply and the segments it will be shown as."""

    text: str
    segments: list[Segment]
    structured: bool  # False: one plain message, no sequencing


class ChatSession:
    def __init__(
        self,
        llm: LLM,
        character: Character,
        processor: ResponseProcessor,
        sequencer: MessageDisplaySequencer | None = None,
        splitter_options: SplitterOptions | None = None,
        store: KeyValueStore | None = None,
        rng: random.Random | None = None,
        conversation_id: str | None = None,
    ) -> None:
        self.llm = llm
        self.character = character
        self.processor = processor
        self.sequencer = sequencer
        self.splitter_options = splitter_options or SplitterOptions()
        self._store = store
        self._rng = rng or random.Random()
        self.conversation_id = conversation_id
        self.history: list[ChatTurn] = []
        self._cancel_token: CancelToken | None = None

        if store is not None and conversation_id is not None:
            conversation = get_conversation(store, conversation_id)
            if conversation is None:
                raise ValueError(f"Conversation {conversation_id} not found")
            self.history = list(conversation.messages)

    # ------------------------------------------------------------------
    # Request
    # ------------------------------------------------------------------

    def system_prompt(self) -> str:
        prompts = load_global_prompts(self._store) if self._store is not None else None
        return build_system_prompt(self.character, prompts)

    def build_messages(self, user_text: str,
                       history: list[ChatTurn] | None = None) -> list[ChatTurn]:
        """System prompt, the last HISTORY_LIMIT turns, then the new user turn."""
        turns = self.history if history is None else history
        return [
            ChatTurn(role="system", content=self.system_prompt()),
            *turns[-HISTORY_LIMIT:],
            ChatTurn(role="user", content=user_text),
        ]

    async def send(self, user_text: str, cancel_token: CancelToken | None = None) -> str:
        """Call the LLM and return the raw completion.

        LLMError / LLMCancelled propagate unchanged; the history is only
        extended (and persisted) once a reply has arrived.
        """
        text = user_text.strip()
        if not text:
            raise ValueError("Message must not be empty")

        messages = self.build_messages(text)
        self._cancel_token = cancel_token or CancelToken()
        try:
            raw = await self.llm(messages, self._cancel_token)
        finally:
            self._cancel_token = None

        turns = [ChatTurn(role="user", content=text), ChatTurn(role="assistant", content=raw)]
        self.history.extend(turns)
        if self._store is not None and self.conversation_id is not None:
            append_turns(self._store, self.conversation_id, turns)
        logger.debug("session %s reply len=%d", self.character.id, len(raw))
        return raw

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _plain_segment(self, text: str, character_id: str) -> Segment:
        return Segment(
            id=new_message_id(self._rng),
            content=text,
            character_id=character_id,
            original_sender=self.character.name,
        )

    def plan_reply(self, raw: str, character_id: str | None = None) -> ReplyPlan:
        """Process a raw reply and split it into display segments.

        Replies without markers, or whose markers parse to nothing, become a
        single plain text segment.
        """
        character_id = character_id or self.character.id
        processed = self.processor.process(raw, self.character)

        if has_structured_format(processed):
            segments = parse_ai_response(processed, character_id, self.splitter_options, self._rng)
            if segments:
                return ReplyPlan(processed, segments, True)
        return ReplyPlan(processed, [self._plain_segment(processed, character_id)], False)

    async def handle_reply(self, raw: str, character_id: str | None = None) -> str:
        """Process a raw reply and deliver it; returns the processed text."""
        if self.sequencer is None:
            raise RuntimeError("handle_reply needs a MessageDisplaySequencer")
        plan = self.plan_reply(raw, character_id)
        if plan.structured:
            await self.sequencer.display_messages(plan.segments)
        else:
            await self.sequencer.on_message_add(plan.segments[0])
        return plan.text

    async def chat(self, user_text: str, cancel_token: CancelToken | None = None) -> str:
        raw = await self.send(user_text, cancel_token)
        return await self.handle_reply(raw)

    def cancel(self) -> None:
        """Abort the in-flight request and stop any running display."""
        if self._cancel_token is not None:
            self._cancel_token.cancel()
        if self.sequencer is not None:
            self.sequencer.cancel()
