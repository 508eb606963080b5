"""Conversation storage: one chat log per conversation, newest first.

All conversations live in a single list under the ``conversations`` key.
Turns are appended as ``ChatTurn`` entries; the title is taken from the
first user message.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from companion_chat.models import ChatTurn, Conversation, new_id
from companion_chat.storage import STORAGE_KEYS, KeyValueStore

logger = logging.getLogger(__name__)

_CONVERSATIONS = STORAGE_KEYS["conversations"]

TITLE_LIMIT = 20


def conversation_title(first_message: str) -> str:
    """Title derived from the first user message."""
    text = first_message.strip()
    if len(text) > TITLE_LIMIT:
        return text[:TITLE_LIMIT] + "..."
    return text or "新对话"


def _load(store: KeyValueStore) -> list[Conversation]:
    return store.get_models(_CONVERSATIONS, Conversation)


def _save(store: KeyValueStore, conversations: list[Conversation]) -> None:
    conversations.sort(key=lambda c: c.last_message_at, reverse=True)
    store.set_models(_CONVERSATIONS, conversations)


def list_conversations(store: KeyValueStore,
                       character_id: str | None = None) -> list[Conversation]:
    conversations = _load(store)
    if character_id is not None:
        conversations = [c for c in conversations if c.character_id == character_id]
    return sorted(conversations, key=lambda c: c.last_message_at, reverse=True)


def get_conversation(store: KeyValueStore, conversation_id: str) -> Conversation | None:
    for conversation in _load(store):
        if conversation.id == conversation_id:
            return conversation
    return None


def create_conversation(store: KeyValueStore, character_id: str) -> Conversation:
    conversation = Conversation(id=new_id("conv"), character_id=character_id)
    conversations = _load(store)
    conversations.insert(0, conversation)
    _save(store, conversations)
    return conversation


def append_turns(store: KeyValueStore, conversation_id: str,
                 turns: list[ChatTurn]) -> Conversation | None:
    """Append turns to a conversation's log. Returns None if it does not exist."""
    conversations = _load(store)
    for conversation in conversations:
        if conversation.id == conversation_id:
            break
    else:
        logger.warning("Cannot append to unknown conversation %s", conversation_id)
        return None

    conversation.messages.extend(turns)
    conversation.last_message_at = datetime.now(timezone.utc)
    if conversation.title is None:
        first_user = next((t for t in conversation.messages if t.role == "user"), None)
        if first_user is not None:
            conversation.title = conversation_title(first_user.content)
    _save(store, conversations)
    return conversation


def delete_conversation(store: KeyValueStore, conversation_id: str) -> bool:
    conversations = _load(store)
    remaining = [c for c in conversations if c.id != conversation_id]
    if len(remaining) == len(conversations):
        return False
    _save(store, remaining)
    return True
