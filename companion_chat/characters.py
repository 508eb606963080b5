"""Character storage (list under the ``characters`` key)."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from companion_chat.models import Character, new_id
from companion_chat.storage import STORAGE_KEYS, KeyValueStore

_CHARACTERS = STORAGE_KEYS["characters"]

_READ_ONLY = ("id", "created_at", "updated_at")


def list_characters(store: KeyValueStore) -> list[Character]:
    return store.get_models(_CHARACTERS, Character)


def get_character(store: KeyValueStore, character_id: str) -> Character | None:
    """Find a single character by id. Returns None if not found."""
    for character in list_characters(store):
        if character.id == character_id:
            return character
    return None


def add_character(store: KeyValueStore, fields: dict[str, Any]) -> Character:
    """Store a new character. Raises pydantic's ValidationError on bad fields."""
    data = {k: v for k, v in fields.items() if k not in _READ_ONLY}
    character = Character.model_validate({**data, "id": new_id("char")})
    characters = list_characters(store)
    characters.append(character)
    store.set_models(_CHARACTERS, characters)
    return character


def update_character(store: KeyValueStore, character_id: str,
                     fields: dict[str, Any]) -> Character | None:
    characters = list_characters(store)
    for i, character in enumerate(characters):
        if character.id == character_id:
            data = {k: v for k, v in fields.items() if k not in _READ_ONLY}
            updated = Character.model_validate({
                **character.model_dump(), **data, "updated_at": datetime.now(timezone.utc),
            })
            characters[i] = updated
            store.set_models(_CHARACTERS, characters)
            return updated
    return None


def delete_character(store: KeyValueStore, character_id: str) -> bool:
    characters = list_characters(store)
    remaining = [c for c in characters if c.id != character_id]
    if len(remaining) == len(characters):
        return False
    store.set_models(_CHARACTERS, remaining)
    return True
