"""Tests for character storage."""

import pytest
from pydantic import ValidationError

from companion_chat import characters


def test_add_and_get(store):
    character = characters.add_character(store, {"name": "小雪", "likes": ["看书"]})
    assert character.id.startswith("char_")
    assert characters.get_character(store, character.id) == character
    assert characters.list_characters(store) == [character]


def test_add_rejects_bad_voice_style(store):
    with pytest.raises(ValidationError):
        characters.add_character(store, {"name": "小雪", "voice_style": "shouty"})
    assert characters.list_characters(store) == []


def test_update_touches_updated_at(store):
    character = characters.add_character(store, {"name": "小雪"})
    updated = characters.update_character(store, character.id, {"voice_style": "cute"})
    assert updated.voice_style == "cute"
    assert updated.name == "小雪"
    assert updated.created_at == character.created_at
    assert updated.updated_at >= character.updated_at


def test_update_missing(store):
    assert characters.update_character(store, "nope", {"name": "x"}) is None


def test_delete(store):
    character = characters.add_character(store, {"name": "小雪"})
    assert characters.delete_character(store, character.id) is True
    assert characters.get_character(store, character.id) is None
    assert characters.delete_character(store, character.id) is False
