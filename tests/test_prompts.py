"""Tests for prompt material: Handlebars rendering, the character system
prompt, global prompt ordering and the voice-style tables."""

import random

import pytest

from companion_chat.models import Character, GlobalPrompt
from companion_chat.prompts import (
    EMOJI_SETS,
    STRICT_LENGTH_CONTROL_ID,
    TONE_WORDS,
    PromptError,
    active_prompt_text,
    add_global_prompt,
    build_system_prompt,
    builtin_global_prompts,
    delete_global_prompt,
    load_global_prompts,
    random_emoji,
    random_tone_word,
    render_prompt,
    tone_words_for,
    update_global_prompt,
)
from companion_chat.storage import STORAGE_KEYS


# ── render_prompt ────────────────────────────────────────────


def test_render_simple_variable():
    assert render_prompt("Hello {{name}}!", {"name": "World"}) == "Hello World!"


def test_render_if_conditional():
    tpl = "{{#if show}}yes{{else}}no{{/if}}"
    assert render_prompt(tpl, {"show": True}) == "yes"
    assert render_prompt(tpl, {"show": False}) == "no"


def test_render_missing_variable():
    assert render_prompt("Hello {{name}}!", {}) == "Hello !"


def test_render_invalid_template():
    with pytest.raises(PromptError):
        render_prompt("{{> missing_partial}}", {})


# ── character system prompt ──────────────────────────────────


def test_build_system_prompt_character_only():
    character = Character(id="c1", name="小雪", gender="female",
                          likes=["看书", "画画"], dislikes=["吵闹"],
                          background="海边长大", voice_style="cute")
    prompt = build_system_prompt(character)
    assert prompt.startswith("你现在是小雪，性别女，喜欢看书、画画，讨厌吵闹。")
    assert "背景故事：海边长大" in prompt
    assert "用可爱的语气" in prompt
    assert "性格特征" not in prompt


def test_build_system_prompt_skips_empty_likes():
    prompt = build_system_prompt(Character(id="c1", name="阿杰"))
    assert prompt.startswith("你现在是阿杰，性别其他。")
    assert "用温柔的语气" in prompt


def test_special_characters_not_escaped():
    prompt = build_system_prompt(Character(id="c1", name="<Tom & Jerry>"))
    assert "<Tom & Jerry>" in prompt


def test_global_prompts_prefix_character_prompt():
    character = Character(id="c1", name="小雪")
    prompts = [GlobalPrompt(id="p", name="p", content="全局规则")]
    prompt = build_system_prompt(character, prompts)
    assert prompt.startswith("全局规则\n\n你现在是小雪")


# ── global prompts ───────────────────────────────────────────


def test_active_prompt_text_orders_by_priority():
    prompts = [
        GlobalPrompt(id="low", name="low", content="LOW", priority=1),
        GlobalPrompt(id="high", name="high", content="HIGH", priority=9),
        GlobalPrompt(id="off", name="off", content="OFF", priority=99, is_active=False),
    ]
    assert active_prompt_text(prompts) == "HIGH\n\nLOW"


def test_builtin_prompts_include_strict_length_control():
    ids = [p.id for p in builtin_global_prompts()]
    assert STRICT_LENGTH_CONTROL_ID in ids
    assert len(ids) == len(set(ids))


def test_builtin_prompts_are_fresh_copies():
    first = builtin_global_prompts()
    first[0].content = "changed"
    assert builtin_global_prompts()[0].content != "changed"


def test_load_global_prompts_seeds_builtins(store):
    assert [p.id for p in load_global_prompts(store)] == [p.id for p in builtin_global_prompts()]


def test_load_global_prompts_reads_store(store):
    stored = [GlobalPrompt(id="mine", name="mine", content="x").model_dump(mode="json")]
    store.set(STORAGE_KEYS["global_prompts"], stored)
    assert [p.id for p in load_global_prompts(store)] == ["mine"]


def test_load_global_prompts_invalid_data_falls_back(store):
    store.set(STORAGE_KEYS["global_prompts"], [{"id": "broken"}])
    assert STRICT_LENGTH_CONTROL_ID in [p.id for p in load_global_prompts(store)]


def test_empty_stored_list_is_kept(store):
    store.set(STORAGE_KEYS["global_prompts"], [])
    assert load_global_prompts(store) == []


# ── editing global prompts ───────────────────────────────────


def test_add_global_prompt_persists_builtins_too(store):
    prompt = add_global_prompt(store, {"name": "mine", "content": "多用比喻", "priority": 90})
    assert prompt.id.startswith("prompt_")
    ids = [p["id"] for p in store.get(STORAGE_KEYS["global_prompts"])]
    assert ids == [p.id for p in builtin_global_prompts()] + [prompt.id]


def test_update_global_prompt(store):
    updated = update_global_prompt(store, "emoji_enhancement", {"is_active": False, "id": "x"})
    assert updated.id == "emoji_enhancement"
    assert updated.is_active is False
    stored = {p.id: p for p in load_global_prompts(store)}
    assert stored["emoji_enhancement"].is_active is False
    assert "开心时用" not in active_prompt_text(list(stored.values()))


def test_update_missing_global_prompt(store):
    assert update_global_prompt(store, "missing", {"content": "x"}) is None


def test_delete_global_prompt(store):
    assert delete_global_prompt(store, "natural_rhythm") is True
    assert "natural_rhythm" not in [p.id for p in load_global_prompts(store)]
    assert delete_global_prompt(store, "natural_rhythm") is False


# ── voice-style tables ───────────────────────────────────────


def test_unknown_style_falls_back_to_gentle():
    assert tone_words_for("mysterious") == TONE_WORDS["gentle"]


def test_random_picks_come_from_style_table():
    rng = random.Random(0)
    for _ in range(20):
        assert random_tone_word("cute", rng) in TONE_WORDS["cute"]
        assert random_emoji("energetic", rng) in EMOJI_SETS["energetic"]
