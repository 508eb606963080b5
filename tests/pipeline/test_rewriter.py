"""Tests for rule-based rewriting of repetitive replies."""

import random

import pytest

from companion_chat.models import RewriteConfig
from companion_chat.pipeline.rewriter import (
    REWRITE_RULES,
    STRUCTURE_TEMPLATES,
    batch_rewrite_responses,
    get_rewrite_stats,
    intelligent_rewrite,
    pick_replacement,
    rewrite_response,
    used_categories,
)


def _replacements(category: str, index: int = 0) -> tuple[str, ...]:
    return REWRITE_RULES[category][index].replacements


@pytest.fixture
def rng() -> random.Random:
    return random.Random(42)


# ── pick_replacement ───────────────────────────────────────


def test_zero_randomness_picks_among_first_three(rng):
    options = ("a", "b", "c", "d", "e", "f")
    picks = {pick_replacement(options, 0.0, rng) for _ in range(50)}
    assert picks <= {"a", "b", "c"}


def test_full_randomness_can_pick_any(rng):
    options = ("a", "b", "c", "d", "e", "f")
    picks = {pick_replacement(options, 1.0, rng) for _ in range(200)}
    assert picks - {"a", "b", "c"}


# ── rewrite_response ───────────────────────────────────────


def test_greeting_rewritten(rng):
    assert rewrite_response("你好", rng=rng) in _replacements("greetings")


def test_confirmation_rewritten(rng):
    assert rewrite_response("好的！", rng=rng) in _replacements("confirmations")


def test_thanks_rewritten_in_place(rng):
    result = rewrite_response("谢谢你！我会记住的", rng=rng)
    replacement = result[: -len("我会记住的")]
    assert result.endswith("我会记住的")
    assert replacement in _replacements("thanks")


def test_tone_word_rewritten(rng):
    result = rewrite_response("天气不错呢", rng=rng)
    assert result.startswith("天气不错")
    assert result[len("天气不错"):] in _replacements("tone_words")


def test_emoji_rule_replaces_every_occurrence(rng):
    result = rewrite_response("开心😊😊", rng=rng)
    replacement = result[len("开心"):len("开心") + 1]
    assert replacement in _replacements("emojis")
    assert result == "开心" + replacement * 2


def test_structure_fallback(rng):
    result = rewrite_response("今天去公园！", rng=rng)
    expected = {t.format("今天去公园") for t in STRUCTURE_TEMPLATES[1][1]}
    assert result in expected


def test_disabled_tone_words_fall_back_to_structure(rng):
    config = RewriteConfig(enable_tone_words=False)
    result = rewrite_response("天气不错呢", config, rng)
    expected = {t.format("天气不错") for t in STRUCTURE_TEMPLATES[0][1]}
    assert result in expected


def test_everything_disabled_is_identity(rng):
    config = RewriteConfig(enable_tone_words=False, enable_emojis=False, enable_structure=False)
    assert rewrite_response("天气不错呢", config, rng) == "天气不错呢"


@pytest.mark.parametrize("text", ["", "abc", "我们周末去爬山"])
def test_unmatched_text_unchanged(text, rng):
    assert rewrite_response(text, rng=rng) == text


def test_only_one_category_applies(rng):
    # greeting matches first; the trailing emoji is left alone
    result = rewrite_response("很高兴认识你！😊 好的", rng=rng)
    assert result.endswith(" 好的")


# ── intelligent_rewrite ────────────────────────────────────


def test_used_categories():
    recent = ["你好呀", "好的没问题", "今天天气真好呢"]
    assert used_categories(recent) == {"greetings", "confirmations", "tone_words"}


def test_used_categories_empty():
    assert used_categories([]) == set()


def test_intelligent_rewrite_damps_randomness(rng):
    # three used categories damp randomness to 0.8 * 0.7 ** 3
    recent = ["你好", "好的", "呢"]
    result = intelligent_rewrite("你好", recent, rng=rng)
    assert result in _replacements("greetings")


def test_batch_rewrite(rng):
    results = batch_rewrite_responses(["你好", "abc"], rng=rng)
    assert results[0] in _replacements("greetings")
    assert results[1] == "abc"


# ── get_rewrite_stats ──────────────────────────────────────


def test_rewrite_stats_unchanged():
    assert get_rewrite_stats("a b", "a b") == {
        "is_rewritten": False, "changed_words": 0, "similarity": 1.0,
    }


def test_rewrite_stats_changed():
    stats = get_rewrite_stats("a b c", "a x c")
    assert stats["is_rewritten"] is True
    assert stats["changed_words"] == 1
    assert stats["similarity"] == 0.667
