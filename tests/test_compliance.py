"""Tests for ComplianceMonitor: counters, prompt escalation, persistence and
the violation report."""

import pytest

from companion_chat.compliance import (
    CATEGORY_WARNINGS,
    MAX_STRENGTH_LEVEL,
    STRENGTH_SUFFIXES,
    ComplianceMonitor,
    strengthened_prompt_content,
)
from companion_chat.models import GlobalPrompt
from companion_chat.prompts import STRICT_LENGTH_CONTROL_BASE, STRICT_LENGTH_CONTROL_ID
from companion_chat.storage import STORAGE_KEYS


@pytest.fixture
def monitor(store) -> ComplianceMonitor:
    return ComplianceMonitor(store)


def _strict_prompt(store) -> GlobalPrompt:
    for raw in store.get(STORAGE_KEYS["global_prompts"]):
        prompt = GlobalPrompt.model_validate(raw)
        if prompt.id == STRICT_LENGTH_CONTROL_ID:
            return prompt
    raise AssertionError("strict prompt not stored")


async def _record(monitor, violation_type, times):
    for _ in range(times):
        await monitor.record_violation(violation_type, "original", "corrected")


# ── counters ───────────────────────────────────────────────


async def test_record_increments_counter_and_total(monitor):
    await monitor.record_violation("length_violation")
    await monitor.record_violation("format_violation")
    stats = monitor.get_stats()
    assert stats.length_violations == 1
    assert stats.format_violations == 1
    assert stats.total_violations == 2


async def test_total_is_sum_of_counters(monitor):
    await _record(monitor, "keyword_violation", 3)
    await _record(monitor, "repetition_violation", 2)
    s = monitor.get_stats()
    assert s.total_violations == (
        s.length_violations + s.sentence_violations + s.format_violations
        + s.keyword_violations + s.repetition_violations
    )


async def test_unknown_type_rejected(monitor):
    with pytest.raises(ValueError):
        await monitor.record_violation("spelling_violation")


async def test_get_stats_returns_copy(monitor):
    stats = monitor.get_stats()
    stats.length_violations = 99
    assert monitor.get_stats().length_violations == 0


# ── escalation ─────────────────────────────────────────────


async def test_four_violations_do_not_escalate(monitor):
    await _record(monitor, "length_violation", 4)
    assert monitor.prompt_strength_level == 1


async def test_five_violations_escalate_to_level_two(monitor, store):
    await _record(monitor, "length_violation", 5)
    assert monitor.prompt_strength_level == 2

    prompt = _strict_prompt(store)
    assert prompt.content.startswith(STRICT_LENGTH_CONTROL_BASE)
    assert STRENGTH_SUFFIXES[2] in prompt.content
    assert CATEGORY_WARNINGS["length_violation"] in prompt.content


async def test_thresholds_are_per_category(monitor):
    await _record(monitor, "length_violation", 4)
    await _record(monitor, "sentence_violation", 1)
    assert monitor.prompt_strength_level == 1


async def test_strength_capped_at_five(monitor, store):
    await _record(monitor, "length_violation", 25)
    assert monitor.prompt_strength_level == MAX_STRENGTH_LEVEL
    await _record(monitor, "length_violation", 5)
    assert monitor.prompt_strength_level == MAX_STRENGTH_LEVEL
    assert STRENGTH_SUFFIXES[5] in _strict_prompt(store).content


async def test_rewrite_keeps_other_prompts(monitor, store):
    custom = GlobalPrompt(id="mine", name="mine", content="x")
    strict = GlobalPrompt(id=STRICT_LENGTH_CONTROL_ID, name="strict", content="old")
    store.set(STORAGE_KEYS["global_prompts"],
              [custom.model_dump(mode="json"), strict.model_dump(mode="json")])

    await _record(monitor, "format_violation", 5)

    stored = store.get(STORAGE_KEYS["global_prompts"])
    assert [p["id"] for p in stored] == ["mine", STRICT_LENGTH_CONTROL_ID]
    assert stored[0]["content"] == "x"
    assert CATEGORY_WARNINGS["format_violation"] in stored[1]["content"]


async def test_missing_strict_prompt_still_escalates(monitor, store):
    custom = GlobalPrompt(id="mine", name="mine", content="x")
    store.set(STORAGE_KEYS["global_prompts"], [custom.model_dump(mode="json")])

    await _record(monitor, "length_violation", 5)

    assert monitor.prompt_strength_level == 2
    assert [p["id"] for p in store.get(STORAGE_KEYS["global_prompts"])] == ["mine"]


def test_strengthened_content_clamps_level():
    assert strengthened_prompt_content("length_violation", 9).startswith(STRICT_LENGTH_CONTROL_BASE)
    assert STRENGTH_SUFFIXES[5] in strengthened_prompt_content("length_violation", 9)


# ── persistence / reset / report ───────────────────────────


async def test_stats_survive_restart(monitor, store):
    await _record(monitor, "sentence_violation", 5)
    again = ComplianceMonitor(store)
    assert again.get_stats().sentence_violations == 5
    assert again.prompt_strength_level == 2


def test_corrupt_stats_start_fresh(store):
    store.set(STORAGE_KEYS["compliance_stats"], {"prompt_strength_level": 42})
    assert ComplianceMonitor(store).prompt_strength_level == 1


async def test_reset_stats(monitor, store):
    await _record(monitor, "length_violation", 5)
    monitor.reset_stats()
    stats = monitor.get_stats()
    assert stats.total_violations == 0
    assert stats.prompt_strength_level == 1
    assert ComplianceMonitor(store).get_stats().total_violations == 0


def test_report_when_clean(monitor):
    assert monitor.get_violation_report().startswith("✅")


async def test_report_lists_counters(monitor):
    await _record(monitor, "length_violation", 2)
    report = monitor.get_violation_report()
    assert "总违规次数: 2" in report
    assert "长度违规: 2" in report
    assert "当前提示词强度: 1/5" in report
