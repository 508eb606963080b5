"""Compliance monitor: session-wide ledger of reply rule violations.

Counters per violation category, a derived total and a prompt strength
level (1..5). Every time one category counter reaches a positive multiple of
VIOLATION_THRESHOLD the strength level goes up by one (capped at
MAX_STRENGTH_LEVEL) and the stored ``strict_length_control`` global prompt is
rewritten with a sterner suffix plus a category-specific warning line.

One instance is constructed by the application and injected wherever it is
needed. Stats are hydrated from the key-value store at construction and
persisted after every mutation.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from pydantic import ValidationError

from companion_chat.models import ComplianceStats, GlobalPrompt, ViolationType
from companion_chat.prompts import (
    STRICT_LENGTH_CONTROL_BASE,
    STRICT_LENGTH_CONTROL_ID,
    load_global_prompts,
    save_global_prompts,
)
from companion_chat.storage import STORAGE_KEYS, KeyValueStore

logger = logging.getLogger(__name__)

VIOLATION_THRESHOLD = 5
MAX_STRENGTH_LEVEL = 5

_COUNTER_FIELDS: dict[str, str] = {
    "length_violation": "length_violations",
    "sentence_violation": "sentence_violations",
    "format_violation": "format_violations",
    "keyword_violation": "keyword_violations",
    "repetition_violation": "repetition_violations",
}

# indexed by strength level
STRENGTH_SUFFIXES: dict[int, str] = {
    1: "\n⚠️ 违反格式要求将被强制修正！",
    2: "\n⚠️ 已检测到多次违规，请严格遵守格式！",
    3: "\n🚨 警告：继续违规将影响对话质量！",
    4: "\n🚨 最终警告：必须严格按照格式回复！",
    5: "\n💀 强制模式：任何违规都将被立即截断！",
}

CATEGORY_WARNINGS: dict[str, str] = {
    "length_violation": "\n📏 特别注意：严格控制字符数量！",
    "sentence_violation": "\n📝 特别注意：严格控制句子数量！",
    "format_violation": "\n📋 特别注意：禁止使用换行和冒号！",
    "keyword_violation": "\n🚫 特别注意：禁止使用长篇标志词！",
    "repetition_violation": "\n🔁 特别注意：不要重复之前说过的话！",
}


def strengthened_prompt_content(violation_type: str, strength_level: int) -> str:
    level = max(1, min(strength_level, MAX_STRENGTH_LEVEL))
    return (
        STRICT_LENGTH_CONTROL_BASE
        + STRENGTH_SUFFIXES[level]
        + CATEGORY_WARNINGS.get(violation_type, "")
    )


class ComplianceMonitor:
    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._stats = ComplianceStats()
        self._load_stats()

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    async def record_violation(
        self,
        violation_type: ViolationType,
        original_response: str = "",
        corrected_response: str = "",
    ) -> None:
        field = _COUNTER_FIELDS.get(violation_type)
        if field is None:
            raise ValueError(f"Unknown violation type: {violation_type!r}")

        count = getattr(self._stats, field) + 1
        setattr(self._stats, field, count)
        self._stats.total_violations = sum(
            getattr(self._stats, f) for f in _COUNTER_FIELDS.values()
        )
        self._stats.last_violation_time = datetime.now(timezone.utc)
        self._save_stats()

        logger.debug(
            "violation %s count=%d total=%d original=%r corrected=%r",
            violation_type, count, self._stats.total_violations,
            original_response, corrected_response,
        )

        if count % VIOLATION_THRESHOLD == 0:
            self._strengthen_prompt(violation_type)

    def _strengthen_prompt(self, violation_type: str) -> None:
        if self._stats.prompt_strength_level >= MAX_STRENGTH_LEVEL:
            logger.info("Prompt strength already at maximum (%d)", MAX_STRENGTH_LEVEL)
            return

        self._stats.prompt_strength_level += 1
        level = self._stats.prompt_strength_level
        self._save_stats()

        prompts = self.load_global_prompts()
        for prompt in prompts:
            if prompt.id == STRICT_LENGTH_CONTROL_ID:
                prompt.content = strengthened_prompt_content(violation_type, level)
                prompt.updated_at = datetime.now(timezone.utc)
                break
        else:
            logger.warning("No %s prompt stored; strength raised without rewrite",
                           STRICT_LENGTH_CONTROL_ID)
            return
        save_global_prompts(self._store, prompts)
        logger.info("Prompt strengthened after %s -> level %d", violation_type, level)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_stats(self) -> ComplianceStats:
        return self._stats.model_copy()

    @property
    def prompt_strength_level(self) -> int:
        return self._stats.prompt_strength_level

    def load_global_prompts(self) -> list[GlobalPrompt]:
        return load_global_prompts(self._store)

    def get_violation_report(self) -> str:
        s = self._stats
        if s.total_violations == 0:
            return "✅ AI回复完全合规，无违规记录"
        return (
            "📊 AI合规报告:\n"
            f"总违规次数: {s.total_violations}\n"
            f"- 长度违规: {s.length_violations}\n"
            f"- 句子数违规: {s.sentence_violations}\n"
            f"- 格式违规: {s.format_violations}\n"
            f"- 关键词违规: {s.keyword_violations}\n"
            f"- 重复违规: {s.repetition_violations}\n"
            f"当前提示词强度: {s.prompt_strength_level}/{MAX_STRENGTH_LEVEL}\n"
            f"最后违规时间: {s.last_violation_time.isoformat()}"
        )

    # ------------------------------------------------------------------
    # Reset / persistence
    # ------------------------------------------------------------------

    def reset_stats(self) -> None:
        self._stats = ComplianceStats()
        self._save_stats()

    def _load_stats(self) -> None:
        saved = self._store.get(STORAGE_KEYS["compliance_stats"])
        if not saved:
            return
        try:
            self._stats = ComplianceStats.model_validate(saved)
        except ValidationError as e:
            logger.warning("Stored compliance stats are invalid, starting fresh: %s", e)

    def _save_stats(self) -> None:
        self._store.set(
            STORAGE_KEYS["compliance_stats"], self._stats.model_dump(mode="json")
        )
