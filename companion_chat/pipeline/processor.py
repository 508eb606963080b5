"""Reply post-processing: the single entry point between the model and display.

Structured replies (containing inline markers) only get whitespace
normalisation; they are split into segments downstream. Plain replies are
held to a terse chat style:

  1. discourse markers (首先, 然后, ...) stripped, newlines and colons folded
  2. whole sentences kept greedily under 50 characters / 2 sentences,
     ellipsis truncation if still too long
  3. optional tone word and emoji from the character's voice-style table
  4. near-duplicates of recent output rewritten

Every output is pushed onto a ring buffer of the last 10 replies used for
duplicate detection. Violations are reported to the compliance monitor in
the background. process() never raises for odd input.
"""

from __future__ import annotations

import logging
import random
import re
from collections import deque

from companion_chat.compliance import ComplianceMonitor
from companion_chat.models import (
    Character,
    LengthControlConfig,
    RewriteConfig,
    SimilarityConfig,
    StyleConfig,
    ViolationStats,
    ViolationType,
)
from companion_chat.prompts import random_emoji, random_tone_word
from companion_chat.tasks import BackgroundTasks

from .rewriter import intelligent_rewrite
from .segments import has_structured_format
from .similarity import EMOJI_RE, detect_repetition

logger = logging.getLogger(__name__)

RECENT_RESPONSES_LIMIT = 10

ELLIPSIS = "..."

FORBIDDEN_KEYWORDS = ("首先", "第一", "以下", "然后", "接下来", "另外", "此外")

EXISTING_TONE_WORDS = ("呢", "呀", "啦", "哦", "嘛", "呐", "哟", "咯", "嘞", "吧", "啊", "嗯")

SENTENCE_END = ".!?。！？"

_SENTENCE_PIECE_RE = re.compile(rf"[^{SENTENCE_END}]*[{SENTENCE_END}]+|[^{SENTENCE_END}]+$")
_SENTENCE_SPLIT_RE = re.compile(rf"[{SENTENCE_END}]")
_KEYWORD_RE = re.compile("(?:" + "|".join(FORBIDDEN_KEYWORDS) + ")[，,]?")
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


def get_sentences(text: str) -> list[str]:
    return [s for s in _SENTENCE_SPLIT_RE.split(text) if s.strip()]


def normalize_structured(text: str) -> str:
    """Trim each line, collapse runs of 3+ newlines to 2, trim the whole."""
    lines = [line.strip() for line in text.split("\n")]
    return _EXCESS_NEWLINES_RE.sub("\n\n", "\n".join(lines)).strip()


class ResponseProcessor:
    """Per-session reply processor; owns its ring buffer of recent output."""

    def __init__(
        self,
        style_config: StyleConfig | None = None,
        length_config: LengthControlConfig | None = None,
        similarity_config: SimilarityConfig | None = None,
        rewrite_config: RewriteConfig | None = None,
        monitor: ComplianceMonitor | None = None,
        tasks: BackgroundTasks | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._style = style_config or StyleConfig()
        self._length = length_config or LengthControlConfig()
        self._similarity = similarity_config or SimilarityConfig()
        self._rewrite = rewrite_config or RewriteConfig()
        self._monitor = monitor
        self._tasks = tasks or BackgroundTasks()
        self._rng = rng or random.Random()
        self._recent: deque[str] = deque(maxlen=RECENT_RESPONSES_LIMIT)
        self._stats = ViolationStats()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def process(self, response: str, character: Character | None = None) -> str:
        original = (response or "").strip()
        structured = has_structured_format(original)

        if structured:
            processed = normalize_structured(original)
        else:
            processed = self._process_plain(original, character)

        repeated = False
        result = detect_repetition(processed, list(self._recent), self._similarity)
        if result.is_repetitive:
            rewritten = intelligent_rewrite(processed, list(self._recent), self._rewrite, self._rng)
            logger.debug("repetitive reply (%.3f) rewritten: %r -> %r",
                         result.similarity, processed, rewritten)
            if not structured:
                rewritten = self._final_length_check(rewritten)
            repeated = True
            processed = rewritten

        self._recent.append(processed)

        violations = [] if structured else self._detect_violations(original)
        if repeated:
            violations.append("repetition_violation")
        if violations:
            self._report(violations, original, processed)

        return processed

    # ------------------------------------------------------------------
    # Plain replies
    # ------------------------------------------------------------------

    def _process_plain(self, text: str, character: Character | None) -> str:
        processed = text
        if not self._is_normal_response(processed):
            processed = self._force_normal_response(processed)

        voice_style = character.voice_style if character else "gentle"
        if self._style.use_tone_words:
            processed = self._add_tone_word(processed, voice_style)
        if self._style.use_emoji:
            processed = self._add_emoji(processed, voice_style)

        return self._final_length_check(processed)

    def _is_normal_response(self, text: str) -> bool:
        return (
            len(text) <= self._length.max_characters
            and len(get_sentences(text)) <= self._length.max_sentences
            and "\n" not in text
            and "：" not in text
            and ":" not in text
            and not any(k in text for k in FORBIDDEN_KEYWORDS)
        )

    def _force_normal_response(self, text: str) -> str:
        processed = _KEYWORD_RE.sub("", text)
        processed = re.sub(r"\s*\n\s*", " ", processed)
        processed = processed.replace("：", "，").replace(":", ",")
        return self.enforce_length_limit(processed.strip())

    def enforce_length_limit(self, text: str) -> str:
        """Keep whole sentences while both caps hold; ellipsis otherwise."""
        max_chars = self._length.max_characters
        if len(text) <= max_chars and len(get_sentences(text)) <= self._length.max_sentences:
            return text

        end = 0
        count = 0
        for match in _SENTENCE_PIECE_RE.finditer(text):
            if not match.group().strip():
                continue
            if count >= self._length.max_sentences or len(text[:match.end()].strip()) > max_chars:
                break
            end = match.end()
            count += 1

        shortened = text[:end].strip()
        if not shortened:
            return self._truncate(text)
        return self._final_length_check(shortened)

    def _truncate(self, text: str) -> str:
        return text[: self._length.max_characters - len(ELLIPSIS)] + ELLIPSIS

    def _final_length_check(self, text: str) -> str:
        if len(text) > self._length.max_characters:
            return self._truncate(text)
        return text

    def _add_tone_word(self, text: str, voice_style: str) -> str:
        if not text or any(w in text for w in EXISTING_TONE_WORDS):
            return text
        tone_word = random_tone_word(voice_style, self._rng)
        if len(text) + len(tone_word) > self._length.max_characters:
            return text
        if self._rng.random() >= self._style.tone_word_chance:
            return text
        if text[-1] in "。！？":
            return text[:-1] + tone_word + text[-1]
        return text + tone_word

    def _add_emoji(self, text: str, voice_style: str) -> str:
        if not text or EMOJI_RE.search(text):
            return text
        emoji = random_emoji(voice_style, self._rng)
        if len(text) + len(emoji) + 1 > self._length.max_characters:
            return text
        if self._rng.random() >= self._style.emoji_chance:
            return text
        return f"{text} {emoji}"

    # ------------------------------------------------------------------
    # Violations
    # ------------------------------------------------------------------

    def _detect_violations(self, original: str) -> list[ViolationType]:
        violations: list[ViolationType] = []
        if len(original) > self._length.max_characters:
            self._stats.length_violations += 1
            violations.append("length_violation")
        if len(get_sentences(original)) > self._length.max_sentences:
            self._stats.sentence_violations += 1
            violations.append("sentence_violation")
        if "\n" in original or "：" in original or ":" in original:
            violations.append("format_violation")
        if any(k in original for k in FORBIDDEN_KEYWORDS):
            violations.append("keyword_violation")
        return violations

    def _report(self, violations: list[ViolationType], original: str, corrected: str) -> None:
        self._stats.total_violations += 1
        if self._monitor is None:
            return
        self._tasks.submit(
            self._record(violations, original, corrected), name="record-violations"
        )

    async def _record(self, violations: list[ViolationType], original: str,
                      corrected: str) -> None:
        for violation in violations:
            await self._monitor.record_violation(violation, original, corrected)

    # ------------------------------------------------------------------
    # Stats / configuration
    # ------------------------------------------------------------------

    @property
    def recent_responses(self) -> list[str]:
        return list(self._recent)

    def get_violation_stats(self) -> ViolationStats:
        return self._stats.model_copy()

    def reset_violation_stats(self) -> None:
        self._stats = ViolationStats()

    def update_length_config(self, **fields: object) -> None:
        self._length = self._length.model_copy(update=fields)

    def update_style_config(self, **fields: object) -> None:
        self._style = self._style.model_copy(update=fields)

    def get_current_config(self) -> dict[str, dict]:
        return {
            "length_config": self._length.model_dump(),
            "style_config": self._style.model_dump(),
        }


def process_ai_response(response: str, character: Character,
                        style_config: StyleConfig | None = None) -> str:
    """One-shot processing with a throwaway processor (no history)."""
    return ResponseProcessor(style_config).process(response, character)
