"""Inline message markup parsing into typed segments.

Marker syntax (pipe-delimited fields; prompts teach the model exactly this):

  [Name|Text]                                   text
  <Name|EmojiId>                                emoji
  [Name|语音|Duration|Text]                      voice
  {Name|Text}                                   text, retracted after display
  [Name|引用|QuotedName|QuotedText|NewText]       quote
  【心声|Name|Thought】                           inner_voice
  「随笔|Name|Essay」                             essay
  <系统>Text</系统>                               system
  <旁白>Text</旁白>                               narrator

Markers may repeat and interleave. Segments come out in source order (match
start offset). When two markers claim the same span, the earliest start
wins and ties go to the first pattern in scan order, which lists the
specific bracket forms (voice, quote) before the generic [Name|Text]. A
match starting inside an accepted one is dropped.

Free text around markers in a structured reply becomes a plain text segment
from "AI". A reply with no marker at all parses to []; callers fall back to
showing the whole reply as one message.
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from companion_chat.models import MessageType, Segment, SplitterOptions, new_message_id

DEFAULT_SENDER = "AI"

# timestamp spacing within one parsed batch (ms)
TIMESTAMP_STEP_MS = 100

# (kind, pattern) in scan order
MESSAGE_FORMATS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("voice", re.compile(r"\[([^|\[\]]+)\|语音\|([^|\[\]]+)\|([^\[\]]+)\]")),
    ("quote", re.compile(r"\[([^|\[\]]+)\|引用\|([^|\[\]]+)\|([^|\[\]]+)\|([^\[\]]+)\]")),
    ("text", re.compile(r"\[([^|\[\]]+)\|([^\[\]]*(?:\[[^\[\]]*\][^\[\]]*)*)\]")),
    ("retract", re.compile(r"\{([^|{}]+)\|([^{}]+)\}")),
    ("emoji", re.compile(r"<([^|<>]+)\|([^<>]+)>")),
    ("inner_voice", re.compile(r"【心声\|([^|【】]+)\|([^【】]+)】")),
    ("essay", re.compile(r"「随笔\|([^|「」]+)\|([^「」]+)」")),
    ("system", re.compile(r"<系统>([^<]+)</系统>")),
    ("narrator", re.compile(r"<旁白>([^<]+)</旁白>")),
)


@dataclass(frozen=True)
class MarkerMatch:
    kind: str
    start: int
    end: int
    groups: tuple[str, ...]


def has_structured_format(text: str) -> bool:
    """True if ``text`` contains at least one marker of any type."""
    return any(pattern.search(text) for _, pattern in MESSAGE_FORMATS)


def find_markers(text: str) -> list[MarkerMatch]:
    """Scan once per marker type and return non-overlapping matches in order."""
    candidates: list[tuple[int, int, MarkerMatch]] = []
    for order, (kind, pattern) in enumerate(MESSAGE_FORMATS):
        for m in pattern.finditer(text):
            candidates.append((m.start(), order, MarkerMatch(
                kind=kind, start=m.start(), end=m.end(), groups=m.groups(),
            )))
    candidates.sort(key=lambda c: (c[0], c[1]))

    accepted: list[MarkerMatch] = []
    last_end = 0
    for start, _, match in candidates:
        if start < last_end:
            continue
        accepted.append(match)
        last_end = match.end
    return accepted


def _marker_fields(match: MarkerMatch) -> tuple[MessageType, str, str, bool]:
    """Map a marker to (message_type, sender, content, should_retract)."""
    g = match.groups
    if match.kind == "text":
        return "text", g[0], g[1], False
    if match.kind == "emoji":
        return "emoji", g[0], f"[表情:{g[1]}]", False
    if match.kind == "voice":
        return "voice", g[0], f"[语音 {g[1]}] {g[2]}", False
    if match.kind == "retract":
        return "text", g[0], g[1], True
    if match.kind == "quote":
        return "quote", g[0], f"引用 @{g[1]}: {g[2]}\n{g[3]}", False
    if match.kind == "inner_voice":
        return "inner_voice", g[0], g[1], False
    if match.kind == "essay":
        return "essay", g[0], g[1], False
    if match.kind == "system":
        return "system", "System", f"[系统] {g[0]}", False
    if match.kind == "narrator":
        return "narrator", "Narrator", f"[旁白] {g[0]}", False
    raise ValueError(f"Unknown marker kind: {match.kind}")


class _SegmentFactory:
    def __init__(self, character_id: str, options: SplitterOptions,
                 rng: random.Random) -> None:
        self._character_id = character_id
        self._options = options
        self._rng = rng
        self._base = datetime.now(timezone.utc)
        self._index = 0

    def create(self, message_type: MessageType, sender: str, content: str,
               should_retract: bool = False) -> Segment:
        opts = self._options
        segment = Segment(
            id=new_message_id(self._rng),
            content=content,
            sender="ai",
            character_id=self._character_id,
            timestamp=self._base + timedelta(milliseconds=self._index * TIMESTAMP_STEP_MS),
            status="sent",
            message_type=message_type,
            original_sender=sender,
            should_retract=should_retract,
            retract_delay=(
                opts.retract_delay + self._rng.random() * opts.retract_random_delay
                if should_retract else None
            ),
            display_delay=opts.base_delay + self._rng.random() * opts.random_delay,
        )
        self._index += 1
        return segment


def parse_ai_response(
    text: str,
    character_id: str = "",
    options: SplitterOptions | None = None,
    rng: random.Random | None = None,
) -> list[Segment]:
    """Split a reply into display segments in source order."""
    markers = find_markers(text)
    if not markers:
        return []

    factory = _SegmentFactory(character_id, options or SplitterOptions(), rng or random.Random())
    segments: list[Segment] = []
    last_index = 0

    for marker in markers:
        gap = text[last_index:marker.start].strip()
        if gap:
            segments.append(factory.create("text", DEFAULT_SENDER, gap))
        message_type, sender, content, retract = _marker_fields(marker)
        segments.append(factory.create(message_type, sender, content, retract))
        last_index = marker.end

    tail = text[last_index:].strip()
    if tail:
        segments.append(factory.create("text", DEFAULT_SENDER, tail))

    return segments


def segments_to_text(segments: list[Segment]) -> str:
    """Plain-text rendering of segments for conversation history."""
    parts: list[str] = []
    for seg in segments:
        if seg.original_sender and seg.message_type not in ("system", "narrator"):
            parts.append(f"{seg.original_sender}: {seg.content}")
        else:
            parts.append(seg.content)
    return "\n".join(parts)
