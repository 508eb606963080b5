"""Core domain models.

Every pipeline stage, the compliance monitor and the HTTP layer exchange
these types. Pydantic is used for validation and serialisation at every
data boundary; durations are milliseconds throughout.
"""

from __future__ import annotations

import random
import string
import time
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, model_validator

Sender = Literal["user", "ai"]

MessageStatus = Literal["sending", "sent", "error"]

MessageType = Literal[
    "text",
    "emoji",
    "voice",
    "quote",
    "inner_voice",
    "essay",
    "system",
    "narrator",
]

VoiceStyle = Literal["cute", "serious", "humorous", "gentle", "energetic"]

Gender = Literal["male", "female", "other"]

ViolationType = Literal[
    "length_violation",
    "sentence_violation",
    "format_violation",
    "keyword_violation",
    "repetition_violation",
]

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_id(prefix: str, rng: random.Random | None = None) -> str:
    """<prefix>_<epoch ms>_<9 base36 chars>"""
    rng = rng or random
    suffix = "".join(rng.choices(_ID_ALPHABET, k=9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def new_message_id(rng: random.Random | None = None) -> str:
    return new_id("msg", rng)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

class Segment(BaseModel):
    """One parsed, typed unit of a reply destined for independent display."""

    id: str = Field(default_factory=new_message_id)
    content: str
    sender: Sender = "ai"
    character_id: str = ""
    timestamp: datetime = Field(default_factory=_utcnow)
    status: MessageStatus = "sent"
    message_type: MessageType = "text"
    original_sender: str = ""
    should_retract: bool = False
    retract_delay: float | None = None  # ms; only set when should_retract
    display_delay: float = 0.0  # ms, relative to the previous segment

    @model_validator(mode="after")
    def _check_retraction(self) -> Segment:
        if self.should_retract and self.retract_delay is None:
            raise ValueError("retract_delay is required when should_retract is set")
        if not self.should_retract and self.retract_delay is not None:
            raise ValueError("retract_delay must be empty when should_retract is not set")
        return self


class ChatTurn(BaseModel):
    """One {role, content} entry sent to a chat-completion endpoint."""

    role: Literal["system", "user", "assistant"]
    content: str


# ---------------------------------------------------------------------------
# Similarity / rewriting
# ---------------------------------------------------------------------------

class SimilarityResult(BaseModel):
    similarity: float = Field(ge=0.0, le=1.0)
    is_repetitive: bool
    matched_text: str | None = None  # present only when repetitive


class SimilarityConfig(BaseModel):
    threshold: float = 0.7
    lookback_count: int = 5
    min_length: int = 10


class RewriteConfig(BaseModel):
    enable_emojis: bool = True
    enable_tone_words: bool = True
    enable_structure: bool = True
    randomness: float = Field(default=0.8, ge=0.0, le=1.0)


# ---------------------------------------------------------------------------
# Processing / display configuration
# ---------------------------------------------------------------------------

class LengthControlConfig(BaseModel):
    max_characters: int = 50
    max_sentences: int = 2
    max_characters_per_sentence: int = 50
    enable_strict_mode: bool = True


class StyleConfig(BaseModel):
    """Reply style switches. Chances are product-tuning defaults."""

    use_emoji: bool = True
    use_tone_words: bool = True
    max_sentences: int = 2
    conversational_style: bool = True
    character_consistency: bool = True
    tone_word_chance: float = Field(default=0.7, ge=0.0, le=1.0)
    emoji_chance: float = Field(default=0.6, ge=0.0, le=1.0)


class SplitterOptions(BaseModel):
    base_delay: float = 200
    random_delay: float = 400
    retract_delay: float = 1000
    retract_random_delay: float = 1000
    typing_duration: float = 800


class ViolationStats(BaseModel):
    """Per-processor tally, independent from the shared compliance ledger."""

    length_violations: int = 0
    sentence_violations: int = 0
    total_violations: int = 0


class ComplianceStats(BaseModel):
    length_violations: int = 0
    sentence_violations: int = 0
    format_violations: int = 0
    keyword_violations: int = 0
    repetition_violations: int = 0
    total_violations: int = 0
    last_violation_time: datetime = Field(default_factory=_utcnow)
    prompt_strength_level: int = Field(default=1, ge=1, le=5)


# ---------------------------------------------------------------------------
# Characters, prompts, API configuration
# ---------------------------------------------------------------------------

class Character(BaseModel):
    id: str
    name: str
    gender: Gender = "other"
    likes: list[str] = Field(default_factory=list)
    dislikes: list[str] = Field(default_factory=list)
    background: str = ""
    personality: str | None = None
    voice_style: VoiceStyle = "gentle"
    avatar: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class GeneratedCharacter(BaseModel):
    """Character fields produced by the character generator LLM call."""

    name: str = Field(min_length=1, max_length=20)
    gender: Gender
    likes: str = Field(min_length=10, max_length=100)
    dislikes: str = Field(min_length=10, max_length=100)
    background: str = Field(min_length=50, max_length=500)
    voice_style: VoiceStyle = Field(alias="voiceStyle")

    model_config = {"populate_by_name": True}


class GlobalPrompt(BaseModel):
    id: str
    name: str
    content: str
    is_active: bool = True
    type: Literal["system", "personality", "style", "custom"] = "custom"
    priority: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class APIConfig(BaseModel):
    id: str = ""
    name: str
    base_url: str
    api_key: str
    model: str
    temperature: float = 0.7
    max_tokens: int = 2000
    is_default: bool = False
    created_at: datetime = Field(default_factory=_utcnow)


class AppSettings(BaseModel):
    theme: Literal["light", "dark", "auto"] = "light"
    language: Literal["zh-CN", "en-US"] = "zh-CN"
    enable_animations: bool = True
    enable_sounds: bool = True
    default_api_config_id: str | None = None


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------

class Conversation(BaseModel):
    """Stored chat history with one character, newest conversations first."""

    id: str
    character_id: str
    messages: list[ChatTurn] = Field(default_factory=list)
    last_message_at: datetime = Field(default_factory=_utcnow)
    title: str | None = None
