"""Tests for companion_chat.models validation rules."""

import random
import re

import pytest
from pydantic import ValidationError

from companion_chat.models import (
    ComplianceStats,
    GeneratedCharacter,
    RewriteConfig,
    Segment,
    new_message_id,
)


# ---------------------------------------------------------------------------
# Segment
# ---------------------------------------------------------------------------

class TestSegment:
    def test_defaults(self) -> None:
        seg = Segment(content="hi")
        assert seg.sender == "ai"
        assert seg.status == "sent"
        assert seg.message_type == "text"
        assert seg.should_retract is False
        assert seg.retract_delay is None
        assert seg.id.startswith("msg_")

    def test_retracting_segment_needs_delay(self) -> None:
        with pytest.raises(ValidationError):
            Segment(content="oops", should_retract=True)

    def test_delay_without_retraction_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Segment(content="oops", retract_delay=100)

    def test_retracting_segment(self) -> None:
        seg = Segment(content="oops", should_retract=True, retract_delay=1500)
        assert seg.retract_delay == 1500

    def test_unknown_message_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Segment(content="x", message_type="sticker")


def test_message_id_format() -> None:
    assert re.fullmatch(r"msg_\d+_[a-z0-9]{9}", new_message_id())


def test_message_id_suffix_seeded() -> None:
    a = new_message_id(random.Random(5)).split("_")[2]
    b = new_message_id(random.Random(5)).split("_")[2]
    assert a == b


# ---------------------------------------------------------------------------
# Configs / stats
# ---------------------------------------------------------------------------

def test_rewrite_randomness_bounds() -> None:
    with pytest.raises(ValidationError):
        RewriteConfig(randomness=1.5)


def test_strength_level_bounds() -> None:
    assert ComplianceStats().prompt_strength_level == 1
    with pytest.raises(ValidationError):
        ComplianceStats(prompt_strength_level=6)


# ---------------------------------------------------------------------------
# GeneratedCharacter
# ---------------------------------------------------------------------------

VALID_CHARACTER = {
    "name": "小雪",
    "gender": "female",
    "likes": "看书，画画，听音乐，在公园里散步",
    "dislikes": "吵闹的环境，不守时的人，辛辣的食物",
    "background": "小雪出生在一个安静的海边小镇，从小就喜欢在图书馆里度过整个下午。"
                  "她梦想成为一名插画师，用画笔记录下身边每一个温暖的瞬间。",
    "voiceStyle": "gentle",
}


class TestGeneratedCharacter:
    def test_accepts_camel_case_alias(self) -> None:
        char = GeneratedCharacter.model_validate(VALID_CHARACTER)
        assert char.voice_style == "gentle"

    def test_accepts_field_name(self) -> None:
        data = {k: v for k, v in VALID_CHARACTER.items() if k != "voiceStyle"}
        char = GeneratedCharacter.model_validate({**data, "voice_style": "cute"})
        assert char.voice_style == "cute"

    def test_short_background_rejected(self) -> None:
        with pytest.raises(ValidationError):
            GeneratedCharacter.model_validate({**VALID_CHARACTER, "background": "太短了"})

    def test_bad_gender_rejected(self) -> None:
        with pytest.raises(ValidationError):
            GeneratedCharacter.model_validate({**VALID_CHARACTER, "gender": "robot"})
