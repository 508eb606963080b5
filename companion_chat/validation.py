"""User-facing validation: API configs and generated character data.

Malformed input is rejected before use with descriptive messages that the
caller shows to the end user.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any
from urllib.parse import urlparse

from pydantic import ValidationError

from companion_chat.llm import LLM
from companion_chat.models import ChatTurn, GeneratedCharacter

logger = logging.getLogger(__name__)


class ValidationFailed(ValueError):
    """Raised with every problem found in a user-supplied configuration."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors


# ── API configuration ────────────────────────────────────


def _is_valid_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_api_config(config: dict[str, Any]) -> list[str]:
    """Return a list of problems; empty when the config is usable."""
    errors: list[str] = []

    if not str(config.get("name") or "").strip():
        errors.append("Configuration name is required")

    base_url = str(config.get("base_url") or "").strip()
    if not base_url:
        errors.append("API base URL is required")
    elif not _is_valid_url(base_url):
        errors.append("API base URL is not a valid URL")

    if not str(config.get("api_key") or "").strip():
        errors.append("API key is required")

    if not str(config.get("model") or "").strip():
        errors.append("Model name is required")

    temperature = config.get("temperature")
    if isinstance(temperature, bool) or not isinstance(temperature, (int, float)) \
            or not 0 <= temperature <= 2:
        errors.append("Temperature must be between 0 and 2")

    max_tokens = config.get("max_tokens")
    if isinstance(max_tokens, bool) or not isinstance(max_tokens, int) \
            or not 1 <= max_tokens <= 4096:
        errors.append("Max tokens must be between 1 and 4096")

    return errors


def require_valid_api_config(config: dict[str, Any]) -> None:
    errors = validate_api_config(config)
    if errors:
        raise ValidationFailed(errors)


# ── Generated characters ─────────────────────────────────

CHARACTER_GENERATOR_PROMPT = """你是一个专业的角色卡生成器。你的任务是根据用户提供的关键词或描述，生成一个完整的角色设定。

【重要】你必须严格按照以下JSON格式输出，不要输出任何其他内容：
{
  "name": "角色名字（2-8个字）",
  "gender": "性别（只能是 male/female/other 之一）",
  "likes": "喜欢的事物（20-60字，用逗号分隔多个项目）",
  "dislikes": "讨厌的事物（20-60字，用逗号分隔多个项目）",
  "background": "背景故事（100-300字的完整描述）",
  "voiceStyle": "说话风格（只能是 cute/serious/humorous/gentle/energetic 之一）"
}

确保生成的内容逻辑自洽，符合角色设定。"""

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def _strip_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [line for line in lines[1:] if not line.strip().startswith("```")]
        cleaned = "\n".join(lines)
    return cleaned


def parse_generated_character(text: str) -> GeneratedCharacter | None:
    """Parse LLM output into a GeneratedCharacter, or None if malformed."""
    cleaned = _strip_fences(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        match = _JSON_OBJECT_RE.search(cleaned)
        if not match:
            return None
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            logger.warning("Character generator output is not valid JSON: %s", e)
            return None
    if not isinstance(data, dict):
        return None
    try:
        return GeneratedCharacter.model_validate(data)
    except ValidationError as e:
        logger.warning("Generated character rejected: %s", e)
        return None


async def generate_character(description: str, llm: LLM) -> GeneratedCharacter:
    """Ask the LLM for a character matching ``description``."""
    if not description.strip():
        raise ValueError("Please enter a character description")

    messages = [
        ChatTurn(role="system", content=CHARACTER_GENERATOR_PROMPT),
        ChatTurn(
            role="user",
            content=f"请根据以下描述生成一个角色：\n\n{description.strip()}\n\n"
                    "记住：必须严格按照JSON格式输出，包含所有必需字段。",
        ),
    ]
    text = await llm(messages)
    if not text.strip():
        raise ValueError("The model returned an empty response")
    character = parse_generated_character(text)
    if character is None:
        raise ValueError("Could not parse the generated character, please retry")
    return character
