"""Prompt material: built-in global prompts, voice-style tables and the
Handlebars-rendered character system prompt."""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import pybars
from pydantic import ValidationError

from companion_chat.models import Character, GlobalPrompt, new_id
from companion_chat.storage import STORAGE_KEYS, KeyValueStore

logger = logging.getLogger(__name__)

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Voice-style tables ───────────────────────────────────

TONE_WORDS: dict[str, list[str]] = {
    "cute": ["呢", "呀", "啦", "喔", "哦", "嘛", "呐", "哟", "咯", "嘞"],
    "gentle": ["呢", "哦", "啊", "呀", "嗯", "吧", "呐", "哟"],
    "serious": ["。", "呢", "吧", "啊", "嗯"],
    "humorous": ["哈哈", "嘿嘿", "呀", "啦", "喔", "哟", "咯", "嘞"],
    "energetic": ["呀", "啦", "哦", "呢", "嘛", "咯", "哟", "嘞", "呐"],
}

EMOJI_SETS: dict[str, list[str]] = {
    "cute": ["😊", "😄", "😆", "🥰", "😘", "😋", "🤗", "😇", "🌸", "💕", "✨", "🎀"],
    "gentle": ["😊", "😌", "🙂", "😇", "🌸", "🌺", "🍃", "💫", "✨"],
    "serious": ["😐", "🤔", "😑", "😶", "🙄"],
    "humorous": ["😄", "😆", "🤣", "😂", "😜", "😝", "🤪", "😎", "🤭", "😏"],
    "energetic": ["😄", "😆", "🤩", "😍", "🥳", "🎉", "⚡", "🔥", "💪", "🌟"],
}


def tone_words_for(voice_style: str) -> list[str]:
    """Unknown styles fall back to the gentle table."""
    return TONE_WORDS.get(voice_style, TONE_WORDS["gentle"])


def emojis_for(voice_style: str) -> list[str]:
    return EMOJI_SETS.get(voice_style, EMOJI_SETS["gentle"])


def random_tone_word(voice_style: str, rng: random.Random | None = None) -> str:
    return (rng or random).choice(tone_words_for(voice_style))


def random_emoji(voice_style: str, rng: random.Random | None = None) -> str:
    return (rng or random).choice(emojis_for(voice_style))


# ── Built-in global prompts ──────────────────────────────

STRICT_LENGTH_CONTROL_ID = "strict_length_control"

STRICT_LENGTH_CONTROL_BASE = """【强制要求】回复格式严格限制：
➤ 【重要】回复必须是1-2句话
➤ 【重要】每句话不超过50个字符
➤ 【禁止】使用"首先"、"第一"、"以下"、"然后"、"接下来"等词
➤ 【禁止】使用换行符和冒号
➤ 保持回复简短，像真人聊天一样"""

_BUILTIN_PROMPTS: list[dict[str, Any]] = [
    {
        "id": "conversational_style",
        "name": "口语化对话风格",
        "type": "style",
        "priority": 95,
        "content": (
            "请使用自然的口语化方式回复，就像真人聊天一样。要求：\n"
            "1. 使用\"呢\"、\"呀\"、\"啦\"、\"哦\"等语气词让对话更生动\n"
            "2. 适当使用emoji表情符号增加亲和力\n"
            "3. 模仿真人聊天的节奏，不要过于正式\n"
            "4. 保持角色性格的一致性\n"
            "注意：必须严格遵守长度限制！"
        ),
    },
    {
        "id": "emoji_enhancement",
        "name": "表情符号增强",
        "type": "style",
        "priority": 80,
        "content": (
            "在回复中适当使用表情符号：\n"
            "- 开心时用😊😄🥰等\n"
            "- 思考时用🤔💭等\n"
            "- 惊讶时用😮😯等\n"
            "- 但不要过度使用，保持自然"
        ),
    },
    {
        "id": STRICT_LENGTH_CONTROL_ID,
        "name": "严格回复长度控制",
        "type": "system",
        "priority": 100,
        "content": STRICT_LENGTH_CONTROL_BASE + "\n请严格遵守以上格式要求！违反此规则将被强制修正！",
    },
    {
        "id": "personality_consistency",
        "name": "性格一致性",
        "type": "personality",
        "priority": 95,
        "content": (
            "始终保持角色设定的性格特征：\n"
            "- 根据角色的voiceStyle调整语气\n"
            "- 可爱型：多用\"呢\"、\"呀\"、\"啦\"等语气词\n"
            "- 温柔型：语气温和，多用\"哦\"、\"呢\"\n"
            "- 严肃型：语气正式一些，少用语气词\n"
            "- 幽默型：可以开玩笑，用\"哈哈\"、\"嘿嘿\"\n"
            "- 活泼型：语气活跃，多用感叹号和表情"
        ),
    },
    {
        "id": "natural_rhythm",
        "name": "自然对话节奏",
        "type": "style",
        "priority": 85,
        "content": (
            "模仿真人聊天的自然节奏：\n"
            "- 不要立即回答所有问题\n"
            "- 可以先回应情感，再回答具体内容\n"
            "- 适当使用\"嗯\"、\"哦\"等回应词\n"
            "- 偶尔可以反问或表达好奇"
        ),
    },
]


def builtin_global_prompts() -> list[GlobalPrompt]:
    """Fresh copies of the built-in prompts (safe to mutate)."""
    return [GlobalPrompt(**p) for p in _BUILTIN_PROMPTS]


def load_global_prompts(store: KeyValueStore) -> list[GlobalPrompt]:
    """Stored prompts, seeded with the built-ins when nothing is stored."""
    raw = store.get(STORAGE_KEYS["global_prompts"])
    if raw is None:
        return builtin_global_prompts()
    try:
        return [GlobalPrompt.model_validate(p) for p in raw]
    except ValidationError as e:
        logger.warning("Stored global prompts are invalid, using built-ins: %s", e)
        return builtin_global_prompts()


def save_global_prompts(store: KeyValueStore, prompts: list[GlobalPrompt]) -> bool:
    return store.set_models(STORAGE_KEYS["global_prompts"], prompts)


# Editing works on the effective list, so the first edit also persists the
# built-ins it was seeded from.

_PROMPT_READ_ONLY = ("id", "created_at", "updated_at")


def add_global_prompt(store: KeyValueStore, fields: dict[str, Any]) -> GlobalPrompt:
    data = {k: v for k, v in fields.items() if k not in _PROMPT_READ_ONLY}
    prompt = GlobalPrompt.model_validate({**data, "id": new_id("prompt")})
    prompts = load_global_prompts(store)
    prompts.append(prompt)
    save_global_prompts(store, prompts)
    return prompt


def update_global_prompt(store: KeyValueStore, prompt_id: str,
                         fields: dict[str, Any]) -> GlobalPrompt | None:
    """Merge fields into a prompt; None if no prompt has that id.

    Raises pydantic's ValidationError for invalid field values.
    """
    prompts = load_global_prompts(store)
    for i, prompt in enumerate(prompts):
        if prompt.id == prompt_id:
            data = {k: v for k, v in fields.items() if k not in _PROMPT_READ_ONLY}
            updated = GlobalPrompt.model_validate({
                **prompt.model_dump(), **data, "updated_at": datetime.now(timezone.utc),
            })
            prompts[i] = updated
            save_global_prompts(store, prompts)
            return updated
    return None


def delete_global_prompt(store: KeyValueStore, prompt_id: str) -> bool:
    prompts = load_global_prompts(store)
    remaining = [p for p in prompts if p.id != prompt_id]
    if len(remaining) == len(prompts):
        return False
    save_global_prompts(store, remaining)
    return True


def active_prompt_text(prompts: list[GlobalPrompt]) -> str:
    """Join active prompts, highest priority first."""
    active = [p for p in prompts if p.is_active and p.content.strip()]
    active.sort(key=lambda p: p.priority, reverse=True)
    return "\n\n".join(p.content.strip() for p in active)


# ── Handlebars rendering ─────────────────────────────────


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


CHARACTER_PROMPT_TEMPLATE = """你现在是{{{name}}}，性别{{{gender}}}{{#if likes}}，喜欢{{{likes}}}{{/if}}{{#if dislikes}}，讨厌{{{dislikes}}}{{/if}}。
{{#if background}}
背景故事：{{{background}}}
{{/if}}{{#if personality}}
性格特征：{{{personality}}}
{{/if}}
请完全沉浸在这个角色中，用{{{voice}}}的语气与我对话。
保持角色一致性，不要跳出角色设定。"""

_GENDER_LABELS = {"male": "男", "female": "女", "other": "其他"}

_VOICE_LABELS = {
    "cute": "可爱",
    "serious": "严肃",
    "humorous": "幽默",
    "gentle": "温柔",
    "energetic": "活泼",
}


def character_context(character: Character) -> dict[str, Any]:
    """Template variables for CHARACTER_PROMPT_TEMPLATE."""
    return {
        "name": character.name,
        "gender": _GENDER_LABELS.get(character.gender, "其他"),
        "likes": "、".join(character.likes),
        "dislikes": "、".join(character.dislikes),
        "background": character.background.strip(),
        "personality": (character.personality or "").strip(),
        "voice": _VOICE_LABELS.get(character.voice_style, "温柔"),
    }


def build_system_prompt(
    character: Character,
    global_prompts: list[GlobalPrompt] | None = None,
    template: str = CHARACTER_PROMPT_TEMPLATE,
) -> str:
    """Active global prompts followed by the rendered character prompt."""
    parts: list[str] = []
    if global_prompts:
        prefix = active_prompt_text(global_prompts)
        if prefix:
            parts.append(prefix)
    parts.append(render_prompt(template, character_context(character)))
    return "\n\n".join(parts)
