"""Rule-based rewriting of replies flagged as repetitive.

Categories are tried in priority order (greetings, confirmations, thanks,
tone words, emojis). The first category with a matching rule rewrites the
matched span with one alternative phrasing and the call ends there. When no
category matches, sentence-final structure templates are tried instead.
Rewriting is single-pass and total: unmatched text comes back unchanged.
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass

from companion_chat.models import RewriteConfig

DEFAULT_REWRITE_CONFIG = RewriteConfig()

# Applied to randomness once per category already present in recent replies
OVERUSE_DAMPING = 0.7


@dataclass(frozen=True)
class RewriteRule:
    pattern: str
    replacements: tuple[str, ...]
    weight: int = 0
    replace_all: bool = False


REWRITE_RULES: dict[str, tuple[RewriteRule, ...]] = {
    "greetings": (
        RewriteRule(
            r"你好啊?[！!]*[😊😄😃🙂]*$",
            ("嗨~", "哈喽！", "嘿嘿，你好呀！", "你来啦~", "见到你真开心！", "嗨嗨！", "hello~"),
            weight=10,
        ),
        RewriteRule(
            r"很高兴认识你[呢啊哦]*[！!]*[😊😄😃🙂🥰]*",
            ("认识你真好呢！", "幸会幸会！", "开心认识你~", "见到你真棒！",
             "认识你很开心呢！", "能认识你真不错！", "很开心遇见你！"),
            weight=10,
        ),
    ),
    "confirmations": (
        RewriteRule(
            r"好的[！!]*[😊😄😃🙂]*$",
            ("没问题！", "可以呀~", "行哦！", "OK的！", "当然可以！", "好呀！", "嗯嗯！"),
            weight=8,
        ),
        RewriteRule(
            r"知道了[！!]*[😊😄😃🙂]*$",
            ("明白啦！", "了解了！", "收到~", "懂了懂了！", "我知道啦！", "明白呢！", "get到了！"),
            weight=8,
        ),
    ),
    "thanks": (
        RewriteRule(
            r"谢谢[你呀啊]*[！!]*[😊😄😃🙂🥰]*",
            ("感谢你呢！", "太感谢了！", "谢谢啦~", "多谢多谢！", "感激不尽！", "谢谢你哦！", "非常感谢！"),
            weight=7,
        ),
    ),
    "tone_words": (
        RewriteRule(r"呢[！!]*$", ("呀！", "哦！", "啊！", "~", "！", "呢~"), weight=3),
        RewriteRule(r"啊[！!]*$", ("呢！", "呀！", "哦！", "~", "！", "啊~"), weight=3),
        RewriteRule(r"哦[！!]*$", ("呢！", "呀！", "啊！", "~", "！", "哦~"), weight=3),
    ),
    "emojis": (
        RewriteRule("😊", ("😄", "😃", "🙂", "🥰", "😌", "✨"), weight=2, replace_all=True),
        RewriteRule("😄", ("😊", "😃", "🙂", "🥰", "😆", "🌟"), weight=2, replace_all=True),
        RewriteRule("🙂", ("😊", "😄", "😃", "🥰", "😌", "💫"), weight=2, replace_all=True),
    ),
}

CATEGORY_ORDER = ("greetings", "confirmations", "thanks", "tone_words", "emojis")

STRUCTURE_TEMPLATES: tuple[tuple[str, tuple[str, ...]], ...] = (
    (r"^(.+)呢[！!]*$", ("{0}哦！", "{0}呀~", "{0}啊！", "嗯嗯，{0}！", "是的，{0}！")),
    (r"^(.+?)[！!]+$", ("{0}呢~", "{0}哦！", "{0}呀！", "嗯，{0}！", "对呀，{0}！")),
)

# markers used to spot categories in recent replies
_USAGE_MARKERS: dict[str, tuple[str, ...]] = {
    "greetings": ("你好", "嗨", "哈喽"),
    "confirmations": ("好的", "没问题", "可以"),
    "tone_words": ("呢", "啊", "哦"),
}


def pick_replacement(replacements: tuple[str, ...], randomness: float,
                     rng: random.Random | None = None) -> str:
    """Uniform pick with probability ``randomness``; else one of the first three."""
    rng = rng or random
    if randomness >= rng.random():
        return rng.choice(replacements)
    return rng.choice(replacements[:3])


def _enabled_categories(config: RewriteConfig) -> list[str]:
    categories = []
    for name in CATEGORY_ORDER:
        if name == "tone_words" and not config.enable_tone_words:
            continue
        if name == "emojis" and not config.enable_emojis:
            continue
        categories.append(name)
    return categories


def _apply_category(text: str, rules: tuple[RewriteRule, ...], config: RewriteConfig,
                    rng: random.Random | None) -> str | None:
    for rule in sorted(rules, key=lambda r: r.weight, reverse=True):
        pattern = re.compile(rule.pattern)
        if pattern.search(text):
            replacement = pick_replacement(rule.replacements, config.randomness, rng)
            return pattern.sub(lambda _m: replacement, text, count=0 if rule.replace_all else 1)
    return None


def _apply_structure(text: str, config: RewriteConfig, rng: random.Random | None) -> str:
    if not config.enable_structure:
        return text
    for pattern, templates in STRUCTURE_TEMPLATES:
        match = re.match(pattern, text)
        if match:
            template = pick_replacement(templates, config.randomness, rng)
            return template.format(match.group(1))
    return text


def rewrite_response(text: str, config: RewriteConfig = DEFAULT_REWRITE_CONFIG,
                     rng: random.Random | None = None) -> str:
    for category in _enabled_categories(config):
        rewritten = _apply_category(text, REWRITE_RULES[category], config, rng)
        if rewritten is not None:
            return rewritten
    return _apply_structure(text, config, rng)


def used_categories(recent_responses: list[str]) -> set[str]:
    used: set[str] = set()
    for response in recent_responses:
        for category, markers in _USAGE_MARKERS.items():
            if any(m in response for m in markers):
                used.add(category)
    return used


def intelligent_rewrite(text: str, recent_responses: list[str],
                        config: RewriteConfig = DEFAULT_REWRITE_CONFIG,
                        rng: random.Random | None = None) -> str:
    """Rewrite with randomness damped for categories already used recently.

    Lower randomness keeps the pick among the most common alternatives so
    the same substitution does not keep oscillating.
    """
    randomness = config.randomness
    for _ in used_categories(recent_responses):
        randomness *= OVERUSE_DAMPING
    adjusted = config.model_copy(update={"randomness": randomness})
    return rewrite_response(text, adjusted, rng)


def batch_rewrite_responses(responses: list[str],
                            config: RewriteConfig = DEFAULT_REWRITE_CONFIG,
                            rng: random.Random | None = None) -> list[str]:
    return [rewrite_response(r, config, rng) for r in responses]


def get_rewrite_stats(original: str, rewritten: str) -> dict[str, object]:
    if original == rewritten:
        return {"is_rewritten": False, "changed_words": 0, "similarity": 1.0}

    original_words = original.split()
    rewritten_words = rewritten.split()
    longest = max(len(original_words), len(rewritten_words), 1)
    changed = sum(
        1 for i in range(longest)
        if (original_words[i] if i < len(original_words) else None)
        != (rewritten_words[i] if i < len(rewritten_words) else None)
    )
    return {
        "is_rewritten": True,
        "changed_words": changed,
        "similarity": round(1 - changed / longest, 3),
    }
