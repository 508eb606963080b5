"""Reply similarity scoring and repetition detection.

Texts are normalised first (emoji, clause-final modal particles and
punctuation stripped, whitespace collapsed, lowercased) so that cosmetic
variation such as 啊→呀 or a swapped emoji does not hide a repeated reply.

Scores:
  primary  0.7 × distinct-character Jaccard + 0.3 × length ratio
  bigram   Jaccard over character 2-grams
  combined 0.6 × primary + 0.4 × bigram   (used by detect_repetition)
"""

from __future__ import annotations

import re

from companion_chat.models import SimilarityConfig, SimilarityResult

DEFAULT_SIMILARITY_CONFIG = SimilarityConfig()

EMOJI_RE = re.compile(
    "[\U0001F600-\U0001F64F\U0001F300-\U0001F5FF\U0001F680-\U0001F6FF"
    "\U0001F1E0-\U0001F1FF☀-⛿✀-➿]"
)

_PUNCTUATION = "，。！？、；：“”‘’（）【】《》〈〉「」『』〔〕〖〗〘〙〚〛～,.!?;:\"'()\\[\\]{}<>~"
_PUNCT_RE = re.compile(f"[{_PUNCTUATION}]")

# modal particles directly before punctuation, whitespace or the end
_FINAL_PARTICLE_RE = re.compile(
    f"[呢啊呀哦喔啦嘛吧哟咯嘞呐]+(?=[{_PUNCTUATION}\\s]|$)"
)

_WS_RE = re.compile(r"\s+")


def preprocess_text(text: str) -> str:
    text = EMOJI_RE.sub("", text)
    text = _FINAL_PARTICLE_RE.sub("", text)
    text = _PUNCT_RE.sub("", text)
    text = _WS_RE.sub(" ", text)
    return text.lower().strip()


def calculate_similarity(text1: str, text2: str) -> float:
    """Character-set Jaccard (70%) plus length ratio (30%), 3 decimals."""
    if text1 and text1 == text2:
        return 1.0
    p1 = preprocess_text(text1)
    p2 = preprocess_text(text2)
    if not p1 or not p2:
        return 0.0
    if p1 == p2:
        return 1.0

    set1, set2 = set(p1), set(p2)
    jaccard = len(set1 & set2) / len(set1 | set2)
    length_ratio = min(len(p1), len(p2)) / max(len(p1), len(p2))
    return round(jaccard * 0.7 + length_ratio * 0.3, 3)


def _ngrams(text: str, n: int) -> set[str]:
    return {text[i:i + n] for i in range(len(text) - n + 1)}


def calculate_ngram_similarity(text1: str, text2: str, n: int = 2) -> float:
    if text1 and text1 == text2:
        return 1.0
    p1 = preprocess_text(text1)
    p2 = preprocess_text(text2)
    if not p1 or not p2:
        return 0.0
    if p1 == p2:
        return 1.0

    grams1, grams2 = _ngrams(p1, n), _ngrams(p2, n)
    union = grams1 | grams2
    if not union:
        return 0.0
    return len(grams1 & grams2) / len(union)


def combined_similarity(text1: str, text2: str) -> float:
    score = calculate_similarity(text1, text2) * 0.6 \
        + calculate_ngram_similarity(text1, text2, 2) * 0.4
    return min(1.0, round(score, 3))


def detect_repetition(
    new_text: str,
    recent_texts: list[str],
    config: SimilarityConfig = DEFAULT_SIMILARITY_CONFIG,
) -> SimilarityResult:
    """Compare ``new_text`` with the last ``lookback_count`` texts.

    Texts shorter than ``min_length`` (measured on the stripped raw text)
    are never compared. The window is scanned newest first; the highest
    score decides, and the text that produced it is reported when the
    result is repetitive.
    """
    if len(new_text.strip()) < config.min_length:
        return SimilarityResult(similarity=0.0, is_repetitive=False)

    window = recent_texts[-config.lookback_count:] if config.lookback_count > 0 else []
    max_similarity = 0.0
    matched: str | None = None

    for recent in reversed(window):
        if len(recent.strip()) < config.min_length:
            continue
        score = combined_similarity(new_text, recent)
        if score > max_similarity:
            max_similarity = score
            matched = recent

    repetitive = max_similarity >= config.threshold
    return SimilarityResult(
        similarity=round(max_similarity, 3),
        is_repetitive=repetitive,
        matched_text=matched if repetitive else None,
    )


def batch_detect_repetition(
    texts: list[str], config: SimilarityConfig = DEFAULT_SIMILARITY_CONFIG
) -> list[SimilarityResult]:
    """Check each text against the ones before it."""
    return [detect_repetition(text, texts[:i], config) for i, text in enumerate(texts)]


def get_repetition_stats(results: list[SimilarityResult]) -> dict[str, float]:
    total = len(results)
    repetitive = sum(1 for r in results if r.is_repetitive)
    scores = [r.similarity for r in results]
    return {
        "total_count": total,
        "repetitive_count": repetitive,
        "repetition_rate": repetitive / total if total else 0.0,
        "average_similarity": sum(scores) / total if total else 0.0,
        "max_similarity": max(scores) if scores else 0.0,
    }
