"""Reply pipeline: from raw model output to timed UI delivery.

For one assistant reply:
  1. ResponseProcessor: plain replies are capped at 50 characters / 2
     sentences, discourse markers and colons removed, a tone word and emoji
     optionally added; structured replies only get whitespace normalisation.
     Near-duplicates of the last 10 replies are rewritten. Violations go to
     the ComplianceMonitor in the background.
  2. parse_ai_response: inline markers split the reply into typed segments
     (text, emoji, voice, quote, inner_voice, essay, system, narrator,
     retracted text). No markers → [] and the reply is shown as one message.
  3. MessageDisplaySequencer: typing indicator, per-segment delays,
     scheduled retractions; cancelable.

ChatSession ties the three together with the LLM client and the character
system prompt.

Marker syntax:
  [Name|Text]   <Name|EmojiId>   [Name|语音|Duration|Text]   {Name|Text}
  [Name|引用|QuotedName|QuotedText|NewText]   【心声|Name|Thought】
  「随笔|Name|Essay」   <系统>Text</系统>   <旁白>Text</旁白>
"""

from companion_chat.conversations import conversation_title  # noqa: F401

from .display import MessageDisplaySequencer  # noqa: F401
from .processor import ResponseProcessor, process_ai_response  # noqa: F401
from .rewriter import intelligent_rewrite, rewrite_response  # noqa: F401
from .segments import (  # noqa: F401
    has_structured_format,
    parse_ai_response,
    segments_to_text,
)
from .session import ChatSession, ReplyPlan  # noqa: F401
from .similarity import (  # noqa: F401
    calculate_ngram_similarity,
    calculate_similarity,
    detect_repetition,
)
