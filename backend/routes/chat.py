"""Reply processing, markup parsing and similarity endpoints."""

import logging

from fastapi import APIRouter, HTTPException, Request

from companion_chat.models import Character, SimilarityConfig
from companion_chat.pipeline import (
    ResponseProcessor,
    calculate_similarity,
    detect_repetition,
    has_structured_format,
    parse_ai_response,
)

from .models import ParseBody, ProcessBody, SimilarityBody

logger = logging.getLogger(__name__)

router = APIRouter()


def session_processor(request: Request, session_id: str) -> ResponseProcessor:
    """The processor holding ``session_id``'s recent replies.

    At most ``max_sessions`` processors are kept; the least recently used
    one is dropped when a new session would exceed that.
    """
    state = request.app.state
    processors = state.processors
    processor = processors.get(session_id)
    if processor is not None:
        processors.move_to_end(session_id)
        return processor

    processor = ResponseProcessor(monitor=state.monitor, tasks=state.tasks)
    processors[session_id] = processor
    while len(processors) > state.max_sessions:
        evicted, _ = processors.popitem(last=False)
        logger.debug("Evicted processor for session %s", evicted)
    return processor


@router.post("/process")
async def process_reply(body: ProcessBody, request: Request):
    """Run a raw model reply through the per-session processor."""
    processor = session_processor(request, body.session_id)
    character = Character(
        id=body.session_id, name=body.character_name, voice_style=body.voice_style
    )
    text = processor.process(body.text, character)
    # violations are recorded before responding so /compliance reflects them
    await request.app.state.tasks.drain()
    return {
        "text": text,
        "structured": has_structured_format(text),
        "violation_stats": processor.get_violation_stats().model_dump(),
    }


@router.post("/parse")
async def parse_reply(body: ParseBody):
    """Split a reply into display segments ([] when it has no markers)."""
    segments = parse_ai_response(body.text, body.character_id)
    return [s.model_dump(mode="json") for s in segments]


@router.post("/similarity")
async def similarity(body: SimilarityBody):
    """Repetition check of ``text`` against ``recent``, plus pairwise scores."""
    config = SimilarityConfig()
    if body.threshold is not None:
        config = config.model_copy(update={"threshold": body.threshold})
    result = detect_repetition(body.text, body.recent, config)
    return {
        **result.model_dump(),
        "scores": [calculate_similarity(body.text, r) for r in body.recent],
    }


@router.delete("/sessions/{session_id}")
async def drop_session(session_id: str, request: Request):
    """Forget a session's recent replies and violation tally."""
    if request.app.state.processors.pop(session_id, None) is None:
        raise HTTPException(404, "Session not found")
    return {"ok": True}
