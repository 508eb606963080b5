"""Conversation CRUD + chat endpoints."""

from fastapi import APIRouter, HTTPException, Request

from companion_chat import characters, conversations, settings
from companion_chat.llm import ChatLLM, LLMError
from companion_chat.pipeline import ChatSession

from .chat import session_processor
from .models import ChatBody, CreateConversation

router = APIRouter()


@router.get("/conversations")
async def list_conversations(request: Request, character_id: str | None = None):
    """List conversations, newest first, optionally for one character."""
    found = conversations.list_conversations(request.app.state.store, character_id)
    return [c.model_dump(mode="json") for c in found]


@router.post("/conversations", status_code=201)
async def create_conversation(body: CreateConversation, request: Request):
    """Start an empty conversation with a character."""
    store = request.app.state.store
    if not characters.get_character(store, body.character_id):
        raise HTTPException(404, "Character not found")
    return conversations.create_conversation(store, body.character_id).model_dump(mode="json")


@router.get("/conversations/{conversation_id}")
async def get_conversation(conversation_id: str, request: Request):
    """Get a conversation with its full message log."""
    conversation = conversations.get_conversation(request.app.state.store, conversation_id)
    if not conversation:
        raise HTTPException(404, "Conversation not found")
    return conversation.model_dump(mode="json")


@router.delete("/conversations/{conversation_id}")
async def delete_conversation(conversation_id: str, request: Request):
    """Delete a conversation and forget its recent-reply buffer."""
    if not conversations.delete_conversation(request.app.state.store, conversation_id):
        raise HTTPException(404, "Conversation not found")
    request.app.state.processors.pop(conversation_id, None)
    return {"ok": True}


@router.post("/conversations/{conversation_id}/chat")
async def conversation_chat(conversation_id: str, body: ChatBody, request: Request):
    """Send a user message and return the processed reply as display segments.

    Segments carry their display and retraction delays; the client plays
    them back.
    """
    state = request.app.state
    store = state.store
    conversation = conversations.get_conversation(store, conversation_id)
    if not conversation:
        raise HTTPException(404, "Conversation not found")
    character = characters.get_character(store, conversation.character_id)
    if not character:
        raise HTTPException(404, "Character not found")

    if body.api_config_id:
        config = settings.get_api_config(store, body.api_config_id)
        if not config:
            raise HTTPException(404, "API config not found")
    else:
        config = settings.default_api_config(store)
        if not config:
            raise HTTPException(400, "No API config stored")

    session = ChatSession(
        llm=ChatLLM(config),
        character=character,
        processor=session_processor(request, conversation_id),
        store=store,
        conversation_id=conversation_id,
    )
    try:
        raw = await session.send(body.message)
    except LLMError as e:
        raise HTTPException(502, str(e)) from e
    except ValueError as e:
        raise HTTPException(400, str(e)) from e

    plan = session.plan_reply(raw)
    await state.tasks.drain()
    return {
        "text": plan.text,
        "structured": plan.structured,
        "segments": [s.model_dump(mode="json") for s in plan.segments],
    }
