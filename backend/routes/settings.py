"""Health check, app settings, API configs, global prompts, connection check
and character generation endpoints."""

from fastapi import APIRouter, HTTPException, Request
from pydantic import ValidationError

from companion_chat import settings
from companion_chat.llm import ChatLLM, LLMError, check_connection
from companion_chat.prompts import (
    add_global_prompt,
    delete_global_prompt,
    load_global_prompts,
    update_global_prompt,
)
from companion_chat.validation import ValidationFailed, generate_character, require_valid_api_config

from .models import CheckConnectionBody, CreatePrompt, GenerateCharacterBody, UpdatePrompt

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


# ── app settings ───────────────────────────────────────────


@router.get("/settings")
async def get_settings(request: Request):
    """App-wide preferences (theme, language, default API config)."""
    return settings.get_app_settings(request.app.state.store).model_dump()


@router.patch("/settings")
async def update_settings(body: dict, request: Request):
    """Update app settings (partial merge)."""
    store = request.app.state.store
    config_id = body.get("default_api_config_id")
    if config_id is not None and settings.get_api_config(store, config_id) is None:
        raise HTTPException(422, "Unknown API config")
    try:
        return settings.update_app_settings(store, body).model_dump()
    except ValidationError as e:
        raise HTTPException(422, str(e)) from e


# ── API configs ────────────────────────────────────────────


@router.get("/api-configs")
async def list_api_configs(request: Request):
    """Stored API configurations."""
    return [c.model_dump(mode="json") for c in settings.list_api_configs(request.app.state.store)]


@router.post("/api-configs", status_code=201)
async def create_api_config(body: dict, request: Request):
    """Validate and store an API configuration."""
    try:
        config = settings.add_api_config(request.app.state.store, body)
    except ValidationFailed as e:
        raise HTTPException(422, e.errors) from e
    return config.model_dump(mode="json")


@router.patch("/api-configs/{config_id}")
async def update_api_config(config_id: str, body: dict, request: Request):
    """Update an API configuration (partial merge, revalidated)."""
    try:
        config = settings.update_api_config(request.app.state.store, config_id, body)
    except ValidationFailed as e:
        raise HTTPException(422, e.errors) from e
    if config is None:
        raise HTTPException(404, "API config not found")
    return config.model_dump(mode="json")


@router.delete("/api-configs/{config_id}")
async def delete_api_config(config_id: str, request: Request):
    """Remove an API configuration."""
    if not settings.delete_api_config(request.app.state.store, config_id):
        raise HTTPException(404, "API config not found")
    return {"ok": True}


# ── global prompts ─────────────────────────────────────────


@router.get("/prompts")
async def list_prompts(request: Request):
    """Stored global prompts (built-ins when none are stored)."""
    prompts = load_global_prompts(request.app.state.store)
    return [p.model_dump(mode="json") for p in prompts]


@router.post("/prompts", status_code=201)
async def create_prompt(body: CreatePrompt, request: Request):
    """Add a global prompt."""
    prompt = add_global_prompt(request.app.state.store, body.model_dump())
    return prompt.model_dump(mode="json")


@router.patch("/prompts/{prompt_id}")
async def update_prompt(prompt_id: str, body: UpdatePrompt, request: Request):
    """Edit a global prompt's text, activation or priority."""
    fields = body.model_dump(exclude_none=True)
    prompt = update_global_prompt(request.app.state.store, prompt_id, fields)
    if prompt is None:
        raise HTTPException(404, "Prompt not found")
    return prompt.model_dump(mode="json")


@router.delete("/prompts/{prompt_id}")
async def delete_prompt(prompt_id: str, request: Request):
    """Remove a global prompt."""
    if not delete_global_prompt(request.app.state.store, prompt_id):
        raise HTTPException(404, "Prompt not found")
    return {"ok": True}


# ── provider checks ────────────────────────────────────────


@router.post("/validate/api-config")
async def validate_api_config(body: dict):
    """Check an API configuration without contacting the provider."""
    try:
        require_valid_api_config(body)
    except ValidationFailed as e:
        raise HTTPException(422, e.errors) from e
    return {"ok": True}


@router.post("/check-connection")
async def check_connection_endpoint(body: CheckConnectionBody):
    """Send a tiny completion request to the configured provider."""
    ok, error = await check_connection(body)
    return {"ok": ok, "error": error}


@router.post("/generate-character")
async def generate_character_endpoint(body: GenerateCharacterBody):
    """Ask the configured model for a character matching a description."""
    try:
        require_valid_api_config(body.config.model_dump())
    except ValidationFailed as e:
        raise HTTPException(422, e.errors) from e
    try:
        character = await generate_character(body.description, ChatLLM(body.config))
    except LLMError as e:
        raise HTTPException(502, str(e)) from e
    except ValueError as e:
        raise HTTPException(422, str(e)) from e
    return character.model_dump(by_alias=True)
