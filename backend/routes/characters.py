"""Character CRUD endpoints."""

from fastapi import APIRouter, HTTPException, Request

from companion_chat import characters

from .models import CreateCharacter, UpdateCharacter

router = APIRouter()


@router.get("/characters")
async def list_characters(request: Request):
    """List all characters."""
    return [c.model_dump(mode="json") for c in characters.list_characters(request.app.state.store)]


@router.post("/characters", status_code=201)
async def create_character(body: CreateCharacter, request: Request):
    """Create a new character."""
    character = characters.add_character(request.app.state.store, body.model_dump())
    return character.model_dump(mode="json")


@router.get("/characters/{character_id}")
async def get_character(character_id: str, request: Request):
    """Get a single character by id."""
    character = characters.get_character(request.app.state.store, character_id)
    if not character:
        raise HTTPException(404, "Character not found")
    return character.model_dump(mode="json")


@router.patch("/characters/{character_id}")
async def update_character(character_id: str, body: UpdateCharacter, request: Request):
    """Update character fields."""
    fields = body.model_dump(exclude_none=True)
    character = characters.update_character(request.app.state.store, character_id, fields)
    if not character:
        raise HTTPException(404, "Character not found")
    return character.model_dump(mode="json")


@router.delete("/characters/{character_id}")
async def delete_character(character_id: str, request: Request):
    """Remove a character."""
    if not characters.delete_character(request.app.state.store, character_id):
        raise HTTPException(404, "Character not found")
    return {"ok": True}
