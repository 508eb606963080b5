"""Pydantic request bodies for API endpoints."""

from typing import Literal

from pydantic import BaseModel, Field

from companion_chat.models import APIConfig, Gender, VoiceStyle


class ProcessBody(BaseModel):
    text: str
    session_id: str = "default"
    character_name: str = "角色"
    voice_style: VoiceStyle = "gentle"


class ParseBody(BaseModel):
    text: str
    character_id: str = ""


class SimilarityBody(BaseModel):
    text: str
    recent: list[str] = Field(default_factory=list)
    threshold: float | None = Field(default=None, ge=0, le=1)


class CheckConnectionBody(APIConfig):
    pass


class GenerateCharacterBody(BaseModel):
    description: str
    config: APIConfig


PromptType = Literal["system", "personality", "style", "custom"]


class CreatePrompt(BaseModel):
    name: str
    content: str
    is_active: bool = True
    type: PromptType = "custom"
    priority: int = 0


class UpdatePrompt(BaseModel):
    name: str | None = None
    content: str | None = None
    is_active: bool | None = None
    type: PromptType | None = None
    priority: int | None = None


class CreateCharacter(BaseModel):
    name: str = Field(min_length=1)
    gender: Gender = "other"
    likes: list[str] = Field(default_factory=list)
    dislikes: list[str] = Field(default_factory=list)
    background: str = ""
    personality: str | None = None
    voice_style: VoiceStyle = "gentle"
    avatar: str | None = None


class UpdateCharacter(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    gender: Gender | None = None
    likes: list[str] | None = None
    dislikes: list[str] | None = None
    background: str | None = None
    personality: str | None = None
    voice_style: VoiceStyle | None = None
    avatar: str | None = None


class CreateConversation(BaseModel):
    character_id: str


class ChatBody(BaseModel):
    message: str
    api_config_id: str | None = None
