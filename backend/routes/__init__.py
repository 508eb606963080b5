"""FastAPI API endpoints under /api.

Endpoint groups: settings (health, app settings, API configs, global prompts,
API config validation, check-connection, character generation), characters,
conversations (CRUD and chat), chat (process, parse, similarity, sessions)
and compliance (stats, report, reset).
"""

from fastapi import APIRouter

from .characters import router as characters_router
from .chat import router as chat_router
from .compliance import router as compliance_router
from .conversations import router as conversations_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(characters_router)
router.include_router(conversations_router)
router.include_router(chat_router)
router.include_router(compliance_router)
