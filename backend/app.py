import os
from collections import OrderedDict
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from backend.routes import router
from companion_chat.compliance import ComplianceMonitor
from companion_chat.storage import KeyValueStore
from companion_chat.tasks import BackgroundTasks

load_dotenv(Path(__file__).parent.parent / ".env")

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"
DEFAULT_MAX_SESSIONS = 256


def create_app(data_dir: Path | None = None, max_sessions: int | None = None) -> FastAPI:
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    store = KeyValueStore(resolved)

    app = FastAPI(title="Companion Chat")
    app.state.store = store
    app.state.monitor = ComplianceMonitor(store)
    app.state.tasks = BackgroundTasks()
    # one ResponseProcessor per session id, least recently used evicted first
    app.state.processors = OrderedDict()
    app.state.max_sessions = max_sessions or int(os.getenv("MAX_SESSIONS", DEFAULT_MAX_SESSIONS))
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
