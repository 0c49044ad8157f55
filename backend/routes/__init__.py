"""FastAPI API endpoints under /api.

Endpoint groups: stories (play, stats, lifecycle, export, admin) and
settings (health, LLM connection config). All story endpoints go through the
StoryService stored on app.state.service.
"""

from fastapi import APIRouter

from .settings import router as settings_router
from .stories import router as stories_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(stories_router)
