"""Health check and settings endpoints."""

from fastapi import APIRouter, Request

from taleforge.config import get_config, masked, update_config

from .models import UpdateSettings

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings(request: Request):
    """Get the engine config. The API key is masked."""
    return masked(get_config(request.app.state.data_dir))


@router.patch("/settings")
async def update_settings(request: Request, body: UpdateSettings):
    """Update the engine config (partial merge) and rewire the pipeline."""
    # Imported here: backend.app imports this module through backend.routes.
    from backend.app import build_orchestrator

    fields = body.model_dump(exclude_none=True)
    config = update_config(request.app.state.data_dir, fields)
    request.app.state.service.orchestrator = build_orchestrator(
        config, request.app.state.llm_override
    )
    return masked(config)
