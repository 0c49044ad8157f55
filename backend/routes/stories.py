"""Story CRUD, turn (continue), stats, lifecycle, export and admin endpoints."""

import re
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import ValidationError

from taleforge.models import StoryConfig
from taleforge.service import EmptyInputError, StoryNotFoundError, StoryService, story_stats

from .models import ContinueBody, CreateStory

router = APIRouter()


def get_service(request: Request) -> StoryService:
    return request.app.state.service


@router.get("/stories")
async def list_stories(
    active: bool | None = None,
    genre: str | None = None,
    theme: str | None = None,
    title: str | None = None,
    service: StoryService = Depends(get_service),
):
    """List stories (optionally filtered) with their stats."""
    stories = service.search_stories(genre=genre, theme=theme, is_active=active, title=title)
    return {
        "stories": [
            {
                "id": s.id,
                "title": s.title,
                "description": s.description,
                "genre": s.genre,
                "theme": s.theme,
                "last_played": s.last_played,
                "is_active": s.is_active,
                "stats": story_stats(s),
            }
            for s in stories
        ]
    }


@router.post("/stories", status_code=201)
async def create_story(body: CreateStory, service: StoryService = Depends(get_service)):
    """Create a story and generate its opening segment."""
    story = await service.create_story(StoryConfig(**body.model_dump()))
    return {"story": service.orchestrator.project_player_view(story)}


@router.get("/stories/{story_id}")
async def get_story(story_id: str, service: StoryService = Depends(get_service)):
    """Player view of one story."""
    try:
        return {"story": service.get_player_view(story_id)}
    except StoryNotFoundError:
        raise HTTPException(404, "Story not found")


@router.post("/stories/{story_id}/continue")
async def continue_story(
    story_id: str, body: ContinueBody, service: StoryService = Depends(get_service)
):
    """Run one turn with the player's input."""
    try:
        outcome = await service.advance(story_id, body.player_input)
    except StoryNotFoundError:
        raise HTTPException(404, "Story not found")
    except EmptyInputError:
        raise HTTPException(400, "Player input is required")

    if not outcome.success:
        raise HTTPException(400, outcome.error)
    return {
        "story": service.orchestrator.project_player_view(outcome.updated_story),
        "generated_content": outcome.generated_text,
        "metadata": outcome.metadata,
    }


@router.get("/stories/{story_id}/stats")
async def get_stats(story_id: str, service: StoryService = Depends(get_service)):
    try:
        return {"stats": service.get_story_stats(story_id)}
    except StoryNotFoundError:
        raise HTTPException(404, "Story not found")


@router.post("/stories/{story_id}/reset")
async def reset_story(story_id: str, service: StoryService = Depends(get_service)):
    """Wipe play progress, keeping title, genre and location."""
    try:
        story = await service.reset_story(story_id)
    except StoryNotFoundError:
        raise HTTPException(404, "Story not found")
    return {
        "story": service.orchestrator.project_player_view(story),
        "message": "Story reset successfully",
    }


@router.post("/stories/{story_id}/archive")
async def archive_story(story_id: str, service: StoryService = Depends(get_service)):
    try:
        story = await service.archive_story(story_id)
    except StoryNotFoundError:
        raise HTTPException(404, "Story not found")
    return {
        "story": service.orchestrator.project_player_view(story),
        "message": "Story archived successfully",
    }


@router.get("/stories/{story_id}/export")
async def export_story(
    story_id: str,
    format: Literal["json", "text"] = "json",
    service: StoryService = Depends(get_service),
):
    """Download the story as JSON or a Markdown transcript."""
    try:
        story = service.get_story(story_id)
        data = service.export_story(story_id, format)
    except StoryNotFoundError:
        raise HTTPException(404, "Story not found")

    filename = f"{re.sub(r'[^a-zA-Z0-9]', '_', story.title)}_export.{format}"
    media_type = "application/json" if format == "json" else "text/plain"
    return Response(
        content=data,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.delete("/stories/{story_id}")
async def delete_story(story_id: str, service: StoryService = Depends(get_service)):
    if not await service.delete_story(story_id):
        raise HTTPException(404, "Story not found")
    return {"message": "Story deleted successfully"}


@router.get("/stories/{story_id}/admin")
async def get_admin_story(story_id: str, service: StoryService = Depends(get_service)):
    """Full story including secrets and hidden goals."""
    try:
        return {"story": service.get_admin_view(story_id)}
    except StoryNotFoundError:
        raise HTTPException(404, "Story not found")


@router.put("/stories/{story_id}/admin")
async def update_admin_story(
    story_id: str, updates: dict, service: StoryService = Depends(get_service)
):
    """Replace top-level story fields. The result must be a valid story."""
    try:
        story = await service.update_story(story_id, updates)
    except StoryNotFoundError:
        raise HTTPException(404, "Story not found")
    except ValidationError as e:
        raise HTTPException(422, e.errors(include_url=False, include_context=False))
    except ValueError as e:
        raise HTTPException(400, str(e))
    return {"story": story, "message": "Story updated successfully"}
