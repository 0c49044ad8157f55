"""Story service: the core boundary, keyed by story id.

Wraps a StoryRepository and an Orchestrator. Every mutation of a story
(advance, update, reset, archive, delete) runs under a per-id asyncio.Lock,
so at most one turn per story is in flight while different stories proceed
concurrently. Preconditions (blank input, unknown id) are checked before any
generation work and raised as typed errors.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Literal

from taleforge.models import (
    DEFAULT_PLAYER_STATS,
    PlayerView,
    Story,
    StoryConfig,
    StoryStats,
    TurnOutcome,
    utc_now,
)
from taleforge.pipeline import Orchestrator
from taleforge.storage import StoryRepository

logger = logging.getLogger(__name__)

ExportFormat = Literal["json", "text"]

# Fields an admin update may not touch.
_IMMUTABLE_FIELDS = {"id", "created_at"}


class StoryNotFoundError(LookupError):
    def __init__(self, story_id: str) -> None:
        super().__init__(f"Story not found: {story_id}")
        self.story_id = story_id


class EmptyInputError(ValueError):
    pass


class StoryService:
    def __init__(self, repository: StoryRepository, orchestrator: Orchestrator) -> None:
        self.repository = repository
        self.orchestrator = orchestrator
        self._locks: dict[str, asyncio.Lock] = {}

    @asynccontextmanager
    async def _locked(self, story_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(story_id, asyncio.Lock())
        try:
            async with lock:
                yield
        except StoryNotFoundError:
            if self._locks.get(story_id) is lock:
                del self._locks[story_id]
            raise

    def _require(self, story_id: str) -> Story:
        story = self.repository.load(story_id)
        if story is None:
            raise StoryNotFoundError(story_id)
        return story

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def create_story(self, config: StoryConfig) -> Story:
        story = await self.orchestrator.create_new(config)
        self.repository.save(story)
        return story

    async def advance(self, story_id: str, player_input: str) -> TurnOutcome:
        """Run one turn. The story is saved only when the turn succeeds."""
        player_input = (player_input or "").strip()
        if not player_input:
            raise EmptyInputError("Player input must not be empty")

        async with self._locked(story_id):
            story = self._require(story_id)
            outcome = await self.orchestrator.advance(story, player_input)
            if outcome.success and outcome.updated_story is not None:
                self.repository.save(outcome.updated_story)
            else:
                logger.warning("Turn failed for story %s: %s", story_id, outcome.error)
        return outcome

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_story(self, story_id: str) -> Story:
        return self._require(story_id)

    def list_stories(self) -> list[Story]:
        return self.repository.list_all()

    def search_stories(
        self,
        genre: str | None = None,
        theme: str | None = None,
        is_active: bool | None = None,
        title: str | None = None,
    ) -> list[Story]:
        """Case-insensitive substring match on genre/theme/title; exact on is_active."""
        results = self.list_stories()
        if genre:
            results = [s for s in results if genre.lower() in s.genre.lower()]
        if theme:
            results = [s for s in results if theme.lower() in s.theme.lower()]
        if is_active is not None:
            results = [s for s in results if s.is_active == is_active]
        if title:
            results = [s for s in results if title.lower() in s.title.lower()]
        return results

    def get_player_view(self, story_id: str) -> PlayerView:
        return self.orchestrator.project_player_view(self._require(story_id))

    def get_admin_view(self, story_id: str) -> Story:
        return self.orchestrator.project_admin_view(self._require(story_id))

    def get_story_stats(self, story_id: str) -> StoryStats:
        return story_stats(self._require(story_id))

    def export_story(self, story_id: str, format: ExportFormat = "json") -> str:
        story = self._require(story_id)
        if format == "json":
            return json.dumps(story.model_dump(mode="json"), indent=2)
        if format == "text":
            return export_text(story)
        raise ValueError(f"Unknown export format: {format!r}")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def update_story(self, story_id: str, updates: dict[str, Any]) -> Story:
        """Replace top-level fields and re-validate the whole story.

        Raises pydantic.ValidationError when the result is not a valid story.
        """
        unknown = set(updates) - set(Story.model_fields)
        if unknown:
            raise ValueError(f"Unknown story fields: {', '.join(sorted(unknown))}")

        async with self._locked(story_id):
            story = self._require(story_id)
            for field in _IMMUTABLE_FIELDS & set(updates):
                if updates[field] != getattr(story, field):
                    raise ValueError(f"Story field '{field}' cannot be changed")
            data = story.model_dump()
            data.update(updates)
            updated = Story.model_validate(data)
            self.repository.save(updated)
        logger.info("Updated story %s fields=%s", story_id, sorted(updates))
        return updated

    async def reset_story(self, story_id: str) -> Story:
        """Clear everything learned in play; keep identity, metadata and location."""
        async with self._locked(story_id):
            story = self._require(story_id)
            reset = story.model_copy(deep=True)
            reset.characters = []
            reset.inventory = []
            reset.goals = []
            reset.beats = []
            reset.story_log = []
            reset.state.world_state = {}
            reset.state.flags = {}
            reset.state.player_stats = dict(DEFAULT_PLAYER_STATS)
            reset.state.last_update_timestamp = utc_now()
            reset.last_played = utc_now()
            self.repository.save(reset)
        logger.info("Reset story %s", story_id)
        return reset

    async def archive_story(self, story_id: str) -> Story:
        async with self._locked(story_id):
            story = self._require(story_id)
            story.is_active = False
            self.repository.save(story)
        logger.info("Archived story %s", story_id)
        return story

    async def delete_story(self, story_id: str) -> bool:
        async with self._locked(story_id):
            deleted = self.repository.delete(story_id)
        self._locks.pop(story_id, None)
        return deleted


# ---------------------------------------------------------------------------
# Stats and export
# ---------------------------------------------------------------------------

def playtime(story: Story) -> str:
    """Time between creation and last play: "N minutes" below an hour, else "Hh Mm"."""
    if not story.story_log:
        return "0 minutes"
    try:
        start = datetime.fromisoformat(story.created_at)
        end = datetime.fromisoformat(story.last_played)
        minutes = max(0, int((end - start).total_seconds() // 60))
    except (TypeError, ValueError):
        return "0 minutes"
    if minutes < 60:
        return f"{minutes} minutes"
    return f"{minutes // 60}h {minutes % 60}m"


def story_stats(story: Story) -> StoryStats:
    return StoryStats(
        total_segments=len(story.story_log),
        characters_known=sum(1 for c in story.characters if c.known_to_player),
        characters_total=len(story.characters),
        inventory_items=sum(1 for i in story.inventory if i.quantity > 0),
        active_goals=sum(1 for g in story.goals if g.status == "active"),
        completed_goals=sum(1 for g in story.goals if g.status == "completed"),
        current_location=story.state.current_location,
        last_played=story.last_played,
        playtime=playtime(story),
    )


def export_text(story: Story) -> str:
    """Markdown transcript of the story as the player knows it."""
    lines = [
        f"# {story.title}",
        "",
        f"**Genre:** {story.genre}",
        f"**Theme:** {story.theme}",
        f"**Description:** {story.description}",
        "",
        "## Story Progress",
        "",
    ]
    for index, segment in enumerate(story.story_log, start=1):
        lines.append(f"### Segment {index}")
        if segment.player_input:
            lines.append(f"**Player:** {segment.player_input}")
        lines.append(segment.content)
        lines.append("")

    lines += ["", "## Characters"]
    lines += [
        f"- **{c.name}:** {c.description}" for c in story.characters if c.known_to_player
    ]
    lines += ["", "## Inventory"]
    lines += [
        f"- {i.name} ({i.quantity}): {i.description}" for i in story.inventory if i.quantity > 0
    ]
    lines += ["", "## Goals"]
    lines += [
        f"- {g.title} ({g.status}, {g.progress}%): {g.description}"
        for g in story.goals
        if g.known_to_player
    ]
    return "\n".join(lines)
