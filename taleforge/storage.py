"""Story repositories.

The core only needs four operations on whole Story documents:

    load(id) -> Story | None
    save(story) -> None
    delete(id) -> bool
    list_all() -> list[Story]

Two implementations are provided:

    JsonStoryRepository      - flat JSON files under a base directory.
    InMemoryStoryRepository  - a dict, for tests and throwaway sessions.

Directory layout of the JSON repository:

    {base}/
      stories/
        {id}.json             ← one full Story document

A document is written to a temp file next to its target and moved into
place with os.replace, so a reader never sees a half-written story.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Protocol

from taleforge.models import Story


class StoryRepository(Protocol):
    def load(self, story_id: str) -> Story | None: ...

    def save(self, story: Story) -> None: ...

    def delete(self, story_id: str) -> bool: ...

    def list_all(self) -> list[Story]: ...


class JsonStoryRepository:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._stories_root = base_path / "stories"
        self._stories_root.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    def _story_file(self, story_id: str) -> Path:
        if not story_id or "/" in story_id or "\\" in story_id or story_id.startswith("."):
            raise ValueError(f"Invalid story id: {story_id!r}")
        return self._stories_root / f"{story_id}.json"

    def _write_atomic(self, path: Path, text: str) -> None:
        tmp = path.with_name(f".{path.name}.tmp")
        tmp.write_text(text)
        os.replace(tmp, path)

    # ------------------------------------------------------------------
    # Stories
    # ------------------------------------------------------------------

    def load(self, story_id: str) -> Story | None:
        path = self._story_file(story_id)
        if not path.is_file():
            return None
        return Story.model_validate_json(path.read_text())

    def save(self, story: Story) -> None:
        self._write_atomic(self._story_file(story.id), story.model_dump_json(indent=2))

    def delete(self, story_id: str) -> bool:
        path = self._story_file(story_id)
        if not path.is_file():
            return False
        path.unlink()
        return True

    def list_all(self) -> list[Story]:
        return [
            Story.model_validate_json(path.read_text())
            for path in sorted(self._stories_root.glob("*.json"))
        ]


class InMemoryStoryRepository:
    """Keeps deep copies so callers never share state with the store."""

    def __init__(self) -> None:
        self._stories: dict[str, Story] = {}

    def load(self, story_id: str) -> Story | None:
        story = self._stories.get(story_id)
        return story.model_copy(deep=True) if story else None

    def save(self, story: Story) -> None:
        self._stories[story.id] = story.model_copy(deep=True)

    def delete(self, story_id: str) -> bool:
        return self._stories.pop(story_id, None) is not None

    def list_all(self) -> list[Story]:
        return [s.model_copy(deep=True) for s in self._stories.values()]
