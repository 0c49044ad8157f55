"""State reconciliation: extract a StateDelta from accepted text and merge it.

Merge order:
  1. inventory   replace by id or append, then drop quantity <= 0
  2. characters  shallow merge of set patch fields; unknown ids ignored
  3. goals       shallow merge; progress clamped to [0, 100]
  4. world state shallow merge, last_update_timestamp stamped
  5. story log   one new StorySegment appended, last_played stamped

The input story is never modified; the caller gets a new one.
"""

from __future__ import annotations

import logging

from taleforge.models import (
    Character,
    Goal,
    InventoryItem,
    StateDelta,
    Story,
    StorySegment,
    WorldState,
    utc_now,
)

from .extractors import FactExtractor, RegexFactExtractor, clamp_progress

logger = logging.getLogger(__name__)


class StateReconciler:
    def __init__(self, extractor: FactExtractor | None = None) -> None:
        self._extractor = extractor or RegexFactExtractor()

    def extract(self, story: Story, text: str) -> StateDelta:
        return self._extractor.extract(story, text)

    def reconcile(
        self,
        story: Story,
        text: str,
        player_input: str | None,
        metadata: dict | None = None,
    ) -> Story:
        """Return a new story with the text's facts merged and the segment appended."""
        delta = self.extract(story, text)
        updated = apply_delta(story, delta)
        updated.story_log.append(
            StorySegment(
                content=text,
                player_input=player_input,
                state_changes=delta,
                metadata=dict(metadata or {}),
            )
        )
        updated.last_played = utc_now()
        logger.debug(
            "reconciled story=%s segments=%d empty_delta=%s",
            updated.id, len(updated.story_log), delta.is_empty(),
        )
        return updated


def apply_delta(story: Story, delta: StateDelta) -> Story:
    """Merge a delta into a deep copy of `story`. The story log is not touched."""
    updated = story.model_copy(deep=True)
    updated.inventory = merge_inventory(updated.inventory, delta.inventory_changes)
    updated.characters = merge_characters(updated.characters, delta)
    updated.goals = merge_goals(updated.goals, delta)
    updated.state = merge_state(updated.state, delta)
    return updated


def merge_inventory(
    inventory: list[InventoryItem], changes: list[InventoryItem]
) -> list[InventoryItem]:
    merged = list(inventory)
    for change in changes:
        for i, item in enumerate(merged):
            if item.id == change.id:
                merged[i] = change.model_copy(deep=True)
                break
        else:
            merged.append(change.model_copy(deep=True))
    return [item for item in merged if item.quantity > 0]


def merge_characters(characters: list[Character], delta: StateDelta) -> list[Character]:
    by_id = {c.id: i for i, c in enumerate(characters)}
    merged = list(characters)
    for patch in delta.character_updates:
        index = by_id.get(patch.id)
        if index is None:
            logger.debug("Ignoring patch for unknown character %s", patch.id)
            continue
        fields = patch.model_dump(exclude_none=True, exclude={"id"})
        merged[index] = merged[index].model_copy(update=fields)
    return merged


def merge_goals(goals: list[Goal], delta: StateDelta) -> list[Goal]:
    by_id = {g.id: i for i, g in enumerate(goals)}
    merged = list(goals)
    for patch in delta.goal_updates:
        index = by_id.get(patch.id)
        if index is None:
            logger.debug("Ignoring patch for unknown goal %s", patch.id)
            continue
        fields = patch.model_dump(exclude_none=True, exclude={"id"})
        if "progress" in fields:
            fields["progress"] = clamp_progress(fields["progress"])
        if fields.get("status", merged[index].status) == "completed":
            fields["progress"] = 100
        merged[index] = merged[index].model_copy(update=fields)
    return merged


def merge_state(state: WorldState, delta: StateDelta) -> WorldState:
    fields = delta.state_updates.model_dump(exclude_none=True)
    fields["last_update_timestamp"] = utc_now()
    return state.model_copy(update=fields)
