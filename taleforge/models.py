"""Core domain models.

All pipeline stages, the story service and the repositories operate on these
types. Pydantic is used for validation and serialisation at every data
boundary; a Story dumped with model_dump_json() and read back with
model_validate_json() is equal to the original.

Entities are owned by exactly one Story. Collections are lists in narrative
order and every entity carries an opaque string id.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

ItemType = Literal["weapon", "tool", "consumable", "key", "misc", "container"]
GoalStatus = Literal["active", "completed", "failed", "hidden"]

DEFAULT_PLAYER_STATS: dict[str, int] = {"health": 100, "energy": 100, "experience": 0}


def new_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# World entities
# ---------------------------------------------------------------------------

class Character(BaseModel):
    """An NPC. `secrets` are admin-only and never reach the player view."""

    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    known_to_player: bool = False
    attributes: dict[str, Any] = Field(default_factory=dict)
    relationships: dict[str, str] = Field(default_factory=dict)  # character id -> label
    secrets: list[str] = Field(default_factory=list)
    role: str | None = None
    traits: list[str] = Field(default_factory=list)
    current_location: str | None = None


class InventoryItem(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    type: ItemType = "misc"
    quantity: int = Field(default=1, ge=0)
    properties: dict[str, Any] = Field(default_factory=dict)


class Goal(BaseModel):
    id: str = Field(default_factory=new_id)
    title: str
    description: str = ""
    status: GoalStatus = "active"
    progress: int = Field(default=0, ge=0, le=100)
    known_to_player: bool = False
    requirements: list[str] = Field(default_factory=list)
    rewards: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _completed_means_done(self) -> Goal:
        if self.status == "completed":
            self.progress = 100
        return self


class StoryBeat(BaseModel):
    """Narrative planning metadata. Not read by the generation pipeline."""

    id: str = Field(default_factory=new_id)
    title: str
    description: str = ""
    completed: bool = False
    player_visible: bool = False
    order: int = 0
    requirements: list[str] = Field(default_factory=list)
    type: str | None = None
    status: str | None = None
    triggers: list[str] = Field(default_factory=list)
    consequences: list[str] = Field(default_factory=list)


class WorldState(BaseModel):
    current_location: str
    world_state: dict[str, Any] = Field(default_factory=dict)
    player_stats: dict[str, int | float] = Field(
        default_factory=lambda: dict(DEFAULT_PLAYER_STATS)
    )
    flags: dict[str, bool] = Field(default_factory=dict)
    last_update_timestamp: str = Field(default_factory=utc_now)


# ---------------------------------------------------------------------------
# Deltas
# ---------------------------------------------------------------------------

class CharacterPatch(BaseModel):
    """Partial character update. Only the fields that are set get merged."""

    id: str
    known_to_player: bool | None = None
    description: str | None = None
    attributes: dict[str, Any] | None = None
    relationships: dict[str, str] | None = None
    current_location: str | None = None


class GoalPatch(BaseModel):
    id: str
    status: GoalStatus | None = None
    progress: int | None = None
    known_to_player: bool | None = None


class WorldStatePatch(BaseModel):
    current_location: str | None = None
    world_state: dict[str, Any] | None = None
    player_stats: dict[str, int | float] | None = None
    flags: dict[str, bool] | None = None


class StateDelta(BaseModel):
    """Changes extracted from one generated segment.

    Inventory changes are full replacement records; character, goal and
    world-state changes are patches.
    """

    inventory_changes: list[InventoryItem] = Field(default_factory=list)
    character_updates: list[CharacterPatch] = Field(default_factory=list)
    goal_updates: list[GoalPatch] = Field(default_factory=list)
    state_updates: WorldStatePatch = Field(default_factory=WorldStatePatch)

    def is_empty(self) -> bool:
        return not (
            self.inventory_changes
            or self.character_updates
            or self.goal_updates
            or self.state_updates.model_dump(exclude_none=True)
        )


class StorySegment(BaseModel):
    """One entry in a story's append-only log."""

    id: str = Field(default_factory=new_id)
    content: str
    player_input: str | None = None  # None for the opening segment
    timestamp: str = Field(default_factory=utc_now)
    state_changes: StateDelta = Field(default_factory=StateDelta)
    metadata: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Aggregate root
# ---------------------------------------------------------------------------

class Story(BaseModel):
    """The world model of one story."""

    id: str = Field(default_factory=new_id)
    title: str
    description: str = ""
    genre: str = ""
    theme: str = ""
    player_name: str | None = None
    created_at: str = Field(default_factory=utc_now)
    last_played: str = Field(default_factory=utc_now)
    characters: list[Character] = Field(default_factory=list)
    inventory: list[InventoryItem] = Field(default_factory=list)
    goals: list[Goal] = Field(default_factory=list)
    beats: list[StoryBeat] = Field(default_factory=list)
    state: WorldState
    story_log: list[StorySegment] = Field(default_factory=list)
    is_active: bool = True

    @model_validator(mode="after")
    def _check_identity(self) -> Story:
        names = [c.name.lower() for c in self.characters]
        if len(names) != len(set(names)):
            raise ValueError("character names must be unique (case-insensitive)")
        for label, entities in (
            ("character", self.characters),
            ("inventory item", self.inventory),
            ("goal", self.goals),
            ("beat", self.beats),
            ("story segment", self.story_log),
        ):
            ids = [e.id for e in entities]
            if len(ids) != len(set(ids)):
                raise ValueError(f"duplicate {label} id")
        return self


class StoryConfig(BaseModel):
    """Parameters for bootstrapping a new story."""

    title: str
    description: str = ""
    genre: str
    theme: str = ""
    initial_location: str
    player_name: str | None = None


# ---------------------------------------------------------------------------
# Pipeline values (never persisted on their own)
# ---------------------------------------------------------------------------

class ContextPackage(BaseModel):
    """Bounded slice of a story handed to the generator for one turn."""

    model_config = ConfigDict(frozen=True)

    current_state: WorldState
    known_characters: list[Character]
    player_inventory: list[InventoryItem]
    active_goals: list[Goal]
    recent_events: list[StorySegment]
    world_rules: list[str]
    player_input: str
    genre: str = ""


class ValidationResult(BaseModel):
    is_valid: bool
    contradictions: list[str] = Field(default_factory=list)
    new_facts: list[str] = Field(default_factory=list)
    suggested_corrections: list[str] = Field(default_factory=list)
    confidence_score: int = Field(ge=0, le=100)


class GenerationResult(BaseModel):
    success: bool
    content: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None


class TurnOutcome(BaseModel):
    success: bool
    updated_story: Story | None = None
    generated_text: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------

class PlayerCharacter(BaseModel):
    """A character as the player sees it: no secrets."""

    id: str
    name: str
    description: str
    attributes: dict[str, Any] = Field(default_factory=dict)
    relationships: dict[str, str] = Field(default_factory=dict)
    role: str | None = None
    traits: list[str] = Field(default_factory=list)
    current_location: str | None = None


class ConversationMessage(BaseModel):
    id: str
    type: Literal["player", "ai"]
    content: str
    timestamp: str


class PlayerView(BaseModel):
    id: str
    title: str
    description: str
    genre: str
    theme: str
    current_location: str
    player_stats: dict[str, int | float]
    known_characters: list[PlayerCharacter]
    inventory: list[InventoryItem]
    active_goals: list[Goal]
    conversation_history: list[ConversationMessage]


class StoryStats(BaseModel):
    total_segments: int
    characters_known: int
    characters_total: int
    inventory_items: int
    active_goals: int
    completed_goals: int
    current_location: str
    last_played: str
    playtime: str
