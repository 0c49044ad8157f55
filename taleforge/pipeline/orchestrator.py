"""Pipeline orchestrator: runs one player turn end-to-end.

Turn flow:
  BUILD_CONTEXT  build an immutable ContextPackage from the story
  GENERATE       call the generator with the context and the correction log
  VALIDATE       score the text against the story
  ACCEPT         valid, or confidence >= ACCEPT_THRESHOLD, or attempts exhausted
  RETRY          extend the correction log and go back to GENERATE
  RECONCILE      extract the delta and merge it into a new story
  DONE / FAILED  terminal

Only generator failure (or timeout) ends in FAILED. Validation failures are
retried up to max_attempts and then accepted with a warning, so a turn never
blocks on validation. The input story is never modified; FAILED leaves it
exactly as it was.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Literal

from taleforge.models import (
    DEFAULT_PLAYER_STATS,
    ContextPackage,
    GenerationResult,
    PlayerView,
    Story,
    StoryConfig,
    StorySegment,
    TurnOutcome,
    ValidationResult,
    WorldState,
)

from .context import build_context
from .generator import NarrativeGenerator
from .reconciler import StateReconciler
from .validator import validate_content
from .views import admin_view, player_view

logger = logging.getLogger(__name__)

TurnState = Literal[
    "BUILD_CONTEXT", "GENERATE", "VALIDATE", "ACCEPT",
    "RETRY", "RECONCILE", "DONE", "FAILED",
]

Validator = Callable[[str, ContextPackage, Story], ValidationResult]

MAX_ATTEMPTS = 3
ACCEPT_THRESHOLD = 70
GENERATION_TIMEOUT = 120.0

OPENING_INPUT = "Begin the adventure"
CONSISTENCY_WARNING = "Content generated with consistency warnings"
CONTRADICTIONS_MARKER = "CRITICAL: Address the following contradictions:"


def fallback_opening(title: str, location: str) -> str:
    return (
        f"Welcome to {title}. Your adventure begins in {location}. "
        "The world awaits your choices."
    )


class CorrectionLog:
    """Correction lines accumulated across retries of one turn.

    Handed to the generator next to the ContextPackage, which stays untouched.
    """

    def __init__(self) -> None:
        self._lines: list[str] = []

    def record(self, result: ValidationResult) -> None:
        self._lines.extend(result.suggested_corrections)
        if result.contradictions:
            self._lines.append(CONTRADICTIONS_MARKER)
            self._lines.extend(result.contradictions)

    @property
    def lines(self) -> tuple[str, ...]:
        return tuple(self._lines)

    def __len__(self) -> int:
        return len(self._lines)


class Orchestrator:
    def __init__(
        self,
        generator: NarrativeGenerator,
        reconciler: StateReconciler | None = None,
        validator: Validator = validate_content,
        max_attempts: int = MAX_ATTEMPTS,
        generation_timeout: float | None = GENERATION_TIMEOUT,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._generator = generator
        self._reconciler = reconciler or StateReconciler()
        self._validator = validator
        self.max_attempts = max_attempts
        self.generation_timeout = generation_timeout

    async def advance(self, story: Story, player_input: str) -> TurnOutcome:
        """Run one turn for `player_input`. Returns a new story on success."""
        return await self._run_turn(story, player_input, player_input)

    async def create_new(self, config: StoryConfig) -> Story:
        """Bootstrap a story and generate its opening segment.

        The story always ends up with exactly one segment: if the opening
        generation fails, a fixed welcome line is used instead.
        """
        story = Story(
            title=config.title,
            description=config.description,
            genre=config.genre,
            theme=config.theme,
            player_name=config.player_name,
            state=WorldState(
                current_location=config.initial_location,
                player_stats=dict(DEFAULT_PLAYER_STATS),
            ),
        )
        outcome = await self._run_turn(story, OPENING_INPUT, None)
        if outcome.success and outcome.updated_story is not None:
            logger.info("Created story %s (%s)", story.id, story.title)
            return outcome.updated_story

        logger.warning(
            "Opening generation failed for story %s, using fallback: %s",
            story.id, outcome.error,
        )
        story.story_log.append(
            StorySegment(
                content=fallback_opening(config.title, config.initial_location),
                player_input=None,
                metadata={"fallback": True, "error": outcome.error},
            )
        )
        return story

    def project_player_view(self, story: Story) -> PlayerView:
        return player_view(story)

    def project_admin_view(self, story: Story) -> Story:
        return admin_view(story)

    # ------------------------------------------------------------------
    # Turn state machine
    # ------------------------------------------------------------------

    async def _run_turn(
        self, story: Story, player_input: str, recorded_input: str | None
    ) -> TurnOutcome:
        states: list[TurnState] = []

        def enter(state: TurnState, attempt: int = 0) -> None:
            states.append(state)
            logger.debug("turn story=%s state=%s attempt=%d", story.id, state, attempt)

        enter("BUILD_CONTEXT")
        context = build_context(story, player_input)
        corrections = CorrectionLog()

        attempt = 0
        generation: GenerationResult | None = None
        validation: ValidationResult | None = None
        warnings: list[str] = []

        while True:
            attempt += 1
            enter("GENERATE", attempt)
            generation = await self._generate(context, corrections)
            if not generation.success:
                enter("FAILED", attempt)
                return TurnOutcome(
                    success=False,
                    error=f"Story generation failed: {generation.error}",
                    metadata={"attempts": attempt, "states": list(states)},
                )

            enter("VALIDATE", attempt)
            validation = self._validator(generation.content, context, story)
            logger.info(
                "Validation story=%s attempt=%d score=%d valid=%s",
                story.id, attempt, validation.confidence_score, validation.is_valid,
            )

            if validation.is_valid or validation.confidence_score >= ACCEPT_THRESHOLD:
                break
            if attempt >= self.max_attempts:
                logger.warning(
                    "Accepting story=%s after %d attempts with contradictions: %s",
                    story.id, attempt, validation.contradictions,
                )
                warnings.append(CONSISTENCY_WARNING)
                break

            logger.warning(
                "Validation failed story=%s attempt=%d: %s",
                story.id, attempt, validation.contradictions,
            )
            enter("RETRY", attempt)
            corrections.record(validation)

        enter("ACCEPT", attempt)
        metadata = {
            "attempts": attempt,
            "validation_score": validation.confidence_score,
            "contradictions": list(validation.contradictions),
            "new_facts": list(validation.new_facts),
            "generation_metadata": dict(generation.metadata),
        }
        if warnings:
            metadata["warnings"] = warnings

        enter("RECONCILE", attempt)
        updated = self._reconciler.reconcile(
            story, generation.content, recorded_input, metadata=metadata
        )

        enter("DONE", attempt)
        metadata["states"] = list(states)
        return TurnOutcome(
            success=True,
            updated_story=updated,
            generated_text=generation.content,
            metadata=metadata,
        )

    async def _generate(
        self, context: ContextPackage, corrections: CorrectionLog
    ) -> GenerationResult:
        call = self._generator.generate(context, corrections.lines)
        if self.generation_timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.generation_timeout)
        except asyncio.TimeoutError:
            logger.warning("Generation timed out after %ss", self.generation_timeout)
            return GenerationResult(
                success=False,
                error=f"generation timed out after {self.generation_timeout}s",
            )
