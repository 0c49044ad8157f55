"""Narrative-state reconciliation pipeline.

Executes one player turn against a story:
  1. Context builder - filter the story to what the player knows, plus world rules.
  2. Generator - render the Handlebars narrator prompt and call the LLM.
  3. Validator - lexical consistency checks, confidence score 0-100.
  4. Retry - up to max_attempts with a growing correction log, then accept with a warning.
  5. Reconciler - extract a StateDelta from the accepted text and merge it
     into a new story, appending one StorySegment.

Stages never mutate their input story. Only generator failure fails a turn.
"""

from .context import build_context, world_rules  # noqa: F401
from .extractors import FactExtractor, RegexFactExtractor  # noqa: F401
from .generator import NarrativeGenerator  # noqa: F401
from .orchestrator import (  # noqa: F401
    CorrectionLog,
    Orchestrator,
    TurnState,
    fallback_opening,
)
from .reconciler import StateReconciler, apply_delta  # noqa: F401
from .validator import validate_content  # noqa: F401
from .views import admin_view, player_view  # noqa: F401
