"""Handlebars prompt rendering for the narrator."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

import pybars

from taleforge.models import ContextPackage

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}

EVENT_PREVIEW_CHARS = 150

DEFAULT_SYSTEM_PROMPT = (
    "You are a masterful storyteller creating immersive interactive narratives. "
    "Write engaging, vivid prose that maintains consistency with established story "
    "elements. Always end with a clear opportunity for player choice or action."
)

DEFAULT_NARRATOR_TEMPLATE = """\
You are a masterful storyteller creating an interactive narrative. \
Generate the next story segment based on the provided context and player input.

CONTEXT INFORMATION:
Current Location: {{{location}}}
{{#if characters}}
Known Characters:
{{#each characters}}
- {{{name}}}: {{{description}}}
{{/each}}
{{/if}}
{{#if inventory}}
Player Inventory:
{{#each inventory}}
- {{{name}}} ({{quantity}}): {{{description}}}
{{/each}}
{{/if}}
{{#if goals}}
Active Goals:
{{#each goals}}
- {{{title}}}: {{{description}}} ({{progress}}% complete)
{{/each}}
{{/if}}
{{#if events}}
Recent Story Events:
{{#each events}}
{{{this}}}
{{/each}}
{{/if}}
{{#if rules}}
Established Facts (MUST MAINTAIN CONSISTENCY):
{{#each rules}}
- {{{this}}}
{{/each}}
{{/if}}

Player Input: "{{{player_input}}}"

WRITING GUIDELINES:
1. Write 2-4 paragraphs of engaging narrative
2. Show, don't tell - use vivid descriptions and dialogue
3. Maintain consistency with ALL established facts
4. Reference relevant inventory items and characters naturally
5. Create opportunities for player agency and choice
6. End with a clear point for player response or decision
7. Stay true to the genre: {{{genre}}}

CRITICAL REQUIREMENTS:
- Do NOT contradict any established character details
- Do NOT introduce items not in the established world
- Do NOT change character personalities without reason
- Do NOT ignore active goals and ongoing plot threads
- Do NOT break the established world rules
{{#if corrections}}

CRITICAL CORRECTIONS FROM THE PREVIOUS ATTEMPT:
{{#each corrections}}
- {{{this}}}
{{/each}}
{{/if}}

Generate the next story segment now:"""


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def preview(text: str, limit: int = EVENT_PREVIEW_CHARS) -> str:
    """Cut text to `limit` characters, marking the cut with an ellipsis."""
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "..."


def build_prompt_context(
    context: ContextPackage, corrections: Sequence[str] = ()
) -> dict[str, Any]:
    """Assemble template variables from a context package and correction log."""
    return {
        "location": context.current_state.current_location,
        "characters": [
            {"name": c.name, "description": c.description}
            for c in context.known_characters
        ],
        "inventory": [
            {"name": i.name, "quantity": i.quantity, "description": i.description}
            for i in context.player_inventory
        ],
        "goals": [
            {"title": g.title, "description": g.description, "progress": g.progress}
            for g in context.active_goals
        ],
        "events": [
            f"{n}. {preview(event.content)}"
            for n, event in enumerate(context.recent_events, start=1)
        ],
        "rules": list(context.world_rules),
        "player_input": context.player_input,
        "genre": context.genre or "adventure",
        "corrections": list(corrections),
    }
