"""Narrative generation: one prompt in, one story segment out.

The generator owns prompt construction and turns every backend failure into a
GenerationResult with success=False, so the orchestrator can branch on
`success` instead of catching.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from taleforge.llm import LLM, LLMError, SamplingParams
from taleforge.models import ContextPackage, GenerationResult
from taleforge.prompts import (
    DEFAULT_NARRATOR_TEMPLATE,
    DEFAULT_SYSTEM_PROMPT,
    PromptError,
    build_prompt_context,
    render_prompt,
)

logger = logging.getLogger(__name__)


class NarrativeGenerator:
    def __init__(
        self,
        llm: LLM,
        sampling: SamplingParams | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        template: str = DEFAULT_NARRATOR_TEMPLATE,
    ) -> None:
        self._llm = llm
        self._sampling = sampling or SamplingParams()
        self._system_prompt = system_prompt
        self._template = template

    def build_prompt(self, context: ContextPackage, corrections: Sequence[str] = ()) -> str:
        return render_prompt(self._template, build_prompt_context(context, corrections))

    async def generate(
        self, context: ContextPackage, corrections: Sequence[str] = ()
    ) -> GenerationResult:
        try:
            prompt = self.build_prompt(context, corrections)
            content = await self._llm(
                "narrator",
                prompt,
                system_prompt=self._system_prompt,
                sampling=self._sampling,
            )
        except (LLMError, PromptError) as e:
            logger.warning("Narrative generation failed: %s", e)
            return GenerationResult(success=False, error=str(e))

        if not content.strip():
            logger.warning("Narrative generation returned empty content")
            return GenerationResult(success=False, error="LLM backend returned empty content")

        return GenerationResult(
            success=True,
            content=content.strip(),
            metadata={
                "prompt_length": len(prompt),
                "context_items_count": {
                    "characters": len(context.known_characters),
                    "inventory": len(context.player_inventory),
                    "goals": len(context.active_goals),
                    "rules": len(context.world_rules),
                },
                "attempt_corrections": len(corrections),
            },
        )
