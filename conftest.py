from pathlib import Path

import pytest

from taleforge.llm import SamplingParams
from taleforge.models import (
    Character,
    Goal,
    InventoryItem,
    Story,
    StorySegment,
    WorldState,
)
from taleforge.storage import JsonStoryRepository

# Mentions only a known character and nothing the validator or extractor reacts to.
CLEAN_TEXT = (
    "Magnus nods and slides a mug of ale across the counter. "
    "The fire crackles softly while rain drums on the roof."
)


class StubLLM:
    """Deterministic LLM stand-in for tests.

    Provide a dict mapping stage name -> list of responses (in call order).
    A response that is an exception instance is raised instead of returned.
    Raises if a stage is called more times than responses were provided.
    """

    def __init__(self, responses: dict[str, list]) -> None:
        self._queues: dict[str, list] = {k: list(v) for k, v in responses.items()}
        self.calls: list[tuple[str, str]] = []
        self.system_prompts: list[str] = []
        self.samplings: list[SamplingParams | None] = []

    async def __call__(
        self,
        stage: str,
        prompt: str,
        *,
        system_prompt: str = "",
        sampling: SamplingParams | None = None,
    ) -> str:
        self.calls.append((stage, prompt))
        self.system_prompts.append(system_prompt)
        self.samplings.append(sampling)
        queue = self._queues.get(stage)
        if not queue:
            raise AssertionError(
                f"StubLLM: unexpected call to stage={stage!r} "
                f"(no responses queued). calls so far: {len(self.calls)}"
            )
        response = queue.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    def add(self, stage: str, *responses) -> None:
        self._queues.setdefault(stage, []).extend(responses)

    def assert_exhausted(self) -> None:
        """Assert every queued response was consumed, which catches missing LLM calls."""
        leftover = {k: v for k, v in self._queues.items() if v}
        if leftover:
            raise AssertionError(f"StubLLM: unused responses remain: {leftover}")


@pytest.fixture
def make_llm():
    """Factory: make_llm("text one", "text two") queues narrator responses."""
    def _make(*responses) -> StubLLM:
        return StubLLM({"narrator": list(responses)})
    return _make


@pytest.fixture
def sample_story() -> Story:
    """A small tavern story with known and hidden facts of every kind."""
    return Story(
        id="story-1",
        title="The Crooked Crown",
        description="Rumours gather in a roadside tavern.",
        genre="fantasy",
        theme="mystery",
        player_name="Ayla",
        characters=[
            Character(
                id="char-magnus",
                name="Magnus Ironhand",
                description="A tall, friendly dwarf with a braided beard.",
                known_to_player=True,
                secrets=["Hides a map to the cellar"],
            ),
            Character(
                id="char-seraphine",
                name="Lady Seraphine",
                description="A young noblewoman in a green cloak.",
                known_to_player=False,
                secrets=["Is a spy for the crown"],
            ),
        ],
        inventory=[
            InventoryItem(id="item-torch", name="Torch", description="A pitch torch.",
                          type="tool", quantity=1),
            InventoryItem(id="item-potion", name="Healing Potion",
                          description="A red potion.", type="consumable", quantity=2),
            InventoryItem(id="item-flask", name="Empty Flask", description="Nothing left.",
                          type="misc", quantity=0),
        ],
        goals=[
            Goal(id="goal-amulet", title="find the lost amulet",
                 description="The amulet vanished last winter.",
                 status="active", progress=40, known_to_player=True),
            Goal(id="goal-truth", title="learn the truth",
                 description="What is Seraphine hiding?",
                 status="active", progress=0, known_to_player=False),
            Goal(id="goal-letter", title="deliver the letter",
                 description="A letter for the magistrate.",
                 status="completed", known_to_player=True),
        ],
        state=WorldState(
            current_location="The Crooked Crown Tavern",
            world_state={"weather": "stormy"},
            flags={"door_opened": False},
        ),
        story_log=[
            StorySegment(
                id="seg-0",
                content="The storm drives you into the Crooked Crown Tavern.",
                player_input=None,
            ),
        ],
    )


@pytest.fixture
def repo(tmp_path: Path) -> JsonStoryRepository:
    return JsonStoryRepository(tmp_path)


@pytest.fixture
def clean_text() -> str:
    return CLEAN_TEXT
