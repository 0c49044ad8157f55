"""Create the demo story for development/testing."""

from taleforge.models import (
    Character,
    Goal,
    InventoryItem,
    Story,
    StoryBeat,
    StorySegment,
    WorldState,
)
from taleforge.storage import StoryRepository

DEMO_STORY_ID = "test-story-001"
DEMO_LOCATION = "The Crooked Crown Tavern"

DEMO_OPENING = (
    "The storm drives you through the heavy wooden door of The Crooked Crown "
    "Tavern. Inside, flickering candlelight dances across weathered stone walls, "
    "and the air is thick with the scent of ale and mystery. The barkeep, a "
    "silver-haired man with knowing eyes, looks up from polishing a mug and nods "
    "in your direction. Rain patters against the diamond-paned windows as other "
    "patrons huddle over their drinks, speaking in hushed tones."
)


def demo_story() -> Story:
    return Story(
        id=DEMO_STORY_ID,
        title="The Mysterious Tavern",
        description="A fantasy adventure beginning in a mysterious tavern "
        "where strange things happen.",
        genre="fantasy",
        theme="mystery",
        player_name="Adventurer",
        characters=[
            Character(
                id="char-001",
                name="Barkeep Magnus",
                description="A gruff but kind tavern owner with knowing eyes and silver hair.",
                role="npc",
                known_to_player=True,
                traits=["wise", "secretive", "helpful"],
                current_location=DEMO_LOCATION,
                secrets=["Knows about the hidden cellar", "Former adventurer"],
            ),
        ],
        inventory=[
            InventoryItem(
                id="item-001",
                name="Worn Leather Pouch",
                description="A small leather pouch containing a few copper coins.",
                type="container",
                quantity=1,
                properties={"value": 5, "capacity": 10},
            ),
        ],
        goals=[
            Goal(
                id="goal-001",
                title="Discover the tavern's secret",
                description="Something mysterious is happening in this tavern. Find out what.",
                status="active",
                progress=0,
                known_to_player=True,
                requirements=["Talk to the barkeep", "Explore the tavern"],
                rewards=["Experience", "New story path"],
            ),
        ],
        beats=[
            StoryBeat(
                id="beat-001",
                type="introduction",
                title="Arrival at the Tavern",
                description="Player enters the mysterious tavern",
                status="completed",
                completed=True,
                order=1,
                triggers=["story_start"],
                consequences=["meet_barkeep", "establish_setting"],
            ),
            StoryBeat(
                id="beat-002",
                type="exploration",
                title="First Investigation",
                description="Player begins to explore and ask questions",
                status="pending",
                order=2,
                triggers=["player_investigates"],
                consequences=["reveal_clue", "npc_reaction"],
            ),
        ],
        state=WorldState(
            current_location=DEMO_LOCATION,
            world_state={
                "time_of_day": "evening",
                "weather": "stormy outside",
                "tavern_crowded": True,
            },
            player_stats={"health": 100, "energy": 80, "experience": 0},
            flags={
                "entered_tavern": True,
                "spoke_to_barkeep": False,
                "discovered_secret": False,
            },
        ),
        story_log=[
            StorySegment(
                id="log-001",
                content=DEMO_OPENING,
                player_input=None,
                metadata={
                    "generated_by": "default_story_creation",
                    "location": DEMO_LOCATION,
                    "npcs_present": ["Barkeep Magnus"],
                    "items_visible": ["Worn Leather Pouch"],
                },
            ),
        ],
    )


def create_demo_story(repository: StoryRepository) -> Story:
    """Save a fresh copy of the demo story, replacing any earlier one."""
    story = demo_story()
    repository.save(story)
    return story
