"""Context building: reduce a story plus player input to a bounded ContextPackage.

Filtering rules are fixed:
  characters  known_to_player only
  inventory   quantity > 0 only
  goals       status == "active" and known_to_player
  story log   last RECENT_EVENTS segments, oldest first

The world-rule list is the only long-term memory the generator gets; it is
rebuilt from the story on every call.
"""

from __future__ import annotations

from taleforge.models import ContextPackage, Story

RECENT_EVENTS = 5


def build_context(story: Story, player_input: str) -> ContextPackage:
    """Return a fresh ContextPackage. Does not modify `story`."""
    snapshot = story.model_copy(deep=True)
    known_characters = [c for c in snapshot.characters if c.known_to_player]
    player_inventory = [i for i in snapshot.inventory if i.quantity > 0]
    active_goals = [
        g for g in snapshot.goals if g.status == "active" and g.known_to_player
    ]

    return ContextPackage(
        current_state=snapshot.state,
        known_characters=known_characters,
        player_inventory=player_inventory,
        active_goals=active_goals,
        recent_events=snapshot.story_log[-RECENT_EVENTS:],
        world_rules=world_rules(snapshot),
        player_input=player_input,
        genre=snapshot.genre,
    )


def world_rules(story: Story) -> list[str]:
    """Flatten established facts into one line each."""
    rules = [
        f"Genre: {story.genre}",
        f"Theme: {story.theme}",
        f"Current location: {story.state.current_location}",
    ]
    for char in story.characters:
        if char.known_to_player:
            rules.append(f"{char.name}: {char.description}")
    for item in story.inventory:
        if item.quantity > 0:
            rules.append(f"Player has {item.quantity}x {item.name}: {item.description}")
    for goal in story.goals:
        if goal.known_to_player and goal.status == "active":
            rules.append(f"Active goal: {goal.title} - {goal.description}")
    for flag, value in story.state.flags.items():
        rules.append(f"World state: {flag} = {str(value).lower()}")
    return rules
