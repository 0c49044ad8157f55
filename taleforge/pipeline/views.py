"""Player and admin projections of a story."""

from __future__ import annotations

from taleforge.models import (
    ConversationMessage,
    PlayerCharacter,
    PlayerView,
    Story,
)


def player_view(story: Story) -> PlayerView:
    """What the player may see: known characters without secrets, held items,
    known active goals, and the conversation so far."""
    return PlayerView(
        id=story.id,
        title=story.title,
        description=story.description,
        genre=story.genre,
        theme=story.theme,
        current_location=story.state.current_location,
        player_stats=dict(story.state.player_stats),
        known_characters=[
            PlayerCharacter(**c.model_dump(exclude={"secrets", "known_to_player"}))
            for c in story.characters
            if c.known_to_player
        ],
        inventory=[i.model_copy(deep=True) for i in story.inventory if i.quantity > 0],
        active_goals=[
            g.model_copy(deep=True)
            for g in story.goals
            if g.known_to_player and g.status == "active"
        ],
        conversation_history=conversation_history(story),
    )


def conversation_history(story: Story) -> list[ConversationMessage]:
    """Player message then AI message per segment; openings have no player message."""
    messages: list[ConversationMessage] = []
    for segment in story.story_log:
        if segment.player_input and segment.player_input.strip():
            messages.append(
                ConversationMessage(
                    id=f"{segment.id}-player",
                    type="player",
                    content=segment.player_input,
                    timestamp=segment.timestamp,
                )
            )
        messages.append(
            ConversationMessage(
                id=f"{segment.id}-ai",
                type="ai",
                content=segment.content,
                timestamp=segment.timestamp,
            )
        )
    return messages


def admin_view(story: Story) -> Story:
    """The whole story, secrets included. A copy, so callers cannot mutate the original."""
    return story.model_copy(deep=True)
