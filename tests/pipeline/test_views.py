"""Tests for player/admin projections."""

from taleforge.models import Goal, StorySegment
from taleforge.pipeline import admin_view, player_view


class TestPlayerView:
    def test_hides_unknown_and_empty(self, sample_story) -> None:
        sample_story.goals.append(
            Goal(id="goal-hidden", title="x", status="hidden", known_to_player=False)
        )
        view = player_view(sample_story)

        assert [c.id for c in view.known_characters] == ["char-magnus"]
        assert [i.id for i in view.inventory] == ["item-torch", "item-potion"]
        assert [g.id for g in view.active_goals] == ["goal-amulet"]
        assert view.current_location == "The Crooked Crown Tavern"
        assert view.player_stats == {"health": 100, "energy": 100, "experience": 0}

    def test_never_exposes_secrets(self, sample_story) -> None:
        sample_story.characters[1].known_to_player = True
        view = player_view(sample_story)
        dumped = view.model_dump_json()
        assert "secrets" not in dumped
        assert "spy" not in dumped
        assert "cellar" not in dumped

    def test_conversation_history_interleaves(self, sample_story) -> None:
        sample_story.story_log.append(
            StorySegment(id="seg-1", content="Magnus grins.", player_input="I greet Magnus")
        )
        history = player_view(sample_story).conversation_history
        assert [(m.id, m.type, m.content) for m in history] == [
            ("seg-0-ai", "ai", "The storm drives you into the Crooked Crown Tavern."),
            ("seg-1-player", "player", "I greet Magnus"),
            ("seg-1-ai", "ai", "Magnus grins."),
        ]

    def test_mutating_view_does_not_touch_story(self, sample_story) -> None:
        view = player_view(sample_story)
        view.inventory[0].quantity = 99
        assert sample_story.inventory[0].quantity == 1


class TestAdminView:
    def test_full_copy_with_secrets(self, sample_story) -> None:
        view = admin_view(sample_story)
        assert view == sample_story
        assert view.characters[1].secrets == ["Is a spy for the crown"]
        view.characters[0].name = "Changed"
        assert sample_story.characters[0].name == "Magnus Ironhand"
