"""Tests for the regex fact extractor."""

import pytest

from taleforge.pipeline import RegexFactExtractor
from taleforge.pipeline.extractors import (
    clean_item_name,
    extract_location_change,
    guess_item_type,
    is_valid_item,
)


@pytest.fixture
def extractor() -> RegexFactExtractor:
    return RegexFactExtractor()


# ── Item names ───────────────────────────────────────────────


def test_clean_item_name_cuts_and_strips():
    assert clean_item_name("sturdy rope lying in the corner") == ("sturdy rope", "rope")
    assert clean_item_name("the silver key from the drawer") == ("silver key", "silver key")


def test_blacklisted_phrases_rejected():
    assert not is_valid_item("deep breath")
    assert not is_valid_item("slow sip of ale")
    assert not is_valid_item("yourself")
    assert not is_valid_item("x")
    assert is_valid_item("rope")


@pytest.mark.parametrize("name,expected", [
    ("iron sword", "weapon"),
    ("loaf of bread", "consumable"),
    ("brass key", "key"),
    ("compass", "tool"),
    ("rope", "tool"),
    ("bowl", "misc"),
    ("feather", "misc"),
])
def test_guess_item_type(name, expected):
    assert guess_item_type(name) == expected


# ── Inventory ────────────────────────────────────────────────


def test_find_new_item(extractor, sample_story):
    delta = extractor.extract(sample_story, "You find a sturdy rope lying in the corner.")
    assert len(delta.inventory_changes) == 1
    rope = delta.inventory_changes[0]
    assert rope.name == "rope"
    assert rope.type == "tool"
    assert rope.quantity == 1
    assert rope.description == "A rope you acquired during your adventure."


def test_find_existing_item_increments(extractor, sample_story):
    delta = extractor.extract(sample_story, "You pick up a torch from the floor.")
    assert [(i.id, i.quantity) for i in delta.inventory_changes] == [("item-torch", 2)]


def test_item_appears_in_hand(extractor, sample_story):
    delta = extractor.extract(sample_story, "A glowing orb appears in your hand.")
    assert [(i.name, i.type) for i in delta.inventory_changes] == [("orb", "misc")]


def test_false_positive_phrases_ignored(extractor, sample_story):
    delta = extractor.extract(
        sample_story, "You take a deep breath and step forward. You take a slow sip of ale."
    )
    assert delta.inventory_changes == []


def test_item_breaks(extractor, sample_story):
    delta = extractor.extract(sample_story, "Your torch breaks in your hands.")
    assert [(i.id, i.quantity) for i in delta.inventory_changes] == [("item-torch", 0)]


def test_loss_never_goes_negative(extractor, sample_story):
    delta = extractor.extract(
        sample_story, "You drop the torch. Later you lose the torch again."
    )
    assert [(i.id, i.quantity) for i in delta.inventory_changes] == [("item-torch", 0)]


def test_drinking_consumable(extractor, sample_story):
    delta = extractor.extract(sample_story, "You drink the healing potion.")
    assert [(i.id, i.quantity) for i in delta.inventory_changes] == [("item-potion", 1)]


def test_using_non_consumable_keeps_it(extractor, sample_story):
    delta = extractor.extract(sample_story, "You use the torch to light the way.")
    assert delta.inventory_changes == []


def test_changes_compose_within_one_text(extractor, sample_story):
    text = "You find a healing potion on the shelf. Later you drink the healing potion."
    delta = extractor.extract(sample_story, text)
    assert [(i.id, i.quantity) for i in delta.inventory_changes] == [("item-potion", 2)]


# ── Characters ───────────────────────────────────────────────


def test_introduction_makes_character_known(extractor, sample_story):
    delta = extractor.extract(sample_story, "You meet Lady Seraphine by the fire.")
    assert [(p.id, p.known_to_player) for p in delta.character_updates] == [
        ("char-seraphine", True)
    ]


def test_introduction_by_last_name(extractor, sample_story):
    delta = extractor.extract(sample_story, "Seraphine approaches your table.")
    assert [p.id for p in delta.character_updates] == ["char-seraphine"]


def test_mention_without_introduction(extractor, sample_story):
    delta = extractor.extract(sample_story, "A rumour about Seraphine spreads.")
    assert delta.character_updates == []


def test_known_character_not_patched(extractor, sample_story):
    delta = extractor.extract(sample_story, "Magnus says hello.")
    assert delta.character_updates == []


# ── Goals ────────────────────────────────────────────────────


def test_goal_completed(extractor, sample_story):
    delta = extractor.extract(sample_story, "Your quest to find the lost amulet is complete.")
    [patch] = delta.goal_updates
    assert (patch.id, patch.status, patch.progress) == ("goal-amulet", "completed", 100)


def test_goal_failed(extractor, sample_story):
    delta = extractor.extract(sample_story, "It is impossible to find the lost amulet now.")
    [patch] = delta.goal_updates
    assert (patch.id, patch.status) == ("goal-amulet", "failed")


def test_goal_progress(extractor, sample_story):
    delta = extractor.extract(
        sample_story, "You make progress. Soon you may find the lost amulet."
    )
    [patch] = delta.goal_updates
    assert (patch.id, patch.status, patch.progress) == ("goal-amulet", None, 50)


def test_goal_discovered(extractor, sample_story):
    delta = extractor.extract(sample_story, "You must learn the truth about this place.")
    [patch] = delta.goal_updates
    assert (patch.id, patch.known_to_player) == ("goal-truth", True)


# ── World state ──────────────────────────────────────────────


def test_location_change_keeps_case(extractor, sample_story):
    delta = extractor.extract(sample_story, "You enter the Old Mill and shake off the rain.")
    assert delta.state_updates.current_location == "Old Mill"


def test_same_location_not_patched(extractor, sample_story):
    delta = extractor.extract(sample_story, "You enter the Crooked Crown Tavern.")
    assert delta.state_updates.current_location is None


def test_reaching_for_things_is_not_travel():
    assert extract_location_change("You reach for your sword.") is None


def test_flag_trigger(extractor, sample_story):
    delta = extractor.extract(sample_story, "The door swings open with a groan.")
    assert delta.state_updates.flags == {"door_opened": True}


def test_stat_changes_floor_at_zero(extractor, sample_story):
    delta = extractor.extract(
        sample_story, "You lose 10 health. You gain 25 experience. Energy decreases by 500."
    )
    assert delta.state_updates.player_stats == {
        "health": 90, "energy": 0, "experience": 25,
    }


def test_nothing_matches_gives_empty_delta(extractor, sample_story, clean_text):
    assert extractor.extract(sample_story, clean_text).is_empty()
