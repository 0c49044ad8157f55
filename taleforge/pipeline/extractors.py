"""Fact extraction: turn generated prose into a StateDelta.

FactExtractor is the seam between the reconciler and whatever reads the
text. RegexFactExtractor is the default and only implementation; it works on
phrase patterns and keyword tables. A pattern that does not match contributes
nothing, so extraction never fails: the worst case is an empty delta.

Extracted families:
  inventory   acquisition, loss, consumption (consumables only)
  characters  unknown character introduced by name -> known_to_player
  goals       completion, failure, discovery, +10 progress on "progress"
  world       location change, flag triggers, numeric stat changes
"""

from __future__ import annotations

import logging
import re
from typing import Protocol

from taleforge.models import (
    Character,
    CharacterPatch,
    Goal,
    GoalPatch,
    InventoryItem,
    ItemType,
    StateDelta,
    Story,
    WorldState,
    WorldStatePatch,
)

from .text import contains_phrase, find_mentions, has_word, name_variants

logger = logging.getLogger(__name__)

PROGRESS_STEP = 10


class FactExtractor(Protocol):
    def extract(self, story: Story, text: str) -> StateDelta: ...


class RegexFactExtractor:
    """Pattern-based extraction over the lowercased text."""

    def extract(self, story: Story, text: str) -> StateDelta:
        delta = StateDelta(
            inventory_changes=extract_inventory_changes(text, story.inventory),
            character_updates=extract_character_updates(text, story.characters),
            goal_updates=extract_goal_updates(text, story.goals),
            state_updates=extract_state_updates(text, story.state),
        )
        logger.debug(
            "extracted story=%s items=%d characters=%d goals=%d state=%s",
            story.id,
            len(delta.inventory_changes),
            len(delta.character_updates),
            len(delta.goal_updates),
            sorted(delta.state_updates.model_dump(exclude_none=True)),
        )
        return delta


# ---------------------------------------------------------------------------
# Item names
# ---------------------------------------------------------------------------

_ARTICLE = r"(?:(?:a|an|the|some|your)\s+)?"
# Up to six words; trimmed afterwards at the first stop word.
_ITEM = r"(?P<item>[a-z][a-z\-]*(?:\s+[a-z][a-z\-]*){0,5})"
# One to three words, never an article or "and"; for patterns where the item
# comes before the verb.
_ITEM_SHORT = (
    r"(?P<item>(?!(?:a|an|the|and)\b)[a-z][a-z\-]*"
    r"(?:\s+(?!(?:a|an|the|and)\b)[a-z][a-z\-]*){0,2})"
)

_ACQUIRE_PATTERNS = [
    re.compile(
        r"\byou (?:find|discover|pick up|take|grab|acquire|loot|purchase|buy|"
        rf"receive|obtain|are given) {_ARTICLE}{_ITEM}"
    ),
    re.compile(
        rf"\b(?:a|an|the) {_ITEM_SHORT} (?:appears|materializes) in your "
        r"(?:hand|hands|inventory|pack|bag|pouch)\b"
    ),
]

_LOSS_PATTERNS = [
    re.compile(rf"\byou (?:lose|drop|break|destroy|give away|hand over) {_ARTICLE}{_ITEM}"),
    re.compile(
        rf"\b(?:your|the) {_ITEM_SHORT} "
        r"(?:breaks|shatters|disappears|crumbles|is lost|is stolen|is destroyed)\b"
    ),
]

_USE_PATTERNS = [
    re.compile(
        rf"\byou (?:use|consume|drink|eat|activate|apply|pour|sprinkle) {_ARTICLE}{_ITEM}"
    ),
    re.compile(rf"\b(?:your|the) {_ITEM_SHORT} is (?:used up|consumed|depleted|empty)\b"),
]

# An item name ends before any of these.
_STOP_WORDS = {
    "from", "in", "on", "under", "behind", "by", "among", "inside", "into", "onto",
    "at", "to", "toward", "towards", "with", "within", "near", "beside", "beneath",
    "above", "below", "off", "out", "up", "down", "for", "and", "or", "but", "that",
    "which", "who", "while", "as", "lying", "resting", "sitting", "hanging",
    "tucked", "hidden", "buried", "left", "glinting", "gleaming", "there", "here",
    "before", "after", "then", "again", "back", "away", "instead", "carefully",
    "quickly", "slowly",
}

_ADJECTIVES = {
    "sturdy", "old", "rusty", "small", "large", "big", "little", "tiny", "heavy",
    "worn", "ancient", "shiny", "glowing", "strange", "mysterious", "simple",
    "fine", "long", "broken", "dusty", "battered", "ornate", "new", "sharp",
    "dull", "curious", "odd", "beautiful", "plain", "tattered", "weathered",
    "cracked", "faded", "crumpled", "half-empty", "full",
}

# Matched as whole words against the candidate name.
_BLACKLIST = [
    "slow sip", "quick look", "deep breath", "long glance", "careful step",
    "moment", "second", "minute", "hour", "day", "night", "time",
    "breath", "sip", "drink", "look", "glance", "step", "walk", "run",
    "word", "words", "sentence", "phrase", "sound", "noise",
    "chance", "opportunity", "moment to think", "pause", "rest",
    "thought", "idea", "feeling", "sense", "impression",
    "stairs", "path", "road", "door", "way", "lead", "turn", "seat", "place",
    "stand", "note of", "care", "aim", "hold", "silence", "advantage",
    "it", "them", "him", "her", "yourself", "this", "something", "nothing",
    "anything", "everything", "one",
]

_TYPE_KEYWORDS: list[tuple[ItemType, re.Pattern[str]]] = [
    ("weapon", re.compile(
        r"\b(?:sword|longsword|shortsword|greatsword|blade|dagger|bow|crossbow|axe|"
        r"mace|spear|club|staff|wand)s?\b"
    )),
    ("consumable", re.compile(
        r"\b(?:potion|elixir|food|bread|water|ale|beer|wine|drink|meal|soup|stew|"
        r"fruit|meat|cheese|apple|ration|herb|breath|sip|gulp|bottle|flask|vial)s?\b"
    )),
    ("key", re.compile(r"\b(?:key|keycard|lockpick|pass|card)s?\b")),
    ("tool", re.compile(
        r"\b(?:tool|rope|hammer|shovel|pick|pickaxe|lantern|torch|map|compass|bag|"
        r"pack|pouch)(?:s|es)?\b"
    )),
]


def clean_item_name(raw: str) -> tuple[str, str]:
    """Return (full, core) for a raw captured phrase.

    full: cut at the first stop word, leading articles removed.
    core: full with leading descriptive adjectives removed.
    Either is "" when nothing usable remains.
    """
    words = raw.lower().split()
    kept: list[str] = []
    for word in words:
        if word in _STOP_WORDS:
            break
        kept.append(word)
    while kept and kept[0] in ("a", "an", "the", "some", "your"):
        kept.pop(0)
    full = " ".join(kept)

    core_words = list(kept)
    while len(core_words) > 1 and core_words[0] in _ADJECTIVES:
        core_words.pop(0)
    return full, " ".join(core_words)


def is_valid_item(name: str) -> bool:
    if len(name) < 2 or len(name) > 50:
        return False
    if not re.fullmatch(r"[a-zA-Z\s\-]+", name):
        return False
    return not any(has_word(name, phrase) for phrase in _BLACKLIST)


def guess_item_type(name: str) -> ItemType:
    lowered = name.lower()
    for item_type, pattern in _TYPE_KEYWORDS:
        if pattern.search(lowered):
            return item_type
    return "misc"


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------

def _find_exact(working: dict[str, InventoryItem], *names: str) -> InventoryItem | None:
    for item in working.values():
        if item.name.lower() in names:
            return item
    return None


def _find_containing(working: dict[str, InventoryItem], *names: str) -> InventoryItem | None:
    for name in names:
        if not name:
            continue
        for item in working.values():
            if item.quantity > 0 and has_word(item.name, name):
                return item
    return None


def extract_inventory_changes(text: str, inventory: list[InventoryItem]) -> list[InventoryItem]:
    """Full replacement records for every item whose quantity changed, plus new items.

    Matches are applied in text order against a working copy of the
    inventory, so "you find a potion ... you drink the potion" nets out.
    """
    lowered = text.lower()
    events: list[tuple[int, str, str]] = []
    for kind, patterns in (
        ("acquire", _ACQUIRE_PATTERNS),
        ("lose", _LOSS_PATTERNS),
        ("use", _USE_PATTERNS),
    ):
        for pattern in patterns:
            for match in pattern.finditer(lowered):
                events.append((match.start(), kind, match.group("item")))
    events.sort(key=lambda e: e[0])

    working = {item.id: item.model_copy(deep=True) for item in inventory}
    changed: list[str] = []

    for _, kind, raw in events:
        full, core = clean_item_name(raw)
        if not core:
            continue

        if kind == "acquire":
            if not (is_valid_item(full) and is_valid_item(core)):
                continue
            existing = _find_exact(working, full, core)
            if existing:
                existing.quantity += 1
                target = existing
            else:
                target = InventoryItem(
                    name=core,
                    description=f"A {core} you acquired during your adventure.",
                    type=guess_item_type(core),
                    quantity=1,
                )
                working[target.id] = target
        else:
            existing = _find_containing(working, full, core)
            if existing is None:
                continue
            if kind == "use" and existing.type != "consumable":
                continue
            existing.quantity = max(0, existing.quantity - 1)
            target = existing

        if target.id not in changed:
            changed.append(target.id)

    return [working[item_id] for item_id in changed]


# ---------------------------------------------------------------------------
# Characters
# ---------------------------------------------------------------------------

_INTRODUCTION_PHRASES = (
    "you meet {}",
    "you encounter {}",
    "you see {}",
    "{} introduces",
    "{} approaches",
    "{} speaks",
    "{} says",
    "a person named {}",
    "someone called {}",
)


def implies_introduction(text: str, name: str) -> bool:
    return any(
        has_word(text, phrase.format(variant))
        for variant in name_variants(name)
        for phrase in _INTRODUCTION_PHRASES
    )


def extract_character_updates(text: str, characters: list[Character]) -> list[CharacterPatch]:
    updates: list[CharacterPatch] = []
    for char in characters:
        if char.known_to_player or not find_mentions(text, char.name):
            continue
        if implies_introduction(text, char.name):
            updates.append(CharacterPatch(id=char.id, known_to_player=True))
    return updates


# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------

_COMPLETION_PHRASES = ("{} is complete", "you have completed {}", "{} accomplished")
_FAILURE_PHRASES = ("{} failed", "impossible to {}", "{} cannot be done")
_DISCOVERY_PHRASES = ("you must {}", "your mission is to {}", "you need to {}")


def clamp_progress(value: int) -> int:
    return min(100, max(0, value))


def extract_goal_updates(text: str, goals: list[Goal]) -> list[GoalPatch]:
    updates: list[GoalPatch] = []
    mentions_progress = "progress" in text.lower()

    for goal in goals:
        title = goal.title
        if not title.strip() or not contains_phrase(text, title):
            continue

        patch = GoalPatch(id=goal.id)
        if goal.status != "completed" and any(
            contains_phrase(text, p.format(title)) for p in _COMPLETION_PHRASES
        ):
            patch.status = "completed"
            patch.progress = 100
        elif goal.status not in ("completed", "failed") and any(
            contains_phrase(text, p.format(title)) for p in _FAILURE_PHRASES
        ):
            patch.status = "failed"
        elif goal.status != "completed" and mentions_progress:
            progress = clamp_progress(goal.progress + PROGRESS_STEP)
            if progress != goal.progress:
                patch.progress = progress

        if not goal.known_to_player and any(
            contains_phrase(text, p.format(title)) for p in _DISCOVERY_PHRASES
        ):
            patch.known_to_player = True

        if patch.model_dump(exclude_none=True).keys() - {"id"}:
            updates.append(patch)
    return updates


# ---------------------------------------------------------------------------
# World state
# ---------------------------------------------------------------------------

_LOCATION_PATTERNS = [
    re.compile(r"\byou (?:enter|arrive at|reach|travel to) (?:the )?([^,.!?;:\"]+)", re.IGNORECASE),
    re.compile(r"\byou find yourself in (?:the )?([^,.!?;:\"]+)", re.IGNORECASE),
]
_LOCATION_CUT = re.compile(
    r"\s+(?:and|where|as|while|with|to|which|that|but|just|only)\b.*$", re.IGNORECASE
)
_NOT_A_PLACE = {"for", "out", "your", "his", "her", "their", "its", "my", "into"}

FLAG_TRIGGERS: list[tuple[str, str]] = [
    ("door opens", "door_opened"),
    ("door swings open", "door_opened"),
    ("secret revealed", "secret_discovered"),
    ("secret is revealed", "secret_discovered"),
]

_STAT_ALIASES = {"hp": "health", "xp": "experience"}
_STAT_WORDS = r"(health|hp|energy|experience|xp)"
_STAT_GAIN_LOSS = re.compile(rf"\byou (gain|lose) (\d+) {_STAT_WORDS}\b")
_STAT_CHANGE_BY = re.compile(
    rf"\b{_STAT_WORDS} (increases|goes up|decreases|goes down) by (\d+)\b"
)


def _normalise_location(location: str) -> str:
    location = " ".join(location.lower().split())
    return location[4:] if location.startswith("the ") else location


def extract_location_change(text: str) -> str | None:
    for pattern in _LOCATION_PATTERNS:
        for match in pattern.finditer(text):
            location = _LOCATION_CUT.sub("", match.group(1)).strip()
            if not location or location.split()[0].lower() in _NOT_A_PLACE:
                continue
            return location
    return None


def extract_flag_changes(text: str, flags: dict[str, bool]) -> dict[str, bool]:
    changes: dict[str, bool] = {}
    for phrase, flag in FLAG_TRIGGERS:
        if not flags.get(flag) and contains_phrase(text, phrase):
            changes[flag] = True
    return changes


def extract_stat_changes(text: str, stats: dict[str, int | float]) -> dict[str, int | float]:
    lowered = text.lower()
    deltas: dict[str, int] = {}
    for verb, amount, stat in _STAT_GAIN_LOSS.findall(lowered):
        stat = _STAT_ALIASES.get(stat, stat)
        sign = 1 if verb == "gain" else -1
        deltas[stat] = deltas.get(stat, 0) + sign * int(amount)
    for stat, verb, amount in _STAT_CHANGE_BY.findall(lowered):
        stat = _STAT_ALIASES.get(stat, stat)
        sign = 1 if verb in ("increases", "goes up") else -1
        deltas[stat] = deltas.get(stat, 0) + sign * int(amount)

    return {
        stat: max(0, stats.get(stat, 0) + delta)
        for stat, delta in deltas.items()
        if delta
    }


def extract_state_updates(text: str, state: WorldState) -> WorldStatePatch:
    patch = WorldStatePatch()

    location = extract_location_change(text)
    if location and _normalise_location(location) != _normalise_location(state.current_location):
        patch.current_location = location

    stat_changes = extract_stat_changes(text, state.player_stats)
    if stat_changes:
        patch.player_stats = {**state.player_stats, **stat_changes}

    flag_changes = extract_flag_changes(text, state.flags)
    if flag_changes:
        patch.flags = {**state.flags, **flag_changes}

    return patch
