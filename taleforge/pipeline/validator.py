"""Consistency validation of generated text against established facts.

Four independent lexical passes (characters, inventory, location, goals)
whose findings are unioned into one ValidationResult:

    confidence = max(0, 100 - 25 * contradictions - 5 * new_facts)
    is_valid   = no contradictions

This is word and phrase matching, not language understanding. It misses
contradictions that are paraphrased, and it flags sentences where an opposite
trait word describes something other than the character. Both are accepted
limits of the approach.
"""

from __future__ import annotations

import logging
import re

from taleforge.models import (
    Character,
    ContextPackage,
    Goal,
    InventoryItem,
    Story,
    ValidationResult,
    WorldState,
)

from .text import contains_phrase, find_mentions, has_word, name_variants

logger = logging.getLogger(__name__)

CONTRADICTION_PENALTY = 25
NEW_FACT_PENALTY = 5

# Checked in both directions: description has one word, the mention the other.
ANTONYM_PAIRS: list[tuple[str, str]] = [
    ("tall", "short"),
    ("friendly", "hostile"),
    ("young", "elderly"),
    ("brave", "cowardly"),
    ("honest", "deceitful"),
]

DESCRIPTORS = ("wearing", "carrying", "holding", "has", "looks")

SPEECH_VERBS = ("says", "said", "speaks", "tells", "asks", "replies", "looks", "walks")

# Capitalised words that start sentences far more often than they name people.
_NOT_NAMES = {
    "a", "an", "and", "as", "at", "but", "he", "her", "his", "i", "in", "it",
    "its", "on", "she", "that", "the", "their", "then", "there", "they",
    "this", "we", "what", "when", "where", "who", "you", "your",
}

ITEM_CATEGORIES: dict[str, re.Pattern[str]] = {
    "weapon": re.compile(r"\b(sword|weapon|blade|dagger|bow|staff)\b", re.IGNORECASE),
    "potion": re.compile(r"\b(potion|elixir|brew|medicine)\b", re.IGNORECASE),
    "key": re.compile(r"\b(key|lockpick|gem|coin|gold)\b", re.IGNORECASE),
    "armor": re.compile(r"\b(armor|shield|helmet|boots|cloak)\b", re.IGNORECASE),
    "scroll": re.compile(r"\b(scroll|book|map|letter|note)\b", re.IGNORECASE),
}

_LOCATION_PHRASE = re.compile(r"\b(?:in|at|near) the ([^,.!?;]+)", re.IGNORECASE)
_PRESENCE_PHRASES = ("you are in the {}", "you find yourself in the {}", "you enter the {}")


def validate_content(text: str, context: ContextPackage, story: Story) -> ValidationResult:
    """Check generated text against the story. `context` is the package the text was generated from."""
    contradictions: list[str] = []
    new_facts: list[str] = []

    found, facts = check_characters(text, story.characters)
    contradictions.extend(found)
    new_facts.extend(facts)

    found, facts = check_inventory(text, story.inventory)
    contradictions.extend(found)
    new_facts.extend(facts)

    contradictions.extend(check_location(text, story.state))
    contradictions.extend(check_goals(text, story.goals))

    score = confidence_score(len(contradictions), len(new_facts))
    logger.debug(
        "validated story=%s contradictions=%d new_facts=%d score=%d input=%r",
        story.id, len(contradictions), len(new_facts), score, context.player_input,
    )
    return ValidationResult(
        is_valid=not contradictions,
        contradictions=contradictions,
        new_facts=new_facts,
        suggested_corrections=suggest_corrections(contradictions),
        confidence_score=score,
    )


def confidence_score(contradiction_count: int, new_fact_count: int) -> int:
    return max(
        0,
        100 - CONTRADICTION_PENALTY * contradiction_count - NEW_FACT_PENALTY * new_fact_count,
    )


def suggest_corrections(contradictions: list[str]) -> list[str]:
    return [
        f"Fix: {c} — Ensure consistency with established facts" for c in contradictions
    ]


# ---------------------------------------------------------------------------
# Character pass
# ---------------------------------------------------------------------------

def check_characters(
    text: str, characters: list[Character]
) -> tuple[list[str], list[str]]:
    contradictions: list[str] = []
    new_facts: list[str] = []

    for char in characters:
        for mention in find_mentions(text, char.name):
            if contradicts_description(mention, char.description):
                contradictions.append(
                    f'Character {char.name} described inconsistently: "{mention}"'
                )
            info = descriptor_info(mention)
            if info:
                new_facts.append(f"New character info for {char.name}: {info}")

    for name in detect_new_characters(text, characters):
        new_facts.append(f"New character introduced: {name}")

    return contradictions, new_facts


def contradicts_description(mention: str, description: str) -> bool:
    for a, b in ANTONYM_PAIRS:
        if has_word(description, a) and has_word(mention, b):
            return True
        if has_word(description, b) and has_word(mention, a):
            return True
    return False


def descriptor_info(mention: str) -> str | None:
    """`<descriptor> <rest of sentence>` for the first descriptor word present."""
    for descriptor in DESCRIPTORS:
        match = re.search(rf"\b{descriptor}\b(.*)$", mention, re.IGNORECASE)
        if match and match.group(1).strip():
            return f"{descriptor} {match.group(1).strip()}"
    return None


def detect_new_characters(text: str, characters: list[Character]) -> list[str]:
    """Capitalised words next to a speech/action verb that are not part of a known name."""
    known_tokens = {v for c in characters for v in name_variants(c.name)}
    known_tokens |= {t for c in characters for t in c.name.lower().split()}
    lowered = text.lower()

    found: list[str] = []
    for noun in re.findall(r"\b[A-Z][a-z]+\b", text):
        key = noun.lower()
        if key in known_tokens or key in _NOT_NAMES or noun in found:
            continue
        for verb in SPEECH_VERBS:
            if re.search(rf"\b{key} {verb}\b|\b{verb} {key}\b", lowered):
                found.append(noun)
                break
    return found


# ---------------------------------------------------------------------------
# Inventory pass
# ---------------------------------------------------------------------------

def extract_item_mentions(text: str) -> list[str]:
    items: list[str] = []
    for pattern in ITEM_CATEGORIES.values():
        for match in pattern.finditer(text):
            items.append(match.group(1).lower())
    return list(dict.fromkeys(items))


def check_inventory(
    text: str, inventory: list[InventoryItem]
) -> tuple[list[str], list[str]]:
    contradictions: list[str] = []
    new_facts: list[str] = []

    for item in extract_item_mentions(text):
        if any(held.quantity > 0 and has_word(held.name, item) for held in inventory):
            continue
        if implies_possession(text, item):
            contradictions.append(
                f'Content implies player has "{item}" but it\'s not in inventory'
            )
        else:
            new_facts.append(f"New item mentioned: {item}")

    return contradictions, new_facts


def implies_possession(text: str, item: str) -> bool:
    # "you draw your X", "you reach for your X" etc. all contain "your X"
    return has_word(text, f"your {item}")


# ---------------------------------------------------------------------------
# Location pass
# ---------------------------------------------------------------------------

def _normalise_location(location: str) -> str:
    location = " ".join(location.lower().split())
    return location[4:] if location.startswith("the ") else location


def extract_location_references(text: str) -> list[str]:
    return list(dict.fromkeys(m.group(1).strip() for m in _LOCATION_PHRASE.finditer(text)))


def check_location(text: str, state: WorldState) -> list[str]:
    current = state.current_location
    contradictions: list[str] = []
    for location in extract_location_references(text):
        if _normalise_location(location) == _normalise_location(current):
            continue
        if any(contains_phrase(text, p.format(location)) for p in _PRESENCE_PHRASES):
            contradictions.append(
                f'Content implies player is at "{location}" but current location is "{current}"'
            )
    return contradictions


# ---------------------------------------------------------------------------
# Goal pass
# ---------------------------------------------------------------------------

def check_goals(text: str, goals: list[Goal]) -> list[str]:
    contradictions: list[str] = []
    for goal in goals:
        if goal.status == "completed" and contains_phrase(text, f"still need to {goal.title}"):
            contradictions.append(f'Content treats completed goal "{goal.title}" as incomplete')
        if goal.status == "failed" and contains_phrase(text, f"must {goal.title}"):
            contradictions.append(f'Content treats failed goal "{goal.title}" as active')
    return contradictions
