"""Reference question categories."""

from dataclasses import dataclass
from enum import Enum

from ref_tally.domain.errors import UnknownCategory


@dataclass(frozen=True)
class QuestionCategory:
    """Declarative question category definition."""

    id: str
    name: str
    description: str
    example: str


class QuestionType(Enum):
    """Enum of question categories in display order (single source of truth)."""

    DIRECTIONAL = QuestionCategory(
        "directional",
        "Directional",
        "Asking for physical locations within the building.",
        'Example: "Where is the printer?" or "Is the bathroom on this floor?"',
    )
    QUICK_FACT = QuestionCategory(
        "quick_fact",
        "Quick Fact/Ready Ref.",
        "Simple questions answerable with a quick search or readily available fact.",
        'Example: "What year did X author win that award?" or '
        '"What is the phone number for the city council?"',
    )
    PROCEDURAL = QuestionCategory(
        "procedural",
        "Policy/Procedural",
        "Questions about rules, services, or how to use a basic service.",
        'Example: "How long can I borrow this?" or "Can I reserve a study room?"',
    )
    RESEARCH = QuestionCategory(
        "research",
        "Research/Complex",
        "In-depth assistance requiring search strategy, source evaluation, "
        "or specialized tools.",
        'Example: "I need to find five scholarly articles on climate policy." '
        'or "Help me narrow down this topic."',
    )
    TECHNOLOGY = QuestionCategory(
        "technology",
        "Technology/Equip.",
        "Troubleshooting or instruction on public equipment and software.",
        'Example: "How do I scan this document?" or '
        "\"My laptop won't connect to the Wi-Fi.\"",
    )


def question_categories() -> list[QuestionCategory]:
    """Return all categories in display order."""
    return [entry.value for entry in QuestionType]


def category_ids() -> list[str]:
    """Return category ids in display order."""
    return [category.id for category in question_categories()]


def get_category(category_id: str) -> QuestionCategory:
    """Return the category for an id or raise UnknownCategory."""
    for category in question_categories():
        if category.id == category_id:
            return category
    raise UnknownCategory(category_id)


def zero_counts() -> dict[str, int]:
    """Return a count mapping with every category at zero."""
    return {category_id: 0 for category_id in category_ids()}


def _check_unique_ids() -> None:
    ids = category_ids()
    if len(ids) != len(set(ids)):
        raise ValueError(f"Duplicate question category ids: {ids}")


_check_unique_ids()
