from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Mapping, TypeVar

from .rfp_schemas import SectionKey

# Display and seeding order of the proposal document.
SECTION_ORDER: tuple[SectionKey, ...] = (
    "agency_overview",
    "approach",
    "team",
    "work_samples",
    "plan_timeline",
    "pricing",
    "references",
)

SECTION_LABELS: Mapping[SectionKey, str] = MappingProxyType(
    {
        "agency_overview": "Agency Overview",
        "approach": "Our Approach",
        "team": "Proposed Team",
        "work_samples": "Work Samples",
        "plan_timeline": "Plan & Timeline",
        "pricing": "Investment",
        "references": "References",
    }
)

_INDEX = {k: i for i, k in enumerate(SECTION_ORDER)}

T = TypeVar("T")


def is_section_key(value: object) -> bool:
    return isinstance(value, str) and value in _INDEX


def section_order_index(section_key: str) -> int:
    # Unknown keys sort after the fixed seven rather than raising.
    return _INDEX.get(section_key, len(SECTION_ORDER))


def sort_sections(sections: Iterable[T]) -> list[T]:
    """Order anything with a `sectionKey` attribute by SECTION_ORDER (stable)."""
    return sorted(sections, key=lambda s: section_order_index(str(getattr(s, "sectionKey", ""))))
