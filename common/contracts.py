"""
Semantic contracts for brochure content.

This module defines immutable data structures shared by the Content Store,
the HTTP API and the presentation layer. They define shape and semantics
without enforcing rules.

Design principles:
- Frozen dataclasses (immutable after creation)
- Explicit tagged variant for sections (list vs timeline)
- No dependencies on other modules
- Lossless JSON round trip (section order and timeline order preserved)

Contents:
- SectionKind: Tag carried by every section
- ListSection: Bulleted items ("list" or "warning" kind)
- TimelineSection: Ordered (label, text) pairs
- Brochure: Complete care content for one procedure
- BrochureSummary: Listing entry for GET /brochures

Usage:
    from common.contracts import Brochure, ListSection, TimelineSection
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Tuple, Union


class SectionKind(str, Enum):
    """
    Rendering tag for a brochure section.

    LIST:
        Plain bulleted items.
    WARNING:
        Bulleted items flagged as urgent (call your doctor).
    TIMELINE:
        Ordered label/text pairs (schedules, healing milestones).
    """
    LIST = "list"
    WARNING = "warning"
    TIMELINE = "timeline"


@dataclass(frozen=True)
class ListSection:
    """
    Bulleted section.

    Attributes:
        key: Stable section identifier (e.g. 'painManagement')
        title: Human-readable heading
        items: Bullet texts, in display order
        kind: SectionKind.LIST or SectionKind.WARNING
    """
    key: str
    title: str
    items: Tuple[str, ...]
    kind: SectionKind = SectionKind.LIST

    def to_json(self) -> Dict[str, Any]:
        return {
            'key': self.key,
            'title': self.title,
            'kind': self.kind.value,
            'items': list(self.items),
        }


@dataclass(frozen=True)
class TimelineSection:
    """
    Ordered label/text section.

    Attributes:
        key: Stable section identifier (e.g. 'healingTimeline')
        title: Human-readable heading
        entries: Tuple of (label, text) pairs. Tuple instead of dict so the
            source order is part of the contract.
    """
    key: str
    title: str
    entries: Tuple[Tuple[str, str], ...]
    kind: SectionKind = SectionKind.TIMELINE

    def to_json(self) -> Dict[str, Any]:
        return {
            'key': self.key,
            'title': self.title,
            'kind': self.kind.value,
            'entries': [[label, text] for label, text in self.entries],
        }


Section = Union[ListSection, TimelineSection]


def section_from_json(data: Dict[str, Any]) -> Section:
    """
    Build a section from its JSON form, dispatching on the 'kind' tag.

    Args:
        data: Dict with key, title, kind and items/entries

    Returns:
        ListSection or TimelineSection

    Raises:
        ValueError: If kind is unknown or the payload does not match it
    """
    try:
        kind = SectionKind(data.get('kind', SectionKind.LIST.value))
    except ValueError:
        raise ValueError(f"Unknown section kind: {data.get('kind')!r}")

    if kind is SectionKind.TIMELINE:
        entries = data.get('entries')
        if not isinstance(entries, list):
            raise ValueError(f"Timeline section {data.get('key')!r} needs an 'entries' list")
        return TimelineSection(
            key=data['key'],
            title=data['title'],
            entries=tuple((str(label), str(text)) for label, text in entries),
        )

    items = data.get('items')
    if not isinstance(items, list):
        raise ValueError(f"List section {data.get('key')!r} needs an 'items' list")
    return ListSection(
        key=data['key'],
        title=data['title'],
        items=tuple(str(item) for item in items),
        kind=kind,
    )


@dataclass(frozen=True)
class BrochureSummary:
    """Listing entry: id, title and revision date of a brochure."""
    id: str
    title: str
    last_updated: str

    def to_json(self) -> Dict[str, Any]:
        return {'id': self.id, 'title': self.title, 'lastUpdated': self.last_updated}


@dataclass(frozen=True)
class Brochure:
    """
    Post-operative care content for one procedure type.

    Attributes:
        id: Procedure identifier (e.g. 'myomectomy')
        title: Brochure heading
        last_updated: Content revision date (ISO date string)
        sections: Sections in display order
    """
    id: str
    title: str
    last_updated: str
    sections: Tuple[Section, ...]

    def summary(self) -> BrochureSummary:
        return BrochureSummary(id=self.id, title=self.title, last_updated=self.last_updated)

    def get_section(self, key: str):
        """Return the section with the given key, or None."""
        for section in self.sections:
            if section.key == key:
                return section
        return None

    def to_json(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'lastUpdated': self.last_updated,
            'sections': [section.to_json() for section in self.sections],
        }

    @staticmethod
    def from_json(data: Dict[str, Any], brochure_id: str = None) -> "Brochure":
        """
        Build a Brochure from its JSON form.

        Args:
            data: Brochure dict (title, lastUpdated, sections)
            brochure_id: Identifier to use when data carries no 'id'

        Returns:
            Brochure

        Raises:
            ValueError: If the brochure or one of its sections is malformed
        """
        identifier = data.get('id', brochure_id)
        if not identifier:
            raise ValueError("Brochure has no id")
        if 'title' not in data:
            raise ValueError(f"Brochure {identifier!r} has no title")

        return Brochure(
            id=identifier,
            title=data['title'],
            last_updated=data.get('lastUpdated', ''),
            sections=tuple(section_from_json(s) for s in data.get('sections', [])),
        )
