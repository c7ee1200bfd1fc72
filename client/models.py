"""
Tracker data model - todos, symptoms, notes and the process-local state

Design principles:
- Frozen dataclasses; the reducer builds new values, never mutates
- Tuples for ordered sequences (todos in seed order, symptoms newest first)
- JSON uses camelCase keys and ISO-8601 timestamps (local storage format)
- TrackerData is persisted; TrackerState adds transient fields that are not
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from common.timestamps import parse_timestamp

# Local storage keys
TRACKER_STORAGE_KEY = "aftercare-tracker"
PROGRESS_STORAGE_KEY = "aftercare-progress"
ONBOARDING_STORAGE_KEY = "aftercare-onboarding-complete"

# User-facing error messages (single error slot)
OFFLINE_MESSAGE = "You are currently offline. Changes will be saved locally."
CANNOT_SYNC_OFFLINE = "Cannot sync while offline"
SYNC_FAILED_PREFIX = "Sync failed: "
SAVE_FAILED_MESSAGE = "Failed to save data locally"
LOAD_FAILED_MESSAGE = "Failed to load saved data"

CONNECTIVITY_ERRORS = frozenset({OFFLINE_MESSAGE, CANNOT_SYNC_OFFLINE})

SEED_TODOS = (
    ("1", "Avoid lifting more than 1 gallon of milk"),
    ("2", "Take prescribed pain medications as directed"),
    ("3", "Keep incision clean and dry"),
    ("4", "Attend follow-up appointment"),
    ("5", "Stay well hydrated (8-10 glasses of water daily)"),
)


class Severity(str, Enum):
    """Self-reported symptom severity."""
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"


def _dump_time(moment: Optional[datetime]) -> Optional[str]:
    return moment.isoformat() if moment is not None else None


def _load_time(value) -> Optional[datetime]:
    return parse_timestamp(value) if value is not None else None


@dataclass(frozen=True)
class TodoItem:
    """
    Daily care task.

    Attributes:
        id: Stable identifier ("1".."5" for the seed list)
        text: Label (never changes)
        completed: Whether the patient checked it off
        completed_at: When it was last checked off; None while incomplete
    """
    id: str
    text: str
    completed: bool = False
    completed_at: Optional[datetime] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'text': self.text,
            'completed': self.completed,
            'completedAt': _dump_time(self.completed_at),
        }

    @staticmethod
    def from_json(data: Dict[str, Any]) -> "TodoItem":
        return TodoItem(
            id=str(data['id']),
            text=data['text'],
            completed=bool(data.get('completed', False)),
            completed_at=_load_time(data.get('completedAt')),
        )


@dataclass(frozen=True)
class SymptomEntry:
    """
    Logged symptom.

    Attributes:
        id: Derived from creation time in milliseconds, unique per session
        symptom: Trimmed, non-empty description
        severity: Severity level
        logged_at: When it was logged
    """
    id: str
    symptom: str
    severity: Severity
    logged_at: datetime

    def to_json(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'symptom': self.symptom,
            'severity': self.severity.value,
            'loggedAt': _dump_time(self.logged_at),
        }

    @staticmethod
    def from_json(data: Dict[str, Any]) -> "SymptomEntry":
        return SymptomEntry(
            id=str(data['id']),
            symptom=data['symptom'],
            severity=Severity(data['severity']),
            logged_at=_load_time(data['loggedAt']),
        )


@dataclass(frozen=True)
class TrackerData:
    """
    Persisted tracker aggregate.

    last_updated is bumped on every change to todos, symptoms or notes.
    """
    todos: Tuple[TodoItem, ...]
    symptoms: Tuple[SymptomEntry, ...]
    notes: str
    last_updated: datetime

    def to_json(self) -> Dict[str, Any]:
        return {
            'todos': [todo.to_json() for todo in self.todos],
            'symptoms': [entry.to_json() for entry in self.symptoms],
            'notes': self.notes,
            'lastUpdated': _dump_time(self.last_updated),
        }

    @staticmethod
    def from_json(data: Dict[str, Any]) -> "TrackerData":
        """
        Raises:
            KeyError, TypeError, ValueError: If data is not a tracker document
        """
        return TrackerData(
            todos=tuple(TodoItem.from_json(t) for t in data['todos']),
            symptoms=tuple(SymptomEntry.from_json(s) for s in data.get('symptoms', [])),
            notes=data.get('notes', '') or '',
            last_updated=_load_time(data['lastUpdated']),
        )


def initial_tracker_data(now: datetime) -> TrackerData:
    """Fresh tracker: the seed todos, no symptoms, empty notes."""
    return TrackerData(
        todos=tuple(TodoItem(id=todo_id, text=text) for todo_id, text in SEED_TODOS),
        symptoms=(),
        notes='',
        last_updated=now,
    )


def calculate_progress(todos) -> float:
    """
    Percentage of completed todos.

    Returns:
        float: 0..100, 0 when there are no todos
    """
    total = len(todos)
    if total == 0:
        return 0.0
    completed = sum(1 for todo in todos if todo.completed)
    return completed * 100 / total


def progress_summary(data: TrackerData) -> Dict[str, Any]:
    """Lightweight projection stored next to the full document."""
    completed = sum(1 for todo in data.todos if todo.completed)
    return {
        'progress': calculate_progress(data.todos),
        'totalTasks': len(data.todos),
        'completedTasks': completed,
        'lastUpdated': _dump_time(data.last_updated),
    }


@dataclass(frozen=True)
class TrackerState:
    """
    Everything the tracker UI reads.

    Attributes:
        data: Persisted tracker data
        loading: True only while a sync is in flight
        error: Last error message (single slot)
        last_synced_with_backend: Time of the last successful sync
        is_online: Mirrors the connectivity signal
        progress: Derived from data.todos
        onboarding_complete: Sticky flag, persisted on its own key
    """
    data: TrackerData
    loading: bool = False
    error: Optional[str] = None
    last_synced_with_backend: Optional[datetime] = None
    is_online: bool = True
    progress: float = field(default=0.0)
    onboarding_complete: bool = False
