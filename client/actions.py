"""
Action types for the tracker reducer.

Actions are the ONLY way state changes. Each public TrackerStateManager
operation dispatches exactly one action. Actions carry their own
timestamps so the reducer stays pure.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from client.models import Severity, SymptomEntry, TrackerData


@dataclass(frozen=True)
class LoadTrackerData:
    """Replace data with a document read from storage. Clears error."""
    data: TrackerData


@dataclass(frozen=True)
class ToggleTodo:
    todo_id: str
    at: datetime


@dataclass(frozen=True)
class BulkUpdateTodos:
    """Set completed on every matching todo in one transition."""
    todo_ids: Tuple[str, ...]
    completed: bool
    at: datetime


@dataclass(frozen=True)
class AddSymptom:
    entry: SymptomEntry


@dataclass(frozen=True)
class UpdateSymptom:
    """Partial update; None means 'leave unchanged'."""
    symptom_id: str
    at: datetime
    symptom: Optional[str] = None
    severity: Optional[Severity] = None


@dataclass(frozen=True)
class DeleteSymptom:
    symptom_id: str
    at: datetime


@dataclass(frozen=True)
class UpdateNotes:
    notes: str
    at: datetime


@dataclass(frozen=True)
class ResetTracker:
    """Replace data with a fresh seed."""
    data: TrackerData


@dataclass(frozen=True)
class SetLoading:
    loading: bool


@dataclass(frozen=True)
class SetError:
    error: Optional[str]


@dataclass(frozen=True)
class SyncSucceeded:
    """Record a successful sync and clear error."""
    at: datetime


@dataclass(frozen=True)
class SetOnline:
    online: bool


@dataclass(frozen=True)
class CompleteOnboarding:
    pass


# Action union type for type hints
TrackerAction = (
    LoadTrackerData | ToggleTodo | BulkUpdateTodos | AddSymptom | UpdateSymptom
    | DeleteSymptom | UpdateNotes | ResetTracker | SetLoading | SetError
    | SyncSucceeded | SetOnline | CompleteOnboarding
)
