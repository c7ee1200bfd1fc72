"""
Tracker reducer - pure state transitions

Responsibilities:
- Apply one action to one TrackerState, returning the next state
- Keep derived fields consistent (progress follows todos)
- Bump data.last_updated on every todo/symptom/notes change

Design principles:
- Pure: no I/O, no clock reads (actions carry timestamps)
- No-op actions return the SAME state object; callers rely on identity
  to skip persistence writes and notifications
- Unknown actions are ignored
"""

import logging
from dataclasses import replace

from client.actions import (
    AddSymptom,
    BulkUpdateTodos,
    CompleteOnboarding,
    DeleteSymptom,
    LoadTrackerData,
    ResetTracker,
    SetError,
    SetLoading,
    SetOnline,
    SyncSucceeded,
    ToggleTodo,
    UpdateNotes,
    UpdateSymptom,
)
from client.models import CONNECTIVITY_ERRORS, OFFLINE_MESSAGE, TrackerState, calculate_progress

logger = logging.getLogger(__name__)


def _with_data(state: TrackerState, data) -> TrackerState:
    return replace(state, data=data, progress=calculate_progress(data.todos))


# ========================
# Data handlers
# ========================

def _load_tracker_data(state, action: LoadTrackerData):
    return replace(_with_data(state, action.data), error=None)


def _toggle_todo(state, action: ToggleTodo):
    if not any(todo.id == action.todo_id for todo in state.data.todos):
        return state

    def toggled(todo):
        if todo.id != action.todo_id:
            return todo
        if todo.completed:
            return replace(todo, completed=False, completed_at=None)
        return replace(todo, completed=True, completed_at=action.at)

    todos = tuple(toggled(todo) for todo in state.data.todos)
    return _with_data(state, replace(state.data, todos=todos, last_updated=action.at))


def _bulk_update_todos(state, action: BulkUpdateTodos):
    targets = set(action.todo_ids)
    if not any(todo.id in targets for todo in state.data.todos):
        return state

    def updated(todo):
        if todo.id not in targets or todo.completed == action.completed:
            return todo
        return replace(
            todo,
            completed=action.completed,
            completed_at=action.at if action.completed else None,
        )

    todos = tuple(updated(todo) for todo in state.data.todos)
    return _with_data(state, replace(state.data, todos=todos, last_updated=action.at))


def _add_symptom(state, action: AddSymptom):
    symptoms = (action.entry,) + state.data.symptoms
    return replace(state, data=replace(state.data, symptoms=symptoms, last_updated=action.entry.logged_at))


def _update_symptom(state, action: UpdateSymptom):
    if not any(entry.id == action.symptom_id for entry in state.data.symptoms):
        return state

    changes = {}
    if action.symptom is not None:
        changes['symptom'] = action.symptom
    if action.severity is not None:
        changes['severity'] = action.severity
    if not changes:
        return state

    symptoms = tuple(
        replace(entry, **changes) if entry.id == action.symptom_id else entry
        for entry in state.data.symptoms
    )
    return replace(state, data=replace(state.data, symptoms=symptoms, last_updated=action.at))


def _delete_symptom(state, action: DeleteSymptom):
    symptoms = tuple(entry for entry in state.data.symptoms if entry.id != action.symptom_id)
    if len(symptoms) == len(state.data.symptoms):
        return state
    return replace(state, data=replace(state.data, symptoms=symptoms, last_updated=action.at))


def _update_notes(state, action: UpdateNotes):
    return replace(state, data=replace(state.data, notes=action.notes, last_updated=action.at))


def _reset_tracker(state, action: ResetTracker):
    return _with_data(state, action.data)


# ========================
# Status handlers
# ========================

def _set_loading(state, action: SetLoading):
    if state.loading == action.loading:
        return state
    return replace(state, loading=action.loading)


def _set_error(state, action: SetError):
    if state.error == action.error:
        return state
    return replace(state, error=action.error)


def _sync_succeeded(state, action: SyncSucceeded):
    return replace(state, last_synced_with_backend=action.at, error=None)


def _set_online(state, action: SetOnline):
    if not action.online:
        return replace(state, is_online=False, error=OFFLINE_MESSAGE)
    # Only connectivity errors are cleared; others stay visible
    error = None if state.error in CONNECTIVITY_ERRORS else state.error
    return replace(state, is_online=True, error=error)


def _complete_onboarding(state, action: CompleteOnboarding):
    if state.onboarding_complete:
        return state
    return replace(state, onboarding_complete=True)


_HANDLERS = {
    LoadTrackerData: _load_tracker_data,
    ToggleTodo: _toggle_todo,
    BulkUpdateTodos: _bulk_update_todos,
    AddSymptom: _add_symptom,
    UpdateSymptom: _update_symptom,
    DeleteSymptom: _delete_symptom,
    UpdateNotes: _update_notes,
    ResetTracker: _reset_tracker,
    SetLoading: _set_loading,
    SetError: _set_error,
    SyncSucceeded: _sync_succeeded,
    SetOnline: _set_online,
    CompleteOnboarding: _complete_onboarding,
}


def tracker_reducer(state: TrackerState, action) -> TrackerState:
    """
    Compute the next state.

    Args:
        state: Current state
        action: One of the client.actions types

    Returns:
        TrackerState: New state, or `state` itself when nothing changed
    """
    handler = _HANDLERS.get(type(action))
    if handler is None:
        logger.warning(f"Ignoring unknown tracker action: {type(action).__name__}")
        return state
    return handler(state, action)
