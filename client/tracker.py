"""
Tracker State Manager - authoritative client-side recovery tracking state

Responsibilities:
- Own the single in-memory TrackerState (todos, symptoms, notes, progress,
  onboarding, sync status)
- Write every data change through to local storage
- Push a lossy projection to the backend on request (one-way sync)
- Track connectivity signals

Design principles:
- Every public operation dispatches exactly one action (one transition,
  one notification, at most one storage write)
- Operations never raise; failures land in state.error (single slot)
- The in-memory state stays authoritative when storage writes fail
- Sync is single-flight: a call made while one is in flight is rejected

Concurrency:
- Runs on one asyncio event loop. sync_with_backend() suspends only on the
  HTTP call (run in a worker thread); local mutations made meanwhile are
  applied and persisted immediately.

Exception to "never raise":
- use_tracker() outside a TrackerProvider raises RuntimeError
"""

import asyncio
import contextvars
import json
import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

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
from client.api import ApiError
from client.models import (
    CANNOT_SYNC_OFFLINE,
    LOAD_FAILED_MESSAGE,
    ONBOARDING_STORAGE_KEY,
    PROGRESS_STORAGE_KEY,
    SAVE_FAILED_MESSAGE,
    SYNC_FAILED_PREFIX,
    TRACKER_STORAGE_KEY,
    Severity,
    SymptomEntry,
    TrackerData,
    TrackerState,
    calculate_progress,
    initial_tracker_data,
    progress_summary,
)
from client.reducer import tracker_reducer
from client.storage import StorageError
from client.sync import DEFAULT_PROCEDURE_TYPE, build_sync_payload

logger = logging.getLogger(__name__)

Listener = Callable[[TrackerState], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TrackerStateManager:
    """
    Reducer-driven tracker state with write-through persistence.

    Args:
        api: Object with create_tracker_entry(payload) (TrackerApiClient)
        storage: Local store with get_item/set_item (JsonFileStorage, MemoryStorage)
        clock: Returns the current aware datetime (injected in tests)
        online: Initial connectivity
        procedure_type: Sent with every sync
        load: Read local storage on construction
    """

    def __init__(self, api, storage, clock: Callable[[], datetime] = None, online: bool = True,
                 procedure_type: str = DEFAULT_PROCEDURE_TYPE, load: bool = True):
        self._api = api
        self._storage = storage
        self._clock = clock or _utc_now
        self.procedure_type = procedure_type
        self._listeners: List[Listener] = []
        self._last_symptom_ms = 0

        self._state = TrackerState(data=initial_tracker_data(self._clock()), is_online=online)

        if load:
            self.load_from_storage()

        logger.info(f"Tracker state manager initialized (online={online})")

    # ========================
    # State access
    # ========================

    @property
    def state(self) -> TrackerState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener called with the new state after each transition.

        Returns:
            Callable that unregisters the listener
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ========================
    # Private helpers
    # ========================

    def _dispatch(self, action, persist: bool = True) -> TrackerState:
        previous = self._state
        new_state = tracker_reducer(previous, action)
        if new_state is previous:
            return previous

        self._state = new_state
        if persist and new_state.data is not previous.data:
            self._write_through(new_state.data)

        self._notify()
        return self._state

    def _notify(self) -> None:
        """Call every listener; one failing listener does not stop the others."""
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception as e:
                logger.exception(f"Tracker listener failed: {e}")

    def _write_through(self, data: TrackerData) -> None:
        """Mirror data to storage; a failure only sets the error slot."""
        try:
            self._storage.set_item(TRACKER_STORAGE_KEY, json.dumps(data.to_json()))
            self._storage.set_item(PROGRESS_STORAGE_KEY, json.dumps(progress_summary(data)))
        except StorageError as e:
            logger.error(f"Error saving to local storage: {e}")
            self._state = tracker_reducer(self._state, SetError(SAVE_FAILED_MESSAGE))

    def _next_symptom_id(self, now: datetime) -> str:
        millis = int(now.timestamp() * 1000)
        if millis <= self._last_symptom_ms:
            millis = self._last_symptom_ms + 1
        self._last_symptom_ms = millis
        return str(millis)

    def _remember_symptom_ids(self, symptoms: Iterable[SymptomEntry]) -> None:
        for entry in symptoms:
            if entry.id.isdigit():
                self._last_symptom_ms = max(self._last_symptom_ms, int(entry.id))

    @staticmethod
    def _parse_severity(severity) -> Optional[Severity]:
        try:
            return Severity(severity)
        except ValueError:
            return None

    # ========================
    # Storage
    # ========================

    def load_from_storage(self) -> None:
        """
        Seed state from local storage.

        Missing data keeps the current state. Unreadable data keeps it too
        and sets error to LOAD_FAILED_MESSAGE.
        """
        try:
            raw = self._storage.get_item(TRACKER_STORAGE_KEY)
            onboarding = self._storage.get_item(ONBOARDING_STORAGE_KEY)
        except StorageError as e:
            logger.error(f"Error loading from local storage: {e}")
            self._dispatch(SetError(LOAD_FAILED_MESSAGE))
            return

        if onboarding == "true":
            self._dispatch(CompleteOnboarding(), persist=False)

        if raw is None:
            return

        try:
            data = TrackerData.from_json(json.loads(raw))
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Error loading from local storage: {e}")
            self._dispatch(SetError(LOAD_FAILED_MESSAGE))
            return

        self._remember_symptom_ids(data.symptoms)
        self._dispatch(LoadTrackerData(data), persist=False)
        logger.info(f"Loaded tracker from local storage ({len(data.symptoms)} symptom(s))")

    def save_to_storage(self) -> None:
        """Write the current data to storage now."""
        self._write_through(self._state.data)
        self._notify()

    # ========================
    # Todos
    # ========================

    def toggle_todo(self, todo_id: str) -> None:
        """Flip one todo. Unknown ids are ignored."""
        self._dispatch(ToggleTodo(todo_id=todo_id, at=self._clock()))

    def bulk_update_todos(self, todo_ids: Iterable[str], completed: bool) -> None:
        """Set completed on all matching todos in a single transition."""
        self._dispatch(BulkUpdateTodos(todo_ids=tuple(todo_ids), completed=bool(completed), at=self._clock()))

    def calculate_progress(self) -> float:
        return calculate_progress(self._state.data.todos)

    # ========================
    # Symptoms and notes
    # ========================

    def add_symptom(self, symptom: str, severity) -> None:
        """
        Log a symptom at the front of the list.

        Blank text is ignored. An unknown severity sets error and adds nothing.
        """
        if not isinstance(symptom, str) or not symptom.strip():
            logger.debug("Ignoring blank symptom")
            return

        level = self._parse_severity(severity)
        if level is None:
            self._dispatch(SetError(f"Invalid severity: {severity}"))
            return

        now = self._clock()
        entry = SymptomEntry(
            id=self._next_symptom_id(now),
            symptom=symptom.strip(),
            severity=level,
            logged_at=now,
        )
        self._dispatch(AddSymptom(entry))

    def update_symptom(self, symptom_id: str, symptom: str = None, severity=None) -> None:
        """
        Partially update a symptom. Unknown ids are ignored.

        Args:
            symptom_id: Entry to update
            symptom: New text (blank text is ignored)
            severity: New severity
        """
        text = None
        if symptom is not None:
            if not isinstance(symptom, str) or not symptom.strip():
                logger.debug(f"Ignoring blank replacement text for symptom {symptom_id}")
                return
            text = symptom.strip()

        level = None
        if severity is not None:
            level = self._parse_severity(severity)
            if level is None:
                self._dispatch(SetError(f"Invalid severity: {severity}"))
                return

        self._dispatch(UpdateSymptom(symptom_id=symptom_id, at=self._clock(), symptom=text, severity=level))

    def delete_symptom(self, symptom_id: str) -> None:
        self._dispatch(DeleteSymptom(symptom_id=symptom_id, at=self._clock()))

    def update_notes(self, notes: str) -> None:
        """Replace notes entirely."""
        self._dispatch(UpdateNotes(notes=notes if isinstance(notes, str) else str(notes), at=self._clock()))

    # ========================
    # Lifecycle
    # ========================

    def complete_onboarding(self) -> None:
        """Persist the sticky onboarding flag and set it in state."""
        try:
            self._storage.set_item(ONBOARDING_STORAGE_KEY, "true")
        except StorageError as e:
            logger.error(f"Error saving onboarding flag: {e}")
            self._dispatch(SetError(SAVE_FAILED_MESSAGE))
            return
        self._dispatch(CompleteOnboarding(), persist=False)

    def reset_tracker(self) -> None:
        """Back to the seed data. Onboarding and last sync time are kept."""
        self._dispatch(ResetTracker(initial_tracker_data(self._clock())))

    # ========================
    # Connectivity
    # ========================

    def handle_online(self) -> None:
        self._dispatch(SetOnline(True), persist=False)

    def handle_offline(self) -> None:
        self._dispatch(SetOnline(False), persist=False)

    # ========================
    # Sync
    # ========================

    async def sync_with_backend(self, patient_id: str) -> bool:
        """
        Push the current symptoms/notes projection to the backend.

        Args:
            patient_id: Patient identifier sent with the record

        Returns:
            bool: True on success. False when offline, already syncing, or
                  the request failed (see state.error).
        """
        if self._state.loading:
            logger.warning("Sync already in progress; ignoring overlapping request")
            return False

        if not self._state.is_online:
            self._dispatch(SetError(CANNOT_SYNC_OFFLINE))
            return False

        try:
            self._dispatch(SetLoading(True))
            payload = build_sync_payload(self._state.data, patient_id, self.procedure_type)
            logger.info(f"Syncing {len(payload['symptoms'])} symptom(s) for patient {patient_id}")
            await asyncio.to_thread(self._api.create_tracker_entry, payload)
            self._dispatch(SyncSucceeded(at=self._clock()))
            logger.info("Sync succeeded")
            return True
        except ApiError as e:
            logger.error(f"Sync failed: {e}")
            self._dispatch(SetError(f"{SYNC_FAILED_PREFIX}{e}"))
            return False
        except Exception as e:
            logger.exception(f"Unexpected sync failure: {e}")
            self._dispatch(SetError(f"{SYNC_FAILED_PREFIX}{e}"))
            return False
        finally:
            self._dispatch(SetLoading(False))


# ========================
# Provider scope
# ========================

_current_tracker: contextvars.ContextVar = contextvars.ContextVar('current_tracker', default=None)


class TrackerProvider:
    """
    Make a manager current for the enclosed code.

    Usage:
        with TrackerProvider(manager):
            tracker = use_tracker()
    """

    def __init__(self, manager: TrackerStateManager):
        self.manager = manager
        self._token = None

    def __enter__(self) -> TrackerStateManager:
        self._token = _current_tracker.set(self.manager)
        return self.manager

    def __exit__(self, exc_type, exc, tb):
        _current_tracker.reset(self._token)
        self._token = None
        return False


def use_tracker() -> TrackerStateManager:
    """
    Return the manager of the innermost TrackerProvider.

    Raises:
        RuntimeError: If called outside any TrackerProvider
    """
    manager = _current_tracker.get()
    if manager is None:
        raise RuntimeError("use_tracker must be used within a TrackerProvider")
    return manager
