"""
Test TrackerStateManager - local tracker state, persistence, connectivity and sync

Run with: pytest tests/test_tracker_state_manager.py -v
"""

import asyncio
import json
import threading
from datetime import timedelta
from unittest.mock import Mock

import pytest

from client.api import ApiError
from client.models import (
    CANNOT_SYNC_OFFLINE,
    LOAD_FAILED_MESSAGE,
    OFFLINE_MESSAGE,
    ONBOARDING_STORAGE_KEY,
    PROGRESS_STORAGE_KEY,
    SAVE_FAILED_MESSAGE,
    SEED_TODOS,
    TRACKER_STORAGE_KEY,
    Severity,
)
from client.storage import MemoryStorage
from client.tracker import TrackerProvider, TrackerStateManager, use_tracker
from conftest import CountingStorage, StepClock


@pytest.fixture
def api():
    mock = Mock()
    mock.create_tracker_entry.return_value = {'_id': 'abc'}
    return mock


@pytest.fixture
def manager(api, storage, clock):
    return TrackerStateManager(api, storage, clock=clock)


class TestInitialState:
    """Fresh tracker with nothing in storage"""

    def test_seed_todos_in_order(self, manager):
        todos = manager.state.data.todos
        assert [todo.id for todo in todos] == ['1', '2', '3', '4', '5']
        assert [todo.text for todo in todos] == [text for _, text in SEED_TODOS]
        assert not any(todo.completed for todo in todos)

    def test_transient_fields(self, manager):
        state = manager.state
        assert state.loading is False
        assert state.error is None
        assert state.last_synced_with_backend is None
        assert state.is_online is True
        assert state.onboarding_complete is False
        assert state.data.symptoms == ()
        assert state.data.notes == ''

    def test_progress_starts_at_zero(self, manager):
        assert manager.calculate_progress() == 0
        assert manager.state.progress == 0

    def test_initial_connectivity_is_injected(self, api, storage, clock):
        offline = TrackerStateManager(api, storage, clock=clock, online=False)
        assert offline.state.is_online is False


class TestTodos:
    """toggle_todo and bulk_update_todos"""

    def test_toggle_marks_complete_and_stamps_time(self, manager, clock):
        manager.toggle_todo('2')

        todo = manager.state.data.todos[1]
        assert todo.completed is True
        assert todo.completed_at is not None
        assert todo.completed_at < clock.current

    def test_toggle_twice_restores_original(self, manager):
        original = manager.state.data.todos[0]

        manager.toggle_todo('1')
        manager.toggle_todo('1')

        todo = manager.state.data.todos[0]
        assert todo.completed == original.completed
        assert todo.completed_at is None

    def test_toggle_bumps_last_updated(self, manager):
        before = manager.state.data.last_updated
        manager.toggle_todo('3')
        assert manager.state.data.last_updated > before

    def test_toggle_unknown_id_is_noop(self, manager, storage):
        before = manager.state
        writes_before = len(storage.writes)

        manager.toggle_todo('does-not-exist')

        assert manager.state is before
        assert manager.state.error is None
        assert len(storage.writes) == writes_before

    def test_progress_follows_todos(self, manager):
        manager.toggle_todo('1')
        assert manager.state.progress == 20
        manager.toggle_todo('2')
        manager.toggle_todo('3')
        assert manager.state.progress == 60

    def test_completing_all_reaches_100(self, manager):
        for todo_id, _ in SEED_TODOS:
            manager.toggle_todo(todo_id)

        assert manager.calculate_progress() == 100
        assert manager.state.progress == 100

    def test_bulk_update_is_one_transition(self, manager, storage):
        notifications = []
        manager.subscribe(notifications.append)
        writes_before = len(storage.writes)

        manager.bulk_update_todos(['1', '2', '3', '4', '5'], completed=True)

        assert len(notifications) == 1
        assert len(storage.writes) - writes_before == 2
        assert manager.state.progress == 100

    def test_bulk_update_sets_uniformly(self, manager):
        manager.toggle_todo('1')
        manager.bulk_update_todos(['1', '2'], completed=False)

        todos = manager.state.data.todos
        assert todos[0].completed is False
        assert todos[0].completed_at is None
        assert todos[1].completed is False

    def test_bulk_update_ignores_unknown_ids(self, manager):
        manager.bulk_update_todos(['2', 'nope'], completed=True)
        assert [todo.completed for todo in manager.state.data.todos] == [False, True, False, False, False]

    def test_bulk_update_with_no_matches_is_noop(self, manager):
        before = manager.state
        manager.bulk_update_todos(['x', 'y'], completed=True)
        assert manager.state is before


class TestSymptoms:
    """add_symptom, update_symptom, delete_symptom"""

    def test_add_symptom_inserts_at_front(self, manager):
        manager.add_symptom('Nausea', 'mild')
        manager.add_symptom('Cramping', 'moderate')
        manager.add_symptom('Headache', 'mild')

        symptoms = manager.state.data.symptoms
        assert [s.symptom for s in symptoms] == ['Headache', 'Cramping', 'Nausea']
        assert symptoms[0].severity is Severity.MILD

    def test_add_symptom_trims_text(self, manager):
        manager.add_symptom('   Swelling near incision  ', Severity.MODERATE)
        assert manager.state.data.symptoms[0].symptom == 'Swelling near incision'

    def test_blank_symptom_is_ignored(self, manager):
        before = manager.state
        manager.add_symptom('   ', 'mild')
        manager.add_symptom('', 'severe')
        assert manager.state is before

    def test_invalid_severity_sets_error(self, manager):
        manager.add_symptom('Dizziness', 'extreme')

        assert manager.state.data.symptoms == ()
        assert manager.state.error == "Invalid severity: extreme"

    def test_ids_unique_within_same_millisecond(self, api, storage):
        frozen = StepClock(step=timedelta(0))
        manager = TrackerStateManager(api, storage, clock=frozen)

        for i in range(3):
            manager.add_symptom(f"Symptom {i}", 'mild')

        ids = [s.id for s in manager.state.data.symptoms]
        assert len(set(ids)) == 3

    def test_add_symptom_bumps_last_updated(self, manager):
        before = manager.state.data.last_updated
        manager.add_symptom('Fatigue', 'mild')
        assert manager.state.data.last_updated > before

    def test_update_symptom_partial(self, manager):
        manager.add_symptom('Pain at incision', 'mild')
        symptom_id = manager.state.data.symptoms[0].id

        manager.update_symptom(symptom_id, severity='severe')

        entry = manager.state.data.symptoms[0]
        assert entry.severity is Severity.SEVERE
        assert entry.symptom == 'Pain at incision'

    def test_update_symptom_text(self, manager):
        manager.add_symptom('Pain', 'mild')
        symptom_id = manager.state.data.symptoms[0].id

        manager.update_symptom(symptom_id, symptom='  Sharp pain  ')

        assert manager.state.data.symptoms[0].symptom == 'Sharp pain'

    def test_update_unknown_symptom_is_noop(self, manager):
        manager.add_symptom('Pain', 'mild')
        before = manager.state
        manager.update_symptom('missing', severity='severe')
        assert manager.state is before

    def test_update_with_blank_text_is_ignored(self, manager):
        manager.add_symptom('Pain', 'mild')
        before = manager.state
        manager.update_symptom(before.data.symptoms[0].id, symptom='  ')
        assert manager.state is before

    def test_delete_symptom(self, manager):
        manager.add_symptom('Nausea', 'mild')
        manager.add_symptom('Cramping', 'moderate')
        nausea_id = manager.state.data.symptoms[1].id

        manager.delete_symptom(nausea_id)

        assert [s.symptom for s in manager.state.data.symptoms] == ['Cramping']

    def test_delete_unknown_symptom_is_noop(self, manager):
        before = manager.state
        manager.delete_symptom('missing')
        assert manager.state is before


class TestNotes:
    """update_notes"""

    def test_notes_are_replaced(self, manager):
        manager.update_notes('Day 1: tired')
        manager.update_notes('Day 2: better')
        assert manager.state.data.notes == 'Day 2: better'

    def test_notes_bump_last_updated(self, manager):
        before = manager.state.data.last_updated
        manager.update_notes('')
        assert manager.state.data.last_updated > before


class TestPersistence:
    """Write-through to local storage and reload"""

    def test_every_change_writes_both_keys(self, manager, storage):
        manager.toggle_todo('1')

        assert storage.writes[-2:] == [TRACKER_STORAGE_KEY, PROGRESS_STORAGE_KEY]
        summary = json.loads(storage.get_item(PROGRESS_STORAGE_KEY))
        assert summary['progress'] == 20
        assert summary['totalTasks'] == 5
        assert summary['completedTasks'] == 1

    def test_stored_document_uses_camel_case(self, manager, storage):
        manager.add_symptom('Nausea', 'mild')
        document = json.loads(storage.get_item(TRACKER_STORAGE_KEY))

        assert set(document) == {'todos', 'symptoms', 'notes', 'lastUpdated'}
        assert document['symptoms'][0]['severity'] == 'mild'
        assert 'loggedAt' in document['symptoms'][0]

    def test_status_changes_do_not_write(self, manager, storage):
        writes_before = len(storage.writes)
        manager.handle_offline()
        manager.handle_online()
        assert len(storage.writes) == writes_before

    def test_round_trip_through_storage(self, api, storage, clock):
        first = TrackerStateManager(api, storage, clock=clock)
        first.toggle_todo('2')
        first.add_symptom('Mild headache', 'mild')
        first.add_symptom('Fever', 'severe')
        first.update_notes('Feeling okay')

        second = TrackerStateManager(api, storage, clock=clock)

        assert second.state.data == first.state.data
        assert second.state.progress == first.state.progress
        assert second.state.loading is False
        assert second.state.error is None

    def test_reloaded_ids_stay_unique(self, api, storage):
        frozen = StepClock(step=timedelta(0))
        first = TrackerStateManager(api, storage, clock=frozen)
        first.add_symptom('Nausea', 'mild')

        second = TrackerStateManager(api, storage, clock=frozen)
        second.add_symptom('Cramping', 'mild')

        ids = [s.id for s in second.state.data.symptoms]
        assert len(set(ids)) == 2

    def test_write_failure_keeps_memory_state(self, api, clock):
        tiny = MemoryStorage(quota_bytes=10)
        manager = TrackerStateManager(api, tiny, clock=clock)

        manager.toggle_todo('1')

        assert manager.state.data.todos[0].completed is True
        assert manager.state.error == SAVE_FAILED_MESSAGE

    def test_corrupt_storage_sets_load_error(self, api, clock):
        corrupt = MemoryStorage()
        corrupt.set_item(TRACKER_STORAGE_KEY, '{not json')

        manager = TrackerStateManager(api, corrupt, clock=clock)

        assert manager.state.error == LOAD_FAILED_MESSAGE
        assert len(manager.state.data.todos) == 5

    def test_wrong_shape_sets_load_error(self, api, clock):
        wrong = MemoryStorage()
        wrong.set_item(TRACKER_STORAGE_KEY, json.dumps({'todos': 'nope'}))

        manager = TrackerStateManager(api, wrong, clock=clock)

        assert manager.state.error == LOAD_FAILED_MESSAGE

    def test_save_to_storage_flushes(self, api, clock):
        storage = CountingStorage()
        manager = TrackerStateManager(api, storage, clock=clock)
        manager.save_to_storage()
        assert storage.get_item(TRACKER_STORAGE_KEY) is not None


class TestOnboardingAndReset:
    """complete_onboarding and reset_tracker"""

    def test_complete_onboarding_persists_flag(self, manager, storage):
        manager.complete_onboarding()

        assert manager.state.onboarding_complete is True
        assert storage.get_item(ONBOARDING_STORAGE_KEY) == "true"

    def test_onboarding_is_sticky_across_sessions(self, api, storage, clock):
        TrackerStateManager(api, storage, clock=clock).complete_onboarding()
        assert TrackerStateManager(api, storage, clock=clock).state.onboarding_complete is True

    def test_reset_restores_seed(self, manager):
        manager.toggle_todo('1')
        manager.add_symptom('Nausea', 'mild')
        manager.update_notes('notes')

        manager.reset_tracker()

        data = manager.state.data
        assert not any(todo.completed for todo in data.todos)
        assert data.symptoms == ()
        assert data.notes == ''
        assert manager.state.progress == 0

    def test_reset_keeps_onboarding_and_last_sync(self, manager):
        manager.complete_onboarding()
        assert asyncio.run(manager.sync_with_backend('patient-1')) is True
        synced_at = manager.state.last_synced_with_backend

        manager.reset_tracker()

        assert manager.state.onboarding_complete is True
        assert manager.state.last_synced_with_backend == synced_at


class TestConnectivity:
    """handle_online / handle_offline"""

    def test_offline_sets_message(self, manager):
        manager.handle_offline()
        assert manager.state.is_online is False
        assert manager.state.error == OFFLINE_MESSAGE

    def test_online_clears_offline_message(self, manager):
        manager.handle_offline()
        manager.handle_online()
        assert manager.state.is_online is True
        assert manager.state.error is None

    def test_online_clears_cannot_sync_error(self, api, storage, clock):
        manager = TrackerStateManager(api, storage, clock=clock, online=False)
        asyncio.run(manager.sync_with_backend('patient-1'))
        manager.handle_online()
        assert manager.state.error is None

    def test_online_keeps_unrelated_error(self, api, clock):
        manager = TrackerStateManager(api, MemoryStorage(quota_bytes=10), clock=clock)
        manager.toggle_todo('1')
        manager.handle_online()
        assert manager.state.error == SAVE_FAILED_MESSAGE


class TestSync:
    """sync_with_backend"""

    def test_offline_sync_makes_no_call(self, api, storage, clock):
        manager = TrackerStateManager(api, storage, clock=clock, online=False)

        result = asyncio.run(manager.sync_with_backend('patient-1'))

        assert result is False
        assert manager.state.error == CANNOT_SYNC_OFFLINE
        api.create_tracker_entry.assert_not_called()

    def test_success_records_time_and_clears_error(self, manager, api, clock):
        manager.add_symptom('Dizziness', 'extreme')  # leaves an error behind
        call_time = clock.current

        result = asyncio.run(manager.sync_with_backend('patient-1'))

        assert result is True
        assert manager.state.last_synced_with_backend >= call_time
        assert manager.state.error is None
        assert manager.state.loading is False

    def test_payload_sent_to_api(self, manager, api):
        manager.toggle_todo('1')
        manager.add_symptom('Severe pain', 'severe')
        manager.update_notes('Call the doctor')

        asyncio.run(manager.sync_with_backend('patient-1'))

        payload = api.create_tracker_entry.call_args[0][0]
        assert payload == {
            'patientId': 'patient-1',
            'procedureType': 'myomectomy',
            'symptoms': ['Severe pain (severe)'],
            'notes': 'Call the doctor',
            'followUpNeeded': True,
            'warningSignsPresent': True,
        }

    def test_first_failure_leaves_last_sync_empty(self, manager, api):
        api.create_tracker_entry.side_effect = ApiError("Invalid tracker data provided", status_code=400)

        result = asyncio.run(manager.sync_with_backend(''))

        assert result is False
        assert manager.state.error == "Sync failed: Invalid tracker data provided"
        assert manager.state.last_synced_with_backend is None
        assert manager.state.loading is False

    def test_failure_keeps_previous_success_time(self, manager, api):
        asyncio.run(manager.sync_with_backend('patient-1'))
        synced_at = manager.state.last_synced_with_backend

        api.create_tracker_entry.side_effect = ApiError("Network error: refused")
        asyncio.run(manager.sync_with_backend('patient-1'))

        assert manager.state.error.startswith("Sync failed: ")
        assert manager.state.last_synced_with_backend == synced_at

    def test_unexpected_exception_is_contained(self, manager, api):
        api.create_tracker_entry.side_effect = RuntimeError("boom")

        result = asyncio.run(manager.sync_with_backend('patient-1'))

        assert result is False
        assert manager.state.error == "Sync failed: boom"
        assert manager.state.loading is False

    def test_loading_is_true_only_in_flight(self, manager):
        seen = []
        manager.subscribe(lambda state: seen.append(state.loading))

        asyncio.run(manager.sync_with_backend('patient-1'))

        assert seen[0] is True
        assert seen[-1] is False

    def test_overlapping_sync_is_rejected(self, storage, clock):
        release = threading.Event()
        api = Mock()

        def slow_create(payload):
            release.wait(timeout=5)
            return {}

        api.create_tracker_entry.side_effect = slow_create
        manager = TrackerStateManager(api, storage, clock=clock)

        async def scenario():
            first = asyncio.create_task(manager.sync_with_backend('patient-1'))
            await asyncio.sleep(0)
            assert manager.state.loading is True

            second = await manager.sync_with_backend('patient-1')
            release.set()
            return await first, second

        first_result, second_result = asyncio.run(scenario())

        assert first_result is True
        assert second_result is False
        assert api.create_tracker_entry.call_count == 1
        assert manager.state.loading is False

    def test_local_changes_during_sync_are_kept(self, storage, clock):
        release = threading.Event()
        api = Mock()
        api.create_tracker_entry.side_effect = lambda payload: release.wait(timeout=5)
        manager = TrackerStateManager(api, storage, clock=clock)

        async def scenario():
            task = asyncio.create_task(manager.sync_with_backend('patient-1'))
            await asyncio.sleep(0)
            manager.toggle_todo('4')
            release.set()
            await task

        asyncio.run(scenario())

        assert manager.state.data.todos[3].completed is True
        assert json.loads(storage.get_item(PROGRESS_STORAGE_KEY))['completedTasks'] == 1


class TestSubscriptions:
    """subscribe / unsubscribe"""

    def test_listener_called_once_per_change(self, manager):
        seen = []
        manager.subscribe(seen.append)

        manager.toggle_todo('1')
        manager.toggle_todo('missing')

        assert len(seen) == 1
        assert seen[0] is manager.state

    def test_unsubscribe(self, manager):
        seen = []
        unsubscribe = manager.subscribe(seen.append)
        unsubscribe()
        manager.toggle_todo('1')
        assert seen == []

    def test_failing_listener_does_not_stop_others(self, manager):
        seen = []
        manager.subscribe(Mock(side_effect=RuntimeError("render failed")))
        manager.subscribe(seen.append)

        manager.toggle_todo('1')

        assert manager.state.data.todos[0].completed is True
        assert seen == [manager.state]

    def test_failing_listener_does_not_wedge_sync(self, manager, api):
        manager.subscribe(Mock(side_effect=RuntimeError("render failed")))

        assert asyncio.run(manager.sync_with_backend('patient-1')) is True
        assert manager.state.loading is False
        assert asyncio.run(manager.sync_with_backend('patient-1')) is True
        assert api.create_tracker_entry.call_count == 2


class TestProviderScope:
    """TrackerProvider / use_tracker"""

    def test_use_tracker_outside_provider_raises(self):
        with pytest.raises(RuntimeError, match="must be used within a TrackerProvider"):
            use_tracker()

    def test_use_tracker_inside_provider(self, manager):
        with TrackerProvider(manager) as provided:
            assert provided is manager
            assert use_tracker() is manager

    def test_nested_providers_restore_outer(self, manager, api, clock):
        other = TrackerStateManager(api, MemoryStorage(), clock=clock)
        with TrackerProvider(manager):
            with TrackerProvider(other):
                assert use_tracker() is other
            assert use_tracker() is manager
        with pytest.raises(RuntimeError):
            use_tracker()
