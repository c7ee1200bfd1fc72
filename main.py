"""
Console front end for the Aftercare tracker

Simple console loop over TrackerStateManager: read the brochure, check off
daily tasks, log symptoms, write notes and sync with the backend.
"""

import asyncio
import logging
import shlex
import sys
from pathlib import Path

from dotenv import load_dotenv

from client.api import ApiError, TrackerApiClient
from client.config import ClientConfig
from client.display import (
    render_brochure,
    render_brochure_list,
    render_recovery_journal,
    render_tracker,
)
from client.storage import JsonFileStorage
from client.tracker import TrackerProvider, TrackerStateManager, use_tracker
from common.contracts import Brochure

# Configure logging
logging.basicConfig(
    level=logging.WARNING,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

HELP_TEXT = """Commands:
  show                         Show tracker
  brochures                    List available brochures
  brochure [id]                Show a brochure (default: your procedure)
  toggle <task id>             Check/uncheck a daily task
  all | none                   Check/uncheck every task
  symptom <severity> <text>    Log a symptom (mild, moderate, severe)
  severity <id> <severity>     Change a symptom's severity
  delete <symptom id>          Delete a symptom
  notes <text>                 Replace your notes
  sync <patient id>            Send symptoms and notes to your care team
  online | offline             Simulate connectivity changes
  export <file>                Write a recovery journal to a text file
  reset                        Start over with the default tasks
  help                         Show this help
  quit                         Exit
"""


def print_separator(char="=", length=60):
    """Print a separator line"""
    print(char * length)


def show_brochure(api: TrackerApiClient, brochure_id: str) -> None:
    try:
        brochure = Brochure.from_json(api.get_brochure(brochure_id), brochure_id=brochure_id)
    except ApiError as e:
        print(f"Could not load brochure: {e}")
        return
    except ValueError as e:
        print(f"Brochure content is malformed: {e}")
        return
    print(render_brochure(brochure))


def handle_command(line: str, api: TrackerApiClient) -> bool:
    """
    Run one console command against the current tracker.

    Returns:
        bool: False when the user asked to quit
    """
    tracker = use_tracker()

    try:
        parts = shlex.split(line)
    except ValueError as e:
        print(f"Could not parse command: {e}")
        return True
    if not parts:
        return True

    command, args = parts[0].lower(), parts[1:]

    if command in ('quit', 'exit', 'stop'):
        return False
    elif command == 'help':
        print(HELP_TEXT)
    elif command == 'show':
        print(render_tracker(tracker.state))
    elif command == 'brochures':
        try:
            print(render_brochure_list(api.list_brochures()))
        except ApiError as e:
            print(f"Could not load brochures: {e}")
    elif command == 'brochure':
        show_brochure(api, args[0] if args else tracker.procedure_type)
    elif command == 'toggle' and args:
        tracker.toggle_todo(args[0])
        print(render_tracker(tracker.state))
    elif command in ('all', 'none'):
        ids = [todo.id for todo in tracker.state.data.todos]
        tracker.bulk_update_todos(ids, completed=(command == 'all'))
        print(render_tracker(tracker.state))
    elif command == 'symptom' and len(args) >= 2:
        tracker.add_symptom(' '.join(args[1:]), args[0].lower())
        print(render_tracker(tracker.state))
    elif command == 'severity' and len(args) == 2:
        tracker.update_symptom(args[0], severity=args[1].lower())
        print(render_tracker(tracker.state))
    elif command == 'delete' and args:
        tracker.delete_symptom(args[0])
        print(render_tracker(tracker.state))
    elif command == 'notes':
        tracker.update_notes(' '.join(args))
        print("Notes saved.")
    elif command == 'sync' and args:
        print("Syncing...")
        if asyncio.run(tracker.sync_with_backend(args[0])):
            print("Synced with your care team.")
        else:
            print(tracker.state.error or "Sync did not run.")
    elif command == 'online':
        tracker.handle_online()
        print("Back online.")
    elif command == 'offline':
        tracker.handle_offline()
        print(tracker.state.error)
    elif command == 'export' and args:
        journal = render_recovery_journal(
            tracker.state.data,
            procedure_type=tracker.procedure_type,
        )
        try:
            Path(args[0]).write_text(journal, encoding='utf-8')
        except OSError as e:
            print(f"Could not write {args[0]}: {e}")
        else:
            print(f"Recovery journal written to {args[0]}")
    elif command == 'reset':
        tracker.reset_tracker()
        print(render_tracker(tracker.state))
    else:
        print(f"Unknown command: {line.strip()} (type 'help')")

    return True


def main():
    """Run console tracker"""
    load_dotenv()

    try:
        config = ClientConfig.from_env()
    except ValueError as e:
        print(f"Invalid configuration: {e}")
        return 1

    api = TrackerApiClient(config.api_url, timeout=config.request_timeout)
    storage = JsonFileStorage(config.storage_path)
    manager = TrackerStateManager(
        api,
        storage,
        online=api.check_connectivity(),
        procedure_type=config.procedure_type,
    )

    print_separator()
    print("AFTERCARE RECOVERY TRACKER")
    print_separator()

    with TrackerProvider(manager) as tracker:
        if not tracker.state.onboarding_complete:
            print("\nWelcome! Use this tracker to follow your care instructions,")
            print("check off daily tasks, log symptoms and share them with your care team.\n")
            tracker.complete_onboarding()

        print(render_tracker(tracker.state))
        print(HELP_TEXT)

        while True:
            try:
                line = input("aftercare> ")
            except (EOFError, KeyboardInterrupt):
                print()
                break

            if not handle_command(line, api):
                break

    print("Your progress is saved locally. Goodbye!")
    return 0


if __name__ == '__main__':
    sys.exit(main())
