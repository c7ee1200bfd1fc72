"""
Display Helpers - Convert brochure content and tracker state to readable text

Used by the console front end (main.py) and the recovery journal export.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from client.models import Severity, TrackerData, TrackerState
from common.contracts import Brochure, SectionKind


# Severity -> display label
SEVERITY_LABELS = {
    Severity.MILD: 'Mild',
    Severity.MODERATE: 'Moderate',
    Severity.SEVERE: 'Severe',
}

# Section kind -> heading badge
SECTION_BADGES = {
    SectionKind.LIST: None,
    SectionKind.WARNING: 'Important',
    SectionKind.TIMELINE: 'Schedule',
}

# (minimum progress, message), checked top to bottom
PROGRESS_MESSAGES = (
    (90, 'Excellent progress!'),
    (70, 'Great job! Keep it up!'),
    (50, 'Good progress!'),
    (25, 'Getting started!'),
    (0, 'Every step counts. Start with one task today.'),
)


def format_label(key: str) -> str:
    """
    Convert a camelCase key to a readable label.

    Examples:
        >>> format_label('postOpAppointment')
        'Post Op Appointment'
    """
    words = []
    current = ''
    for char in key:
        if char.isupper() and current:
            words.append(current)
            current = char
        else:
            current += char
    if current:
        words.append(current)
    return ' '.join(word.capitalize() for word in words)


def format_timestamp(moment: Optional[datetime]) -> str:
    if moment is None:
        return 'Never'
    return moment.strftime('%Y-%m-%d %H:%M')


def progress_message(progress: float) -> str:
    for threshold, message in PROGRESS_MESSAGES:
        if progress >= threshold:
            return message
    return PROGRESS_MESSAGES[-1][1]


def progress_bar(progress: float, width: int = 20) -> str:
    """
    Examples:
        >>> progress_bar(40, width=10)
        '[####------] 40%'
    """
    filled = int(round(progress / 100 * width))
    return f"[{'#' * filled}{'-' * (width - filled)}] {round(progress)}%"


# ========================
# Brochure rendering
# ========================

def render_section(section) -> List[str]:
    """
    Render one brochure section.

    ListSection -> bullets ('!' bullets for warnings)
    TimelineSection -> 'Label: text' lines in source order
    """
    badge = SECTION_BADGES.get(section.kind)
    heading = f"{section.title} [{badge}]" if badge else section.title
    lines = [heading, '-' * len(heading)]

    if section.kind is SectionKind.TIMELINE:
        for label, text in section.entries:
            lines.append(f"  {format_label(label)}: {text}")
    else:
        bullet = '!' if section.kind is SectionKind.WARNING else '*'
        for item in section.items:
            lines.append(f"  {bullet} {item}")

    return lines


def render_brochure(brochure: Brochure) -> str:
    lines = [brochure.title, '=' * len(brochure.title), f"Last updated: {brochure.last_updated}", '']
    for section in brochure.sections:
        lines.extend(render_section(section))
        lines.append('')
    return '\n'.join(lines).rstrip() + '\n'


def render_brochure_list(summaries: List[Dict[str, Any]]) -> str:
    if not summaries:
        return 'No brochures available.\n'
    return ''.join(f"  {item['id']}: {item['title']} (updated {item['lastUpdated']})\n" for item in summaries)


# ========================
# Tracker rendering
# ========================

def render_todos(data: TrackerData) -> List[str]:
    lines = []
    for todo in data.todos:
        mark = 'x' if todo.completed else ' '
        done = f" (done {format_timestamp(todo.completed_at)})" if todo.completed else ''
        lines.append(f"  [{mark}] {todo.id}. {todo.text}{done}")
    return lines


def render_symptoms(data: TrackerData) -> List[str]:
    if not data.symptoms:
        return ['  No symptoms logged.']
    return [
        f"  {entry.id}  {format_timestamp(entry.logged_at)}  "
        f"{SEVERITY_LABELS[entry.severity]:<8}  {entry.symptom}"
        for entry in data.symptoms
    ]


def render_tracker(state: TrackerState) -> str:
    """Full tracker view: progress, tasks, symptoms, notes and sync status."""
    data = state.data
    completed = sum(1 for todo in data.todos if todo.completed)
    lines = [
        'Recovery Progress',
        f"  {progress_bar(state.progress)}  {completed}/{len(data.todos)} tasks",
        f"  {progress_message(state.progress)}",
        '',
        'Daily Tasks',
        *render_todos(data),
        '',
        'Symptoms (newest first)',
        *render_symptoms(data),
        '',
        'Notes',
        f"  {data.notes}" if data.notes else '  (none)',
        '',
        f"Status: {'online' if state.is_online else 'offline'}"
        f"{'  syncing...' if state.loading else ''}"
        f"  last synced: {format_timestamp(state.last_synced_with_backend)}",
    ]
    if state.error:
        lines.append(f"Error: {state.error}")
    return '\n'.join(lines) + '\n'


def render_recovery_journal(data: TrackerData, patient_name: str = None,
                            procedure_type: str = None, generated_at: datetime = None) -> str:
    """
    Printable recovery journal (tasks, symptoms, notes).

    Args:
        data: Tracker data to export
        patient_name: Optional patient name for the header
        procedure_type: Optional procedure for the header
        generated_at: Export time shown in the header
    """
    lines = ['AfterCare Recovery Journal', '=' * 26]
    if patient_name:
        lines.append(f"Patient: {patient_name}")
    if procedure_type:
        lines.append(f"Procedure: {format_label(procedure_type)}")
    if generated_at:
        lines.append(f"Generated: {format_timestamp(generated_at)}")
    lines.append(f"Last updated: {format_timestamp(data.last_updated)}")
    lines.append('')

    completed = sum(1 for todo in data.todos if todo.completed)
    lines.append(f"Daily Tasks ({completed}/{len(data.todos)} complete)")
    lines.extend(render_todos(data))
    lines.append('')
    lines.append(f"Symptom Log ({len(data.symptoms)} entries)")
    lines.extend(render_symptoms(data))
    lines.append('')
    lines.append('Notes')
    lines.append(data.notes if data.notes else '(none)')
    return '\n'.join(lines) + '\n'
