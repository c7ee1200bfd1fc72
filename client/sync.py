"""
Sync payload - the lossy projection of local state sent to the backend

Rules:
- Symptoms are flattened to '<symptom> (<severity>)'
- followUpNeeded: any symptom is severe
- warningSignsPresent: any symptom text contains 'fever', 'bleeding' or
  'pain' (case-insensitive substring match, a keyword heuristic)
- Notes are sent verbatim
- Todos are never sent; the backend has no todo concept
"""

from typing import Any, Dict, Iterable

from client.models import Severity, SymptomEntry, TrackerData

DEFAULT_PROCEDURE_TYPE = "myomectomy"
WARNING_KEYWORDS = ("fever", "bleeding", "pain")


def format_symptom(entry: SymptomEntry) -> str:
    return f"{entry.symptom} ({entry.severity.value})"


def needs_follow_up(symptoms: Iterable[SymptomEntry]) -> bool:
    return any(entry.severity is Severity.SEVERE for entry in symptoms)


def has_warning_signs(symptoms: Iterable[SymptomEntry]) -> bool:
    return any(
        keyword in entry.symptom.lower()
        for entry in symptoms
        for keyword in WARNING_KEYWORDS
    )


def build_sync_payload(data: TrackerData, patient_id: str,
                       procedure_type: str = DEFAULT_PROCEDURE_TYPE) -> Dict[str, Any]:
    """
    Build the POST /trackers body (without timestamp; the API client adds it).

    Args:
        data: Current tracker data
        patient_id: Patient identifier
        procedure_type: Procedure the patient is recovering from

    Returns:
        dict: patientId, procedureType, symptoms, notes, followUpNeeded,
              warningSignsPresent
    """
    return {
        'patientId': patient_id,
        'procedureType': procedure_type,
        'symptoms': [format_symptom(entry) for entry in data.symptoms],
        'notes': data.notes,
        'followUpNeeded': needs_follow_up(data.symptoms),
        'warningSignsPresent': has_warning_signs(data.symptoms),
    }
