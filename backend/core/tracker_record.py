"""
Tracker Record - Server-side projection of one patient sync

Responsibilities:
- Normalize an incoming request body into a record
- Validate the record before it reaches persistence
- Convert to the stored document shape

Design principles:
- Validation returns every problem at once (no fail-on-first)
- Missing optional fields take documented defaults
- Stored documents keep camelCase keys (same as the wire format)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

from common.timestamps import iso_timestamp, parse_timestamp, utc_now

logger = logging.getLogger(__name__)

DEFAULT_PROCEDURE_TYPE = "myomectomy"
PAIN_LEVEL_MIN = 1
PAIN_LEVEL_MAX = 10

ERROR_BODY_NOT_OBJECT = "Request body must be a JSON object"
ERROR_PATIENT_ID_REQUIRED = "Patient ID is required"
ERROR_PAIN_LEVEL_RANGE = f"Pain level must be between {PAIN_LEVEL_MIN} and {PAIN_LEVEL_MAX}"
ERROR_SYMPTOMS_NOT_ARRAY = "Symptoms must be an array"
ERROR_MEDICATIONS_NOT_ARRAY = "Medications must be an array"
ERROR_NOTES_NOT_STRING = "Notes must be a string"
ERROR_TIMESTAMP_INVALID = "Timestamp must be an ISO-8601 date string"


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of TrackerRecord.validate().

    Attributes:
        is_valid: True when errors is empty
        errors: Human-readable messages, reported as 'details' in 400 responses
    """
    errors: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass
class TrackerRecord:
    """
    One synchronized snapshot of a patient's symptoms and notes.

    Attributes:
        patient_id: Patient identifier (required, non-empty)
        procedure_type: Procedure the patient is recovering from
        symptoms: Flattened symptom strings, e.g. 'Nausea (mild)'
        notes: Free-text notes
        pain_level: Optional 1-10 self-reported pain score
        medications: Medication names
        timestamp: When the snapshot was taken (defaults to receipt time)
        follow_up_needed: Client flag: any severe symptom
        warning_signs_present: Client flag: warning keyword heuristic
    """
    patient_id: Any = None
    procedure_type: str = DEFAULT_PROCEDURE_TYPE
    symptoms: Any = field(default_factory=list)
    notes: Any = ""
    pain_level: Any = None
    medications: Any = field(default_factory=list)
    timestamp: Any = None
    follow_up_needed: bool = False
    warning_signs_present: bool = False

    @classmethod
    def from_request(cls, body: Dict[str, Any]) -> "TrackerRecord":
        """
        Build a record from a decoded request body.

        Values are kept as sent so validate() can report on them; only
        absent/null fields are defaulted.

        Args:
            body: Decoded JSON object

        Returns:
            TrackerRecord (not yet validated)
        """
        def value_or(key, default):
            value = body.get(key)
            return default if value is None else value

        return cls(
            patient_id=body.get('patientId'),
            procedure_type=body.get('procedureType') or DEFAULT_PROCEDURE_TYPE,
            symptoms=value_or('symptoms', []),
            notes=value_or('notes', ""),
            pain_level=body.get('painLevel'),
            medications=value_or('medications', []),
            timestamp=body.get('timestamp') or utc_now(),
            follow_up_needed=bool(body.get('followUpNeeded', False)),
            warning_signs_present=bool(body.get('warningSignsPresent', False)),
        )

    def validate(self) -> ValidationResult:
        """
        Check the record before persistence.

        Returns:
            ValidationResult with every problem found
        """
        errors = []

        if not isinstance(self.patient_id, str) or not self.patient_id.strip():
            errors.append(ERROR_PATIENT_ID_REQUIRED)

        if self.pain_level is not None:
            is_number = isinstance(self.pain_level, (int, float)) and not isinstance(self.pain_level, bool)
            if not is_number or not PAIN_LEVEL_MIN <= self.pain_level <= PAIN_LEVEL_MAX:
                errors.append(ERROR_PAIN_LEVEL_RANGE)

        if not isinstance(self.symptoms, list):
            errors.append(ERROR_SYMPTOMS_NOT_ARRAY)

        if not isinstance(self.medications, list):
            errors.append(ERROR_MEDICATIONS_NOT_ARRAY)

        if not isinstance(self.notes, str):
            errors.append(ERROR_NOTES_NOT_STRING)

        if not isinstance(self.timestamp, datetime):
            try:
                parse_timestamp(self.timestamp)
            except ValueError:
                errors.append(ERROR_TIMESTAMP_INVALID)

        if errors:
            logger.debug(f"Tracker record rejected: {errors}")
        return ValidationResult(errors=errors)

    def to_document(self) -> Dict[str, Any]:
        """
        Convert to the stored document shape.

        Must only be called on a valid record (timestamp is parsed here).
        """
        return {
            'patientId': self.patient_id,
            'procedureType': self.procedure_type,
            'symptoms': list(self.symptoms),
            'notes': self.notes,
            'painLevel': self.pain_level,
            'medications': list(self.medications),
            'timestamp': parse_timestamp(self.timestamp),
            'followUpNeeded': self.follow_up_needed,
            'warningSignsPresent': self.warning_signs_present,
        }


def document_to_json(doc: Dict[str, Any]) -> Dict[str, Any]:
    """
    Make a stored document JSON-safe for responses.

    Converts '_id' (ObjectId or str) to str and datetimes to ISO strings.

    Args:
        doc: Stored document

    Returns:
        dict: New dict safe for jsonify()
    """
    result = {}
    for key, value in doc.items():
        if key == '_id':
            result[key] = str(value)
        elif isinstance(value, datetime):
            result[key] = iso_timestamp(value)
        else:
            result[key] = value
    return result
