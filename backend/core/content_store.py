"""
Content Store - Static brochure content keyed by procedure

Responsibilities:
- Load brochure definitions once at process start
- Answer lookups by procedure identifier
- List available brochures

Design principles:
- Read-only after construction
- Fail fast on malformed content (startup, not request time)
- No HTTP or caching concerns
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from common.contracts import Brochure, BrochureSummary

logger = logging.getLogger(__name__)

DEFAULT_BROCHURES_PATH = Path(__file__).resolve().parents[2] / "data" / "brochures.json"


class ContentStore:
    """Immutable mapping from procedure id to Brochure"""

    def __init__(self, brochures: Dict[str, Brochure]):
        """
        Args:
            brochures: Mapping of procedure id -> Brochure
        """
        self._brochures = dict(brochures)
        logger.info(f"Content store ready with {len(self._brochures)} brochure(s)")

    @classmethod
    def from_file(cls, path=DEFAULT_BROCHURES_PATH) -> "ContentStore":
        """
        Load brochures from a JSON file.

        File layout:
            {"<procedure id>": {"title": ..., "lastUpdated": ..., "sections": [...]}}

        Args:
            path: Path to brochures JSON

        Returns:
            ContentStore

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If any brochure is malformed
        """
        content_file = Path(path)
        if not content_file.exists():
            raise FileNotFoundError(f"Brochure content not found: {path}")

        with open(content_file, 'r', encoding='utf-8') as f:
            raw = json.load(f)

        if not isinstance(raw, dict):
            raise ValueError(f"Brochure content must be a JSON object: {path}")

        brochures = {
            brochure_id: Brochure.from_json(data, brochure_id=brochure_id)
            for brochure_id, data in raw.items()
        }
        return cls(brochures)

    def get(self, brochure_id: str) -> Optional[Brochure]:
        return self._brochures.get(brochure_id)

    def list_summaries(self) -> List[BrochureSummary]:
        return [brochure.summary() for brochure in self._brochures.values()]

    def __contains__(self, brochure_id: str) -> bool:
        return brochure_id in self._brochures

    def __len__(self) -> int:
        return len(self._brochures)
