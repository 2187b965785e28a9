from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Iterator, List, Tuple

from .recording_loader import Recording, RecordingStep

logger = logging.getLogger(__name__)

FIELD_CHANGE_KIND = "change"


def encode_selectors(selectors: Any) -> str:
    """Return the field identifier for a selector descriptor.

    Compact JSON with key order kept, so the identifier matches what the browser
    side produces with JSON.stringify for the same structure.
    """
    return json.dumps(selectors, separators=(",", ":"), ensure_ascii=False)


def decode_field_id(field_id: str) -> Any:
    return json.loads(field_id)


def field_digest(field_id: str) -> str:
    """Short stable key for a field identifier (drag ids, log lines)."""
    return hashlib.sha256(field_id.encode("utf-8")).hexdigest()[:12]


def iter_field_changes(recording: Recording) -> Iterator[Tuple[str, RecordingStep]]:
    for step in recording.steps:
        if step.kind != FIELD_CHANGE_KIND:
            continue
        if not step.has_selectors:
            logger.debug("Skipping change step %d without selectors", step.index)
            continue
        yield encode_selectors(step.selectors), step


def extract_fields(recording: Recording) -> List[str]:
    """Field identifiers of all change steps, in step order, first occurrence wins."""

    seen = set()
    fields: List[str] = []
    for field_id, _step in iter_field_changes(recording):
        if field_id in seen:
            continue
        seen.add(field_id)
        fields.append(field_id)
    logger.info("Extracted %d candidate fields from %d steps", len(fields), len(recording.steps))
    return fields
