"""Synthesis of the credential-rotation payload from a mapped recording."""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..recorder.field_extractor import decode_field_id, iter_field_changes
from ..recorder.recording_loader import Recording
from .field_partition import Partition
from .password_options import PasswordOptions
from .readiness import ReadinessReport, readiness_report

logger = logging.getLogger(__name__)


class SynthesisError(Exception):
    """Base class for payload synthesis failures."""


class NotReady(SynthesisError):
    def __init__(self, report: ReadinessReport) -> None:
        super().__init__(report.message())
        self.report = report


@dataclass(frozen=True)
class RotationPayload:
    """Normalized rotation payload; superseded, never edited, by later syntheses."""

    username: str
    password: str
    recording: Dict[str, Any]
    mappings: Dict[str, List[Any]] = field(default_factory=dict)
    password_options: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        # Callers get their own copy; the frozen payload never shares containers.
        payload: Dict[str, Any] = {
            "username": self.username,
            "password": self.password,
            "recording": copy.deepcopy(self.recording),
        }
        for name, selectors in self.mappings.items():
            payload[name] = copy.deepcopy(selectors)
        payload["passwordOptions"] = copy.deepcopy(self.password_options)
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)


def resolve_field_value(recording: Recording, field_id: Optional[str]) -> str:
    """Value entered by the first change step whose selectors encode to ``field_id``.

    Missing matches and empty values resolve to "" rather than failing synthesis.
    """
    if field_id is None:
        return ""
    for candidate, step in iter_field_changes(recording):
        if candidate != field_id:
            continue
        value = step.value
        if value is None or value == "":
            return ""
        return value if isinstance(value, str) else str(value)
    logger.warning("No change step matches a mapped field; resolving it to an empty value")
    return ""


def synthesize_payload(
    recording: Recording,
    partition: Partition,
    options: Optional[PasswordOptions] = None,
) -> RotationPayload:
    report = readiness_report(partition)
    if not report.ready:
        raise NotReady(report)

    # First role bound to a slot wins; only the head of its bucket is resolved.
    slots: Dict[str, str] = {}
    for role in partition.roles:
        if role.resolves_to is None or role.resolves_to in slots:
            continue
        slots[role.resolves_to] = resolve_field_value(recording, partition.first_in(role.name))

    mappings = {
        role.name: [decode_field_id(field_id) for field_id in partition.bucket(role.name)]
        for role in partition.roles
    }
    if options is None:
        options = PasswordOptions()
    payload = RotationPayload(
        username=slots.get("username", ""),
        password=slots.get("password", ""),
        recording=recording.to_document(),
        mappings=mappings,
        password_options=options.model_dump(),
    )
    logger.info(
        "Synthesized rotation payload (%s)",
        ", ".join(f"{name}={len(selectors)}" for name, selectors in mappings.items()),
    )
    return payload
