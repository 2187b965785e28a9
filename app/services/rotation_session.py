"""Editing session state for mapping a recording onto credential roles.

A session owns exactly one recording, one partition snapshot, the generation
options and the most recent payload. Every operation either completes or
leaves that state as it was; nothing is persisted.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Union
from uuid import uuid4

from ..recorder.field_extractor import extract_fields, field_digest
from ..recorder.recording_loader import Recording, load_recording, load_recording_file
from .field_partition import DEFAULT_ROLE_BUCKETS, Partition, RoleBucket, move_field
from .password_options import PasswordOptions
from .payload_service import RotationPayload, synthesize_payload
from .readiness import ReadinessReport, is_ready, readiness_report

logger = logging.getLogger(__name__)


class SessionNotFound(KeyError):
    pass


class NoRecordingLoaded(RuntimeError):
    pass


class RotationSession:
    def __init__(
        self,
        session_id: Optional[str] = None,
        roles: Sequence[RoleBucket] = DEFAULT_ROLE_BUCKETS,
        options: Optional[PasswordOptions] = None,
        max_recording_bytes: Optional[int] = None,
    ) -> None:
        self.session_id = session_id or uuid4().hex
        self.roles = tuple(roles)
        self.options = options if options is not None else PasswordOptions()
        self.max_recording_bytes = max_recording_bytes
        self.recording: Optional[Recording] = None
        self.partition: Partition = Partition.initial([], self.roles)
        self.payload: Optional[RotationPayload] = None

    @property
    def loaded(self) -> bool:
        return self.recording is not None

    def _adopt(self, recording: Recording) -> None:
        # Fields from a previous recording mean nothing for this one; start over.
        partition = Partition.initial(extract_fields(recording), self.roles)
        self.recording = recording
        self.partition = partition
        self.payload = None
        logger.info("Session %s: %d fields awaiting assignment", self.session_id, len(partition.fields))

    async def load(self, raw: Union[bytes, str]) -> Recording:
        recording = load_recording(raw, max_bytes=self.max_recording_bytes)
        self._adopt(recording)
        return recording

    async def load_file(self, path: Union[str, Path]) -> Recording:
        recording = await load_recording_file(path, max_bytes=self.max_recording_bytes)
        self._adopt(recording)
        return recording

    def _require_recording(self) -> Recording:
        if self.recording is None:
            raise NoRecordingLoaded("Load a recording before mapping fields")
        return self.recording

    def move(
        self,
        field_id: str,
        source_bucket: str,
        source_index: int,
        dest_bucket: str,
        dest_index: int,
    ) -> Partition:
        self._require_recording()
        self.partition = move_field(self.partition, field_id, source_bucket, source_index, dest_bucket, dest_index)
        return self.partition

    def buckets_view(self) -> Dict[str, list]:
        return self.partition.buckets_view()

    def is_ready(self) -> bool:
        return self.loaded and is_ready(self.partition)

    def readiness(self) -> ReadinessReport:
        return readiness_report(self.partition)

    def update_options(self, changes: Mapping[str, Any]) -> PasswordOptions:
        self.options = self.options.with_updates(changes)
        return self.options

    def synthesize(self) -> RotationPayload:
        recording = self._require_recording()
        self.payload = synthesize_payload(recording, self.partition, self.options)
        return self.payload

    def snapshot(self) -> Dict[str, Any]:
        buckets = self.buckets_view()
        return {
            "sessionId": self.session_id,
            "loaded": self.loaded,
            "title": self.recording.title if self.recording is not None else None,
            "buckets": buckets,
            "labels": {role.name: role.label for role in self.roles},
            "fieldKeys": {field_id: field_digest(field_id) for field_id in self.partition.fields},
            "ready": self.is_ready(),
            "readiness": self.readiness().to_dict(),
            "options": self.options.model_dump(),
        }


class SessionStore:
    """In-memory registry of live sessions, bounded to ``max_sessions``."""

    def __init__(self, max_sessions: int = 64, roles: Sequence[RoleBucket] = DEFAULT_ROLE_BUCKETS) -> None:
        if max_sessions < 1:
            raise ValueError(f"max_sessions must be at least 1, got {max_sessions}")
        self.max_sessions = max_sessions
        self.roles = tuple(roles)
        self._sessions: Dict[str, RotationSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def create(self, options: Optional[PasswordOptions] = None, max_recording_bytes: Optional[int] = None) -> RotationSession:
        if len(self._sessions) >= self.max_sessions:
            # Oldest session gives way; dicts keep insertion order.
            oldest = next(iter(self._sessions))
            logger.warning("Session limit %d reached; discarding session %s", self.max_sessions, oldest)
            self._sessions.pop(oldest)
        session = RotationSession(roles=self.roles, options=options, max_recording_bytes=max_recording_bytes)
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> RotationSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFound(session_id) from None

    def discard(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is None:
            raise SessionNotFound(session_id)
        logger.info("Session %s discarded", session_id)
