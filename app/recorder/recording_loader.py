"""Load browser recordings (DevTools Recorder JSON) into an immutable in-memory document."""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

logger = logging.getLogger(__name__)


class MalformedInputError(ValueError):
    """Raised when a recording cannot be parsed or has no usable steps array."""


@dataclass(frozen=True)
class RecordingStep:
    index: int
    kind: Optional[str]
    selectors: Any
    value: Any
    raw: Dict[str, Any]

    @property
    def has_selectors(self) -> bool:
        return self.selectors is not None


@dataclass(frozen=True)
class Recording:
    """A parsed recording. Never mutated after load_recording returns it."""

    document: Dict[str, Any]
    steps: Tuple[RecordingStep, ...]
    title: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        return copy.deepcopy(self.document)

    def __len__(self) -> int:
        return len(self.steps)


def _decode(raw: Union[bytes, bytearray, str]) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, (bytes, bytearray)):
        try:
            return bytes(raw).decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise MalformedInputError(f"Recording is not valid UTF-8: {exc}") from exc
    raise MalformedInputError(f"Unsupported recording input type: {type(raw).__name__}")


def _reject_constant(token: str) -> Any:
    # NaN and Infinity are not JSON; the browser side never produces them.
    raise ValueError(f"non-standard JSON constant {token}")


def load_recording(raw: Union[bytes, bytearray, str], max_bytes: Optional[int] = None) -> Recording:
    """Parse raw recording text into a Recording.

    The top level must be a JSON object with a ``steps`` array whose entries are
    objects. Anything else raises MalformedInputError; no partial result is returned.
    """

    text = _decode(raw)
    if max_bytes is not None:
        size = len(raw) if isinstance(raw, (bytes, bytearray)) else len(text.encode("utf-8"))
        if size > max_bytes:
            raise MalformedInputError(f"Recording exceeds the {max_bytes} byte limit")
    if not text.strip():
        raise MalformedInputError("Recording is empty")
    try:
        data = json.loads(text, parse_constant=_reject_constant)
    except ValueError as exc:
        raise MalformedInputError(f"Recording is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise MalformedInputError(f"Recording must contain a JSON object, got {type(data).__name__}")
    raw_steps = data.get("steps")
    if not isinstance(raw_steps, list):
        raise MalformedInputError("Recording has no 'steps' array")

    steps = []
    for idx, step in enumerate(raw_steps):
        if not isinstance(step, dict):
            raise MalformedInputError(f"Step {idx} must be an object, got {type(step).__name__}")
        kind = step.get("type")
        steps.append(
            RecordingStep(
                index=idx,
                kind=kind if isinstance(kind, str) else None,
                selectors=step.get("selectors"),
                value=step.get("value"),
                raw=step,
            )
        )

    title = data.get("title")
    recording = Recording(
        document=data,
        steps=tuple(steps),
        title=title if isinstance(title, str) and title.strip() else None,
    )
    logger.info("Loaded recording %r with %d steps", recording.title or "<untitled>", len(steps))
    return recording


async def load_recording_file(path: Union[str, Path], max_bytes: Optional[int] = None) -> Recording:
    """Read and parse a recording file without blocking the event loop."""

    target = Path(path)
    try:
        raw = await asyncio.to_thread(target.read_bytes)
    except OSError as exc:
        raise MalformedInputError(f"Unable to read recording {target}: {exc}") from exc
    return load_recording(raw, max_bytes=max_bytes)
