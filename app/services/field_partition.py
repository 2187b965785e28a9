"""Partition of extracted fields across role buckets and the unassigned bucket.

A Partition is an immutable snapshot. The only way to obtain a different
arrangement is ``move_field``, which validates the request up front and builds
a new snapshot, so a rejected move can never leave a half-applied state behind.

Invariant: every extracted field sits in exactly one bucket, exactly once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..recorder.field_extractor import field_digest

logger = logging.getLogger(__name__)

UNASSIGNED_BUCKET = "unmappedFields"


@dataclass(frozen=True)
class RoleBucket:
    name: str
    label: str
    required: bool = True
    resolves_to: Optional[str] = None  # payload slot filled from the first entry


DEFAULT_ROLE_BUCKETS: Tuple[RoleBucket, ...] = (
    RoleBucket("usernameMappings", "Username", resolves_to="username"),
    RoleBucket("passwordMappings", "Current password"),
    RoleBucket("newPasswordMappings", "New password", resolves_to="password"),
)


class MoveError(Exception):
    code = "move_error"

    def __init__(self, message: str, **details: object) -> None:
        super().__init__(message)
        self.details = details


class UnknownField(MoveError):
    code = "unknown_field"


class InvalidIndex(MoveError):
    code = "invalid_index"


class UnknownBucket(MoveError):
    code = "unknown_bucket"


@dataclass(frozen=True)
class Partition:
    roles: Tuple[RoleBucket, ...]
    buckets: Tuple[Tuple[str, Tuple[str, ...]], ...]

    @classmethod
    def initial(cls, fields: Iterable[str], roles: Sequence[RoleBucket] = DEFAULT_ROLE_BUCKETS) -> "Partition":
        """All fields unassigned (in the given order), every role bucket empty."""
        roles = tuple(roles)
        names = [role.name for role in roles]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate role bucket names: {names}")
        if UNASSIGNED_BUCKET in names:
            raise ValueError(f"{UNASSIGNED_BUCKET!r} is reserved for unassigned fields")
        ordered = tuple(fields)
        if len(set(ordered)) != len(ordered):
            raise ValueError("Field identifiers must be unique")
        buckets = tuple((name, ()) for name in names) + ((UNASSIGNED_BUCKET, ordered),)
        return cls(roles=roles, buckets=buckets)

    @property
    def bucket_names(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.buckets)

    @property
    def fields(self) -> Tuple[str, ...]:
        return tuple(field_id for _, contents in self.buckets for field_id in contents)

    @property
    def unassigned(self) -> Tuple[str, ...]:
        return self.bucket(UNASSIGNED_BUCKET)

    def has_bucket(self, name: str) -> bool:
        return name in self.bucket_names

    def bucket(self, name: str) -> Tuple[str, ...]:
        for bucket_name, contents in self.buckets:
            if bucket_name == name:
                return contents
        raise UnknownBucket(f"Unknown bucket: {name!r}", bucket=name)

    def role(self, name: str) -> RoleBucket:
        for role in self.roles:
            if role.name == name:
                return role
        raise UnknownBucket(f"Unknown role bucket: {name!r}", bucket=name)

    def first_in(self, name: str) -> Optional[str]:
        contents = self.bucket(name)
        return contents[0] if contents else None

    def bucket_of(self, field_id: str) -> Optional[str]:
        for name, contents in self.buckets:
            if field_id in contents:
                return name
        return None

    def buckets_view(self) -> Dict[str, List[str]]:
        return {name: list(contents) for name, contents in self.buckets}


def _is_index(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def move_field(
    partition: Partition,
    field_id: str,
    source_bucket: str,
    source_index: int,
    dest_bucket: str,
    dest_index: int,
) -> Partition:
    """Relocate one field and return the resulting snapshot.

    Reorders within a bucket and reassignments across buckets share the same
    remove-then-insert semantics. Raises a MoveError subclass without touching
    ``partition`` when the request does not match the current arrangement.
    """

    for name in (source_bucket, dest_bucket):
        if not partition.has_bucket(name):
            raise UnknownBucket(f"Unknown bucket: {name!r}", bucket=name)

    source = partition.bucket(source_bucket)
    if field_id not in source:
        raise UnknownField(
            f"Field is not in bucket {source_bucket!r}",
            field=field_digest(field_id),
            bucket=source_bucket,
            actualBucket=partition.bucket_of(field_id),
        )
    if not _is_index(source_index) or not 0 <= source_index < len(source):
        raise InvalidIndex(
            f"Source index {source_index!r} is out of range for {source_bucket!r}",
            index=source_index,
            size=len(source),
        )
    if source[source_index] != field_id:
        raise InvalidIndex(
            f"Field is not at index {source_index} of {source_bucket!r}",
            index=source_index,
            actualIndex=source.index(field_id),
        )

    remaining = list(source)
    del remaining[source_index]
    target = remaining if dest_bucket == source_bucket else list(partition.bucket(dest_bucket))
    if not _is_index(dest_index) or not 0 <= dest_index <= len(target):
        raise InvalidIndex(
            f"Destination index {dest_index!r} is out of range for {dest_bucket!r}",
            index=dest_index,
            size=len(target),
        )
    target.insert(dest_index, field_id)

    updated = {source_bucket: tuple(remaining), dest_bucket: tuple(target)}
    buckets = tuple((name, updated.get(name, contents)) for name, contents in partition.buckets)
    logger.debug(
        "Moved field %s from %s[%d] to %s[%d]",
        field_digest(field_id),
        source_bucket,
        source_index,
        dest_bucket,
        dest_index,
    )
    return Partition(roles=partition.roles, buckets=buckets)
