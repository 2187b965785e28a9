from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from .field_partition import Partition


@dataclass(frozen=True)
class ReadinessReport:
    ready: bool
    unassigned_count: int
    missing_roles: List[str] = field(default_factory=list)

    def message(self) -> str:
        if self.ready:
            return "All fields are mapped."
        parts = []
        if self.unassigned_count:
            parts.append(f"{self.unassigned_count} field(s) still unmapped")
        if self.missing_roles:
            parts.append("no field mapped to " + ", ".join(self.missing_roles))
        return "Please map all fields before generating the payload: " + "; ".join(parts) + "."

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ready": self.ready,
            "unassignedCount": self.unassigned_count,
            "missingRoles": list(self.missing_roles),
            "message": self.message(),
        }


def readiness_report(partition: Partition) -> ReadinessReport:
    unassigned = len(partition.unassigned)
    missing = [role.label for role in partition.roles if role.required and not partition.bucket(role.name)]
    return ReadinessReport(ready=unassigned == 0 and not missing, unassigned_count=unassigned, missing_roles=missing)


def is_ready(partition: Partition) -> bool:
    """True when nothing is left unassigned and every required role holds a field."""
    if partition.unassigned:
        return False
    return all(partition.bucket(role.name) for role in partition.roles if role.required)
