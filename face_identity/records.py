# records.py
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum


class TerminationReason(str, Enum):
    DUPLICATE_FACE = "duplicate-face-detected"


@dataclass(frozen=True)
class FaceRecord:
    user_id: str
    encrypted_embedding: str
    created_at: datetime
    last_verified_at: datetime | None = None

    def verified_at(self, when: datetime) -> FaceRecord:
        return replace(self, last_verified_at=when)


@dataclass(frozen=True)
class TerminationRecord:
    user_id: str
    terminated_at: datetime
    reason: TerminationReason = TerminationReason.DUPLICATE_FACE
    # account whose enrollment matched this one
    matched_by: str | None = None
    confidence: int | None = None


@dataclass(frozen=True)
class AccountStatus:
    user_id: str
    is_terminated: bool
    has_enrolled: bool
