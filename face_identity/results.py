# results.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class VerificationStatus(str, Enum):
    SUCCESS = "success"
    NO_FACE = "no-face-detected"
    MULTIPLE_FACES = "multiple-faces-detected"
    DUPLICATE_FACE = "duplicate-face-detected"
    NOT_ENROLLED = "not-enrolled"
    ACCOUNT_TERMINATED = "account-terminated"
    FAILURE = "failure"


@dataclass(frozen=True)
class VerificationResult:
    """
    Tagged outcome of an enroll/verify attempt.

    Callers branch on `status` and show `message`. `retryable` is only set on
    infrastructure failures (model, timeout, store, cipher); a mismatch or a
    policy outcome is final for that attempt.
    """

    success: bool
    status: VerificationStatus
    message: str
    confidence: int | None = None
    retryable: bool = False

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "status": self.status.value,
            "message": self.message,
            "confidence": self.confidence,
            "retryable": self.retryable,
        }


def no_face() -> VerificationResult:
    return VerificationResult(
        success=False,
        status=VerificationStatus.NO_FACE,
        message="No face detected. Please ensure your face is clearly visible.",
    )


def multiple_faces(count: int) -> VerificationResult:
    return VerificationResult(
        success=False,
        status=VerificationStatus.MULTIPLE_FACES,
        message=f"{count} faces detected. Please make sure only your face is in the frame.",
    )


def account_terminated() -> VerificationResult:
    return VerificationResult(
        success=False,
        status=VerificationStatus.ACCOUNT_TERMINATED,
        message="This account has been terminated and can no longer use face verification.",
    )


def not_enrolled() -> VerificationResult:
    return VerificationResult(
        success=False,
        status=VerificationStatus.NOT_ENROLLED,
        message="No registered face found. Please register your face first.",
    )


def duplicate_face(matched_user_id: str, confidence: int) -> VerificationResult:
    return VerificationResult(
        success=False,
        status=VerificationStatus.DUPLICATE_FACE,
        confidence=confidence,
        message=(
            f"Duplicate face detected. Account {matched_user_id} has been terminated. "
            "Only the first registered account is allowed."
        ),
    )


def enrolled() -> VerificationResult:
    return VerificationResult(
        success=True,
        status=VerificationStatus.SUCCESS,
        message="Face registered successfully",
    )


def verified(confidence: int) -> VerificationResult:
    return VerificationResult(
        success=True,
        status=VerificationStatus.SUCCESS,
        confidence=confidence,
        message=f"Face verified successfully ({confidence}% match)",
    )


def mismatch(confidence: int) -> VerificationResult:
    return VerificationResult(
        success=False,
        status=VerificationStatus.FAILURE,
        confidence=confidence,
        message=(
            f"Face verification failed ({confidence}% match). "
            "Please try again or use alternate authentication."
        ),
    )


def failure(message: str, retryable: bool = True) -> VerificationResult:
    return VerificationResult(
        success=False,
        status=VerificationStatus.FAILURE,
        message=message,
        retryable=retryable,
    )
