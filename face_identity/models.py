# models.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class RegisterFaceRequest(BaseModel):
    """
    Face enrollment:
    - idToken: Firebase session token (resolves the uid)
    - image_base64: live capture, raw base64 or data URL
    """
    idToken: str
    image_base64: str


class VerifyFaceRequest(BaseModel):
    """
    Face verification:
    - idToken: Firebase session token (resolves the uid)
    - image_base64: current capture compared against the enrolled face
    """
    idToken: str
    image_base64: str


class VerificationResponse(BaseModel):
    status: str
    success: bool
    message: str
    confidence: Optional[int] = None
    retryable: bool = False


class AccountStatusResponse(BaseModel):
    uid: str
    is_terminated: bool
    has_enrolled: bool


class TerminationResponse(BaseModel):
    user_id: str
    terminated_at: datetime
    reason: str
    matched_by: Optional[str] = None
    confidence: Optional[int] = None


class TerminationListResponse(BaseModel):
    items: List[TerminationResponse]
    total: int
