import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Optional

from fastapi import FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import CORS_ALLOW_ORIGINS, FACE_STORE, LOG_LEVEL
from .crypto import EmbeddingCipher, EnvKeyProvider
from .errors import EmbeddingError
from .face_utils import InsightFaceOracle
from .firebase_client import FirestoreFaceStore, decode_id_token, is_admin
from .models import (
    AccountStatusResponse,
    RegisterFaceRequest,
    TerminationListResponse,
    TerminationResponse,
    VerificationResponse,
    VerifyFaceRequest,
)
from .results import VerificationResult, VerificationStatus
from .service import FaceIdentityService
from .store import InMemoryFaceStore
from .utils import decode_base64_to_bgr

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ============================================
# Startup
# ============================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    # load the face model before the first request
    try:
        await get_service().prepare()
    except EmbeddingError as e:
        logger.warning("Face model not loaded at startup: %s", e)
    yield


# ============================================
# App Config & OpenAPI (Swagger)
# ============================================
app = FastAPI(
    lifespan=lifespan,
    title="Face Identity API",
    version="1.0",
    description="Face enrollment, verification and duplicate-identity blocking.",
    openapi_tags=[
        {"name": "Status", "description": "Monitoring and health routes."},
        {"name": "Face Identity", "description": "Enrollment, verification and account status."},
    ],
)

if CORS_ALLOW_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ============================================
# Service wiring
# ============================================
@lru_cache(maxsize=1)
def get_service() -> FaceIdentityService:
    if FACE_STORE == "memory":
        logger.warning("Using in-memory face store; enrollments are lost on restart.")
        store = InMemoryFaceStore()
    else:
        store = FirestoreFaceStore()
    return FaceIdentityService(
        store=store,
        oracle=InsightFaceOracle(),
        cipher=EmbeddingCipher(EnvKeyProvider()),
    )


# ============================================
# Helpers
# ============================================
_HTTP_STATUS = {
    VerificationStatus.SUCCESS: 200,
    VerificationStatus.NO_FACE: 422,
    VerificationStatus.MULTIPLE_FACES: 422,
    VerificationStatus.DUPLICATE_FACE: 409,
    VerificationStatus.NOT_ENROLLED: 404,
    VerificationStatus.ACCOUNT_TERMINATED: 403,
}


def _http_status(result: VerificationResult) -> int:
    if result.status is VerificationStatus.FAILURE:
        return 503 if result.retryable else 401
    return _HTTP_STATUS[result.status]


def _result_response(result: VerificationResult, success_code: int = 200) -> JSONResponse:
    code = success_code if result.success else _http_status(result)
    body = VerificationResponse(**result.to_dict())
    return JSONResponse(status_code=code, content=body.model_dump())


def _claims_from_token(id_token: Optional[str]) -> dict:
    if not id_token:
        raise HTTPException(status_code=401, detail={"status": 401, "msg": "Missing idToken"})
    try:
        return decode_id_token(id_token)
    except Exception as e:
        raise HTTPException(
            status_code=401,
            detail={"status": 401, "msg": f"Invalid idToken: {str(e)}"},
        )


def _uid_from_token(id_token: str) -> str:
    return _claims_from_token(id_token)["uid"]


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def _frame_from_base64(image_base64: str):
    try:
        return decode_base64_to_bgr(image_base64)
    except ValueError as e:
        raise HTTPException(status_code=400, detail={"status": 400, "msg": str(e)})


# ============================================
# Healthcheck
# ============================================
@app.get("/health", tags=["Status"], summary="API health check")
async def health():
    return {"status": 200, "msg": "API On-line"}


# ============================================
# Face Identity - Enroll
# ============================================
@app.post(
    "/register-face",
    tags=["Face Identity"],
    summary="Enroll the caller's face (uid from the Firebase idToken)",
    response_model=VerificationResponse,
    responses={
        201: {"description": "Face enrolled"},
        400: {"description": "Invalid image payload"},
        401: {"description": "Invalid or expired idToken"},
        403: {"description": "Account terminated"},
        409: {"description": "Face already enrolled by another account; that account was terminated"},
        422: {"description": "No face, or more than one face, in the capture"},
        503: {"description": "Face model or storage unavailable, retry"},
    },
)
async def register_face(body: RegisterFaceRequest):
    uid = _uid_from_token(body.idToken)
    frame = _frame_from_base64(body.image_base64)
    result = await get_service().enroll(uid, frame)
    return _result_response(result, success_code=201)


# ============================================
# Face Identity - Verify
# ============================================
@app.post(
    "/verify-face",
    tags=["Face Identity"],
    summary="Verify the caller's face against the enrolled one",
    response_model=VerificationResponse,
    responses={
        200: {"description": "Face verified"},
        400: {"description": "Invalid image payload"},
        401: {"description": "Invalid idToken, or the face did not match"},
        403: {"description": "Account terminated"},
        404: {"description": "No face enrolled"},
        422: {"description": "No face, or more than one face, in the capture"},
        503: {"description": "Face model or storage unavailable, retry"},
    },
)
async def verify_face(body: VerifyFaceRequest):
    uid = _uid_from_token(body.idToken)
    frame = _frame_from_base64(body.image_base64)
    result = await get_service().verify(uid, frame)
    return _result_response(result)


# ============================================
# Face Identity - Status
# ============================================
@app.get(
    "/face-status",
    tags=["Face Identity"],
    summary="Whether the caller is enrolled and whether the account was terminated",
    response_model=AccountStatusResponse,
    responses={401: {"description": "Missing, invalid or expired idToken"}},
)
async def face_status(authorization: Optional[str] = Header(None, description="Bearer <Firebase idToken>")):
    uid = _uid_from_token(_bearer_token(authorization))
    status = get_service().account_status(uid)
    return AccountStatusResponse(
        uid=status.user_id,
        is_terminated=status.is_terminated,
        has_enrolled=status.has_enrolled,
    )


@app.get(
    "/terminated-accounts",
    tags=["Face Identity"],
    summary="Termination log (audit, admin claim required)",
    response_model=TerminationListResponse,
    responses={
        401: {"description": "Missing, invalid or expired idToken"},
        403: {"description": "Caller lacks the admin claim"},
        503: {"description": "Termination log unavailable"},
    },
)
async def terminated_accounts(authorization: Optional[str] = Header(None, description="Bearer <Firebase idToken>")):
    claims = _claims_from_token(_bearer_token(authorization))
    if not is_admin(claims):
        logger.warning("Termination log refused for %s (no admin claim)", claims.get("uid"))
        raise HTTPException(status_code=403, detail={"status": 403, "msg": "Admin access required"})

    try:
        records = get_service().list_terminations()
    except Exception as e:
        logger.error("Could not read termination log: %s", e)
        return JSONResponse(
            status_code=503,
            content={"status": 503, "msg": f"Could not read termination log: {str(e)}"},
        )
    items = [
        TerminationResponse(
            user_id=record.user_id,
            terminated_at=record.terminated_at,
            reason=record.reason.value,
            matched_by=record.matched_by,
            confidence=record.confidence,
        )
        for record in records
    ]
    return TerminationListResponse(items=items, total=len(items))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
