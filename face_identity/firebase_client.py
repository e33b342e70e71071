# firebase_client.py
from __future__ import annotations

import logging
import threading
import time
import uuid
from contextlib import contextmanager
from datetime import timedelta
from typing import Iterator, List, Optional

import firebase_admin
from firebase_admin import auth, credentials, firestore
from google.api_core import exceptions as google_exceptions

from .config import (
    FACE_TABLE_LOCK_TIMEOUT,
    FACE_TABLE_LOCK_TTL,
    FIREBASE_ADMIN_CLAIM,
    FIREBASE_CREDENTIALS,
    FIREBASE_FACES_COLLECTION,
    FIREBASE_LOCKS_COLLECTION,
    FIREBASE_TERMINATIONS_COLLECTION,
)
from .errors import FaceStoreError
from .records import FaceRecord, TerminationReason, TerminationRecord
from .utils import utc_now

logger = logging.getLogger(__name__)

_init_lock = threading.Lock()

FACE_TABLE_LOCK_ID = "face-table"


def init_firebase() -> firebase_admin.App:
    """Initialise the default Firebase Admin app once per process."""
    with _init_lock:
        try:
            return firebase_admin.get_app()
        except ValueError:
            pass
        logger.info("Initialising Firebase Admin from %s", FIREBASE_CREDENTIALS)
        cred = credentials.Certificate(FIREBASE_CREDENTIALS)
        return firebase_admin.initialize_app(cred)


def decode_id_token(id_token: str) -> dict:
    """
    Verify a Firebase idToken and return its decoded claims ("uid" plus any
    custom claims). Raises if the token is invalid or expired.
    """
    init_firebase()
    return auth.verify_id_token(id_token)


def is_admin(claims: dict) -> bool:
    return claims.get(FIREBASE_ADMIN_CLAIM) is True


def _face_to_doc(record: FaceRecord) -> dict:
    return {
        "user_id": record.user_id,
        "encrypted_embedding": record.encrypted_embedding,
        "created_at": record.created_at,
        "last_verified_at": record.last_verified_at,
    }


def _face_from_doc(doc_id: str, data: dict) -> FaceRecord:
    return FaceRecord(
        user_id=data.get("user_id", doc_id),
        encrypted_embedding=data["encrypted_embedding"],
        created_at=data["created_at"],
        last_verified_at=data.get("last_verified_at"),
    )


def _termination_to_doc(record: TerminationRecord) -> dict:
    return {
        "user_id": record.user_id,
        "terminated_at": record.terminated_at,
        "reason": record.reason.value,
        "matched_by": record.matched_by,
        "confidence": record.confidence,
    }


def _termination_from_doc(doc_id: str, data: dict) -> TerminationRecord:
    return TerminationRecord(
        user_id=data.get("user_id", doc_id),
        terminated_at=data["terminated_at"],
        reason=TerminationReason(data.get("reason", TerminationReason.DUPLICATE_FACE.value)),
        matched_by=data.get("matched_by"),
        confidence=data.get("confidence"),
    )


class FirestoreFaceStore:
    """
    Face records live in one document per uid. Terminations are keyed by uid
    too; a termination document is created once and never overwritten or
    removed. `table_lock` is a lease document shared by every process (and
    uvicorn worker) using the same project.
    """

    def __init__(self, db=None,
                 faces_collection: str = FIREBASE_FACES_COLLECTION,
                 terminations_collection: str = FIREBASE_TERMINATIONS_COLLECTION,
                 locks_collection: str = FIREBASE_LOCKS_COLLECTION,
                 lock_ttl: float = FACE_TABLE_LOCK_TTL,
                 lock_timeout: float = FACE_TABLE_LOCK_TIMEOUT,
                 lock_poll: float = 0.05):
        if db is None:
            init_firebase()
            db = firestore.client()
        self._db = db
        self.faces_collection = faces_collection
        self.terminations_collection = terminations_collection
        self.locks_collection = locks_collection
        self.lock_ttl = lock_ttl
        self.lock_timeout = lock_timeout
        self.lock_poll = lock_poll

    def _faces(self):
        return self._db.collection(self.faces_collection)

    def _terminations(self):
        return self._db.collection(self.terminations_collection)

    def _locks(self):
        return self._db.collection(self.locks_collection)

    # ============================================
    # Face table lease
    # ============================================
    @contextmanager
    def table_lock(self) -> Iterator[None]:
        owner = uuid.uuid4().hex
        doc_ref = self._locks().document(FACE_TABLE_LOCK_ID)
        try:
            self._acquire(doc_ref, owner)
        except google_exceptions.GoogleAPIError as exc:
            raise FaceStoreError(f"Could not lock the face table: {exc}") from exc
        try:
            yield
        finally:
            self._release(doc_ref, owner)

    def _acquire(self, doc_ref, owner: str) -> None:
        deadline = time.monotonic() + self.lock_timeout
        while True:
            try:
                doc_ref.create({
                    "owner": owner,
                    "expires_at": utc_now() + timedelta(seconds=self.lock_ttl),
                })
                return
            except google_exceptions.AlreadyExists:
                pass

            snapshot = doc_ref.get()
            if snapshot.exists and snapshot.to_dict()["expires_at"] <= utc_now():
                # expired lease: only the taker whose precondition holds deletes it
                try:
                    doc_ref.delete(option=self._db.write_option(last_update_time=snapshot.update_time))
                    logger.warning("Took over expired face table lease of %s", snapshot.to_dict().get("owner"))
                except (google_exceptions.FailedPrecondition, google_exceptions.NotFound):
                    pass
                continue

            if time.monotonic() >= deadline:
                raise FaceStoreError("Timed out waiting for the face table lock.")
            time.sleep(self.lock_poll)

    def _release(self, doc_ref, owner: str) -> None:
        try:
            snapshot = doc_ref.get()
            if snapshot.exists and snapshot.to_dict().get("owner") == owner:
                doc_ref.delete(option=self._db.write_option(last_update_time=snapshot.update_time))
        except google_exceptions.GoogleAPIError as exc:
            # the lease expires on its own
            logger.warning("Could not release face table lease %s: %s", owner, exc)

    # ============================================
    # Face records
    # ============================================
    def get_face(self, user_id: str) -> Optional[FaceRecord]:
        try:
            doc = self._faces().document(user_id).get()
        except google_exceptions.GoogleAPIError as exc:
            raise FaceStoreError(f"Could not read face record: {exc}") from exc
        if not doc.exists:
            return None
        return _face_from_doc(doc.id, doc.to_dict())

    def put_face(self, record: FaceRecord) -> None:
        try:
            self._faces().document(record.user_id).set(_face_to_doc(record))
        except google_exceptions.GoogleAPIError as exc:
            raise FaceStoreError(f"Could not save face record: {exc}") from exc

    def delete_face(self, user_id: str) -> None:
        try:
            self._faces().document(user_id).delete()
        except google_exceptions.GoogleAPIError as exc:
            raise FaceStoreError(f"Could not delete face record: {exc}") from exc

    def list_faces(self) -> List[FaceRecord]:
        try:
            return [_face_from_doc(doc.id, doc.to_dict()) for doc in self._faces().stream()]
        except google_exceptions.GoogleAPIError as exc:
            raise FaceStoreError(f"Could not list face records: {exc}") from exc

    # ============================================
    # Termination log
    # ============================================
    def append_termination(self, record: TerminationRecord) -> None:
        try:
            self._terminations().document(record.user_id).create(_termination_to_doc(record))
        except google_exceptions.AlreadyExists:
            logger.info("Termination of %s already recorded", record.user_id)
        except google_exceptions.GoogleAPIError as exc:
            raise FaceStoreError(f"Could not record termination: {exc}") from exc

    def is_terminated(self, user_id: str) -> bool:
        try:
            return self._terminations().document(user_id).get().exists
        except google_exceptions.GoogleAPIError as exc:
            raise FaceStoreError(f"Could not read termination log: {exc}") from exc

    def list_terminations(self) -> List[TerminationRecord]:
        try:
            return [
                _termination_from_doc(doc.id, doc.to_dict())
                for doc in self._terminations().stream()
            ]
        except google_exceptions.GoogleAPIError as exc:
            raise FaceStoreError(f"Could not list terminations: {exc}") from exc
