# service.py
from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, List, Optional, Tuple

import numpy as np

from . import results
from .config import FACE_INFERENCE_TIMEOUT, FACE_REJECT_MULTIPLE, FACE_THRESHOLD
from .crypto import EmbeddingCipher
from .errors import CipherError, EmbeddingError, FaceIdentityError, FaceStoreError
from .face_utils import EmbeddingOracle
from .records import AccountStatus, FaceRecord, TerminationReason, TerminationRecord
from .results import VerificationResult
from .store import FaceStore
from .utils import euclidean_similarity, to_confidence, utc_now

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("face_identity.audit")


class FaceIdentityService:
    """
    Enrolls and verifies face embeddings per account and blocks duplicate
    identities across accounts.

    enroll/verify never raise (other than on task cancellation): every
    outcome, including infrastructure errors, is returned as a
    VerificationResult.

    Enrollment's duplicate scan and write, and verification's read and
    last_verified_at update, run under one lock over the whole face table:
    an in-process lock plus the store's table_lock, which spans processes.
    Model inference runs before the lock is taken and commits nothing.
    Loading the model (oracle.prepare) is not counted against the inference
    timeout.
    """

    def __init__(
        self,
        store: FaceStore,
        oracle: EmbeddingOracle,
        cipher: EmbeddingCipher,
        *,
        threshold: float = FACE_THRESHOLD,
        inference_timeout: Optional[float] = FACE_INFERENCE_TIMEOUT,
        reject_multiple_faces: bool = FACE_REJECT_MULTIPLE,
    ):
        if not 0.0 < threshold <= 1.0:
            raise ValueError(f"threshold must be in (0, 1], got {threshold}")
        self.store = store
        self.oracle = oracle
        self.cipher = cipher
        self.threshold = threshold
        self.inference_timeout = inference_timeout
        self.reject_multiple_faces = reject_multiple_faces
        self._table_lock = threading.Lock()

    # ============================================
    # Capture
    # ============================================
    async def prepare(self) -> None:
        """Load the face model ahead of the first capture."""
        prepare = getattr(self.oracle, "prepare", None)
        if prepare is not None:
            await asyncio.to_thread(prepare)

    async def _capture(self, frame: Any) -> Tuple[Optional[np.ndarray], Optional[VerificationResult]]:
        """
        Run the oracle off the event loop. Returns (embedding, None) or
        (None, result) when the capture cannot be used.
        """
        await self.prepare()
        call = asyncio.to_thread(self.oracle.extract, frame)
        if self.inference_timeout:
            embeddings = await asyncio.wait_for(call, timeout=self.inference_timeout)
        else:
            embeddings = await call

        if not embeddings:
            return None, results.no_face()
        if len(embeddings) > 1:
            if self.reject_multiple_faces:
                return None, results.multiple_faces(len(embeddings))
            logger.debug("%d faces detected, using the largest", len(embeddings))
        return np.asarray(embeddings[0], dtype=np.float32), None

    # ============================================
    # Enroll
    # ============================================
    async def enroll(self, user_id: str, frame: Any) -> VerificationResult:
        try:
            if self.store.is_terminated(user_id):
                logger.info("Enrollment refused for terminated account %s", user_id)
                return results.account_terminated()

            embedding, rejected = await self._capture(frame)
            if rejected is not None:
                return rejected

            return await asyncio.to_thread(self._enroll_locked, user_id, embedding)
        except asyncio.TimeoutError:
            logger.warning("Face inference timed out after %ss (enroll %s)", self.inference_timeout, user_id)
            return results.failure("Face capture timed out. Please try again.")
        except EmbeddingError as exc:
            logger.error("Face model error during enrollment of %s: %s", user_id, exc)
            return results.failure("Face registration failed. Please try again.")
        except FaceIdentityError as exc:
            logger.error("Enrollment of %s failed: %s", user_id, exc)
            return results.failure("Face registration failed. Please try again.")
        except ValueError as exc:
            logger.error("Incompatible face data during enrollment of %s: %s", user_id, exc)
            return results.failure("Face registration failed. Please contact support.", retryable=False)
        except Exception:
            logger.exception("Unexpected error during enrollment of %s", user_id)
            return results.failure("Face registration failed. Please try again.")

    def _enroll_locked(self, user_id: str, embedding: np.ndarray) -> VerificationResult:
        with self._table_lock, self.store.table_lock():
            if self.store.is_terminated(user_id):
                return results.account_terminated()
            match = self._find_duplicate(user_id, embedding)
            if match is not None:
                matched_user_id, similarity = match
                confidence = to_confidence(similarity)
                self._terminate(matched_user_id, matched_by=user_id, confidence=confidence)
                return results.duplicate_face(matched_user_id, confidence)

            record = FaceRecord(
                user_id=user_id,
                encrypted_embedding=self.cipher.encrypt(embedding),
                created_at=utc_now(),
            )
            self.store.put_face(record)
        logger.info("Face enrolled for %s", user_id)
        return results.enrolled()

    def _find_duplicate(self, user_id: str, embedding: np.ndarray) -> Optional[Tuple[str, float]]:
        for record in self.store.list_faces():
            if record.user_id == user_id:
                continue
            try:
                stored = self.cipher.decrypt(record.encrypted_embedding)
                similarity = euclidean_similarity(embedding, stored)
            except (CipherError, ValueError) as exc:
                # one unreadable record must not block every enrollment
                logger.error("Skipping unreadable face record %s in duplicate scan: %s", record.user_id, exc)
                continue
            if similarity >= self.threshold:
                return record.user_id, similarity
        return None

    def _terminate(self, user_id: str, *, matched_by: str, confidence: int) -> None:
        # block first, then drop the credential
        self.store.append_termination(
            TerminationRecord(
                user_id=user_id,
                terminated_at=utc_now(),
                reason=TerminationReason.DUPLICATE_FACE,
                matched_by=matched_by,
                confidence=confidence,
            )
        )
        self.store.delete_face(user_id)
        audit_logger.warning(
            "Account %s terminated: %s (matched by enrollment of %s, %d%% confidence)",
            user_id, TerminationReason.DUPLICATE_FACE.value, matched_by, confidence,
        )

    # ============================================
    # Verify
    # ============================================
    async def verify(self, user_id: str, frame: Any) -> VerificationResult:
        try:
            if self.store.is_terminated(user_id):
                return results.account_terminated()

            embedding, rejected = await self._capture(frame)
            if rejected is not None:
                return rejected

            return await asyncio.to_thread(self._verify_locked, user_id, embedding)
        except asyncio.TimeoutError:
            logger.warning("Face inference timed out after %ss (verify %s)", self.inference_timeout, user_id)
            return results.failure("Face capture timed out. Please try again.")
        except CipherError as exc:
            logger.error("Stored embedding for %s is unreadable: %s", user_id, exc)
            return results.failure("Face verification failed. Please contact support.", retryable=False)
        except FaceIdentityError as exc:
            logger.error("Verification of %s failed: %s", user_id, exc)
            return results.failure("Face verification failed. Please try again.")
        except ValueError as exc:
            logger.error("Incompatible face data for %s: %s", user_id, exc)
            return results.failure("Face verification failed. Please contact support.", retryable=False)
        except Exception:
            logger.exception("Unexpected error during verification of %s", user_id)
            return results.failure("Face verification failed. Please try again.")

    def _verify_locked(self, user_id: str, embedding: np.ndarray) -> VerificationResult:
        with self._table_lock, self.store.table_lock():
            record = self.store.get_face(user_id)
            if record is None:
                # terminated while this capture was running
                if self.store.is_terminated(user_id):
                    return results.account_terminated()
                return results.not_enrolled()

            stored = self.cipher.decrypt(record.encrypted_embedding)
            similarity = euclidean_similarity(embedding, stored)
            confidence = to_confidence(similarity)
            if similarity < self.threshold:
                logger.info("Face mismatch for %s (%d%%)", user_id, confidence)
                return results.mismatch(confidence)

            self.store.put_face(record.verified_at(utc_now()))
        logger.info("Face verified for %s (%d%%)", user_id, confidence)
        return results.verified(confidence)

    # ============================================
    # Status
    # ============================================
    def is_terminated(self, user_id: str) -> bool:
        try:
            return self.store.is_terminated(user_id)
        except FaceStoreError as exc:
            # unknown state blocks the account
            logger.error("Termination lookup for %s failed: %s", user_id, exc)
            return True

    def has_enrolled(self, user_id: str) -> bool:
        try:
            return self.store.get_face(user_id) is not None
        except FaceStoreError as exc:
            logger.error("Face record lookup for %s failed: %s", user_id, exc)
            return False

    def account_status(self, user_id: str) -> AccountStatus:
        return AccountStatus(
            user_id=user_id,
            is_terminated=self.is_terminated(user_id),
            has_enrolled=self.has_enrolled(user_id),
        )

    def list_terminations(self) -> List[TerminationRecord]:
        return self.store.list_terminations()
