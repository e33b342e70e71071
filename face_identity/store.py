# store.py
from __future__ import annotations

import contextlib
import threading
from typing import ContextManager, Dict, List, Optional, Protocol

from .records import FaceRecord, TerminationRecord


class FaceStore(Protocol):
    """
    Persistence for face records (keyed by user_id) and the append-only
    termination log. Implementations raise FaceStoreError on I/O failure.
    """

    def get_face(self, user_id: str) -> Optional[FaceRecord]: ...

    def put_face(self, record: FaceRecord) -> None: ...

    def delete_face(self, user_id: str) -> None: ...

    def list_faces(self) -> List[FaceRecord]: ...

    def append_termination(self, record: TerminationRecord) -> None: ...

    def is_terminated(self, user_id: str) -> bool: ...

    def list_terminations(self) -> List[TerminationRecord]: ...

    def table_lock(self) -> ContextManager[None]:
        """Exclusive hold on the face table across every process sharing the store."""
        ...


class InMemoryFaceStore:
    """Single-process store; the service's own lock already serialises it."""

    def __init__(self):
        self._lock = threading.Lock()
        self._faces: Dict[str, FaceRecord] = {}
        self._terminations: List[TerminationRecord] = []

    def get_face(self, user_id: str) -> Optional[FaceRecord]:
        with self._lock:
            return self._faces.get(user_id)

    def put_face(self, record: FaceRecord) -> None:
        with self._lock:
            self._faces[record.user_id] = record

    def delete_face(self, user_id: str) -> None:
        with self._lock:
            self._faces.pop(user_id, None)

    def list_faces(self) -> List[FaceRecord]:
        with self._lock:
            return list(self._faces.values())

    def append_termination(self, record: TerminationRecord) -> None:
        with self._lock:
            if any(t.user_id == record.user_id for t in self._terminations):
                return
            self._terminations.append(record)

    def is_terminated(self, user_id: str) -> bool:
        with self._lock:
            return any(t.user_id == user_id for t in self._terminations)

    def list_terminations(self) -> List[TerminationRecord]:
        with self._lock:
            return list(self._terminations)

    def table_lock(self) -> ContextManager[None]:
        return contextlib.nullcontext()
