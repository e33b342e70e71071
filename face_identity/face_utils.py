# face_utils.py
from __future__ import annotations

import logging
import threading
from typing import Any, List, Protocol

import numpy as np

from .config import INSIGHTFACE_DET_SIZE, INSIGHTFACE_NAME, INSIGHTFACE_ROOT
from .errors import EmbeddingError

logger = logging.getLogger(__name__)


class EmbeddingOracle(Protocol):
    """
    Oracles may also define prepare(): a one-off model load that the service
    runs before the first extract, outside the inference timeout.
    """

    def extract(self, frame: Any) -> List[np.ndarray]:
        """Return one embedding per detected face, best face first."""
        ...


def normalize_embedding(emb: np.ndarray) -> np.ndarray:
    emb = np.asarray(emb, dtype=np.float32)
    return emb / (np.linalg.norm(emb) + 1e-10)


def _bbox_area(face) -> float:
    x1, y1, x2, y2 = face.bbox[:4]
    return float((x2 - x1) * (y2 - y1))


class InsightFaceOracle:
    """
    InsightFace FaceAnalysis wrapper. The model is prepared on first use,
    trying the GPU first and falling back to CPU.
    """

    def __init__(self, name: str = INSIGHTFACE_NAME, root: str = INSIGHTFACE_ROOT,
                 det_size: int = INSIGHTFACE_DET_SIZE):
        self.name = name
        self.root = root
        self.det_size = (det_size, det_size)
        self._app = None
        self._lock = threading.Lock()

    def _load(self):
        with self._lock:
            if self._app is not None:
                return self._app
            try:
                import insightface
            except ImportError as exc:
                raise EmbeddingError(
                    "insightface is not installed (pip install 'face-identity[model]')"
                ) from exc

            logger.info("Configuring InsightFace model %s (root=%s)", self.name, self.root)
            try:
                app = insightface.app.FaceAnalysis(name=self.name, root=self.root)
                app.prepare(ctx_id=0, det_size=self.det_size)
                logger.info("InsightFace using GPU (ctx_id=0).")
            except Exception as gpu_exc:
                logger.warning("GPU setup failed: %s; trying CPU (ctx_id=-1)", gpu_exc)
                try:
                    app = insightface.app.FaceAnalysis(name=self.name, root=self.root)
                    app.prepare(ctx_id=-1, det_size=self.det_size)
                except Exception as exc:
                    raise EmbeddingError(f"Could not load face model: {exc}") from exc
                logger.info("InsightFace CPU configured.")
            self._app = app
            return app

    def prepare(self) -> None:
        """Load the model now instead of on the first capture."""
        self._load()

    def extract(self, frame: np.ndarray) -> List[np.ndarray]:
        app = self._load()
        try:
            faces = app.get(frame)
        except Exception as exc:
            raise EmbeddingError(f"Face inference failed: {exc}") from exc
        if not faces:
            return []

        faces = sorted(faces, key=_bbox_area, reverse=True)
        return [normalize_embedding(face.embedding) for face in faces]
