from __future__ import annotations

from types import SimpleNamespace

import numpy as np
import pytest

from face_identity.errors import EmbeddingError
from face_identity.face_utils import InsightFaceOracle, normalize_embedding


class FakeFaceAnalysis:
    def __init__(self, faces):
        self.faces = faces

    def get(self, frame):
        return self.faces


def _face(bbox, embedding):
    return SimpleNamespace(bbox=np.array(bbox, dtype=np.float32), embedding=np.array(embedding, dtype=np.float32))


def test_faces_are_ordered_by_area_and_normalised():
    small = _face([100, 100, 120, 120], [3.0, 4.0])
    large = _face([0, 0, 80, 80], [0.0, 2.0])
    oracle = InsightFaceOracle()
    oracle._app = FakeFaceAnalysis([small, large])

    embeddings = oracle.extract(np.zeros((4, 4, 3), dtype=np.uint8))

    assert len(embeddings) == 2
    assert np.allclose(embeddings[0], [0.0, 1.0])
    assert np.allclose(embeddings[1], [0.6, 0.8])
    assert embeddings[0].dtype == np.float32


def test_no_faces_returns_empty_list():
    oracle = InsightFaceOracle()
    oracle._app = FakeFaceAnalysis([])

    assert oracle.extract(np.zeros((4, 4, 3), dtype=np.uint8)) == []


def test_inference_errors_become_embedding_errors():
    class Exploding:
        def get(self, frame):
            raise RuntimeError("onnx session failed")

    oracle = InsightFaceOracle()
    oracle._app = Exploding()

    with pytest.raises(EmbeddingError):
        oracle.extract(np.zeros((4, 4, 3), dtype=np.uint8))


def test_normalize_embedding_has_unit_norm():
    assert np.linalg.norm(normalize_embedding(np.array([3.0, 4.0]))) == pytest.approx(1.0, abs=1e-6)


def test_prepare_keeps_an_already_loaded_model():
    app = FakeFaceAnalysis([])
    oracle = InsightFaceOracle()
    oracle._app = app

    oracle.prepare()

    assert oracle._app is app
