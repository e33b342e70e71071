from __future__ import annotations

import base64

import numpy as np
import pytest

from face_fakes import face_embedding, image_base64, nearby
from face_identity.utils import decode_base64_to_bgr, euclidean_similarity, to_confidence


def test_identical_embeddings_have_full_similarity():
    emb = face_embedding(1)

    assert euclidean_similarity(emb, emb) == pytest.approx(1.0)


def test_similarity_is_one_minus_distance():
    emb = face_embedding(1)

    assert euclidean_similarity(emb, nearby(emb, 0.3)) == pytest.approx(0.7, abs=1e-5)


def test_similarity_floors_at_zero():
    assert euclidean_similarity(np.zeros(4), np.full(4, 2.0)) == 0.0


def test_similarity_rejects_length_mismatch():
    with pytest.raises(ValueError):
        euclidean_similarity(np.zeros(128), np.zeros(64))


def test_confidence_rounds_half_up():
    assert to_confidence(0.125) == 13
    assert to_confidence(0.98) == 98
    assert to_confidence(0.0) == 0


def test_decode_base64_png():
    frame = decode_base64_to_bgr(image_base64(42))

    assert frame.shape == (8, 8, 3)
    assert int(frame[0, 0, 0]) == 42


def test_decode_data_url():
    frame = decode_base64_to_bgr("data:image/png;base64," + image_base64(7))

    assert int(frame[0, 0, 0]) == 7


def test_decode_rejects_invalid_base64():
    with pytest.raises(ValueError):
        decode_base64_to_bgr("not base64 !!!")


def test_decode_rejects_non_image_bytes():
    with pytest.raises(ValueError):
        decode_base64_to_bgr(base64.b64encode(b"plain text, not an image").decode("ascii"))
