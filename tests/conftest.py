from __future__ import annotations

import numpy as np
import pytest
from fastapi.testclient import TestClient

from face_fakes import FakeOracle, face_embedding, nearby
from face_identity.crypto import EmbeddingCipher, StaticKeyProvider
from face_identity.service import FaceIdentityService
from face_identity.store import InMemoryFaceStore

TEST_SECRET = "test-face-encryption-key"


@pytest.fixture
def cipher() -> EmbeddingCipher:
    return EmbeddingCipher(StaticKeyProvider(TEST_SECRET))


@pytest.fixture
def store() -> InMemoryFaceStore:
    return InMemoryFaceStore()


@pytest.fixture
def alice_face() -> np.ndarray:
    return face_embedding(1)


@pytest.fixture
def oracle(alice_face) -> FakeOracle:
    return FakeOracle(
        {
            "alice-1": [alice_face],
            "alice-2": [nearby(alice_face, 0.02)],
            "bob": [face_embedding(2)],
            "carol": [face_embedding(3)],
            "empty": [],
            "crowd": [face_embedding(2), face_embedding(3)],
        }
    )


@pytest.fixture
def make_service(store, cipher):
    def _make(oracle, **kwargs) -> FaceIdentityService:
        kwargs.setdefault("threshold", 0.95)
        kwargs.setdefault("inference_timeout", 2.0)
        kwargs.setdefault("reject_multiple_faces", True)
        return FaceIdentityService(store, oracle, cipher, **kwargs)

    return _make


@pytest.fixture
def service(make_service, oracle) -> FaceIdentityService:
    return make_service(oracle)


@pytest.fixture
def api_oracle(alice_face) -> FakeOracle:
    # frames are keyed by their first pixel value
    return FakeOracle(
        {
            10: [alice_face],
            11: [nearby(alice_face, 0.02)],
            20: [face_embedding(2)],
            30: [face_embedding(2), face_embedding(3)],
        },
        key=lambda frame: int(frame[0, 0, 0]),
    )


@pytest.fixture
def client(monkeypatch, make_service, api_oracle):
    from face_identity import main

    def fake_decode_id_token(token: str) -> dict:
        # tokens are the uid; an "admin" prefix grants the admin claim
        if token == "bad-token":
            raise ValueError("Token expired")
        return {"uid": token, "admin": token.startswith("admin")}

    service = make_service(api_oracle)
    monkeypatch.setattr(main, "decode_id_token", fake_decode_id_token)
    monkeypatch.setattr(main, "get_service", lambda: service)
    with TestClient(main.app) as test_client:
        yield test_client
