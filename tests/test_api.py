from __future__ import annotations

from fastapi.testclient import TestClient

from face_fakes import WarmingOracle, image_base64


def _body(token: str, pixel: int) -> dict:
    return {"idToken": token, "image_base64": image_base64(pixel)}


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": 200, "msg": "API On-line"}


def test_register_then_verify(client):
    registered = client.post("/register-face", json=_body("alice", 10))
    assert registered.status_code == 201
    assert registered.json()["status"] == "success"

    verified = client.post("/verify-face", json=_body("alice", 11))
    payload = verified.json()
    assert verified.status_code == 200
    assert payload["success"] is True
    assert payload["confidence"] >= 95

    status = client.get("/face-status", headers=_auth("alice")).json()
    assert status == {"uid": "alice", "is_terminated": False, "has_enrolled": True}


def test_duplicate_registration_terminates_first_account(client):
    client.post("/register-face", json=_body("alice", 10))

    duplicate = client.post("/register-face", json=_body("mallory", 11))
    assert duplicate.status_code == 409
    assert duplicate.json()["status"] == "duplicate-face-detected"

    status = client.get("/face-status", headers=_auth("alice")).json()
    assert status["is_terminated"] is True
    assert status["has_enrolled"] is False

    blocked = client.post("/verify-face", json=_body("alice", 10))
    assert blocked.status_code == 403
    assert blocked.json()["status"] == "account-terminated"

    log = client.get("/terminated-accounts", headers=_auth("admin-ops")).json()
    assert log["total"] == 1
    assert log["items"][0]["user_id"] == "alice"
    assert log["items"][0]["matched_by"] == "mallory"
    assert log["items"][0]["reason"] == "duplicate-face-detected"


def test_verify_unknown_face_is_rejected(client):
    client.post("/register-face", json=_body("alice", 10))

    response = client.post("/verify-face", json=_body("alice", 20))

    assert response.status_code == 401
    assert response.json()["status"] == "failure"
    assert response.json()["retryable"] is False


def test_verify_without_enrollment(client):
    response = client.post("/verify-face", json=_body("bob", 20))

    assert response.status_code == 404
    assert response.json()["status"] == "not-enrolled"


def test_no_face_and_multiple_faces(client):
    no_face = client.post("/register-face", json=_body("bob", 0))
    crowd = client.post("/register-face", json=_body("bob", 30))

    assert no_face.status_code == 422
    assert no_face.json()["status"] == "no-face-detected"
    assert crowd.status_code == 422
    assert crowd.json()["status"] == "multiple-faces-detected"
    assert client.get("/face-status", headers=_auth("bob")).json()["has_enrolled"] is False


def test_invalid_token_is_unauthorized(client):
    response = client.post("/register-face", json=_body("bad-token", 10))

    assert response.status_code == 401
    assert response.json()["detail"]["status"] == 401


def test_invalid_image_is_bad_request(client):
    response = client.post("/verify-face", json={"idToken": "alice", "image_base64": "%%%"})

    assert response.status_code == 400


def test_face_status_requires_a_token(client):
    assert client.get("/face-status").status_code == 401
    assert client.get("/face-status", headers=_auth("bad-token")).status_code == 401
    assert client.get("/face-status", headers={"Authorization": "Basic alice"}).status_code == 401


def test_face_status_reports_only_the_caller(client):
    client.post("/register-face", json=_body("alice", 10))

    # a uid query parameter cannot select another account
    status = client.get("/face-status", params={"uid": "alice"}, headers=_auth("bob")).json()

    assert status == {"uid": "bob", "is_terminated": False, "has_enrolled": False}


def test_termination_log_requires_admin_claim(client):
    client.post("/register-face", json=_body("alice", 10))
    client.post("/register-face", json=_body("mallory", 11))

    assert client.get("/terminated-accounts").status_code == 401
    assert client.get("/terminated-accounts", headers=_auth("bad-token")).status_code == 401

    forbidden = client.get("/terminated-accounts", headers=_auth("mallory"))
    assert forbidden.status_code == 403
    assert forbidden.json()["detail"]["status"] == 403

    assert client.get("/terminated-accounts", headers=_auth("admin-ops")).json()["total"] == 1


def test_startup_loads_the_face_model(monkeypatch, make_service):
    from face_identity import main

    oracle = WarmingOracle({}, load_time=0.0)
    service = make_service(oracle)
    monkeypatch.setattr(main, "get_service", lambda: service)

    with TestClient(main.app) as test_client:
        assert oracle.prepared == 1
        assert test_client.get("/health").status_code == 200
