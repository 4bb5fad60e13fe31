import json

import pytest
from fastapi.testclient import TestClient

from llf_api.main import app
from llf_api.services import get_services
from llf_api.tests.support import FakeBlobStore, make_services

PNG = ("machine.png", b"\x89PNG-bytes", "image/png")


@pytest.fixture
def services():
    built = make_services(blob_store=FakeBlobStore())
    app.dependency_overrides[get_services] = lambda: built
    yield built
    app.dependency_overrides.clear()


@pytest.fixture
def client(services):
    return TestClient(app)


def _register(client, email, role="WORKMAN", section="SPINNING"):
    resp = client.post(
        "/auth/register",
        json={"email": email, "password": "s3cret!", "name": email.split("@")[0], "role": role, "section": section},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def _login(client, email):
    resp = client.post("/auth/login", json={"email": email, "password": "s3cret!"})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def _workman(client, email="ravi@plant.test"):
    _register(client, email)
    return _login(client, email)


def _create_machine(client, headers, **fields):
    payload = {"name": "Spinneret Drive", "category": "PUMPS", "section": "SPINNING", **fields}
    resp = client.post("/machines", data={"payload": json.dumps(payload)}, files={"image": PNG}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _inspect(client, headers, machine_id, look="OK", **extra):
    payload = {"machine_id": machine_id, "look": {"status": look, "notes": "checked"}, **extra}
    return client.post("/inspections", data={"payload": json.dumps(payload)}, headers=headers)


def test_register_login_and_me(client):
    user = _register(client, "ravi@plant.test")
    assert user["is_approved"] is True
    headers = _login(client, "RAVI@plant.test")
    resp = client.get("/me", headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == user["id"]
    assert body["access"]["is_admin"] is False
    assert body["access"]["capabilities"] == ["manage_machines"]


def test_missing_or_bad_token_is_unauthorized(client):
    resp = client.get("/me")
    assert resp.status_code == 401
    assert resp.headers["WWW-Authenticate"] == "Bearer"
    assert resp.json()["code"] == "unauthenticated"
    assert client.get("/dashboard", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_pending_engineer_is_forbidden_until_approved(client, services):
    engineer = _register(client, "eng@plant.test", role="ENGINEER")
    resp = client.post("/auth/login", json={"email": "eng@plant.test", "password": "s3cret!"})
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Your account is pending approval"

    session = services.identity.authenticate("eng@plant.test", "s3cret!")
    assert client.get("/me", headers={"Authorization": f"Bearer {session.token}"}).status_code == 403

    workman = _workman(client)
    assert client.get("/users/pending-engineers", headers=workman).status_code == 403

    _register(client, "head@plant.test", role="AREA_HEAD")
    head = _login(client, "head@plant.test")
    pending = client.get("/users/pending-engineers", headers=head).json()
    assert [item["id"] for item in pending] == [engineer["id"]]
    resp = client.post(f"/users/{engineer['id']}/approval", json={"approved": True}, headers=head)
    assert resp.status_code == 200
    assert resp.json()["is_approved"] is True
    _login(client, "eng@plant.test")


def test_machine_lifecycle_over_http(client, services):
    headers = _workman(client)
    machine = _create_machine(client, headers)
    assert machine["image_ref"].startswith("mem://machine_images/")
    assert machine["image_url"].startswith("https://blobs.test/machine_images/")
    assert machine["inspection_frequency"] == "WEEKLY"
    assert machine["version"] == 1

    listed = client.get("/machines", params={"section": "SPINNING"}, headers=headers).json()
    assert [item["id"] for item in listed] == [machine["id"]]
    assert client.get("/machines", params={"category": "FANS"}, headers=headers).json() == []
    found = client.get("/machines/search", params={"q": "spinneret"}, headers=headers).json()
    assert [item["id"] for item in found] == [machine["id"]]

    update = {"name": "Spinneret Drive 2", "section": "SPINNING", "expected_version": 1}
    resp = client.put(f"/machines/{machine['id']}", data={"payload": json.dumps(update)}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["version"] == 2
    assert resp.json()["image_ref"] == machine["image_ref"]

    stale = client.put(f"/machines/{machine['id']}", data={"payload": json.dumps(update)}, headers=headers)
    assert stale.status_code == 409
    assert stale.json()["code"] == "conflict"

    assert client.delete(f"/machines/{machine['id']}", headers=headers).json() == {"id": machine["id"], "deleted": True}
    assert client.get(f"/machines/{machine['id']}", headers=headers).status_code == 404
    assert machine["image_ref"] in services.blob_store.deleted


def test_machine_validation_errors_are_bad_requests(client):
    headers = _workman(client)
    no_image = client.post("/machines", data={"payload": json.dumps({"name": "Fan"})}, headers=headers)
    assert no_image.status_code == 400
    assert no_image.json()["detail"] == "Machine image is required"

    bad_section = client.post(
        "/machines",
        data={"payload": json.dumps({"name": "Fan", "section": "WEAVING"})},
        files={"image": PNG},
        headers=headers,
    )
    assert bad_section.status_code == 400
    assert bad_section.json()["code"] == "validation_error"

    assert client.post("/machines", files={"image": PNG}, headers=headers).status_code == 400
    both = client.get("/machines", params={"section": "SPINNING", "due": "true"}, headers=headers)
    assert both.status_code == 400


def test_inspection_flow_and_abnormality_permissions(client):
    workman = _workman(client)
    machine = _create_machine(client, workman)

    resp = client.post(
        "/inspections",
        data={"payload": json.dumps({"machine_id": machine["id"], "look": {"status": "NOT_OK", "notes": "oil leak"}})},
        files={"look_image": ("look.jpg", b"jpeg-bytes", "image/jpeg")},
        headers=workman,
    )
    assert resp.status_code == 201, resp.text
    inspection = resp.json()
    assert inspection["has_abnormality"] is True
    assert inspection["abnormality_status"] == "OPEN"
    assert inspection["requires_engineer_attention"] is True
    assert inspection["look"]["attachment"].startswith("mem://inspection_images/")
    assert inspection["listen"]["attachment"] is None

    refreshed = client.get(f"/machines/{machine['id']}", headers=workman).json()
    assert refreshed["last_inspection"] is not None

    close = {"status": "CLOSED", "resolution_notes": "sealed", "expected_version": inspection["version"]}
    denied = client.post(
        f"/inspections/{inspection['id']}/abnormality", data={"payload": json.dumps(close)}, headers=workman
    )
    assert denied.status_code == 403

    _register(client, "boss@plant.test", role="MANAGEMENT")
    boss = _login(client, "boss@plant.test")
    open_items = client.get("/inspections", params={"open_abnormalities": "true"}, headers=boss).json()
    assert [item["id"] for item in open_items] == [inspection["id"]]

    closed = client.post(
        f"/inspections/{inspection['id']}/abnormality",
        data={"payload": json.dumps(close)},
        files={"resolution_image": ("fixed.png", b"png", "image/png")},
        headers=boss,
    )
    assert closed.status_code == 200, closed.text
    body = closed.json()
    assert body["abnormality_status"] == "CLOSED"
    assert body["abnormality_closed_by"] is not None
    assert body["abnormality_resolution_url"].startswith("https://blobs.test/resolution_images/")
    assert client.get("/inspections", params={"open_abnormalities": "true"}, headers=boss).json() == []

    assert client.delete(f"/inspections/{inspection['id']}", headers=workman).status_code == 403


def test_drafts_can_be_completed_and_deleted(client):
    headers = _workman(client)
    machine = _create_machine(client, headers)
    draft = _inspect(client, headers, machine["id"], is_draft=True).json()
    assert draft["is_draft"] is True
    drafts = client.get("/inspections", params={"drafts": "true"}, headers=headers).json()
    assert [item["id"] for item in drafts] == [draft["id"]]
    assert client.get(f"/machines/{machine['id']}", headers=headers).json()["last_inspection"] is None

    completed = client.put(
        f"/inspections/{draft['id']}",
        data={"payload": json.dumps({"is_draft": False, "expected_version": draft["version"]})},
        headers=headers,
    )
    assert completed.status_code == 200
    assert completed.json()["is_draft"] is False
    assert client.get(f"/machines/{machine['id']}", headers=headers).json()["last_inspection"] is not None

    second = _inspect(client, headers, machine["id"], is_draft=True).json()
    assert client.delete(f"/inspections/{second['id']}", headers=headers).status_code == 200
    assert client.get(f"/inspections/{second['id']}", headers=headers).status_code == 404
    assert _inspect(client, headers, "missing-machine").status_code == 404


def test_inspection_listing_rejects_multiple_filters(client):
    headers = _workman(client)
    resp = client.get("/inspections", params={"drafts": "true", "section": "SPINNING"}, headers=headers)
    assert resp.status_code == 400


def test_dashboard_shows_section_abnormalities(client):
    headers = _workman(client)
    machine = _create_machine(client, headers)
    abnormal = _inspect(client, headers, machine["id"], look="NOT_OK").json()
    _inspect(client, headers, machine["id"])

    resp = client.get("/dashboard", headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["user"]["email"] == "ravi@plant.test"
    assert [item["id"] for item in body["abnormalities"]] == [abnormal["id"]]
    assert body["machines_due"] == []


def test_logout_revokes_token(client):
    headers = _workman(client)
    assert client.post("/auth/logout", headers=headers).json() == {"status": "signed_out"}
    assert client.get("/me", headers=headers).status_code == 401


def test_password_reset_endpoints(client, services):
    _register(client, "ravi@plant.test")
    assert client.post("/auth/password-reset", json={"email": "ravi@plant.test"}).json() == {"status": "sent"}
    assert client.post("/auth/password-reset", json={"email": "ghost@plant.test"}).status_code == 404
    token = services.identity.issue_password_reset("ravi@plant.test")
    resp = client.post("/auth/password-reset/confirm", json={"token": token, "new_password": "n3w-secret"})
    assert resp.json() == {"status": "updated"}
    assert client.post("/auth/login", json={"email": "ravi@plant.test", "password": "n3w-secret"}).status_code == 200
