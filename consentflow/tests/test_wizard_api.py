import uuid

from fastapi.testclient import TestClient

from consentflow.api.main import _get_contact_directory, _get_flow_store, app
from consentflow.internal_core.contracts import Contact
from consentflow.persistence import InMemoryDraftPersistence


class _BrokenPersistence(InMemoryDraftPersistence):
    def create(self, draft):
        _ = draft
        raise RuntimeError("draft store unavailable for test")


def _start(client: TestClient, owner_id: str | None = None) -> dict:
    response = client.post(
        "/wizard/sessions",
        json={"owner_id": owner_id or f"owner_{uuid.uuid4().hex[:8]}", "username": "me"},
    )
    assert response.status_code == 200
    return response.json()


def test_healthz_and_catalogs() -> None:
    client = TestClient(app)
    assert client.get("/healthz").json() == {"status": "ok"}

    encounter_types = client.get("/catalog/encounter-types").json()
    intimate = next(item for item in encounter_types if item["id"] == "intimate")
    assert intimate["requires_jurisdiction"] is True
    assert len(client.get("/catalog/states").json()) == 51
    assert "Kissing" in client.get("/catalog/intimate-acts").json()
    routes = [item["route"] for item in client.get("/catalog/recording-methods").json()]
    assert "/create/consent/voice" in routes


def test_start_session_returns_first_step() -> None:
    client = TestClient(app)
    session = _start(client)
    assert session["step"] == 1
    assert session["total_steps"] == 5
    assert session["state"]["parties"] == ["@me", ""]
    assert session["can_proceed"] is False


def test_unknown_session_returns_404() -> None:
    client = TestClient(app)
    response = client.get("/wizard/sessions/does_not_exist")
    assert response.status_code == 404
    assert "Wizard session not found" in response.json()["detail"]


def test_next_is_gated_then_walks_jurisdiction_topology() -> None:
    client = TestClient(app)
    session_id = _start(client)["session_id"]

    blocked = client.post(f"/wizard/sessions/{session_id}/next").json()
    assert blocked["moved"] is False
    assert blocked["message"] == "Please select an encounter type"

    patched = client.patch(f"/wizard/sessions/{session_id}/state", json={"encounter_type": "intimate"}).json()
    assert patched["total_steps"] == 6
    assert patched["step"] == 1

    assert client.post(f"/wizard/sessions/{session_id}/next").json()["step_id"] == "university"
    response = client.post(
        f"/wizard/sessions/{session_id}/jurisdiction",
        json={"mode": "select-state", "state_code": "ca"},
    )
    assert response.status_code == 200
    assert response.json()["state"]["state_name"] == "California"
    assert client.post(f"/wizard/sessions/{session_id}/next").json()["step_id"] == "parties"

    duplicate = client.put(f"/wizard/sessions/{session_id}/parties/1", json={"value": "@Me"}).json()
    assert duplicate["party_errors"] == {"1": "This participant has already been added"}
    assert duplicate["can_proceed"] is False

    fixed = client.put(f"/wizard/sessions/{session_id}/parties/1", json={"value": "@bob"}).json()
    assert fixed["party_errors"] == {}
    assert client.post(f"/wizard/sessions/{session_id}/next").json()["step_id"] == "intimateActs"

    toggled = client.post(f"/wizard/sessions/{session_id}/acts/toggle", json={"act": "Kissing"}).json()
    assert toggled["state"]["intimate_acts"] == {"Kissing": "yes"}

    back = client.post(f"/wizard/sessions/{session_id}/back").json()
    assert back["moved"] is True
    assert back["step_id"] == "parties"


def test_handoff_returned_at_recording_method_step() -> None:
    client = TestClient(app)
    session_id = _start(client)["session_id"]
    client.patch(
        f"/wizard/sessions/{session_id}/state",
        json={"encounter_type": "medical", "parties": ["@me", "@bob"], "method": "photo"},
    )
    client.post(f"/wizard/sessions/{session_id}/acts/toggle", json={"act": "Kissing"})
    for _ in range(4):
        client.post(f"/wizard/sessions/{session_id}/next")
    outcome = client.post(f"/wizard/sessions/{session_id}/next").json()
    assert outcome["step_id"] == "recordingMethod"
    assert outcome["handoff"]["route"] == "/create/consent/photo"
    assert outcome["handoff"]["parties"] == ["@me", "@bob"]


def test_party_index_out_of_range_returns_400() -> None:
    client = TestClient(app)
    session_id = _start(client)["session_id"]
    response = client.put(f"/wizard/sessions/{session_id}/parties/9", json={"value": "@bob"})
    assert response.status_code == 400
    response = client.delete(f"/wizard/sessions/{session_id}/parties/9")
    assert response.status_code == 400


def test_unknown_state_code_returns_404() -> None:
    client = TestClient(app)
    session_id = _start(client)["session_id"]
    response = client.post(
        f"/wizard/sessions/{session_id}/jurisdiction",
        json={"mode": "select-state", "state_code": "ZZ"},
    )
    assert response.status_code == 404
    assert "Unknown state_code" in response.json()["detail"]


def test_invalid_patch_is_rejected() -> None:
    client = TestClient(app)
    session_id = _start(client)["session_id"]
    assert client.patch(f"/wizard/sessions/{session_id}/state", json={}).status_code == 400
    assert client.patch(f"/wizard/sessions/{session_id}/state", json={"contract_duration": 0}).status_code == 422
    assert client.patch(f"/wizard/sessions/{session_id}/state", json={"draft_id": "x"}).status_code == 422
    response = client.patch(f"/wizard/sessions/{session_id}/state", json={"parties": []})
    assert response.status_code == 400
    assert client.get(f"/wizard/sessions/{session_id}").json()["state"]["parties"] == ["@me", ""]


def test_add_contact_party() -> None:
    client = TestClient(app)
    owner_id = f"owner_{uuid.uuid4().hex[:8]}"
    _get_contact_directory().add(owner_id, Contact(id="c1", username="Alice"))
    session_id = _start(client, owner_id)["session_id"]
    response = client.post(f"/wizard/sessions/{session_id}/parties/contacts/c1")
    assert response.status_code == 200
    assert response.json()["state"]["parties"] == ["@me", "@alice"]
    assert client.post(f"/wizard/sessions/{session_id}/parties/contacts/nope").status_code == 404


def test_save_then_resume_draft() -> None:
    client = TestClient(app)
    owner_id = f"owner_{uuid.uuid4().hex[:8]}"
    session_id = _start(client, owner_id)["session_id"]

    assert client.post(f"/wizard/sessions/{session_id}/save").status_code == 400

    client.patch(f"/wizard/sessions/{session_id}/state", json={"encounter_type": "date", "parties": ["@me", "@bob"]})
    saved = client.post(f"/wizard/sessions/{session_id}/save")
    assert saved.status_code == 200
    draft_id = saved.json()["draft"]["id"]
    assert saved.json()["session"]["state"]["draft_id"] == draft_id

    other_session = _start(client, f"owner_{uuid.uuid4().hex[:8]}")["session_id"]
    assert client.post(f"/wizard/sessions/{other_session}/resume/{draft_id}").status_code == 404

    client.delete(f"/wizard/sessions/{session_id}")
    resumed = client.post(f"/wizard/sessions/{session_id}/resume/{draft_id}")
    assert resumed.status_code == 200
    body = resumed.json()
    assert body["state"]["draft_id"] == draft_id
    assert body["step_id"] == "intimateActs"


def test_save_failure_returns_502_and_keeps_state() -> None:
    client = TestClient(app)
    session_id = _start(client)["session_id"]
    client.patch(f"/wizard/sessions/{session_id}/state", json={"encounter_type": "date"})
    previous = getattr(app.state, "draft_persistence", None)
    app.state.draft_persistence = _BrokenPersistence()
    try:
        response = client.post(f"/wizard/sessions/{session_id}/save")
    finally:
        app.state.draft_persistence = previous
    assert response.status_code == 502
    assert "draft store unavailable" in response.json()["detail"]
    state = client.get(f"/wizard/sessions/{session_id}").json()["state"]
    assert state["draft_id"] is None
    assert state["encounter_type"] == "date"


def test_save_in_flight_returns_409() -> None:
    client = TestClient(app)
    session_id = _start(client)["session_id"]
    client.patch(f"/wizard/sessions/{session_id}/state", json={"encounter_type": "date"})
    store = _get_flow_store()
    assert store.begin_save(session_id) is True
    try:
        response = client.post(f"/wizard/sessions/{session_id}/save")
        assert client.get(f"/wizard/sessions/{session_id}").json()["save_pending"] is True
    finally:
        store.end_save(session_id)
    assert response.status_code == 409


def test_submit_resets_session() -> None:
    client = TestClient(app)
    session_id = _start(client)["session_id"]
    client.patch(
        f"/wizard/sessions/{session_id}/state",
        json={"encounter_type": "date", "parties": ["@me", "@bob"], "method": "voice"},
    )
    response = client.post(f"/wizard/sessions/{session_id}/submit")
    assert response.status_code == 200
    body = response.json()
    assert body["draft"]["status"] == "pending"
    assert body["session"]["state"]["encounter_type"] == ""
    assert body["session"]["step"] == 1
