"""HTTP API tests — the FastAPI app over the shipped forms and a MockGateway.

The gateway is injected on ``app.state`` before startup so the lifespan
handler uses it instead of building a database gateway.
"""

import pytest
from fastapi.testclient import TestClient

from helpers.builders import jpeg_bytes, png_bytes
from helpers.fakes import PATIENTS, MockGateway
from helpers.loader import FORMS_DIR
from intake_server.app import create_app
from intake_server.config import ServerSettings
from intake_workflow.errors import NetworkFailure

USER = {"X-User-ID": "chw-1"}


def _client(gateway, **settings):
    app = create_app(ServerSettings(forms_dir=str(FORMS_DIR), **settings))
    app.state.gateway = gateway
    return TestClient(app)


@pytest.fixture
def client(gateway):
    with _client(gateway) as c:
        yield c


def _open(client, form_key, patient_id=None, headers=USER):
    resp = client.post("/api/v1/workflows", json={"form_key": form_key, "patient_id": patient_id},
                       headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["info"]["workflow_id"]


class TestHealthAndForms:
    def test_health_reports_backend(self, client):
        resp = client.get("/health")
        assert resp.json() == {"status": "ok", "backend": "http"}

    def test_list_forms(self, client):
        keys = {f["key"] for f in client.get("/api/v1/forms").json()}
        assert {"chw_encounter", "insurance_card_copy"} <= keys

    def test_form_definition(self, client):
        body = client.get("/api/v1/forms/chw_encounter").json()
        assert body["kind"] == "encounter"
        assert body["steps"][0]["id"] == "patient_info"

    def test_unknown_form_is_404(self, client):
        assert client.get("/api/v1/forms/nope").status_code == 404

    def test_lookups_come_from_gateway(self, client):
        resp = client.get("/api/v1/patients", headers=USER)
        assert resp.json() == PATIENTS
        assert client.get("/api/v1/staff", headers=USER).json()[0]["role"] == "chw"


class TestIdentity:
    def test_missing_user_header(self, client):
        assert client.get("/api/v1/workflows").status_code == 401

    def test_proxy_secret_enforced(self, gateway):
        with _client(gateway, trusted_proxy_secret="s3cret") as c:
            assert c.get("/api/v1/workflows", headers=USER).status_code == 403
            bad = {**USER, "X-Proxy-Secret": "guess"}
            assert c.get("/api/v1/workflows", headers=bad).status_code == 403
            good = {**USER, "X-Proxy-Secret": "s3cret"}
            assert c.get("/api/v1/workflows", headers=good).status_code == 200

    def test_other_users_workflow_is_404(self, client):
        wid = _open(client, "chw_encounter")
        resp = client.get(f"/api/v1/workflows/{wid}", headers={"X-User-ID": "chw-2"})
        assert resp.status_code == 404


class TestNavigation:
    def test_incomplete_step_returns_issues(self, client):
        wid = _open(client, "emergency_contact_form", patient_id="p-1")
        resp = client.post(f"/api/v1/workflows/{wid}/next", headers=USER)

        assert resp.status_code == 422
        keys = {i["key"] for i in resp.json()["issues"]}
        assert keys == {"contact.name", "contact.phone", "contact.relationship"}

    def test_undeclared_path_is_400_and_nothing_applied(self, client):
        wid = _open(client, "emergency_contact_form", patient_id="p-1")
        resp = client.put(f"/api/v1/workflows/{wid}/fields", headers=USER,
                          json={"values": {"contact.name": "Jo", "contact.email": "x"}})
        assert resp.status_code == 400
        assert resp.json()["path"] == "contact.email"

        step = client.get(f"/api/v1/workflows/{wid}/step", headers=USER).json()
        name = next(f for f in step["fields"] if f["key"] == "contact.name")
        assert name["value"] is None

    def test_locked_jump_is_409(self, client):
        wid = _open(client, "chw_encounter")
        resp = client.post(f"/api/v1/workflows/{wid}/jump", headers=USER, json={"index": 3})
        assert resp.status_code == 409
        assert resp.json()["current_index"] == 0

    def test_visibility_follows_answers(self, client):
        wid = _open(client, "insurance_card_copy", patient_id="p-1")
        resp = client.put(f"/api/v1/workflows/{wid}/fields", headers=USER,
                          json={"values": {"coverage.has_insurance": False}})
        assert [f["key"] for f in resp.json()["fields"]] == ["coverage.has_insurance"]

        resp = client.post(f"/api/v1/workflows/{wid}/next", headers=USER)
        body = resp.json()
        assert body["moved"] is True
        assert body["step"]["fields"] == [], "Card photos hidden without insurance"
        assert body["step"]["is_last"] is True


class TestDocumentLifecycle:
    """Open, fill, upload both card photos, submit."""

    def _fill_coverage(self, client, wid):
        client.put(f"/api/v1/workflows/{wid}/fields", headers=USER, json={"values": {
            "coverage.has_insurance": True,
            "coverage.carrier": "Blue Lake Health",
            "coverage.member_id": "BLH-0042",
        }})
        assert client.post(f"/api/v1/workflows/{wid}/next", headers=USER).status_code == 200

    def _upload(self, client, wid, slot, content, filename, mime):
        return client.put(f"/api/v1/workflows/{wid}/slots/{slot}", headers=USER,
                          files={"file": (filename, content, mime)})

    def test_submit_with_uploads(self, client, gateway):
        wid = _open(client, "insurance_card_copy", patient_id=PATIENTS[0]["id"])
        self._fill_coverage(client, wid)

        front = self._upload(client, wid, "card.front", png_bytes(), "front.png", "image/png")
        assert front.status_code == 200
        assert front.json()["state"] == "captured"
        back = client.put(f"/api/v1/workflows/{wid}/slots/card.back", headers=USER,
                          files={"file": ("back.jpg", jpeg_bytes(), "image/jpeg")},
                          data={"source": "camera"})
        assert back.json()["artifact"]["source_kind"] == "camera"

        resp = client.post(f"/api/v1/workflows/{wid}/submit", headers=USER)
        assert resp.status_code == 200, resp.text
        assert resp.json()["status"] == "stored"

        form_key, patient_id, payload = gateway.forms[0]
        assert (form_key, patient_id) == ("insurance_card_copy", PATIENTS[0]["id"])
        assert set(payload.parts) == {"card.front", "card.back"}

        detail = client.get(f"/api/v1/workflows/{wid}", headers=USER).json()
        assert detail["info"]["current_index"] == 0, "Workflow reset after submit"

    def test_rejected_upload_is_400(self, client):
        wid = _open(client, "insurance_card_copy", patient_id="p-1")
        self._fill_coverage(client, wid)
        resp = self._upload(client, wid, "card.front", b"not an image", "f.png", "image/png")
        assert resp.status_code == 400
        assert resp.json()["slot"] == "card.front"

    def test_retake_clears_slot(self, client):
        wid = _open(client, "insurance_card_copy", patient_id="p-1")
        self._fill_coverage(client, wid)
        self._upload(client, wid, "card.front", png_bytes(), "front.png", "image/png")
        assert client.delete(f"/api/v1/workflows/{wid}/slots/card.front",
                             headers=USER).status_code == 204
        slots = {s["name"]: s for s in
                 client.get(f"/api/v1/workflows/{wid}/slots", headers=USER).json()}
        assert slots["card.front"]["state"] == "idle"

    def test_network_failure_is_503_and_retryable(self, client, gateway):
        wid = _open(client, "insurance_card_copy", patient_id="p-1")
        client.put(f"/api/v1/workflows/{wid}/fields", headers=USER,
                   json={"values": {"coverage.has_insurance": False}})
        gateway.fail_with.append(NetworkFailure("connection reset"))

        resp = client.post(f"/api/v1/workflows/{wid}/submit", headers=USER)
        assert resp.status_code == 503
        assert resp.json()["retryable"] is True

        resp = client.post(f"/api/v1/workflows/{wid}/submit", headers=USER)
        assert resp.status_code == 200
        assert len(gateway.forms) == 1

    def test_close_workflow(self, client):
        wid = _open(client, "emergency_contact_form", patient_id="p-1")
        assert client.delete(f"/api/v1/workflows/{wid}", headers=USER).status_code == 204
        assert client.get(f"/api/v1/workflows/{wid}", headers=USER).status_code == 404


class TestEncounterSubmission:
    def test_empty_encounter_never_reaches_gateway(self):
        gateway = MockGateway(fallback=True)
        with _client(gateway) as client:
            wid = _open(client, "chw_encounter")
            resp = client.post(f"/api/v1/workflows/{wid}/submit", headers=USER)
            assert resp.status_code == 422, "Empty encounter cannot be submitted"
            assert gateway.calls == 0
