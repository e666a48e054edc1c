"""DatabaseGateway tests — repository mocked, no database needed.

FakeSession stands in for an AsyncSession: it supports ``async with``,
``begin_nested()`` as a savepoint context, and records commits.
"""

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from helpers.builders import png_bytes
from intake_db.gateway import DatabaseGateway
from intake_workflow.errors import NetworkFailure, ValidationRejected
from intake_workflow.media import FrameEncoder
from intake_workflow.models.registry import FormStatus
from intake_workflow.models.submission import JsonPayload, MultipartPayload

PATIENT_ID = "6f1c2b9e-3a54-4d8e-9f0a-1b2c3d4e5f60"
CHW_ID = "0a9b8c7d-6e5f-4a3b-8c2d-1e0f9a8b7c6d"


class _Savepoint:
    def __init__(self, session):
        self._session = session

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is not None:
            self._session.rolled_back += 1
        return False


class FakeSession:
    def __init__(self):
        self.commits = 0
        self.rolled_back = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return False

    def begin_nested(self):
        return _Savepoint(self)

    async def commit(self):
        self.commits += 1


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def repo():
    repo = MagicMock()
    for name in (
        "create_encounter", "add_referrals", "complete_encounter", "create_progress_note",
        "create_assessment", "add_attachment", "mark_form_completed",
        "list_required_forms", "list_patients", "list_staff",
    ):
        setattr(repo, name, AsyncMock())
    repo.create_encounter.return_value = SimpleNamespace(id=uuid.uuid4())
    repo.create_progress_note.return_value = SimpleNamespace(id=uuid.uuid4())
    repo.create_assessment.return_value = SimpleNamespace(id=uuid.uuid4())
    return repo


@pytest.fixture
def gw(session, repo):
    return DatabaseGateway(lambda: session, repo=repo, display_names={
        "consent_for_treatment": "Consent For Treatment",
        "insurance_card_copy": "Insurance Card Copy",
    })


def _encounter_payload(**visit):
    patient_info = {
        "patient_id": PATIENT_ID,
        "chw_id": CHW_ID,
        "encounter_date": "2026-10-01",
        "encounter_start_time": "09:30",
        "site_name": "Eastside Clinic",
    }
    patient_info.update(visit)
    return JsonPayload(form_key="chw_encounter", data={
        "patient_info": patient_info,
        "housing": {"living_situation": "steady"},
        "referrals": ["food_bank"],
    })


class TestSubmitEncounter:
    @pytest.mark.asyncio
    async def test_structured_tables(self, gw, repo, session):
        resp = await gw.submit_encounter(_encounter_payload())

        assert resp.ok and resp.fallback is False
        kwargs = repo.create_encounter.call_args.kwargs
        assert kwargs["patient_id"] == uuid.UUID(PATIENT_ID)
        assert kwargs["sections"] == {"housing": {"living_situation": "steady"}}
        repo.add_referrals.assert_awaited_once()
        repo.create_progress_note.assert_not_awaited()
        assert session.commits == 1

    @pytest.mark.asyncio
    async def test_missing_tables_fall_back_to_progress_note(self, gw, repo, session):
        repo.create_encounter.side_effect = ProgrammingError(
            "INSERT INTO chw_encounters", {}, Exception("relation does not exist"),
        )
        resp = await gw.submit_encounter(_encounter_payload())

        assert resp.ok and resp.fallback is True
        assert resp.record_id == str(repo.create_progress_note.return_value.id)
        assert session.rolled_back == 1, "Savepoint rolled back before the note is written"
        content = repo.create_progress_note.call_args.kwargs["content"]
        assert content.startswith("CHW SDOH Screening Encounter")
        assert "Site: Eastside Clinic" in content
        assert session.commits == 1

    @pytest.mark.asyncio
    async def test_invalid_patient_id_rejected_before_db(self, gw, repo):
        with pytest.raises(ValidationRejected) as exc_info:
            await gw.submit_encounter(_encounter_payload(patient_id="not-a-uuid"))
        assert "patient_info.patient_id" in exc_info.value.field_errors
        repo.create_encounter.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_date(self, gw):
        with pytest.raises(ValidationRejected):
            await gw.submit_encounter(_encounter_payload(encounter_date="10/01/2026"))

    @pytest.mark.asyncio
    async def test_constraint_violation_is_rejection(self, gw, repo):
        repo.create_encounter.side_effect = IntegrityError(
            "INSERT", {}, Exception("foreign key violation"),
        )
        with pytest.raises(ValidationRejected) as exc_info:
            await gw.submit_encounter(_encounter_payload())
        assert "foreign key" not in str(exc_info.value), "Driver detail stays server-side"

    @pytest.mark.asyncio
    async def test_connection_loss_is_network_failure(self, gw, repo):
        repo.create_encounter.side_effect = OperationalError("SELECT", {}, Exception("gone"))
        with pytest.raises(NetworkFailure):
            await gw.submit_encounter(_encounter_payload())


class TestSubmitForm:
    @pytest.mark.asyncio
    async def test_attachments_and_registry(self, gw, repo, session):
        artifact = FrameEncoder().from_bytes(png_bytes(), filename="front.png", mime_type="image/png")
        payload = MultipartPayload(
            form_key="insurance_card_copy",
            data={"card": {"front": artifact.reference()}},
            parts={"card.front": artifact},
        )
        resp = await gw.submit_form("insurance_card_copy", PATIENT_ID, payload)

        assert resp.record_id == str(repo.create_assessment.return_value.id)
        assert repo.create_assessment.call_args.kwargs["form_name"] == "Insurance Card Copy"
        attach = repo.add_attachment.call_args.kwargs
        assert attach["slot"] == "card.front"
        assert attach["content"] == artifact.binary_payload
        assert attach["source_kind"] == "upload"
        repo.mark_form_completed.assert_awaited_once()
        assert session.commits == 1

    @pytest.mark.asyncio
    async def test_failure_does_not_commit(self, gw, repo, session):
        repo.mark_form_completed.side_effect = OperationalError("UPDATE", {}, Exception("timeout"))
        with pytest.raises(NetworkFailure):
            await gw.submit_form("consent_for_treatment", PATIENT_ID,
                                 JsonPayload(form_key="consent_for_treatment", data={}))
        assert session.commits == 0


class TestReads:
    @pytest.mark.asyncio
    async def test_registry_defaults_to_pending(self, gw, repo):
        repo.list_required_forms.return_value = [
            SimpleNamespace(form_key="consent_for_treatment",
                            display_name="Consent For Treatment", status="completed"),
        ]
        entries = await gw.list_required_forms(PATIENT_ID)
        assert [(e.form_key, e.status) for e in entries] == [
            ("consent_for_treatment", FormStatus.COMPLETED),
            ("insurance_card_copy", FormStatus.PENDING),
        ]

    @pytest.mark.asyncio
    async def test_staff_lookup(self, gw, repo):
        staff_id = uuid.uuid4()
        repo.list_staff.return_value = [
            SimpleNamespace(id=staff_id, first_name="Sam", last_name="Lee", role="chw"),
        ]
        assert await gw.list_staff() == [
            {"id": str(staff_id), "first_name": "Sam", "last_name": "Lee", "role": "chw"},
        ]
