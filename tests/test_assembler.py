"""SubmissionAssembler and RequiredFormRegistry tests."""

import pytest

from helpers.builders import phq_schema, png_bytes
from helpers.fakes import MockGateway
from intake_workflow.assembler import (
    FALLBACK_MESSAGE,
    SUCCESS_MESSAGE,
    RequiredFormRegistry,
    SubmissionAssembler,
)
from intake_workflow.errors import NetworkFailure, ValidationRejected
from intake_workflow.media import FrameEncoder
from intake_workflow.models.registry import FormStatus, RequiredFormRegistryEntry
from intake_workflow.models.submission import (
    GatewayResponse,
    JsonPayload,
    MultipartPayload,
    SubmissionStatus,
)
from intake_workflow.state import FormStateStore


def _registry(**statuses):
    return RequiredFormRegistry([
        RequiredFormRegistryEntry(form_key=k, display_name=k, status=FormStatus(v))
        for k, v in statuses.items()
    ])


class TestRequiredFormRegistry:
    def test_pending_to_completed(self):
        reg = _registry(three_step="pending")
        assert reg.mark_completed("three_step") is True
        assert reg.get("three_step").status == FormStatus.COMPLETED
        assert reg.outstanding == []

    def test_not_applicable_is_left_alone(self):
        reg = _registry(three_step="not_applicable")
        assert reg.mark_completed("three_step") is False
        assert reg.get("three_step").status == FormStatus.NOT_APPLICABLE

    def test_unknown_form(self):
        assert _registry().mark_completed("nope") is False


class TestAssemble:
    """Payload construction."""

    def test_scores_written_into_computed_fields(self):
        schema = phq_schema()
        fstore = FormStateStore(schema)
        state = fstore.set(fstore.empty(), "mood.interest", "nearly_everyday")
        state = fstore.set(state, "mood.down", "several_days")

        payload = SubmissionAssembler(schema, MockGateway()).assemble(schema.key, state)

        assert isinstance(payload, JsonPayload)
        assert payload.data["mood"]["phq2_score"] == 4
        assert payload.data["mood"]["phq2_band"] == "elevated"
        assert fstore.get(state, "mood.phq2_score") is None, "Caller's state is not scored"

    def test_artifacts_become_parts_and_references(self, schema):
        fstore = FormStateStore(schema)
        artifact = FrameEncoder().from_bytes(png_bytes(), filename="p.png", mime_type="image/png")
        state = fstore.set(fstore.empty(), "third.photo", artifact)

        payload = SubmissionAssembler(schema, MockGateway()).assemble(schema.key, state)

        assert isinstance(payload, MultipartPayload)
        assert payload.parts == {"third.photo": artifact}
        ref = payload.data["third"]["photo"]
        assert ref["sha256"] == artifact.sha256
        assert "binary_payload" not in ref, "Bytes never travel in the structured data"

    def test_data_is_a_deep_copy(self, store):
        schema = store.get("chw_encounter")
        fstore = FormStateStore(schema)
        state = fstore.set(fstore.empty(), "housing.problems", ["mold"])
        payload = SubmissionAssembler(schema, MockGateway()).assemble(schema.key, state)
        payload.data["housing"]["problems"].append("pests")
        assert fstore.get(state, "housing.problems") == ["mold"]

    def test_hidden_fields_are_blanked_and_dropped(self, store):
        schema = store.get("insurance_card_copy")
        fstore = FormStateStore(schema)
        front = FrameEncoder().from_bytes(png_bytes(), filename="f.png", mime_type="image/png")
        state = fstore.set(fstore.empty(), "coverage.has_insurance", False)
        state = fstore.set(state, "coverage.carrier", "Blue Lake Health")
        state = fstore.set(state, "card.front", front)

        payload = SubmissionAssembler(schema, MockGateway()).assemble(
            schema.key, state, artifacts={"card.back": front},
        )

        assert isinstance(payload, JsonPayload), "No parts for hidden capture slots"
        assert payload.data["coverage"]["carrier"] is None
        assert payload.data["card"]["front"] is None
        assert fstore.get(state, "coverage.carrier") == "Blue Lake Health"


class TestSubmit:
    """Dispatch and response handling."""

    @pytest.mark.asyncio
    async def test_encounter_goes_to_submit_encounter(self):
        schema = phq_schema()
        gateway = MockGateway()
        asm = SubmissionAssembler(schema, gateway)
        payload = JsonPayload(form_key=schema.key, data={"visit": {"patient_id": "p-1"}})

        result = await asm.submit(payload)

        assert gateway.encounters == [payload]
        assert result.status == SubmissionStatus.STORED
        assert result.message == SUCCESS_MESSAGE

    @pytest.mark.asyncio
    async def test_fallback_is_success_with_notice(self):
        schema = phq_schema()
        asm = SubmissionAssembler(schema, MockGateway(fallback=True))
        result = await asm.submit(JsonPayload(form_key=schema.key, data={}))
        assert result.status == SubmissionStatus.STORED_FALLBACK
        assert result.message == FALLBACK_MESSAGE

    @pytest.mark.asyncio
    async def test_document_marks_registry_completed(self, schema):
        gateway = MockGateway()
        asm = SubmissionAssembler(schema, gateway, _registry(three_step="pending"))
        await asm.submit(JsonPayload(form_key=schema.key, data={}), patient_id="p-9")

        assert gateway.forms[0][:2] == ("three_step", "p-9")
        assert asm.registry.get("three_step").status == FormStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_document_without_patient(self, schema):
        asm = SubmissionAssembler(schema, MockGateway())
        with pytest.raises(ValueError):
            await asm.submit(JsonPayload(form_key=schema.key, data={}))

    def test_document_patient_resolved_before_dispatch(self, schema):
        asm = SubmissionAssembler(schema, MockGateway())
        payload = JsonPayload(form_key=schema.key, data={})
        assert asm.patient_id_for(payload, "p-3") == "p-3"
        with pytest.raises(ValueError):
            asm.patient_id_for(payload, None)

    @pytest.mark.asyncio
    async def test_not_ok_response_is_validation_rejected(self, schema):
        gateway = MockGateway()

        async def refuse(form_key, patient_id, payload):
            return GatewayResponse(ok=False, error="bad date",
                                   field_errors={"signature.signed_on": "invalid"})

        gateway.submit_form = refuse
        asm = SubmissionAssembler(schema, gateway, _registry(three_step="pending"))
        with pytest.raises(ValidationRejected) as exc_info:
            await asm.submit(JsonPayload(form_key=schema.key, data={}), patient_id="p")
        assert exc_info.value.field_errors == {"signature.signed_on": "invalid"}
        assert asm.registry.get("three_step").status == FormStatus.PENDING

    @pytest.mark.asyncio
    async def test_network_failure_propagates(self, schema):
        gateway = MockGateway()
        gateway.fail_with.append(NetworkFailure("offline"))
        asm = SubmissionAssembler(schema, gateway)
        with pytest.raises(NetworkFailure) as exc_info:
            await asm.submit(JsonPayload(form_key=schema.key, data={}), patient_id="p")
        assert exc_info.value.retryable
