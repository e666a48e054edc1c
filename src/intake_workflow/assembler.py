"""SubmissionAssembler — builds the outgoing payload and dispatches it.

The assembler is the only component that talks to the persistence
collaborator on the write path.  It:

    1. runs the scorers the schema declares (on a copy of the state),
    2. replaces every media artifact in the structured data by a JSON-safe
       reference and attaches the bytes as a separate part,
    3. routes the payload to ``submit_encounter`` or ``submit_form``,
    4. moves the required-form registry entry from pending to completed.

Clearing local state after success is the caller's job; on failure nothing
here touches the caller's state, so a retry re-sends an equivalent payload.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from intake_workflow.errors import ValidationRejected
from intake_workflow.evaluator import ConditionalEvaluator
from intake_workflow.interfaces import PersistenceGateway
from intake_workflow.models.field import FieldKind, FieldSchema
from intake_workflow.models.form import FormSchema
from intake_workflow.models.media import MediaArtifact
from intake_workflow.models.registry import FormStatus, RequiredFormRegistryEntry
from intake_workflow.models.submission import (
    GatewayResponse,
    JsonPayload,
    MultipartPayload,
    SubmissionResult,
    SubmissionStatus,
)
from intake_workflow.scoring import SCORERS
from intake_workflow.state import FormState, get_path, iter_leaves, set_path

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Submitted successfully"
FALLBACK_MESSAGE = "Saved. Some details were stored as a progress note and may need review."


# ---------------------------------------------------------------------------
# Required-form registry
# ---------------------------------------------------------------------------

class RequiredFormRegistry:
    """Local view of one patient's required-form registry.

    The engine only ever moves an entry ``pending -> completed``; entries the
    collaborator marked ``not_applicable`` are left alone.
    """

    def __init__(self, entries: list[RequiredFormRegistryEntry] | None = None) -> None:
        self._entries: dict[str, RequiredFormRegistryEntry] = {
            e.form_key: e for e in entries or []
        }

    def get(self, form_key: str) -> RequiredFormRegistryEntry | None:
        return self._entries.get(form_key)

    def entries(self) -> list[RequiredFormRegistryEntry]:
        return list(self._entries.values())

    def mark_completed(self, form_key: str) -> bool:
        """Complete a pending entry; returns True if the status changed."""
        entry = self._entries.get(form_key)
        if entry is None or entry.status != FormStatus.PENDING:
            return False
        self._entries[form_key] = entry.model_copy(update={"status": FormStatus.COMPLETED})
        return True

    @property
    def outstanding(self) -> list[str]:
        return [k for k, e in self._entries.items() if e.status == FormStatus.PENDING]


# ---------------------------------------------------------------------------
# Assembler
# ---------------------------------------------------------------------------

class SubmissionAssembler:
    """Payload construction and dispatch for one form.

    Args:
        schema: the form being submitted
        gateway: persistence collaborator
        registry: the patient's required-form registry (optional)
    """

    def __init__(
        self,
        schema: FormSchema,
        gateway: PersistenceGateway,
        registry: RequiredFormRegistry | None = None,
    ) -> None:
        self._schema = schema
        self._gateway = gateway
        self._evaluator = ConditionalEvaluator()
        self.registry = registry or RequiredFormRegistry()

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def apply_scores(self, state: FormState) -> FormState:
        """Return a copy of ``state`` with every declared score written in."""
        for spec in self._schema.scores:
            scorer = SCORERS[spec.scorer]
            kwargs = {arg: get_path(state, path) for arg, path in spec.inputs.items()}
            result = scorer(**kwargs)
            state = set_path(state, spec.total.split("."), result.total)
            if spec.band:
                state = set_path(state, spec.band.split("."), result.band.value)
        return state

    def assemble(
        self,
        form_key: str,
        state: FormState,
        artifacts: dict[str, MediaArtifact] | None = None,
    ) -> JsonPayload | MultipartPayload:
        """Build the outgoing payload.

        Args:
            form_key: the form being submitted
            state: the current (unscored) form state
            artifacts: artifacts keyed by slot name; any artifacts found in
                ``state`` itself are included as well

        Fields hidden under the final answers are sent blank and their
        artifacts are left out, so a branch the patient backed out of
        leaves nothing behind.

        Returns:
            ``JsonPayload`` when there are no artifacts, otherwise a
            ``MultipartPayload`` with one part per slot.
        """
        scored = self.apply_scores(state)
        hidden = self.hidden_fields(scored)
        for fs in hidden:
            blank = [] if fs.kind == FieldKind.MULTI_SELECT else None
            scored = set_path(scored, fs.key.split("."), blank)
        hidden_keys = {fs.key for fs in hidden}

        parts: dict[str, MediaArtifact] = {}
        for path, value in iter_leaves(scored):
            if isinstance(value, MediaArtifact):
                parts[path] = value
        parts.update({k: v for k, v in (artifacts or {}).items() if k not in hidden_keys})

        data = _to_data(scored)
        for slot, artifact in parts.items():
            data = set_path(data, slot.split("."), artifact.reference())

        if not parts:
            return JsonPayload(form_key=form_key, data=data)
        return MultipartPayload(form_key=form_key, data=data, parts=parts)

    def hidden_fields(self, state: FormState) -> list[FieldSchema]:
        """Fields whose ``visible_if`` fails under ``state``."""
        return [fs for fs in self._schema.fields if not self._evaluator.is_visible(fs, state)]

    def patient_id_for(self, payload: JsonPayload | MultipartPayload, default: str | None) -> str | None:
        """The patient named by the form itself, else ``default``.

        Raises:
            ValueError: a document form without a patient id.
        """
        if self._schema.patient_field:
            value = get_path(payload.data, self._schema.patient_field)
            if value:
                return str(value)
        if self._schema.kind == "document" and not default:
            raise ValueError(f"Form '{self._schema.key}' needs a patient id to submit")
        return default

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def submit(
        self,
        payload: JsonPayload | MultipartPayload,
        patient_id: str | None = None,
    ) -> SubmissionResult:
        """Send ``payload`` to the collaborator.

        Raises:
            NetworkFailure / Unauthorized / ValidationRejected: propagated
                from the gateway.  A response with ``ok=False`` is surfaced
                as ``ValidationRejected``.
            ValueError: a document form without a patient id.
        """
        patient = self.patient_id_for(payload, patient_id)

        if self._schema.kind == "encounter":
            response = await self._gateway.submit_encounter(payload)
        else:
            response = await self._gateway.submit_form(self._schema.key, patient, payload)

        self._check(response)

        if self.registry.mark_completed(self._schema.key):
            logger.info("Required form %s completed for patient %s", self._schema.key, patient)

        status = SubmissionStatus.STORED_FALLBACK if response.fallback else SubmissionStatus.STORED
        if response.fallback:
            logger.warning(
                "Form %s stored via fallback (record %s)", self._schema.key, response.record_id,
            )
        return SubmissionResult(
            form_key=self._schema.key,
            status=status,
            record_id=response.record_id,
            message=FALLBACK_MESSAGE if response.fallback else SUCCESS_MESSAGE,
            submitted_at=datetime.now(timezone.utc),
        )

    def _check(self, response: GatewayResponse) -> None:
        if response.ok:
            return
        logger.warning(
            "Gateway refused form %s: %s", self._schema.key, response.error or "no detail",
        )
        raise ValidationRejected(
            response.error or "Submission rejected", field_errors=response.field_errors,
        )


def _to_data(state: Any) -> Any:
    """Deep-copy the structured part of a state (lists become new lists)."""
    if isinstance(state, dict):
        return {k: _to_data(v) for k, v in state.items()}
    if isinstance(state, (list, tuple)):
        return [_to_data(v) for v in state]
    return state
