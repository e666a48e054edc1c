"""IntakeWorkflow — the orchestrator for one open form.

One instance wires the engine components for a single user filling in a
single form:

    FormStateStore       the answers
    ValidationEngine     visibility and completeness
    StepSequencer        the current step and derived completion
    MediaCaptureAdapter  one capture slot per file field
    SubmissionAssembler  payload construction and dispatch

Every operation except ``open_camera`` and ``submit`` is synchronous and
runs to completion.  While a submission is in flight the workflow is
frozen: edits, navigation, capture and a second submit raise
``SubmissionInProgress``.

Typical use from a UI shell::

    wf = IntakeWorkflow(store.get("chw_encounter"), gateway=gateway)
    wf.set_field("patient_info.patient_id", "p-1")
    ...
    wf.next()
    ...
    result = await wf.submit()
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from intake_workflow.assembler import RequiredFormRegistry, SubmissionAssembler
from intake_workflow.constants import DEFAULT_ACCEPT
from intake_workflow.errors import (
    SchemaViolation,
    SubmissionError,
    SubmissionInProgress,
    UploadRejected,
    ValidationIncomplete,
)
from intake_workflow.interfaces import CameraDevice, PersistenceGateway
from intake_workflow.media import FrameEncoder, MediaCaptureAdapter
from intake_workflow.models.field import FieldKind, FieldSchema
from intake_workflow.models.form import FormSchema
from intake_workflow.models.media import MediaArtifact, SourceKind
from intake_workflow.models.submission import SubmissionResult
from intake_workflow.models.validation import FieldIssue
from intake_workflow.models.views import (
    CompletionState,
    FieldView,
    SlotView,
    StepView,
    WorkflowInfo,
)
from intake_workflow.sequencer import StepSequencer
from intake_workflow.state import FormState, FormStateStore
from intake_workflow.validation import ValidationEngine

logger = logging.getLogger(__name__)


class IntakeWorkflow:
    """A single in-progress form.

    Args:
        schema: the form to fill in
        gateway: persistence collaborator used by ``submit``
        camera: device for the camera capture path (None -> upload only)
        patient_id: the patient the form is for; forms that pick their
            patient themselves (``patient_field``) may omit it
        registry: the patient's required-form registry
        encoder: frame / upload encoder shared by all capture slots
        workflow_id: identifier (a random hex id by default)
    """

    def __init__(
        self,
        schema: FormSchema,
        *,
        gateway: PersistenceGateway,
        camera: CameraDevice | None = None,
        patient_id: str | None = None,
        registry: RequiredFormRegistry | None = None,
        encoder: FrameEncoder | None = None,
        workflow_id: str | None = None,
    ) -> None:
        self.schema = schema
        self.workflow_id = workflow_id or uuid.uuid4().hex
        self.patient_id = patient_id
        self._gateway = gateway

        self._store = FormStateStore(schema)
        self._validation = ValidationEngine(schema)
        self._state: FormState = self._store.empty()
        self._sequencer = StepSequencer(schema, self._issues_for)
        self._media = MediaCaptureAdapter.for_schema(schema, camera=camera, encoder=encoder)
        self._assembler = SubmissionAssembler(schema, gateway, registry)

        self._submitting = False
        self.last_error: SubmissionError | None = None
        self.last_result: SubmissionResult | None = None

        self.opened_at = datetime.now(timezone.utc)
        self.updated_at = self.opened_at

    # ------------------------------------------------------------------
    # Read-only surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> FormState:
        """The current form state.  Treat as read-only."""
        return self._state

    @property
    def submitting(self) -> bool:
        return self._submitting

    @property
    def registry(self) -> RequiredFormRegistry:
        return self._assembler.registry

    def get(self, path: str) -> Any:
        self._store.field(path)
        return self._store.get(self._state, path)

    def current_step_index(self) -> int:
        return self._sequencer.current_index

    def can_go_next(self) -> bool:
        return not self._submitting and self._sequencer.can_go_next()

    def can_go_back(self) -> bool:
        return not self._submitting and self._sequencer.can_go_back()

    def step_issues(self, step: int | str | None = None) -> list[FieldIssue]:
        return self._issues_for(self._step_id(step))

    def form_issues(self) -> dict[str, list[FieldIssue]]:
        return self._validation.form_issues(self._state)

    def get_visible_fields(self, step: int | str | None = None) -> list[FieldView]:
        """Fields of ``step`` (default: the current step) visible right now."""
        step_id = self._step_id(step)
        issues: dict[str, list[FieldIssue]] = {}
        for issue in self._issues_for(step_id):
            issues.setdefault(issue.key, []).append(issue)
        return [
            self._field_view(fs, issues.get(fs.key, []))
            for fs in self._validation.visible_fields(step_id, self._state)
        ]

    def get_step_view(self) -> StepView:
        step = self.schema.steps[self._sequencer.current_index]
        return StepView(
            index=self._sequencer.current_index,
            id=step.id,
            title=step.title,
            description=step.description,
            fields=self.get_visible_fields(),
            is_last=self._sequencer.is_last,
        )

    def get_completion_state(self) -> CompletionState:
        return CompletionState(
            form_key=self.schema.key,
            current_index=self._sequencer.current_index,
            total_steps=len(self.schema.steps),
            steps=self._sequencer.statuses(),
            completed=[s for s in self._sequencer.order if self._sequencer.is_complete(s)],
            form_valid=self._validation.is_form_valid(self._state),
            can_go_next=self.can_go_next(),
            can_go_back=self.can_go_back(),
            submitting=self._submitting,
        )

    def slots(self) -> list[SlotView]:
        return self._media.views()

    def info(self) -> WorkflowInfo:
        return WorkflowInfo(
            workflow_id=self.workflow_id,
            form_key=self.schema.key,
            display_name=self.schema.display_name,
            patient_id=self._patient(),
            current_index=self._sequencer.current_index,
            submitting=self._submitting,
            opened_at=self.opened_at,
            updated_at=self.updated_at,
        )

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------

    def set_field(self, path: str, value: Any) -> None:
        """Record one answer.

        Raises:
            SchemaViolation: undeclared path, a computed field, a file field
                (those are filled by capture or upload), or a bad shape.
            SubmissionInProgress: a submission is in flight.
        """
        self._guard()
        self._state = self._apply(self._state, path, value)
        self._touch()

    def set_fields(self, values: dict[str, Any]) -> None:
        """Record several answers at once; nothing is applied if any is rejected."""
        self._guard()
        state = self._state
        for path, value in values.items():
            state = self._apply(state, path, value)
        self._state = state
        self._touch()

    def _apply(self, state: FormState, path: str, value: Any) -> FormState:
        fs = self._store.field(path)
        if fs.computed:
            raise SchemaViolation(path, f"{path} is computed at submission and cannot be set")
        if fs.kind == FieldKind.FILE:
            raise SchemaViolation(path, f"{path} is a capture slot; use capture or upload")
        return self._store.set(state, path, value)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def next(self) -> bool:
        """Advance one step.  Raises ``ValidationIncomplete`` if the step is invalid."""
        self._guard()
        moved = self._sequencer.next()
        if moved:
            self._left_step()
        return moved

    def prev(self) -> bool:
        self._guard()
        moved = self._sequencer.prev()
        if moved:
            self._left_step()
        return moved

    def jump_to(self, index: int) -> int:
        """Jump via the progress stepper.  Raises ``SequenceViolation`` if not allowed."""
        self._guard()
        before = self._sequencer.current_index
        result = self._sequencer.jump_to(index)
        if result != before:
            self._left_step()
        return result

    def _left_step(self) -> None:
        # Navigating away abandons any camera that is open or being requested.
        self._media.release_streams()
        self._touch()

    # ------------------------------------------------------------------
    # Capture slots
    # ------------------------------------------------------------------

    async def open_camera(self, slot: str) -> bool:
        """Start the camera on ``slot``.  See :meth:`CaptureSlot.request`."""
        self._guard()
        opened = await self._media.open_camera(slot)
        self._touch()
        return opened

    def capture(self, slot: str) -> MediaArtifact:
        """Grab a frame from the open camera into ``slot``."""
        self._guard()
        artifact = self._media.capture(slot)
        self._state = self._store.set(self._state, slot, artifact)
        self._touch()
        return artifact

    def upload(
        self,
        slot: str,
        content: bytes,
        *,
        filename: str,
        mime_type: str,
        source_kind: SourceKind = SourceKind.UPLOAD,
    ) -> MediaArtifact:
        """Put a picked file into ``slot``.  Raises ``UploadRejected`` when invalid."""
        self._guard()
        try:
            artifact = self._media.upload(
                slot, content, filename=filename, mime_type=mime_type, source_kind=source_kind,
            )
        except UploadRejected:
            # The slot is back in idle; its previous artifact is gone too.
            self._state = self._store.set(self._state, slot, None)
            self._touch()
            raise
        self._state = self._store.set(self._state, slot, artifact)
        self._touch()
        return artifact

    def retake(self, slot: str) -> None:
        """Discard the artifact in ``slot`` and release any stream it holds."""
        self._guard()
        self._media.retake(slot)
        self._state = self._store.set(self._state, slot, None)
        self._touch()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def refresh_registry(self) -> RequiredFormRegistry:
        """Load the patient's required-form registry from the collaborator."""
        patient = self._patient()
        if patient:
            entries = await self._gateway.list_required_forms(patient)
            self._assembler.registry = RequiredFormRegistry(entries)
        return self._assembler.registry

    async def submit(self) -> SubmissionResult:
        """Validate the whole form and dispatch it.

        On success the answers, artifacts and step progress are reset.  On
        failure nothing local changes and the error is raised; ``last_error``
        keeps it for the shell.

        Raises:
            SubmissionInProgress: a submission is already in flight.
            ValidationIncomplete: some step has blocking issues; nothing is sent.
            NetworkFailure / ValidationRejected / Unauthorized: from the gateway.
            ValueError: a document form without a patient id; nothing is sent.
        """
        self._guard()
        issues = self._validation.form_issues(self._state)
        if issues:
            flat = [i for step_issues in issues.values() for i in step_issues]
            logger.info(
                "submit() blocked for form %s: %d issues in steps %s",
                self.schema.key, len(flat), ", ".join(issues),
            )
            raise ValidationIncomplete(flat)

        payload = self._assembler.assemble(self.schema.key, self._state)
        patient = self._assembler.patient_id_for(payload, self.patient_id)
        self._media.release_streams()

        self._submitting = True
        try:
            result = await self._assembler.submit(payload, patient)
        except SubmissionError as exc:
            self.last_error = exc
            logger.warning(
                "Submission of form %s failed (%s, retryable=%s): %s",
                self.schema.key, type(exc).__name__, exc.retryable, exc,
            )
            raise
        finally:
            self._submitting = False

        self.last_error = None
        self.last_result = result
        self._reset()
        logger.info("Form %s submitted (%s)", self.schema.key, result.status.value)
        return result

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Discard every answer and artifact and return to the first step."""
        self._guard()
        self._reset()

    def close(self) -> None:
        """Tear down: release every device stream.  Safe to call repeatedly."""
        self._media.release_all()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _guard(self) -> None:
        if self._submitting:
            raise SubmissionInProgress(f"Form {self.schema.key} is being submitted")

    def _reset(self) -> None:
        self._media.release_all()
        self._state = self._store.reset()
        self._sequencer.reset()
        self._touch()

    def _touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)

    def _issues_for(self, step_id: str) -> list[FieldIssue]:
        return self._validation.step_issues(step_id, self._state)

    def _step_id(self, step: int | str | None) -> str:
        if step is None:
            return self._sequencer.current_step_id
        if isinstance(step, int):
            return self.schema.steps[step].id
        return self.schema.get_step(step).id

    def _patient(self) -> str | None:
        if self.schema.patient_field:
            value = self._store.get(self._state, self.schema.patient_field)
            if value:
                return str(value)
        return self.patient_id

    def _field_view(self, fs: FieldSchema, issues: list[FieldIssue]) -> FieldView:
        value = self._store.get(self._state, fs.key)
        if isinstance(value, MediaArtifact):
            value = value.reference()

        constraints: dict[str, Any] = {}
        if fs.min_value is not None:
            constraints["min"] = fs.min_value
        if fs.max_value is not None:
            constraints["max"] = fs.max_value
        if fs.pattern:
            constraints["pattern"] = fs.pattern
        if fs.kind == FieldKind.FILE:
            constraints["accept"] = fs.accept or DEFAULT_ACCEPT

        return FieldView(
            key=fs.key,
            label=fs.label,
            kind=fs.kind.value,
            required=fs.required,
            value=value,
            options=[o.model_dump() for o in fs.options] if fs.options else None,
            options_source=fs.options_source,
            constraints=constraints or None,
            help_text=fs.help_text,
            issues=issues,
        )
