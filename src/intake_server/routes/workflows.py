"""Workflow endpoints — open a form, edit it step by step, upload documents, submit.

A workflow lives in server memory from ``POST /workflows`` until it is
submitted and closed (``DELETE``), or until it is evicted for being idle.
All endpoints require the ``X-User-ID`` header; a user only sees their
own workflows.

Camera capture happens in the browser: the shell uploads the captured
still to ``PUT /workflows/{id}/slots/{slot}`` with ``source=camera`` so
the artifact keeps its provenance.
"""

from typing import Any

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel

from intake_workflow.models.media import SourceKind
from intake_workflow.models.submission import SubmissionResult
from intake_workflow.models.views import CompletionState, SlotView, StepView, WorkflowInfo
from intake_workflow.workflow import IntakeWorkflow

from intake_server.dependencies import get_manager, get_user_id, get_workflow
from intake_server.manager import WorkflowManager

router = APIRouter(tags=["workflows"])


# ------------------------------------------------------------------
# Request / response models
# ------------------------------------------------------------------

class OpenWorkflowRequest(BaseModel):
    """Body for POST /workflows.

    ``patient_id`` is required for document forms; the CHW encounter
    picks its patient in the first step instead.
    """
    form_key: str
    patient_id: str | None = None


class SetFieldsRequest(BaseModel):
    """Body for PUT /workflows/{id}/fields — dotted path → value, applied atomically."""
    values: dict[str, Any]


class JumpRequest(BaseModel):
    """Body for POST /workflows/{id}/jump."""
    index: int


class WorkflowDetail(BaseModel):
    info: WorkflowInfo
    completion: CompletionState
    slots: list[SlotView]


class NavigationResponse(BaseModel):
    """Whether the step changed, plus the step now presented."""
    moved: bool
    step: StepView
    completion: CompletionState


def _detail(workflow: IntakeWorkflow) -> WorkflowDetail:
    return WorkflowDetail(
        info=workflow.info(),
        completion=workflow.get_completion_state(),
        slots=workflow.slots(),
    )


def _navigation(workflow: IntakeWorkflow, moved: bool) -> NavigationResponse:
    return NavigationResponse(
        moved=moved,
        step=workflow.get_step_view(),
        completion=workflow.get_completion_state(),
    )


# ------------------------------------------------------------------
# Lifecycle
# ------------------------------------------------------------------

@router.post("/workflows", status_code=201)
async def open_workflow(
    body: OpenWorkflowRequest,
    user_id: str = Depends(get_user_id),
    manager: WorkflowManager = Depends(get_manager),
) -> WorkflowDetail:
    """Open a new workflow on the first step.  404 for an unknown form."""
    workflow = await manager.open(user_id, body.form_key, patient_id=body.patient_id)
    return _detail(workflow)


@router.get("/workflows")
def list_workflows(
    user_id: str = Depends(get_user_id),
    manager: WorkflowManager = Depends(get_manager),
) -> list[WorkflowInfo]:
    return [wf.info() for wf in manager.for_user(user_id)]


@router.get("/workflows/{workflow_id}")
def get_workflow_detail(
    workflow: IntakeWorkflow = Depends(get_workflow),
) -> WorkflowDetail:
    return _detail(workflow)


@router.delete("/workflows/{workflow_id}", status_code=204)
def close_workflow(
    workflow_id: str,
    user_id: str = Depends(get_user_id),
    manager: WorkflowManager = Depends(get_manager),
) -> None:
    """Discard the workflow and everything entered in it."""
    manager.close(user_id, workflow_id)


@router.post("/workflows/{workflow_id}/cancel")
def cancel_workflow(
    workflow: IntakeWorkflow = Depends(get_workflow),
) -> NavigationResponse:
    """Clear every answer and artifact and return to the first step."""
    workflow.cancel()
    return _navigation(workflow, moved=True)


# ------------------------------------------------------------------
# Steps & answers
# ------------------------------------------------------------------

@router.get("/workflows/{workflow_id}/step")
def get_current_step(
    workflow: IntakeWorkflow = Depends(get_workflow),
) -> StepView:
    """The current step with its visible fields, values and issues."""
    return workflow.get_step_view()


@router.put("/workflows/{workflow_id}/fields")
def set_fields(
    body: SetFieldsRequest,
    workflow: IntakeWorkflow = Depends(get_workflow),
) -> StepView:
    """Record answers.  400 (nothing applied) if any path is undeclared or read-only."""
    workflow.set_fields(body.values)
    return workflow.get_step_view()


@router.post("/workflows/{workflow_id}/next")
def next_step(
    workflow: IntakeWorkflow = Depends(get_workflow),
) -> NavigationResponse:
    """Advance one step.  422 with the blocking issues if the step is invalid."""
    moved = workflow.next()
    return _navigation(workflow, moved)


@router.post("/workflows/{workflow_id}/prev")
def prev_step(
    workflow: IntakeWorkflow = Depends(get_workflow),
) -> NavigationResponse:
    moved = workflow.prev()
    return _navigation(workflow, moved)


@router.post("/workflows/{workflow_id}/jump")
def jump_to_step(
    body: JumpRequest,
    workflow: IntakeWorkflow = Depends(get_workflow),
) -> NavigationResponse:
    """Jump via the progress stepper.  409 when the target is locked."""
    before = workflow.current_step_index()
    after = workflow.jump_to(body.index)
    return _navigation(workflow, moved=after != before)


# ------------------------------------------------------------------
# Capture slots
# ------------------------------------------------------------------

@router.get("/workflows/{workflow_id}/slots")
def list_slots(
    workflow: IntakeWorkflow = Depends(get_workflow),
) -> list[SlotView]:
    return workflow.slots()


@router.put("/workflows/{workflow_id}/slots/{slot}")
async def upload_to_slot(
    slot: str,
    file: UploadFile = File(...),
    source: SourceKind = Form(SourceKind.UPLOAD),
    workflow: IntakeWorkflow = Depends(get_workflow),
) -> SlotView:
    """Fill a capture slot with an uploaded file or a browser-captured still.

    400 if the slot is unknown or the file is empty, too large, or of a
    type the slot does not accept.
    """
    content = await file.read()
    workflow.upload(
        slot,
        content,
        filename=file.filename or slot,
        mime_type=file.content_type or "application/octet-stream",
        source_kind=source,
    )
    return next(v for v in workflow.slots() if v.name == slot)


@router.delete("/workflows/{workflow_id}/slots/{slot}", status_code=204)
def retake_slot(
    slot: str,
    workflow: IntakeWorkflow = Depends(get_workflow),
) -> None:
    """Discard the slot's artifact so it can be captured again."""
    workflow.retake(slot)


# ------------------------------------------------------------------
# Submission
# ------------------------------------------------------------------

@router.post("/workflows/{workflow_id}/submit")
async def submit_workflow(
    workflow: IntakeWorkflow = Depends(get_workflow),
) -> SubmissionResult:
    """Validate the whole form and store it.

    On success the workflow is reset to an empty first step and stays open
    for the next record.  Errors: 422 incomplete or rejected, 409 already
    submitting, 503 storage unavailable (retry), 403 not authorized.
    """
    return await workflow.submit()
