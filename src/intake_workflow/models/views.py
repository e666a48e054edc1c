"""View models — the contract between the workflow engine and the UI shell.

These models are intentionally decoupled from the internal schema and
state types so that API consumers never see engine internals (raw bytes,
predicates, stream handles).

  - FieldView:       one visible field with its current value
  - StepStatus:      one entry of the progress stepper
  - StepView:        the current step to render
  - CompletionState: overall progress, navigation affordances
  - SlotView:        state of one capture slot
  - WorkflowInfo:    public summary of an open workflow instance
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel

from intake_workflow.models.validation import FieldIssue


class FieldView(BaseModel):
    """Flattened field for rendering.

    ``value`` holds the artifact reference (not the bytes) for file fields.
    """

    key: str
    label: str
    kind: str
    required: bool
    value: Any = None
    # [{id, label}] for enum / multi_select with static options
    options: list[dict] | None = None
    # name of a runtime lookup list ("patients", "staff")
    options_source: str | None = None
    # {min, max, pattern, accept} where relevant
    constraints: dict | None = None
    help_text: str | None = None
    issues: list[FieldIssue] = []


class StepStatus(BaseModel):
    """One entry in the clickable progress stepper."""

    index: int
    id: str
    title: str
    status: Literal["current", "completed", "pending", "locked"]


class StepView(BaseModel):
    """The step currently presented to the user."""

    index: int
    id: str
    title: str
    description: str | None = None
    fields: list[FieldView]
    is_last: bool


class SlotView(BaseModel):
    """Public state of a capture slot."""

    name: str
    state: str
    artifact: dict | None = None
    error: str | None = None


class CompletionState(BaseModel):
    """Overall workflow progress for the UI shell."""

    form_key: str
    current_index: int
    total_steps: int
    steps: list[StepStatus]
    completed: list[str]
    form_valid: bool
    can_go_next: bool
    can_go_back: bool
    submitting: bool


class WorkflowInfo(BaseModel):
    """Public summary of an open workflow instance."""

    workflow_id: str
    form_key: str
    display_name: str
    patient_id: str | None = None
    current_index: int
    submitting: bool
    opened_at: datetime
    updated_at: datetime
