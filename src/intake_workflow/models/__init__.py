"""Public model re-exports for intake_workflow.

Consumers should import from ``intake_workflow.models`` rather than
reaching into sub-modules directly.
"""

# --- Fields & forms ---
from intake_workflow.models.field import (
    FieldKind,
    FieldOption,
    FieldSchema,
    Predicate,
)
from intake_workflow.models.form import FormSchema, ScoreSpec, StepSchema

# --- Media ---
from intake_workflow.models.media import Frame, MediaArtifact, SourceKind

# --- Registry ---
from intake_workflow.models.registry import FormStatus, RequiredFormRegistryEntry

# --- Submission ---
from intake_workflow.models.submission import (
    GatewayResponse,
    JsonPayload,
    MultipartPayload,
    Payload,
    SubmissionResult,
    SubmissionStatus,
)

# --- Validation & scoring ---
from intake_workflow.models.validation import FieldIssue, ScoreBand, ScoreResult

# --- Views ---
from intake_workflow.models.views import (
    CompletionState,
    FieldView,
    SlotView,
    StepStatus,
    StepView,
    WorkflowInfo,
)

__all__ = [
    # Fields & forms
    "FieldKind",
    "FieldOption",
    "FieldSchema",
    "FormSchema",
    "Predicate",
    "ScoreSpec",
    "StepSchema",
    # Media
    "Frame",
    "MediaArtifact",
    "SourceKind",
    # Registry
    "FormStatus",
    "RequiredFormRegistryEntry",
    # Submission
    "GatewayResponse",
    "JsonPayload",
    "MultipartPayload",
    "Payload",
    "SubmissionResult",
    "SubmissionStatus",
    # Validation & scoring
    "FieldIssue",
    "ScoreBand",
    "ScoreResult",
    # Views
    "CompletionState",
    "FieldView",
    "SlotView",
    "StepStatus",
    "StepView",
    "WorkflowInfo",
]
