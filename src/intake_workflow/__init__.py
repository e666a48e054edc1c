"""intake_workflow — Schema-driven clinic intake workflow SDK.

Public API:
    IntakeWorkflow      — orchestrator for one open form (the UI-shell surface)
    FormSchemaStore     — loads YAML form definitions into typed models
    FormStateStore      — immutable, dotted-path addressable answer store
    ValidationEngine    — visibility-aware step / form completeness checks
    StepSequencer       — step index state machine with derived completion
    SubmissionAssembler — payload construction and dispatch
    RequiredFormRegistry — a patient's required-form checklist
    score_phq2          — PHQ-2 depression screening scorer

Media capture:
    MediaCaptureAdapter — owns the capture slots of a form and the camera
    CaptureSlot         — per-slot state machine (camera or upload)
    FrameEncoder        — Pillow-based frame / upload encoding

Collaborator interfaces:
    PersistenceGateway  — ABC for the backend that stores records
    CameraDevice        — ABC for camera stream sources
    MediaStream         — ABC for an open camera stream
    HttpPersistenceGateway — httpx implementation of PersistenceGateway
"""

from intake_workflow.assembler import RequiredFormRegistry, SubmissionAssembler
from intake_workflow.errors import (
    CaptureError,
    DeviceUnavailable,
    IntakeError,
    NetworkFailure,
    PermissionDenied,
    SchemaViolation,
    SequenceViolation,
    SubmissionError,
    SubmissionInProgress,
    Unauthorized,
    UploadRejected,
    ValidationIncomplete,
    ValidationRejected,
)
from intake_workflow.gateways import HttpPersistenceGateway
from intake_workflow.interfaces import CameraDevice, MediaStream, PersistenceGateway
from intake_workflow.media import CaptureSlot, FrameEncoder, MediaCaptureAdapter, SlotState
from intake_workflow.notes import NoteRenderer
from intake_workflow.schemas import FormSchemaStore
from intake_workflow.scoring import score_phq2
from intake_workflow.sequencer import StepSequencer
from intake_workflow.state import FormStateStore
from intake_workflow.validation import ValidationEngine
from intake_workflow.workflow import IntakeWorkflow

__all__ = [
    # Orchestration & stores
    "IntakeWorkflow",
    "FormSchemaStore",
    "FormStateStore",
    "ValidationEngine",
    "StepSequencer",
    "SubmissionAssembler",
    "RequiredFormRegistry",
    "score_phq2",
    "NoteRenderer",
    # Media
    "MediaCaptureAdapter",
    "CaptureSlot",
    "SlotState",
    "FrameEncoder",
    # Interfaces
    "PersistenceGateway",
    "CameraDevice",
    "MediaStream",
    "HttpPersistenceGateway",
    # Errors
    "IntakeError",
    "SchemaViolation",
    "SequenceViolation",
    "ValidationIncomplete",
    "SubmissionInProgress",
    "CaptureError",
    "PermissionDenied",
    "DeviceUnavailable",
    "UploadRejected",
    "SubmissionError",
    "NetworkFailure",
    "ValidationRejected",
    "Unauthorized",
]
