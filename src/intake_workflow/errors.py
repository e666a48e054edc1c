"""Exception taxonomy for the intake workflow engine.

Client-side errors (schema, sequence, validation, capture) derive from
``ValueError`` so that the HTTP layer's global ``ValueError`` handler can
map them without every route catching them.  Submission errors come back
from the persistence collaborator and derive from ``SubmissionError``.

    IntakeError
      ├─ SchemaViolation        — undeclared field path (programmer error)
      ├─ SequenceViolation      — navigation out of allowed order
      ├─ ValidationIncomplete   — required/visible fields missing or malformed
      ├─ SubmissionInProgress   — edit attempted while a submission is in flight
      └─ CaptureError
           ├─ PermissionDenied  — camera permission refused
           ├─ DeviceUnavailable — no camera, or camera busy
           └─ UploadRejected    — uploaded file has the wrong type/size

    SubmissionError
      ├─ NetworkFailure         — retryable
      ├─ ValidationRejected     — server rejected the payload
      └─ Unauthorized           — fatal for the session
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from intake_workflow.models.validation import FieldIssue


class IntakeError(ValueError):
    """Base class for client-side workflow errors."""


class SchemaViolation(IntakeError):
    """A field path that the active form schema does not declare."""

    def __init__(self, path: str, message: str | None = None) -> None:
        self.path = path
        super().__init__(message or f"Field path not declared in schema: {path!r}")


class SequenceViolation(IntakeError):
    """A step transition the sequencer does not allow."""

    def __init__(self, message: str, *, current_index: int) -> None:
        self.current_index = current_index
        super().__init__(message)


class ValidationIncomplete(IntakeError):
    """Required fields are missing or malformed; blocks ``next()``/``submit()``."""

    def __init__(self, issues: list[FieldIssue], message: str | None = None) -> None:
        self.issues = issues
        keys = ", ".join(i.key for i in issues)
        super().__init__(message or f"Validation incomplete: {keys}")


class SubmissionInProgress(IntakeError):
    """The workflow is frozen while its submission is being dispatched."""


class CaptureError(IntakeError):
    """Base class for capture-slot errors.

    Camera implementations raise these without a slot; the slot that was
    acquiring fills ``slot`` in before re-raising.
    """

    def __init__(self, message: str, *, slot: str | None = None) -> None:
        self.slot = slot
        super().__init__(message)


class PermissionDenied(CaptureError):
    """The user (or browser policy) refused camera access."""


class DeviceUnavailable(CaptureError):
    """No usable camera device."""


class UploadRejected(CaptureError):
    """An uploaded file failed type, size, or decode checks."""


# ---------------------------------------------------------------------------
# Submission-scoped errors
# ---------------------------------------------------------------------------

class SubmissionError(RuntimeError):
    """Base class for failures reported by the persistence collaborator."""

    retryable: bool = False


class NetworkFailure(SubmissionError):
    """Transport or availability failure; the user may simply try again."""

    retryable = True


class ValidationRejected(SubmissionError):
    """The server found the payload invalid despite client checks passing.

    ``field_errors`` maps dotted field paths to messages when the
    collaborator returns field-level detail; it is empty otherwise.
    """

    def __init__(
        self, message: str = "Submission rejected", field_errors: dict[str, str] | None = None
    ) -> None:
        self.field_errors = dict(field_errors or {})
        super().__init__(message)


class Unauthorized(SubmissionError):
    """The session lacks access; not recoverable by retrying."""
