"""Submission models — the contract between the assembler and the persistence collaborator.

Payload types:
  - JsonPayload: a single structured-data body (no binary artifacts)
  - MultipartPayload: structured data plus one binary part per capture slot

The discriminated ``Payload`` union uses ``kind`` so gateways can dispatch
on it directly.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field

from intake_workflow.models.media import MediaArtifact


class JsonPayload(BaseModel):
    """Structured-data body for forms without artifacts."""

    kind: Literal["json"] = "json"
    form_key: str
    data: Dict[str, Any]


class MultipartPayload(BaseModel):
    """Structured data plus binary parts keyed by slot name (field path)."""

    kind: Literal["multipart"] = "multipart"
    form_key: str
    data: Dict[str, Any]
    parts: Dict[str, MediaArtifact]


Payload = Annotated[Union[JsonPayload, MultipartPayload], Field(discriminator="kind")]


class GatewayResponse(BaseModel):
    """What a persistence collaborator answers for a write.

    ``fallback`` is True when the record was stored in a degraded but
    compatible shape (e.g. an encounter written as a progress note).
    """

    ok: bool
    fallback: bool = False
    record_id: Optional[str] = None
    error: Optional[str] = None
    field_errors: Dict[str, str] = {}


class SubmissionStatus(str, enum.Enum):
    STORED = "stored"
    STORED_FALLBACK = "stored_fallback"


class SubmissionResult(BaseModel):
    """Outcome of a successful submission, surfaced to the UI shell."""

    form_key: str
    status: SubmissionStatus
    record_id: Optional[str] = None
    message: str
    submitted_at: datetime
