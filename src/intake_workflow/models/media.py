"""Media models — the single artifact shape produced by every capture slot.

Two acquisition paths converge here:
  - camera: a still frame grabbed from a device stream and encoded
  - upload: a file picked by the user

Downstream code (state store, submission assembler) only ever sees
``MediaArtifact`` and never needs to know which path produced it.
"""

from __future__ import annotations

import enum
import hashlib

from pydantic import BaseModel, ConfigDict, Field


class SourceKind(str, enum.Enum):
    """Provenance tag of a media artifact."""

    CAMERA = "camera"
    UPLOAD = "upload"


class Frame(BaseModel):
    """Raw pixel buffer read from a camera stream.

    ``mode`` follows Pillow conventions ("RGB", "RGBA", "L").  ``pixels``
    holds ``width * height * channels`` bytes, row-major.
    """

    model_config = ConfigDict(frozen=True)

    width: int = Field(gt=0)
    height: int = Field(gt=0)
    mode: str = "RGB"
    pixels: bytes


class MediaArtifact(BaseModel):
    """A captured photo or uploaded file, ready for preview and submission."""

    model_config = ConfigDict(frozen=True)

    preview_data_uri: str
    binary_payload: bytes
    mime_type: str
    source_kind: SourceKind
    filename: str

    @property
    def size(self) -> int:
        return len(self.binary_payload)

    @property
    def sha256(self) -> str:
        return hashlib.sha256(self.binary_payload).hexdigest()

    def reference(self) -> dict:
        """JSON-safe description used in place of the bytes in structured data."""
        return {
            "filename": self.filename,
            "mime_type": self.mime_type,
            "size": self.size,
            "sha256": self.sha256,
            "source_kind": self.source_kind.value,
        }
