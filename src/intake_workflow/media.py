"""Media capture — capture slots, exclusive camera ownership, and encoding.

Each file field of a form is a *capture slot* with its own state machine::

    idle ──open_camera──> requesting ──granted──> streaming ──capture──> captured
      │                        │ denied / unavailable / cancel             │
      │                        └──────────────> idle <──── retake ─────────┘
      └──upload──> uploading ──accepted──> captured
                        └──rejected──> idle

Whatever the path, a captured slot holds a :class:`MediaArtifact` of the
same shape, so the submission assembler never needs to know provenance.

Device streams are a scarce resource.  A stream is released on capture, on
cancel, on retake, and when another slot opens the camera; at most one
slot holds a stream at any time.
"""

from __future__ import annotations

import asyncio
import base64
import enum
import io
import logging

from PIL import Image, UnidentifiedImageError

from intake_workflow.constants import (
    CAPTURE_IMAGE_FORMAT,
    CAPTURE_JPEG_QUALITY,
    DEFAULT_ACCEPT,
    DEFAULT_FACING_MODE,
    IMAGE_MIME_TYPES,
    MAX_UPLOAD_BYTES,
)
from intake_workflow.errors import (
    CaptureError,
    DeviceUnavailable,
    SchemaViolation,
    UploadRejected,
)
from intake_workflow.interfaces import CameraDevice, MediaStream
from intake_workflow.models.form import FormSchema
from intake_workflow.models.media import Frame, MediaArtifact, SourceKind
from intake_workflow.models.views import SlotView

logger = logging.getLogger(__name__)

_FORMAT_MIME = {"JPEG": "image/jpeg", "PNG": "image/png"}
_FORMAT_EXT = {"JPEG": "jpg", "PNG": "png"}


def data_uri(mime_type: str, content: bytes) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(content).decode('ascii')}"


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

class FrameEncoder:
    """Turns camera frames and uploaded files into :class:`MediaArtifact`.

    Args:
        image_format: Pillow format for camera frames ("JPEG" or "PNG")
        quality: JPEG quality (ignored for PNG)
        max_bytes: size limit applied to every artifact
    """

    def __init__(
        self,
        image_format: str = CAPTURE_IMAGE_FORMAT,
        quality: int = CAPTURE_JPEG_QUALITY,
        max_bytes: int = MAX_UPLOAD_BYTES,
    ) -> None:
        if image_format not in _FORMAT_MIME:
            raise ValueError(f"Unsupported capture format: {image_format}")
        self._format = image_format
        self._quality = quality
        self._max_bytes = max_bytes

    def encode_frame(self, frame: Frame, *, name: str) -> MediaArtifact:
        """Encode a raw frame.  Raises ``ValueError`` on a malformed buffer."""
        image = Image.frombytes(frame.mode, (frame.width, frame.height), frame.pixels)
        if self._format == "JPEG" and image.mode not in ("RGB", "L"):
            image = image.convert("RGB")

        buf = io.BytesIO()
        save_kwargs = {"quality": self._quality} if self._format == "JPEG" else {}
        image.save(buf, format=self._format, **save_kwargs)
        content = buf.getvalue()
        if len(content) > self._max_bytes:
            raise ValueError(f"Encoded frame is {len(content)} bytes, limit {self._max_bytes}")

        mime = _FORMAT_MIME[self._format]
        return MediaArtifact(
            preview_data_uri=data_uri(mime, content),
            binary_payload=content,
            mime_type=mime,
            source_kind=SourceKind.CAMERA,
            filename=f"{name}.{_FORMAT_EXT[self._format]}",
        )

    def from_bytes(
        self,
        content: bytes,
        *,
        filename: str,
        mime_type: str,
        accept: list[str] | None = None,
        source_kind: SourceKind = SourceKind.UPLOAD,
    ) -> MediaArtifact:
        """Validate an uploaded file and wrap it.

        Images must decode; the MIME type Pillow detects wins over the one
        the client declared.

        Raises:
            UploadRejected: empty, too large, wrong type, or undecodable.
        """
        allowed = accept or DEFAULT_ACCEPT
        if not content:
            raise UploadRejected(f"{filename}: file is empty")
        if len(content) > self._max_bytes:
            raise UploadRejected(
                f"{filename}: {len(content)} bytes exceeds the {self._max_bytes} byte limit"
            )
        if mime_type not in allowed:
            raise UploadRejected(f"{filename}: type {mime_type} not accepted ({', '.join(allowed)})")

        if mime_type in IMAGE_MIME_TYPES:
            try:
                with Image.open(io.BytesIO(content)) as image:
                    detected = Image.MIME.get(image.format or "", mime_type)
                    image.verify()
            except (UnidentifiedImageError, OSError, SyntaxError) as exc:
                raise UploadRejected(f"{filename}: not a readable image") from exc
            if detected not in allowed:
                raise UploadRejected(f"{filename}: content is {detected}, not accepted")
            mime_type = detected

        return MediaArtifact(
            preview_data_uri=data_uri(mime_type, content),
            binary_payload=content,
            mime_type=mime_type,
            source_kind=source_kind,
            filename=filename,
        )


# ---------------------------------------------------------------------------
# Capture slot
# ---------------------------------------------------------------------------

class SlotState(str, enum.Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    UPLOADING = "uploading"
    CAPTURED = "captured"


class CaptureSlot:
    """State machine for one image-acquisition target (e.g. ID front).

    Args:
        name: slot name; equals the file field's dotted key
        encoder: shared :class:`FrameEncoder`
        accept: MIME types accepted on the upload path
        facing_mode: camera facing mode requested on the camera path
    """

    def __init__(
        self,
        name: str,
        *,
        encoder: FrameEncoder,
        accept: list[str] | None = None,
        facing_mode: str = DEFAULT_FACING_MODE,
    ) -> None:
        self.name = name
        self.accept = accept
        self.facing_mode = facing_mode
        self.state = SlotState.IDLE
        self.artifact: MediaArtifact | None = None
        self.error: str | None = None
        self._encoder = encoder
        self._stream: MediaStream | None = None
        # Bumped on every acquisition and every cancel so a late-arriving
        # stream from a superseded request can be recognised and released.
        self._attempt = 0

    @property
    def holds_stream(self) -> bool:
        return self._stream is not None

    # ------------------------------------------------------------------
    # Camera path
    # ------------------------------------------------------------------

    async def request(self, camera: CameraDevice) -> bool:
        """Acquire a camera stream.

        Returns:
            True when the slot is streaming, False when the request was
            cancelled while waiting (the late stream is released).

        Raises:
            PermissionDenied / DeviceUnavailable: the slot is back in idle
                with ``error`` set.
            CaptureError: the slot is not idle.
        """
        if self.state != SlotState.IDLE:
            raise CaptureError(
                f"Slot {self.name} is {self.state.value}; retake before reopening the camera",
                slot=self.name,
            )

        self._attempt += 1
        attempt = self._attempt
        self.state = SlotState.REQUESTING
        self.error = None

        try:
            stream = await camera.open_stream(self.facing_mode)
        except CaptureError as exc:
            exc.slot = self.name
            self._fail_request(attempt, str(exc))
            raise
        except asyncio.CancelledError:
            if attempt == self._attempt:
                self.state = SlotState.IDLE
            raise
        except Exception as exc:
            self._fail_request(attempt, str(exc))
            raise DeviceUnavailable(f"Camera unavailable: {exc}", slot=self.name) from exc

        if attempt != self._attempt or self.state != SlotState.REQUESTING:
            # Cancelled while the permission prompt was open.
            logger.info("Slot %s: releasing stream granted after cancel", self.name)
            stream.release()
            return False

        self._stream = stream
        self.state = SlotState.STREAMING
        return True

    def capture(self) -> MediaArtifact:
        """Grab the current frame, encode it, and release the stream."""
        if self.state != SlotState.STREAMING or self._stream is None:
            raise CaptureError(f"Slot {self.name} is not streaming", slot=self.name)
        try:
            frame = self._stream.read_frame()
            artifact = self._encoder.encode_frame(frame, name=self.name.replace(".", "_"))
        except (ValueError, OSError) as exc:
            self._release()
            self.state = SlotState.IDLE
            self.error = f"Capture failed: {exc}"
            raise DeviceUnavailable(self.error, slot=self.name) from exc

        self._release()
        self.artifact = artifact
        self.state = SlotState.CAPTURED
        return artifact

    # ------------------------------------------------------------------
    # Upload path
    # ------------------------------------------------------------------

    def upload(
        self,
        content: bytes,
        *,
        filename: str,
        mime_type: str,
        source_kind: SourceKind = SourceKind.UPLOAD,
    ) -> MediaArtifact:
        """Accept a picked file (or a client-side camera capture).

        Any held stream is released first; an existing artifact is replaced.
        """
        self.cancel()
        self.state = SlotState.UPLOADING
        try:
            artifact = self._encoder.from_bytes(
                content,
                filename=filename,
                mime_type=mime_type,
                accept=self.accept,
                source_kind=source_kind,
            )
        except UploadRejected as exc:
            exc.slot = self.name
            self.state = SlotState.IDLE
            self.error = str(exc)
            raise

        self.artifact = artifact
        self.state = SlotState.CAPTURED
        return artifact

    # ------------------------------------------------------------------
    # Discard
    # ------------------------------------------------------------------

    def retake(self) -> None:
        """Discard the artifact and return to idle."""
        self.cancel()

    def cancel(self) -> None:
        """Abort whatever is in progress, release any stream, return to idle."""
        self._attempt += 1
        self._release()
        self.artifact = None
        self.error = None
        self.state = SlotState.IDLE

    def view(self) -> SlotView:
        return SlotView(
            name=self.name,
            state=self.state.value,
            artifact=self.artifact.reference() if self.artifact else None,
            error=self.error,
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _fail_request(self, attempt: int, message: str) -> None:
        if attempt == self._attempt:
            self.state = SlotState.IDLE
            self.error = message
        logger.warning("Slot %s: camera request failed: %s", self.name, message)

    def _release(self) -> None:
        if self._stream is not None:
            stream, self._stream = self._stream, None
            stream.release()


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------

class MediaCaptureAdapter:
    """Owns every capture slot of one workflow and the shared camera.

    Args:
        slots: capture slots keyed by name
        camera: device used for the camera path (None -> upload only)
    """

    def __init__(self, slots: dict[str, CaptureSlot], camera: CameraDevice | None = None) -> None:
        self._slots = slots
        self._camera = camera

    @classmethod
    def for_schema(
        cls,
        schema: FormSchema,
        *,
        camera: CameraDevice | None = None,
        encoder: FrameEncoder | None = None,
    ) -> "MediaCaptureAdapter":
        """One slot per file field of ``schema``."""
        encoder = encoder or FrameEncoder()
        slots = {
            f.key: CaptureSlot(f.key, encoder=encoder, accept=f.accept)
            for f in schema.file_fields()
        }
        return cls(slots, camera)

    @property
    def slots(self) -> dict[str, CaptureSlot]:
        return dict(self._slots)

    def slot(self, name: str) -> CaptureSlot:
        slot = self._slots.get(name)
        if slot is None:
            raise SchemaViolation(name, f"No capture slot named {name!r}")
        return slot

    @property
    def active_slot(self) -> str | None:
        """Name of the slot holding (or acquiring) the camera, if any."""
        for name, slot in self._slots.items():
            if slot.holds_stream or slot.state == SlotState.REQUESTING:
                return name
        return None

    async def open_camera(self, name: str) -> bool:
        """Start the camera on ``name``, releasing any other slot's stream first."""
        slot = self.slot(name)
        if self._camera is None:
            slot.error = "No camera available; upload a file instead"
            raise DeviceUnavailable(slot.error, slot=name)
        for other in self._slots.values():
            if other is not slot and other.state in (SlotState.REQUESTING, SlotState.STREAMING):
                logger.info("Releasing camera held by slot %s for slot %s", other.name, name)
                other.cancel()
        return await slot.request(self._camera)

    def capture(self, name: str) -> MediaArtifact:
        return self.slot(name).capture()

    def upload(
        self,
        name: str,
        content: bytes,
        *,
        filename: str,
        mime_type: str,
        source_kind: SourceKind = SourceKind.UPLOAD,
    ) -> MediaArtifact:
        return self.slot(name).upload(
            content, filename=filename, mime_type=mime_type, source_kind=source_kind,
        )

    def retake(self, name: str) -> None:
        self.slot(name).retake()

    def release_all(self) -> None:
        """Cancel every slot (workflow cancel, submit, or teardown)."""
        for slot in self._slots.values():
            slot.cancel()

    def release_streams(self) -> None:
        """Release streams without discarding captured artifacts."""
        for slot in self._slots.values():
            if slot.state in (SlotState.REQUESTING, SlotState.STREAMING):
                slot.cancel()

    def views(self) -> list[SlotView]:
        return [slot.view() for slot in self._slots.values()]
