"""Capture slot tests — state machine, stream ownership, and encoding.

FakeCamera counts every stream it hands out and every release, so the
tests can assert that no device stream outlives its slot.
"""

import asyncio

import pytest

from helpers.builders import jpeg_bytes, png_bytes
from helpers.fakes import FakeCamera
from intake_workflow.errors import (
    CaptureError,
    DeviceUnavailable,
    PermissionDenied,
    SchemaViolation,
    UploadRejected,
)
from intake_workflow.media import CaptureSlot, FrameEncoder, MediaCaptureAdapter, SlotState
from intake_workflow.models.media import Frame, SourceKind


@pytest.fixture
def encoder():
    return FrameEncoder()


@pytest.fixture
def slot(encoder):
    return CaptureSlot("id_document.front", encoder=encoder, accept=["image/jpeg", "image/png"])


class TestFrameEncoder:
    def test_encode_frame_produces_jpeg_artifact(self, encoder):
        frame = Frame(width=2, height=2, mode="RGB", pixels=bytes(12))
        artifact = encoder.encode_frame(frame, name="card_front")
        assert artifact.mime_type == "image/jpeg"
        assert artifact.source_kind == SourceKind.CAMERA
        assert artifact.filename == "card_front.jpg"
        assert artifact.binary_payload[:2] == b"\xff\xd8", "JPEG magic bytes"
        assert artifact.preview_data_uri.startswith("data:image/jpeg;base64,")

    def test_png_format(self):
        enc = FrameEncoder(image_format="PNG")
        artifact = enc.encode_frame(Frame(width=1, height=1, pixels=bytes(3)), name="x")
        assert artifact.mime_type == "image/png"
        assert artifact.filename == "x.png"

    def test_short_pixel_buffer_raises_value_error(self, encoder):
        with pytest.raises(ValueError):
            encoder.encode_frame(Frame(width=4, height=4, pixels=bytes(3)), name="x")

    def test_unsupported_format(self):
        with pytest.raises(ValueError):
            FrameEncoder(image_format="GIF")

    def test_upload_detects_real_type(self, encoder):
        artifact = encoder.from_bytes(
            png_bytes(), filename="scan", mime_type="image/jpeg",
            accept=["image/jpeg", "image/png"],
        )
        assert artifact.mime_type == "image/png", "Detected type wins over declared type"
        assert artifact.source_kind == SourceKind.UPLOAD

    @pytest.mark.parametrize(
        "content, mime, reason",
        [
            (b"", "image/png", "empty"),
            (b"not an image", "image/png", "readable"),
            (b"%PDF-1.4", "application/zip", "not accepted"),
        ],
    )
    def test_upload_rejections(self, encoder, content, mime, reason):
        with pytest.raises(UploadRejected) as exc_info:
            encoder.from_bytes(content, filename="f", mime_type=mime)
        assert reason in str(exc_info.value)

    def test_upload_size_limit(self):
        enc = FrameEncoder(max_bytes=10)
        with pytest.raises(UploadRejected):
            enc.from_bytes(png_bytes(), filename="f.png", mime_type="image/png")

    def test_pdf_passes_without_decode(self, encoder):
        artifact = encoder.from_bytes(b"%PDF-1.4 body", filename="a.pdf", mime_type="application/pdf")
        assert artifact.mime_type == "application/pdf"


class TestCaptureSlotCamera:
    """Camera path of a single slot."""

    @pytest.mark.asyncio
    async def test_capture_then_retake_releases_exactly_once(self, slot):
        camera = FakeCamera()
        assert await slot.request(camera) is True
        assert slot.state == SlotState.STREAMING
        assert camera.open_streams == 1

        artifact = slot.capture()
        assert slot.state == SlotState.CAPTURED
        assert artifact.source_kind == SourceKind.CAMERA
        assert camera.releases == 1, "Capture releases the stream"

        slot.retake()
        assert slot.state == SlotState.IDLE
        assert slot.artifact is None
        assert camera.open_streams == 0
        assert camera.releases == 1, "Retake must not release twice"

    @pytest.mark.asyncio
    async def test_cancel_while_streaming_releases_once(self, slot):
        camera = FakeCamera()
        await slot.request(camera)
        slot.cancel()
        slot.cancel()
        assert slot.state == SlotState.IDLE
        assert camera.releases == 1

    @pytest.mark.asyncio
    async def test_permission_denied_returns_to_idle(self, slot):
        with pytest.raises(PermissionDenied) as exc_info:
            await slot.request(FakeCamera(deny=True))
        assert exc_info.value.slot == "id_document.front"
        assert slot.state == SlotState.IDLE
        assert slot.error == "Camera permission denied"

    @pytest.mark.asyncio
    async def test_reopen_requires_idle(self, slot):
        camera = FakeCamera()
        await slot.request(camera)
        slot.capture()
        with pytest.raises(CaptureError):
            await slot.request(camera)

    def test_capture_without_stream(self, slot):
        with pytest.raises(CaptureError):
            slot.capture()

    @pytest.mark.asyncio
    async def test_stream_granted_after_cancel_is_released(self, slot):
        gate = asyncio.Event()
        camera = FakeCamera(gate=gate)
        task = asyncio.create_task(slot.request(camera))
        await asyncio.sleep(0)
        assert slot.state == SlotState.REQUESTING

        slot.cancel()
        gate.set()
        assert await task is False
        assert slot.state == SlotState.IDLE
        assert camera.open_streams == 0, "Late stream must be released"
        assert camera.releases == 1


class TestCaptureSlotUpload:
    def test_upload_accepted(self, slot):
        artifact = slot.upload(jpeg_bytes(), filename="front.jpg", mime_type="image/jpeg")
        assert slot.state == SlotState.CAPTURED
        assert slot.artifact is artifact

    def test_upload_rejected_returns_to_idle(self, slot):
        with pytest.raises(UploadRejected) as exc_info:
            slot.upload(b"%PDF", filename="a.pdf", mime_type="application/pdf")
        assert exc_info.value.slot == "id_document.front"
        assert slot.state == SlotState.IDLE
        assert slot.error

    @pytest.mark.asyncio
    async def test_upload_while_streaming_releases_stream(self, slot):
        camera = FakeCamera()
        await slot.request(camera)
        slot.upload(png_bytes(), filename="p.png", mime_type="image/png")
        assert camera.open_streams == 0
        assert slot.state == SlotState.CAPTURED

    def test_camera_and_upload_artifacts_share_shape(self, slot, encoder):
        uploaded = slot.upload(jpeg_bytes(), filename="f.jpg", mime_type="image/jpeg")
        captured = encoder.encode_frame(Frame(width=1, height=1, pixels=bytes(3)), name="f")
        assert set(uploaded.reference()) == set(captured.reference())


class TestMediaCaptureAdapter:
    """Exclusive camera ownership across slots."""

    @pytest.fixture
    def adapter(self, store):
        return MediaCaptureAdapter.for_schema(store.get("insurance_card_copy"), camera=FakeCamera())

    def test_one_slot_per_file_field(self, adapter):
        assert set(adapter.slots) == {"card.front", "card.back"}

    def test_unknown_slot(self, adapter):
        with pytest.raises(SchemaViolation):
            adapter.slot("card.side")

    @pytest.mark.asyncio
    async def test_opening_second_slot_releases_first(self, adapter):
        await adapter.open_camera("card.front")
        assert adapter.active_slot == "card.front"
        await adapter.open_camera("card.back")
        assert adapter.active_slot == "card.back"
        assert adapter.slot("card.front").state == SlotState.IDLE
        camera = adapter._camera
        assert camera.open_streams == 1, "At most one slot holds a stream"

    @pytest.mark.asyncio
    async def test_release_streams_keeps_artifacts(self, adapter):
        await adapter.open_camera("card.front")
        adapter.capture("card.front")
        await adapter.open_camera("card.back")
        adapter.release_streams()
        assert adapter.slot("card.front").state == SlotState.CAPTURED
        assert adapter.slot("card.back").state == SlotState.IDLE
        assert adapter._camera.open_streams == 0

    @pytest.mark.asyncio
    async def test_no_camera_raises_device_unavailable(self, store):
        adapter = MediaCaptureAdapter.for_schema(store.get("insurance_card_copy"))
        with pytest.raises(DeviceUnavailable):
            await adapter.open_camera("card.front")
