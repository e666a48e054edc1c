"""Abstract interfaces for the engine's external collaborators.

These ABCs define the contract that external implementations must fulfil.
The SDK ships an HTTP gateway (:mod:`intake_workflow.gateways`); the
database-backed gateway lives in ``intake_db``.  Camera devices are
provided by whatever shell hosts the engine.

Typical integration flow::

    gateway: PersistenceGateway = DatabaseGateway(display_names=store.required_forms)
    workflow = IntakeWorkflow(schema, gateway=gateway, camera=my_camera)

    workflow.set_field("patient_id", "p-1")
    workflow.next()
    ...
    result = await workflow.submit()
"""

from abc import ABC, abstractmethod

from intake_workflow.models.media import Frame
from intake_workflow.models.registry import RequiredFormRegistryEntry
from intake_workflow.models.submission import GatewayResponse, JsonPayload, MultipartPayload


class PersistenceGateway(ABC):
    """Interface to the managed backend that stores records.

    Write methods either return a :class:`GatewayResponse` or raise one of
    :class:`~intake_workflow.errors.NetworkFailure`,
    :class:`~intake_workflow.errors.ValidationRejected`,
    :class:`~intake_workflow.errors.Unauthorized`.
    """

    @abstractmethod
    async def submit_encounter(self, payload: JsonPayload | MultipartPayload) -> GatewayResponse:
        """Store a CHW encounter record.

        ``fallback=True`` in the response means the record was stored in a
        degraded but compatible shape; it still counts as success.
        """
        ...

    @abstractmethod
    async def submit_form(
        self,
        form_key: str,
        patient_id: str,
        payload: JsonPayload | MultipartPayload,
    ) -> GatewayResponse:
        """Store a completed required-document form for ``patient_id``."""
        ...

    @abstractmethod
    async def list_required_forms(self, patient_id: str) -> list[RequiredFormRegistryEntry]:
        """Return the patient's required-forms registry."""
        ...

    @abstractmethod
    async def list_patients(self) -> list[dict]:
        """Return ``[{id, first_name, last_name}, ...]`` for selection fields."""
        ...

    @abstractmethod
    async def list_staff(self) -> list[dict]:
        """Return active staff for selection fields."""
        ...


class MediaStream(ABC):
    """An open camera stream.  Holding one keeps the device busy."""

    @abstractmethod
    def read_frame(self) -> Frame:
        """Grab the current frame as a raw pixel buffer."""
        ...

    @abstractmethod
    def release(self) -> None:
        """Stop every track and free the device.  Must be idempotent."""
        ...


class CameraDevice(ABC):
    """Source of camera streams."""

    @abstractmethod
    async def open_stream(self, facing_mode: str) -> MediaStream:
        """Acquire a stream.

        May suspend indefinitely while the user decides on a permission
        prompt.  Raises :class:`~intake_workflow.errors.PermissionDenied`
        or :class:`~intake_workflow.errors.DeviceUnavailable`.
        """
        ...
