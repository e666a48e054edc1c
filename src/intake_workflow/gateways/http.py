"""HttpPersistenceGateway — talks to a hosted intake backend over HTTP.

Endpoints (relative to ``base_url``)::

    POST /chw-encounter                        encounter record
    POST /patient-portal/forms                 completed document form
    GET  /patient-portal/forms?patient_id=...  required-forms registry
    GET  /patients                             patient lookup list
    GET  /staff                                staff lookup list

Payloads without artifacts are sent as JSON.  Multipart payloads carry the
structured data as a JSON ``payload`` part plus one file part per slot,
named after the slot.

Status mapping:
    2xx              -> GatewayResponse
    401 / 403        -> Unauthorized
    400 / 409 / 422  -> ValidationRejected (with ``field_errors`` if given)
    5xx, transport   -> NetworkFailure
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from intake_workflow.errors import NetworkFailure, Unauthorized, ValidationRejected
from intake_workflow.interfaces import PersistenceGateway
from intake_workflow.models.registry import RequiredFormRegistryEntry
from intake_workflow.models.submission import GatewayResponse, JsonPayload, MultipartPayload

logger = logging.getLogger(__name__)

_REJECTED_STATUSES = {400, 409, 422}
_UNAUTHORIZED_STATUSES = {401, 403}


class HttpPersistenceGateway(PersistenceGateway):
    """``PersistenceGateway`` over httpx.

    Args:
        base_url: root URL of the backend API
        api_key: bearer token sent with every request (optional)
        timeout: per-request timeout in seconds
        client: pre-built ``httpx.AsyncClient`` (tests pass one with a
            ``MockTransport``); when given, ``base_url`` is ignored
    """

    def __init__(
        self,
        base_url: str = "",
        *,
        api_key: str | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers=headers,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpPersistenceGateway:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def submit_encounter(self, payload: JsonPayload | MultipartPayload) -> GatewayResponse:
        resp = await self._send("POST", "/chw-encounter", payload, extra={})
        body = _success_body(resp)
        return GatewayResponse(
            ok=bool(body.get("success", True)),
            fallback=bool(body.get("fallback", False)),
            record_id=_str_or_none(body.get("id") or body.get("noteId")),
            error=body.get("error"),
        )

    async def submit_form(
        self,
        form_key: str,
        patient_id: str,
        payload: JsonPayload | MultipartPayload,
    ) -> GatewayResponse:
        extra = {"patient_id": patient_id, "form_key": form_key}
        resp = await self._send("POST", "/patient-portal/forms", payload, extra=extra)
        body = _success_body(resp)
        return GatewayResponse(
            ok=bool(body.get("success", True)),
            record_id=_str_or_none(body.get("assessment_id") or body.get("id")),
            error=body.get("error"),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_required_forms(self, patient_id: str) -> list[RequiredFormRegistryEntry]:
        resp = await self._request("GET", "/patient-portal/forms", params={"patient_id": patient_id})
        body = resp.json()
        items = body.get("forms", []) if isinstance(body, dict) else body
        return [RequiredFormRegistryEntry(**item) for item in items]

    async def list_patients(self) -> list[dict]:
        resp = await self._request("GET", "/patients")
        body = resp.json()
        return body.get("patients", []) if isinstance(body, dict) else body

    async def list_staff(self) -> list[dict]:
        resp = await self._request("GET", "/staff")
        body = resp.json()
        return body.get("staff", []) if isinstance(body, dict) else body

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _send(
        self,
        method: str,
        path: str,
        payload: JsonPayload | MultipartPayload,
        *,
        extra: dict[str, str],
    ) -> httpx.Response:
        body = {**extra, "form_key": payload.form_key, "form_data": payload.data}
        if isinstance(payload, JsonPayload):
            return await self._request(method, path, json=body)

        files = {
            slot: (artifact.filename, artifact.binary_payload, artifact.mime_type)
            for slot, artifact in payload.parts.items()
        }
        return await self._request(
            method, path, data={"payload": json.dumps(body)}, files=files,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise NetworkFailure(f"Could not reach the server: {exc}") from exc

        if resp.is_success:
            return resp

        detail = _error_detail(resp)
        if resp.status_code in _UNAUTHORIZED_STATUSES:
            raise Unauthorized(detail.get("error") or "Access denied")
        if resp.status_code in _REJECTED_STATUSES:
            raise ValidationRejected(
                detail.get("error") or "Submission rejected",
                field_errors=detail.get("field_errors"),
            )
        logger.warning("%s %s returned %d", method, path, resp.status_code)
        raise NetworkFailure(f"Server error ({resp.status_code}); please try again")


def _success_body(resp: httpx.Response) -> dict:
    """Body of a 2xx write; empty when the backend sent no JSON object."""
    if not resp.content:
        return {}
    try:
        body = resp.json()
    except ValueError:
        logger.info("Non-JSON success body from %s", resp.request.url.path)
        return {}
    return body if isinstance(body, dict) else {}


def _error_detail(resp: httpx.Response) -> dict:
    """Best-effort ``{error, field_errors}`` from an error response body."""
    try:
        body = resp.json()
    except ValueError:
        return {"error": resp.text or None}
    if not isinstance(body, dict):
        return {}
    error = body.get("error") or body.get("detail")
    field_errors = body.get("field_errors") or body.get("errors")
    return {
        "error": error if error is None or isinstance(error, str) else str(error),
        "field_errors": field_errors if isinstance(field_errors, dict) else None,
    }


def _str_or_none(value: Any) -> str | None:
    return None if value is None else str(value)
