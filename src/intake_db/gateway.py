"""DatabaseGateway — ``PersistenceGateway`` backed by PostgreSQL.

Encounter submissions are written inside a savepoint.  When the structured
encounter tables are unavailable (not migrated yet, or a column is
missing), the savepoint is rolled back and the encounter is stored as a
plain-text progress note instead; the response then carries
``fallback=True``.

Document submissions create a ``patient_assessments`` row, one
``assessment_attachments`` row per capture slot, and flip the patient's
registry row to completed, all in one transaction.

Error mapping:
    OperationalError / InterfaceError / OSError -> NetworkFailure
    IntegrityError / DataError                  -> ValidationRejected
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Any

from sqlalchemy.exc import (
    DataError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    ProgrammingError,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from intake_db.engine import get_session_factory
from intake_db.repository import IntakeRepository
from intake_workflow.errors import NetworkFailure, ValidationRejected
from intake_workflow.interfaces import PersistenceGateway
from intake_workflow.models.registry import FormStatus, RequiredFormRegistryEntry
from intake_workflow.models.submission import GatewayResponse, JsonPayload, MultipartPayload
from intake_workflow.notes import NoteRenderer
from intake_workflow.notes.renderer import NOTE_TYPE

logger = logging.getLogger(__name__)


def _parse_uuid(value: Any, field: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise ValidationRejected(
            f"Invalid identifier for {field}", field_errors={field: "not a valid id"},
        ) from None


def _parse_date(value: Any, field: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationRejected(
            f"Invalid date for {field}", field_errors={field: "not a valid date"},
        ) from None


class DatabaseGateway(PersistenceGateway):
    """Stores submissions through :class:`IntakeRepository`.

    Args:
        session_factory: async session factory (the shared one by default)
        repo: repository instance
        renderer: renders the fallback progress note
        display_names: required-form display names keyed by form key, in
            registry order (``FormSchemaStore.required_forms``)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        repo: IntakeRepository | None = None,
        renderer: NoteRenderer | None = None,
        display_names: dict[str, str],
    ) -> None:
        self._session_factory = session_factory or get_session_factory()
        self._repo = repo or IntakeRepository()
        self._renderer = renderer or NoteRenderer()
        self._display_names = dict(display_names)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def submit_encounter(self, payload: JsonPayload | MultipartPayload) -> GatewayResponse:
        data = payload.data
        visit = data.get("patient_info") or {}
        patient_id = _parse_uuid(visit.get("patient_id"), "patient_info.patient_id")
        chw_id = _parse_uuid(visit.get("chw_id"), "patient_info.chw_id")
        encounter_date = _parse_date(visit.get("encounter_date"), "patient_info.encounter_date")

        referrals = list(data.get("referrals") or [])
        sections = {k: v for k, v in data.items() if isinstance(v, dict) and k != "patient_info"}

        try:
            async with self._session_factory() as db:
                try:
                    async with db.begin_nested():
                        encounter = await self._repo.create_encounter(
                            db,
                            patient_id=patient_id,
                            chw_id=chw_id,
                            encounter_date=encounter_date,
                            encounter_start_time=visit.get("encounter_start_time") or "",
                            site_name=visit.get("site_name") or "",
                            is_first_visit=bool(visit.get("is_first_visit")),
                            sections=sections,
                            referrals=referrals,
                        )
                        if referrals:
                            await self._repo.add_referrals(db, encounter, referrals)
                        await self._repo.complete_encounter(db, encounter)
                    record_id, fallback = str(encounter.id), False
                except ProgrammingError as exc:
                    logger.warning("Encounter tables unavailable, storing as progress note: %s", exc)
                    note = await self._repo.create_progress_note(
                        db,
                        patient_id=patient_id,
                        provider_id=chw_id,
                        note_type=NOTE_TYPE,
                        content=self._renderer.render_encounter(data),
                    )
                    record_id, fallback = str(note.id), True
                await db.commit()
        except (IntegrityError, DataError) as exc:
            raise ValidationRejected(_db_message(exc)) from exc
        except (OperationalError, InterfaceError, OSError) as exc:
            logger.warning("Database unavailable during encounter submit: %s", exc)
            raise NetworkFailure("Database unavailable; please try again") from exc

        logger.info("Stored encounter %s (fallback=%s)", record_id, fallback)
        return GatewayResponse(ok=True, fallback=fallback, record_id=record_id)

    async def submit_form(
        self,
        form_key: str,
        patient_id: str,
        payload: JsonPayload | MultipartPayload,
    ) -> GatewayResponse:
        patient = _parse_uuid(patient_id, "patient_id")
        display_name = self._display_names.get(form_key, form_key)
        parts = payload.parts if isinstance(payload, MultipartPayload) else {}

        try:
            async with self._session_factory() as db:
                assessment = await self._repo.create_assessment(
                    db,
                    patient_id=patient,
                    form_key=form_key,
                    form_name=display_name,
                    data=payload.data,
                )
                for slot, artifact in parts.items():
                    await self._repo.add_attachment(
                        db,
                        assessment,
                        slot=slot,
                        filename=artifact.filename,
                        mime_type=artifact.mime_type,
                        size=artifact.size,
                        sha256=artifact.sha256,
                        source_kind=artifact.source_kind.value,
                        content=artifact.binary_payload,
                    )
                await self._repo.mark_form_completed(
                    db, patient_id=patient, form_key=form_key, display_name=display_name,
                )
                await db.commit()
        except (IntegrityError, DataError) as exc:
            raise ValidationRejected(_db_message(exc)) from exc
        except (OperationalError, InterfaceError, OSError) as exc:
            logger.warning("Database unavailable during form submit: %s", exc)
            raise NetworkFailure("Database unavailable; please try again") from exc

        logger.info("Stored form %s for patient %s (%d attachments)", form_key, patient, len(parts))
        return GatewayResponse(ok=True, record_id=str(assessment.id))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_required_forms(self, patient_id: str) -> list[RequiredFormRegistryEntry]:
        """Registry rows for the patient; forms without a row are pending."""
        patient = _parse_uuid(patient_id, "patient_id")
        try:
            async with self._session_factory() as db:
                rows = await self._repo.list_required_forms(db, patient)
        except (OperationalError, InterfaceError, OSError) as exc:
            raise NetworkFailure("Database unavailable; please try again") from exc

        by_key = {row.form_key: row for row in rows}
        entries = []
        for key, name in self._display_names.items():
            row = by_key.get(key)
            entries.append(RequiredFormRegistryEntry(
                form_key=key,
                display_name=row.display_name if row else name,
                status=FormStatus(row.status) if row else FormStatus.PENDING,
            ))
        return entries

    async def list_patients(self) -> list[dict]:
        try:
            async with self._session_factory() as db:
                rows = await self._repo.list_patients(db)
        except (OperationalError, InterfaceError, OSError) as exc:
            raise NetworkFailure("Database unavailable; please try again") from exc
        return [
            {"id": str(p.id), "first_name": p.first_name, "last_name": p.last_name}
            for p in rows
        ]

    async def list_staff(self) -> list[dict]:
        try:
            async with self._session_factory() as db:
                rows = await self._repo.list_staff(db)
        except (OperationalError, InterfaceError, OSError) as exc:
            raise NetworkFailure("Database unavailable; please try again") from exc
        return [
            {"id": str(s.id), "first_name": s.first_name, "last_name": s.last_name, "role": s.role}
            for s in rows
        ]


def _db_message(exc: Exception) -> str:
    """Short, PHI-free description of a constraint failure."""
    orig = getattr(exc, "orig", None)
    name = type(orig).__name__ if orig is not None else type(exc).__name__
    return f"Record rejected by the database ({name})"
