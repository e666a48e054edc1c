"""Async CRUD repository for the intake tables.

All public methods accept an ``AsyncSession`` so the caller controls
transaction boundaries (the gateway composes several writes per submission
and wraps the encounter writes in a savepoint).

The repository does no business validation; that belongs in the SDK.
"""

import uuid
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from intake_db.models.documents import AssessmentAttachment, PatientAssessment, PatientRequiredForm
from intake_db.models.encounter import (
    ENCOUNTER_SECTIONS,
    ChwEncounter,
    ChwReferral,
    ProgressNote,
)
from intake_db.models.enums import EncounterStatus, NoteStatus, ReferralStatus
from intake_db.models.people import Patient, Staff


class IntakeRepository:
    """Async read/write operations on the intake tables."""

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def list_patients(self, db: AsyncSession, *, limit: int = 500) -> list[Patient]:
        stmt = select(Patient).order_by(Patient.last_name, Patient.first_name).limit(limit)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def list_staff(self, db: AsyncSession, *, active_only: bool = True) -> list[Staff]:
        stmt = select(Staff).order_by(Staff.last_name, Staff.first_name)
        if active_only:
            stmt = stmt.where(Staff.is_active.is_(True))
        result = await db.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Encounters
    # ------------------------------------------------------------------

    async def create_encounter(
        self,
        db: AsyncSession,
        *,
        patient_id: uuid.UUID,
        chw_id: uuid.UUID,
        encounter_date: date,
        encounter_start_time: str,
        site_name: str,
        is_first_visit: bool,
        sections: dict[str, dict],
        referrals: list[str],
    ) -> ChwEncounter:
        """Insert an ``in_progress`` encounter row with all its sections."""
        mental_health = sections.get("mental_health") or {}
        encounter = ChwEncounter(
            patient_id=patient_id,
            chw_id=chw_id,
            encounter_date=encounter_date,
            encounter_start_time=encounter_start_time,
            site_name=site_name,
            is_first_visit=is_first_visit,
            status=EncounterStatus.IN_PROGRESS,
            phq2_score=mental_health.get("phq2_score"),
            referrals=list(referrals),
            **{name: sections.get(name) or {} for name in ENCOUNTER_SECTIONS},
        )
        db.add(encounter)
        await db.flush()
        return encounter

    async def add_referrals(
        self, db: AsyncSession, encounter: ChwEncounter, referrals: list[str],
    ) -> list[ChwReferral]:
        rows = [
            ChwReferral(
                encounter_id=encounter.id,
                referral_type=ref,
                referral_status=ReferralStatus.PENDING,
            )
            for ref in referrals
        ]
        db.add_all(rows)
        await db.flush()
        return rows

    async def complete_encounter(self, db: AsyncSession, encounter: ChwEncounter) -> ChwEncounter:
        encounter.status = EncounterStatus.COMPLETED
        encounter.encounter_end_time = datetime.now(timezone.utc).strftime("%H:%M:%S")
        await db.flush()
        return encounter

    async def create_progress_note(
        self,
        db: AsyncSession,
        *,
        patient_id: uuid.UUID,
        provider_id: uuid.UUID | None,
        note_type: str,
        content: str,
    ) -> ProgressNote:
        note = ProgressNote(
            patient_id=patient_id,
            provider_id=provider_id,
            note_type=note_type,
            content=content,
            status=NoteStatus.FINAL,
        )
        db.add(note)
        await db.flush()
        return note

    # ------------------------------------------------------------------
    # Required forms
    # ------------------------------------------------------------------

    async def list_required_forms(
        self, db: AsyncSession, patient_id: uuid.UUID,
    ) -> list[PatientRequiredForm]:
        stmt = select(PatientRequiredForm).where(PatientRequiredForm.patient_id == patient_id)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def mark_form_completed(
        self,
        db: AsyncSession,
        *,
        patient_id: uuid.UUID,
        form_key: str,
        display_name: str,
    ) -> PatientRequiredForm:
        """Set the registry row to completed, creating it if missing.

        Rows marked ``not_applicable`` are left untouched.
        """
        stmt = select(PatientRequiredForm).where(
            PatientRequiredForm.patient_id == patient_id,
            PatientRequiredForm.form_key == form_key,
        )
        row = (await db.execute(stmt)).scalar_one_or_none()
        if row is None:
            row = PatientRequiredForm(
                patient_id=patient_id, form_key=form_key, display_name=display_name,
            )
            db.add(row)
        if row.status != "not_applicable":
            row.status = "completed"
            row.completed_at = datetime.now(timezone.utc)
        await db.flush()
        return row

    # ------------------------------------------------------------------
    # Assessments
    # ------------------------------------------------------------------

    async def create_assessment(
        self,
        db: AsyncSession,
        *,
        patient_id: uuid.UUID,
        form_key: str,
        form_name: str,
        data: dict[str, Any],
    ) -> PatientAssessment:
        assessment = PatientAssessment(
            patient_id=patient_id,
            form_key=form_key,
            form_name=form_name,
            assessment_data=data,
            completed_at=datetime.now(timezone.utc),
        )
        db.add(assessment)
        await db.flush()
        return assessment

    async def add_attachment(
        self,
        db: AsyncSession,
        assessment: PatientAssessment,
        *,
        slot: str,
        filename: str,
        mime_type: str,
        size: int,
        sha256: str,
        source_kind: str,
        content: bytes,
    ) -> AssessmentAttachment:
        attachment = AssessmentAttachment(
            assessment_id=assessment.id,
            slot=slot,
            filename=filename,
            mime_type=mime_type,
            size=size,
            sha256=sha256,
            source_kind=source_kind,
            content=content,
        )
        db.add(attachment)
        await db.flush()
        return attachment
