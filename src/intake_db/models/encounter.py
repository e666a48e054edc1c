"""CHW encounter ORM models.

One ``chw_encounters`` row per screening.  Section answers (demographics,
housing, food security, ...) are kept as JSONB columns on the same row so a
single read replays the whole encounter.  Referrals get their own table
because they are worked as a queue.

``progress_notes`` receives the plain-text fallback record when the
encounter tables are unavailable.
"""

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    SmallInteger,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from intake_db.models.base import Base
from intake_db.models.enums import EncounterStatus, NoteStatus, ReferralStatus

# Sections stored as JSONB on chw_encounters, in screening order.
ENCOUNTER_SECTIONS = (
    "demographics",
    "housing",
    "food_security",
    "transportation",
    "utilities",
    "employment",
    "family_support",
    "mental_health",
    "healthcare_access",
    "health_education",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _jsonb_section():
    return mapped_column(JSONB, nullable=False, server_default=text("'{}'::jsonb"))


class ChwEncounter(Base):
    __tablename__ = "chw_encounters"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    patient_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("patients.id"), nullable=False, index=True,
    )
    chw_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("staff.id"), nullable=False,
    )

    # --- Visit ---
    encounter_date: Mapped[date] = mapped_column(Date, nullable=False)
    encounter_start_time: Mapped[str] = mapped_column(String(8), nullable=False)
    encounter_end_time: Mapped[str | None] = mapped_column(String(8), nullable=True)
    site_name: Mapped[str] = mapped_column(Text, nullable=False)
    is_first_visit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EncounterStatus.IN_PROGRESS,
    )

    # --- Screening sections ---
    demographics: Mapped[dict] = _jsonb_section()
    housing: Mapped[dict] = _jsonb_section()
    food_security: Mapped[dict] = _jsonb_section()
    transportation: Mapped[dict] = _jsonb_section()
    utilities: Mapped[dict] = _jsonb_section()
    employment: Mapped[dict] = _jsonb_section()
    family_support: Mapped[dict] = _jsonb_section()
    mental_health: Mapped[dict] = _jsonb_section()
    healthcare_access: Mapped[dict] = _jsonb_section()
    health_education: Mapped[dict] = _jsonb_section()

    # Dedicated column for dashboards and follow-up queues
    phq2_score: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    referrals: Mapped[list[str]] = mapped_column(
        ARRAY(Text), nullable=False, server_default=text("'{}'::text[]"),
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    __table_args__ = (
        CheckConstraint("phq2_score IS NULL OR phq2_score BETWEEN 0 AND 8", name="ck_phq2_range"),
        Index("ix_encounter_date", "encounter_date"),
        Index(
            "ix_encounter_phq2_positive",
            "phq2_score",
            postgresql_where=text("phq2_score >= 3"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ChwEncounter(id={self.id!s}, patient={self.patient_id!s}, "
            f"date={self.encounter_date}, status={self.status!r})>"
        )


class ChwReferral(Base):
    __tablename__ = "chw_referrals"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    encounter_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("chw_encounters.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    referral_type: Mapped[str] = mapped_column(Text, nullable=False)
    referral_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReferralStatus.PENDING,
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow,
    )


class ProgressNote(Base):
    __tablename__ = "progress_notes"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    patient_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("patients.id"), nullable=False, index=True,
    )
    provider_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    note_type: Mapped[str] = mapped_column(String(50), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=NoteStatus.FINAL)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow,
    )
