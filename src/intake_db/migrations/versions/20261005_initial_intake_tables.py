"""Create the intake tables.

Lookup tables (patients, staff), CHW encounters with their referrals and
fallback progress notes, and the patient-portal document tables
(required-form registry, assessments, attachments).

Revision ID: 20261005_initial
Revises:
Create Date: 2026-10-05
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, TIMESTAMP, UUID

# revision identifiers, used by Alembic.
revision = "20261005_initial"
down_revision = None
branch_labels = None
depends_on = None

_SECTIONS = (
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


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("now()"),
    )


def upgrade() -> None:
    # --- Lookups ---
    op.create_table(
        "patients",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("first_name", sa.Text, nullable=False),
        sa.Column("last_name", sa.Text, nullable=False),
        sa.Column("date_of_birth", sa.Date, nullable=True),
        _created_at(),
    )
    op.create_table(
        "staff",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("first_name", sa.Text, nullable=False),
        sa.Column("last_name", sa.Text, nullable=False),
        sa.Column("role", sa.Text, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
    )

    # --- CHW encounters ---
    op.create_table(
        "chw_encounters",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("patient_id", UUID(as_uuid=True), sa.ForeignKey("patients.id"), nullable=False),
        sa.Column("chw_id", UUID(as_uuid=True), sa.ForeignKey("staff.id"), nullable=False),
        sa.Column("encounter_date", sa.Date, nullable=False),
        sa.Column("encounter_start_time", sa.String(8), nullable=False),
        sa.Column("encounter_end_time", sa.String(8), nullable=True),
        sa.Column("site_name", sa.Text, nullable=False),
        sa.Column("is_first_visit", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'in_progress'")),
        *[
            sa.Column(name, JSONB, nullable=False, server_default=sa.text("'{}'::jsonb"))
            for name in _SECTIONS
        ],
        sa.Column("phq2_score", sa.SmallInteger, nullable=True),
        sa.Column(
            "referrals", ARRAY(sa.Text), nullable=False, server_default=sa.text("'{}'::text[]"),
        ),
        _created_at(),
        sa.Column(
            "updated_at", TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("now()"),
        ),
        sa.CheckConstraint(
            "phq2_score IS NULL OR phq2_score BETWEEN 0 AND 8", name="ck_phq2_range",
        ),
    )
    op.create_index("ix_chw_encounters_patient_id", "chw_encounters", ["patient_id"])
    op.create_index("ix_encounter_date", "chw_encounters", ["encounter_date"])
    op.create_index(
        "ix_encounter_phq2_positive",
        "chw_encounters",
        ["phq2_score"],
        postgresql_where=sa.text("phq2_score >= 3"),
    )

    op.create_table(
        "chw_referrals",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "encounter_id",
            UUID(as_uuid=True),
            sa.ForeignKey("chw_encounters.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("referral_type", sa.Text, nullable=False),
        sa.Column("referral_status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        _created_at(),
    )
    op.create_index("ix_chw_referrals_encounter_id", "chw_referrals", ["encounter_id"])

    op.create_table(
        "progress_notes",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("patient_id", UUID(as_uuid=True), sa.ForeignKey("patients.id"), nullable=False),
        sa.Column("provider_id", UUID(as_uuid=True), nullable=True),
        sa.Column("note_type", sa.String(50), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'final'")),
        _created_at(),
    )
    op.create_index("ix_progress_notes_patient_id", "progress_notes", ["patient_id"])

    # --- Patient-portal documents ---
    op.create_table(
        "patient_required_forms",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("patient_id", UUID(as_uuid=True), sa.ForeignKey("patients.id"), nullable=False),
        sa.Column("form_key", sa.String(64), nullable=False),
        sa.Column("display_name", sa.Text, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("completed_at", TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "updated_at", TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("now()"),
        ),
        sa.UniqueConstraint("patient_id", "form_key", name="uq_patient_form"),
    )
    op.create_index("ix_patient_required_forms_patient_id", "patient_required_forms", ["patient_id"])

    op.create_table(
        "patient_assessments",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("patient_id", UUID(as_uuid=True), sa.ForeignKey("patients.id"), nullable=False),
        sa.Column("form_key", sa.String(64), nullable=False),
        sa.Column("form_name", sa.Text, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'completed'")),
        sa.Column("assessment_data", JSONB, nullable=False),
        sa.Column("completed_at", TIMESTAMP(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_patient_assessments_patient_id", "patient_assessments", ["patient_id"])

    op.create_table(
        "assessment_attachments",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "assessment_id",
            UUID(as_uuid=True),
            sa.ForeignKey("patient_assessments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("slot", sa.Text, nullable=False),
        sa.Column("filename", sa.Text, nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("size", sa.BigInteger, nullable=False),
        sa.Column("sha256", sa.String(64), nullable=False),
        sa.Column("source_kind", sa.String(10), nullable=False),
        sa.Column("content", sa.LargeBinary, nullable=False),
        _created_at(),
    )
    op.create_index(
        "ix_assessment_attachments_assessment_id", "assessment_attachments", ["assessment_id"],
    )


def downgrade() -> None:
    op.drop_table("assessment_attachments")
    op.drop_table("patient_assessments")
    op.drop_table("patient_required_forms")
    op.drop_table("progress_notes")
    op.drop_table("chw_referrals")
    op.drop_table("chw_encounters")
    op.drop_table("staff")
    op.drop_table("patients")
