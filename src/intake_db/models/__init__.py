"""ORM models for intake_db."""

from intake_db.models.base import Base
from intake_db.models.documents import AssessmentAttachment, PatientAssessment, PatientRequiredForm
from intake_db.models.encounter import ChwEncounter, ChwReferral, ProgressNote
from intake_db.models.enums import AssessmentStatus, EncounterStatus, NoteStatus, ReferralStatus
from intake_db.models.people import Patient, Staff

__all__ = [
    "Base",
    "Patient",
    "Staff",
    "ChwEncounter",
    "ChwReferral",
    "ProgressNote",
    "PatientRequiredForm",
    "PatientAssessment",
    "AssessmentAttachment",
    "AssessmentStatus",
    "EncounterStatus",
    "NoteStatus",
    "ReferralStatus",
]
