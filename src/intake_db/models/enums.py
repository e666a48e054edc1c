"""Database-level enumerations."""

import enum


class EncounterStatus(str, enum.Enum):
    """Lifecycle of a CHW encounter row.

    Transitions:
        in_progress -> completed  (all section data and referrals written)
    """

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ReferralStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    COMPLETED = "completed"
    DECLINED = "declined"


class NoteStatus(str, enum.Enum):
    DRAFT = "draft"
    FINAL = "final"


class AssessmentStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
