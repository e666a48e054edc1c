"""Required-form registry models.

Entries are owned by the persistence collaborator; the engine only reads
them and moves an entry from ``pending`` to ``completed`` after a
successful submission.
"""

import enum

from pydantic import BaseModel


class FormStatus(str, enum.Enum):
    """Completion status of a patient's required form.

    Transitions made by the engine:
        pending -> completed  (submission acknowledged)

    ``not_applicable`` is only ever set by the collaborator.
    """

    PENDING = "pending"
    COMPLETED = "completed"
    NOT_APPLICABLE = "not_applicable"


class RequiredFormRegistryEntry(BaseModel):
    """One required document for one patient."""

    form_key: str
    display_name: str
    status: FormStatus = FormStatus.PENDING
