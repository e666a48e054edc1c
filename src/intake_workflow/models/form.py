"""Form and step schema models.

A ``FormSchema`` is an ordered list of ``StepSchema`` entries plus the
scorers that run at submission.  Schemas are loaded once from YAML (see
:mod:`intake_workflow.schemas`) and never change afterwards.

``kind`` selects the persistence route: ``encounter`` forms are sent via
``submit_encounter``; ``document`` forms via ``submit_form``.  ``patient_field``
names the field that identifies the patient when the form collects it
itself (the CHW encounter picks a patient on its first step).
"""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict

from intake_workflow.models.field import FieldKind, FieldSchema


class StepSchema(BaseModel):
    """One wizard step: an id, a title, and the fields it collects."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: Optional[str] = None
    fields: List[FieldSchema]


class ScoreSpec(BaseModel):
    """Declares a scorer run at submission time.

    ``inputs`` maps the scorer's argument names to field paths; ``total``
    and ``band`` name the computed fields that receive the result.
    """

    model_config = ConfigDict(frozen=True)

    scorer: Literal["phq2"]
    inputs: Dict[str, str]
    total: str
    band: Optional[str] = None


class FormSchema(BaseModel):
    """A complete workflow definition."""

    model_config = ConfigDict(frozen=True)

    key: str
    display_name: str
    kind: Literal["encounter", "document"] = "document"
    description: Optional[str] = None
    steps: List[StepSchema]
    scores: List[ScoreSpec] = []
    patient_field: Optional[str] = None

    @property
    def step_ids(self) -> list[str]:
        return [s.id for s in self.steps]

    @property
    def fields(self) -> list[FieldSchema]:
        """All fields across all steps, in step order."""
        return [f for s in self.steps for f in s.fields]

    def field_map(self) -> dict[str, FieldSchema]:
        return {f.key: f for f in self.fields}

    def get_step(self, step_id: str) -> StepSchema:
        for step in self.steps:
            if step.id == step_id:
                return step
        raise KeyError(f"Unknown step '{step_id}' in form '{self.key}'")

    def file_fields(self) -> list[FieldSchema]:
        return [f for f in self.fields if f.kind == FieldKind.FILE]
