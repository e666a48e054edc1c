"""Schema and media builders shared by the test modules."""

import io

from PIL import Image

from intake_workflow.models.form import FormSchema


def three_step_schema(kind: str = "document") -> FormSchema:
    """Three steps; step 2 has a required field shown only when step 1's flag is true.

    Step 3 collects a photo in a capture slot.
    """
    return FormSchema(
        key="three_step",
        display_name="Three Step",
        kind=kind,
        steps=[
            {
                "id": "first",
                "title": "First",
                "fields": [
                    {"key": "first.name", "label": "Name", "kind": "text", "required": True},
                    {"key": "first.has_pets", "label": "Has pets", "kind": "boolean",
                     "required": True},
                ],
            },
            {
                "id": "second",
                "title": "Second",
                "fields": [
                    {
                        "key": "second.pet_count",
                        "label": "Pet count",
                        "kind": "number",
                        "required": True,
                        "min_value": 1,
                        "max_value": 20,
                        "visible_if": [{"path": "first.has_pets", "op": "eq", "value": True}],
                    },
                    {"key": "second.notes", "label": "Notes", "kind": "text"},
                ],
            },
            {
                "id": "third",
                "title": "Third",
                "fields": [
                    {"key": "third.photo", "label": "Photo", "kind": "file", "required": True,
                     "accept": ["image/png", "image/jpeg"]},
                ],
            },
        ],
    )


def phq_schema() -> FormSchema:
    """An encounter form with a PHQ-2 section and a patient picker."""
    return FormSchema(
        key="phq_check",
        display_name="PHQ Check",
        kind="encounter",
        patient_field="visit.patient_id",
        steps=[
            {
                "id": "visit",
                "title": "Visit",
                "fields": [
                    {"key": "visit.patient_id", "label": "Patient", "kind": "enum",
                     "required": True, "options_source": "patients"},
                ],
            },
            {
                "id": "mood",
                "title": "Mood",
                "fields": [
                    {"key": "mood.interest", "label": "Interest", "kind": "enum",
                     "options": [{"id": k, "label": k} for k in
                                 ("not_at_all", "several_days", "more_than_half",
                                  "nearly_everyday", "everyday")]},
                    {"key": "mood.down", "label": "Down", "kind": "enum",
                     "options": [{"id": k, "label": k} for k in
                                 ("not_at_all", "several_days", "more_than_half",
                                  "nearly_everyday")]},
                    {"key": "mood.phq2_score", "label": "Score", "kind": "number",
                     "computed": True},
                    {"key": "mood.phq2_band", "label": "Band", "kind": "text",
                     "computed": True},
                ],
            },
        ],
        scores=[
            {
                "scorer": "phq2",
                "inputs": {
                    "little_interest_pleasure": "mood.interest",
                    "feeling_down_depressed": "mood.down",
                },
                "total": "mood.phq2_score",
                "band": "mood.phq2_band",
            }
        ],
    )


def png_bytes(width: int = 8, height: int = 8, color=(200, 40, 40)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def jpeg_bytes(width: int = 8, height: int = 8) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (10, 120, 200)).save(buf, format="JPEG")
    return buf.getvalue()
