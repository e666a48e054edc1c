"""FormSchemaStore tests — loads the shipped forms/ and cross-checks them."""

import pytest
import yaml

from helpers.loader import load_form_yaml
from intake_workflow.models.form import FormSchema
from intake_workflow.schemas import FormSchemaStore, check_schema


REGISTRY_ORDER = [
    "consent_for_treatment",
    "hipaa_authorization",
    "financial_agreement",
    "emergency_contact_form",
    "photo_id_verification",
    "insurance_card_copy",
    "hhn_enrollment",
    "patient_handbook_receipt",
]


class TestShippedForms:
    def test_every_required_form_has_a_schema(self, store):
        missing = set(store.required_forms) - set(store.forms)
        assert not missing, f"Required forms without a schema: {missing}"

    def test_required_form_order_and_names(self, store):
        assert list(store.required_forms) == REGISTRY_ORDER
        assert store.display_name("hhn_enrollment") == "HHN Enrollment"

    def test_encounter_form_shape(self, store):
        schema = store.get("chw_encounter")
        assert schema.kind == "encounter"
        assert schema.patient_field == "patient_info.patient_id"
        assert schema.step_ids[0] == "patient_info"
        assert schema.step_ids[-1] == "education_referrals"
        computed = {f.key for f in schema.fields if f.computed}
        assert computed == {"mental_health.phq2_score", "mental_health.phq2_band"}

    def test_document_forms_are_documents(self, store):
        for key in store.required_forms:
            assert store.get(key).kind == "document", f"{key} should route via submit_form"

    def test_list_forms_summary(self, store):
        summary = {f["key"]: f for f in store.list_forms()}
        assert summary["chw_encounter"]["steps"] == len(store.get("chw_encounter").steps)

    def test_unknown_form(self, store):
        with pytest.raises(KeyError):
            store.get("nonexistent")


class TestCheckSchema:
    """Cross-field checks on tampered copies of shipped forms."""

    def _schema(self, raw):
        return FormSchema(**raw)

    def test_predicate_on_undeclared_path(self):
        raw = load_form_yaml("emergency_contact_form")
        raw["steps"][0]["fields"][3]["visible_if"][0]["path"] = "contact.relation"
        with pytest.raises(ValueError, match="undeclared path"):
            check_schema(self._schema(raw))

    def test_duplicate_field_key(self):
        raw = load_form_yaml("emergency_contact_form")
        fields = raw["steps"][0]["fields"]
        fields.append(dict(fields[0]))
        with pytest.raises(ValueError, match="duplicate field key"):
            check_schema(self._schema(raw))

    def test_score_output_must_be_computed(self):
        raw = load_form_yaml("chw_encounter")
        raw["scores"][0]["total"] = "demographics.age"
        with pytest.raises(ValueError, match="computed"):
            check_schema(self._schema(raw))

    def test_bad_pattern(self):
        raw = load_form_yaml("emergency_contact_form")
        raw["steps"][0]["fields"][1]["pattern"] = "[0-9"
        with pytest.raises(ValueError, match="bad pattern"):
            check_schema(self._schema(raw))


class TestStoreLoading:
    def test_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            FormSchemaStore(forms_dir=tmp_path / "nope").load()

    def test_without_registry_file_documents_are_required(self, tmp_path):
        for key in ("emergency_contact_form", "chw_encounter"):
            raw = load_form_yaml(key)
            (tmp_path / f"{key}.yaml").write_text(yaml.safe_dump(raw))
        s = FormSchemaStore(forms_dir=tmp_path)
        s.load()
        assert set(s.forms) == {"emergency_contact_form", "chw_encounter"}
        assert s.required_forms == {"emergency_contact_form": "Emergency Contact Form"}

    def test_duplicate_form_key_across_files(self, tmp_path):
        raw = load_form_yaml("emergency_contact_form")
        (tmp_path / "a.yaml").write_text(yaml.safe_dump(raw))
        (tmp_path / "b.yaml").write_text(yaml.safe_dump(raw))
        with pytest.raises(ValueError, match="Duplicate form key"):
            FormSchemaStore(forms_dir=tmp_path).load()
