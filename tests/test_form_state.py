"""FormStateStore tests — dotted-path access, immutability, and shape checks."""

import pytest

from intake_workflow.errors import SchemaViolation
from intake_workflow.models.media import MediaArtifact, SourceKind
from intake_workflow.state import FormStateStore, get_path, iter_leaves, set_path


@pytest.fixture
def fstore(schema):
    return FormStateStore(schema)


class TestPathHelpers:
    """get_path / set_path / iter_leaves on plain nested dicts."""

    def test_get_missing_segment_returns_none(self):
        assert get_path({"a": {"b": 1}}, "a.c") is None
        assert get_path({"a": 1}, "a.b") is None, "Scalar in the middle of a path"

    def test_set_path_copies_only_the_addressed_branch(self):
        original = {"a": {"x": 1}, "b": {"y": 2}}
        updated = set_path(original, ["a", "x"], 5)
        assert updated["a"]["x"] == 5
        assert original["a"]["x"] == 1, "Original must not be mutated"
        assert updated["b"] is original["b"], "Sibling branch should be shared"

    def test_iter_leaves_yields_dotted_paths(self):
        leaves = dict(iter_leaves({"a": {"b": 1, "c": [1, 2]}, "d": None}))
        assert leaves == {"a.b": 1, "a.c": [1, 2], "d": None}


class TestFormStateStore:
    """Schema-aware get/set."""

    def test_empty_state_has_every_declared_path(self, fstore, schema):
        state = fstore.empty()
        assert set(fstore.flatten(state)) == {f.key for f in schema.fields}
        assert state["first"] == {"name": None, "has_pets": None}, (
            "Each section should hold its fields' empty values"
        )

    def test_set_then_get_roundtrip_and_locality(self, fstore):
        state = fstore.set(fstore.empty(), "first.name", "Ada")
        before = fstore.flatten(state)
        after_state = fstore.set(state, "second.notes", "hello")

        assert fstore.get(after_state, "second.notes") == "hello"
        after = fstore.flatten(after_state)
        changed = {k for k in before if before[k] != after[k]}
        assert changed == {"second.notes"}, f"Only the set path may change, got {changed}"
        assert fstore.get(state, "second.notes") is None, "Previous state must be untouched"

    def test_undeclared_path_raises_schema_violation(self, fstore):
        with pytest.raises(SchemaViolation) as exc_info:
            fstore.set(fstore.empty(), "first.nickname", "x")
        assert exc_info.value.path == "first.nickname"

    def test_section_path_is_not_a_field(self, fstore):
        with pytest.raises(SchemaViolation):
            fstore.set(fstore.empty(), "first", {"name": "x"})

    @pytest.mark.parametrize(
        "path, value",
        [
            ("first.has_pets", "yes"),
            ("first.name", {"nested": 1}),
            ("third.photo", b"raw bytes"),
        ],
    )
    def test_wrong_shape_is_rejected(self, fstore, path, value):
        with pytest.raises(SchemaViolation):
            fstore.set(fstore.empty(), path, value)

    def test_file_field_accepts_artifact(self, fstore):
        artifact = MediaArtifact(
            preview_data_uri="data:image/png;base64,AA==",
            binary_payload=b"\x00",
            mime_type="image/png",
            source_kind=SourceKind.UPLOAD,
            filename="p.png",
        )
        state = fstore.set(fstore.empty(), "third.photo", artifact)
        assert fstore.artifacts(state) == {"third.photo": artifact}

    def test_reset_returns_defaults(self, fstore):
        state = fstore.set(fstore.empty(), "first.name", "Ada")
        assert fstore.reset() == fstore.empty()
        assert fstore.get(state, "first.name") == "Ada"

    def test_check_keys_flags_unknown_leaf(self, fstore):
        with pytest.raises(SchemaViolation):
            fstore.check_keys({"first": {"name": "x", "extra": 1}})
