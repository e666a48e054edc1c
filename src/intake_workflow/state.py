"""FormStateStore — the single addressable store for all collected answers.

The form state is a nested ``dict`` organised by section::

    {
        "patient_id": "p-1",
        "demographics": {"age": 42, "city": "Detroit"},
        "housing": {"living_situation": "renting", "problems": ["mold"]},
    }

and every leaf is addressed by a dotted path (``housing.problems``).
Updates never mutate: :meth:`FormStateStore.set` returns a new state in
which only the dicts along the addressed path are copied, so every sibling
branch is the same object as before.  Reset and cancel are one operation
(:meth:`reset`).

The store is pure.  Callers re-run validation after ``set``.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator

from intake_workflow.errors import SchemaViolation
from intake_workflow.models.field import FieldKind, FieldSchema
from intake_workflow.models.form import FormSchema
from intake_workflow.models.media import MediaArtifact

logger = logging.getLogger(__name__)

FormState = dict[str, Any]


# ---------------------------------------------------------------------------
# Path helpers (shared with the evaluator)
# ---------------------------------------------------------------------------

def get_path(state: dict[str, Any], path: str) -> Any:
    """Return the value at dotted ``path`` or None if any segment is absent."""
    node: Any = state
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def set_path(node: dict[str, Any], parts: list[str], value: Any) -> dict[str, Any]:
    """Copy ``node`` with ``parts`` set to ``value``; untouched branches are shared."""
    head, rest = parts[0], parts[1:]
    updated = dict(node)
    if not rest:
        updated[head] = value
    else:
        child = node.get(head)
        updated[head] = set_path(child if isinstance(child, dict) else {}, rest, value)
    return updated


def iter_leaves(state: dict[str, Any], prefix: str = "") -> Iterator[tuple[str, Any]]:
    """Yield ``(dotted_path, value)`` for every leaf of a nested state."""
    for key, value in state.items():
        path = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict):
            yield from iter_leaves(value, path)
        else:
            yield path, value


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class FormStateStore:
    """Schema-aware accessor for one form's state.

    Args:
        schema: the active :class:`FormSchema`; only its declared field
            keys may be written.
    """

    def __init__(self, schema: FormSchema) -> None:
        self._schema = schema
        self._fields: dict[str, FieldSchema] = schema.field_map()

    @property
    def schema(self) -> FormSchema:
        return self._schema

    def field(self, path: str) -> FieldSchema:
        """Return the schema entry for ``path`` or raise ``SchemaViolation``."""
        fs = self._fields.get(path)
        if fs is None:
            raise SchemaViolation(path)
        return fs

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def empty(self) -> FormState:
        """Build a fresh state populated with schema defaults."""
        state: FormState = {}
        for fs in self._schema.fields:
            state = set_path(state, fs.key.split("."), fs.empty_value())
        return state

    def reset(self) -> FormState:
        """Discard everything and return the schema-default state."""
        return self.empty()

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def get(self, state: FormState, path: str) -> Any:
        """Return the value at ``path`` (None when unset)."""
        return get_path(state, path)

    def set(self, state: FormState, path: str, value: Any) -> FormState:
        """Return a new state with ``path`` set to ``value``.

        Raises:
            SchemaViolation: ``path`` is not declared by the schema, or the
                value has a shape no control for that field can produce.
        """
        fs = self.field(path)
        self._check_shape(fs, value)
        return set_path(state, path.split("."), value)

    def flatten(self, state: FormState) -> dict[str, Any]:
        """Map every declared path to its current value."""
        return {key: get_path(state, key) for key in self._fields}

    def artifacts(self, state: FormState) -> dict[str, MediaArtifact]:
        """Artifacts currently held by file fields, keyed by field path."""
        found: dict[str, MediaArtifact] = {}
        for fs in self._schema.file_fields():
            value = get_path(state, fs.key)
            if isinstance(value, MediaArtifact):
                found[fs.key] = value
        return found

    def check_keys(self, state: FormState) -> None:
        """Raise ``SchemaViolation`` for the first undeclared leaf in ``state``."""
        for path, _ in iter_leaves(state):
            if path not in self._fields:
                raise SchemaViolation(path)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _check_shape(fs: FieldSchema, value: Any) -> None:
        if value is None:
            return
        if fs.kind == FieldKind.FILE and not isinstance(value, MediaArtifact):
            raise SchemaViolation(fs.key, f"{fs.key}: file fields only hold media artifacts")
        if fs.kind == FieldKind.MULTI_SELECT:
            if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
                raise SchemaViolation(fs.key, f"{fs.key}: multi_select expects a list of strings")
        if fs.kind == FieldKind.BOOLEAN and not isinstance(value, bool):
            raise SchemaViolation(fs.key, f"{fs.key}: boolean field expects true/false")
        if fs.kind not in (FieldKind.FILE, FieldKind.MULTI_SELECT) and isinstance(value, (dict, list)):
            raise SchemaViolation(fs.key, f"{fs.key}: {fs.kind.value} field expects a scalar")
