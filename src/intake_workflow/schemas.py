"""FormSchemaStore — loads all YAML form definitions from ``forms/`` into typed models.

This is the single source of truth for form structure at runtime.  The
store is loaded once at startup and provides lookup by form key.

Usage::

    store = FormSchemaStore()       # defaults to forms/ relative to repo root
    store.load()                    # parse and cross-check all YAML files

    schema = store.get("chw_encounter")
    names = store.required_forms    # {form_key: display_name}
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Optional

import yaml

from intake_workflow.models.form import FormSchema

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Utility helpers
# ---------------------------------------------------------------------------

def find_repo_root(start: Optional[Path] = None) -> Path:
    """Walk upwards from *start* to find the repo root (dir with pyproject.toml or .git).

    Falls back to cwd if no marker is found.
    """
    p = (start or Path(__file__).resolve()).parent
    for parent in [p, *p.parents]:
        if (parent / "pyproject.toml").exists() or (parent / ".git").exists():
            return parent
    return Path.cwd()


def load_yaml(path: Path | str) -> Any:
    """Load a single YAML file and return the parsed contents."""
    if isinstance(path, str):
        path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing YAML file: {path}")
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def check_schema(schema: FormSchema) -> None:
    """Cross-field checks that a single pydantic model cannot express.

    Raises:
        ValueError: duplicate step ids or field keys, a key that is both a
            leaf and a section, a predicate on an undeclared path, a bad
            regex, or a score path that is undeclared or not ``computed``.
    """
    step_ids = schema.step_ids
    if len(set(step_ids)) != len(step_ids):
        raise ValueError(f"{schema.key}: duplicate step ids")

    fields: dict[str, Any] = {}
    for f in schema.fields:
        if f.key in fields:
            raise ValueError(f"{schema.key}: duplicate field key '{f.key}'")
        fields[f.key] = f

    for key in fields:
        if any(other.startswith(key + ".") for other in fields):
            raise ValueError(f"{schema.key}: '{key}' is both a field and a section")

    for f in fields.values():
        for pred in f.visible_if:
            if pred.path not in fields:
                raise ValueError(
                    f"{schema.key}: field '{f.key}' has a predicate on undeclared path '{pred.path}'"
                )
            if pred.path == f.key:
                raise ValueError(f"{schema.key}: field '{f.key}' depends on itself")
        if f.pattern is not None:
            try:
                re.compile(f.pattern)
            except re.error as exc:
                raise ValueError(f"{schema.key}: bad pattern on '{f.key}': {exc}") from exc

    if schema.patient_field is not None and schema.patient_field not in fields:
        raise ValueError(f"{schema.key}: patient_field '{schema.patient_field}' is not declared")

    for spec in schema.scores:
        for path in spec.inputs.values():
            if path not in fields:
                raise ValueError(f"{schema.key}: score input '{path}' is not declared")
        for path in filter(None, (spec.total, spec.band)):
            target = fields.get(path)
            if target is None or not target.computed:
                raise ValueError(f"{schema.key}: score output '{path}' must be a computed field")


# ---------------------------------------------------------------------------
# FormSchemaStore
# ---------------------------------------------------------------------------

class FormSchemaStore:
    """Loads every ``forms/*.yaml`` and provides typed lookup.

    Attributes populated after :meth:`load`:

        forms           — dict[form_key, FormSchema]
        required_forms  — dict[form_key, display_name] (portal registry order)
    """

    def __init__(self, forms_dir: str | Path | None = None) -> None:
        if forms_dir is None:
            forms_dir = find_repo_root() / "forms"
        self._base = Path(forms_dir)

        # Populated by load()
        self.forms: dict[str, FormSchema] = {}
        self.required_forms: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Parse all YAML files under the forms directory.

        Call this once at startup.  Raises ``FileNotFoundError`` if the
        directory is missing and ``ValueError`` on any malformed form.
        """
        if not self._base.is_dir():
            raise FileNotFoundError(f"Missing forms directory: {self._base}")

        for path in sorted(self._base.glob("*.yaml")):
            if path.name == "required_forms.yaml":
                continue
            raw = load_yaml(path)
            schema = FormSchema(**raw)
            check_schema(schema)
            if schema.key in self.forms:
                raise ValueError(f"Duplicate form key '{schema.key}' in {path.name}")
            self.forms[schema.key] = schema

        self._load_required_forms()
        logger.info(
            "FormSchemaStore loaded: %d forms, %d required documents",
            len(self.forms),
            len(self.required_forms),
        )

    def _load_required_forms(self) -> None:
        """Load ``required_forms.yaml``.

        Without that file every loaded document form is required, in load
        order, under its own display name.
        """
        path = self._base / "required_forms.yaml"
        if path.exists():
            entries = load_yaml(path)
        else:
            entries = [
                {"form_key": s.key, "display_name": s.display_name}
                for s in self.forms.values() if s.kind == "document"
            ]
        for raw in entries:
            key = raw["form_key"]
            if key not in self.forms:
                logger.warning("Required form '%s' has no schema; it cannot be filled in", key)
            self.required_forms[key] = raw.get("display_name") or key

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    def get(self, form_key: str) -> FormSchema:
        """Look up a form by key.

        Raises:
            KeyError: if no such form was loaded.
        """
        try:
            return self.forms[form_key]
        except KeyError:
            raise KeyError(f"Unknown form '{form_key}'") from None

    def list_forms(self) -> list[dict]:
        """Summaries suitable for API responses: {key, display_name, kind, steps}."""
        return [
            {
                "key": s.key,
                "display_name": s.display_name,
                "kind": s.kind,
                "steps": len(s.steps),
            }
            for s in self.forms.values()
        ]

    def display_name(self, form_key: str) -> str:
        if form_key in self.required_forms:
            return self.required_forms[form_key]
        return self.get(form_key).display_name
