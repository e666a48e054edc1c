"""ValidationEngine — decides whether a step (or the whole form) is complete.

A step is valid iff every field that is currently visible and required
holds a non-empty value, and every visible, populated field is
syntactically valid for its kind:

    number        parses as a float and respects min_value / max_value
    date          ISO-8601 calendar date (YYYY-MM-DD)
    enum          one of the static option ids (dynamic lookups are opaque)
    multi_select  every id among the static options
    text          matches ``pattern`` when one is declared
    boolean       ``must_be_true`` acknowledgements only count when True

Visibility is re-evaluated on every call.  Hidden fields are "not
applicable for this branch" and never block validity.  Computed fields are
written at submission and are never checked here.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import date
from typing import Any

from intake_workflow.evaluator import ConditionalEvaluator, is_empty
from intake_workflow.models.field import FieldKind, FieldSchema
from intake_workflow.models.form import FormSchema
from intake_workflow.models.validation import FieldIssue
from intake_workflow.state import get_path

logger = logging.getLogger(__name__)


def parse_number(value: Any) -> float | None:
    """Parse a numeric answer; returns None when it is not a finite number."""
    if isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(num) or math.isinf(num):
        return None
    return num


def parse_date(value: Any) -> date | None:
    """Parse an ISO-8601 date answer; returns None when unparseable."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


class ValidationEngine:
    """Schema-driven completeness checks for one form.

    Args:
        schema: the form whose steps are checked
        evaluator: visibility evaluator (a fresh one by default)
    """

    def __init__(self, schema: FormSchema, evaluator: ConditionalEvaluator | None = None) -> None:
        self._schema = schema
        self._evaluator = evaluator or ConditionalEvaluator()

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    def visible_fields(self, step_id: str, state: dict[str, Any]) -> list[FieldSchema]:
        """Fields of ``step_id`` whose ``visible_if`` holds for ``state``."""
        step = self._schema.get_step(step_id)
        return [
            f for f in step.fields
            if not f.computed and self._evaluator.is_visible(f, state)
        ]

    # ------------------------------------------------------------------
    # Step / form checks
    # ------------------------------------------------------------------

    def step_issues(self, step_id: str, state: dict[str, Any]) -> list[FieldIssue]:
        """Every reason ``step_id`` is not yet complete (empty list if valid)."""
        issues: list[FieldIssue] = []
        for fs in self.visible_fields(step_id, state):
            issue = self._check_field(step_id, fs, get_path(state, fs.key))
            if issue is not None:
                issues.append(issue)
        return issues

    def is_step_valid(self, step_id: str, state: dict[str, Any]) -> bool:
        return not self.step_issues(step_id, state)

    def form_issues(self, state: dict[str, Any]) -> dict[str, list[FieldIssue]]:
        """Issues per step, only for steps that have any."""
        result: dict[str, list[FieldIssue]] = {}
        for step_id in self._schema.step_ids:
            issues = self.step_issues(step_id, state)
            if issues:
                result[step_id] = issues
        return result

    def is_form_valid(self, state: dict[str, Any]) -> bool:
        return all(self.is_step_valid(step_id, state) for step_id in self._schema.step_ids)

    # ------------------------------------------------------------------
    # Field checks
    # ------------------------------------------------------------------

    def _check_field(self, step_id: str, fs: FieldSchema, value: Any) -> FieldIssue | None:
        def issue(reason: str, message: str) -> FieldIssue:
            return FieldIssue(key=fs.key, step_id=step_id, reason=reason, message=message)

        if fs.kind == FieldKind.BOOLEAN and fs.must_be_true:
            if value is True or not fs.required:
                return None
            return issue("not_acknowledged", f"{fs.label} must be acknowledged")

        if is_empty(value):
            if fs.required:
                return issue("missing", f"{fs.label} is required")
            return None

        if fs.kind == FieldKind.NUMBER:
            num = parse_number(value)
            if num is None:
                return issue("invalid_number", f"{fs.label} must be a number")
            if fs.min_value is not None and num < fs.min_value:
                return issue("out_of_range", f"{fs.label} must be at least {fs.min_value:g}")
            if fs.max_value is not None and num > fs.max_value:
                return issue("out_of_range", f"{fs.label} must be at most {fs.max_value:g}")

        elif fs.kind == FieldKind.DATE:
            if parse_date(value) is None:
                return issue("invalid_date", f"{fs.label} must be a date (YYYY-MM-DD)")

        elif fs.kind == FieldKind.ENUM:
            allowed = fs.option_ids
            if allowed is not None and value not in allowed:
                return issue("invalid_option", f"{fs.label}: {value!r} is not an option")

        elif fs.kind == FieldKind.MULTI_SELECT:
            allowed = fs.option_ids
            if allowed is not None:
                unknown = [v for v in value if v not in allowed]
                if unknown:
                    return issue("invalid_option", f"{fs.label}: unknown options {unknown}")

        elif fs.kind == FieldKind.TEXT and fs.pattern:
            if not re.fullmatch(fs.pattern, str(value).strip()):
                return issue("invalid_pattern", f"{fs.label} has an invalid format")

        return None
