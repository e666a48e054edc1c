"""ConditionalEvaluator — resolves field visibility against the form state.

Every field may carry ``visible_if`` predicates.  The validation engine and
the UI shell call :meth:`is_visible` on each pass, so visibility always
reflects the latest answers (e.g. ``relationship_other`` appears only once
``relationship == "other"``; insurance card slots only when the patient has
insurance).

A predicate whose referenced path is unset evaluates to False, except for
``empty`` which is the explicit "not answered yet" check.
"""

from __future__ import annotations

import logging
import operator
import re
from typing import Any, Callable

from intake_workflow.models.field import FieldSchema, Predicate
from intake_workflow.state import get_path

logger = logging.getLogger(__name__)

_NUMERIC_OPS: dict[str, Callable[[float, float], bool]] = {
    "lt": operator.lt,
    "le": operator.le,
    "gt": operator.gt,
    "ge": operator.ge,
}


def is_empty(value: Any) -> bool:
    """True for None, blank strings and empty collections.  ``False`` is a value."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


class ConditionalEvaluator:
    """Evaluates ``visible_if`` predicates against a nested form state."""

    def is_visible(self, field: FieldSchema, state: dict[str, Any]) -> bool:
        """All predicates AND-ed; a field without predicates is always visible."""
        return all(self.eval_predicate(pred, state) for pred in field.visible_if)

    def eval_predicate(self, pred: Predicate, state: dict[str, Any]) -> bool:
        answer = get_path(state, pred.path)

        if pred.op == "empty":
            return is_empty(answer)
        if pred.op == "truthy":
            return not is_empty(answer) and answer is not False
        if answer is None:
            return False

        return self._compare(pred.op, answer, pred.value)

    @staticmethod
    def _compare(op: str, answer: Any, value: Any) -> bool:
        """Apply an operator to an answer and an expected value.

        Numeric operators coerce both sides to float because answers typed
        into inputs arrive as strings.
        """
        if op == "eq":
            return answer == value

        if op == "ne":
            return answer != value

        if op in _NUMERIC_OPS or op == "between":
            try:
                ans_num = float(answer)
            except (TypeError, ValueError):
                return False
            if op == "between":
                lo, hi = float(value[0]), float(value[1])
                return lo <= ans_num <= hi
            return _NUMERIC_OPS[op](ans_num, float(value))

        if op == "contains":
            if isinstance(answer, list):
                return value in answer
            return str(value) in str(answer)

        if op == "not_contains":
            if isinstance(answer, list):
                return value not in answer
            return str(value) not in str(answer)

        if op == "contains_any":
            if isinstance(answer, list):
                return any(v in answer for v in value)
            return any(str(v) in str(answer) for v in value)

        if op == "contains_all":
            if isinstance(answer, list):
                return all(v in answer for v in value)
            return all(str(v) in str(answer) for v in value)

        if op == "matches":
            return bool(re.search(str(value), str(answer)))

        logger.warning("Unknown predicate operator: %s", op)
        return False
