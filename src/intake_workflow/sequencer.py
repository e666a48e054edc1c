"""StepSequencer — the finite state machine over a form's ordered steps.

Navigation rules:

    next()        only when the current step validates; no-op (returns
                  False) at the last step
    prev()        always allowed above index 0; keeps every entered answer
    jump_to(i)    to any earlier step or the current one, or forward when
                  every step before ``i`` is valid and every step skipped
                  over was validated before; anything else raises
                  SequenceViolation and leaves the index unchanged

Completion is derived, never set directly.  A step is complete when it has
been validated on a forward transition (or at submission) *and* it is still
valid against the current state, so editing an earlier step into an
invalid shape locks the steps after it again.
"""

from __future__ import annotations

import logging
from typing import Callable

from intake_workflow.errors import SequenceViolation, ValidationIncomplete
from intake_workflow.models.form import FormSchema
from intake_workflow.models.validation import FieldIssue
from intake_workflow.models.views import StepStatus

logger = logging.getLogger(__name__)

# Returns the issues blocking a step; empty list means valid.
IssueProvider = Callable[[str], list[FieldIssue]]


class StepSequencer:
    """Tracks the current step index and derived completion for one workflow.

    Args:
        schema: the form whose steps are sequenced
        issues_for: callable returning the current issues of a step id
            (bound to the live form state by the caller)
    """

    def __init__(self, schema: FormSchema, issues_for: IssueProvider) -> None:
        if not schema.steps:
            raise ValueError(f"Form '{schema.key}' has no steps")
        self._schema = schema
        self._order: list[str] = schema.step_ids
        self._issues_for = issues_for
        self._current = 0
        # Steps that passed validation on a forward transition
        self._validated: set[str] = set()

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def order(self) -> list[str]:
        return list(self._order)

    @property
    def current_index(self) -> int:
        return self._current

    @property
    def current_step_id(self) -> str:
        return self._order[self._current]

    @property
    def is_last(self) -> bool:
        return self._current == len(self._order) - 1

    def is_complete(self, step_id: str) -> bool:
        return step_id in self._validated and not self._issues_for(step_id)

    @property
    def completed(self) -> frozenset[str]:
        """Derived set of complete steps."""
        return frozenset(s for s in self._order if self.is_complete(s))

    def can_go_next(self) -> bool:
        return not self.is_last and not self._issues_for(self.current_step_id)

    def can_go_back(self) -> bool:
        return self._current > 0

    def can_jump_to(self, index: int) -> bool:
        if index < 0 or index >= len(self._order):
            return False
        if index <= self._current:
            return True
        # Every step before the target must be valid now; steps skipped over
        # (between current and target) must also have been validated before.
        skipped = self._order[self._current + 1:index]
        if any(s not in self._validated for s in skipped):
            return False
        return not any(self._issues_for(s) for s in self._order[:index])

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def next(self) -> bool:
        """Advance one step.

        Returns:
            True if the index moved, False at the last step.

        Raises:
            ValidationIncomplete: the current step has blocking issues.
                The index and the validated set are unchanged.
        """
        step_id = self.current_step_id
        issues = self._issues_for(step_id)
        if issues:
            logger.info(
                "next() blocked at step %s (%d issues) in form %s",
                step_id, len(issues), self._schema.key,
            )
            raise ValidationIncomplete(issues)

        self._validated.add(step_id)
        if self.is_last:
            return False
        self._current += 1
        return True

    def prev(self) -> bool:
        """Go back one step; returns False at the first step."""
        if self._current == 0:
            return False
        self._current -= 1
        return True

    def jump_to(self, index: int) -> int:
        """Jump to ``index`` (progress-stepper click).

        Raises:
            SequenceViolation: out of range, or a step before ``index`` is
                not complete.
        """
        if not self.can_jump_to(index):
            logger.info(
                "jump_to(%d) rejected at index %d in form %s",
                index, self._current, self._schema.key,
            )
            raise SequenceViolation(
                f"Cannot jump to step {index}: earlier steps are not complete "
                f"or the index is out of range",
                current_index=self._current,
            )
        if index > self._current:
            self._validated.update(self._order[:index])
        self._current = index
        return self._current

    def reset(self) -> None:
        self._current = 0
        self._validated.clear()

    # ------------------------------------------------------------------
    # Progress stepper
    # ------------------------------------------------------------------

    def statuses(self) -> list[StepStatus]:
        """One status per step for the clickable progress indicator."""
        result: list[StepStatus] = []
        for idx, step in enumerate(self._schema.steps):
            if idx == self._current:
                status = "current"
            elif self.is_complete(step.id):
                status = "completed"
            elif self.can_jump_to(idx):
                status = "pending"
            else:
                status = "locked"
            result.append(StepStatus(index=idx, id=step.id, title=step.title, status=status))
        return result
