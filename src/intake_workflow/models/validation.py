"""Validation and scoring result models."""

from __future__ import annotations

import enum
from typing import List, Literal

from pydantic import BaseModel, ConfigDict

IssueReason = Literal[
    "missing",
    "not_acknowledged",
    "invalid_number",
    "out_of_range",
    "invalid_date",
    "invalid_option",
    "invalid_pattern",
]


class FieldIssue(BaseModel):
    """One reason a visible field blocks its step."""

    model_config = ConfigDict(frozen=True)

    key: str
    step_id: str
    reason: IssueReason
    message: str


class ScoreBand(str, enum.Enum):
    """PHQ-2 interpretation band."""

    NORMAL = "normal"
    WATCH = "watch"
    ELEVATED = "elevated"


class ScoreResult(BaseModel):
    """PHQ-2 result.  Always recomputed from the source answers, never edited."""

    model_config = ConfigDict(frozen=True)

    raw_answers: List[str]
    total: int
    band: ScoreBand
