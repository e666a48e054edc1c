"""PHQ-2 clinical scorer.

Maps the two PHQ-2 answer codes to a composite score through explicit
lookup tables (one per question) rather than option position, so that the
two vocabularies may differ in length without silent miscoding.

Unmapped or empty codes contribute 0: a partially completed optional
section must never crash submission.
"""

from __future__ import annotations

import logging

from intake_workflow.constants import (
    PHQ2_DOWN_SCALE,
    PHQ2_DOWN_SCALE_EXTENDED,
    PHQ2_DOWN_SCALE_VARIANT,
    PHQ2_ELEVATED_THRESHOLD,
    PHQ2_INTEREST_SCALE,
    PHQ2_WATCH_THRESHOLD,
)
from intake_workflow.models.validation import ScoreBand, ScoreResult

logger = logging.getLogger(__name__)


def _down_scale(variant: str) -> dict[str, int]:
    if variant == "extended":
        return PHQ2_DOWN_SCALE_EXTENDED
    if variant != "standard":
        logger.warning("Unknown PHQ-2 down-scale variant %r, using standard", variant)
    return PHQ2_DOWN_SCALE


def band_for(total: int) -> ScoreBand:
    """Interpretation band for a PHQ-2 total."""
    if total >= PHQ2_ELEVATED_THRESHOLD:
        return ScoreBand.ELEVATED
    if total >= PHQ2_WATCH_THRESHOLD:
        return ScoreBand.WATCH
    return ScoreBand.NORMAL


def score_phq2(
    little_interest_pleasure: str | None,
    feeling_down_depressed: str | None,
    *,
    variant: str = PHQ2_DOWN_SCALE_VARIANT,
) -> ScoreResult:
    """Compute the PHQ-2 total from the two answer codes.

    Pure and deterministic: the same two codes always give the same result.

    Examples::

        score_phq2("not_at_all", "not_at_all").total        # 0
        score_phq2("nearly_everyday", "nearly_everyday").total  # 6
        score_phq2("everyday", "").total                    # 4
    """
    interest = PHQ2_INTEREST_SCALE.get(little_interest_pleasure or "", 0)
    down = _down_scale(variant).get(feeling_down_depressed or "", 0)
    total = interest + down
    return ScoreResult(
        raw_answers=[little_interest_pleasure or "", feeling_down_depressed or ""],
        total=total,
        band=band_for(total),
    )


# Scorer registry used by the submission assembler.  Each entry receives
# the declared inputs as keyword arguments.
SCORERS = {
    "phq2": score_phq2,
}
