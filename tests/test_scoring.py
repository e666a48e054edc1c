"""PHQ-2 scorer tests."""

import pytest

from intake_workflow.models.validation import ScoreBand
from intake_workflow.scoring import band_for, score_phq2


class TestScorePhq2:
    """Lookup-table scoring of the two PHQ-2 answers."""

    def test_not_at_all_both_is_zero(self):
        assert score_phq2("not_at_all", "not_at_all").total == 0

    def test_nearly_everyday_both_is_six(self):
        result = score_phq2("nearly_everyday", "nearly_everyday")
        assert result.total == 6
        assert result.band == ScoreBand.ELEVATED

    def test_everyday_with_empty_down_answer(self):
        # "everyday" only exists on the interest scale, where it scores 4.
        result = score_phq2("everyday", "")
        assert result.total == 4
        assert result.raw_answers == ["everyday", ""]

    @pytest.mark.parametrize("down", ["", None, "sometimes", "everyday"])
    def test_unmapped_down_answer_contributes_zero(self, down):
        assert score_phq2("several_days", down, variant="standard").total == 1

    def test_extended_variant_scores_everyday_on_down_scale(self):
        assert score_phq2("everyday", "everyday", variant="extended").total == 8

    def test_long_form_codes_match_short_codes(self):
        long_form = score_phq2("more_than_half_the_days", "nearly_every_day")
        short = score_phq2("more_than_half", "nearly_everyday")
        assert long_form.total == short.total == 5

    def test_both_missing_is_zero_not_error(self):
        assert score_phq2(None, None).total == 0

    def test_deterministic(self):
        assert score_phq2("several_days", "more_than_half") == score_phq2(
            "several_days", "more_than_half"
        )


class TestBands:
    @pytest.mark.parametrize(
        "total, band",
        [(0, ScoreBand.NORMAL), (2, ScoreBand.NORMAL), (3, ScoreBand.WATCH),
         (4, ScoreBand.ELEVATED), (8, ScoreBand.ELEVATED)],
    )
    def test_band_thresholds(self, total, band):
        assert band_for(total) == band
