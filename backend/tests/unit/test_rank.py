"""
Ranking + summary tests.
"""

import pytest

from cv_intelligence.core.errors import EmptyBatch
from cv_intelligence.pipeline.rank import rank_candidates
from cv_intelligence.pipeline.state import CandidateAnalysis, CandidateProfile, ScoreResult


def _analysis(filename, score, position, recommendation="Consider"):
    return CandidateAnalysis(
        filename=filename,
        position=position,
        analysis_key=f"key-{filename}",
        profile=CandidateProfile(),
        result=ScoreResult(score=score, recommendation=recommendation, fit_level="Low"),
    )


class TestRankCandidates:
    def test_sorted_by_score_with_one_based_ranks(self):
        analyses = [_analysis("a", 40, 0), _analysis("b", 90, 1, "Highly Recommended"), _analysis("c", 70, 2)]
        result = rank_candidates(analyses)
        assert [(rank, a.filename) for rank, a in result.ranked] == [(1, "b"), (2, "c"), (3, "a")]

    def test_ties_keep_input_order(self):
        analyses = [_analysis("first", 75, 0), _analysis("second", 80, 1), _analysis("third", 75, 2)]
        result = rank_candidates(analyses)
        assert [a.filename for _, a in result.ranked] == ["second", "first", "third"]

    def test_summary(self):
        analyses = [
            _analysis("a", 90, 0, "Highly Recommended"),
            _analysis("b", 86, 1, "Highly Recommended"),
            _analysis("c", 51, 2),
        ]
        summary = rank_candidates(analyses, failed_count=2).summary
        assert summary.total_processed == 3
        assert summary.average_score == 76        # 227 / 3 = 75.67
        assert summary.highly_recommended_count == 2
        assert summary.failed_count == 2

    def test_average_rounds_half_up(self):
        summary = rank_candidates([_analysis("a", 70, 0), _analysis("b", 71, 1)]).summary
        assert summary.average_score == 71        # 70.5

    def test_empty_raises(self):
        with pytest.raises(EmptyBatch):
            rank_candidates([])
