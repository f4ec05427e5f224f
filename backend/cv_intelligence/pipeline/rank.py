# backend/cv_intelligence/pipeline/rank.py
"""
Stage 3: ranking + batch summary.

Stable sort by score (descending); equal scores keep submission order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from ..core.errors import EmptyBatch
from ..core.utils import round_half_up
from .state import BatchSummary, CandidateAnalysis


@dataclass
class RankedResult:
    ranked: List[Tuple[int, CandidateAnalysis]]     # (rank, analysis), rank is 1-based
    summary: BatchSummary


def rank_candidates(
    analyses: Sequence[CandidateAnalysis],
    failed_count: int = 0,
    highly_recommended_label: str = "Highly Recommended",
) -> RankedResult:
    if not analyses:
        raise EmptyBatch()

    ordered = sorted(analyses, key=lambda a: -a.score)
    ranked = [(i + 1, a) for i, a in enumerate(ordered)]

    scores = [a.score for a in ordered]
    summary = BatchSummary(
        total_processed=len(ordered),
        average_score=round_half_up(sum(scores) / len(scores)),
        highly_recommended_count=sum(1 for a in ordered if a.result.recommendation == highly_recommended_label),
        failed_count=failed_count,
    )
    return RankedResult(ranked=ranked, summary=summary)


__all__ = ["RankedResult", "rank_candidates"]
