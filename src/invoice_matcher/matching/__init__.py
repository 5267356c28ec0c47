"""
Matching: scoring, candidate filtering and batch auto-matching.
"""

from .auto_match import (
    ApplyOutcome,
    AutoMatchInvoiceResult,
    AutoMatchOrchestrator,
    AutoMatchStatus,
    AutoMatchSummary,
    BatchResult,
    LineItemMatchResult,
)
from .filters import (
    CandidateFilter,
    FilterOptions,
    MatchableLineItem,
    ScoredCandidate,
    SortKey,
    matchable_line_items,
)
from .scorer import (
    MatchScore,
    ScoreBreakdown,
    ScoreEngine,
    ScorePenalties,
    ScoringContext,
    score_match,
)

__all__ = [
    "ApplyOutcome",
    "AutoMatchInvoiceResult",
    "AutoMatchOrchestrator",
    "AutoMatchStatus",
    "AutoMatchSummary",
    "BatchResult",
    "CandidateFilter",
    "FilterOptions",
    "LineItemMatchResult",
    "MatchScore",
    "MatchableLineItem",
    "ScoreBreakdown",
    "ScoreEngine",
    "ScorePenalties",
    "ScoredCandidate",
    "ScoringContext",
    "SortKey",
    "matchable_line_items",
    "score_match",
]
