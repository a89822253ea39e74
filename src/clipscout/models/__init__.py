"""Data models for the footage pipeline."""

from .footage import (
    Candidate,
    DownloadOutcome,
    Failure,
    MatchResult,
    NeedsAsyncPreparation,
    PersonCheck,
    ProgressEvent,
    RetrievalReport,
    ScoreRule,
    SearchAnalysis,
    Segment,
    SkipRecord,
    Success,
    TextScore,
    Timeout,
    VisualAnalysis,
    describe_outcome,
)

__all__ = [
    "Candidate",
    "DownloadOutcome",
    "Failure",
    "MatchResult",
    "NeedsAsyncPreparation",
    "PersonCheck",
    "ProgressEvent",
    "RetrievalReport",
    "ScoreRule",
    "SearchAnalysis",
    "Segment",
    "SkipRecord",
    "Success",
    "TextScore",
    "Timeout",
    "VisualAnalysis",
    "describe_outcome",
]
