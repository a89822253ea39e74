"""Data models for the footage discovery and retrieval pipeline."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

_VIDEO_ID_RE = re.compile(r"/videos/([a-zA-Z0-9_]+)/")

# True (confirmed) | "possible" | False (mismatch)
PersonMatch = Union[bool, str]


@dataclass(frozen=True)
class Segment:
    """A news segment to find footage for."""

    headline: str
    text: str


def _str_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value if v]


@dataclass
class SearchAnalysis:
    """What a segment needs on screen and how to search for it."""

    main_subject: str = ""
    country: str = ""
    has_important_person: bool = False
    person_name: Optional[str] = None
    person_description: Optional[str] = None
    key_visuals: List[str] = field(default_factory=list)
    must_show: List[str] = field(default_factory=list)
    avoid: List[str] = field(default_factory=list)
    queries: List[str] = field(default_factory=list)
    secondary_country: Optional[str] = None
    location_keywords: List[str] = field(default_factory=list)

    @property
    def requires_person(self) -> bool:
        return self.has_important_person and bool(self.person_name)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SearchAnalysis:
        """Build from decoded model JSON, tolerating nulls and odd types."""
        return cls(
            main_subject=str(data.get("main_subject") or ""),
            country=str(data.get("country") or ""),
            has_important_person=data.get("has_important_person") is True,
            person_name=data.get("person_name") or None,
            person_description=data.get("person_description") or None,
            key_visuals=_str_list(data.get("key_visuals")),
            must_show=_str_list(data.get("must_show")),
            avoid=_str_list(data.get("avoid")),
            queries=_str_list(data.get("queries")),
            secondary_country=data.get("secondary_country") or None,
            location_keywords=_str_list(data.get("location_keywords")),
        )


@dataclass
class PersonCheck:
    """Advisory identity check of the segment's own frame."""

    expected_person: str
    is_confirmed: bool
    confidence: float = 0.0
    detected_person: str = "unknown"


@dataclass(frozen=True)
class ScoreRule:
    """One heuristic rule that fired while scoring a candidate."""

    rule: str
    points: int
    detail: str = ""


@dataclass
class TextScore:
    """Result of the text relevance scorer."""

    score: int
    person_match_in_text: bool = False
    breakdown: List[ScoreRule] = field(default_factory=list)


@dataclass
class VisualAnalysis:
    """Result of a vision-model check on a candidate screenshot."""

    relevance_score: int
    recommendation: str = "REVIEW"  # ACCEPT / REVIEW / REJECT
    reason: str = ""
    person_match: Optional[PersonMatch] = None
    person_identified: Optional[str] = None
    identification_confidence: float = 0.0
    context_match: Optional[str] = None  # exact / related / loose / none
    country_match: Optional[bool] = None
    country_rejected: bool = False
    parse_failed: bool = False


@dataclass
class Candidate:
    """A footage item from a platform search, enriched as the pipeline runs."""

    url: str
    title: str
    source_query: str = ""
    query_priority: int = 0
    thumbnail_url: Optional[str] = None
    description: Optional[str] = None
    video_info: str = ""
    shot_list: str = ""
    mandatory_credit: Optional[str] = None
    duration: Optional[str] = None
    all_text: str = ""
    screenshot: Optional[bytes] = field(default=None, repr=False)
    text_score: Optional[TextScore] = None
    visual_analysis: Optional[VisualAnalysis] = None
    final_score: Optional[int] = None

    @property
    def video_id(self) -> Optional[str]:
        match = _VIDEO_ID_RE.search(self.url)
        return match.group(1) if match else None

    @property
    def score(self) -> int:
        """Best score available so far."""
        if self.final_score is not None:
            return self.final_score
        if self.text_score is not None:
            return self.text_score.score
        return 0

    def attach_text_score(self, result: TextScore) -> None:
        if self.text_score is not None:
            raise ValueError(f"Candidate already text-scored: {self.url}")
        self.text_score = result

    def attach_visual(self, result: VisualAnalysis) -> None:
        if self.text_score is None:
            raise ValueError(f"Visual analysis before text score: {self.url}")
        if self.visual_analysis is not None:
            raise ValueError(f"Candidate already visually validated: {self.url}")
        self.visual_analysis = result

    def attach_final_score(self, score: int) -> None:
        if self.text_score is None:
            raise ValueError(f"Final score before text score: {self.url}")
        if self.final_score is not None:
            raise ValueError(f"Candidate already ranked: {self.url}")
        self.final_score = score


# ── Download outcomes ────────────────────────────────────────────────


@dataclass
class Success:
    path: Path
    filename: str
    from_library_fallback: bool = False
    mandatory_credit: Optional[str] = None


@dataclass
class NeedsAsyncPreparation:
    video_id: Optional[str]
    title: str


@dataclass
class Timeout:
    waited_minutes: float


@dataclass
class Failure:
    reason: str
    needs_login: bool = False


DownloadOutcome = Union[Success, NeedsAsyncPreparation, Timeout, Failure]


def describe_outcome(outcome: DownloadOutcome) -> str:
    """Short human-readable reason for a non-successful outcome."""
    match outcome:
        case Success(filename=name):
            return f"downloaded {name}"
        case NeedsAsyncPreparation():
            return "requires async preparation (library)"
        case Timeout(waited_minutes=minutes):
            return f"library wait timed out after {minutes:g} min"
        case Failure(reason=reason):
            return reason
    return "unknown outcome"


@dataclass
class SkipRecord:
    """Why a ranked candidate was not used."""

    url: str
    title: str
    score: int
    reason: str


@dataclass
class RetrievalReport:
    """Final result of trying the ranked candidates in order."""

    outcome: DownloadOutcome
    candidate: Optional[Candidate] = None
    skipped: List[SkipRecord] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return isinstance(self.outcome, Success)


@dataclass
class MatchResult:
    """Ranked footage for one segment."""

    segment: Segment
    analysis: SearchAnalysis
    videos: List[Candidate] = field(default_factory=list)
    person_mode: bool = False
    person_check: Optional[PersonCheck] = None
    queries_used: List[str] = field(default_factory=list)


@dataclass
class ProgressEvent:
    """Incremental status for UIs."""

    stage: str
    message: str
    current: Optional[int] = None
    total: Optional[int] = None
