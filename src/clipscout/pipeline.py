"""Segment-to-footage pipeline: analyse, search, score, validate, rank, download."""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Tuple

from .agents.history import RetrievalHistory
from .agents.query_generator import QueryGenerator, expansion_queries
from .agents.ranker import person_mode_for, rank
from .agents.retrieval import RetrievalOrchestrator
from .agents.search import CandidateSearch, ScreenshotCache, clean_query
from .agents.text_scorer import format_breakdown, score_candidate
from .agents.visual_validator import VisualValidator
from .config import EXPANSION_TARGET, Config
from .llm_client import LLMClient
from .models.footage import (
    Candidate,
    Failure,
    MatchResult,
    PersonCheck,
    ProgressEvent,
    RetrievalReport,
    SearchAnalysis,
    Segment,
    Success,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]

EXPANSION_PRIORITY = 100


class FootagePipeline:
    """Runs one segment at a time against a single shared browser page."""

    def __init__(
        self,
        config: Config,
        llm_client: LLMClient,
        browser,
        session=None,
        history: Optional[RetrievalHistory] = None,
        progress: Optional[ProgressCallback] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock=None,
    ):
        self.config = config
        self.llm = llm_client
        self.browser = browser
        self.session = session
        self.history = history or RetrievalHistory(window=config.retrieval.repeat_window)
        self._progress = progress or (lambda _event: None)

        self.screenshots = ScreenshotCache()
        self.searcher = CandidateSearch(
            browser, config.platform, config.search, self.screenshots, sleep=sleep
        )
        self.generator = QueryGenerator(llm_client)
        self.validator = VisualValidator(
            llm_client, delay=config.search.vision_delay, sleep=sleep
        )
        self.retrieval = RetrievalOrchestrator(
            browser, config.platform, config.retrieval,
            session=session, history=self.history, clock=clock,
            event_callback=self.emit,
        )

    def emit(self, stage: str, message: str,
             current: Optional[int] = None, total: Optional[int] = None) -> None:
        self._progress(ProgressEvent(stage, message, current, total))

    def reset(self) -> None:
        """Drop per-run caches (screenshots and search results)."""
        self.screenshots.clear()
        self.searcher.cache.clear()

    # ── Matching ─────────────────────────────────────────────────────

    def _check_person(self, frame: bytes, analysis: SearchAnalysis) -> Optional[PersonCheck]:
        self.emit("person_check", f"Checking whether the segment shows {analysis.person_name}")
        try:
            check = self.generator.confirm_person(frame, analysis.person_name)
        except Exception as e:  # advisory step; provider errors vary by backend
            logger.warning("Person check failed: %s", e)
            self.emit("error", f"Person check failed: {str(e)[:60]}")
            return None
        if check is not None:
            verdict = "shows" if check.is_confirmed else "does not show"
            self.emit("person_check",
                      f"Segment {verdict} {analysis.person_name} (saw {check.detected_person})")
        return check

    def _gather(self, segment: Segment,
                analysis: SearchAnalysis) -> Tuple[List[Candidate], List[str]]:
        queries = [q for q in (clean_query(q) for q in analysis.queries) if q]
        queries = queries[: self.config.search.max_queries]
        self.emit("search", f"Searching: {', '.join(queries)}", 0, len(queries))
        candidates = self.searcher.collect(queries)
        self.emit("search", f"{len(candidates)} unique results", len(queries), len(queries))
        if candidates:
            return candidates, queries

        expanded = expansion_queries(analysis, segment)
        self.emit("search", f"No results, trying {len(expanded)} broader queries")
        candidates = self.searcher.collect(
            expanded, base_priority=EXPANSION_PRIORITY, stop_after=EXPANSION_TARGET
        )
        self.emit("search", f"{len(candidates)} results from broader queries")
        return candidates, queries + expanded

    def match_segment(self, headline: str, text: str,
                      segment_frame: Optional[bytes] = None,
                      max_candidates: Optional[int] = None) -> MatchResult:
        """Rank platform footage for a segment.

        Raises AnalysisError when the segment analysis is unusable.
        """
        segment = Segment(headline=headline, text=text)
        self.emit("analysis", f"Analysing: {headline[:60]}")
        analysis = self.generator.analyze(segment)
        person = f" | person: {analysis.person_name}" if analysis.requires_person else ""
        self.emit("analysis", f"Subject: {analysis.main_subject}{person}")

        person_check = None
        if segment_frame is not None and analysis.requires_person:
            person_check = self._check_person(segment_frame, analysis)
        person_mode = person_mode_for(analysis, person_check)

        candidates, queries = self._gather(segment, analysis)
        result = MatchResult(segment=segment, analysis=analysis, person_mode=person_mode,
                             person_check=person_check, queries_used=queries)
        if not candidates:
            self.emit("complete", "No footage found")
            return result

        limit = max_candidates or self.config.search.max_candidates
        selected = candidates[:limit]
        analysed: List[Candidate] = []
        for i, candidate in enumerate(selected, 1):
            self.emit("deep_analysis", candidate.title[:60], i, len(selected))
            if self.searcher.deep_analyze(candidate, with_screenshot=True):
                analysed.append(candidate)

        for candidate in analysed:
            scored = score_candidate(candidate, analysis)
            candidate.attach_text_score(scored)
            logger.info("Text score %d for %s: %s", scored.score,
                        candidate.title[:50], format_breakdown(scored))
        by_text = sorted(analysed, key=lambda c: (-c.text_score.score, c.query_priority))
        if by_text:
            self.emit("text_scoring", f"Best text score {by_text[0].text_score.score}",
                      len(by_text), len(by_text))

        top = by_text[: self.config.search.top_n_visual]
        for i, candidate in enumerate(top, 1):
            if self.validator.disabled:
                self.emit("visual", "Visual validation disabled, ranking by text only")
                break
            self.emit("visual", f"Checking {candidate.title[:50]}", i, len(top))
            visual = self.validator.validate(candidate, analysis, person_mode)
            if visual is not None:
                candidate.attach_visual(visual)

        result.videos = rank(by_text, person_mode)
        if result.videos:
            best = result.videos[0]
            self.emit("ranking", f"Best: {best.title[:50]} ({best.final_score})",
                      len(result.videos), len(result.videos))
        return result

    # ── Retrieval ────────────────────────────────────────────────────

    def download_best(self, headline: str, text: str,
                      segment_frame: Optional[bytes] = None) -> RetrievalReport:
        """Match the segment and download the best footage that is available."""
        if self.session is not None and not self.session.has_session():
            self.emit("error", "No saved session, please log in")
            return RetrievalReport(outcome=Failure("login required", needs_login=True))

        match = self.match_segment(headline, text, segment_frame=segment_frame)
        if not match.videos:
            return RetrievalReport(outcome=Failure("no candidates found"))

        report = self.retrieval.retrieve(match.videos)
        if isinstance(report.outcome, Success):
            self.emit("complete", f"Downloaded {report.outcome.filename}")
        else:
            self.emit("error", f"No footage downloaded ({len(report.skipped)} skipped)")
        return report
