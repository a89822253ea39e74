"""Vision-model validation of candidate screenshots."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, Optional

from ..config import MAX_VISION_ERRORS
from ..llm_client import LLMClient
from ..models.footage import Candidate, SearchAnalysis, VisualAnalysis
from .frames import prepare_for_vision

logger = logging.getLogger(__name__)

PARSE_FAILURE_SCORE = 30

PERSON_PROMPT = """\
PERSON IDENTIFICATION FOR NEWS B-ROLL

We need footage of: {name}
{description}
Expected setting / flags: {country}
Video title: {title}

ACCEPT (85-100): {name} is clearly visible and recognisable, in a matching setting.
REVIEW (50-70): {name} may be present but the image is unclear, or the setting cannot be verified.
REJECT (0-30): a different politician, wrong-country flags, a crowd or protest, \
officials without {name}, or no people at all.

Respond with JSON only:
{{
  "shows_target_person": true,
  "person_identified": "who is actually visible, by name if recognisable",
  "identification_confidence": 0.0,
  "flags_match_expected": true,
  "wrong_country_flags": "country of wrong flags, or null",
  "is_crowd_or_protest": false,
  "is_different_politician": false,
  "relevance_score": 0,
  "recommendation": "ACCEPT/REVIEW/REJECT",
  "reason": "one sentence"
}}"""

FOOTAGE_PROMPT = """\
FOOTAGE RELEVANCE CHECK

News topic: {subject}
Required country: {country}
Key visuals needed: {key_visuals}
Must show: {must_show}
Avoid: {avoid}

Video title: {title}
Description: {info}
Shot list: {shot_list}

First work out which country the footage is from (flags, landmarks, \
signage, architecture), then compare it with the required country. Footage \
from the wrong country is rejected even when the topic fits.

Respond with JSON only:
{{
  "detected_country": "country the footage appears to be from",
  "country_match": true,
  "country_confidence": 0.0,
  "wrong_country_detected": "wrong country if visible, or null",
  "context_match": "exact/related/loose/none",
  "relevance_score": 0,
  "recommendation": "ACCEPT/REVIEW/REJECT",
  "reason": "short explanation"
}}"""

_RECOMMENDATIONS = {"ACCEPT", "REVIEW", "REJECT"}
_CONTEXTS = {"exact", "related", "loose", "none"}


def _clamp(value: Any) -> int:
    try:
        return max(0, min(100, int(round(float(value)))))
    except (TypeError, ValueError):
        return 0


def _confidence(value: Any) -> float:
    try:
        return max(0.0, min(1.0, float(value)))
    except (TypeError, ValueError):
        return 0.0


def _present(value: Any) -> bool:
    """Model JSON often spells null as a string."""
    if value is None or value is False:
        return False
    return str(value).strip().lower() not in ("", "null", "none", "false", "no")


def _recommendation(value: Any, default: str = "REVIEW") -> str:
    rec = str(value or "").strip().upper()
    return rec if rec in _RECOMMENDATIONS else default


def name_matches(person_name: str, identified: str) -> bool:
    identified = identified.lower()
    parts = [p for p in person_name.lower().split() if len(p) >= 3]
    return bool(parts) and any(p in identified for p in parts)


def interpret_person(data: Dict[str, Any], person_name: str) -> VisualAnalysis:
    """Map a person-mode answer onto a match tier and adjusted score."""
    score = _clamp(data.get("relevance_score"))
    identified = str(data.get("person_identified") or "")
    confidence = _confidence(data.get("identification_confidence"))
    shows = data.get("shows_target_person") is True
    reason = str(data.get("reason") or "")

    def result(match, final, rec):
        return VisualAnalysis(
            relevance_score=final,
            recommendation=rec,
            reason=reason,
            person_match=match,
            person_identified=identified or None,
            identification_confidence=confidence,
        )

    if _present(data.get("wrong_country_flags")):
        return result(False, min(score, 12), "REJECT")
    if shows and name_matches(person_name, identified) and confidence >= 0.6:
        return result(True, max(score, 90), "ACCEPT")
    if data.get("is_different_politician") is True:
        return result(False, min(score, 10), "REJECT")
    if data.get("is_crowd_or_protest") is True:
        return result(False, min(score, 15), "REJECT")
    if shows and confidence >= 0.4:
        return result("possible", min(score, 50), "REVIEW")
    return result(False, min(score, 25), "REJECT")


def interpret_footage(data: Dict[str, Any]) -> VisualAnalysis:
    """Map a footage-mode answer, letting country evidence override the raw score."""
    score = _clamp(data.get("relevance_score"))
    context = str(data.get("context_match") or "none").strip().lower()
    if context not in _CONTEXTS:
        context = "none"
    raw_match = data.get("country_match")
    confidence = _confidence(data.get("country_confidence"))
    reason = str(data.get("reason") or "")

    def result(final, rec, country_match, rejected=False):
        return VisualAnalysis(
            relevance_score=final,
            recommendation=rec,
            reason=reason,
            context_match=context,
            country_match=country_match,
            country_rejected=rejected,
        )

    if _present(data.get("wrong_country_detected")) or (
        raw_match is False and confidence >= 0.6
    ):
        return result(min(score, 15), "REJECT", False, rejected=True)
    if raw_match is True:
        if context == "exact":
            return result(max(score, 85), "ACCEPT", True)
        if context == "related":
            return result(max(score, 70), "ACCEPT", True)
        return result(score, _recommendation(data.get("recommendation")), True)
    if raw_match is False:
        return result(min(score, 25), "REJECT", False)
    if context in ("exact", "related"):
        return result(min(score, 65), "REVIEW", None)
    return result(min(score, 40), "REJECT", None)


def parse_visual_response(raw: str, requires_person: bool,
                          person_name: str = "") -> VisualAnalysis:
    """Decode the model answer; unreadable output becomes a REVIEW at 30."""
    try:
        data = json.loads(LLMClient._extract_json(raw))
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
    except (json.JSONDecodeError, ValueError) as e:
        logger.warning("Unreadable vision response: %s", e)
        return VisualAnalysis(
            relevance_score=PARSE_FAILURE_SCORE,
            recommendation="REVIEW",
            reason="Vision response could not be parsed",
            parse_failed=True,
        )
    if requires_person:
        return interpret_person(data, person_name)
    return interpret_footage(data)


class VisualValidator:
    """Paced vision checks that give up after repeated API errors."""

    def __init__(
        self,
        llm_client: LLMClient,
        delay: float = 1.5,
        sleep: Callable[[float], None] = time.sleep,
        max_errors: int = MAX_VISION_ERRORS,
        prepare: Callable[[bytes], bytes] = prepare_for_vision,
    ):
        self.llm = llm_client
        self.delay = delay
        self._sleep = sleep
        self.max_errors = max_errors
        self._prepare = prepare
        self.errors = 0
        self._calls = 0

    @property
    def disabled(self) -> bool:
        return self.errors >= self.max_errors

    def build_prompt(self, candidate: Candidate, analysis: SearchAnalysis,
                     requires_person: bool) -> str:
        if requires_person:
            return PERSON_PROMPT.format(
                name=analysis.person_name,
                description=analysis.person_description or "",
                country=analysis.country or "not specified",
                title=candidate.title,
            )
        return FOOTAGE_PROMPT.format(
            subject=analysis.main_subject,
            country=analysis.country or "not specified",
            key_visuals=", ".join(analysis.key_visuals) or "general footage",
            must_show=", ".join(analysis.must_show) or "related content",
            avoid=", ".join(analysis.avoid) or "nothing specific",
            title=candidate.title,
            info=candidate.video_info[:400],
            shot_list=candidate.shot_list[:300],
        )

    def validate(self, candidate: Candidate, analysis: SearchAnalysis,
                 requires_person: bool) -> Optional[VisualAnalysis]:
        """One vision call; None when there is no screenshot or the call failed."""
        if candidate.screenshot is None or self.disabled:
            return None
        if self._calls:
            self._sleep(self.delay)
        self._calls += 1

        prompt = self.build_prompt(candidate, analysis, requires_person)
        try:
            raw = self.llm.generate_with_images(
                prompt, [self._prepare(candidate.screenshot)]
            )
        except Exception as e:  # provider errors vary by backend
            self.errors += 1
            logger.warning("Vision call failed for %s (%d/%d): %s",
                           candidate.url, self.errors, self.max_errors, e)
            if self.disabled:
                logger.warning("Visual validation disabled after %d errors", self.errors)
            return None

        result = parse_visual_response(
            raw, requires_person, analysis.person_name or ""
        )
        logger.info("Visual %s: %d %s (%s)", candidate.title[:50],
                    result.relevance_score, result.recommendation,
                    result.person_match if requires_person else result.context_match)
        return result
