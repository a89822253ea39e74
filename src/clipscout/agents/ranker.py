"""Final ranking: blend text and visual scores, then order candidates."""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Tuple

from ..models.footage import Candidate, PersonCheck, ScoreRule, SearchAnalysis

logger = logging.getLogger(__name__)

TEXT_WEIGHT = 0.6
VISUAL_WEIGHT = 0.4


def person_mode_for(analysis: SearchAnalysis,
                    person_check: Optional[PersonCheck] = None) -> bool:
    """Person mode needs a name plus either the analysis or the frame check."""
    if not analysis.person_name:
        return False
    confirmed = person_check is not None and person_check.is_confirmed
    return analysis.has_important_person or confirmed


def compute_final_score(candidate: Candidate,
                        person_mode: bool) -> Tuple[int, List[ScoreRule]]:
    """Blend scores and apply mode adjustments; returns (score, adjustments)."""
    if candidate.text_score is None:
        raise ValueError(f"Cannot rank unscored candidate: {candidate.url}")
    text = candidate.text_score.score
    visual = candidate.visual_analysis
    rules: List[ScoreRule] = []

    if visual is not None:
        score = math.floor(text * TEXT_WEIGHT + visual.relevance_score * VISUAL_WEIGHT + 0.5)
        if person_mode:
            if visual.person_match is True:
                rules.append(ScoreRule("person_confirmed", 25))
            elif visual.person_match == "possible" and visual.identification_confidence >= 0.6:
                rules.append(ScoreRule("person_possible", 10))
            elif visual.person_match is False:
                rules.append(ScoreRule("person_mismatch", -30))
        elif visual.relevance_score >= 80:
            rules.append(ScoreRule("strong_visual", 15))
        elif visual.relevance_score < 60:
            rules.append(ScoreRule("weak_visual", -20))
    else:
        score = text

    if candidate.text_score.person_match_in_text:
        rules.append(ScoreRule("person_in_text", 20))

    score += sum(r.points for r in rules)
    return max(0, min(100, score)), rules


def _person_tier(candidate: Candidate) -> int:
    visual = candidate.visual_analysis
    if visual is None:
        return 2
    if visual.person_match is True:
        return 0
    if visual.person_match == "possible":
        return 1
    return 2


def sort_key(candidate: Candidate, person_mode: bool):
    score = candidate.final_score or 0
    if person_mode:
        return (_person_tier(candidate), -score, candidate.query_priority)
    return (-score, candidate.query_priority)


def rank(candidates: List[Candidate], person_mode: bool) -> List[Candidate]:
    """Attach final scores and return candidates best-first.

    In person mode confirmed matches always come before possible matches,
    which come before everything else, whatever the raw scores.
    """
    for candidate in candidates:
        score, rules = compute_final_score(candidate, person_mode)
        candidate.attach_final_score(score)
        logger.debug("Final %d for %s (%s)", score, candidate.title[:50],
                     ", ".join(f"{r.rule} {r.points:+d}" for r in rules) or "no adjustments")
    return sorted(candidates, key=lambda c: sort_key(c, person_mode))
