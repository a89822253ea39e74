"""Deterministic text relevance scoring of candidates against a segment analysis.

Everything here is pure: the scorer reads a candidate's metadata and the
segment analysis and returns a ``TextScore`` holding the clamped score and
the list of rules that fired. Logging of the breakdown is left to callers.
"""

from __future__ import annotations

from typing import Dict, List, Tuple

from ..models.footage import Candidate, ScoreRule, SearchAnalysis, TextScore

MIN_WORD_LEN = 4
CONTEXT_KEYWORD_POINTS = 5
CONTEXT_BONUS_CAP = 25
HOT_TOPIC_PENALTY = 25
MISSING_PERSON_PENALTY = 20
MISSING_PERSON_CEILING = 80

CONTEXT_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "military": (
        "missile", "drone", "convoy", "military", "irgc", "weapon", "armed",
        "forces", "tank", "soldier", "troops", "artillery", "bombing",
        "strike", "attack", "defense",
    ),
    "disaster": (
        "earthquake", "flood", "tsunami", "hurricane", "tornado", "wildfire",
        "fire", "rescue", "survivors", "debris", "destruction", "damage",
        "emergency",
    ),
    "protest": (
        "protest", "demonstration", "rally", "march", "riot", "clash",
        "police", "tear gas", "crowd", "banner", "activists",
    ),
    "economy": (
        "trade", "tariff", "economy", "market", "stock", "inflation", "gdp",
        "export", "import", "deal", "agreement", "summit",
    ),
    "politics": (
        "election", "vote", "parliament", "congress", "senate", "minister",
        "president", "government", "policy", "law", "bill",
    ),
}

# Geopolitical terms that dominate the platform's catalogue and pull in
# unrelated footage when they appear in a title.
HOT_TOPICS = (
    "zelensky", "ukraine", "russia", "putin", "biden", "trump",
    "gaza", "israel", "iran", "china",
)


def _significant_words(phrase: str) -> List[str]:
    return [w for w in phrase.lower().split() if len(w) >= MIN_WORD_LEN]


def candidate_content(candidate: Candidate) -> str:
    """Lower-cased haystack the scorer searches in."""
    parts = [
        candidate.title,
        candidate.description or "",
        candidate.video_info,
        candidate.shot_list,
        candidate.all_text,
    ]
    return " ".join(p for p in parts if p).lower()


def _subject_rules(content: str, analysis: SearchAnalysis) -> List[ScoreRule]:
    words = _significant_words(analysis.main_subject)
    found = [w for w in words if w in content]
    if len(found) >= 3:
        return [ScoreRule("subject", 40, ", ".join(found))]
    if len(found) == 2:
        return [ScoreRule("subject", 25, ", ".join(found))]
    if len(found) == 1:
        return [ScoreRule("subject", 10, found[0])]
    return []


def _country_rules(content: str, title: str, country: str) -> List[ScoreRule]:
    country = country.strip().lower()
    if not country or country not in content:
        return []
    rules = [ScoreRule("country", 20, country)]
    if country in title:
        rules.append(ScoreRule("country_in_title", 10, country))
    return rules


def _key_visual_rules(content: str, visuals: List[str]) -> List[ScoreRule]:
    rules = []
    for visual in visuals:
        phrase = visual.strip().lower()
        if not phrase:
            continue
        if phrase in content:
            rules.append(ScoreRule("key_visual", 20, phrase))
            continue
        for word in _significant_words(phrase):
            if word in content:
                rules.append(ScoreRule("key_visual_word", 8, word))
    return rules


def _must_show_rules(content: str, must_show: List[str]) -> List[ScoreRule]:
    rules = []
    for item in must_show:
        phrase = item.strip().lower()
        if not phrase:
            continue
        if phrase in content:
            rules.append(ScoreRule("must_show", 30, phrase))
            continue
        matched = [w for w in _significant_words(phrase) if w in content]
        if len(matched) >= 2:
            rules.append(ScoreRule("must_show_words", 20, ", ".join(matched)))
        elif len(matched) == 1:
            rules.append(ScoreRule("must_show_words", 10, matched[0]))
    return rules


def _context_rules(content: str, subject: str) -> List[ScoreRule]:
    rules = []
    total = 0
    for category, keywords in CONTEXT_KEYWORDS.items():
        for keyword in keywords:
            if total >= CONTEXT_BONUS_CAP:
                return rules
            if keyword in content and keyword in subject:
                points = min(CONTEXT_KEYWORD_POINTS, CONTEXT_BONUS_CAP - total)
                rules.append(ScoreRule("context", points, f"{category}:{keyword}"))
                total += points
    return rules


def _hot_topic_rules(content: str, title: str, subject: str) -> List[ScoreRule]:
    subject_words = subject.split()
    if not subject_words or subject_words[0] in content:
        return []
    return [
        ScoreRule("unrelated_topic", -HOT_TOPIC_PENALTY, topic)
        for topic in HOT_TOPICS
        if topic in title and topic not in subject
    ]


def _person_rule(content: str, person_name: str) -> ScoreRule:
    name = person_name.strip().lower()
    if name and name in content:
        return ScoreRule("person_full_name", 60, name)
    parts = name.split()
    surname = parts[-1] if parts else ""
    if len(surname) >= 3 and surname in content:
        return ScoreRule("person_surname", 50, surname)
    for part in parts:
        if len(part) >= 3 and part in content:
            return ScoreRule("person_partial", 40, part)
    return ScoreRule("person_missing", -MISSING_PERSON_PENALTY, name)


def score_candidate(candidate: Candidate, analysis: SearchAnalysis) -> TextScore:
    """Score a candidate's metadata against the segment analysis (0-100).

    Topical rules add up first (floored at zero). When a named person is
    required, the person rule is applied on top; a candidate whose text never
    mentions the person also never scores above ``MISSING_PERSON_CEILING``.
    """
    content = candidate_content(candidate)
    title = candidate.title.lower()
    subject = analysis.main_subject.lower()

    rules: List[ScoreRule] = []
    if not analysis.requires_person:
        rules += _subject_rules(content, analysis)
    rules += _country_rules(content, title, analysis.country)
    rules += _key_visual_rules(content, analysis.key_visuals)
    rules += _must_show_rules(content, analysis.must_show)
    rules += _context_rules(content, subject)
    rules += _hot_topic_rules(content, title, subject)

    total = max(0, sum(r.points for r in rules))
    person_found = False

    if analysis.requires_person:
        person = _person_rule(content, analysis.person_name or "")
        rules.append(person)
        person_found = person.points > 0
        total += person.points
        if not person_found:
            total = min(total, MISSING_PERSON_CEILING)

    return TextScore(
        score=int(max(0, min(100, total))),
        person_match_in_text=person_found,
        breakdown=rules,
    )


def format_breakdown(result: TextScore) -> str:
    """One-line summary of fired rules for logs."""
    if not result.breakdown:
        return "no rules fired"
    return ", ".join(f"{r.rule}({r.detail}) {r.points:+d}" for r in result.breakdown)
