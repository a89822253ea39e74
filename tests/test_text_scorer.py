"""Tests for deterministic text relevance scoring."""

from clipscout.agents.text_scorer import (
    CONTEXT_BONUS_CAP,
    format_breakdown,
    score_candidate,
)
from clipscout.models.footage import Candidate, SearchAnalysis


def _candidate(title: str, **kwargs) -> Candidate:
    return Candidate(url="https://www.viory.video/en/videos/a1/x", title=title, **kwargs)


def _person_analysis() -> SearchAnalysis:
    return SearchAnalysis(
        main_subject="diplomatic meeting",
        country="russia",
        has_important_person=True,
        person_name="Vladimir Putin",
        key_visuals=["handshake"],
    )


class TestScoreCandidate:
    def test_is_pure(self):
        candidate = _candidate("Putin meets Venezuelan minister in Moscow")
        analysis = _person_analysis()
        first = score_candidate(candidate, analysis)
        second = score_candidate(candidate, analysis)
        assert first == second
        assert candidate.text_score is None

    def test_score_is_bounded(self):
        candidate = _candidate(
            "Russia: Putin handshake diplomatic meeting Russia Putin",
            description="Vladimir Putin diplomatic meeting handshake in Russia " * 5,
        )
        result = score_candidate(candidate, _person_analysis())
        assert 0 <= result.score <= 100

    def test_empty_candidate_scores_zero_without_person(self):
        analysis = SearchAnalysis(main_subject="flood damage", country="italy")
        result = score_candidate(_candidate("Unrelated"), analysis)
        assert result.score == 0
        assert result.breakdown == []

    def test_full_name_match(self):
        result = score_candidate(_candidate("Vladimir Putin speaks"), _person_analysis())
        assert result.person_match_in_text
        assert any(r.rule == "person_full_name" and r.points == 60 for r in result.breakdown)

    def test_surname_match(self):
        result = score_candidate(_candidate("Putin speaks"), _person_analysis())
        assert any(r.rule == "person_surname" and r.points == 50 for r in result.breakdown)

    def test_missing_person_scores_at_least_20_lower(self):
        analysis = _person_analysis()
        text = "Russia diplomatic meeting handshake in Moscow"
        with_person = score_candidate(_candidate(f"Putin: {text}"), analysis)
        without_person = score_candidate(_candidate(text), analysis)
        assert not without_person.person_match_in_text
        assert with_person.score - without_person.score >= 20

    def test_missing_person_ceiling_when_topic_saturates(self):
        analysis = _person_analysis()
        analysis.must_show = ["diplomatic meeting", "handshake"]
        text = "Russia diplomatic meeting handshake Kremlin"
        with_person = score_candidate(_candidate(f"Putin {text}"), analysis)
        without_person = score_candidate(_candidate(text, shot_list=text), analysis)
        assert with_person.score == 100
        assert without_person.score <= 80

    def test_subject_ignored_in_person_mode(self):
        result = score_candidate(_candidate("diplomatic meeting"), _person_analysis())
        assert not any(r.rule == "subject" for r in result.breakdown)

    def test_subject_words(self):
        analysis = SearchAnalysis(main_subject="earthquake rescue operation")
        result = score_candidate(_candidate("Earthquake rescue operation in Turkey"), analysis)
        assert any(r.rule == "subject" and r.points == 40 for r in result.breakdown)

    def test_country_in_title_bonus(self):
        analysis = SearchAnalysis(main_subject="storm", country="Japan")
        result = score_candidate(_candidate("Japan: storm hits coast"), analysis)
        rules = {r.rule for r in result.breakdown}
        assert {"country", "country_in_title"} <= rules

    def test_context_bonus_is_capped(self):
        subject = "military drone missile convoy tank soldier troops artillery strike"
        analysis = SearchAnalysis(main_subject=subject)
        result = score_candidate(_candidate(subject), analysis)
        context = sum(r.points for r in result.breakdown if r.rule == "context")
        assert context == CONTEXT_BONUS_CAP

    def test_hot_topic_penalty(self):
        analysis = SearchAnalysis(main_subject="flood in Spain")
        result = score_candidate(_candidate("Zelensky visits Ukraine front"), analysis)
        assert any(r.rule == "unrelated_topic" for r in result.breakdown)
        assert result.score == 0

    def test_format_breakdown(self):
        result = score_candidate(_candidate("Putin speaks"), _person_analysis())
        assert "person_surname(putin) +50" in format_breakdown(result)
