"""Tests for vision answer interpretation and validator pacing."""

import json

from clipscout.agents.visual_validator import (
    VisualValidator,
    interpret_footage,
    interpret_person,
    name_matches,
    parse_visual_response,
)
from clipscout.models.footage import Candidate, SearchAnalysis, TextScore


class FakeLLM:
    """Vision stub returning a fixed answer, or raising."""

    def __init__(self, reply="{}", error=None):
        self.reply = reply
        self.error = error
        self.calls = 0

    def generate_with_images(self, prompt, images, system_prompt=None):
        self.calls += 1
        if self.error:
            raise self.error
        return self.reply


def _candidate(shot=b"img") -> Candidate:
    candidate = Candidate(url="https://www.viory.video/en/videos/a1/x", title="Putin talks")
    candidate.screenshot = shot
    candidate.attach_text_score(TextScore(score=50))
    return candidate


class TestInterpretPerson:
    def test_confirmed_identity_is_boosted(self):
        result = interpret_person({
            "shows_target_person": True,
            "person_identified": "Vladimir Putin",
            "identification_confidence": 0.8,
            "relevance_score": 60,
        }, "Vladimir Putin")
        assert result.person_match is True
        assert result.relevance_score == 90
        assert result.recommendation == "ACCEPT"

    def test_wrong_flags_reject_even_when_person_shown(self):
        result = interpret_person({
            "shows_target_person": True,
            "person_identified": "Vladimir Putin",
            "identification_confidence": 0.9,
            "wrong_country_flags": "Ukraine",
            "relevance_score": 95,
        }, "Vladimir Putin")
        assert result.person_match is False
        assert result.relevance_score == 12

    def test_null_string_flags_are_ignored(self):
        result = interpret_person({
            "shows_target_person": True,
            "person_identified": "Putin",
            "identification_confidence": 0.7,
            "wrong_country_flags": "null",
            "relevance_score": 80,
        }, "Vladimir Putin")
        assert result.person_match is True

    def test_different_politician(self):
        result = interpret_person({"is_different_politician": True, "relevance_score": 70},
                                  "Vladimir Putin")
        assert result.person_match is False
        assert result.relevance_score == 10

    def test_crowd(self):
        result = interpret_person({"is_crowd_or_protest": True, "relevance_score": 70},
                                  "Vladimir Putin")
        assert result.relevance_score == 15

    def test_possible_match(self):
        result = interpret_person({
            "shows_target_person": True,
            "person_identified": "unclear man in suit",
            "identification_confidence": 0.5,
            "relevance_score": 80,
        }, "Vladimir Putin")
        assert result.person_match == "possible"
        assert result.relevance_score == 50
        assert result.recommendation == "REVIEW"

    def test_no_person(self):
        result = interpret_person({"relevance_score": 60}, "Vladimir Putin")
        assert result.person_match is False
        assert result.relevance_score == 25


class TestInterpretFootage:
    def test_wrong_country_rejected(self):
        result = interpret_footage({"wrong_country_detected": "Ukraine", "relevance_score": 90,
                                    "country_match": True, "context_match": "exact"})
        assert result.country_rejected
        assert result.relevance_score == 15
        assert result.recommendation == "REJECT"

    def test_confident_country_mismatch_rejected(self):
        result = interpret_footage({"country_match": False, "country_confidence": 0.8,
                                    "relevance_score": 70})
        assert result.country_rejected

    def test_exact_context_boosted(self):
        result = interpret_footage({"country_match": True, "context_match": "exact",
                                    "relevance_score": 40})
        assert result.relevance_score == 85
        assert result.recommendation == "ACCEPT"

    def test_related_context_boosted(self):
        result = interpret_footage({"country_match": True, "context_match": "related",
                                    "relevance_score": 40})
        assert result.relevance_score == 70

    def test_loose_keeps_model_recommendation(self):
        result = interpret_footage({"country_match": True, "context_match": "loose",
                                    "relevance_score": 40, "recommendation": "review"})
        assert result.relevance_score == 40
        assert result.recommendation == "REVIEW"

    def test_unconfident_mismatch_capped(self):
        result = interpret_footage({"country_match": False, "country_confidence": 0.3,
                                    "relevance_score": 70})
        assert result.relevance_score == 25
        assert not result.country_rejected

    def test_unknown_country_related(self):
        result = interpret_footage({"context_match": "related", "relevance_score": 90})
        assert result.relevance_score == 65
        assert result.country_match is None

    def test_unknown_country_unrelated(self):
        result = interpret_footage({"context_match": "bogus", "relevance_score": 90})
        assert result.context_match == "none"
        assert result.relevance_score == 40


class TestParseVisualResponse:
    def test_parse_failure_is_review_at_30(self):
        result = parse_visual_response("not json at all", requires_person=False)
        assert result.parse_failed
        assert result.relevance_score == 30
        assert result.recommendation == "REVIEW"

    def test_array_is_a_parse_failure(self):
        assert parse_visual_response("[1, 2]", requires_person=True).parse_failed

    def test_dispatches_on_mode(self):
        raw = json.dumps({"country_match": True, "context_match": "exact", "relevance_score": 10})
        assert parse_visual_response(raw, requires_person=False).context_match == "exact"


class TestNameMatches:
    def test_surname(self):
        assert name_matches("Vladimir Putin", "President Putin")

    def test_short_parts_ignored(self):
        assert not name_matches("Xi Li", "Xi Jinping")


class TestVisualValidator:
    def setup_method(self):
        self.sleeps = []
        self.analysis = SearchAnalysis(main_subject="talks", country="Russia")

    def _validator(self, llm, **kwargs):
        return VisualValidator(llm, delay=1.5, sleep=self.sleeps.append,
                               prepare=lambda img: img, **kwargs)

    def test_no_screenshot_returns_none(self):
        llm = FakeLLM()
        assert self._validator(llm).validate(_candidate(shot=None), self.analysis, False) is None
        assert llm.calls == 0

    def test_paces_calls(self):
        llm = FakeLLM(reply='{"country_match": true, "context_match": "exact"}')
        validator = self._validator(llm)
        for _ in range(3):
            validator.validate(_candidate(), self.analysis, False)
        assert self.sleeps == [1.5, 1.5]

    def test_disabled_after_repeated_errors(self):
        llm = FakeLLM(error=RuntimeError("rate limited"))
        validator = self._validator(llm, max_errors=2)
        for _ in range(4):
            assert validator.validate(_candidate(), self.analysis, False) is None
        assert validator.disabled
        assert llm.calls == 2

    def test_person_prompt_names_person(self):
        analysis = SearchAnalysis(main_subject="talks", has_important_person=True,
                                  person_name="Vladimir Putin")
        prompt = self._validator(FakeLLM()).build_prompt(_candidate(), analysis, True)
        assert "We need footage of: Vladimir Putin" in prompt
