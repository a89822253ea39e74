"""Tests for segment analysis, person confirmation and expansion queries."""

import json

import pytest

from clipscout.agents.query_generator import QueryGenerator, expansion_queries
from clipscout.errors import AnalysisError
from clipscout.models.footage import SearchAnalysis, Segment

ANALYSIS = {
    "main_subject": "Putin meeting Venezuelan foreign minister",
    "country": "Russia",
    "has_important_person": True,
    "person_name": "Vladimir Putin",
    "key_visuals": ["handshake", "Kremlin hall"],
    "must_show": ["Putin with Gil"],
    "avoid": None,
    "queries": ["Putin says", "Putin Gil", "Kremlin meeting"],
}


class FakeLLM:
    """Minimal stub for LLMClient."""

    def __init__(self, json_reply=None, image_reply="{}"):
        self.json_reply = json_reply
        self.image_reply = image_reply
        self.image_calls = []

    def generate_json(self, prompt, system_prompt=None):
        if isinstance(self.json_reply, Exception):
            raise self.json_reply
        return self.json_reply

    def generate_with_images(self, prompt, images, system_prompt=None):
        self.image_calls.append((prompt, images))
        return self.image_reply


class TestAnalyze:
    def setup_method(self):
        self.segment = Segment("Putin meets Yvan Gil", "Talks in Moscow on oil.")

    def test_parses_analysis(self):
        analysis = QueryGenerator(FakeLLM(ANALYSIS)).analyze(self.segment)
        assert analysis.requires_person
        assert analysis.person_name == "Vladimir Putin"
        assert analysis.avoid == []
        assert analysis.queries[0] == "Putin says"

    def test_invalid_json_raises(self):
        llm = FakeLLM(json.JSONDecodeError("bad", "doc", 0))
        with pytest.raises(AnalysisError):
            QueryGenerator(llm).analyze(self.segment)

    def test_non_object_raises(self):
        with pytest.raises(AnalysisError):
            QueryGenerator(FakeLLM(["query"])).analyze(self.segment)

    def test_no_queries_raises(self):
        with pytest.raises(AnalysisError):
            QueryGenerator(FakeLLM({**ANALYSIS, "queries": []})).analyze(self.segment)

    def test_person_flag_requires_literal_true(self):
        data = {**ANALYSIS, "has_important_person": "yes"}
        analysis = QueryGenerator(FakeLLM(data)).analyze(self.segment)
        assert not analysis.requires_person


class TestConfirmPerson:
    def test_confirmed_above_threshold(self):
        llm = FakeLLM(image_reply='```json\n{"is_this_person": true, "confidence": 0.9, '
                                  '"who_is_shown": "Vladimir Putin"}\n```')
        check = QueryGenerator(llm).confirm_person(b"frame", "Vladimir Putin")
        assert check.is_confirmed
        assert check.detected_person == "Vladimir Putin"
        assert llm.image_calls[0][1] == [b"frame"]

    def test_low_confidence_is_not_confirmed(self):
        llm = FakeLLM(image_reply='{"is_this_person": true, "confidence": 0.5}')
        check = QueryGenerator(llm).confirm_person(b"frame", "Vladimir Putin")
        assert not check.is_confirmed
        assert check.detected_person == "unknown"

    def test_unreadable_answer_returns_none(self):
        llm = FakeLLM(image_reply="I cannot tell who this is.")
        assert QueryGenerator(llm).confirm_person(b"frame", "Vladimir Putin") is None


class TestExpansionQueries:
    def test_bounded_and_unique(self):
        analysis = SearchAnalysis.from_dict(ANALYSIS)
        segment = Segment("Putin meets Gil at summit", "Military talks, naval drill and aircraft deal")
        queries = expansion_queries(analysis, segment)
        assert 0 < len(queries) <= 12
        assert len(queries) == len(set(queries))
        assert queries[0] == "Russia news footage"

    def test_without_country(self):
        analysis = SearchAnalysis(main_subject="storm")
        queries = expansion_queries(analysis, Segment("Storm", "Heavy rain"))
        assert "military footage" in queries
        assert not any(q.startswith(" ") for q in queries)
