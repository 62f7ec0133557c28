"""Tests for negotiation_intel/pipeline/parsing.py: layered response parsing."""

import json

import pytest

from negotiation_intel.exceptions import ResponseParseError
from negotiation_intel.models import AnalysisSource
from negotiation_intel.pipeline.parsing import (
    TRY_NEXT,
    first_success,
    is_valid_analysis,
    normalize_analysis,
    parse_analysis_response,
    parse_batch_response,
    parse_counterproposal_response,
    try_parse_json,
)


COUNTERPROPOSAL = {
    "proposedText": "The Supplier shall deliver within 45 days.",
    "rationale": "Splits the difference.",
    "changesFromYours": "Accept a longer window.",
    "changesFromTheirs": "Drop the 60 day window.",
    "preserves": "A fixed delivery deadline.",
}


class TestFirstSuccess:

    def test_returns_first_non_sentinel(self):
        calls = []

        def skip(text):
            calls.append("skip")
            return TRY_NEXT

        def hit(text):
            calls.append("hit")
            return text.upper()

        def never(text):
            calls.append("never")
            return "unreachable"

        assert first_success([skip, hit, never], "ok") == "OK"
        assert calls == ["skip", "hit"]

    def test_all_fail(self):
        assert first_success([lambda t: TRY_NEXT], "x") is TRY_NEXT

    def test_falsy_values_count_as_success(self):
        assert first_success([lambda t: [], lambda t: "later"], "x") == []

    def test_sentinel_is_falsy(self):
        assert not TRY_NEXT


class TestTryParseJson:

    def test_object(self):
        assert try_parse_json(' {"a": 1} ') == {"a": 1}

    def test_array(self):
        assert try_parse_json("[1, 2]") == [1, 2]

    @pytest.mark.parametrize("text", ["42", '"str"', "null", "not json", ""])
    def test_rejects_non_containers(self, text):
        assert try_parse_json(text) is None


class TestAnalysisParsing:

    def test_direct_json(self, make_change, analysis_payload):
        parsed = parse_analysis_response(json.dumps(analysis_payload()), make_change())
        assert parsed.source == AnalysisSource.AI
        assert parsed.analysis.risk_level == "high"
        assert parsed.analysis.recommendation == "counter"

    def test_fenced_json(self, make_change, analysis_payload):
        text = "Here you go:\n```json\n" + json.dumps(analysis_payload()) + "\n```\nThanks."
        parsed = parse_analysis_response(text, make_change())
        assert parsed.source == AnalysisSource.AI
        assert parsed.analysis.summary == "Raises the liability cap."

    def test_fenced_without_language(self, make_change, analysis_payload):
        text = "```\n" + json.dumps(analysis_payload()) + "\n```"
        assert parse_analysis_response(text, make_change()).source == AnalysisSource.AI

    def test_direct_and_fenced_equivalent(self, make_change, analysis_payload):
        raw = json.dumps(analysis_payload())
        change = make_change()
        direct = parse_analysis_response(raw, change)
        fenced = parse_analysis_response(f"```json\n{raw}\n```", change)
        assert direct == fenced

    def test_prose_falls_back_to_heuristic(self, make_change):
        change = make_change(proposed_text="The Supplier shall provide indemnity.")
        parsed = parse_analysis_response("I think this change is risky.", change)
        assert parsed.source == AnalysisSource.HEURISTIC
        assert parsed.analysis.recommendation == "review"

    def test_missing_required_field_falls_back(self, make_change, analysis_payload):
        payload = analysis_payload()
        del payload["recommendation"]
        parsed = parse_analysis_response(json.dumps(payload), make_change())
        assert parsed.source == AnalysisSource.HEURISTIC

    def test_unknown_enums_coerced(self, make_change, analysis_payload):
        payload = analysis_payload(category="cosmetic", riskLevel="extreme", recommendation="maybe")
        parsed = parse_analysis_response(json.dumps(payload), make_change())
        assert parsed.source == AnalysisSource.AI
        assert parsed.analysis.category == "substantive"
        assert parsed.analysis.risk_level == "medium"
        assert parsed.analysis.recommendation == "review"

    def test_unhashable_category_coerced(self, analysis_payload):
        analysis = normalize_analysis(analysis_payload(category=["editorial"]))
        assert analysis.category == "substantive"

    def test_optional_fields_defaulted(self):
        analysis = normalize_analysis({"summary": "s", "riskLevel": "low", "recommendation": "accept"})
        assert analysis.impact == "Impact assessment unavailable."
        assert analysis.recommendation_reason == "No specific reasoning provided."
        assert analysis.compliance_flags == []

    def test_non_string_flags_dropped(self, analysis_payload):
        analysis = normalize_analysis(analysis_payload(complianceFlags=["Missing cap", 3, None]))
        assert analysis.compliance_flags == ["Missing cap"]

    def test_snake_case_keys_accepted(self):
        assert is_valid_analysis({"summary": "s", "risk_level": "low", "recommendation": "accept"})

    def test_non_string_summary_invalid(self):
        assert not is_valid_analysis({"summary": 1, "riskLevel": "low", "recommendation": "accept"})


class TestBatchParsing:

    def test_maps_by_index(self, make_change, batch_payload):
        changes = [make_change(category="editorial") for _ in range(3)]
        results = parse_batch_response(batch_payload(3), changes)
        assert sorted(results) == [0, 1, 2]
        assert all(r.source == AnalysisSource.AI for r in results.values())

    def test_out_of_order_elements(self, make_change, analysis_payload):
        changes = [make_change(), make_change()]
        payload = [analysis_payload(changeIndex=1, summary="second"), analysis_payload(changeIndex=0, summary="first")]
        results = parse_batch_response(json.dumps(payload), changes)
        assert results[0].analysis.summary == "first"
        assert results[1].analysis.summary == "second"

    def test_missing_and_invalid_indices_backfilled(self, make_change, analysis_payload):
        changes = [make_change(category="editorial") for _ in range(4)]
        payload = [
            analysis_payload(changeIndex=0),
            analysis_payload(changeIndex=7),
            analysis_payload(changeIndex=True),
            analysis_payload(changeIndex="2"),
            analysis_payload(),
        ]
        results = parse_batch_response(json.dumps(payload), changes)
        assert results[0].source == AnalysisSource.AI
        for i in (1, 2, 3):
            assert results[i].source == AnalysisSource.HEURISTIC
            assert results[i].analysis.risk_level == "low"

    def test_duplicate_index_keeps_first(self, make_change, analysis_payload):
        payload = [analysis_payload(changeIndex=0, summary="first"), analysis_payload(changeIndex=0, summary="dup")]
        results = parse_batch_response(json.dumps(payload), [make_change()])
        assert results[0].analysis.summary == "first"

    def test_fenced_array(self, make_change, batch_payload):
        results = parse_batch_response(f"```json\n{batch_payload(2)}\n```", [make_change(), make_change()])
        assert all(r.source == AnalysisSource.AI for r in results.values())

    def test_unparseable_all_heuristic(self, make_change):
        changes = [make_change(), make_change()]
        results = parse_batch_response("Sorry, I cannot help.", changes)
        assert [r.source for r in results.values()] == [AnalysisSource.HEURISTIC] * 2

    def test_object_instead_of_array(self, make_change, analysis_payload):
        results = parse_batch_response(json.dumps(analysis_payload(changeIndex=0)), [make_change()])
        assert results[0].source == AnalysisSource.HEURISTIC


class TestCounterproposalParsing:

    def test_direct(self):
        response = parse_counterproposal_response(json.dumps(COUNTERPROPOSAL))
        assert response.proposed_text == COUNTERPROPOSAL["proposedText"]
        assert response.preserves == "A fixed delivery deadline."

    def test_fenced_equivalent(self):
        raw = json.dumps(COUNTERPROPOSAL)
        assert parse_counterproposal_response(f"```json\n{raw}\n```") == parse_counterproposal_response(raw)

    def test_optional_fields_default_empty(self):
        response = parse_counterproposal_response(json.dumps({"proposedText": "x", "rationale": "y"}))
        assert response.changes_from_yours == ""
        assert response.changes_from_theirs == ""

    def test_prose_raises(self):
        with pytest.raises(ResponseParseError) as exc:
            parse_counterproposal_response("Let's meet in the middle.")
        assert exc.value.raw_text == "Let's meet in the middle."

    @pytest.mark.parametrize("payload", [
        {"proposedText": "", "rationale": "y"},
        {"proposedText": "   ", "rationale": "y"},
        {"proposedText": "x", "rationale": ""},
        {"proposedText": 5, "rationale": "y"},
        {"rationale": "y"},
    ])
    def test_empty_or_missing_fields_raise(self, payload):
        with pytest.raises(ResponseParseError):
            parse_counterproposal_response(json.dumps(payload))
