"""Unit tests for LLM response parsing.

Covers extract_json (fences, surrounding prose) and the strict schema in
parse_suggestion, which must fail closed on missing or mistyped fields.
"""

from __future__ import annotations

import pytest

from billq.errors import UpstreamUnavailable
from billq.suggestions.parser import extract_json, parse_suggestion

VALID = (
    '[{"description": "Reviewed contract redlines", "duration_minutes": 25, '
    '"category": "email", "confidence": 0.82, "customer_name": "Client Co"}]'
)


class TestExtractJSON:
    def test_plain_array(self):
        assert extract_json("[1, 2]") == [1, 2]

    def test_markdown_code_block(self):
        assert extract_json('```json\n{"a": 1}\n```') == {"a": 1}

    def test_surrounding_text(self):
        assert extract_json('Here you go: [{"a": 1}] hope that helps') == [{"a": 1}]

    def test_skips_unbalanced_bracket_before_json(self):
        assert extract_json('note [see below] {"a": 1}') == {"a": 1}
        assert extract_json('[oops {"a": 1}') == {"a": 1}

    @pytest.mark.parametrize("text", ["", "   ", "no json here", "[unclosed"])
    def test_no_json_raises(self, text):
        with pytest.raises(UpstreamUnavailable):
            extract_json(text)


class TestParseSuggestion:
    def test_valid_array(self):
        parsed = parse_suggestion(VALID)
        assert parsed.description == "Reviewed contract redlines"
        assert parsed.duration_minutes == 25
        assert parsed.confidence == pytest.approx(0.82)
        assert parsed.customer_name == "Client Co"

    def test_single_object_accepted(self):
        parsed = parse_suggestion(
            '{"description": "Standup", "durationMinutes": 15, "category": "meeting", "confidence": 0.7}'
        )
        assert parsed.duration_minutes == 15
        assert parsed.customer_name is None

    def test_empty_array_means_not_work(self):
        assert parse_suggestion("[]") is None

    @pytest.mark.parametrize(
        "payload",
        [
            # missing description
            '[{"duration_minutes": 10, "category": "email", "confidence": 0.5}]',
            # duration as text
            '[{"description": "x", "duration_minutes": "10", "category": "email", "confidence": 0.5}]',
            # duration out of range
            '[{"description": "x", "duration_minutes": 0, "category": "email", "confidence": 0.5}]',
            # confidence as text
            '[{"description": "x", "duration_minutes": 10, "category": "email", "confidence": "high"}]',
            # confidence above 1
            '[{"description": "x", "duration_minutes": 10, "category": "email", "confidence": 1.5}]',
            # boolean confidence
            '[{"description": "x", "duration_minutes": 10, "category": "email", "confidence": true}]',
            # blank description
            '[{"description": "  ", "duration_minutes": 10, "category": "email", "confidence": 0.5}]',
            # not an object
            '["just a string"]',
        ],
    )
    def test_schema_violations_fail_closed(self, payload):
        with pytest.raises(UpstreamUnavailable):
            parse_suggestion(payload)
