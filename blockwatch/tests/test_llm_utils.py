"""Tests for shared LLM response parsing utilities."""

import pytest
from blockwatch.common.llm_utils import clean_response, extract_balanced_json, parse_llm_json


class TestParseLlmJson:
    def test_valid_json(self):
        assert parse_llm_json('{"isBlocker": true}') == {"isBlocker": True}

    def test_json_with_markdown_fences(self):
        raw = '```json\n{"isBlocker": false, "reasoning": "test"}\n```'
        assert parse_llm_json(raw) == {"isBlocker": False, "reasoning": "test"}

    def test_json_with_plain_fences(self):
        raw = '```\n{"a": 1}\n```'
        assert parse_llm_json(raw) == {"a": 1}

    def test_json_embedded_in_text(self):
        raw = 'Here is the result: {"key": "value"} and some trailing text.'
        assert parse_llm_json(raw) == {"key": "value"}

    def test_think_block_is_stripped(self):
        raw = '<think>the user says blocker, so {"isBlocker": maybe}</think>{"isBlocker": true}'
        assert parse_llm_json(raw) == {"isBlocker": True}

    def test_unclosed_think_block(self):
        raw = '<think>out of tokens {"confidence": 40}'
        assert parse_llm_json(raw) == {"confidence": 40}

    def test_no_json_returns_empty_dict(self):
        assert parse_llm_json("This is not JSON at all") == {}

    def test_empty_string_returns_empty_dict(self):
        assert parse_llm_json("") == {}

    def test_bare_list_returns_empty_dict(self):
        assert parse_llm_json("[1, 2]") == {}

    def test_invalid_json_with_braces_returns_empty(self):
        assert parse_llm_json('{"broken: json') == {}


class TestCleanResponse:
    def test_strips_think_and_fences(self):
        raw = "<THINK>hmm</THINK>\n```json\n{}\n```"
        assert clean_response(raw) == "{}"

    def test_empty(self):
        assert clean_response("") == ""


class TestExtractBalancedJson:
    def test_braces_inside_strings(self):
        assert extract_balanced_json('x {"a": "}"} y') == '{"a": "}"}'

    def test_escaped_quotes(self):
        assert extract_balanced_json(r'{"a": "say \"}\""} tail') == r'{"a": "say \"}\""}'

    @pytest.mark.parametrize("text", ["", "no brackets", "{unclosed"])
    def test_nothing_to_extract(self, text):
        assert extract_balanced_json(text) is None
