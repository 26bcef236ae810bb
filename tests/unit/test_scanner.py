"""Unit tests for the brace/string-aware JSON object scanner."""

from __future__ import annotations

import json

from planstream.plans.scanner import find_json_object, find_unquoted, iter_json_objects


class TestFindJsonObject:
    def test_braces_inside_string_do_not_end_object(self) -> None:
        text = 'before {"a": "}{"} after'
        span = find_json_object(text)
        assert span is not None
        assert text[span[0] : span[1]] == '{"a": "}{"}'

    def test_escaped_quote_stays_inside_string(self) -> None:
        text = r'x {"a": "say \"}\" now", "b": 1} y'
        span = find_json_object(text)
        assert span is not None
        assert json.loads(text[span[0] : span[1]]) == {"a": 'say "}" now', "b": 1}

    def test_nested_objects_return_outermost(self) -> None:
        text = '{"a": {"b": {"c": 1}}, "d": 2}'
        assert find_json_object(text) == (0, len(text))

    def test_unclosed_object_returns_none(self) -> None:
        assert find_json_object('text {"a": {"b": 1}') is None

    def test_no_object_returns_none(self) -> None:
        assert find_json_object("no braces here") is None

    def test_quotes_in_surrounding_prose_are_ignored(self) -> None:
        text = 'He said "don\'t" and then {"k": "v"}'
        span = find_json_object(text)
        assert span is not None
        assert text[span[0] : span[1]] == '{"k": "v"}'

    def test_quoted_brace_in_prose_is_skipped(self) -> None:
        text = 'say "{" then {"a": 1}'
        span = find_json_object(text)
        assert span is not None
        assert text[span[0] : span[1]] == '{"a": 1}'

    def test_unbalanced_quote_in_prose_hides_object(self) -> None:
        assert find_json_object('a 5" screen {"a": 1}') is None

    def test_stray_closing_brace_before_object_is_ignored(self) -> None:
        text = '} oops {"k": 1}'
        span = find_json_object(text)
        assert span is not None
        assert text[span[0] : span[1]] == '{"k": 1}'

    def test_restartable_from_offset(self) -> None:
        text = '{"first": 1} and {"second": 2}'
        first = find_json_object(text)
        assert first == (0, 12)
        second = find_json_object(text, first[1])
        assert second is not None
        assert text[second[0] : second[1]] == '{"second": 2}'

    def test_growing_buffer_matches_only_once_closed(self) -> None:
        full = '{"candidates": [{"text": "a}b"}]}'
        for cut in range(len(full)):
            assert find_json_object(full[:cut]) is None
        assert find_json_object(full) == (0, len(full))


class TestIterJsonObjects:
    def test_yields_consecutive_objects(self) -> None:
        text = '[{"a": 1},\n{"b": 2},\n{"c": "}"}]'
        spans = list(iter_json_objects(text))
        assert [json.loads(text[s:e]) for s, e in spans] == [{"a": 1}, {"b": 2}, {"c": "}"}]

    def test_stops_at_incomplete_tail(self) -> None:
        text = '{"a": 1} {"b": '
        assert list(iter_json_objects(text)) == [(0, 8)]


class TestFindUnquoted:
    def test_skips_matches_inside_strings(self) -> None:
        text = '{"d": "use ``` here"}\n```'
        assert find_unquoted(text, "```") == len(text) - 3

    def test_escaped_quote_keeps_string_open(self) -> None:
        text = r'{"d": "a \" ``` b"} ```'
        assert find_unquoted(text, "```") == text.rindex("```")

    def test_open_string_hides_everything_after(self) -> None:
        assert find_unquoted('{"d": "unterminated ```', "```") == -1

    def test_respects_start(self) -> None:
        assert find_unquoted("``` x ```", "```", 1) == 6
