"""Unit tests for SSE line parsing and frame formatting."""

from __future__ import annotations

import json

from planstream.streaming.sse import (
    chat_delta_content,
    format_event,
    is_done_line,
    parse_data_line,
)


class TestParseDataLine:
    def test_data_line(self) -> None:
        line = 'data: {"choices": [{"delta": {"content": "Hi"}}]}'
        event = parse_data_line(line)
        assert event == {"choices": [{"delta": {"content": "Hi"}}]}

    def test_non_data_lines(self) -> None:
        assert parse_data_line("") is None
        assert parse_data_line(": keep-alive") is None
        assert parse_data_line("event: message") is None

    def test_done_sentinel_is_not_an_event(self) -> None:
        assert parse_data_line("data: [DONE]") is None

    def test_invalid_json_is_skipped(self) -> None:
        assert parse_data_line("data: {not json") is None

    def test_non_object_payload_is_skipped(self) -> None:
        assert parse_data_line("data: [1, 2]") is None


class TestIsDoneLine:
    def test_done(self) -> None:
        assert is_done_line("data: [DONE]")
        assert is_done_line("data: [DONE]  ")

    def test_not_done(self) -> None:
        assert not is_done_line("data: {}")
        assert not is_done_line("[DONE]")


class TestChatDeltaContent:
    def test_content(self) -> None:
        assert chat_delta_content({"choices": [{"delta": {"content": "x"}}]}) == "x"

    def test_missing_pieces(self) -> None:
        assert chat_delta_content({}) == ""
        assert chat_delta_content({"choices": []}) == ""
        assert chat_delta_content({"choices": [{"delta": {"role": "assistant"}}]}) == ""
        assert chat_delta_content({"choices": [{"delta": {"content": None}}]}) == ""
        assert chat_delta_content({"choices": [{"finish_reason": "stop"}]}) == ""


class TestFormatEvent:
    def test_frame(self) -> None:
        frame = format_event("token", {"token": "héllo"})
        assert frame == 'event: token\ndata: {"token": "héllo"}\n\n'

    def test_frame_data_round_trips(self) -> None:
        frame = format_event("done", {"text": "a\nb"})
        data_line = frame.split("\n")[1]
        assert json.loads(data_line[len("data: ") :]) == {"text": "a\nb"}
