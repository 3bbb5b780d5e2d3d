"""
Unit tests for SSE parsing and analysis event helpers.
"""

from typing import AsyncIterator

import pytest

from devhub.core.exceptions import ChatBackendError
from devhub.services.sse import (
    NOT_DONE_ERROR,
    extract_analysis_from_event,
    extract_metrics_from_event,
    format_sse,
    iter_sse_events,
    parse_sse_block,
    prime_stream,
    validate_sse_event,
)


async def _lines(*lines: str) -> AsyncIterator[str]:
    for line in lines:
        yield line


class TestParsing:
    """Tests for block parsing and event grouping."""

    def test_parse_named_json_event(self) -> None:
        event = parse_sse_block('event: progress\ndata: {"content": "Searching"}')
        assert event is not None
        assert event.event == "progress"
        assert event.data == {"content": "Searching"}
        assert event.is_json

    def test_multiple_data_lines_are_joined(self) -> None:
        event = parse_sse_block("data: first\ndata: second")
        assert event is not None
        assert event.data == "first\nsecond"
        assert not event.is_json

    def test_block_without_data_is_skipped(self) -> None:
        assert parse_sse_block("event: heartbeat") is None

    @pytest.mark.asyncio
    async def test_iter_events_keeps_order_and_flushes_tail(self) -> None:
        events = [
            e
            async for e in iter_sse_events(
                _lines('data: {"n": 1}', "", "event: code", 'data: {"n": 2}', "", 'data: {"n": 3}')
            )
        ]
        assert [e.data["n"] for e in events] == [1, 2, 3]
        assert events[1].event == "code"

    def test_format_sse(self) -> None:
        assert format_sse({"a": 1}) == 'data: {"a": 1}\n\n'
        assert format_sse({"a": 1}, event="done") == 'event: done\ndata: {"a": 1}\n\n'


class TestPrimeStream:
    """Tests for pulling the first chunk before responding."""

    @pytest.mark.asyncio
    async def test_first_item_is_replayed(self) -> None:
        async def source() -> AsyncIterator[int]:
            for i in range(3):
                yield i

        stream = await prime_stream(source())
        assert [i async for i in stream] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_upstream_error_raises_before_streaming(self) -> None:
        async def failing() -> AsyncIterator[bytes]:
            raise ChatBackendError("down")
            yield b""  # pragma: no cover

        with pytest.raises(ChatBackendError):
            await prime_stream(failing())

    @pytest.mark.asyncio
    async def test_empty_stream(self) -> None:
        async def empty() -> AsyncIterator[bytes]:
            return
            yield b""  # pragma: no cover

        stream = await prime_stream(empty())
        assert [chunk async for chunk in stream] == []


class TestAnalysisEvents:
    """Tests for locating analyses in result events."""

    analysis = {"requirement_summary": "Build a case list", "tasks": []}

    def test_top_level_analysis(self) -> None:
        data = {"done": True, "analysis": self.analysis}
        result = validate_sse_event(data)
        assert result["is_valid"]
        assert result["analysis_path"] == "data.analysis"
        assert extract_analysis_from_event(data) == self.analysis

    def test_nested_complete_step(self) -> None:
        data = {"done": True, "details": {"step": "complete", "details": {"analysis": self.analysis}}}
        result = validate_sse_event(data)
        assert result["analysis_path"] == "data.details.details.analysis"
        assert extract_analysis_from_event(data) == self.analysis

    def test_missing_done_is_still_valid(self) -> None:
        result = validate_sse_event({"details": {"analysis": self.analysis}})
        assert result["is_valid"]
        assert result["errors"] == [NOT_DONE_ERROR]

    def test_no_analysis(self) -> None:
        result = validate_sse_event({"done": True})
        assert not result["is_valid"]
        assert not result["has_analysis"]
        assert extract_analysis_from_event({"done": True}) is None

    def test_non_object_data(self) -> None:
        assert validate_sse_event(None)["errors"] == ["Event data is null or undefined"]
        assert validate_sse_event("text")["errors"] == ["Event data is not an object"]

    def test_metrics_fall_back_to_defaults(self) -> None:
        metrics = extract_metrics_from_event({"done": True})
        assert metrics["cache_hits"] == 0
        assert metrics["start_time"] == metrics["end_time"]

        nested = extract_metrics_from_event({"details": {"metrics": {"cache_hits": 4}}})
        assert nested == {"cache_hits": 4}
