"""
Server-sent event parsing and framing.

Upstream services stream ``event:``/``data:`` blocks separated by blank
lines. These helpers turn those blocks into SSEEvent objects, format frames
for the UI and dig analysis payloads out of the several shapes the
requirement analyzer has used over time.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterable, AsyncIterator, Optional, TypeVar

from devhub.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

NOT_DONE_ERROR = 'Event is not marked as "done"'


@dataclass
class SSEEvent:
    """One parsed server-sent event."""

    event: Optional[str]
    data: Any
    raw: str

    @property
    def is_json(self) -> bool:
        return isinstance(self.data, (dict, list))


def _field_value(line: str, prefix: str) -> str:
    value = line[len(prefix):]
    return value[1:] if value.startswith(" ") else value


def parse_sse_block(block: str) -> Optional[SSEEvent]:
    """
    Parse a single SSE block.

    Multiple ``data:`` lines are joined with newlines. JSON payloads are
    decoded; anything else is kept as text.

    Returns:
        The event, or None when the block carries no data
    """
    event: Optional[str] = None
    data_lines: list[str] = []

    for line in block.splitlines():
        if line.startswith("event:"):
            event = _field_value(line, "event:").strip() or None
        elif line.startswith("data:"):
            data_lines.append(_field_value(line, "data:"))

    if not data_lines:
        return None

    raw = "\n".join(data_lines)
    try:
        data: Any = json.loads(raw)
    except json.JSONDecodeError:
        data = raw

    return SSEEvent(event=event, data=data, raw=raw)


async def iter_sse_events(lines: AsyncIterable[str]) -> AsyncIterator[SSEEvent]:
    """
    Group upstream lines into events, preserving receipt order.

    A final block that is not followed by a blank line is still emitted.
    """
    buffer: list[str] = []
    async for line in lines:
        if line.strip():
            buffer.append(line.rstrip("\r"))
            continue
        if buffer:
            event = parse_sse_block("\n".join(buffer))
            buffer = []
            if event is not None:
                yield event

    if buffer:
        event = parse_sse_block("\n".join(buffer))
        if event is not None:
            yield event


def format_sse(payload: Any, event: Optional[str] = None) -> str:
    """Serialize a payload as one SSE frame."""
    prefix = f"event: {event}\n" if event else ""
    return f"{prefix}data: {json.dumps(payload, default=str)}\n\n"


async def prime_stream(stream: AsyncIterator[T]) -> AsyncIterator[T]:
    """
    Pull the first item of a stream before a response is started.

    Upstream errors therefore raise here, where they can still become a
    JSON error response, instead of after the headers have been sent.
    """
    try:
        first = await stream.__anext__()
    except StopAsyncIteration:
        first = None
        empty = True
    else:
        empty = False

    async def relay() -> AsyncIterator[T]:
        if not empty:
            yield first
        async for item in stream:
            yield item

    return relay()


# =============================================================================
# Analysis event helpers
# =============================================================================


def _as_dict(value: Any) -> Optional[dict[str, Any]]:
    return value if isinstance(value, dict) else None


def validate_sse_event(data: Any) -> dict[str, Any]:
    """
    Check that a result event carries an analysis.

    Returns:
        Dict with is_valid, has_analysis, analysis_path and errors. An event
        whose only complaint is a missing ``done`` flag is still valid.
    """
    result: dict[str, Any] = {
        "is_valid": False,
        "has_analysis": False,
        "analysis_path": "",
        "errors": [],
    }

    if data is None:
        result["errors"].append("Event data is null or undefined")
        return result
    if not isinstance(data, dict):
        result["errors"].append("Event data is not an object")
        return result

    if data.get("done") is not True:
        result["errors"].append(NOT_DONE_ERROR)

    details = _as_dict(data.get("details")) or {}
    nested = _as_dict(details.get("details")) or {}

    if data.get("analysis"):
        result["analysis_path"] = "data.analysis"
    elif details.get("analysis"):
        result["analysis_path"] = "data.details.analysis"
    elif details.get("step") == "complete" and nested.get("analysis"):
        result["analysis_path"] = "data.details.details.analysis"
    else:
        result["errors"].append("No analysis data found in event")

    result["has_analysis"] = bool(result["analysis_path"])
    result["is_valid"] = result["has_analysis"] and (
        not result["errors"] or result["errors"] == [NOT_DONE_ERROR]
    )
    return result


def _looks_like_analysis(value: Any) -> bool:
    return isinstance(value, dict) and any(
        value.get(key) for key in ("tasks", "key_components", "requirement_summary")
    )


def extract_analysis_from_event(data: Any) -> Optional[dict[str, Any]]:
    """Find the analysis object wherever the service put it."""
    if not isinstance(data, dict):
        return None

    if _as_dict(data.get("analysis")):
        return data["analysis"]

    details = _as_dict(data.get("details"))
    if details is None:
        return None

    if _as_dict(details.get("analysis")):
        return details["analysis"]

    if details.get("step") == "complete":
        nested = _as_dict(details.get("details"))
        candidate = (nested.get("analysis") or details) if nested else details
        if _looks_like_analysis(candidate):
            return candidate

    return None


def default_metrics() -> dict[str, Any]:
    now = datetime.now(timezone.utc).isoformat()
    return {
        "cache_hits": 0,
        "cache_misses": 0,
        "parallel_operations": 0,
        "average_processing_time": 0,
        "execution_time": 0,
        "start_time": now,
        "end_time": now,
    }


def extract_metrics_from_event(data: Any) -> dict[str, Any]:
    """Processing metrics from the event, or zeroed defaults."""
    if not isinstance(data, dict):
        return default_metrics()

    if _as_dict(data.get("metrics")):
        return data["metrics"]

    details = _as_dict(data.get("details"))
    if details and _as_dict(details.get("metrics")):
        return details["metrics"]

    return default_metrics()
