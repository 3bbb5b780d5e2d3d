"""
Requirement analysis service.

Consumes the analyzer's SSE stream and re-emits a small, stable set of
frames (progress, result, error) for the blueprint screen.
"""

import asyncio
from typing import Any, AsyncIterator, Optional

from pydantic import ValidationError as PydanticValidationError

from devhub.clients.analysis import AnalysisServiceClient
from devhub.core.config import ChatBackendSettings, settings
from devhub.core.exceptions import AnalysisServiceError, DevHubError, TimeoutError
from devhub.core.logging import get_logger
from devhub.domain.analysis import AnalysisResult, AnalysisTask, ProcessingMetrics, ProgressUpdate
from devhub.services.sse import (
    SSEEvent,
    extract_analysis_from_event,
    extract_metrics_from_event,
    iter_sse_events,
    validate_sse_event,
)

logger = get_logger(__name__)

STREAM_CLOSED_MESSAGE = "Stream closed before analysis was completed"

MOCK_SUMMARY = (
    "This requirement involves building a custom Salesforce component to display and "
    "manage customer service cases, with filtering, quick actions and integration with "
    "the existing case management APIs."
)

MOCK_COMPONENTS = [
    "Case list display",
    "Filter options",
    "Quick actions",
    "Case management integration",
]

MOCK_QUERIES = [
    "Create a new Apex controller class for managing case data retrieval with proper error handling",
    "Develop a Lightning Web Component to display the case list with filter controls",
    "Implement the case detail view with action buttons and status indicators",
    "Write unit tests for the Apex controller with at least 90% code coverage",
]


def _error_frame(message: str) -> dict[str, Any]:
    return {"type": "error", "message": message}


def _progress_frame(data: dict[str, Any]) -> Optional[dict[str, Any]]:
    details = data.get("details")
    if not isinstance(details, dict):
        return None
    try:
        update = ProgressUpdate(**details)
    except PydanticValidationError:
        logger.debug("Skipping malformed progress update", details=details)
        return None
    return {"type": "progress", **update.model_dump()}


def _result_frame(data: dict[str, Any]) -> Optional[dict[str, Any]]:
    if data.get("done") is not True:
        return None

    validation = validate_sse_event(data)
    if not validation["has_analysis"]:
        logger.warning("Result event without analysis", errors=validation["errors"])
        return None

    analysis = extract_analysis_from_event(data)
    if analysis is None:
        return None

    return {
        "type": "result",
        "analysis": analysis,
        "metrics": extract_metrics_from_event(data),
        "done": True,
    }


def normalize_analysis_event(event: SSEEvent) -> Optional[dict[str, Any]]:
    """
    Map one analyzer event to a UI frame.

    Unnamed events are classified by ``data.type``. Heartbeats and
    anything unrecognised map to None.
    """
    data = event.data
    if not isinstance(data, dict):
        return None

    kind = event.event or data.get("type")

    if kind == "progress":
        return None if data.get("done") else _progress_frame(data)
    if kind == "result":
        return _result_frame(data)
    if kind == "error":
        return _error_frame(data.get("content") or data.get("message") or "Analysis failed")
    if kind != "heartbeat":
        logger.debug("Unhandled analysis event", event_type=kind)
    return None


class RequirementAnalysisService:
    """Streams and collects requirement analyses."""

    def __init__(
        self,
        client: AnalysisServiceClient,
        config: Optional[ChatBackendSettings] = None,
    ) -> None:
        self.client = client
        self.config = config or settings.chat_api

    async def analyze_stream(
        self,
        requirement: str,
        options: Optional[dict[str, Any]] = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """
        Yield normalised frames until a result, an error or the timeout.

        The whole stream shares one deadline of ``analysis_timeout`` seconds.
        """
        timeout = self.config.analysis_timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        events = iter_sse_events(self.client.requirement_analysis_stream(requirement, options))

        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise asyncio.TimeoutError
                try:
                    event = await asyncio.wait_for(events.__anext__(), timeout=remaining)
                except StopAsyncIteration:
                    break

                frame = normalize_analysis_event(event)
                if frame is None:
                    continue
                yield frame
                if frame["type"] in ("result", "error"):
                    return

            logger.warning("Analysis stream ended without a result")
            yield _error_frame(STREAM_CLOSED_MESSAGE)

        except asyncio.TimeoutError:
            error = TimeoutError("requirement analysis", timeout)
            logger.error("Requirement analysis timed out", timeout_seconds=timeout)
            yield {**_error_frame(error.message), "code": error.code}
        except DevHubError as e:
            logger.error("Requirement analysis failed", error=e.message)
            yield _error_frame(e.message)
        finally:
            await events.aclose()

    async def analyze(
        self,
        requirement: str,
        options: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """
        Run an analysis to completion.

        Returns:
            Dict with analysis and metrics

        Raises:
            TimeoutError: When the analysis outlives the timeout
            AnalysisServiceError: On an error frame or a missing result
        """
        async for frame in self.analyze_stream(requirement, options):
            if frame["type"] == "result":
                analysis = AnalysisResult(**frame["analysis"])
                logger.info("Requirement analysis completed", task_count=analysis.task_count)
                return {
                    "analysis": analysis.model_dump(),
                    "metrics": ProcessingMetrics(**frame["metrics"]).model_dump(),
                }
            if frame["type"] == "error":
                if frame.get("code") == "TIMEOUT":
                    raise TimeoutError("requirement analysis", self.config.analysis_timeout)
                raise AnalysisServiceError(frame["message"])

        raise AnalysisServiceError(STREAM_CLOSED_MESSAGE)

    def mock_analysis(self, requirement: str = "") -> dict[str, Any]:
        """Fixed blueprint the screen shows when no analyzer is connected."""
        tasks = [
            AnalysisTask(
                task_id=index,
                title=query.split(" with ")[0],
                description=query,
                implementation_details=query,
                estimated_complexity="Medium",
            )
            for index, query in enumerate(MOCK_QUERIES, start=1)
        ]
        analysis = AnalysisResult(
            requirement_summary=MOCK_SUMMARY,
            key_components=MOCK_COMPONENTS,
            tasks=tasks,
        )
        return {
            "analysis": analysis.model_dump(),
            "queries": [
                {"query": query, "id": f"query-{index}"}
                for index, query in enumerate(MOCK_QUERIES, start=1)
            ],
        }
