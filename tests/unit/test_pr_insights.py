"""
Unit tests for pull request summaries and analytics.
"""

import json
from datetime import datetime, timezone
from typing import Any, Callable

import httpx
import pytest
from httpx import AsyncClient

from devhub.api.deps import get_pr_insights_service
from devhub.clients.chat_backend import ChatBackendClient
from devhub.clients.jira import JiraClient, map_issue
from devhub.core.config import JiraSettings
from devhub.core.exceptions import ChatBackendError, InvalidRequestError
from devhub.main import app
from devhub.services.jira_service import JiraService, format_issues_for_prompt
from devhub.services.pr_insights_service import (
    PullRequestInsightsService,
    build_summary_prompt,
    parse_insights,
    summarize_pull_requests,
)

NOW = datetime(2024, 3, 10, tzinfo=timezone.utc)

PULLS: list[dict[str, Any]] = [
    {
        "title": "PLAT-12 Add AccountService",
        "body": "Implements the account service described in the design review, with tests.",
        "state": "closed",
        "created_at": "2024-03-01T00:00:00Z",
        "merged_at": "2024-03-03T00:00:00Z",
        "changed_files": 4,
        "additions": 120,
        "deletions": 10,
        "repository": {"name": "api", "language": "Apex"},
    },
    {
        "title": "Tidy imports",
        "body": "",
        "state": "closed",
        "created_at": "2024-01-15T00:00:00Z",
        "merged_at": None,
        "changed_files": 1,
        "additions": 3,
        "deletions": 3,
        "repository": {"name": "web", "language": "TypeScript"},
    },
    {
        "title": "Fix PLAT-13 flaky test",
        "body": "",
        "state": "open",
        "created_at": "2024-03-08T00:00:00Z",
        "merged_at": None,
        "changed_files": 2,
        "additions": 5,
        "deletions": 1,
        "repository": {"name": "api", "language": "Apex"},
    },
]


def _jira_issue(key: str) -> dict[str, Any]:
    return {
        "key": key,
        "fields": {
            "summary": f"Summary of {key}",
            "description": "x" * 250,
            "status": {"name": "Done"},
            "issuetype": {"name": "Story"},
            "priority": {"name": "High"},
        },
    }


def _jira(configured: bool = True) -> JiraService:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_jira_issue(request.url.path.rsplit("/", 1)[-1]))

    config = JiraSettings(
        base_url="https://jira.test" if configured else "",
        email="bot@example.com" if configured else "",
        api_token="token" if configured else "",
    )
    return JiraService(JiraClient(config=config, transport=httpx.MockTransport(handler)), config=config)


def _chat(respond: Callable[[dict[str, Any]], httpx.Response], prompts: list[str]) -> ChatBackendClient:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        prompts.append(body["prompt"])
        return respond(body)

    return ChatBackendClient(transport=httpx.MockTransport(handler))


class TestMetrics:
    def test_summarize_pull_requests(self) -> None:
        metrics = summarize_pull_requests(PULLS, "ada", now=NOW)

        assert metrics["total_prs"] == 3
        assert metrics["time_span"] == {"earliest_pr": "2024-01-15", "latest_pr": "2024-03-08"}
        assert metrics["repositories"] == ["api", "web"]
        assert metrics["languages"] == ["Apex", "TypeScript"]
        assert metrics["state_distribution"] == {"open": 1, "merged": 1, "closed": 1}
        assert metrics["size_metrics"]["largest_pr"] == 4
        assert metrics["size_metrics"]["smallest_pr"] == 1
        assert metrics["size_metrics"]["avg_lines_added"] == 43
        assert metrics["timing_metrics"] == {"avg_merge_time_days": 2, "merge_success_rate": 33}
        assert metrics["recent_activity"] == {"last_30_days": 2, "last_7_days": 1}
        assert metrics["description_quality"] == {"with_description": 1, "total": 3}

    def test_empty_list(self) -> None:
        metrics = summarize_pull_requests([], now=NOW)
        assert metrics["time_span"]["earliest_pr"] is None
        assert metrics["size_metrics"]["largest_pr"] == 0
        assert metrics["timing_metrics"]["merge_success_rate"] == 0


class TestParseInsights:
    def test_json_inside_prose(self) -> None:
        raw = 'Here you go:\n{"pattern_analysis": {"content": "Small PRs"}, "strengths": ["Fast"], ' \
              '"recommendations": [{"title": "a"}, {"title": "b"}, {"title": "c"}, {"title": "d"}, {"title": "e"}]}'
        insights = parse_insights(raw)
        assert insights["pattern_analysis"]["content"] == "Small PRs"
        assert insights["strengths"]["content"] == ["Fast"]
        assert insights["improvement_areas"]["content"] == [
            "Continue current practices and explore new opportunities"
        ]
        assert len(insights["recommendations"]) == 4

    def test_rejects_non_json(self) -> None:
        with pytest.raises(ChatBackendError, match="Invalid JSON"):
            parse_insights("I cannot help with that")
        with pytest.raises(ChatBackendError, match="Empty response"):
            parse_insights("   ")


def test_summary_prompt_by_type() -> None:
    assert "**Key changes:**" in build_summary_prompt("pull_request", "diff here")
    assert "**JIRA context:** PLAT-1" in build_summary_prompt("commit", "diff", "PLAT-1: x")
    assert build_summary_prompt("other", "text").endswith("text")


def test_issue_lines_truncate_descriptions() -> None:
    line = format_issues_for_prompt([map_issue(_jira_issue("PLAT-1"))])
    assert line.startswith("PLAT-1: Summary of PLAT-1 | Status: Done | Type: Story | Priority: High")
    assert line.endswith("x" * 200 + "...")


class TestPullRequestInsightsService:
    @pytest.mark.asyncio
    async def test_summary_carries_jira_context(self) -> None:
        prompts: list[str] = []
        service = PullRequestInsightsService(
            _chat(lambda body: httpx.Response(200, json={"text": "  Adds a service.  "}), prompts),
            _jira(),
        )

        result = await service.summarize(
            content="diff --git a/x b/x",
            content_type="pullrequest",
            title="PLAT-12 Add AccountService",
        )

        assert result == {"status": "success", "summary": "Adds a service."}
        assert "PLAT-12: Summary of PLAT-12" in prompts[0]
        assert "diff --git a/x b/x" in prompts[0]

    @pytest.mark.asyncio
    async def test_summary_from_data_without_jira(self) -> None:
        prompts: list[str] = []
        service = PullRequestInsightsService(
            _chat(lambda body: httpx.Response(200, json={"text": "A repo."}), prompts),
            _jira(configured=False),
        )

        result = await service.summarize(data={"name": "api"}, content_type="repository", title="PLAT-1")
        assert result["summary"] == "A repo."
        assert '{"name": "api"}' in prompts[0]
        assert "JIRA" not in prompts[0]

    @pytest.mark.asyncio
    async def test_summary_errors(self) -> None:
        service = PullRequestInsightsService(
            _chat(lambda body: httpx.Response(200, json={"text": "   "}), []),
            _jira(),
        )
        with pytest.raises(InvalidRequestError):
            await service.summarize()
        with pytest.raises(ChatBackendError, match="empty"):
            await service.summarize(content="something")

    @pytest.mark.asyncio
    async def test_analytics_uses_model_answer(self) -> None:
        prompts: list[str] = []
        answer = {"text": json.dumps({"pattern_analysis": {"content": "Steady"}, "strengths": ["Focus"]})}
        service = PullRequestInsightsService(_chat(lambda body: httpx.Response(200, json=answer), prompts), _jira())

        result = await service.analyze_pull_requests(PULLS, {"githubLogin": "ada"})

        assert result["insights"]["pattern_analysis"]["content"] == "Steady"
        assert "serviceNotice" not in result
        assert 'developer "ada"' in prompts[0]
        assert "PLAT-12: Summary of PLAT-12" in prompts[0]
        assert "PLAT-13: Summary of PLAT-13" in prompts[0]

    @pytest.mark.asyncio
    async def test_analytics_falls_back_when_backend_unavailable(self) -> None:
        service = PullRequestInsightsService(
            _chat(lambda body: httpx.Response(503, text="Service Unavailable"), []),
            _jira(configured=False),
        )

        result = await service.analyze_pull_requests(PULLS)

        assert result["serviceNotice"] == "AI analysis temporarily unavailable - showing data-based insights"
        insights = result["insights"]
        assert insights["strengths"]["title"] == "Strengths (Data-Based)"
        assert insights["recommendations"][0]["title"] == "Service Notice"
        assert insights["recommendations"][1]["title"] == "Maintain Current Approach"

    @pytest.mark.asyncio
    async def test_analytics_other_failures_propagate(self) -> None:
        service = PullRequestInsightsService(
            _chat(lambda body: httpx.Response(500, text="boom"), []),
            _jira(configured=False),
        )
        with pytest.raises(ChatBackendError):
            await service.analyze_pull_requests(PULLS)

        with pytest.raises(InvalidRequestError):
            await service.analyze_pull_requests({"not": "a list"})


@pytest.mark.asyncio
async def test_summarize_route(async_client: AsyncClient, auth_headers: dict[str, str]) -> None:
    service = PullRequestInsightsService(
        _chat(lambda body: httpx.Response(200, json={"text": "Short summary"}), []),
        _jira(configured=False),
    )
    app.dependency_overrides[get_pr_insights_service] = lambda: service

    response = await async_client.post("/api/v1/github/summarize", json={"content": "x"})
    assert response.status_code == 401

    response = await async_client.post(
        "/api/v1/github/summarize",
        json={"content": "x", "type": "commit", "branchName": "feature/PLAT-9"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["summary"] == "Short summary"

    response = await async_client.post("/api/v1/github/pr-analytics", json={"prData": "x"}, headers=auth_headers)
    assert response.status_code == 400
