"""
LLM summaries of pull requests and commits, and pattern analytics over a
developer's pull requests.

Both enrich their prompts with the JIRA issues the PR text refers to.
"""

import json
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from devhub.clients.chat_backend import ChatBackendClient
from devhub.core.exceptions import (
    ChatBackendError,
    ConfigurationError,
    InvalidRequestError,
    JiraError,
)
from devhub.core.logging import get_logger
from devhub.services.jira_service import (
    JiraService,
    extract_issue_references,
    format_issues_for_prompt,
)
from devhub.services.model_catalog import get_default_model

logger = get_logger(__name__)

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)

SERVICE_NOTICE = "AI analysis temporarily unavailable - showing data-based insights"

SUMMARY_PROMPTS = {
    "pull_request": (
        "You are a senior developer reviewing a pull request. Write a short summary "
        "a reviewer can read in half a minute.\n\n"
        "**What it does:** one sentence on the purpose and outcome.\n"
        "**Key changes:** three or four bullets naming the important files, features or fixes.\n"
        "**Why it matters:** the problem solved or the value added.\n"
        "{jira}"
        "**Developer notes:** risks or review points, briefly.\n\n"
        "{content}"
    ),
    "commit": (
        "You are a senior developer reading a commit. Write a short summary a "
        "developer can read in twenty seconds.\n\n"
        "**Summary:** one sentence on what the commit accomplishes.\n"
        "**Changes made:** three or four bullets on the functional changes.\n"
        "**Impact:** what this means for the codebase or its users.\n"
        "{jira}"
        "**Notes:** side effects worth knowing, briefly.\n\n"
        "{content}"
    ),
    "repository": (
        "You analyse GitHub repositories. Give a two or three sentence overview "
        "of this repository:\n\n{content}"
    ),
}
GENERIC_SUMMARY_PROMPT = (
    "Summarise the following GitHub information in two or three sentences:\n\n{content}"
)

ANALYTICS_PROMPT = """You are a software engineering analyst who studies pull request habits.
Analyse the pull requests of developer "{user}" and give actionable insights.

**PR SUMMARY DATA:**
- Total PRs: {total_prs}
- Time span: {earliest} to {latest}
- Repositories: {repositories}
- Languages: {languages}
- State distribution: {open} open, {merged} merged, {closed} closed
- Average files changed per PR: {avg_files_changed}
- Average lines added per PR: {avg_lines_added}
- Average lines deleted per PR: {avg_lines_deleted}
- Largest PR size: {largest_pr} files
- Average merge time: {avg_merge_time_days} days
- Merge success rate: {merge_success_rate}%
- Recent activity: {last_30_days} PRs in last 30 days, {last_7_days} in last 7 days
- Description quality: {with_description}/{total_prs} PRs have detailed descriptions
- Sample PR titles: {titles}
{jira}
Reply with ONLY this JSON object, basing every point on the numbers above:
{{
  "pattern_analysis": {{"content": "two or three sentences on size, frequency and scope"}},
  "strengths": ["three to five strengths"],
  "improvement_areas": ["three or four improvement areas"],
  "recommendations": [{{"title": "action", "description": "concrete steps"}}]
}}
"""


def normalize_summary_type(value: Optional[str]) -> Optional[str]:
    return "pull_request" if value == "pullrequest" else value


def build_summary_prompt(content_type: Optional[str], content: str, jira_context: str = "") -> str:
    template = SUMMARY_PROMPTS.get(content_type or "", GENERIC_SUMMARY_PROMPT)
    jira = f"**JIRA context:** {jira_context}\n" if jira_context else ""
    return template.replace("{jira}", jira).replace("{content}", content)


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _average(values: list[int]) -> int:
    return round(sum(values) / len(values)) if values else 0


def summarize_pull_requests(
    pulls: list[dict[str, Any]],
    user: str = "User",
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Aggregate metrics over a list of pull requests.

    Args:
        pulls: GitHub pull request payloads, optionally with a
            ``repository`` object holding name and language
        user: Login shown in the prompt
        now: Reference time for the recent-activity windows

    Returns:
        Dict of counts, averages and samples used to build the prompt
    """
    now = now or datetime.now(timezone.utc)
    created = [t for t in (_parse_time(p.get("created_at")) for p in pulls) if t]
    repositories = [(p.get("repository") or {}) for p in pulls]
    merged = [p for p in pulls if p.get("merged_at")]
    files_changed = [p.get("changed_files") or 0 for p in pulls]

    merge_days = []
    for pull in merged:
        opened, closed = _parse_time(pull.get("created_at")), _parse_time(pull.get("merged_at"))
        if opened and closed:
            merge_days.append((closed - opened).total_seconds() / 86400)

    return {
        "total_prs": len(pulls),
        "user": user,
        "time_span": {
            "earliest_pr": min(created).date().isoformat() if created else None,
            "latest_pr": max(created).date().isoformat() if created else None,
        },
        "repositories": list(dict.fromkeys(r["name"] for r in repositories if r.get("name"))),
        "languages": list(dict.fromkeys(r["language"] for r in repositories if r.get("language"))),
        "state_distribution": {
            "open": sum(1 for p in pulls if p.get("state") == "open"),
            "merged": len(merged),
            "closed": sum(1 for p in pulls if p.get("state") == "closed" and not p.get("merged_at")),
        },
        "size_metrics": {
            "avg_files_changed": _average(files_changed),
            "avg_lines_added": _average([p.get("additions") or 0 for p in pulls]),
            "avg_lines_deleted": _average([p.get("deletions") or 0 for p in pulls]),
            "largest_pr": max(files_changed, default=0),
            "smallest_pr": min(files_changed, default=0),
        },
        "timing_metrics": {
            "avg_merge_time_days": round(sum(merge_days) / len(merge_days)) if merge_days else 0,
            "merge_success_rate": round(len(merged) / len(pulls) * 100) if pulls else 0,
        },
        "recent_activity": {
            "last_30_days": sum(1 for t in created if t > now - timedelta(days=30)),
            "last_7_days": sum(1 for t in created if t > now - timedelta(days=7)),
        },
        "pr_titles_sample": [p.get("title") for p in pulls[:10]],
        "description_quality": {
            "with_description": sum(1 for p in pulls if len(p.get("body") or "") > 50),
            "total": len(pulls),
        },
    }


def build_analytics_prompt(metrics: dict[str, Any], jira_context: str = "") -> str:
    jira = ""
    if jira_context:
        jira = (
            f"**JIRA CONTEXT:**\n{jira_context}\n"
            "Use these issues to judge the kind and complexity of the work.\n"
        )
    return ANALYTICS_PROMPT.format(
        user=metrics["user"],
        total_prs=metrics["total_prs"],
        earliest=metrics["time_span"]["earliest_pr"],
        latest=metrics["time_span"]["latest_pr"],
        repositories=", ".join(metrics["repositories"]),
        languages=", ".join(metrics["languages"]),
        titles="; ".join(str(t) for t in metrics["pr_titles_sample"][:5]),
        jira=jira,
        **metrics["state_distribution"],
        **metrics["size_metrics"],
        **metrics["timing_metrics"],
        **metrics["recent_activity"],
        with_description=metrics["description_quality"]["with_description"],
    )


def parse_insights(raw: str) -> dict[str, Any]:
    """Pull the JSON object out of a model answer and shape it for display."""
    if not raw.strip():
        raise ChatBackendError("Empty response from AI model")

    match = _JSON_OBJECT_RE.search(raw)
    try:
        parsed = json.loads(match.group(0) if match else raw)
    except ValueError as e:
        raise ChatBackendError("Invalid JSON response from AI model") from e
    if not isinstance(parsed, dict):
        raise ChatBackendError("Invalid JSON response from AI model")

    pattern = parsed.get("pattern_analysis") or {}
    strengths = parsed.get("strengths")
    improvements = parsed.get("improvement_areas")
    recommendations = parsed.get("recommendations")
    return {
        "pattern_analysis": {
            "title": "Pattern Analysis",
            "content": (pattern.get("content") if isinstance(pattern, dict) else None)
            or "Analysis of your PR patterns shows interesting development trends.",
            "type": "text",
        },
        "strengths": {
            "title": "Strengths",
            "content": strengths if isinstance(strengths, list) else ["Building good development practices"],
            "type": "list",
        },
        "improvement_areas": {
            "title": "Improvement Areas",
            "content": improvements
            if isinstance(improvements, list)
            else ["Continue current practices and explore new opportunities"],
            "type": "list",
        },
        "recommendations": recommendations[:4]
        if isinstance(recommendations, list)
        else [{
            "title": "Maintain Excellence",
            "description": "Continue with current development practices and explore new opportunities for growth.",
        }],
    }


def fallback_insights(metrics: dict[str, Any]) -> dict[str, Any]:
    """Insights computed from the metrics alone, for when the model is down."""
    avg_size = metrics["size_metrics"]["avg_files_changed"]
    merge_rate = metrics["timing_metrics"]["merge_success_rate"]
    recent = metrics["recent_activity"]["last_30_days"]

    return {
        "pattern_analysis": {
            "title": "Pattern Analysis",
            "content": (
                f"Analysis of {metrics['total_prs']} PRs shows an average of {avg_size} files "
                f"changed per PR with a {merge_rate}% merge success rate. You've had {recent} PRs "
                "in the last 30 days. AI-powered insights are temporarily unavailable."
            ),
            "type": "text",
        },
        "strengths": {
            "title": "Strengths (Data-Based)",
            "content": [
                "High PR success rate" if merge_rate >= 80 else "Active contribution pattern",
                "Well-sized PR changes" if avg_size <= 8 else "Comprehensive code contributions",
                "Consistent recent activity" if recent > 0 else "Established development history",
            ],
            "type": "list",
        },
        "improvement_areas": {
            "title": "Areas to Consider",
            "content": [
                "Consider smaller, focused PRs" if avg_size > 10 else "Maintain current PR sizing",
                "Focus on PR quality and testing" if merge_rate < 70 else "Continue current practices",
            ],
            "type": "list",
        },
        "recommendations": [
            {
                "title": "Service Notice",
                "description": (
                    "AI analysis is temporarily unavailable. Basic insights are shown from your "
                    "PR data; try again later for detailed recommendations."
                ),
            },
            {
                "title": "Optimize PR Size",
                "description": "Break larger changes into smaller, focused PRs for faster reviews.",
            }
            if avg_size > 10
            else {
                "title": "Maintain Current Approach",
                "description": "Your PR sizing looks good. Keep your current practices.",
            },
        ],
    }


def _is_unavailable(error: ChatBackendError) -> bool:
    # No upstream status means the backend could not be reached at all
    return error.details.get("status_code") in (None, 503)


class PullRequestInsightsService:
    """Summaries and analytics generated through the chat backend."""

    def __init__(
        self,
        client: ChatBackendClient,
        jira_service: JiraService,
        model: Optional[str] = None,
    ) -> None:
        self.client = client
        self.jira_service = jira_service
        self.model = model

    async def _jira_context(self, keys: list[str]) -> str:
        """Formatted issues for the keys; empty when JIRA cannot help."""
        if not keys:
            return ""
        try:
            issues = await self.jira_service.fetch_issues(keys)
        except (JiraError, ConfigurationError) as e:
            logger.warning("Continuing without JIRA context", error=e.message)
            return ""
        logger.debug("Loaded JIRA context", requested=len(keys), found=len(issues))
        return format_issues_for_prompt(issues)

    async def summarize(
        self,
        content: Optional[str] = None,
        data: Any = None,
        content_type: Optional[str] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
        branch_name: Optional[str] = None,
        selected_model: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Summarise a pull request, commit, repository or arbitrary text.

        ``data`` is serialised to JSON when no ``content`` is given.
        """
        content_type = normalize_summary_type(content_type)
        if not content and data is not None:
            content = json.dumps(data)
        if not content:
            raise InvalidRequestError("Content is required for summarization", field="content")

        jira_context = ""
        if content_type in ("pull_request", "commit") and (title or description or branch_name):
            references = extract_issue_references(title, description, branch_name)
            jira_context = await self._jira_context([r["key"] for r in references])

        summary = await self.client.generate_text(
            build_summary_prompt(content_type, content, jira_context),
            model=selected_model or self.model or get_default_model(),
        )
        summary = summary.strip()
        if not summary:
            raise ChatBackendError("Generated summary was empty")

        logger.info("Generated summary", type=content_type, length=len(summary))
        return {"status": "success", "summary": summary}

    async def analyze_pull_requests(
        self,
        pr_data: Any,
        user_info: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """
        Ask the model for insights into a developer's pull request habits.

        When the chat backend is down or answers 503, insights derived
        from the metrics are returned with a ``serviceNotice``.
        """
        if not isinstance(pr_data, list):
            raise InvalidRequestError("Invalid PR data provided", field="prData")

        keys: list[str] = []
        for pull in pr_data:
            references = extract_issue_references(pull.get("title"), pull.get("body"))
            keys.extend(r["key"] for r in references)
        jira_context = await self._jira_context(list(dict.fromkeys(keys)))

        metrics = summarize_pull_requests(pr_data, (user_info or {}).get("githubLogin") or "User")
        try:
            raw = await self.client.generate_text(
                build_analytics_prompt(metrics, jira_context),
                model=self.model or get_default_model(),
            )
        except ChatBackendError as e:
            if not _is_unavailable(e):
                raise
            logger.warning("Chat backend unavailable, using data-based insights", error=e.message)
            return {
                "status": "success",
                "insights": fallback_insights(metrics),
                "serviceNotice": SERVICE_NOTICE,
            }

        return {"status": "success", "insights": parse_insights(raw)}
