"""
JIRA integration service: issue lookup, reference extraction and the
issue/sub-task creation used by downvote feedback.
"""

import asyncio
import json
import re
from typing import Any, Optional

from devhub.clients.jira import JiraClient
from devhub.core.config import JiraSettings, settings
from devhub.core.constants import (
    JIRA_DEFAULT_ISSUE_TYPE,
    JIRA_FEEDBACK_LABELS,
    JIRA_ISSUE_KEY_PATTERN,
    JIRA_SUBTASK_FALLBACK_TYPE,
)
from devhub.core.exceptions import InvalidRequestError, JiraError, NotFoundError
from devhub.core.logging import get_logger

logger = get_logger(__name__)

_ISSUE_KEY_RE = re.compile(JIRA_ISSUE_KEY_PATTERN)


def extract_issue_references(
    title: Optional[str] = None,
    description: Optional[str] = None,
    branch: Optional[str] = None,
) -> list[dict[str, str]]:
    """
    Find issue keys such as ``ABC-123`` in PR metadata.

    The first place a key is seen wins, checked in title, description,
    branch order.
    """
    references: list[dict[str, str]] = []
    seen: set[str] = set()

    for context, text in (("title", title), ("description", description), ("branch", branch)):
        if not text:
            continue
        for key in _ISSUE_KEY_RE.findall(text):
            if key not in seen:
                seen.add(key)
                references.append({"key": key, "context": context})

    return references


def format_issues_for_prompt(issues: list[dict[str, Any]]) -> str:
    """One line per issue, for inclusion in an LLM prompt."""
    lines = []
    for issue in issues:
        description = issue.get("description") or ""
        if len(description) > 200:
            description = description[:200] + "..."
        lines.append(
            f"{issue.get('key')}: {issue.get('summary')}"
            f" | Status: {(issue.get('status') or {}).get('name')}"
            f" | Type: {issue.get('issuetype')}"
            f" | Priority: {issue.get('priority')}"
            f" | Description: {description}"
        )
    return "\n".join(lines)


def _reporter_block(name: Optional[str], email: Optional[str]) -> str:
    return f"--- Reported by ---\nUser: {name or 'Unknown'}\nEmail: {email or 'Unknown'}"


def _parse_attachment(item: Any) -> Optional[dict[str, str]]:
    if isinstance(item, str):
        try:
            item = json.loads(item)
        except json.JSONDecodeError:
            logger.warning("Skipping attachment that is not valid JSON")
            return None
    if not isinstance(item, dict) or not item.get("fileName") or not item.get("content"):
        return None
    return item


class JiraService:
    """Business operations over a JiraClient."""

    def __init__(self, client: JiraClient, config: Optional[JiraSettings] = None) -> None:
        self.client = client
        self.config = config or settings.jira

    # =========================================================================
    # Lookup
    # =========================================================================

    async def fetch_issues(self, keys: list[str]) -> list[dict[str, Any]]:
        """
        Fetch several issues, a batch at a time.

        Missing or hidden issues are dropped; order follows the input.
        """
        issues: list[dict[str, Any]] = []
        batch_size = max(self.config.batch_size, 1)

        for start in range(0, len(keys), batch_size):
            batch = keys[start:start + batch_size]
            results = await asyncio.gather(*(self.client.get_issue(key) for key in batch))
            issues.extend(issue for issue in results if issue is not None)

        return issues

    async def lookup(
        self,
        issue_key: Optional[str] = None,
        issue_keys: Optional[list[str]] = None,
        extract_from: Optional[dict[str, Optional[str]]] = None,
    ) -> dict[str, Any]:
        """Resolve one key, a list of keys, or keys mentioned in PR metadata."""
        if issue_key:
            issue = await self.client.get_issue(issue_key)
            return {"status": "success", "issue": issue, "found": issue is not None}

        if issue_keys:
            issues = await self.fetch_issues(issue_keys)
            return {
                "status": "success",
                "issues": issues,
                "found": len(issues),
                "total": len(issue_keys),
            }

        if extract_from is not None:
            references = extract_issue_references(
                extract_from.get("title"),
                extract_from.get("description"),
                extract_from.get("branchName") or extract_from.get("branch"),
            )
            keys = [ref["key"] for ref in references]
            issues = await self.fetch_issues(keys) if keys else []
            return {
                "status": "success",
                "references": references,
                "issues": issues,
                "found": len(issues),
                "total": len(keys),
            }

        raise InvalidRequestError("Invalid request. Provide issueKey, issueKeys, or extractFrom parameters.")

    async def get_parent_task(self, parent_task_key: str) -> dict[str, Any]:
        issue = await self.client.get_issue(parent_task_key)
        if issue is None:
            raise NotFoundError("Parent task", parent_task_key, message="Parent task not found")
        return issue

    # =========================================================================
    # Comments
    # =========================================================================

    async def get_comments(self, key: str) -> list[dict[str, Any]]:
        return await self.client.get_comments(key)

    async def add_comment(self, key: str, body: str) -> dict[str, Any]:
        comment = await self.client.add_comment(key, body)
        if not comment.get("id"):
            raise JiraError("Failed to add comment to Jira issue", details={"issue_key": key})
        return comment

    # =========================================================================
    # Creation
    # =========================================================================

    async def _upload_attachments(self, key: str, attachments: Optional[list[Any]]) -> list[str]:
        """Upload one file at a time; a failed file is reported, not raised."""
        results: list[str] = []
        for raw in attachments or []:
            item = _parse_attachment(raw)
            if item is None:
                continue
            try:
                uploaded = await self.client.add_attachments(key, [item])
                results.append(uploaded[0]["filename"] if uploaded else item["fileName"])
            except (JiraError, InvalidRequestError) as e:
                logger.error("Attachment upload failed", issue_key=key, file=item["fileName"], error=e.message)
                results.append(f"Failed: {item['fileName']}")
        return results

    async def create_issue(
        self,
        summary: Optional[str],
        description: Optional[str],
        project_key: Optional[str],
        issue_type: Optional[str] = None,
        priority: Optional[str] = None,
        labels: Optional[list[str]] = None,
        reporter_name: Optional[str] = None,
        reporter_email: Optional[str] = None,
        attachments: Optional[list[Any]] = None,
    ) -> dict[str, Any]:
        if not summary or not description or not project_key:
            raise InvalidRequestError("Missing required fields: summary, description, or projectKey")

        fields: dict[str, Any] = {
            "project": {"key": project_key},
            "summary": summary,
            "description": f"{description}\n\n{_reporter_block(reporter_name, reporter_email)}",
            "issuetype": {"name": issue_type or JIRA_DEFAULT_ISSUE_TYPE},
            "labels": labels or [],
        }
        if priority:
            fields["priority"] = {"name": priority}

        created = await self.client.create_issue(fields)
        key = created["key"]
        logger.info("JIRA issue created", issue_key=key, project=project_key)

        return {
            "success": True,
            "issueKey": key,
            "issueId": created.get("id"),
            "issueUrl": self.client.browse_url(key),
            "attachments": await self._upload_attachments(key, attachments),
        }

    async def _subtask_type_name(self, project_key: str) -> str:
        try:
            issue_types = await self.client.get_issue_types(project_key)
        except JiraError as e:
            logger.warning("Could not discover issue types", project=project_key, error=e.message)
            issue_types = []

        for issue_type in issue_types:
            if issue_type.get("subtask"):
                return issue_type["name"]
        return JIRA_SUBTASK_FALLBACK_TYPE

    async def create_feedback_subtask(
        self,
        parent_task_key: Optional[str],
        summary: Optional[str],
        description: Optional[str],
        usability_percentage: Optional[int],
        chat_id: Optional[str],
        message_id: Optional[str],
        priority: Optional[str] = None,
        labels: Optional[list[str]] = None,
        reporter_name: Optional[str] = None,
        reporter_email: Optional[str] = None,
        attachments: Optional[list[Any]] = None,
    ) -> dict[str, Any]:
        """
        File a sub-task under a parent issue for a downvoted answer.

        Returns:
            Dict with subtaskKey, subtaskUrl, attachments and parentTask
        """
        if not all([parent_task_key, summary, description, usability_percentage, chat_id, message_id]):
            raise InvalidRequestError(
                "Missing required fields: parentTaskKey, summary, description, "
                "usabilityPercentage, chatId, messageId"
            )

        parent = await self.get_parent_task(parent_task_key)
        project_key = self.config.feedback_project_key

        full_description = (
            f"{description}\n\n"
            f"--- Usability Metrics ---\nUsability Percentage: {usability_percentage}%\n\n"
            f"{_reporter_block(reporter_name, reporter_email)}\n\n"
            f"--- Context ---\nChat ID: {chat_id}\nMessage ID: {message_id}\nParent Task: {parent_task_key}"
        )

        fields: dict[str, Any] = {
            "project": {"key": project_key},
            "parent": {"key": parent_task_key},
            "summary": summary,
            "description": full_description,
            "issuetype": {"name": await self._subtask_type_name(project_key)},
            "labels": [*(labels or []), *JIRA_FEEDBACK_LABELS],
        }
        if priority:
            fields["priority"] = {"name": priority}

        created = await self.client.create_issue(fields)
        key = created["key"]
        logger.info("Feedback sub-task created", issue_key=key, parent=parent_task_key)

        return {
            "subtaskKey": key,
            "subtaskUrl": self.client.browse_url(key),
            "attachments": await self._upload_attachments(key, attachments),
            "parentTask": {"key": parent["key"], "summary": parent["summary"]},
        }

    async def get_issue_types(self, project_key: str) -> list[dict[str, Any]]:
        return await self.client.get_issue_types(project_key)
