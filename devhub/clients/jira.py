"""
JIRA REST v2 client.
"""

import base64
from typing import Any, Optional

import httpx

from devhub.clients.base import BaseHTTPClient
from devhub.core.config import JiraSettings, settings
from devhub.core.exceptions import ConfigurationError, InvalidRequestError, JiraError
from devhub.core.logging import get_logger

logger = get_logger(__name__)


def _decode_content(item: dict[str, str]) -> bytes:
    """Decode an attachment's base64 payload."""
    try:
        return base64.b64decode(item.get("content") or "", validate=True)
    except ValueError as e:
        raise InvalidRequestError(
            f"Attachment {item.get('fileName')} is not valid base64", field="content"
        ) from e


# Statuses meaning "not visible to this account"; treated as a missing issue
_MISSING_STATUSES = {401, 403, 404}


def _name(value: Optional[dict[str, Any]], key: str = "name") -> Optional[str]:
    return value.get(key) if value else None


def map_issue(data: dict[str, Any]) -> dict[str, Any]:
    """Flatten a REST issue payload into the shape the UI consumes."""
    fields = data.get("fields", {})
    status = fields.get("status") or {}
    category = status.get("statusCategory") or {}
    return {
        "id": data.get("id"),
        "key": data.get("key"),
        "summary": fields.get("summary", ""),
        "description": fields.get("description") or "",
        "status": {
            "name": status.get("name"),
            "statusCategory": {"key": category.get("key"), "name": category.get("name")},
        },
        "priority": _name(fields.get("priority")),
        "assignee": _name(fields.get("assignee"), "displayName"),
        "reporter": _name(fields.get("reporter"), "displayName"),
        "created": fields.get("created"),
        "updated": fields.get("updated"),
        "resolutiondate": fields.get("resolutiondate"),
        "issuetype": _name(fields.get("issuetype")),
        "project": {
            "key": _name(fields.get("project"), "key"),
            "name": _name(fields.get("project")),
        },
        "labels": fields.get("labels", []),
        "components": [c.get("name") for c in fields.get("components", [])],
        "fixVersions": [v.get("name") for v in fields.get("fixVersions", [])],
    }


def map_comment(data: dict[str, Any]) -> dict[str, Any]:
    author = data.get("author") or {}
    return {
        "id": data.get("id"),
        "author": author.get("displayName") or author.get("emailAddress"),
        "body": data.get("body", ""),
        "created": data.get("created"),
        "updated": data.get("updated"),
    }


class JiraClient(BaseHTTPClient):
    """Async JIRA client authenticating with email + API token."""

    error_class = JiraError

    def __init__(
        self,
        config: Optional[JiraSettings] = None,
        timeout: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config or settings.jira
        super().__init__(
            base_url=self.config.base_url,
            timeout=timeout,
            headers={
                "Accept": "application/json",
                "X-Atlassian-Token": "no-check",
                "User-Agent": "devhub-gateway",
            },
            auth=(self.config.email, self.config.api_token),
            transport=transport,
        )

    @property
    def service_name(self) -> str:
        return "JIRA"

    def browse_url(self, key: str) -> str:
        return f"{self.base_url}/browse/{key}"

    async def _get_client(self) -> httpx.AsyncClient:
        if not self.config.is_configured:
            raise ConfigurationError(
                "JIRA is not configured",
                details={"required": ["JIRA_BASE_URL", "JIRA_EMAIL", "JIRA_API_TOKEN"]},
            )
        return await super()._get_client()

    async def _get_or_none(self, endpoint: str, params: Optional[dict[str, Any]] = None) -> Any:
        response = await self._request_raw("GET", endpoint, params=params)
        if response.status_code in _MISSING_STATUSES:
            logger.warning(
                "JIRA resource not accessible",
                endpoint=endpoint,
                status_code=response.status_code,
            )
            return None
        self._raise_for_status(response, endpoint)
        return response.json()

    async def get_issue(self, key: str) -> Optional[dict[str, Any]]:
        """Fetch an issue, or None when it does not exist or is hidden."""
        data = await self._get_or_none(f"/rest/api/2/issue/{key}")
        return map_issue(data) if data else None

    async def get_comments(self, key: str) -> list[dict[str, Any]]:
        data = await self._get_or_none(f"/rest/api/2/issue/{key}/comment")
        if not data:
            return []
        return [map_comment(c) for c in data.get("comments", [])]

    async def add_comment(self, key: str, body: str) -> dict[str, Any]:
        data = await self._post(f"/rest/api/2/issue/{key}/comment", {"body": body})
        return map_comment(data)

    async def get_issue_types(self, project_key: str) -> list[dict[str, Any]]:
        data = await self._get(f"/rest/api/2/issue/createmeta/{project_key}/issuetypes")
        return (data or {}).get("values", [])

    async def create_issue(self, fields: dict[str, Any]) -> dict[str, Any]:
        """Create an issue. Returns {id, key, self}."""
        return await self._post("/rest/api/2/issue", {"fields": fields})

    async def add_attachments(
        self,
        key: str,
        attachments: list[dict[str, str]],
    ) -> list[dict[str, Any]]:
        """
        Upload attachments to an issue.

        Args:
            key: Issue key
            attachments: Items with fileName, base64 content and mimeType
        """
        files = [
            (
                "file",
                (
                    item["fileName"],
                    _decode_content(item),
                    item.get("mimeType") or "application/octet-stream",
                ),
            )
            for item in attachments
        ]
        data = await self._request("POST", f"/rest/api/2/issue/{key}/attachments", files=files)
        return [
            {"id": a.get("id"), "filename": a.get("filename"), "size": a.get("size")}
            for a in data or []
        ]

    async def health_check(self) -> bool:
        try:
            await self._get("/rest/api/2/myself")
            return True
        except (JiraError, ConfigurationError):
            return False
