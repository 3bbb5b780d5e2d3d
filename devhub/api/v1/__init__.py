"""
API v1 routers.
"""

from devhub.api.v1 import (
    application_feedback,
    chat,
    dashboard,
    feedback,
    github,
    health,
    history,
    jira,
    logs,
    models,
    requirements,
    salesforce,
    share,
    vote,
)

__all__ = [
    "application_feedback",
    "chat",
    "dashboard",
    "feedback",
    "github",
    "health",
    "history",
    "jira",
    "logs",
    "models",
    "requirements",
    "salesforce",
    "share",
    "vote",
]
