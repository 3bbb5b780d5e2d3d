"""
Outbound HTTP clients.
"""

from devhub.clients.analysis import AnalysisServiceClient
from devhub.clients.base import BaseHTTPClient
from devhub.clients.chat_backend import ChatBackendClient
from devhub.clients.github import GitHubClient
from devhub.clients.jira import JiraClient

__all__ = [
    "BaseHTTPClient",
    "ChatBackendClient",
    "AnalysisServiceClient",
    "GitHubClient",
    "JiraClient",
]
