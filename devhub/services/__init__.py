"""
Service layer implementations.
"""

from devhub.services.analytics_service import AnalyticsService
from devhub.services.chat_service import ChatService
from devhub.services.github_service import GitHubService
from devhub.services.jira_service import JiraService
from devhub.services.log_analysis import LogAnalysisService
from devhub.services.requirement_service import RequirementAnalysisService
from devhub.services.title_generator import TitleGenerator

__all__ = [
    "ChatService",
    "TitleGenerator",
    "GitHubService",
    "JiraService",
    "AnalyticsService",
    "RequirementAnalysisService",
    "LogAnalysisService",
]
