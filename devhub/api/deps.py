"""
API dependencies for dependency injection.
"""

from typing import AsyncIterator, Optional

from fastapi import Depends, Request

from devhub.clients.analysis import AnalysisServiceClient
from devhub.clients.chat_backend import ChatBackendClient
from devhub.clients.github import GitHubClient
from devhub.clients.jira import JiraClient
from devhub.core.config import settings
from devhub.core.exceptions import AuthenticationError, AuthorizationError
from devhub.core.logging import bind_context
from devhub.domain.user import CurrentUser
from devhub.repositories.app_feedback_repo import ApplicationFeedbackRepository
from devhub.repositories.cache_repo import InMemoryCacheRepository
from devhub.repositories.chat_repo import ChatRepository
from devhub.repositories.feedback_repo import FeedbackRepository
from devhub.repositories.salesforce_repo import SalesforceConnectionRepository
from devhub.services.analytics_service import AnalyticsService
from devhub.services.chat_service import ChatService
from devhub.services.github_service import GitHubService
from devhub.services.jira_service import JiraService
from devhub.services.log_analysis import LogAnalysisService
from devhub.services.pr_insights_service import PullRequestInsightsService
from devhub.services.requirement_service import RequirementAnalysisService
from devhub.services.title_generator import TitleGenerator


class ServiceContainer:
    """
    Container for all application services.
    Provides singleton instances of services.
    """

    _instance: Optional["ServiceContainer"] = None

    def __init__(self) -> None:
        self._initialized = False

    @classmethod
    def get_instance(cls) -> "ServiceContainer":
        """Get the singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def initialize(self) -> None:
        """Initialize all services."""
        if self._initialized:
            return

        # Upstream clients
        self._chat_client = ChatBackendClient()
        self._analysis_client = AnalysisServiceClient()
        self._jira_client = JiraClient()

        # Repositories
        self._cache_repository = InMemoryCacheRepository()
        self._chat_repository = ChatRepository()
        self._feedback_repository = FeedbackRepository()
        self._app_feedback_repository = ApplicationFeedbackRepository()
        self._salesforce_repository = SalesforceConnectionRepository()

        # Services
        self._title_generator = TitleGenerator(self._chat_client)
        self._chat_service = ChatService(
            chat_repository=self._chat_repository,
            chat_client=self._chat_client,
            title_generator=self._title_generator,
        )
        self._jira_service = JiraService(self._jira_client)
        self._pr_insights_service = PullRequestInsightsService(self._chat_client, self._jira_service)
        self._analytics_service = AnalyticsService()
        self._requirement_service = RequirementAnalysisService(self._analysis_client)
        self._log_analysis_service = LogAnalysisService(self._analysis_client)

        self._initialized = True

    async def close(self) -> None:
        """Stop background work and close upstream connections."""
        if not self._initialized:
            return
        await self._chat_service.shutdown()
        await self._chat_client.close()
        await self._analysis_client.close()
        await self._jira_client.close()
        await self._cache_repository.clear()

    @property
    def chat_client(self) -> ChatBackendClient:
        """Get the chat backend client."""
        self.initialize()
        return self._chat_client

    @property
    def cache(self) -> InMemoryCacheRepository:
        """Get the cache repository."""
        self.initialize()
        return self._cache_repository

    @property
    def chat_repository(self) -> ChatRepository:
        self.initialize()
        return self._chat_repository

    @property
    def feedback_repository(self) -> FeedbackRepository:
        self.initialize()
        return self._feedback_repository

    @property
    def app_feedback_repository(self) -> ApplicationFeedbackRepository:
        self.initialize()
        return self._app_feedback_repository

    @property
    def salesforce_repository(self) -> SalesforceConnectionRepository:
        self.initialize()
        return self._salesforce_repository

    @property
    def chat_service(self) -> ChatService:
        """Get the chat service."""
        self.initialize()
        return self._chat_service

    @property
    def title_generator(self) -> TitleGenerator:
        self.initialize()
        return self._title_generator

    @property
    def jira_service(self) -> JiraService:
        """Get the JIRA service."""
        self.initialize()
        return self._jira_service

    @property
    def pr_insights_service(self) -> PullRequestInsightsService:
        self.initialize()
        return self._pr_insights_service

    @property
    def analytics_service(self) -> AnalyticsService:
        self.initialize()
        return self._analytics_service

    @property
    def requirement_service(self) -> RequirementAnalysisService:
        self.initialize()
        return self._requirement_service

    @property
    def log_analysis_service(self) -> LogAnalysisService:
        self.initialize()
        return self._log_analysis_service


# Singleton container instance
container = ServiceContainer.get_instance()


# Dependency functions for FastAPI
def get_chat_client() -> ChatBackendClient:
    """Get the chat backend client instance."""
    return container.chat_client


def get_cache() -> InMemoryCacheRepository:
    """Get the cache repository instance."""
    return container.cache


def get_chat_repository() -> ChatRepository:
    return container.chat_repository


def get_feedback_repository() -> FeedbackRepository:
    return container.feedback_repository


def get_app_feedback_repository() -> ApplicationFeedbackRepository:
    return container.app_feedback_repository


def get_salesforce_repository() -> SalesforceConnectionRepository:
    return container.salesforce_repository


def get_chat_service() -> ChatService:
    """Get the chat service instance."""
    return container.chat_service


def get_title_generator() -> TitleGenerator:
    return container.title_generator


def get_jira_service() -> JiraService:
    """Get the JIRA service instance."""
    return container.jira_service


def get_pr_insights_service() -> PullRequestInsightsService:
    return container.pr_insights_service


def get_analytics_service() -> AnalyticsService:
    return container.analytics_service


def get_requirement_service() -> RequirementAnalysisService:
    return container.requirement_service


def get_log_analysis_service() -> LogAnalysisService:
    return container.log_analysis_service


# =============================================================================
# Request identity
# =============================================================================


async def get_current_user(
    request: Request,
    chat_repository: ChatRepository = Depends(get_chat_repository),
) -> CurrentUser:
    """
    Resolve the signed-in user from the session layer's headers.

    The user row is created on first sight and its last login refreshed.
    """
    email = (request.headers.get(settings.security.user_email_header) or "").strip()
    if not email:
        raise AuthenticationError()

    name = request.headers.get(settings.security.user_name_header) or None
    user = await chat_repository.get_or_create_user(email, name)
    bind_context(user_id=user.id)

    return CurrentUser(id=user.id, email=user.email, name=user.name, role=user.role)


def get_optional_github_token(request: Request) -> Optional[str]:
    return request.headers.get(settings.security.github_token_header) or settings.github.token or None


def get_github_token(request: Request) -> str:
    """The caller's GitHub token, else the configured fallback."""
    token = get_optional_github_token(request)
    if not token:
        raise AuthorizationError("GitHub access token not available")
    return token


async def get_github_service(
    user: CurrentUser = Depends(get_current_user),
    token: str = Depends(get_github_token),
    cache: InMemoryCacheRepository = Depends(get_cache),
) -> AsyncIterator[GitHubService]:
    """A GitHubService bound to the caller's token for one request."""
    client = GitHubClient(token)
    try:
        yield GitHubService(client, cache)
    finally:
        await client.close()


async def get_optional_user(
    request: Request,
    chat_repository: ChatRepository = Depends(get_chat_repository),
) -> Optional[CurrentUser]:
    """The signed-in user when the headers name one, else None."""
    if not request.headers.get(settings.security.user_email_header):
        return None
    return await get_current_user(request, chat_repository)
