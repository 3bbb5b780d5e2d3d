"""
Repository implementations for data access.
"""

from devhub.repositories.app_feedback_repo import ApplicationFeedbackRepository
from devhub.repositories.cache_repo import InMemoryCacheRepository
from devhub.repositories.chat_repo import ChatRepository
from devhub.repositories.feedback_repo import FeedbackRepository
from devhub.repositories.salesforce_repo import SalesforceConnectionRepository

__all__ = [
    "ChatRepository",
    "FeedbackRepository",
    "ApplicationFeedbackRepository",
    "SalesforceConnectionRepository",
    "InMemoryCacheRepository",
]
