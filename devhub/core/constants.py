"""
System-wide constants for the DevHub gateway.
"""

from enum import Enum


# =============================================================================
# Enums
# =============================================================================


class MessageRole(str, Enum):
    """Message roles in a chat."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatVisibility(str, Enum):
    """Who can open a chat besides its owner."""

    PRIVATE = "private"
    SHARED = "shared"
    PUBLIC = "public"


class VoteType(str, Enum):
    """Direction of a vote."""

    UP = "up"
    DOWN = "down"


class UserRole(str, Enum):
    """Dashboard roles."""

    USER = "user"
    ADMIN = "admin"


class FeedbackType(str, Enum):
    """Kinds of application feedback."""

    BUG_REPORT = "bug_report"
    FEATURE_REQUEST = "feature_request"
    IMPROVEMENT_SUGGESTION = "improvement_suggestion"
    GENERAL_FEEDBACK = "general_feedback"
    USABILITY_ISSUE = "usability_issue"


class FeedbackPriority(str, Enum):
    """Application feedback priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class FeedbackStatus(str, Enum):
    """Application feedback lifecycle states."""

    OPEN = "open"
    IN_REVIEW = "in_review"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class SalesforceAuthType(str, Enum):
    """How a Salesforce org connection authenticates."""

    USERNAME_PASSWORD = "username_password"
    OAUTH2 = "oauth2"
    JWT = "jwt"
    SESSION_ID = "session_id"


class StreamEventType(str, Enum):
    """Frame types emitted to the UI on streaming endpoints."""

    CONTENT = "content"
    PROGRESS = "progress"
    CODE = "code"
    RESULT = "result"
    ERROR = "error"
    DONE = "done"


# =============================================================================
# API Constants
# =============================================================================

API_VERSION = "v1"
API_PREFIX = f"/api/{API_VERSION}"

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

# =============================================================================
# Chat Constants
# =============================================================================

NEW_CHAT_TITLE = "New Chat"
TITLE_MAX_LENGTH = 60
TITLE_FALLBACK_LENGTH = 40
TITLE_MAX_WORDS = 6

# Quote characters stripped from generated titles (straight, curly, backtick, acute)
TITLE_QUOTE_CHARS = "\"'“”‘’`´"

DEFAULT_CODE_LANGUAGE = "apex"

# =============================================================================
# Model Catalog
# =============================================================================

DEFAULT_MODELS = [
    "ibm/granite-3-3-8b-instruct",
    "ibm/granite-3-2-8b-instruct",
    "meta-llama/llama-3-3-70b-instruct",
    "mistralai/mistral-large",
    "openai/gpt-oss-120b",
]
DEFAULT_MODEL = "ibm/granite-3-3-8b-instruct"

# =============================================================================
# GitHub / JIRA
# =============================================================================

GITHUB_ACCEPT_HEADER = "application/vnd.github.v3+json"
REPOS_CACHE_KEY = "repos:{org}:{page}:{per_page}:{archived}:{sort}:{direction}:{type}"
TIMELINE_COMMIT_LIMIT = 50
NO_DIFF_MESSAGE = "No diff available for this file"

JIRA_ISSUE_KEY_PATTERN = r"\b([A-Z]{2,10}-\d{1,6})\b"
JIRA_DEFAULT_ISSUE_TYPE = "Task"
JIRA_SUBTASK_FALLBACK_TYPE = "Sub-task"
JIRA_FEEDBACK_LABELS = ["feedback", "usability-feedback"]

# =============================================================================
# File Types
# =============================================================================

EXTENSION_LANGUAGES = {
    "js": "javascript",
    "ts": "typescript",
    "py": "python",
    "java": "java",
    "html": "html",
    "css": "css",
    "json": "json",
    "md": "markdown",
    "cls": "apex",
    "trigger": "apex",
}

# =============================================================================
# Analytics
# =============================================================================

ACTIVE_USER_WINDOW_DAYS = 30
ANALYTICS_WINDOW_DAYS = 30
RECENT_FEEDBACK_DAYS = 7
POSITIVE_RATING_THRESHOLD = 60

USER_ANALYTICS_CSV_HEADERS = [
    "User ID",
    "Name",
    "Email",
    "Last Login",
    "Created At",
    "Total Chats",
    "Total Messages",
    "Total Feedbacks",
    "Total App Feedbacks",
    "Average Rating",
    "Role",
    "Is Active",
    "Activity Score",
]

APP_FEEDBACK_CSV_HEADERS = [
    "ID",
    "User ID",
    "Type",
    "Title",
    "Description",
    "Category",
    "Priority",
    "Status",
    "Tags",
    "Upvotes",
    "Created At",
    "Updated At",
]

# (lower bound, colour) pairs, checked top-down
RATING_COLOR_SCALE = [
    (90, "#22c55e"),
    (80, "#84cc16"),
    (70, "#86efac"),
    (60, "#fde047"),
    (50, "#fdba74"),
    (40, "#f97316"),
    (30, "#ef4444"),
    (20, "#dc2626"),
]
RATING_COLOR_FLOOR = "#7f1d1d"
NOT_RATED_COLOR = "#6b7280"
NOT_RATED_LABEL = "Not Rated"

