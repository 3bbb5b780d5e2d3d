"""SQLAlchemy models for users, chats, feedback and org connections."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from devhub.core.constants import (
    ChatVisibility,
    FeedbackPriority,
    FeedbackStatus,
    FeedbackType,
    MessageRole,
    SalesforceAuthType,
    UserRole,
)
from devhub.core.security import generate_id


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class UserDB(Base):
    """A signed-in person, keyed by email."""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[UserRole] = mapped_column(Enum(UserRole), default=UserRole.USER, nullable=False)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    chats: Mapped[list["ChatDB"]] = relationship(
        "ChatDB",
        back_populates="owner",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def display_name(self) -> str:
        return self.name or self.email or "Unknown"

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"


class ChatDB(Base):
    """A conversation. Its id is chosen by the client before the first message."""
    __tablename__ = "chats"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    visibility: Mapped[ChatVisibility] = mapped_column(
        Enum(ChatVisibility), default=ChatVisibility.PRIVATE, nullable=False
    )
    # [{userId, name, email, addedAt}]
    shared_with: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    last_modified_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False, index=True
    )

    owner: Mapped[UserDB] = relationship("UserDB", back_populates="chats")
    messages: Mapped[list["MessageDB"]] = relationship(
        "MessageDB",
        back_populates="chat",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="MessageDB.created_at",
    )
    feedbacks: Mapped[list["MessageFeedbackDB"]] = relationship(
        "MessageFeedbackDB",
        back_populates="chat",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def is_shared_with(self, email: str) -> bool:
        return any(entry.get("email") == email for entry in (self.shared_with or []))

    def __repr__(self) -> str:
        return f"<Chat(id={self.id}, title={self.title!r})>"


class MessageDB(Base):
    """A single user or assistant turn."""
    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_id)
    chat_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[MessageRole] = mapped_column(Enum(MessageRole), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    model: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    chat: Mapped[ChatDB] = relationship("ChatDB", back_populates="messages")

    __table_args__ = (
        Index("ix_messages_chat_created", "chat_id", "created_at"),
    )


class MessageFeedbackDB(Base):
    """A vote on an assistant message, with optional rating and JIRA link."""
    __tablename__ = "message_feedback"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    chat_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True
    )
    message_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    is_upvoted: Mapped[bool] = mapped_column(Boolean, default=False)
    comments: Mapped[str] = mapped_column(Text, default="")
    rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    category: Mapped[str] = mapped_column(String(100), default="general")
    has_jira_issue: Mapped[bool] = mapped_column(Boolean, default=False)
    jira_issue: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    last_modified_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    chat: Mapped[ChatDB] = relationship("ChatDB", back_populates="feedbacks")


class ApplicationFeedbackDB(Base):
    """Feedback about the product itself rather than a single answer."""
    __tablename__ = "application_feedback"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    feedback_type: Mapped[FeedbackType] = mapped_column(Enum(FeedbackType), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(100), default="General")
    priority: Mapped[FeedbackPriority] = mapped_column(Enum(FeedbackPriority), nullable=False)
    status: Mapped[FeedbackStatus] = mapped_column(
        Enum(FeedbackStatus), default=FeedbackStatus.OPEN, nullable=False, index=True
    )
    tags: Mapped[list[str]] = mapped_column(JSON, default=list)
    browser_info: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    contact_info: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    upvotes: Mapped[int] = mapped_column(Integer, default=0)
    downvotes: Mapped[int] = mapped_column(Integer, default=0)
    # [{userId, vote}]
    user_votes: Mapped[list[dict[str, str]]] = mapped_column(JSON, default=list)
    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class SalesforceConnectionDB(Base):
    """A user's saved Salesforce org connection. Credentials are stored hashed only."""
    __tablename__ = "salesforce_connections"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    connection_id: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    auth_type: Mapped[SalesforceAuthType] = mapped_column(Enum(SalesforceAuthType), nullable=False)
    instance_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    org_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    org_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    user_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    user_email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    version: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_used: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    auth_data_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    org_info: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    user_info: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "connection_id", name="uq_salesforce_user_connection"),
    )
