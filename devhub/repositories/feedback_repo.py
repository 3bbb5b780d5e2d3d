"""Repository for message votes and their feedback details."""

from __future__ import annotations

import math
from typing import Any, Optional

from sqlalchemy import func, select

from devhub.core.constants import VoteType
from devhub.core.exceptions import ChatNotFoundError
from devhub.core.logging import get_logger
from devhub.db.models import ChatDB, MessageDB, MessageFeedbackDB, utcnow
from devhub.db.session import get_async_session

logger = get_logger(__name__)

JIRA_UPDATABLE_FIELDS = ("status", "assignee", "priority", "labels")


def serialize_vote(feedback: MessageFeedbackDB) -> dict[str, Any]:
    return {
        "chatId": feedback.chat_id,
        "messageId": feedback.message_id,
        "isUpvoted": feedback.is_upvoted,
        "comments": feedback.comments,
        "rating": feedback.rating,
        "category": feedback.category,
        "hasJiraIssue": feedback.has_jira_issue,
        "jiraIssue": feedback.jira_issue,
        "createdAt": feedback.created_at.isoformat() if feedback.created_at else None,
    }


class FeedbackRepository:
    """Votes on assistant messages. One vote per message; re-voting replaces it."""

    async def vote_message(
        self,
        chat_id: str,
        message_id: str,
        user_id: str,
        vote_type: str,
        comments: str = "",
        rating: Optional[int] = None,
        category: Optional[str] = None,
        jira_issue: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        async with get_async_session() as session:
            if await session.get(ChatDB, chat_id) is None:
                raise ChatNotFoundError(chat_id)

            result = await session.execute(
                select(MessageFeedbackDB).where(MessageFeedbackDB.message_id == message_id)
            )
            feedback = result.scalar_one_or_none()

            if feedback is None:
                feedback = MessageFeedbackDB(chat_id=chat_id, message_id=message_id)
                session.add(feedback)

            feedback.user_id = user_id
            feedback.is_upvoted = vote_type == VoteType.UP.value
            feedback.comments = comments or ""
            feedback.rating = rating
            feedback.category = category or "general"
            feedback.has_jira_issue = jira_issue is not None
            feedback.jira_issue = jira_issue
            feedback.last_modified_at = utcnow()
            await session.flush()

            logger.info(
                "Vote recorded",
                chat_id=chat_id,
                message_id=message_id,
                vote_type=vote_type,
            )
            return serialize_vote(feedback)

    async def get_votes_by_chat(self, chat_id: str) -> list[dict[str, Any]]:
        async with get_async_session() as session:
            result = await session.execute(
                select(MessageFeedbackDB).where(MessageFeedbackDB.chat_id == chat_id)
            )
            return [serialize_vote(f) for f in result.scalars().all()]

    async def get_all_votes(self) -> list[dict[str, Any]]:
        async with get_async_session() as session:
            result = await session.execute(select(MessageFeedbackDB))
            return [serialize_vote(f) for f in result.scalars().all()]

    async def get_user_feedback_history(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 10,
    ) -> dict[str, Any]:
        """A user's votes, newest first, with chat title and message text."""
        page = max(page, 1)
        page_size = max(page_size, 1)

        async with get_async_session() as session:
            total = (
                await session.execute(
                    select(func.count())
                    .select_from(MessageFeedbackDB)
                    .where(MessageFeedbackDB.user_id == user_id)
                )
            ).scalar_one()

            rows = (
                await session.execute(
                    select(MessageFeedbackDB, ChatDB.title, MessageDB.content)
                    .outerjoin(ChatDB, ChatDB.id == MessageFeedbackDB.chat_id)
                    .outerjoin(MessageDB, MessageDB.id == MessageFeedbackDB.message_id)
                    .where(MessageFeedbackDB.user_id == user_id)
                    .order_by(MessageFeedbackDB.created_at.desc())
                    .offset((page - 1) * page_size)
                    .limit(page_size)
                )
            ).all()

        feedbacks = []
        for feedback, chat_title, message_content in rows:
            item = serialize_vote(feedback)
            item["id"] = feedback.id
            item["chatTitle"] = chat_title or "Untitled Chat"
            item["messageContent"] = message_content or ""
            feedbacks.append(item)

        total_pages = math.ceil(total / page_size) if total else 0
        return {
            "feedbacks": feedbacks,
            "totalCount": total,
            "totalPages": total_pages,
            "currentPage": page,
            "pageSize": page_size,
            "hasNextPage": page < total_pages,
            "hasPreviousPage": page > 1,
        }

    async def update_jira_issue(
        self,
        feedback_id: str,
        user_id: str,
        updates: dict[str, Any],
    ) -> Optional[dict[str, Any]]:
        """Merge status/assignee/priority/labels into the linked JIRA issue.

        Returns:
            The updated issue, or None when the feedback is missing or not
            owned by the user
        """
        async with get_async_session() as session:
            feedback = await session.get(MessageFeedbackDB, feedback_id)
            if feedback is None or feedback.user_id != user_id:
                return None

            issue = dict(feedback.jira_issue or {})
            for field in JIRA_UPDATABLE_FIELDS:
                if updates.get(field) is not None:
                    issue[field] = updates[field]
            issue["lastUpdated"] = utcnow().isoformat()

            feedback.jira_issue = issue
            feedback.has_jira_issue = True
            feedback.last_modified_at = utcnow()

        logger.info("Updated JIRA status on feedback", feedback_id=feedback_id)
        return issue
