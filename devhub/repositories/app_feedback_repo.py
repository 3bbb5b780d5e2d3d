"""Repository for application-level feedback."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import func, select

from devhub.core.constants import (
    APP_FEEDBACK_CSV_HEADERS,
    DEFAULT_PAGE_SIZE,
    RECENT_FEEDBACK_DAYS,
    FeedbackPriority,
    FeedbackStatus,
    FeedbackType,
    VoteType,
)
from devhub.core.exceptions import NotFoundError
from devhub.core.export import to_csv
from devhub.core.logging import get_logger
from devhub.db.models import ApplicationFeedbackDB, UserDB, utcnow
from devhub.db.session import get_async_session

logger = get_logger(__name__)

SORT_COLUMNS = {
    "createdAt": ApplicationFeedbackDB.created_at,
    "updatedAt": ApplicationFeedbackDB.updated_at,
    "priority": ApplicationFeedbackDB.priority,
    "upvotes": ApplicationFeedbackDB.upvotes,
}

UNKNOWN_USER = {"name": "Unknown", "email": "unknown@example.com"}


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _sort_clause(sort_by: str, sort_order: str):
    column = SORT_COLUMNS.get(sort_by, ApplicationFeedbackDB.created_at)
    return column.asc() if sort_order == "asc" else column.desc()


def serialize_app_feedback(
    feedback: ApplicationFeedbackDB,
    user: Optional[UserDB] = None,
) -> dict[str, Any]:
    user_info = dict(UNKNOWN_USER)
    if user is not None:
        user_info = {
            "name": user.name or user.email or "Unknown",
            "email": user.email or UNKNOWN_USER["email"],
        }

    return {
        "id": feedback.id,
        "userId": feedback.user_id,
        "feedbackType": feedback.feedback_type.value,
        "title": feedback.title,
        "description": feedback.description,
        "category": feedback.category,
        "priority": feedback.priority.value,
        "status": feedback.status.value,
        "tags": list(feedback.tags or []),
        "browserInfo": feedback.browser_info,
        "contactInfo": feedback.contact_info,
        "rating": feedback.rating,
        "upvotes": feedback.upvotes,
        "downvotes": feedback.downvotes,
        "userVotes": list(feedback.user_votes or []),
        "adminNotes": feedback.admin_notes,
        "createdAt": _iso(feedback.created_at),
        "updatedAt": _iso(feedback.updated_at),
        "resolvedAt": _iso(feedback.resolved_at),
        "userInfo": user_info,
    }


class ApplicationFeedbackRepository:
    """Bug reports, feature requests and other product feedback."""

    async def create(self, user_id: Optional[str], data: dict[str, Any]) -> str:
        async with get_async_session() as session:
            feedback = ApplicationFeedbackDB(
                user_id=user_id,
                feedback_type=FeedbackType(data["feedbackType"]),
                title=data["title"],
                description=data["description"],
                category=data.get("category") or "General",
                priority=FeedbackPriority(data["priority"]),
                status=FeedbackStatus.OPEN,
                tags=list(data.get("tags") or []),
                browser_info=data.get("browserInfo"),
                contact_info=data.get("contactInfo"),
                rating=data.get("rating"),
                upvotes=0,
                downvotes=0,
                user_votes=[],
            )
            session.add(feedback)
            await session.flush()
            feedback_id = feedback.id

        logger.info("Application feedback created", feedback_id=feedback_id)
        return feedback_id

    def _filtered(
        self,
        statement,
        feedback_type: Optional[str] = None,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        user_id: Optional[str] = None,
    ):
        if feedback_type:
            statement = statement.where(ApplicationFeedbackDB.feedback_type == FeedbackType(feedback_type))
        if status:
            statement = statement.where(ApplicationFeedbackDB.status == FeedbackStatus(status))
        if priority:
            statement = statement.where(ApplicationFeedbackDB.priority == FeedbackPriority(priority))
        if user_id:
            statement = statement.where(ApplicationFeedbackDB.user_id == user_id)
        return statement

    async def list(
        self,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        feedback_type: Optional[str] = None,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        user_id: Optional[str] = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
    ) -> dict[str, Any]:
        """Page through feedback with filters, each item carrying userInfo."""
        page = max(page, 1)
        limit = max(limit, 1)
        skip = (page - 1) * limit
        filters = dict(feedback_type=feedback_type, status=status, priority=priority, user_id=user_id)

        order = _sort_clause(sort_by, sort_order)

        async with get_async_session() as session:
            total = (
                await session.execute(
                    self._filtered(select(func.count()).select_from(ApplicationFeedbackDB), **filters)
                )
            ).scalar_one()

            rows = (
                await session.execute(
                    self._filtered(
                        select(ApplicationFeedbackDB, UserDB).outerjoin(
                            UserDB, UserDB.id == ApplicationFeedbackDB.user_id
                        ),
                        **filters,
                    )
                    .order_by(order)
                    .offset(skip)
                    .limit(limit)
                )
            ).all()

        return {
            "feedbacks": [serialize_app_feedback(f, u) for f, u in rows],
            "total": total,
            "hasMore": skip + limit < total,
            "page": page,
            "limit": limit,
        }

    async def get(self, feedback_id: str) -> Optional[dict[str, Any]]:
        async with get_async_session() as session:
            feedback = await session.get(ApplicationFeedbackDB, feedback_id)
            return serialize_app_feedback(feedback) if feedback else None

    async def update_status(
        self,
        feedback_id: str,
        status: str,
        admin_notes: Optional[str] = None,
    ) -> None:
        async with get_async_session() as session:
            feedback = await session.get(ApplicationFeedbackDB, feedback_id)
            if feedback is None:
                raise NotFoundError("Feedback", feedback_id)

            feedback.status = FeedbackStatus(status)
            feedback.updated_at = utcnow()
            if admin_notes:
                feedback.admin_notes = admin_notes
            if feedback.status == FeedbackStatus.RESOLVED:
                feedback.resolved_at = utcnow()

        logger.info("Application feedback status updated", feedback_id=feedback_id, status=status)

    async def vote(self, feedback_id: str, user_id: str, vote: str) -> dict[str, int]:
        """Toggle a user's vote.

        A repeat of the same vote withdraws it; the opposite vote moves the
        user's count from one side to the other.

        Returns:
            The new upvotes/downvotes totals
        """
        vote = VoteType(vote).value

        async with get_async_session() as session:
            feedback = await session.get(ApplicationFeedbackDB, feedback_id)
            if feedback is None:
                raise NotFoundError("Feedback", feedback_id)

            votes = list(feedback.user_votes or [])
            existing = next((v for v in votes if v.get("userId") == user_id), None)

            def bump(kind: str, amount: int) -> None:
                if kind == VoteType.UP.value:
                    feedback.upvotes = max((feedback.upvotes or 0) + amount, 0)
                else:
                    feedback.downvotes = max((feedback.downvotes or 0) + amount, 0)

            if existing is None:
                votes.append({"userId": user_id, "vote": vote})
                bump(vote, 1)
            elif existing["vote"] == vote:
                votes = [v for v in votes if v.get("userId") != user_id]
                bump(vote, -1)
            else:
                bump(existing["vote"], -1)
                bump(vote, 1)
                votes = [
                    {"userId": user_id, "vote": vote} if v.get("userId") == user_id else v
                    for v in votes
                ]

            feedback.user_votes = votes
            feedback.updated_at = utcnow()
            return {"upvotes": feedback.upvotes, "downvotes": feedback.downvotes}

    async def stats(self) -> dict[str, Any]:
        """Totals by type, status and priority plus last week's count."""
        since = utcnow() - timedelta(days=RECENT_FEEDBACK_DAYS)

        async with get_async_session() as session:
            total = (
                await session.execute(select(func.count()).select_from(ApplicationFeedbackDB))
            ).scalar_one()

            async def grouped(column) -> dict[str, int]:
                result = await session.execute(
                    select(column, func.count()).group_by(column)
                )
                return {key.value: count for key, count in result.all()}

            by_type = await grouped(ApplicationFeedbackDB.feedback_type)
            by_status = await grouped(ApplicationFeedbackDB.status)
            by_priority = await grouped(ApplicationFeedbackDB.priority)

            recent = (
                await session.execute(
                    select(func.count())
                    .select_from(ApplicationFeedbackDB)
                    .where(ApplicationFeedbackDB.created_at >= since)
                )
            ).scalar_one()

        return {
            "total": total,
            "byType": by_type,
            "byStatus": by_status,
            "byPriority": by_priority,
            "recentCount": recent,
        }

    async def export_csv(
        self,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
        **filters: Any,
    ) -> str:
        """All matching feedback as CSV text, in the same order as the list view."""
        async with get_async_session() as session:
            result = await session.execute(
                self._filtered(select(ApplicationFeedbackDB), **filters).order_by(
                    _sort_clause(sort_by, sort_order)
                )
            )
            feedbacks = result.scalars().all()

        return to_csv(
            APP_FEEDBACK_CSV_HEADERS,
            (
                [
                    f.id,
                    f.user_id,
                    f.feedback_type.value,
                    f.title,
                    f.description,
                    f.category,
                    f.priority.value,
                    f.status.value,
                    "; ".join(f.tags or []),
                    f.upvotes or 0,
                    _iso(f.created_at),
                    _iso(f.updated_at),
                ]
                for f in feedbacks
            ),
        )
