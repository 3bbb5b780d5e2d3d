"""
Dashboard analytics over users, chats, messages and feedback.

Everything is computed in memory from full table reads. The dashboard is
an admin screen over a modest dataset, and the aggregations (rating
buckets, per-day trends, per-model rates) are simpler to keep correct
here than in portable SQL.
"""

from collections import Counter, defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Optional

from sqlalchemy import select

from devhub.core.constants import (
    ACTIVE_USER_WINDOW_DAYS,
    ANALYTICS_WINDOW_DAYS,
    NOT_RATED_COLOR,
    NOT_RATED_LABEL,
    POSITIVE_RATING_THRESHOLD,
    RATING_COLOR_FLOOR,
    RATING_COLOR_SCALE,
    USER_ANALYTICS_CSV_HEADERS,
    MessageRole,
    UserRole,
)
from devhub.core.exceptions import NotFoundError, ValidationError
from devhub.core.export import to_csv
from devhub.core.logging import get_logger
from devhub.db.models import (
    ApplicationFeedbackDB,
    ChatDB,
    MessageDB,
    MessageFeedbackDB,
    UserDB,
    utcnow,
)
from devhub.db.session import get_async_session

logger = get_logger(__name__)


def normalize_rating(value: Any) -> int:
    """Coerce a stored rating into an int percentage; junk becomes 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if number != number:  # NaN
        return 0
    return min(max(round(number), 0), 100)


def rating_color(rating: int) -> str:
    rating = min(max(rating, 0), 100)
    for floor, color in RATING_COLOR_SCALE:
        if rating >= floor:
            return color
    return RATING_COLOR_FLOOR


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _one_decimal(total: float, count: int) -> str:
    return f"{total / count:.1f}"


def _display_category(category: str) -> str:
    return category.replace("-", " ", 1).title()


def _last_days(days: int, today: Optional[date] = None) -> list[date]:
    today = today or utcnow().date()
    return [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]


class AnalyticsService:
    """Read-only analytics for the admin dashboard, plus role changes."""

    async def _load(self, *models: Any) -> list[list[Any]]:
        async with get_async_session() as session:
            results = []
            for model in models:
                rows = await session.execute(select(model))
                results.append(list(rows.scalars().all()))
            return results

    # =========================================================================
    # Users
    # =========================================================================

    async def user_analytics(self) -> list[dict[str, Any]]:
        """Per-user counts, average rating and an activity score, most active first."""
        users, chats, messages, feedbacks, app_feedbacks = await self._load(
            UserDB, ChatDB, MessageDB, MessageFeedbackDB, ApplicationFeedbackDB
        )

        chats_by_user: dict[str, set[str]] = defaultdict(set)
        for chat in chats:
            chats_by_user[chat.user_id].add(chat.id)

        messages_by_chat = Counter(m.chat_id for m in messages)
        feedbacks_by_chat: dict[str, list[MessageFeedbackDB]] = defaultdict(list)
        for feedback in feedbacks:
            feedbacks_by_chat[feedback.chat_id].append(feedback)
        app_feedback_counts = Counter(f.user_id for f in app_feedbacks)

        active_since = utcnow() - timedelta(days=ACTIVE_USER_WINDOW_DAYS)
        analytics = []

        for user in users:
            chat_ids = chats_by_user.get(user.id, set())
            user_feedbacks = [f for cid in chat_ids for f in feedbacks_by_chat.get(cid, [])]
            total_chats = len(chat_ids)
            total_messages = sum(messages_by_chat.get(cid, 0) for cid in chat_ids)
            total_feedbacks = len(user_feedbacks)
            total_app_feedbacks = app_feedback_counts.get(user.id, 0)

            rated = []
            for feedback in user_feedbacks:
                if feedback.rating is None:
                    continue
                rating = feedback.rating
                # 1..5 star ratings from older clients
                if rating <= 5:
                    rating = rating * 20
                rated.append(rating)
            average_rating = round(sum(rated) / len(rated)) if rated else 0

            is_active = bool(user.last_login_at and user.last_login_at > active_since)
            activity_score = min(
                100,
                total_chats * 10
                + total_messages * 2
                + total_feedbacks * 5
                + total_app_feedbacks * 3
                + (20 if is_active else 0),
            )

            analytics.append({
                "id": user.id,
                "name": user.name or "Unknown",
                "email": user.email,
                "lastLogin": _iso(user.last_login_at),
                "createdAt": _iso(user.created_at),
                "totalChats": total_chats,
                "totalMessages": total_messages,
                "totalFeedbacks": total_feedbacks,
                "totalApplicationFeedbacks": total_app_feedbacks,
                "averageRating": average_rating,
                "role": user.role.value,
                "isActive": is_active,
                "activityScore": activity_score,
            })

        analytics.sort(key=lambda item: item["activityScore"], reverse=True)
        return analytics

    async def user_growth(self, days: int = ANALYTICS_WINDOW_DAYS) -> list[dict[str, Any]]:
        """New and cumulative users per day over the window."""
        (users,) = await self._load(UserDB)
        window = _last_days(days)
        start = window[0]

        new_per_day = Counter(
            u.created_at.date() for u in users if u.created_at and u.created_at.date() >= start
        )
        running = len(users) - sum(new_per_day.values())

        growth = []
        for day in window:
            running += new_per_day.get(day, 0)
            growth.append({
                "date": day.isoformat(),
                "newUsers": new_per_day.get(day, 0),
                "totalUsers": running,
            })
        return growth

    async def user_activity(self, days: int = ANALYTICS_WINDOW_DAYS) -> list[dict[str, Any]]:
        """Active users, new chats and messages per day over the window."""
        chats, messages = await self._load(ChatDB, MessageDB)
        owner_by_chat = {c.id: c.user_id for c in chats}

        chats_per_day: dict[date, list[ChatDB]] = defaultdict(list)
        for chat in chats:
            chats_per_day[chat.created_at.date()].append(chat)
        messages_per_day: dict[date, list[MessageDB]] = defaultdict(list)
        for message in messages:
            messages_per_day[message.created_at.date()].append(message)

        activity = []
        for day in _last_days(days):
            day_chats = chats_per_day.get(day, [])
            day_messages = messages_per_day.get(day, [])
            active = {c.user_id for c in day_chats}
            active.update(owner_by_chat[m.chat_id] for m in day_messages if m.chat_id in owner_by_chat)
            activity.append({
                "date": day.isoformat(),
                "activeUsers": len(active),
                "totalChats": len(day_chats),
                "totalMessages": len(day_messages),
            })
        return activity

    async def top_users(self, limit: int = 10) -> list[dict[str, Any]]:
        return (await self.user_analytics())[:max(limit, 0)]

    async def export_user_analytics_csv(self) -> str:
        users = await self.user_analytics()
        return to_csv(
            USER_ANALYTICS_CSV_HEADERS,
            (
                [
                    user["id"],
                    user["name"],
                    user["email"],
                    user["lastLogin"] or "Never",
                    user["createdAt"],
                    user["totalChats"],
                    user["totalMessages"],
                    user["totalFeedbacks"],
                    user["totalApplicationFeedbacks"],
                    user["averageRating"],
                    user["role"],
                    "Yes" if user["isActive"] else "No",
                    user["activityScore"],
                ]
                for user in users
            ),
        )

    async def update_user_role(self, user_id: str, role: str) -> dict[str, Any]:
        if not user_id or not role:
            raise ValidationError("User ID and new role are required")

        normalized = role.lower()
        if normalized not in {r.value for r in UserRole}:
            raise ValidationError("Invalid role. Must be 'user' or 'admin'")

        async with get_async_session() as session:
            user = await session.get(UserDB, user_id)
            if user is None:
                raise NotFoundError("User", user_id, message="User not found")
            user.role = UserRole(normalized)
            user.updated_at = utcnow()

        logger.info("User role updated", user_id=user_id, role=normalized)
        return {
            "success": True,
            "message": f"User role updated to {normalized}",
            "user": {"id": user.id, "name": user.name, "email": user.email, "role": normalized},
        }

    # =========================================================================
    # Feedback
    # =========================================================================

    async def feedback_metrics(self) -> dict[str, Any]:
        """Rating distribution, 7-day trend, category breakdown and time windows."""
        feedbacks, chats = await self._load(MessageFeedbackDB, ChatDB)
        chat_titles = {c.id: c.title for c in chats}

        buckets: Counter[int] = Counter()
        categories: dict[str, dict[str, int]] = defaultdict(lambda: {"count": 0, "total": 0, "rated": 0})
        by_day: dict[date, dict[str, int]] = defaultdict(lambda: {"count": 0, "total": 0, "rated": 0})

        for feedback in feedbacks:
            rating = normalize_rating(feedback.rating)
            buckets[(rating // 5) * 5 if rating else 0] += 1

            category = _display_category(
                feedback.category or chat_titles.get(feedback.chat_id) or "general"
            )
            for stats in (categories[category], by_day[feedback.created_at.date()]):
                stats["count"] += 1
                if rating > 0:
                    stats["total"] += rating
                    stats["rated"] += 1

        distribution = [{"rating": NOT_RATED_LABEL, "count": buckets.get(0, 0), "color": NOT_RATED_COLOR}]
        distribution.extend(
            {"rating": f"{value}%", "count": buckets.get(value, 0), "color": rating_color(value)}
            for value in range(5, 101, 5)
        )

        breakdown = sorted(
            (
                {
                    "category": name,
                    "count": stats["count"],
                    "avgRating": _one_decimal(stats["total"], stats["rated"]) if stats["rated"] else NOT_RATED_LABEL,
                }
                for name, stats in categories.items()
            ),
            key=lambda item: item["count"],
            reverse=True,
        )[:10]

        trends = []
        for day in _last_days(7):
            stats = by_day.get(day, {"count": 0, "total": 0, "rated": 0})
            trends.append({
                "date": f"{day.month}/{day.day}",
                "rating": _one_decimal(stats["total"], stats["rated"]) if stats["rated"] else NOT_RATED_LABEL,
                "count": stats["count"],
            })

        return {
            "ratingDistribution": distribution,
            "ratingTrends": trends,
            "categoryBreakdown": breakdown,
            "timeBasedMetrics": self._time_windows(feedbacks),
        }

    def _time_windows(self, feedbacks: list[MessageFeedbackDB]) -> dict[str, dict[str, Any]]:
        now = utcnow()
        windows = {
            "lastHour": timedelta(hours=1),
            "last24Hours": timedelta(days=1),
            "lastWeek": timedelta(days=7),
            "lastMonth": timedelta(days=30),
        }
        metrics = {}
        for name, span in windows.items():
            ratings = [normalize_rating(f.rating) for f in feedbacks if now - f.created_at <= span]
            metrics[name] = {
                "count": len(ratings),
                "avgRating": _one_decimal(sum(ratings), len(ratings)) if ratings else 0,
            }
        return metrics

    async def feedback_overview(self) -> list[dict[str, Any]]:
        """Each vote with the answer it rated and the question before it."""
        feedbacks, messages, chats, users = await self._load(MessageFeedbackDB, MessageDB, ChatDB, UserDB)

        messages_by_id = {m.id: m for m in messages}
        messages_by_chat: dict[str, list[MessageDB]] = defaultdict(list)
        for message in sorted(messages, key=lambda m: m.created_at):
            messages_by_chat[message.chat_id].append(message)
        chats_by_id = {c.id: c for c in chats}
        users_by_id = {u.id: u for u in users}

        overview = []
        for feedback in feedbacks:
            chat_messages = messages_by_chat.get(feedback.chat_id, [])
            response = messages_by_id.get(feedback.message_id)
            if response is None:
                assistants = [m for m in chat_messages if m.role == MessageRole.ASSISTANT]
                response = assistants[-1] if assistants else None

            query = None
            if response is not None:
                earlier = [
                    m for m in chat_messages
                    if m.role == MessageRole.USER and m.created_at < response.created_at
                ]
                query = earlier[-1] if earlier else None

            chat = chats_by_id.get(feedback.chat_id)
            owner = users_by_id.get(chat.user_id) if chat else None

            overview.append({
                "id": feedback.id,
                "userId": owner.display_name if owner else "Unknown",
                "threadId": feedback.chat_id,
                "rating": normalize_rating(feedback.rating),
                "feedback": feedback.comments or "",
                "timestamp": _iso(feedback.created_at),
                "query": query.content if query else "N/A",
                "response": response.content if response else "AI response not found",
                "model": (response.model if response else None) or "Unknown",
                "category": feedback.category or (chat.title if chat else None) or "General",
                "resolved": bool(feedback.is_upvoted),
            })
        return overview

    # =========================================================================
    # Chats and models
    # =========================================================================

    async def chat_overview(self) -> list[dict[str, Any]]:
        """Every chat with its messages, votes and rating summary, newest first."""
        chats, messages, feedbacks, users = await self._load(ChatDB, MessageDB, MessageFeedbackDB, UserDB)

        users_by_id = {u.id: u for u in users}
        feedback_by_message = {f.message_id: f for f in feedbacks}
        feedbacks_by_chat: dict[str, list[MessageFeedbackDB]] = defaultdict(list)
        for feedback in feedbacks:
            feedbacks_by_chat[feedback.chat_id].append(feedback)
        messages_by_chat: dict[str, list[MessageDB]] = defaultdict(list)
        for message in sorted(messages, key=lambda m: m.created_at):
            messages_by_chat[message.chat_id].append(message)

        overview = []
        for chat in sorted(chats, key=lambda c: c.last_modified_at, reverse=True):
            chat_messages = messages_by_chat.get(chat.id, [])
            chat_feedbacks = feedbacks_by_chat.get(chat.id, [])

            rated = [normalize_rating(f.rating) for f in chat_feedbacks if f.rating and f.rating > 0]
            latest = max(chat_feedbacks, key=lambda f: f.last_modified_at or f.created_at, default=None)

            last_message = chat_messages[-1].content if chat_messages else chat.title or ""
            if len(last_message) > 100:
                last_message = last_message[:100] + "..."

            owner = users_by_id.get(chat.user_id)
            overview.append({
                "id": chat.id,
                "userId": owner.display_name if owner else "Unknown",
                "threadId": chat.id,
                "lastMessage": last_message,
                "messagesCount": len(chat_messages),
                "rating": round(sum(rated) / len(rated)) if rated else 0,
                "feedbackCount": len(rated),
                "feedback": latest.comments if latest else "",
                "timestamp": _iso(chat.last_modified_at or chat.created_at),
                "messages": [
                    {
                        "id": m.id,
                        "type": "query" if m.role == MessageRole.USER else "response",
                        "role": m.role.value,
                        "content": m.content,
                        "timestamp": _iso(m.created_at),
                        "feedback": self._message_feedback(feedback_by_message.get(m.id)),
                        "model": m.model,
                    }
                    for m in chat_messages
                ],
            })
        return overview

    @staticmethod
    def _message_feedback(feedback: Optional[MessageFeedbackDB]) -> Optional[dict[str, Any]]:
        if feedback is None:
            return None
        return {
            "rating": normalize_rating(feedback.rating),
            "category": feedback.category,
            "isUpvoted": feedback.is_upvoted,
            "comments": feedback.comments or "",
            "hasJiraIssue": feedback.has_jira_issue,
        }

    async def model_performance(self) -> dict[str, Any]:
        """Usage, ratings, daily trend and satisfaction per model."""
        messages, feedbacks = await self._load(MessageDB, MessageFeedbackDB)
        answers = [m for m in messages if m.role == MessageRole.ASSISTANT and m.model]
        feedback_by_message = {f.message_id: f for f in feedbacks}

        usage: Counter[str] = Counter()
        ratings: dict[str, list[int]] = defaultdict(list)
        for message in answers:
            usage[message.model] += 1
            feedback = feedback_by_message.get(message.id)
            if feedback is not None and feedback.rating and feedback.rating > 0:
                ratings[message.model].append(normalize_rating(feedback.rating))

        total = len(answers)
        all_models = sorted(usage)

        model_usage = sorted(
            (
                {
                    "model": model,
                    "count": count,
                    "percentage": f"{count / total * 100:.1f}" if total else "0",
                }
                for model, count in usage.items()
            ),
            key=lambda item: item["count"],
            reverse=True,
        )

        rating_avg = sorted(
            (
                {
                    "model": model,
                    "avgRating": _one_decimal(sum(ratings[model]), len(ratings[model])) if ratings[model] else "0",
                    "feedbackCount": len(ratings[model]),
                    "totalMessages": count,
                    "feedbackRate": f"{len(ratings[model]) / count * 100:.1f}",
                }
                for model, count in usage.items()
            ),
            key=lambda item: float(item["avgRating"]),
            reverse=True,
        )

        since = utcnow() - timedelta(days=ANALYTICS_WINDOW_DAYS)
        per_day: dict[str, Counter[str]] = defaultdict(Counter)
        for message in answers:
            if message.created_at >= since:
                per_day[message.created_at.date().isoformat()][message.model] += 1
        trends = [
            {"date": day, **{model: per_day[day].get(model, 0) for model in all_models}}
            for day in sorted(per_day)
        ]

        satisfaction = []
        for model, values in ratings.items():
            if not values:
                continue
            positive = sum(1 for r in values if r > POSITIVE_RATING_THRESHOLD)
            satisfaction.append({
                "model": model,
                "avgRating": _one_decimal(sum(values), len(values)),
                "positiveCount": positive,
                "negativeCount": len(values) - positive,
                "totalFeedback": len(values),
                "satisfactionRate": f"{positive / len(values) * 100:.1f}",
            })
        satisfaction.sort(key=lambda item: float(item["satisfactionRate"]), reverse=True)

        return {
            "modelUsage": model_usage,
            "modelRatingAvg": rating_avg,
            "modelTrends": trends,
            "modelSatisfaction": satisfaction,
            "allModels": all_models,
        }

    async def messages_count(self) -> dict[str, int]:
        (messages,) = await self._load(MessageDB)
        roles = Counter(m.role for m in messages)
        return {
            "totalMessages": len(messages),
            "userMessages": roles.get(MessageRole.USER, 0),
            "assistantMessages": roles.get(MessageRole.ASSISTANT, 0),
        }
