"""
Chat title generation.
"""

import re
from typing import Optional

from devhub.clients.chat_backend import ChatBackendClient
from devhub.core.constants import (
    TITLE_FALLBACK_LENGTH,
    TITLE_MAX_LENGTH,
    TITLE_MAX_WORDS,
    TITLE_QUOTE_CHARS,
)
from devhub.core.exceptions import DevHubError
from devhub.core.logging import get_logger
from devhub.services.model_catalog import get_default_model

logger = get_logger(__name__)

_LIST_MARKER = re.compile(r"^\s*(?:-|\*|\d+\.)\s*")


def build_prompt(query: str) -> str:
    return (
        f"Generate a concise, descriptive title (maximum {TITLE_MAX_WORDS} words) "
        "for the following user query. The title should capture the main intent or topic.\n\n"
        "Important: Return ONLY the title text without any quotes, punctuation marks, "
        "or extra formatting.\n\n"
        f'User query: "{query}"\n\n'
        "Title:"
    )


def clean_title(raw: str) -> str:
    """
    Normalize model output into a title.

    Keeps the first line, drops a leading list marker, peels up to three
    layers of surrounding quotes and truncates.
    """
    title = raw.strip().split("\n", 1)[0]
    title = _LIST_MARKER.sub("", title, count=1).strip()

    for _ in range(3):
        if title[:1] in TITLE_QUOTE_CHARS and title:
            title = title[1:]
        if title[-1:] in TITLE_QUOTE_CHARS and title:
            title = title[:-1]
        title = title.strip()

    return title[:TITLE_MAX_LENGTH]


def fallback_title(query: str) -> str:
    return query[:TITLE_FALLBACK_LENGTH]


class TitleGenerator:
    """Asks the chat backend for a short title and cleans the answer."""

    def __init__(self, client: ChatBackendClient, model: Optional[str] = None) -> None:
        self.client = client
        self.model = model

    async def generate(self, query: str) -> str:
        """
        Generate a title for a first message.

        Never raises for upstream problems; the query prefix is used instead.
        """
        try:
            raw = await self.client.generate_text(
                build_prompt(query),
                model=self.model or get_default_model(),
            )
        except DevHubError as e:
            logger.warning("Title generation failed, using fallback", error=e.message)
            return fallback_title(query)

        return clean_title(raw) or fallback_title(query)
