from __future__ import annotations
from abc import ABC, abstractmethod
from html import escape
from typing import Callable
from datetime import datetime

from bs4 import BeautifulSoup
from bs4.element import Tag

from chatvault.errors import ParsingError
from chatvault.models import Conversation, Message, DEFAULT_ROLE, utcnow


class ConversationParser(ABC):
    """Abstract base class for all source-format parsers.

    Subclasses only locate role-marked elements; text cleanup, the paragraph
    fallback and the normalized output are shared here.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock

    @property
    @abstractmethod
    def format_name(self) -> str:
        """Return the unique format label of this parser."""
        pass

    @abstractmethod
    def _marked_elements(self, soup: BeautifulSoup) -> list[tuple[str, Tag]]:
        """Return (role, element) pairs for role-marked elements, in document order."""
        pass

    def parse(self, raw: str, model: str | None = None) -> Conversation:
        """Template method: load markup, extract messages, normalize."""
        if not isinstance(raw, str):
            raise ParsingError(f"{self.format_name}: expected markup string, got {type(raw).__name__}")
        try:
            soup = BeautifulSoup(raw, "html.parser")
        except Exception as e:
            raise ParsingError(f"{self.format_name}: unparsable markup: {e}") from e

        messages = self._collect(self._marked_elements(soup))
        if not messages:
            # Export formats without role annotations
            messages = self._collect((DEFAULT_ROLE, p) for p in soup.find_all("p"))

        return Conversation(
            model=model or self.format_name,
            scraped_at=self._clock(),
            source_html_bytes=len(raw.encode("utf-8")),
            content=self.render(messages),
            messages=messages,
        )

    def render(self, messages: list[Message]) -> str:
        """Wrap messages in minimal role-tagged markup for storage."""
        body = "".join(
            f'<p class="{escape(m.role)}">{escape(m.content, quote=False)}</p>'
            for m in messages
        )
        return f'<div class="{escape(self.format_name)}-conversation">{body}</div>'

    @staticmethod
    def _collect(pairs) -> list[Message]:
        messages = []
        for role, element in pairs:
            text = element.get_text().strip()
            if text:
                messages.append(Message(role=role, content=text))
        return messages
