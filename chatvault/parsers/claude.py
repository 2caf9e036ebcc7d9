"""Claude share-page parser.

User turns carry ``data-testid="user-message"``; assistant turns are
rendered inside elements classed ``font-claude-response`` (older exports
use ``font-claude-message``).
"""

from bs4 import BeautifulSoup
from bs4.element import Tag

from .base import ConversationParser
from .registry import register_parser

USER_TESTID = "user-message"
ASSISTANT_CLASSES = frozenset({"font-claude-response", "font-claude-message"})


def _role_of(tag: Tag) -> str | None:
    if tag.get("data-testid") == USER_TESTID:
        return "user"
    if ASSISTANT_CLASSES.intersection(tag.get("class") or ()):
        return "assistant"
    return None


@register_parser
class ClaudeParser(ConversationParser):
    """Extracts messages from a Claude share page."""

    @property
    def format_name(self) -> str:
        return "claude"

    def _marked_elements(self, soup: BeautifulSoup):
        # Single pass keeps user and assistant turns in document order
        return [(_role_of(el), el) for el in soup.find_all(lambda tag: _role_of(tag) is not None)]
