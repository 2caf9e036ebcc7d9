"""ChatGPT share-page parser.

ChatGPT exports tag every message container with a
``data-message-author-role`` attribute whose value is the author role
(``user``, ``assistant``, ``system``, ``tool``).
"""

from bs4 import BeautifulSoup

from .base import ConversationParser
from .registry import register_parser

ROLE_ATTRIBUTE = "data-message-author-role"


@register_parser
class ChatGPTParser(ConversationParser):
    """Extracts messages from a ChatGPT share page."""

    @property
    def format_name(self) -> str:
        return "chatgpt"

    def _marked_elements(self, soup: BeautifulSoup):
        return [
            (el.get(ROLE_ATTRIBUTE) or "unknown", el)
            for el in soup.find_all(attrs={ROLE_ATTRIBUTE: True})
        ]
