from __future__ import annotations
from typing import Dict, Type, List, Optional

from chatvault.errors import UnknownFormatError
from chatvault.models import Conversation
from .base import ConversationParser


class ParserRegistry:
    """A pure registry for source-format parsers.

    Lookups are case-insensitive so "ChatGPT" and "chatgpt" resolve to the
    same parser.
    """

    def __init__(self):
        self._parsers: Dict[str, Type[ConversationParser]] = {}

    def register(self, parser_cls: Type[ConversationParser]) -> None:
        """Register a parser class by its format name."""
        # Instantiate once to get name if not static
        temp_instance = parser_cls()
        self._parsers[temp_instance.format_name.lower()] = parser_cls

    def get(self, name: str) -> Optional[ConversationParser]:
        """Get a fresh parser instance by format name."""
        parser_cls = self._parsers.get(name.lower())
        return parser_cls() if parser_cls else None

    def list_formats(self) -> List[str]:
        """List all registered format names."""
        return list(self._parsers.keys())

    def parse(self, raw: str, format_name: str) -> Conversation:
        """Parse raw markup with the parser registered for format_name."""
        parser = self.get(format_name)
        if parser is None:
            raise UnknownFormatError(format_name)
        return parser.parse(raw, model=format_name)


# Global singleton for decorator-based registration
_global_registry = ParserRegistry()


def register_parser(cls: Type[ConversationParser]) -> Type[ConversationParser]:
    """Decorator for easy parser registration."""
    _global_registry.register(cls)
    return cls


def get_global_registry() -> ParserRegistry:
    """Access the global decorator-populated registry."""
    return _global_registry
