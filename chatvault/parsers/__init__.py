from .base import ConversationParser
from .registry import register_parser, get_global_registry, ParserRegistry
from .discovery import ParserDiscovery

__all__ = [
    "ConversationParser",
    "register_parser",
    "get_global_registry",
    "ParserRegistry",
    "ParserDiscovery",
]
