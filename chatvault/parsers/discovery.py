from __future__ import annotations
import importlib
import logging
import pkgutil
from typing import List

from .registry import ParserRegistry, get_global_registry
import chatvault.parsers as parsers_pkg

logger = logging.getLogger(__name__)

_INFRASTRUCTURE_MODULES = {"base", "registry", "discovery"}


class ParserDiscovery:
    """Finds and loads parser modules so their decorators register them."""

    @staticmethod
    def discover_and_register(registry: ParserRegistry | None = None) -> List[str]:
        """Import every format module in chatvault.parsers.

        Modules register themselves into the global registry via
        @register_parser; when a different registry is passed, the global
        registrations are copied into it.
        """
        loaded_modules = []

        for _, name, is_pkg in pkgutil.iter_modules(parsers_pkg.__path__):
            if is_pkg or name in _INFRASTRUCTURE_MODULES:
                continue

            module_path = f"chatvault.parsers.{name}"
            try:
                importlib.import_module(module_path)
                loaded_modules.append(module_path)
            except Exception:
                logger.warning("Parser discovery failed for %s", module_path, exc_info=True)

        global_registry = get_global_registry()
        if registry is not None and registry is not global_registry:
            for format_name in global_registry.list_formats():
                registry.register(type(global_registry.get(format_name)))

        return loaded_modules
