"""Type registry and virtual dispatch table for generated bindings."""

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class ClassDB:
    """Maps host type names to their generated wrappers.

    Generated modules refer to each other through this registry so they never
    need to import one another at module load time.
    """

    def __init__(self) -> None:
        self._classes: dict[str, type] = {}
        self._parents: dict[str, str] = {}
        self._enums: dict[str, type[Enum]] = {}

    def register_class(self, name: str, cls: type, parent: str = "") -> None:
        existing = self._classes.get(name)
        if existing is not None and existing is not cls:
            logger.warning("Replacing wrapper for %s: %r -> %r", name, existing, cls)
        self._classes[name] = cls
        self._parents[name] = parent

    def register_enum(self, name: str, enum: type[Enum]) -> None:
        self._enums[name] = enum

    def get(self, name: str) -> type:
        try:
            return self._classes[name]
        except KeyError:
            raise LookupError(f"No wrapper registered for {name}") from None

    def get_enum(self, name: str) -> type[Enum]:
        try:
            return self._enums[name]
        except KeyError:
            raise LookupError(f"No enum registered for {name}") from None

    def parent_of(self, name: str) -> str:
        return self._parents.get(name, "")

    def chain(self, name: str) -> list[str]:
        """Return name followed by its registered ancestors."""
        result = []
        while name and name not in result:
            result.append(name)
            name = self._parents.get(name, "")
        return result

    def __contains__(self, name: object) -> bool:
        return name in self._classes


class DispatchTable:
    """Per-class virtual method implementations.

    Entries are registered ancestors first; lookup walks from the most derived
    class towards the root, so a descendant's entry shadows its ancestor's.
    """

    def __init__(self, types: ClassDB) -> None:
        self._types = types
        self._entries: dict[tuple[str, str], Callable[..., Any]] = {}
        self._order: list[tuple[str, str]] = []

    def register(self, class_name: str, method: str, impl: Callable[..., Any]) -> None:
        key = (class_name, method)
        if key not in self._entries:
            self._order.append(key)
        self._entries[key] = impl

    def lookup(self, class_name: str, method: str) -> Callable[..., Any] | None:
        """Return the implementation a class dispatches method to, if any registered."""
        for name in self._types.chain(class_name):
            impl = self._entries.get((name, method))
            if impl is not None:
                return impl
        return None

    def registrations(self) -> list[tuple[str, str]]:
        """Return (class, method) pairs in registration order."""
        return list(self._order)

    def clear(self) -> None:
        self._entries.clear()
        self._order.clear()


class_db = ClassDB()
dispatch = DispatchTable(class_db)
