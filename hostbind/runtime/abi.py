"""Host ABI surface and process-wide runtime state.

The host ABI is installed once with initialize() and treated as a read-only
snapshot afterwards. Generated bindings never talk to the host directly; they
go through the bind cache held by the current RuntimeState.
"""

import atexit
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .bindcache import BindCache

logger = logging.getLogger(__name__)


class HostNotInitialized(RuntimeError):
    """Raised when bindings are used before a host ABI is installed."""


class BindKind(StrEnum):
    """Index space of an index-keyed call handle."""

    CONSTRUCTOR = "constructor"
    OPERATOR = "operator"


@dataclass
class ResultSlot:
    """Receives the result of a host invocation."""

    value: Any = None


class HostABI(Protocol):
    """Functions the host process exposes to generated bindings.

    Resolution functions return None when the host has no matching handle.
    """

    def resolve_method_handle(self, owner_type: str, member_name: str, version_hash: int) -> Any:
        ...

    def resolve_constructor_or_operator_handle(
        self, type_name: str, index: int, kind: BindKind
    ) -> Any:
        ...

    def invoke(self, handle: Any, instance: Any, args: list[Any], result: ResultSlot) -> None:
        ...

    def resolve_singleton(self, type_name: str) -> Any:
        ...


@dataclass
class RuntimeState:
    """Everything bindings share for the lifetime of one host installation."""

    host: HostABI
    bind_cache: "BindCache"
    singletons: dict[str, Any] = field(default_factory=dict)
    teardown: list[Callable[[], None]] = field(default_factory=list)


_state: RuntimeState | None = None
_atexit_registered = False


def initialize(host: HostABI) -> RuntimeState:
    """Install the host ABI for this process."""
    global _state, _atexit_registered
    from .bindcache import BindCache

    if _state is not None:
        raise RuntimeError("Host ABI already initialized; call shutdown() first")

    _state = RuntimeState(host=host, bind_cache=BindCache(host))
    if not _atexit_registered:
        atexit.register(shutdown)
        _atexit_registered = True
    logger.debug("Host ABI initialized: %r", host)
    return _state


def current() -> RuntimeState:
    """Return the active runtime state."""
    if _state is None:
        raise HostNotInitialized("No host ABI installed; call hostbind.runtime.initialize()")
    return _state


def is_initialized() -> bool:
    return _state is not None


def register_teardown(callback: Callable[[], None]) -> None:
    """Run callback when the runtime shuts down (or the process exits)."""
    current().teardown.append(callback)


def shutdown() -> None:
    """Run teardown callbacks, newest first, and forget the host."""
    global _state

    state = _state
    if state is None:
        return
    # Callbacks may still call into the host, so the state stays installed.
    while state.teardown:
        callback = state.teardown.pop()
        try:
            callback()
        except Exception:
            logger.exception("Teardown callback %r failed", callback)
    _state = None
    logger.debug("Host ABI shut down")
