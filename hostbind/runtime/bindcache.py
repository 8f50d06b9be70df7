"""Lazy, idempotent resolution of host call handles.

Resolving a handle is a pure function of its key, so concurrent first callers
are allowed to race: each may ask the host, all get equivalent handles, and
dict.setdefault makes every caller return the first published entry. No lock
is taken on any path.

Build modes:

- checked binds refuse to call through a null handle. The failure is logged
  once per key and every call raises BindUnavailable.
- unchecked binds skip the null check entirely and hand whatever the host
  returned to invoke(). A schema/host mismatch is then the host's problem.
"""

import logging
from dataclasses import dataclass
from enum import StrEnum, auto
from typing import Any

from .abi import BindKind, HostABI, ResultSlot, current

logger = logging.getLogger(__name__)


class BindUnavailable(RuntimeError):
    """Raised by checked binds when the host has no handle for a key."""

    def __init__(self, key: "MethodKey | IndexKey"):
        super().__init__(f"Host provides no handle for {key}")
        self.key = key


@dataclass(frozen=True, slots=True)
class MethodKey:
    """Key of a name-resolved handle."""

    owner: str
    member: str
    version_hash: int

    def resolve(self, host: HostABI) -> Any:
        return host.resolve_method_handle(self.owner, self.member, self.version_hash)

    def __str__(self) -> str:
        return f"{self.owner or '<global>'}.{self.member} (hash {self.version_hash})"


@dataclass(frozen=True, slots=True)
class IndexKey:
    """Key of a constructor or operator handle."""

    owner: str
    kind: BindKind
    index: int

    def resolve(self, host: HostABI) -> Any:
        return host.resolve_constructor_or_operator_handle(self.owner, self.index, self.kind)

    def __str__(self) -> str:
        return f"{self.owner} {self.kind} #{self.index}"


class BindState(StrEnum):
    UNRESOLVED = auto()
    RESOLVED = auto()
    FAILED = auto()


@dataclass(frozen=True, slots=True)
class BindEntry:
    """A published resolution result. Entries are never modified."""

    key: MethodKey | IndexKey
    state: BindState
    handle: Any = None


class BindCache:
    """Process-wide memo of resolved call handles."""

    def __init__(self, host: HostABI):
        self._host = host
        self._entries: dict[MethodKey | IndexKey, BindEntry] = {}
        self._reported: dict[MethodKey | IndexKey, object] = {}

    def state(self, key: MethodKey | IndexKey) -> BindState:
        entry = self._entries.get(key)
        return entry.state if entry is not None else BindState.UNRESOLVED

    def lookup(self, key: MethodKey | IndexKey) -> BindEntry:
        """Return the entry for key, resolving it against the host on first use."""
        entry = self._entries.get(key)
        if entry is not None:
            return entry

        handle = key.resolve(self._host)
        state = BindState.FAILED if handle is None else BindState.RESOLVED
        return self._entries.setdefault(key, BindEntry(key, state, handle))

    def report_failure(self, key: MethodKey | IndexKey) -> None:
        """Log a failed resolution, once per key."""
        token = object()
        if self._reported.setdefault(key, token) is token:
            logger.error("Host provides no handle for %s; calls will raise BindUnavailable", key)

    def __len__(self) -> int:
        return len(self._entries)


class MethodBind:
    """A call site bound to one cache entry."""

    __slots__ = ("key", "checked")

    def __init__(self, owner: str, member: str, version_hash: int, *, checked: bool = True):
        self.key: MethodKey | IndexKey = MethodKey(owner, member, version_hash)
        self.checked = checked

    def handle(self) -> Any:
        """Return the host handle, resolving it on first use."""
        state = current()
        entry = state.bind_cache.lookup(self.key)
        if self.checked and entry.state == BindState.FAILED:
            state.bind_cache.report_failure(self.key)
            raise BindUnavailable(self.key)
        return entry.handle

    def call(self, instance: Any, args: list[Any] | tuple[Any, ...] = ()) -> Any:
        """Invoke the bound host function and return its result."""
        handle = self.handle()
        result = ResultSlot()
        current().host.invoke(handle, instance, list(args), result)
        return result.value

    def __repr__(self) -> str:
        mode = "checked" if self.checked else "unchecked"
        return f"<{type(self).__name__} {self.key} {mode}>"


class IndexBind(MethodBind):
    """A constructor or operator call site, keyed by index."""

    __slots__ = ()

    def __init__(self, owner: str, index: int, kind: BindKind | str, *, checked: bool = True):
        self.key = IndexKey(owner, BindKind(kind), index)
        self.checked = checked
