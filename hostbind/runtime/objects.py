"""Base classes for generated object wrappers."""

import logging
from typing import Any, ClassVar, Self

from .abi import current, register_teardown
from .bindcache import MethodBind
from .registry import class_db, dispatch

logger = logging.getLogger(__name__)

# Ownership members are infrastructure, not schema methods, and are bound with
# the sentinel version hash.
OWNERSHIP_HASH = 0


class ObjectBase:
    """Base class for generated host object wrappers.

    A wrapper holds an opaque host pointer. Wrappers around the same pointer
    compare equal.
    """

    _class_name: ClassVar[str] = ""
    _ptr: Any
    _owned: bool

    def __init__(self) -> None:
        raise TypeError(f"{type(self).__name__} cannot be instantiated")

    @classmethod
    def _from_ptr(cls, ptr: Any, *, owned: bool = False) -> Self:
        obj = cls.__new__(cls)
        obj._ptr = ptr
        obj._owned = owned
        return obj

    def _init_ptr(self, ptr: Any, *, owned: bool = False) -> None:
        self._ptr = ptr
        self._owned = owned

    @property
    def is_null(self) -> bool:
        return self._ptr is None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ObjectBase):
            return NotImplemented
        return self._ptr is not None and self._ptr == other._ptr

    def __hash__(self) -> int:
        return hash(self._ptr)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._ptr!r}>"


class Ownership:
    """Explicit reference count operations for one ref-counted class."""

    __slots__ = ("owner", "_increment", "_decrement")

    def __init__(self, owner: str, *, checked: bool = True):
        self.owner = owner
        self._increment = MethodBind(owner, "reference", OWNERSHIP_HASH, checked=checked)
        self._decrement = MethodBind(owner, "unreference", OWNERSHIP_HASH, checked=checked)

    def increment(self, ptr: Any) -> None:
        self._increment.call(ptr)

    def decrement(self, ptr: Any) -> bool:
        """Drop one reference. Returns True when the host freed the object."""
        return bool(self._decrement.call(ptr))


class RefCountedMixin:
    """Ownership transfer for ref-counted wrappers.

    Copying a wrapper never touches the reference count; acquire() and
    release() are the only operations that do.
    """

    _ownership: ClassVar[Ownership]
    _ptr: Any
    _owned: bool

    def acquire(self) -> Self:
        """Take an additional reference and return a wrapper that owns it."""
        if self._ptr is None:
            raise ValueError("Cannot acquire a released reference")
        type(self)._ownership.increment(self._ptr)
        return type(self)._from_ptr(self._ptr, owned=True)  # type: ignore[attr-defined]

    def release(self) -> bool:
        """Give up the reference this wrapper owns."""
        if self._ptr is None or not self._owned:
            return False
        freed = type(self)._ownership.decrement(self._ptr)
        self._ptr = None
        self._owned = False
        return freed

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()


class SingletonSlot:
    """Lazily resolved singleton instance.

    The first access asks the host for the instance, registers teardown
    cleanup and caches the wrapper for the rest of the process.
    """

    __slots__ = ("type_name",)

    def __init__(self, type_name: str):
        self.type_name = type_name

    def get(self, cls: type[ObjectBase]) -> ObjectBase:
        state = current()
        instance = state.singletons.get(self.type_name)
        if instance is not None:
            return instance

        ptr = state.host.resolve_singleton(self.type_name)
        if ptr is None:
            raise LookupError(f"Host has no singleton {self.type_name}")
        candidate = cls._from_ptr(ptr)
        instance = state.singletons.setdefault(self.type_name, candidate)
        if instance is candidate:
            register_teardown(lambda: state.singletons.pop(self.type_name, None))
            logger.debug("Resolved singleton %s", self.type_name)
        return instance

    def is_resolved(self) -> bool:
        return self.type_name in current().singletons


def wrap_object(type_name: str, ptr: Any) -> ObjectBase | None:
    """Wrap a pointer returned by the host. Ref-counted results are owned."""
    if ptr is None:
        return None
    cls = class_db.get(type_name)
    return cls._from_ptr(ptr, owned=issubclass(cls, RefCountedMixin))  # type: ignore[attr-defined]


def object_ptr(obj: ObjectBase | None) -> Any:
    """Return the host pointer of a wrapper argument (None passes through)."""
    if obj is None:
        return None
    if not isinstance(obj, ObjectBase):
        raise TypeError(f"Expected a host object wrapper, got {type(obj).__name__}")
    return obj._ptr


def call_virtual(obj: ObjectBase, method: str, *args: Any) -> Any:
    """Dispatch a host callback to the registered implementation of a virtual.

    Python subclasses of generated wrappers use their own methods; generated
    wrappers use the dispatch table, falling back to the declaring default.
    """
    cls = type(obj)
    if "_class_name" not in cls.__dict__:
        return getattr(obj, method)(*args)
    impl = dispatch.lookup(cls._class_name, method)
    if impl is None:
        impl = getattr(type(obj), method)
    return impl(obj, *args)
