"""Classification of schema type references."""

import warnings
from dataclasses import dataclass
from enum import StrEnum, auto

from .errors import PrecisionMismatchError, SchemaError, UnknownTypeWarning
from .parser import TypeRef, parse_type_ref
from .types import (
    DYNAMIC_TYPE,
    PRECISIONS,
    REAL_TYPE,
    SCALAR_TYPES,
    VOID_MARKERS,
    EnumDescriptor,
    Schema,
)


class Category(StrEnum):
    """Representation category of a resolved type."""

    VOID = auto()
    SCALAR = auto()
    ENUM = auto()
    BITFIELD = auto()
    TYPED_CONTAINER = auto()
    OBJECT_REF = auto()
    STRING_LIKE = auto()
    VALUE_TYPE = auto()
    DYNAMIC_ANY = auto()


@dataclass(frozen=True)
class ResolvedType:
    """A classified type reference.

    name holds the concrete scalar name ("float32" for a single-precision
    real), the qualified enum name, or the class/value type name.
    """

    category: Category
    name: str
    element: "ResolvedType | None" = None
    ref_counted: bool = False
    owner: str | None = None

    @property
    def is_void(self) -> bool:
        return self.category == Category.VOID

    def referenced_types(self) -> set[str]:
        """Names of classes and value types an annotation of this type mentions."""
        if self.element is not None:
            return self.element.referenced_types()
        if self.category in (Category.OBJECT_REF, Category.VALUE_TYPE):
            return {self.name}
        if self.owner:
            return {self.owner}
        return set()


VOID = ResolvedType(Category.VOID, "void")
DYNAMIC_ANY = ResolvedType(Category.DYNAMIC_ANY, DYNAMIC_TYPE)


def check_precision(schema: Schema, precision: str) -> None:
    """Fail when the requested precision cannot match the schema's."""
    if precision not in PRECISIONS:
        raise PrecisionMismatchError(f"Unknown precision '{precision}'")
    declared = schema.header.precision
    if declared is not None and declared != precision:
        raise PrecisionMismatchError(
            f"Schema was built for {declared} precision but {precision} was requested"
        )


class TypeResolver:
    """Resolve type references against a (filtered) schema."""

    def __init__(self, schema: Schema, precision: str):
        check_precision(schema, precision)
        self.schema = schema
        self.precision = precision
        self.classes = schema.class_map()
        self.builtins = {b.name: b for b in schema.builtin_classes}
        self.string_types = frozenset(schema.header.string_types)
        self.enums: dict[str, tuple[EnumDescriptor, str | None]] = {}
        for enum in schema.enums:
            self.enums[enum.name] = (enum, None)
        for cls in schema.classes:
            for enum in cls.enums:
                self.enums[f"{cls.name}.{enum.name}"] = (enum, cls.name)
        for builtin in schema.builtin_classes:
            for enum in builtin.enums:
                self.enums[f"{builtin.name}.{enum.name}"] = (enum, builtin.name)
        self._cache: dict[str, ResolvedType] = {}
        self._warned: set[str] = set()

    @property
    def real_type(self) -> str:
        return "float32" if self.precision == "single" else "float64"

    def resolve(self, type_ref: str | None) -> ResolvedType:
        """Classify a type reference."""
        if type_ref is None or type_ref in VOID_MARKERS:
            return VOID
        if type_ref not in self._cache:
            self._cache[type_ref] = self._resolve_ref(parse_type_ref(type_ref))
        return self._cache[type_ref]

    def _resolve_ref(self, ref: TypeRef) -> ResolvedType:
        if ref.kind == "container":
            if ref.element is None:
                raise SchemaError(f"Container type {ref.name} has no element type")
            element = self._resolve_ref(ref.element)
            return ResolvedType(Category.TYPED_CONTAINER, "typedarray", element=element)

        name = ref.name
        if ref.kind == "named":
            if name == REAL_TYPE:
                return ResolvedType(Category.SCALAR, self.real_type)
            if name in SCALAR_TYPES:
                return ResolvedType(Category.SCALAR, SCALAR_TYPES[name])

        if name in self.enums:
            enum, owner = self.enums[name]
            category = Category.BITFIELD if enum.is_bitfield else Category.ENUM
            return ResolvedType(category, name, owner=owner)

        if ref.kind == "named":
            if name in self.classes:
                return ResolvedType(
                    Category.OBJECT_REF, name, ref_counted=self.classes[name].is_ref_counted
                )
            if name in self.string_types:
                return ResolvedType(Category.STRING_LIKE, name)
            if name in self.builtins:
                return ResolvedType(Category.VALUE_TYPE, name)
            if name == DYNAMIC_TYPE:
                return DYNAMIC_ANY

        self._warn_unknown(ref)
        return DYNAMIC_ANY

    def _warn_unknown(self, ref: TypeRef) -> None:
        label = ref.name if ref.kind == "named" else f"{ref.kind}::{ref.name}"
        if label in self._warned:
            return
        self._warned.add(label)
        warnings.warn(
            f"Unknown type {label}, falling back to {DYNAMIC_TYPE}",
            UnknownTypeWarning,
            stacklevel=4,
        )
