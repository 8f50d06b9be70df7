"""Descriptor types for the host API schema.

Every descriptor is a frozen dataclass. Field names are snake_case in Python
and camelCase in the schema JSON.
"""

from dataclasses import dataclass, field
from typing import Any

from dataclasses_json import DataClassJsonMixin, LetterCase, config

from .errors import ProfileCycleError


class _Descriptor(DataClassJsonMixin):
    dataclass_json_config = config(letter_case=LetterCase.CAMEL)["dataclasses_json"]  # type: ignore[assignment]


@dataclass(frozen=True)
class Header(_Descriptor):
    """Version and precision information for the schema."""

    major_version: int = 0
    minor_version: int = 0
    patch_version: int = 0
    precision: str | None = None
    string_types: list[str] = field(default_factory=lambda: ["String", "StringName"])


@dataclass(frozen=True)
class ArgumentDescriptor(_Descriptor):
    """A single method argument.

    default_value is the raw literal from the schema and is never type-checked.
    """

    name: str
    type: str
    default_value: str | None = None


@dataclass(frozen=True)
class MethodFlags(_Descriptor):
    static: bool = False
    virtual: bool = False
    vararg: bool = False
    const: bool = False


@dataclass(frozen=True)
class MethodDescriptor(_Descriptor):
    """A method, utility function or value type method."""

    name: str
    arguments: list[ArgumentDescriptor] = field(default_factory=list)
    return_type: str | None = None
    hash: int = 0
    flags: MethodFlags = field(default_factory=MethodFlags)

    @property
    def is_static(self) -> bool:
        return self.flags.static

    @property
    def is_virtual(self) -> bool:
        return self.flags.virtual

    @property
    def is_vararg(self) -> bool:
        return self.flags.vararg

    @property
    def is_const(self) -> bool:
        return self.flags.const

    def type_refs(self) -> list[str]:
        """Return the return type (if any) followed by the argument types."""
        refs = [arg.type for arg in self.arguments]
        if self.return_type:
            refs.insert(0, self.return_type)
        return refs


@dataclass(frozen=True)
class EnumValue(_Descriptor):
    name: str
    value: int


@dataclass(frozen=True)
class EnumDescriptor(_Descriptor):
    """An enum or bitfield. Bitfield values are trusted to be disjoint."""

    name: str
    is_bitfield: bool = False
    values: list[EnumValue] = field(default_factory=list)


@dataclass(frozen=True)
class ConstantDescriptor(_Descriptor):
    name: str
    value: Any


@dataclass(frozen=True)
class PropertyDescriptor(_Descriptor):
    name: str
    type: str
    getter: str = ""
    setter: str = ""


@dataclass(frozen=True)
class SignalDescriptor(_Descriptor):
    name: str
    arguments: list[ArgumentDescriptor] = field(default_factory=list)


@dataclass(frozen=True)
class ClassFlags(_Descriptor):
    instantiable: bool = True
    ref_counted: bool = False
    singleton: bool = False


@dataclass(frozen=True)
class ClassDescriptor(_Descriptor):
    """A host class. An empty parent marks a root class."""

    name: str
    parent: str = ""
    flags: ClassFlags = field(default_factory=ClassFlags)
    methods: list[MethodDescriptor] = field(default_factory=list)
    enums: list[EnumDescriptor] = field(default_factory=list)
    properties: list[PropertyDescriptor] = field(default_factory=list)
    signals: list[SignalDescriptor] = field(default_factory=list)
    constants: list[ConstantDescriptor] = field(default_factory=list)

    @property
    def is_instantiable(self) -> bool:
        return self.flags.instantiable

    @property
    def is_ref_counted(self) -> bool:
        return self.flags.ref_counted

    @property
    def is_singleton(self) -> bool:
        return self.flags.singleton


@dataclass(frozen=True)
class SizeEntry(_Descriptor):
    name: str
    size: int


@dataclass(frozen=True)
class SizeTable(_Descriptor):
    """Builtin type sizes for one build configuration."""

    build_config: str
    sizes: list[SizeEntry] = field(default_factory=list)


@dataclass(frozen=True)
class MemberOffset(_Descriptor):
    member: str
    offset: int
    meta: str


@dataclass(frozen=True)
class ClassOffsets(_Descriptor):
    name: str
    members: list[MemberOffset] = field(default_factory=list)


@dataclass(frozen=True)
class OffsetTable(_Descriptor):
    """Builtin member offsets for one build configuration."""

    build_config: str
    classes: list[ClassOffsets] = field(default_factory=list)


@dataclass(frozen=True)
class ConstructorDescriptor(_Descriptor):
    index: int
    arguments: list[ArgumentDescriptor] = field(default_factory=list)


@dataclass(frozen=True)
class OperatorDescriptor(_Descriptor):
    """A value type operator. A missing right_type marks a unary operator."""

    name: str
    return_type: str
    right_type: str | None = None


@dataclass(frozen=True)
class MemberDescriptor(_Descriptor):
    name: str
    type: str


@dataclass(frozen=True)
class BuiltinClassDescriptor(_Descriptor):
    """The API surface of a builtin value type."""

    name: str
    constructors: list[ConstructorDescriptor] = field(default_factory=list)
    operators: list[OperatorDescriptor] = field(default_factory=list)
    methods: list[MethodDescriptor] = field(default_factory=list)
    members: list[MemberDescriptor] = field(default_factory=list)
    constants: list[ConstantDescriptor] = field(default_factory=list)
    enums: list[EnumDescriptor] = field(default_factory=list)


@dataclass(frozen=True)
class SingletonDescriptor(_Descriptor):
    name: str
    type: str


@dataclass(frozen=True)
class Schema(_Descriptor):
    """A complete host API description."""

    header: Header = field(default_factory=Header)
    builtin_size_tables: list[SizeTable] = field(default_factory=list)
    member_offset_tables: list[OffsetTable] = field(default_factory=list)
    builtin_classes: list[BuiltinClassDescriptor] = field(default_factory=list)
    enums: list[EnumDescriptor] = field(default_factory=list)
    classes: list[ClassDescriptor] = field(default_factory=list)
    utility_functions: list[MethodDescriptor] = field(default_factory=list)
    singletons: list[SingletonDescriptor] = field(default_factory=list)

    def class_map(self) -> dict[str, ClassDescriptor]:
        return {cls.name: cls for cls in self.classes}

    def build_configs(self) -> list[str]:
        """Return the declared build configurations in schema order."""
        return [table.build_config for table in self.builtin_size_tables]

    def ancestors(self, name: str) -> list[ClassDescriptor]:
        """Return the inheritance chain of a class, nearest parent first."""
        classes = self.class_map()
        chain: list[ClassDescriptor] = []
        seen = {name}
        parent = classes[name].parent
        while parent:
            if parent in seen:
                raise ProfileCycleError(f"Cyclic inheritance through {parent}")
            seen.add(parent)
            chain.append(classes[parent])
            parent = classes[parent].parent
        return chain


@dataclass(frozen=True)
class BuildProfile(_Descriptor):
    """A whitelist/blacklist used to reduce the schema."""

    enabled_classes: list[str] = field(default_factory=list)
    disabled_classes: list[str] = field(default_factory=list)


# Scalar name -> concrete fixed-width name. "real" is resolved by precision.
SCALAR_TYPES: dict[str, str] = {
    "bool": "bool",
    "int8": "int8",
    "int16": "int16",
    "int32": "int32",
    "int64": "int64",
    "uint8": "uint8",
    "uint16": "uint16",
    "uint32": "uint32",
    "uint64": "uint64",
    "int": "int64",
    "float32": "float32",
    "float64": "float64",
    "float": "float64",
}

REAL_TYPE = "real"

VOID_MARKERS = frozenset(["", "void", "Nil"])

DYNAMIC_TYPE = "Variant"

PRECISIONS = ("single", "double")


def build_config_name(precision: str, bits: int) -> str:
    """Return the build configuration name for a precision and pointer width."""
    prefix = "float" if precision == "single" else "double"
    return f"{prefix}_{bits}"
