"""Size and member layout calculation for builtin value types."""

from dataclasses import dataclass
from enum import StrEnum, auto

from .errors import SchemaError
from .types import Schema

# Scalar member meta -> (struct format character, size in bytes)
META_FORMATS: dict[str, tuple[str, int]] = {
    "bool": ("?", 1),
    "int8": ("b", 1),
    "uint8": ("B", 1),
    "int16": ("h", 2),
    "uint16": ("H", 2),
    "int32": ("i", 4),
    "uint32": ("I", 4),
    "int64": ("q", 8),
    "uint64": ("Q", 8),
    "float": ("f", 4),
    "float32": ("f", 4),
    "double": ("d", 8),
    "float64": ("d", 8),
}


class MemberKind(StrEnum):
    """How a member is stored inside its owner."""

    SCALAR = auto()  # Packed scalar, read with struct
    NESTED = auto()  # Another builtin value type stored inline


@dataclass(frozen=True)
class MemberLayout:
    """Placement of one member inside a builtin value."""

    name: str
    offset: int
    size: int
    kind: MemberKind
    meta: str
    format: str | None = None


@dataclass(frozen=True)
class BuiltinLayout:
    """Storage layout of a builtin value type in one build configuration."""

    name: str
    size: int
    members: tuple[MemberLayout, ...]


@dataclass(frozen=True)
class LayoutInfo:
    """Layouts for every sized builtin type in one build configuration."""

    build_config: str
    builtins: dict[str, BuiltinLayout]

    @property
    def total_size(self) -> int:
        return sum(layout.size for layout in self.builtins.values())


class LayoutCalculator:
    """Calculate builtin layouts for a single build configuration."""

    def __init__(self, schema: Schema, build_config: str):
        tables = {table.build_config: table for table in schema.builtin_size_tables}
        if build_config not in tables:
            declared = ", ".join(tables) or "none"
            raise SchemaError(
                f"No size table for build configuration {build_config} (declared: {declared})"
            )
        self.build_config = build_config
        self.sizes = {entry.name: entry.size for entry in tables[build_config].sizes}
        self.offsets = {
            cls.name: cls.members
            for table in schema.member_offset_tables
            if table.build_config == build_config
            for cls in table.classes
        }

    def calc_member(self, owner: str, member: str, offset: int, meta: str) -> MemberLayout:
        """Calculate the layout of a single member."""
        if meta in META_FORMATS:
            fmt, size = META_FORMATS[meta]
            layout = MemberLayout(member, offset, size, MemberKind.SCALAR, meta, fmt)
        elif meta in self.sizes:
            layout = MemberLayout(member, offset, self.sizes[meta], MemberKind.NESTED, meta)
        else:
            raise SchemaError(f"{owner}.{member}: unknown member meta {meta}")

        if offset < 0 or offset + layout.size > self.sizes[owner]:
            raise SchemaError(
                f"{owner}.{member} at offset {offset} does not fit in "
                f"{self.sizes[owner]} bytes ({self.build_config})"
            )
        return layout

    def calc_builtin(self, name: str) -> BuiltinLayout:
        """Calculate the layout of one builtin type."""
        members = tuple(
            self.calc_member(name, m.member, m.offset, m.meta) for m in self.offsets.get(name, [])
        )
        return BuiltinLayout(name, self.sizes[name], members)

    def calc_layouts(self) -> LayoutInfo:
        return LayoutInfo(
            build_config=self.build_config,
            builtins={name: self.calc_builtin(name) for name in self.sizes},
        )


def calculate_layouts(schema: Schema, build_config: str) -> LayoutInfo:
    """Calculate builtin layouts for a build configuration."""
    return LayoutCalculator(schema, build_config).calc_layouts()
