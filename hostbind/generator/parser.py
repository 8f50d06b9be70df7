"""Schema loading, validation and the type reference parser."""

import json
import os
import warnings
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from lark import Lark
from lark.exceptions import LarkError
from lark.visitors import Transformer

from .errors import MissingHashWarning, SchemaError
from .types import PRECISIONS, VOID_MARKERS, Schema

_g_parser: Lark | None = None

CLASS_FLAG_KEYS = {
    "instantiable": "instantiable",
    "refCounted": "refCounted",
    "ref_counted": "refCounted",
    "singleton": "singleton",
}

METHOD_FLAG_KEYS = {
    "static": "static",
    "isStatic": "static",
    "virtual": "virtual",
    "isVirtual": "virtual",
    "vararg": "vararg",
    "isVararg": "vararg",
    "const": "const",
    "isConst": "const",
}


@dataclass(frozen=True)
class TypeRef:
    """A parsed type reference.

    kind is one of "named", "enum", "bitfield" or "container". For containers
    the element holds the parsed element type.
    """

    kind: str
    name: str
    element: "TypeRef | None" = None

    def class_names(self) -> list[str]:
        """Return every name this reference mentions that could be a class."""
        if self.element is not None:
            return self.element.class_names()
        if "." in self.name:
            return [self.name.split(".", 1)[0]]
        return [self.name]


class TypeRefTransformer(Transformer):
    """Transform a type reference parse tree into a TypeRef."""

    def container(self, args: list[Any]) -> TypeRef:
        return TypeRef(kind="container", name="typedarray", element=args[0])

    def enum_ref(self, args: list[Any]) -> TypeRef:
        return TypeRef(kind="enum", name=args[0])

    def bitfield_ref(self, args: list[Any]) -> TypeRef:
        return TypeRef(kind="bitfield", name=args[0])

    def named(self, args: list[Any]) -> TypeRef:
        return TypeRef(kind="named", name=args[0])

    def qualified_name(self, args: list[Any]) -> str:
        return ".".join(str(arg) for arg in args)


def _get_parser() -> Lark:
    global _g_parser

    if not _g_parser:
        with open(f"{os.path.dirname(__file__)}/typeref.lark", encoding="utf-8") as f:
            grammar = f.read()
        _g_parser = Lark(grammar, parser="lalr")
    return _g_parser


@lru_cache(maxsize=None)
def parse_type_ref(text: str) -> TypeRef:
    """Parse a type reference. Void markers must be handled by the caller."""
    try:
        tree = _get_parser().parse(text.strip())
    except LarkError as e:
        raise SchemaError(f"Malformed type reference {text!r}") from e
    return TypeRefTransformer().transform(tree)


def _require(obj: Any, key: str, where: str) -> Any:
    if not isinstance(obj, dict):
        raise SchemaError(f"{where}: expected an object")
    value = obj.get(key)
    if value is None or value == "":
        raise SchemaError(f"{where}: missing required field '{key}'")
    return value


def _integer(value: Any, where: str, key: str) -> int:
    if isinstance(value, bool):
        raise SchemaError(f"{where}: {key} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise SchemaError(f"{where}: {key} must be an integer, got {value!r}") from None


def _check_type(type_ref: Any, where: str) -> str:
    if not isinstance(type_ref, str):
        raise SchemaError(f"{where}: type must be a string")
    if type_ref not in VOID_MARKERS:
        parse_type_ref(type_ref)
    return type_ref


def _normalize_flags(flags: Any, keys: dict[str, str], where: str) -> dict[str, bool]:
    """Accept flags as an object or as a list of flag names."""
    if flags is None:
        return {}
    if isinstance(flags, list):
        flags = {name: True for name in flags}
    if not isinstance(flags, dict):
        raise SchemaError(f"{where}: flags must be an object or a list")

    normalized: dict[str, bool] = {}
    for name, value in flags.items():
        if name not in keys:
            raise SchemaError(f"{where}: unknown flag '{name}'")
        normalized[keys[name]] = bool(value)
    return normalized


def _normalize_arguments(arguments: Any, where: str) -> list[dict[str, Any]]:
    result = []
    for i, arg in enumerate(arguments or []):
        arg_where = f"{where}.arguments[{i}]"
        arg_type = _check_type(_require(arg, "type", arg_where), arg_where)
        normalized = {"name": arg.get("name") or f"arg{i}", "type": arg_type}
        if arg.get("defaultValue") is not None:
            normalized["defaultValue"] = str(arg["defaultValue"])
        result.append(normalized)
    return result


def _normalize_method(method: Any, where: str, *, bound: bool = True) -> dict[str, Any]:
    name = _require(method, "name", where)
    flags = _normalize_flags(method.get("flags"), METHOD_FLAG_KEYS, where)
    normalized: dict[str, Any] = {
        "name": name,
        "arguments": _normalize_arguments(method.get("arguments"), where),
        "flags": flags,
    }
    if method.get("returnType") is not None:
        normalized["returnType"] = _check_type(method["returnType"], f"{where}.returnType")

    if method.get("hash") is not None:
        normalized["hash"] = _integer(method["hash"], where, "hash")
    elif bound and not flags.get("virtual", False):
        warnings.warn(
            f"{where}: method {name} has no hash, using 0", MissingHashWarning, stacklevel=4
        )
    return normalized


def _normalize_enum(enum: Any, where: str) -> dict[str, Any]:
    name = _require(enum, "name", where)
    values = []
    for i, value in enumerate(enum.get("values") or []):
        value_where = f"{where}.values[{i}]"
        values.append(
            {
                "name": _require(value, "name", value_where),
                "value": _integer(_require(value, "value", value_where), value_where, "value"),
            }
        )
    return {"name": name, "isBitfield": bool(enum.get("isBitfield", False)), "values": values}


def _normalize_constants(constants: Any, where: str) -> list[dict[str, Any]]:
    return [
        {"name": _require(c, "name", f"{where}.constants[{i}]"), "value": c.get("value")}
        for i, c in enumerate(constants or [])
    ]


def _normalize_class(cls: Any, where: str) -> dict[str, Any]:
    name = _require(cls, "name", where)
    where = f"class {name}"
    properties = []
    for i, prop in enumerate(cls.get("properties") or []):
        prop_where = f"{where}.properties[{i}]"
        properties.append(
            {
                "name": _require(prop, "name", prop_where),
                "type": _check_type(_require(prop, "type", prop_where), prop_where),
                "getter": prop.get("getter") or "",
                "setter": prop.get("setter") or "",
            }
        )
    signals = [
        {
            "name": _require(signal, "name", f"{where}.signals[{i}]"),
            "arguments": _normalize_arguments(signal.get("arguments"), f"{where}.signals[{i}]"),
        }
        for i, signal in enumerate(cls.get("signals") or [])
    ]

    return {
        "name": name,
        "parent": cls.get("parent") or "",
        "flags": _normalize_flags(cls.get("flags"), CLASS_FLAG_KEYS, where),
        "methods": [
            _normalize_method(m, f"{where}.methods[{i}]") for i, m in enumerate(cls.get("methods") or [])
        ],
        "enums": [_normalize_enum(e, f"{where}.enums[{i}]") for i, e in enumerate(cls.get("enums") or [])],
        "properties": properties,
        "signals": signals,
        "constants": _normalize_constants(cls.get("constants"), where),
    }


def _normalize_builtin(builtin: Any, where: str) -> dict[str, Any]:
    name = _require(builtin, "name", where)
    where = f"builtin {name}"
    constructors = []
    for i, ctor in enumerate(builtin.get("constructors") or []):
        ctor_where = f"{where}.constructors[{i}]"
        constructors.append(
            {
                "index": _integer(ctor.get("index", i), ctor_where, "index"),
                "arguments": _normalize_arguments(ctor.get("arguments"), ctor_where),
            }
        )
    operators = []
    for i, op in enumerate(builtin.get("operators") or []):
        op_where = f"{where}.operators[{i}]"
        normalized = {
            "name": _require(op, "name", op_where),
            "returnType": _check_type(_require(op, "returnType", op_where), op_where),
        }
        if op.get("rightType"):
            normalized["rightType"] = _check_type(op["rightType"], op_where)
        operators.append(normalized)
    members = []
    for i, member in enumerate(builtin.get("members") or []):
        member_where = f"{where}.members[{i}]"
        members.append(
            {
                "name": _require(member, "name", member_where),
                "type": _check_type(_require(member, "type", member_where), member_where),
            }
        )

    return {
        "name": name,
        "constructors": constructors,
        "operators": operators,
        "methods": [
            _normalize_method(m, f"{where}.methods[{i}]")
            for i, m in enumerate(builtin.get("methods") or [])
        ],
        "members": members,
        "constants": _normalize_constants(builtin.get("constants"), where),
        "enums": [
            _normalize_enum(e, f"{where}.enums[{i}]") for i, e in enumerate(builtin.get("enums") or [])
        ],
    }


def _normalize_header(header: Any) -> dict[str, Any]:
    if header is None:
        return {}
    if not isinstance(header, dict):
        raise SchemaError("header: expected an object")

    precision = header.get("precision")
    if precision is not None and precision not in PRECISIONS:
        raise SchemaError(f"header: unknown precision '{precision}'")
    normalized = {
        key: _integer(header[key], "header", key)
        for key in ("majorVersion", "minorVersion", "patchVersion")
        if header.get(key) is not None
    }
    normalized["precision"] = precision
    if header.get("stringTypes") is not None:
        normalized["stringTypes"] = [str(name) for name in header["stringTypes"]]
    return normalized


def validate(schema: Schema) -> None:
    """Validate cross references of a loaded schema."""
    class_names: set[str] = set()
    for cls in schema.classes:
        if cls.name in class_names:
            raise SchemaError(f"Class {cls.name} declared more than once")
        class_names.add(cls.name)

    for cls in schema.classes:
        if cls.parent and cls.parent not in class_names:
            raise SchemaError(f"Class {cls.name} inherits from undeclared class {cls.parent}")

    for singleton in schema.singletons:
        if singleton.type not in class_names:
            raise SchemaError(f"Singleton {singleton.name} has undeclared type {singleton.type}")

    # Every size table must cover the same builtin types, and every declared
    # builtin class must be sized in every build configuration.
    tables = {table.build_config: table for table in schema.builtin_size_tables}
    if len(tables) != len(schema.builtin_size_tables):
        raise SchemaError("Duplicate build configuration in builtinSizeTables")

    sized: set[str] = {entry.name for table in tables.values() for entry in table.sizes}
    sized.update(builtin.name for builtin in schema.builtin_classes)
    for config, table in tables.items():
        missing = sized - {entry.name for entry in table.sizes}
        if missing:
            raise SchemaError(
                f"Build configuration {config} has no size for: {', '.join(sorted(missing))}"
            )
    if schema.builtin_classes and not tables:
        raise SchemaError("Builtin classes declared without any builtinSizeTables")

    for offsets in schema.member_offset_tables:
        if offsets.build_config not in tables:
            raise SchemaError(
                f"memberOffsetTables references undeclared build configuration {offsets.build_config}"
            )


def load(raw: Any) -> Schema:
    """Load and validate a schema from its decoded JSON form."""
    if not isinstance(raw, dict):
        raise SchemaError("Schema root must be an object")

    normalized: dict[str, Any] = {
        "header": _normalize_header(raw.get("header")),
        "builtinSizeTables": [
            {
                "buildConfig": _require(table, "buildConfig", f"builtinSizeTables[{i}]"),
                "sizes": [
                    {
                        "name": _require(entry, "name", f"builtinSizeTables[{i}].sizes[{j}]"),
                        "size": _integer(
                            _require(entry, "size", f"builtinSizeTables[{i}].sizes[{j}]"),
                            f"builtinSizeTables[{i}].sizes[{j}]",
                            "size",
                        ),
                    }
                    for j, entry in enumerate(table.get("sizes") or [])
                ],
            }
            for i, table in enumerate(raw.get("builtinSizeTables") or [])
        ],
        "memberOffsetTables": [
            {
                "buildConfig": _require(table, "buildConfig", f"memberOffsetTables[{i}]"),
                "classes": [
                    {
                        "name": _require(cls, "name", f"memberOffsetTables[{i}].classes[{j}]"),
                        "members": [
                            {
                                "member": _require(m, "member", f"memberOffsetTables[{i}]"),
                                "offset": _integer(
                                    m.get("offset", 0), f"memberOffsetTables[{i}]", "offset"
                                ),
                                "meta": _require(m, "meta", f"memberOffsetTables[{i}]"),
                            }
                            for m in cls.get("members") or []
                        ],
                    }
                    for j, cls in enumerate(table.get("classes") or [])
                ],
            }
            for i, table in enumerate(raw.get("memberOffsetTables") or [])
        ],
        "builtinClasses": [
            _normalize_builtin(b, f"builtinClasses[{i}]")
            for i, b in enumerate(raw.get("builtinClasses") or [])
        ],
        "enums": [_normalize_enum(e, f"enums[{i}]") for i, e in enumerate(raw.get("enums") or [])],
        "classes": [_normalize_class(c, f"classes[{i}]") for i, c in enumerate(raw.get("classes") or [])],
        "utilityFunctions": [
            _normalize_method(f, f"utilityFunctions[{i}]")
            for i, f in enumerate(raw.get("utilityFunctions") or [])
        ],
        "singletons": [
            {
                "name": _require(s, "name", f"singletons[{i}]"),
                "type": s.get("type") or s["name"],
            }
            for i, s in enumerate(raw.get("singletons") or [])
        ],
    }

    schema = Schema.from_dict(normalized)
    validate(schema)
    return schema


def loads(text: str) -> Schema:
    """Load and validate a schema from JSON text."""
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise SchemaError(f"Schema is not valid JSON: {e}") from e
    return load(raw)
