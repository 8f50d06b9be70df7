"""Naming helpers for generated code."""

import keyword
import re

_SNAKE_BOUNDARY = re.compile(r"(?<=[a-z])(?=[A-Z])|(?<=[A-Z0-9])(?=[A-Z][a-z])")

_INT_LITERAL = re.compile(r"^[+-]?\d+$")
_FLOAT_LITERAL = re.compile(r"^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$")
_STRING_LITERAL = re.compile(r'^[&^]?"(.*)"$')

# Names the generated modules import or define at module level.
MODULE_RESERVED = frozenset(
    ["_rt", "_CHECKED", "_ctor", "_singleton", "Any", "ClassVar", "IntEnum", "IntFlag", "TYPE_CHECKING"]
)

# Attributes the runtime base classes define on every wrapper.
MEMBER_RESERVED = frozenset(
    [
        "acquire",
        "release",
        "get_singleton",
        "is_null",
        "copy",
        "_ptr",
        "_owned",
        "_opaque",
        "_class_name",
        "_type_name",
        "_size",
        "_ownership",
        "_signals",
    ]
)

# Builtins the generated module code calls.
FUNCTION_RESERVED = MODULE_RESERVED | frozenset(
    ["bool", "int", "float", "str", "list", "tuple", "len", "isinstance"]
)


def to_snake_case(name: str) -> str:
    """Convert a CamelCase type name to a module name.

    HTTPRequest -> http_request, Node3D -> node3d, ClassDBSingleton -> class_db_singleton
    """
    return escape_identifier(_SNAKE_BOUNDARY.sub("_", name).lower())


def escape_identifier(name: str, reserved: frozenset[str] = frozenset()) -> str:
    """Append an underscore to names Python or the generated code already uses."""
    if keyword.iskeyword(name) or keyword.issoftkeyword(name) or name in reserved:
        return f"{name}_"
    return name


def python_literal(literal: str | None) -> str | None:
    """Translate a schema default literal to Python source.

    Literals with no direct Python spelling become None, meaning the host
    applies its own default.
    """
    if literal is None:
        return None
    text = literal.strip()
    if text in ("null", "nil", "Nil"):
        return "None"
    if text == "true":
        return "True"
    if text == "false":
        return "False"
    if _INT_LITERAL.match(text):
        return str(int(text))
    if _FLOAT_LITERAL.match(text):
        return repr(float(text))
    match = _STRING_LITERAL.match(text)
    if match:
        return repr(match.group(1))
    return "None"


def constant_literal(value: object) -> str | None:
    """Python source for a constant value, or None when it has no literal form."""
    if isinstance(value, bool | int | float | str):
        return repr(value)
    return None
