"""Python code generator for host API bindings."""

from collections.abc import Iterable, Iterator
from importlib import resources
from typing import TYPE_CHECKING

from jinja2 import Environment, PackageLoader

from .resolver import Category, ResolvedType
from .types import Header
from .util import MEMBER_RESERVED, MODULE_RESERVED, escape_identifier

if TYPE_CHECKING:
    from .emitter import (
        BuiltinPlan,
        ClassPlan,
        ConstructorPlan,
        GeneratorOptions,
        MethodPlan,
        OperatorPlan,
        PackagePlan,
        ParamPlan,
        TypeNames,
    )

RUNTIME_FILES = [
    "__init__.py",
    "abi.py",
    "bindcache.py",
    "objects.py",
    "registry.py",
    "values.py",
]

env = Environment(
    loader=PackageLoader("hostbind.generator", "templates"),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    line_comment_prefix="%%",
    line_statement_prefix="%",
)

# Map scalar types to Python type annotations
SCALAR_ANNOTATIONS = {
    "bool": "bool",
    "int8": "int",
    "int16": "int",
    "int32": "int",
    "int64": "int",
    "uint8": "int",
    "uint16": "int",
    "uint32": "int",
    "uint64": "int",
    "float32": "float",
    "float64": "float",
}

# Default return values of virtual methods, by annotation
VIRTUAL_DEFAULTS = {
    "bool": "False",
    "int": "0",
    "float": "0.0",
    "str": '""',
}

# Member meta -> annotation for builtin members
MEMBER_ANNOTATIONS = {
    "bool": "bool",
    "float": "float",
    "double": "float",
    **SCALAR_ANNOTATIONS,
}

# Operator symbol -> (dunder, unary)
OPERATOR_DUNDERS = {
    "==": ("__eq__", False),
    "!=": ("__ne__", False),
    "<": ("__lt__", False),
    "<=": ("__le__", False),
    ">": ("__gt__", False),
    ">=": ("__ge__", False),
    "+": ("__add__", False),
    "-": ("__sub__", False),
    "*": ("__mul__", False),
    "/": ("__truediv__", False),
    "%": ("__mod__", False),
    "**": ("__pow__", False),
    "<<": ("__lshift__", False),
    ">>": ("__rshift__", False),
    "&": ("__and__", False),
    "|": ("__or__", False),
    "^": ("__xor__", False),
    "unary-": ("__neg__", True),
    "unary+": ("__pos__", True),
    "~": ("__invert__", True),
}

GENERATED_HEADER = "# Generated by hostbind. Do not edit."


def _walk(t: ResolvedType) -> Iterator[ResolvedType]:
    if t.element is not None:
        yield from _walk(t.element)
    yield t


class PythonTarget:
    """Render emitter plans as Python modules and stubs."""

    def __init__(self, names: "TypeNames", options: "GeneratorOptions", header: Header):
        self.names = names
        self.options = options
        self.header = header

    # ---- Type mapping ----

    def _enum_name(self, t: ResolvedType) -> str | None:
        """Python name of an enum type, or None when its owner is not generated."""
        owner, _, enum = t.name.rpartition(".")
        enum = escape_identifier(enum, MODULE_RESERVED)
        if not owner:
            return enum
        if owner in self.names.classes or owner in self.names.builtins:
            return f"{self.names.python_name(owner)}.{enum}"
        return None

    def annotation(self, t: ResolvedType) -> str:
        """Map a resolved type to a Python type annotation."""
        match t.category:
            case Category.VOID:
                return "None"
            case Category.SCALAR:
                return SCALAR_ANNOTATIONS[t.name]
            case Category.ENUM | Category.BITFIELD:
                return self._enum_name(t) or "int"
            case Category.TYPED_CONTAINER if t.element is not None:
                return f"list[{self.annotation(t.element)}]"
            case Category.OBJECT_REF:
                return f"{self.names.python_name(t.name)} | None"
            case Category.STRING_LIKE:
                return "str"
            case Category.VALUE_TYPE:
                return self.names.python_name(t.name)
        return "Any"

    def param_annotation(self, p: "ParamPlan") -> str:
        ann = self.annotation(p.type)
        if p.nullable and ann != "Any" and not ann.endswith("| None"):
            return f"{ann} | None"
        return ann

    def encode(self, t: ResolvedType, expr: str, depth: int = 0) -> str:
        """Expression converting a Python argument to its ABI form."""
        match t.category:
            case Category.SCALAR:
                return f'_rt.coerce_scalar("{t.name}", {expr})'
            case Category.ENUM | Category.BITFIELD:
                return f"int({expr})"
            case Category.TYPED_CONTAINER if t.element is not None:
                var = f"_e{depth}"
                return f"[{self.encode(t.element, var, depth + 1)} for {var} in {expr}]"
            case Category.OBJECT_REF:
                return f"_rt.object_ptr({expr})"
            case Category.STRING_LIKE:
                return f"str({expr})"
            case Category.VALUE_TYPE:
                return f"_rt.value_ptr({expr})"
        return f"_rt.to_variant({expr})"

    def encode_param(self, p: "ParamPlan") -> str:
        encoded = self.encode(p.type, p.name)
        if p.nullable and p.type.category not in (Category.OBJECT_REF, Category.DYNAMIC_ANY):
            return f"None if {p.name} is None else {encoded}"
        return encoded

    def decode(self, t: ResolvedType, expr: str, depth: int = 0) -> str:
        """Expression converting an ABI result to its Python form."""
        match t.category:
            case Category.ENUM | Category.BITFIELD:
                if self._enum_name(t) is None:
                    return f"int({expr})"
                return f'_rt.decode_enum("{t.name}", {expr})'
            case Category.TYPED_CONTAINER if t.element is not None:
                var = f"_e{depth}"
                return f"[{self.decode(t.element, var, depth + 1)} for {var} in {expr}]"
            case Category.OBJECT_REF:
                return f'_rt.wrap_object("{t.name}", {expr})'
            case Category.VALUE_TYPE:
                return f'_rt.wrap_value("{t.name}", {expr})'
        return expr

    def accepts(self, t: ResolvedType, expr: str, local: str = "") -> str:
        """Condition that holds when expr can be passed as t (overload dispatch)."""
        match t.category:
            case Category.SCALAR:
                if t.name == "bool":
                    return f"isinstance({expr}, bool)"
                if t.name.startswith("float"):
                    return f"isinstance({expr}, (int, float))"
                return f"isinstance({expr}, int)"
            case Category.ENUM | Category.BITFIELD:
                return f"isinstance({expr}, int)"
            case Category.TYPED_CONTAINER:
                return f"isinstance({expr}, (list, tuple))"
            case Category.OBJECT_REF:
                return f"({expr} is None or isinstance({expr}, _rt.ObjectBase))"
            case Category.STRING_LIKE:
                return f"isinstance({expr}, str)"
            case Category.VALUE_TYPE:
                if t.name == local:
                    return f"isinstance({expr}, {self.names.python_name(t.name)})"
                return f'isinstance({expr}, _rt.class_db.get("{t.name}"))'
        return "True"

    # ---- Methods ----

    def signature(self, m: "MethodPlan") -> str:
        params = [] if m.is_static else ["self"]
        for p in m.params:
            text = f"{p.name}: {self.param_annotation(p)}"
            if p.default is not None:
                text += f" = {p.default}"
            params.append(text)
        if m.is_vararg:
            params.append("*args: Any")
        return ", ".join(params)

    def stub_signature(self, m: "MethodPlan") -> str:
        params = [] if m.is_static else ["self"]
        for p in m.params:
            text = f"{p.name}: {self.param_annotation(p)}"
            if p.default is not None:
                text += " = ..."
            params.append(text)
        if m.is_vararg:
            params.append("*args: Any")
        return ", ".join(params)

    def returns(self, m: "MethodPlan") -> str:
        ann = self.annotation(m.returns)
        if m.is_virtual and ann not in VIRTUAL_DEFAULTS and ann not in ("None", "Any"):
            if not ann.startswith("list[") and not ann.endswith("| None"):
                return f"{ann} | None"
        return ann

    def body(self, m: "MethodPlan", instance: str) -> str:
        """Single statement implementing a method."""
        if m.is_virtual:
            ann = self.annotation(m.returns)
            if m.returns.is_void:
                return "pass"
            if ann.startswith("list["):
                return "return []"
            return f"return {VIRTUAL_DEFAULTS.get(ann, 'None')}"

        args = [self.encode_param(p) for p in m.params]
        if m.is_vararg:
            args.append("*[_rt.to_variant(_a) for _a in args]")
        call = f"{m.bind_var}.call({'None' if m.is_static else instance}, [{', '.join(args)}])"
        if m.returns.is_void:
            return call
        return f"return {self.decode(m.returns, call)}"

    def bind(self, m: "MethodPlan") -> str:
        return (
            f'{m.bind_var} = _rt.MethodBind("{m.owner}", "{m.wire_name}", {m.hash}, checked=_CHECKED)'
        )

    # ---- Builtin value types ----

    def constructor_condition(self, ctor: "ConstructorPlan", local: str) -> str:
        checks = [f"len(args) == {len(ctor.params)}"]
        checks.extend(self.accepts(p.type, f"args[{i}]", local) for i, p in enumerate(ctor.params))
        return " and ".join(c for c in checks if c != "True")

    def constructor_call(self, ctor: "ConstructorPlan") -> str:
        args = ", ".join(self.encode(p.type, f"args[{i}]") for i, p in enumerate(ctor.params))
        return f"{ctor.bind_var}.call(self._opaque, [{args}])"

    def operator_groups(
        self, builtin: "BuiltinPlan"
    ) -> list[tuple[str, bool, list["OperatorPlan"]]]:
        """Group operators by the Python dunder implementing them."""
        groups: dict[str, tuple[bool, list[OperatorPlan]]] = {}
        for op in builtin.operators:
            if op.symbol not in OPERATOR_DUNDERS:
                continue
            dunder, unary = OPERATOR_DUNDERS[op.symbol]
            if not unary and (op.right is None or op.right.is_void):
                continue
            groups.setdefault(dunder, (unary, []))[1].append(op)
        return [(dunder, unary, ops) for dunder, (unary, ops) in groups.items()]

    def operator_call(self, op: "OperatorPlan") -> str:
        args = "" if op.right is None or op.right.is_void else self.encode(op.right, "other")
        return self.decode(op.returns, f"{op.bind_var}.call(self._opaque, [{args}])")

    def member_annotation(self, meta: str) -> str:
        if meta in MEMBER_ANNOTATIONS:
            return MEMBER_ANNOTATIONS[meta]
        return self.names.python_name(meta)

    # ---- Imports ----

    def _import_source(self, t: ResolvedType) -> tuple[str, str, str] | None:
        """(subpackage, module, name) to import for one type, if it needs an import."""
        wire = None
        if t.category in (Category.OBJECT_REF, Category.VALUE_TYPE):
            wire = t.name
        elif t.category in (Category.ENUM, Category.BITFIELD):
            if t.owner is None:
                return "", "global_constants", escape_identifier(t.name, MODULE_RESERVED)
            wire = t.owner
        if wire in self.names.classes:
            name, module = self.names.classes[wire]
            return "classes", module, name
        if wire in self.names.builtins:
            name, module = self.names.builtins[wire]
            return "builtins", module, name
        return None

    def imports(self, types: Iterable[ResolvedType], here: str, skip: Iterable[str] = ()) -> list[str]:
        """Import lines for the types an annotation mentions.

        here is the subpackage of the importing module ("" for the package root).
        """
        skipped = set(skip)
        modules: dict[str, set[str]] = {}
        for t in types:
            for inner in _walk(t):
                source = self._import_source(inner)
                if source is None or source[2] in skipped:
                    continue
                subpackage, module, name = source
                if subpackage == here:
                    path = f".{module}"
                elif here:
                    path = f"..{subpackage}.{module}" if subpackage else f"..{module}"
                else:
                    path = f".{subpackage}.{module}"
                modules.setdefault(path, set()).add(name)
        return [f"from {path} import {', '.join(sorted(n))}" for path, n in sorted(modules.items())]

    @staticmethod
    def _method_types(methods: Iterable["MethodPlan"]) -> list[ResolvedType]:
        types = []
        for m in methods:
            types.append(m.returns)
            types.extend(p.type for p in m.params)
        return types

    def class_types(self, cls: "ClassPlan") -> list[ResolvedType]:
        types = self._method_types(cls.methods)
        types.extend(p.type for p in cls.properties)
        return types

    def builtin_types(self, builtin: "BuiltinPlan") -> list[ResolvedType]:
        types = self._method_types(builtin.methods)
        for ctor in builtin.constructors:
            types.extend(p.type for p in ctor.params)
        for op in builtin.operators:
            types.append(op.returns)
            if op.right is not None:
                types.append(op.right)
        return types

    # ---- Rendering ----

    def _render(self, template: str, **kwargs) -> str:
        return env.get_template(template).render(
            header=GENERATED_HEADER,
            runtime_import=self.options.runtime_import,
            checked=self.options.checked,
            options=self.options,
            api=self.header,
            ann=self.annotation,
            param_ann=self.param_annotation,
            signature=self.signature,
            stub_signature=self.stub_signature,
            returns=self.returns,
            body=self.body,
            bind=self.bind,
            imports=self.imports,
            class_name=self.names.python_name,
            member_name=lambda name: escape_identifier(name, MEMBER_RESERVED),
            BLANK_LINE="",
            **kwargs,
        )

    def render_class(self, cls: "ClassPlan") -> str:
        skip = [cls.name, cls.parent]
        return self._render(
            "class.py.j2",
            cls=cls,
            type_imports=self.imports(self.class_types(cls), "classes", skip),
        )

    def render_class_stub(self, cls: "ClassPlan") -> str:
        return self._render(
            "class.pyi.j2",
            cls=cls,
            type_imports=self.imports(self.class_types(cls), "classes", [cls.name, cls.parent]),
        )

    def render_builtin(self, builtin: "BuiltinPlan") -> str:
        return self._render(
            "builtin.py.j2",
            builtin=builtin,
            type_imports=self.imports(self.builtin_types(builtin), "builtins", [builtin.name]),
            constructor_condition=lambda c: self.constructor_condition(c, builtin.wire_name),
            constructor_call=self.constructor_call,
            operator_groups=self.operator_groups(builtin),
            operator_call=self.operator_call,
            accepts=lambda t, e: self.accepts(t, e, builtin.wire_name),
        )

    def render_builtin_stub(self, builtin: "BuiltinPlan") -> str:
        return self._render(
            "builtin.pyi.j2",
            builtin=builtin,
            type_imports=self.imports(self.builtin_types(builtin), "builtins", [builtin.name]),
            operator_groups=self.operator_groups(builtin),
            member_annotation=self.member_annotation,
        )

    def render_subpackage(self, name: str) -> str:
        return self._render("subpackage.py.j2", name=name)

    def render_constants(self, package: "PackagePlan") -> str:
        return self._render("global_constants.py.j2", package=package)

    def render_constants_stub(self, package: "PackagePlan") -> str:
        return self._render("global_constants.pyi.j2", package=package)

    def render_utilities(self, package: "PackagePlan") -> str:
        types = self._method_types(package.utility_functions)
        return self._render(
            "utility_functions.py.j2", package=package, type_imports=self.imports(types, "")
        )

    def render_utilities_stub(self, package: "PackagePlan") -> str:
        types = self._method_types(package.utility_functions)
        return self._render(
            "utility_functions.pyi.j2", package=package, type_imports=self.imports(types, "")
        )

    def render_register_types(self, package: "PackagePlan") -> str:
        return self._render("register_types.py.j2", package=package)

    def render_package(self, package: "PackagePlan") -> str:
        exported = [cls.name for cls in package.classes]
        exported += [builtin.name for builtin in package.builtins]
        exported += [enum.name for enum in package.enums]
        return self._render("package_init.py.j2", package=package, exported=sorted(exported))


def runtime() -> dict[str, str]:
    """Return the runtime support files as a dict of filename -> content."""
    result: dict[str, str] = {}
    for filename in RUNTIME_FILES:
        content = resources.files("hostbind.runtime").joinpath(filename).read_text()
        result[filename] = content
    return result
