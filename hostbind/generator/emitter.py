"""Binding emitter.

The emitter turns a filtered schema into per-unit plans (names, bind keys,
resolved types) and hands them to the Python target for rendering. Nothing is
written until every unit has rendered, so a failing generation leaves the
output directory untouched.
"""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from . import python
from .errors import SchemaError
from .profile import apply
from .resolver import Category, ResolvedType, TypeResolver, check_precision
from .sizes import LayoutInfo, MemberKind, calculate_layouts
from .types import (
    ArgumentDescriptor,
    BuildProfile,
    BuiltinClassDescriptor,
    ClassDescriptor,
    EnumDescriptor,
    MethodDescriptor,
    Schema,
    build_config_name,
)
from .util import (
    FUNCTION_RESERVED,
    MEMBER_RESERVED,
    MODULE_RESERVED,
    constant_literal,
    escape_identifier,
    python_literal,
    to_snake_case,
)
from .virtuals import VirtualRegistration, class_order, collect_registrations

logger = logging.getLogger(__name__)

# Schema names that collide with the generator's own infrastructure.
CLASS_ALIASES = {
    "ClassDB": "ClassDBSingleton",
}

# Owner name used to bind utility functions.
UTILITY_OWNER = ""


@dataclass(frozen=True)
class GeneratorOptions:
    """Options for one generation run."""

    precision: str = "single"
    bits: int = 64
    package: str = "host_api"
    runtime_import: str = "hostbind.runtime"
    checked: bool = True

    @property
    def build_config(self) -> str:
        return build_config_name(self.precision, self.bits)


@dataclass(frozen=True)
class ParamPlan:
    name: str
    type: ResolvedType
    default: str | None = None

    @property
    def nullable(self) -> bool:
        return self.default == "None"


@dataclass(frozen=True)
class MethodPlan:
    """A bound method. bind_var names the module-level call site."""

    name: str
    wire_name: str
    owner: str
    hash: int
    params: tuple[ParamPlan, ...]
    returns: ResolvedType
    bind_var: str
    is_static: bool = False
    is_virtual: bool = False
    is_vararg: bool = False
    is_const: bool = False


@dataclass(frozen=True)
class EnumPlan:
    name: str
    qualname: str
    is_bitfield: bool
    values: tuple[tuple[str, int], ...]


@dataclass(frozen=True)
class ConstantPlan:
    name: str
    literal: str


@dataclass(frozen=True)
class PropertyPlan:
    name: str
    type: ResolvedType
    getter: str
    setter: str | None


@dataclass(frozen=True)
class SignalPlan:
    name: str
    arguments: tuple[tuple[str, str], ...]


@dataclass(frozen=True)
class ClassPlan:
    """Everything needed to render one class unit."""

    name: str
    wire_name: str
    module: str
    parent: str
    parent_wire: str
    parent_module: str
    instantiable: bool
    ref_counted: bool
    parent_ref_counted: bool
    singleton: bool
    methods: tuple[MethodPlan, ...]
    enums: tuple[EnumPlan, ...]
    constants: tuple[ConstantPlan, ...]
    properties: tuple[PropertyPlan, ...]
    signals: tuple[SignalPlan, ...]


@dataclass(frozen=True)
class ConstructorPlan:
    index: int
    params: tuple[ParamPlan, ...]
    bind_var: str


@dataclass(frozen=True)
class OperatorPlan:
    index: int
    symbol: str
    right: ResolvedType | None
    returns: ResolvedType
    bind_var: str


@dataclass(frozen=True)
class MemberPlan:
    name: str
    offset: int
    kind: MemberKind
    format: str | None
    meta: str


@dataclass(frozen=True)
class BuiltinPlan:
    """Everything needed to render one builtin value type unit."""

    name: str
    wire_name: str
    module: str
    size: int
    constructors: tuple[ConstructorPlan, ...]
    operators: tuple[OperatorPlan, ...]
    methods: tuple[MethodPlan, ...]
    members: tuple[MemberPlan, ...]
    enums: tuple[EnumPlan, ...]
    constants: tuple[ConstantPlan, ...]


@dataclass(frozen=True)
class PackagePlan:
    """The aggregate units: global enums, utility functions and registration."""

    enums: tuple[EnumPlan, ...]
    utility_functions: tuple[MethodPlan, ...]
    registrations: tuple[VirtualRegistration, ...]
    classes: tuple[ClassPlan, ...]
    builtins: tuple[BuiltinPlan, ...]


@dataclass
class TypeNames:
    """Python names and modules for every class and value type."""

    classes: dict[str, tuple[str, str]] = field(default_factory=dict)
    builtins: dict[str, tuple[str, str]] = field(default_factory=dict)
    global_enums: set[str] = field(default_factory=set)

    def python_name(self, wire_name: str) -> str:
        if wire_name in self.classes:
            return self.classes[wire_name][0]
        if wire_name in self.builtins:
            return self.builtins[wire_name][0]
        return wire_name


def type_alias(name: str) -> str:
    """Python name of a schema type."""
    if name in CLASS_ALIASES:
        return CLASS_ALIASES[name]
    return escape_identifier(name, MODULE_RESERVED)


class BindingEmitter:
    """Plan and render bindings for a filtered schema."""

    def __init__(self, schema: Schema, resolver: TypeResolver, options: GeneratorOptions):
        self.schema = schema
        self.resolver = resolver
        self.options = options
        self.class_map = schema.class_map()
        self.names = self._assign_names()
        if schema.builtin_size_tables:
            self.layouts = calculate_layouts(schema, options.build_config)
        else:
            self.layouts = LayoutInfo(options.build_config, {})

    def _assign_names(self) -> TypeNames:
        names = TypeNames(global_enums={enum.name for enum in self.schema.enums})
        modules: dict[str, str] = {}

        def claim(wire_name: str, subpackage: str) -> tuple[str, str]:
            alias = type_alias(wire_name)
            module = to_snake_case(alias)
            key = f"{subpackage}.{module}"
            if key in modules and modules[key] != wire_name:
                raise SchemaError(
                    f"{wire_name} and {modules[key]} map to the same module {module}"
                )
            modules[key] = wire_name
            return alias, module

        for cls in self.schema.classes:
            names.classes[cls.name] = claim(cls.name, "classes")
        for builtin in self._value_types():
            names.builtins[builtin.name] = claim(builtin.name, "builtins")
        return names

    def _value_types(self) -> list[BuiltinClassDescriptor]:
        """Builtin classes that get their own wrapper (not scalars or strings)."""
        return [
            builtin
            for builtin in self.schema.builtin_classes
            if self.resolver.resolve(builtin.name).category == Category.VALUE_TYPE
        ]

    # ---- Plans ----

    def _param(self, arg: ArgumentDescriptor, reserved: frozenset[str]) -> ParamPlan:
        return ParamPlan(
            name=escape_identifier(arg.name, reserved),
            type=self.resolver.resolve(arg.type),
            default=python_literal(arg.default_value),
        )

    def _params(self, arguments: list[ArgumentDescriptor]) -> tuple[ParamPlan, ...]:
        params = []
        seen: set[str] = set()
        reserved = frozenset(["self", "args", "cls", "_rt"])
        for arg in arguments:
            param = self._param(arg, reserved)
            if param.name in seen:
                param = ParamPlan(f"{param.name}_{len(params)}", param.type, param.default)
            seen.add(param.name)
            params.append(param)

        # Once a parameter has a default every later one needs one too.
        result = []
        defaulted = False
        for param in params:
            if param.default is not None:
                defaulted = True
            elif defaulted:
                param = ParamPlan(param.name, param.type, "None")
            result.append(param)
        return tuple(result)

    def _method(
        self, owner: str, method: MethodDescriptor, taken: set[str], *, utility: bool = False
    ) -> MethodPlan:
        name = escape_identifier(method.name, FUNCTION_RESERVED if utility else MEMBER_RESERVED)
        bind_var = f"_mb_{name}"
        while bind_var in taken:
            bind_var = f"{bind_var}_"
        taken.add(bind_var)
        return MethodPlan(
            name=name,
            wire_name=method.name,
            owner=owner,
            hash=method.hash,
            params=self._params(method.arguments),
            returns=self.resolver.resolve(method.return_type),
            bind_var=bind_var,
            is_static=method.is_static or utility,
            is_virtual=method.is_virtual and not utility,
            is_vararg=method.is_vararg,
            is_const=method.is_const,
        )

    def _enum(self, owner: str | None, enum: EnumDescriptor) -> EnumPlan:
        qualname = f"{owner}.{enum.name}" if owner else enum.name
        return EnumPlan(
            name=escape_identifier(enum.name, MODULE_RESERVED),
            qualname=qualname,
            is_bitfield=enum.is_bitfield,
            values=tuple((escape_identifier(v.name), v.value) for v in enum.values),
        )

    def _constants(self, owner: str, constants: list) -> tuple[ConstantPlan, ...]:
        result = []
        for constant in constants:
            literal = constant_literal(constant.value)
            if literal is None:
                logger.debug("Skipping constant %s.%s without a literal value", owner, constant.name)
                continue
            result.append(ConstantPlan(escape_identifier(constant.name), literal))
        return tuple(result)

    def _inherited_methods(self, cls: ClassDescriptor) -> dict[str, MethodDescriptor]:
        methods: dict[str, MethodDescriptor] = {}
        for owner in [*reversed(self.schema.ancestors(cls.name)), cls]:
            methods.update({m.name: m for m in owner.methods})
        return methods

    def _properties(
        self, cls: ClassDescriptor, methods: tuple[MethodPlan, ...]
    ) -> tuple[PropertyPlan, ...]:
        available = self._inherited_methods(cls)
        own_names = {m.name for m in methods}
        result = []
        for prop in cls.properties:
            name = escape_identifier(prop.name, MEMBER_RESERVED)
            getter = available.get(prop.getter)
            if getter is None or getter.arguments or getter.is_static or name in own_names:
                logger.debug("Skipping property %s.%s", cls.name, prop.name)
                continue
            setter = available.get(prop.setter) if prop.setter else None
            if setter is not None and (len(setter.arguments) != 1 or setter.is_static):
                setter = None
            result.append(
                PropertyPlan(
                    name=name,
                    type=self.resolver.resolve(prop.type),
                    getter=escape_identifier(getter.name, MEMBER_RESERVED),
                    setter=escape_identifier(setter.name, MEMBER_RESERVED) if setter else None,
                )
            )
        return tuple(result)

    def plan_class(self, cls: ClassDescriptor) -> ClassPlan:
        alias, module = self.names.classes[cls.name]
        parent = self.class_map.get(cls.parent) if cls.parent else None
        taken: set[str] = set()
        methods = tuple(self._method(cls.name, m, taken) for m in cls.methods)
        singleton_types = {s.type for s in self.schema.singletons}
        return ClassPlan(
            name=alias,
            wire_name=cls.name,
            module=module,
            parent=self.names.classes[parent.name][0] if parent else "",
            parent_wire=parent.name if parent else "",
            parent_module=self.names.classes[parent.name][1] if parent else "",
            instantiable=cls.is_instantiable and not cls.is_singleton,
            ref_counted=cls.is_ref_counted,
            parent_ref_counted=bool(parent and any(
                a.is_ref_counted for a in self.schema.ancestors(cls.name)
            )),
            singleton=cls.is_singleton or cls.name in singleton_types,
            methods=methods,
            enums=tuple(self._enum(cls.name, e) for e in cls.enums),
            constants=self._constants(cls.name, cls.constants),
            properties=self._properties(cls, methods),
            signals=tuple(
                SignalPlan(s.name, tuple((a.name, a.type) for a in s.arguments))
                for s in cls.signals
            ),
        )

    def plan_builtin(self, builtin: BuiltinClassDescriptor) -> BuiltinPlan:
        alias, module = self.names.builtins[builtin.name]
        layout = self.layouts.builtins.get(builtin.name)
        if layout is None:
            raise SchemaError(f"Builtin {builtin.name} has no size in {self.options.build_config}")

        constructors = tuple(
            ConstructorPlan(ctor.index, self._params(ctor.arguments), f"_ctor_{ctor.index}")
            for ctor in sorted(builtin.constructors, key=lambda c: c.index)
        )
        operators = tuple(
            OperatorPlan(
                index=i,
                symbol=op.name,
                right=self.resolver.resolve(op.right_type) if op.right_type else None,
                returns=self.resolver.resolve(op.return_type),
                bind_var=f"_op_{i}",
            )
            for i, op in enumerate(builtin.operators)
        )
        taken: set[str] = set()
        members = tuple(
            MemberPlan(
                name=escape_identifier(m.name, MEMBER_RESERVED),
                offset=m.offset,
                kind=m.kind,
                format=m.format,
                meta=m.meta,
            )
            for m in layout.members
        )
        return BuiltinPlan(
            name=alias,
            wire_name=builtin.name,
            module=module,
            size=layout.size,
            constructors=constructors,
            operators=operators,
            methods=tuple(self._method(builtin.name, m, taken) for m in builtin.methods),
            members=members,
            enums=tuple(self._enum(builtin.name, e) for e in builtin.enums),
            constants=self._constants(builtin.name, builtin.constants),
        )

    def plan(self) -> PackagePlan:
        taken: set[str] = set()
        return PackagePlan(
            enums=tuple(self._enum(None, e) for e in self.schema.enums),
            utility_functions=tuple(
                self._method(UTILITY_OWNER, f, taken, utility=True)
                for f in self.schema.utility_functions
            ),
            registrations=tuple(collect_registrations(self.schema)),
            classes=tuple(self.plan_class(cls) for cls in class_order(self.schema)),
            builtins=tuple(
                self.plan_builtin(b) for b in sorted(self._value_types(), key=lambda b: b.name)
            ),
        )

    # ---- Rendering ----

    def render(self) -> dict[str, str]:
        """Render every unit. Returns relative path -> file content."""
        package = self.plan()
        target = python.PythonTarget(self.names, self.options, self.schema.header)
        files: dict[str, str] = {}
        root = self.options.package

        for cls in package.classes:
            files[f"{root}/classes/{cls.module}.py"] = target.render_class(cls)
            files[f"{root}/classes/{cls.module}.pyi"] = target.render_class_stub(cls)
        for builtin in package.builtins:
            files[f"{root}/builtins/{builtin.module}.py"] = target.render_builtin(builtin)
            files[f"{root}/builtins/{builtin.module}.pyi"] = target.render_builtin_stub(builtin)

        files[f"{root}/classes/__init__.py"] = target.render_subpackage("classes")
        if package.builtins:
            files[f"{root}/builtins/__init__.py"] = target.render_subpackage("builtins")
        files[f"{root}/global_constants.py"] = target.render_constants(package)
        files[f"{root}/global_constants.pyi"] = target.render_constants_stub(package)
        files[f"{root}/utility_functions.py"] = target.render_utilities(package)
        files[f"{root}/utility_functions.pyi"] = target.render_utilities_stub(package)
        files[f"{root}/_register_types.py"] = target.render_register_types(package)
        files[f"{root}/__init__.py"] = target.render_package(package)

        logger.info("Rendered %d files for package %s", len(files), root)
        return dict(sorted(files.items()))


def generate(
    schema: Schema, profile: BuildProfile | None = None, options: GeneratorOptions | None = None
) -> dict[str, str]:
    """Run the full pipeline and return the rendered files.

    Raises a GenerationError subclass, before anything is rendered, for any
    fatal problem.
    """
    options = options or GeneratorOptions()
    check_precision(schema, options.precision)
    filtered = apply(schema, profile)
    resolver = TypeResolver(filtered, options.precision)
    return BindingEmitter(filtered, resolver, options).render()


def write_output(files: dict[str, str], output_dir: str | Path) -> list[Path]:
    """Write rendered files below output_dir.

    Each generated package directory is replaced as a whole, so units left
    over from an earlier run do not survive.
    """
    root = Path(output_dir)
    for package in sorted({Path(relative).parts[0] for relative in files}):
        target = root / package
        if target.is_dir():
            logger.debug("Removing previous output %s", target)
            shutil.rmtree(target)
    written = []
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        written.append(path)
    logger.info("Wrote %d files under %s", len(written), root)
    return written
