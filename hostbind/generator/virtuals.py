"""Virtual dispatch registration.

The schema already says which classes redeclare an inherited virtual method,
so the decision is made here, once, instead of by the generated code.
"""

from dataclasses import dataclass

from .types import ClassDescriptor, Schema


@dataclass(frozen=True)
class VirtualRegistration:
    """A (class, virtual) pair that needs its own dispatch table entry."""

    class_name: str
    method_name: str
    declared_by: str  # Nearest ancestor declaring the virtual
    depth: int


def _depths(schema: Schema) -> dict[str, int]:
    return {cls.name: len(schema.ancestors(cls.name)) for cls in schema.classes}


def overrides(schema: Schema, cls: ClassDescriptor) -> list[tuple[str, str]]:
    """Return (method, declaring ancestor) for every inherited virtual cls redeclares."""
    ancestors = schema.ancestors(cls.name)
    result = []
    for method in cls.methods:
        if not method.is_virtual:
            continue
        for ancestor in ancestors:
            if any(m.is_virtual and m.name == method.name for m in ancestor.methods):
                result.append((method.name, ancestor.name))
                break
    return result


def collect_registrations(schema: Schema) -> list[VirtualRegistration]:
    """Collect dispatch registrations, ancestors before descendants."""
    depths = _depths(schema)
    registrations = [
        VirtualRegistration(cls.name, method, declared_by, depths[cls.name])
        for cls in schema.classes
        if cls.is_instantiable
        for method, declared_by in overrides(schema, cls)
    ]
    return sorted(registrations, key=lambda r: (r.depth, r.class_name, r.method_name))


def class_order(schema: Schema) -> list[ClassDescriptor]:
    """Return classes ordered so every parent precedes its children."""
    depths = _depths(schema)
    return sorted(schema.classes, key=lambda cls: (depths[cls.name], cls.name))
