"""Build profile filtering.

A build profile reduces the schema to a compilable subset:

- enabled classes pull in their whole ancestor chain,
- disabled classes push out all of their descendants,
- methods and utility functions mentioning a class outside the result are
  dropped.

Default argument literals are not inspected.
"""

import json
import logging
from dataclasses import dataclass, replace
from typing import Any

from .errors import ProfileCycleError, SchemaError
from .parser import parse_type_ref
from .types import VOID_MARKERS, BuildProfile, ClassDescriptor, MethodDescriptor, Schema

logger = logging.getLogger(__name__)

# Classes the runtime needs regardless of profile: the type registry, the
# worker thread pool and file access.
BASELINE_CLASSES = ("ClassDB", "WorkerThreadPool", "FileAccess")


@dataclass(frozen=True)
class ClosureReport:
    """Result of the inclusion and exclusion closures."""

    included: frozenset[str]
    excluded: frozenset[str]
    final: frozenset[str]


def load_profile(path: str) -> BuildProfile:
    """Read a build profile from a JSON file."""
    with open(path, encoding="utf-8") as f:
        try:
            raw = json.load(f)
        except json.JSONDecodeError as e:
            raise SchemaError(f"Build profile {path} is not valid JSON: {e}") from e
    return parse_profile(raw)


def parse_profile(raw: Any) -> BuildProfile:
    """Build a profile from its decoded JSON form (camelCase or snake_case keys)."""
    if not isinstance(raw, dict):
        raise SchemaError("Build profile must be an object")
    enabled = raw.get("enabledClasses", raw.get("enabled_classes")) or []
    disabled = raw.get("disabledClasses", raw.get("disabled_classes")) or []
    return BuildProfile(
        enabled_classes=[str(name) for name in enabled],
        disabled_classes=[str(name) for name in disabled],
    )


def _parent_map(schema: Schema) -> dict[str, str]:
    return {cls.name: cls.parent for cls in schema.classes}


def _children_map(schema: Schema) -> dict[str, list[str]]:
    children: dict[str, list[str]] = {cls.name: [] for cls in schema.classes}
    for cls in schema.classes:
        if cls.parent in children:
            children[cls.parent].append(cls.name)
    return children


def check_acyclic(schema: Schema) -> None:
    """Raise ProfileCycleError if any parent chain loops."""
    parents = _parent_map(schema)
    acyclic: set[str] = set()

    for name in parents:
        chain: list[str] = []
        on_chain: set[str] = set()
        current = name
        while current and current not in acyclic:
            if current in on_chain:
                raise ProfileCycleError(
                    f"Cyclic inheritance: {' -> '.join([*chain, current])}"
                )
            chain.append(current)
            on_chain.add(current)
            current = parents.get(current, "")
        acyclic.update(chain)


def _known(names: list[str], parents: dict[str, str], what: str) -> list[str]:
    result = []
    for name in names:
        if name in parents:
            result.append(name)
        else:
            logger.warning("Build profile %s unknown class %s; ignoring", what, name)
    return result


def compute_closure(schema: Schema, profile: BuildProfile) -> ClosureReport:
    """Compute the included, excluded and final class sets for a profile."""
    check_acyclic(schema)
    parents = _parent_map(schema)
    children = _children_map(schema)

    enabled = _known(profile.enabled_classes, parents, "enables")
    disabled = _known(profile.disabled_classes, parents, "disables")

    excluded: set[str] = set()
    worklist = list(disabled)
    while worklist:
        name = worklist.pop()
        if name in excluded:
            continue
        excluded.add(name)
        worklist.extend(children[name])

    # Excluded seeds contribute no ancestors, so the final set is a fixed point.
    included: set[str] = set()
    seeds = [*enabled, *(name for name in BASELINE_CLASSES if name in parents)]
    worklist = [name for name in seeds if name not in excluded]
    while worklist:
        name = worklist.pop()
        if name in included:
            continue
        included.add(name)
        parent = parents[name]
        if parent and parent not in included:
            worklist.append(parent)

    base = included if profile.enabled_classes else set(parents)
    return ClosureReport(
        included=frozenset(included),
        excluded=frozenset(excluded),
        final=frozenset(base - excluded),
    )


def _mentions_excluded(type_ref: str, all_classes: set[str], final: frozenset[str]) -> bool:
    if type_ref in VOID_MARKERS:
        return False
    for name in parse_type_ref(type_ref).class_names():
        if name in all_classes and name not in final:
            return True
    return False


def is_method_included(
    method: MethodDescriptor, all_classes: set[str], final: frozenset[str]
) -> bool:
    """A method survives if neither its return type nor any argument names a dropped class."""
    return not any(_mentions_excluded(ref, all_classes, final) for ref in method.type_refs())


def _filter_class(cls: ClassDescriptor, all_classes: set[str], final: frozenset[str]) -> ClassDescriptor:
    methods = [m for m in cls.methods if is_method_included(m, all_classes, final)]
    dropped = len(cls.methods) - len(methods)
    if dropped:
        logger.debug("Dropped %d method(s) of %s referencing excluded classes", dropped, cls.name)
    return replace(cls, methods=methods)


def apply(schema: Schema, profile: BuildProfile | None = None) -> Schema:
    """Return the schema reduced by a build profile.

    Without a profile the input schema is returned unchanged (after checking
    the inheritance graph for cycles).
    """
    if profile is None:
        check_acyclic(schema)
        return schema

    report = compute_closure(schema, profile)
    all_classes = {cls.name for cls in schema.classes}

    classes = [
        _filter_class(cls, all_classes, report.final)
        for cls in schema.classes
        if cls.name in report.final
    ]
    singletons = [s for s in schema.singletons if s.type in report.final]
    utility_functions = [
        f for f in schema.utility_functions if is_method_included(f, all_classes, report.final)
    ]
    builtin_classes = [
        replace(
            builtin,
            methods=[m for m in builtin.methods if is_method_included(m, all_classes, report.final)],
        )
        for builtin in schema.builtin_classes
    ]

    logger.info("Build profile keeps %d of %d classes", len(classes), len(schema.classes))
    return replace(
        schema,
        classes=classes,
        singletons=singletons,
        utility_functions=utility_functions,
        builtin_classes=builtin_classes,
    )
