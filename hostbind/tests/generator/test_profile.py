"""Tests for build profile filtering."""

import pytest

from hostbind.generator import BASELINE_CLASSES, apply, compute_closure, load
from hostbind.generator.errors import ProfileCycleError
from hostbind.generator.profile import load_profile, parse_profile
from hostbind.generator.types import BuildProfile


def method(name, returns=None, *args):
    return {
        "name": name,
        "hash": 1,
        "returnType": returns,
        "arguments": [{"name": f"a{i}", "type": t} for i, t in enumerate(args)],
    }


def make_schema(*classes, utility_functions=()):
    return load(
        {
            "classes": [
                {"name": name, "parent": parent, "methods": list(methods)}
                for name, parent, *methods in classes
            ],
            "utilityFunctions": list(utility_functions),
        }
    )


def class_names(schema):
    return {cls.name for cls in schema.classes}


def ancestors_closed(schema):
    names = class_names(schema)
    return all(not cls.parent or cls.parent in names for cls in schema.classes)


def describe_parse_profile():
    def accepts_camel_case_keys(expect):
        profile = parse_profile({"enabledClasses": ["Node"], "disabledClasses": ["Image"]})
        expect(profile) == BuildProfile(enabled_classes=["Node"], disabled_classes=["Image"])

    def accepts_snake_case_keys(expect):
        profile = parse_profile({"enabled_classes": ["Node"]})
        expect(profile.enabled_classes) == ["Node"]
        expect(profile.disabled_classes) == []

    def loads_from_file(expect, tmp_path):
        path = tmp_path / "profile.json"
        path.write_text('{"disabledClasses": ["Node"]}')
        expect(load_profile(str(path)).disabled_classes) == ["Node"]


def describe_apply():
    def returns_schema_unchanged_without_profile(expect, schema):
        expect(apply(schema)) == schema

    def keeps_everything_for_empty_profile(expect, schema):
        filtered = apply(schema, BuildProfile())
        expect(class_names(filtered)) == class_names(schema)

    def includes_ancestors_of_enabled_classes(expect, schema):
        filtered = apply(schema, BuildProfile(enabled_classes=["Sprite2D"]))
        expect(class_names(filtered)) == {
            "Sprite2D",
            "Node2D",
            "Node",
            "Object",
            "ClassDB",
            "WorkerThreadPool",
            "FileAccess",
            "RefCounted",
        }

    def excludes_descendants_of_disabled_classes(expect, schema):
        filtered = apply(schema, BuildProfile(disabled_classes=["Node"]))
        names = class_names(filtered)
        expect("Node" in names) == False
        expect("Node2D" in names) == False
        expect("Sprite2D" in names) == False
        expect("Resource" in names) == True

    def drops_methods_mentioning_excluded_classes(expect, schema):
        filtered = apply(schema, BuildProfile(disabled_classes=["Texture2D"]))
        sprite = filtered.class_map()["Sprite2D"]
        expect([m.name for m in sprite.methods]) == ["_process"]

    def drops_methods_mentioning_excluded_containers_and_enums(expect):
        schema = make_schema(
            ("Base", ""),
            ("Child", "Base"),
            ("User", "", method("all", "typedarray::Child"), method("mode", "enum::Child.Mode")),
        )
        filtered = apply(schema, BuildProfile(disabled_classes=["Child"]))
        expect(filtered.class_map()["User"].methods) == []

    def ignores_default_literals(expect):
        user = method("f", None, "Variant")
        user["arguments"][0]["defaultValue"] = "Child()"
        schema = make_schema(("Base", ""), ("Child", "Base"), ("User", "", user))
        filtered = apply(schema, BuildProfile(disabled_classes=["Child"]))
        expect(len(filtered.class_map()["User"].methods)) == 1

    def drops_singletons_of_excluded_classes(expect, schema):
        filtered = apply(schema, BuildProfile(disabled_classes=["Engine"]))
        expect([s.name for s in filtered.singletons]) == ["ClassDB"]

    def drops_utility_functions_mentioning_excluded_classes(expect):
        schema = make_schema(
            ("Base", ""),
            ("Child", "Base"),
            utility_functions=[method("make_child", "Child"), method("noop")],
        )
        filtered = apply(schema, BuildProfile(disabled_classes=["Child"]))
        expect([f.name for f in filtered.utility_functions]) == ["noop"]

    def ignores_unknown_profile_classes(expect, schema, caplog):
        filtered = apply(schema, BuildProfile(enabled_classes=["Node", "Nonexistent"]))
        expect("Node" in class_names(filtered)) == True
        expect(caplog.text).includes("Nonexistent")

    def always_includes_baseline_classes(expect, schema):
        filtered = apply(schema, BuildProfile(enabled_classes=["Image"]))
        for name in BASELINE_CLASSES:
            expect(name in class_names(filtered)) == True

    def rejects_cyclic_inheritance(expect):
        schema = make_schema(("A", "B"), ("B", "A"))
        with pytest.raises(ProfileCycleError):
            apply(schema, BuildProfile(enabled_classes=["A"]))
        with pytest.raises(ProfileCycleError):
            apply(schema)


def describe_closure_properties():
    profiles = [
        BuildProfile(),
        BuildProfile(enabled_classes=["Sprite2D"]),
        BuildProfile(disabled_classes=["Resource"]),
        BuildProfile(enabled_classes=["Image", "Node2D"], disabled_classes=["Node2D"]),
        BuildProfile(enabled_classes=["Texture2D"], disabled_classes=["RefCounted"]),
        BuildProfile(enabled_classes=["Sprite2D"], disabled_classes=["Object"]),
    ]

    @pytest.mark.parametrize("profile", profiles)
    def is_idempotent(expect, schema, profile):
        once = apply(schema, profile)
        expect(apply(once, profile)) == once

    @pytest.mark.parametrize("profile", profiles)
    def keeps_ancestor_chains_complete(expect, schema, profile):
        expect(ancestors_closed(apply(schema, profile))) == True

    @pytest.mark.parametrize("profile", profiles)
    def excludes_all_descendants_of_disabled_classes(expect, schema, profile):
        filtered = apply(schema, profile)
        names = class_names(filtered)
        for cls in schema.classes:
            chain = [cls.name] + [a.name for a in schema.ancestors(cls.name)]
            if any(name in profile.disabled_classes for name in chain):
                expect(cls.name in names) == False


def describe_scenarios():
    def enabling_a_derived_class_includes_its_base(expect):
        schema = make_schema(("Base", ""), ("Derived", "Base"), ("Other", ""))
        report = compute_closure(schema, BuildProfile(enabled_classes=["Derived"]))
        expect(report.final) == {"Derived", "Base"}

    def disabling_a_base_excludes_its_children_and_their_uses(expect):
        schema = make_schema(
            ("Base", ""),
            ("Child", "Base"),
            ("User", "", method("take", None, "Child"), method("give", "Child"), method("keep", "int")),
        )
        report = compute_closure(schema, BuildProfile(disabled_classes=["Base"]))
        expect(report.excluded) == {"Base", "Child"}

        filtered = apply(schema, BuildProfile(disabled_classes=["Base"]))
        expect(class_names(filtered)) == {"User"}
        expect([m.name for m in filtered.class_map()["User"].methods]) == ["keep"]
