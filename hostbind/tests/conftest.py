"""Unit tests configuration file."""

import copy
import importlib
import itertools
import sys

import pytest

from hostbind.generator import GeneratorOptions, generate, load, write_output
from hostbind.runtime import dispatch, initialize, shutdown

API_SCHEMA = {
    "header": {"majorVersion": 4, "minorVersion": 2, "patchVersion": 1, "precision": "single"},
    "builtinSizeTables": [
        {
            "buildConfig": "float_32",
            "sizes": [
                {"name": "String", "size": 4},
                {"name": "StringName", "size": 4},
                {"name": "Vector2", "size": 8},
                {"name": "Rect2", "size": 16},
            ],
        },
        {
            "buildConfig": "float_64",
            "sizes": [
                {"name": "String", "size": 8},
                {"name": "StringName", "size": 8},
                {"name": "Vector2", "size": 8},
                {"name": "Rect2", "size": 16},
            ],
        },
    ],
    "memberOffsetTables": [
        {
            "buildConfig": config,
            "classes": [
                {
                    "name": "Vector2",
                    "members": [
                        {"member": "x", "offset": 0, "meta": "float"},
                        {"member": "y", "offset": 4, "meta": "float"},
                    ],
                },
                {
                    "name": "Rect2",
                    "members": [
                        {"member": "position", "offset": 0, "meta": "Vector2"},
                        {"member": "size", "offset": 8, "meta": "Vector2"},
                    ],
                },
            ],
        }
        for config in ("float_32", "float_64")
    ],
    "builtinClasses": [
        {"name": "String"},
        {"name": "StringName"},
        {
            "name": "Vector2",
            "constructors": [
                {"index": 0},
                {"index": 1, "arguments": [{"name": "from", "type": "Vector2"}]},
                {
                    "index": 2,
                    "arguments": [{"name": "x", "type": "real"}, {"name": "y", "type": "real"}],
                },
            ],
            "operators": [
                {"name": "==", "rightType": "Vector2", "returnType": "bool"},
                {"name": "+", "rightType": "Vector2", "returnType": "Vector2"},
                {"name": "*", "rightType": "real", "returnType": "Vector2"},
                {"name": "unary-", "returnType": "Vector2"},
                {"name": "not", "returnType": "bool"},
            ],
            "methods": [
                {"name": "length", "returnType": "real", "hash": 466405837, "flags": ["const"]},
                {
                    "name": "rotated",
                    "returnType": "Vector2",
                    "hash": 2544004089,
                    "arguments": [{"name": "angle", "type": "real"}],
                    "flags": ["const"],
                },
            ],
            "members": [{"name": "x", "type": "real"}, {"name": "y", "type": "real"}],
            "enums": [
                {"name": "Axis", "values": [{"name": "AXIS_X", "value": 0}, {"name": "AXIS_Y", "value": 1}]}
            ],
        },
        {"name": "Rect2", "constructors": [{"index": 0}]},
    ],
    "enums": [
        {"name": "Error", "values": [{"name": "OK", "value": 0}, {"name": "FAILED", "value": 1}]},
        {
            "name": "KeyModifierMask",
            "isBitfield": True,
            "values": [
                {"name": "KEY_MASK_SHIFT", "value": 33554432},
                {"name": "KEY_MASK_ALT", "value": 67108864},
            ],
        },
    ],
    "classes": [
        {
            "name": "Object",
            "methods": [
                {"name": "get_class", "returnType": "String", "hash": 201670096, "flags": ["const"]},
                {
                    "name": "is_class",
                    "returnType": "bool",
                    "hash": 3927539163,
                    "arguments": [{"name": "class", "type": "String"}],
                },
                {
                    "name": "call",
                    "returnType": "Variant",
                    "hash": 3400424181,
                    "arguments": [{"name": "method", "type": "StringName"}],
                    "flags": ["vararg"],
                },
                {
                    "name": "_notification",
                    "arguments": [{"name": "what", "type": "int32"}],
                    "flags": ["virtual"],
                },
            ],
            "enums": [
                {
                    "name": "ConnectFlags",
                    "isBitfield": True,
                    "values": [
                        {"name": "CONNECT_DEFERRED", "value": 1},
                        {"name": "CONNECT_PERSIST", "value": 2},
                    ],
                }
            ],
            "signals": [{"name": "script_changed"}],
            "constants": [{"name": "NOTIFICATION_POSTINITIALIZE", "value": 0}],
        },
        {
            "name": "RefCounted",
            "parent": "Object",
            "flags": {"refCounted": True},
            "methods": [
                {"name": "get_reference_count", "returnType": "int32", "hash": 3905245786}
            ],
        },
        {
            "name": "Resource",
            "parent": "RefCounted",
            "flags": {"refCounted": True},
            "methods": [
                {
                    "name": "set_path",
                    "hash": 83702148,
                    "arguments": [{"name": "path", "type": "String"}],
                },
                {"name": "get_path", "returnType": "String", "hash": 201670096},
                {
                    "name": "duplicate",
                    "returnType": "Resource",
                    "hash": 482882304,
                    "arguments": [
                        {"name": "subresources", "type": "bool", "defaultValue": "false"}
                    ],
                },
            ],
            "properties": [
                {"name": "resource_path", "type": "String", "getter": "get_path", "setter": "set_path"}
            ],
        },
        {
            "name": "Texture2D",
            "parent": "Resource",
            "flags": {"instantiable": False, "refCounted": True},
            "methods": [{"name": "get_width", "returnType": "int32", "hash": 3905245786}],
        },
        {
            "name": "Image",
            "parent": "Resource",
            "flags": {"refCounted": True},
            "methods": [{"name": "get_size", "returnType": "Vector2", "hash": 3341600327}],
        },
        {
            "name": "Node",
            "parent": "Object",
            "methods": [
                {
                    "name": "add_child",
                    "hash": 3863233950,
                    "arguments": [
                        {"name": "node", "type": "Node"},
                        {"name": "force_readable_name", "type": "bool", "defaultValue": "false"},
                    ],
                },
                {"name": "get_child_count", "returnType": "int32", "hash": 894402480},
                {"name": "get_children", "returnType": "typedarray::Node", "hash": 873284517},
                {
                    "name": "set_process_mode",
                    "hash": 1841290486,
                    "arguments": [{"name": "mode", "type": "enum::Node.ProcessMode"}],
                },
                {
                    "name": "get_process_mode",
                    "returnType": "enum::Node.ProcessMode",
                    "hash": 739966102,
                },
                {"name": "_ready", "flags": ["virtual"]},
                {
                    "name": "_process",
                    "arguments": [{"name": "delta", "type": "float64"}],
                    "flags": ["virtual"],
                },
            ],
            "enums": [
                {
                    "name": "ProcessMode",
                    "values": [
                        {"name": "PROCESS_MODE_INHERIT", "value": 0},
                        {"name": "PROCESS_MODE_PAUSABLE", "value": 1},
                    ],
                }
            ],
            "properties": [
                {
                    "name": "process_mode",
                    "type": "enum::Node.ProcessMode",
                    "getter": "get_process_mode",
                    "setter": "set_process_mode",
                }
            ],
            "signals": [{"name": "child_entered_tree", "arguments": [{"name": "node", "type": "Node"}]}],
        },
        {
            "name": "Node2D",
            "parent": "Node",
            "methods": [
                {
                    "name": "set_position",
                    "hash": 743155724,
                    "arguments": [{"name": "position", "type": "Vector2"}],
                },
                {"name": "get_position", "returnType": "Vector2", "hash": 3341600327},
                {"name": "_ready", "flags": ["virtual"]},
            ],
            "properties": [
                {
                    "name": "position",
                    "type": "Vector2",
                    "getter": "get_position",
                    "setter": "set_position",
                }
            ],
        },
        {
            "name": "Sprite2D",
            "parent": "Node2D",
            "methods": [
                {
                    "name": "set_texture",
                    "hash": 4051416890,
                    "arguments": [{"name": "texture", "type": "Texture2D"}],
                },
                {"name": "get_texture", "returnType": "Texture2D", "hash": 3635182373},
                {
                    "name": "_process",
                    "arguments": [{"name": "delta", "type": "float64"}],
                    "flags": ["virtual"],
                },
            ],
        },
        {
            "name": "Engine",
            "parent": "Object",
            "flags": {"instantiable": False, "singleton": True},
            "methods": [{"name": "get_frames_drawn", "returnType": "int64", "hash": 3905245786}],
        },
        {
            "name": "ClassDB",
            "parent": "Object",
            "flags": {"instantiable": False},
            "methods": [
                {
                    "name": "class_exists",
                    "returnType": "bool",
                    "hash": 2619796661,
                    "arguments": [{"name": "class", "type": "StringName"}],
                }
            ],
        },
        {
            "name": "FileAccess",
            "parent": "RefCounted",
            "flags": {"instantiable": False, "refCounted": True},
            "methods": [
                {
                    "name": "file_exists",
                    "returnType": "bool",
                    "hash": 2323990056,
                    "arguments": [{"name": "path", "type": "String"}],
                    "flags": ["static"],
                }
            ],
        },
        {"name": "WorkerThreadPool", "parent": "Object", "flags": {"instantiable": False}},
    ],
    "utilityFunctions": [
        {
            "name": "sin",
            "returnType": "float64",
            "hash": 2923118937,
            "arguments": [{"name": "angle_rad", "type": "float64"}],
        },
        {
            "name": "str",
            "returnType": "String",
            "hash": 32569176,
            "arguments": [{"name": "arg1", "type": "Variant"}],
            "flags": ["vararg"],
        },
    ],
    "singletons": [{"name": "Engine", "type": "Engine"}, {"name": "ClassDB", "type": "ClassDB"}],
}


def pytest_configure(config):
    """Disable verbose output when running tests."""
    terminal = config.pluginmanager.getplugin("terminal")
    if terminal:
        terminal.TerminalReporter.showfspath = False


@pytest.fixture
def api_schema():
    """The decoded JSON of a small host API (a copy each test may modify)."""
    return copy.deepcopy(API_SCHEMA)


@pytest.fixture
def schema(api_schema):
    return load(api_schema)


class FakeHost:
    """In-memory host ABI.

    Handlers are registered per ABI key; the handle returned for a key is the
    key itself, so handles resolved independently for the same key are equal.
    """

    def __init__(self):
        self.handlers = {}
        self.resolved = []
        self.invoked = []
        self.singletons = {}
        self.refcounts = {}
        self._ptrs = itertools.count(0x1000)

    def method(self, owner, member, version_hash):
        def decorator(fn):
            self.handlers[("method", owner, member, version_hash)] = fn
            return fn

        return decorator

    def indexed(self, type_name, kind, index):
        def decorator(fn):
            self.handlers[(kind, type_name, index)] = fn
            return fn

        return decorator

    def new_ptr(self):
        return next(self._ptrs)

    def add_class(self, name, refcounted=False):
        """Register constructor (and ownership members) for a class."""

        @self.indexed(name, "constructor", 0)
        def construct(instance):
            ptr = self.new_ptr()
            if refcounted:
                self.refcounts[ptr] = 1
            return ptr

        if refcounted:

            @self.method(name, "reference", 0)
            def reference(ptr):
                self.refcounts[ptr] += 1

            @self.method(name, "unreference", 0)
            def unreference(ptr):
                self.refcounts[ptr] -= 1
                return self.refcounts[ptr] == 0

    def resolve_method_handle(self, owner_type, member_name, version_hash):
        key = ("method", owner_type, member_name, version_hash)
        self.resolved.append(key)
        return key if key in self.handlers else None

    def resolve_constructor_or_operator_handle(self, type_name, index, kind):
        key = (str(kind), type_name, index)
        self.resolved.append(key)
        return key if key in self.handlers else None

    def invoke(self, handle, instance, args, result):
        self.invoked.append((handle, instance, args))
        if handle is None:
            raise LookupError("invoke() called with a null handle")
        result.value = self.handlers[handle](instance, *args)

    def resolve_singleton(self, type_name):
        return self.singletons.get(type_name)


@pytest.fixture
def host():
    """A fake host installed as the process host ABI."""
    fake = FakeHost()
    initialize(fake)
    yield fake
    shutdown()


@pytest.fixture
def generated(tmp_path, api_schema):
    """Generate a package from the test API and import it."""
    packages = []

    def _generate(package="host_api", profile=None, raw=None, **options):
        files = generate(
            load(raw or api_schema), profile, GeneratorOptions(package=package, **options)
        )
        output = tmp_path / package
        write_output(files, output)
        packages.append(package)
        sys.path.insert(0, str(output))
        try:
            importlib.invalidate_caches()
            return importlib.import_module(package)
        finally:
            sys.path.remove(str(output))

    yield _generate

    for name in list(sys.modules):
        if any(name == p or name.startswith(f"{p}.") for p in packages):
            del sys.modules[name]
    dispatch.clear()
