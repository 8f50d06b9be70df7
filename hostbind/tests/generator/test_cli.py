"""Tests for CLI interface."""

import json

import pytest
from click.testing import CliRunner

from hostbind.generator.cli import cli


@pytest.fixture
def schema_file(tmp_path, api_schema):
    path = tmp_path / "api.json"
    path.write_text(json.dumps(api_schema))
    return str(path)


@pytest.fixture
def profile_file(tmp_path):
    path = tmp_path / "profile.json"
    path.write_text(json.dumps({"disabledClasses": ["Node"]}))
    return str(path)


def describe_gen_command():
    def generates_a_package(expect, schema_file, tmp_path):
        runner = CliRunner()
        output = tmp_path / "out"
        result = runner.invoke(cli, ["gen", "-i", schema_file, "-o", str(output)])
        expect(result.exit_code) == 0
        expect(result.output).includes("Generated")
        expect((output / "host_api" / "__init__.py").exists()) == True
        content = (output / "host_api" / "classes" / "node.py").read_text()
        expect(content).includes("class Node(Object):")

    def applies_the_profile(expect, schema_file, profile_file, tmp_path):
        runner = CliRunner()
        output = tmp_path / "out"
        result = runner.invoke(
            cli, ["gen", "-i", schema_file, "-o", str(output), "-p", profile_file]
        )
        expect(result.exit_code) == 0
        expect((output / "host_api" / "classes" / "node.py").exists()) == False
        expect((output / "host_api" / "classes" / "resource.py").exists()) == True

    def names_the_package(expect, schema_file, tmp_path):
        runner = CliRunner()
        output = tmp_path / "out"
        result = runner.invoke(
            cli, ["gen", "-i", schema_file, "-o", str(output), "--package", "engine"]
        )
        expect(result.exit_code) == 0
        expect((output / "engine" / "classes" / "object.py").exists()) == True

    def generates_unchecked_bindings(expect, schema_file, tmp_path):
        runner = CliRunner()
        output = tmp_path / "out"
        result = runner.invoke(cli, ["gen", "-i", schema_file, "-o", str(output), "--unchecked"])
        expect(result.exit_code) == 0
        content = (output / "host_api" / "classes" / "object.py").read_text()
        expect(content).includes("_CHECKED = False")

    def fails_on_precision_mismatch_without_writing(expect, schema_file, tmp_path):
        runner = CliRunner()
        output = tmp_path / "out"
        result = runner.invoke(
            cli, ["gen", "-i", schema_file, "-o", str(output), "--precision", "double"]
        )
        expect(result.exit_code) == 1
        expect(result.output).includes("Error:")
        expect(output.exists()) == False

    def reads_precision_from_the_environment(expect, schema_file, tmp_path):
        runner = CliRunner()
        output = tmp_path / "out"
        result = runner.invoke(
            cli,
            ["gen", "-i", schema_file, "-o", str(output)],
            env={"HOSTBIND_PRECISION": "double"},
        )
        expect(result.exit_code) == 1

    def fails_on_malformed_schema(expect, tmp_path):
        runner = CliRunner()
        path = tmp_path / "bad.json"
        path.write_text('{"classes": [{"name": "A", "parent": "Missing"}]}')
        result = runner.invoke(cli, ["gen", "-i", str(path), "-o", str(tmp_path / "out")])
        expect(result.exit_code) == 1
        expect(result.output).includes("Error:")

    def fails_on_non_integer_fields(expect, api_schema, tmp_path):
        runner = CliRunner()
        api_schema["classes"][0]["methods"][0]["hash"] = "abc"
        path = tmp_path / "bad.json"
        path.write_text(json.dumps(api_schema))
        result = runner.invoke(cli, ["gen", "-i", str(path), "-o", str(tmp_path / "out")])
        expect(result.exit_code) == 1
        expect(result.output).includes("hash must be an integer")

    def regenerating_drops_excluded_units(expect, schema_file, profile_file, tmp_path):
        runner = CliRunner()
        output = tmp_path / "out"
        runner.invoke(cli, ["gen", "-i", schema_file, "-o", str(output)])
        expect((output / "host_api" / "classes" / "node.py").exists()) == True
        result = runner.invoke(
            cli, ["gen", "-i", schema_file, "-o", str(output), "-p", profile_file]
        )
        expect(result.exit_code) == 0
        expect((output / "host_api" / "classes" / "node.py").exists()) == False

    def fails_with_missing_input(expect, tmp_path):
        runner = CliRunner()
        result = runner.invoke(
            cli, ["gen", "-i", "/nonexistent/api.json", "-o", str(tmp_path / "out")]
        )
        expect(result.exit_code) != 0

    def requires_all_options(expect):
        runner = CliRunner()
        result = runner.invoke(cli, ["gen"])
        expect(result.exit_code) != 0
        expect(result.output).includes("Missing option")


def describe_runtime_command():
    def copies_the_runtime_package(expect, tmp_path):
        runner = CliRunner()
        result = runner.invoke(cli, ["runtime", "-o", str(tmp_path)])
        expect(result.exit_code) == 0
        runtime_dir = tmp_path / "hostbind_runtime"
        for name in ("__init__.py", "abi.py", "bindcache.py", "objects.py", "registry.py", "values.py"):
            expect((runtime_dir / name).exists()) == True
        expect((runtime_dir / "bindcache.py").read_text()).includes("class BindCache")

    def uses_the_package_name(expect, tmp_path):
        runner = CliRunner()
        result = runner.invoke(cli, ["runtime", "-o", str(tmp_path), "--name", "rt"])
        expect(result.exit_code) == 0
        expect((tmp_path / "rt" / "abi.py").exists()) == True


def describe_info_command():
    def shows_schema_info(expect, schema_file):
        runner = CliRunner()
        result = runner.invoke(cli, ["info", "-i", schema_file])
        expect(result.exit_code) == 0
        expect(result.output).includes("4.2.1")
        expect(result.output).includes("Vector2")

    def outputs_json(expect, schema_file, profile_file):
        runner = CliRunner()
        result = runner.invoke(cli, ["info", "-i", schema_file, "-p", profile_file, "--json"])
        expect(result.exit_code) == 0
        data = json.loads(result.output)
        expect(data["version"]) == [4, 2, 1]
        expect(data["buildConfig"]) == "float_64"
        expect(data["classes"]["excluded"]) == ["Node", "Node2D", "Sprite2D"]
        expect("Resource" in data["classes"]["included"]) == True
        expect(data["builtins"]["Rect2"]) == {"size": 16, "members": {"position": 0, "size": 8}}

    def reports_layouts_for_the_requested_build(expect, schema_file):
        runner = CliRunner()
        result = runner.invoke(cli, ["info", "-i", schema_file, "--bits", "32", "--json"])
        expect(result.exit_code) == 0
        data = json.loads(result.output)
        expect(data["buildConfig"]) == "float_32"
        expect(data["builtins"]["String"]["size"]) == 4

    def fails_on_missing_build_configuration(expect, schema_file):
        runner = CliRunner()
        result = runner.invoke(cli, ["info", "-i", schema_file, "--precision", "double"])
        expect(result.exit_code) == 1
        expect(result.output).includes("double_64")


def describe_trim_command():
    def writes_the_reduced_schema(expect, schema_file, profile_file, tmp_path):
        runner = CliRunner()
        output = tmp_path / "trimmed.json"
        result = runner.invoke(
            cli, ["trim", "-i", schema_file, "-o", str(output), "-p", profile_file]
        )
        expect(result.exit_code) == 0
        data = json.loads(output.read_text())
        names = [cls["name"] for cls in data["classes"]]
        expect("Node" in names) == False
        expect("Resource" in names) == True

    def trimmed_schema_generates(expect, schema_file, profile_file, tmp_path):
        runner = CliRunner()
        trimmed = tmp_path / "trimmed.json"
        runner.invoke(cli, ["trim", "-i", schema_file, "-o", str(trimmed), "-p", profile_file])
        result = runner.invoke(cli, ["gen", "-i", str(trimmed), "-o", str(tmp_path / "out")])
        expect(result.exit_code) == 0
        expect((tmp_path / "out" / "host_api" / "classes" / "resource.py").exists()) == True
