"""Command-line interface for hostbind code generation."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, NoReturn

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from hostbind.generator import python
from hostbind.generator.emitter import GeneratorOptions, generate, write_output
from hostbind.generator.errors import GenerationError
from hostbind.generator.parser import loads
from hostbind.generator.profile import apply, compute_closure, load_profile
from hostbind.generator.sizes import calculate_layouts
from hostbind.generator.types import PRECISIONS, BuildProfile, build_config_name

if TYPE_CHECKING:
    from hostbind.generator.profile import ClosureReport
    from hostbind.generator.sizes import LayoutInfo
    from hostbind.generator.types import Schema


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    logging.captureWarnings(True)


def _read_schema(input_file: str) -> Schema:
    with open(input_file, encoding="utf-8") as f:
        return loads(f.read())


def _read_profile(profile_file: str | None) -> BuildProfile | None:
    return load_profile(profile_file) if profile_file else None


def _fail(error: Exception) -> NoReturn:
    print(f"Error: {error}")
    sys.exit(1)


precision_option = click.option(
    "--precision",
    type=click.Choice(PRECISIONS),
    default="single",
    envvar="HOSTBIND_PRECISION",
    show_default=True,
    help="Floating point precision of the host build",
)
bits_option = click.option(
    "--bits",
    type=click.Choice(["32", "64"]),
    default="64",
    envvar="HOSTBIND_BITS",
    show_default=True,
    help="Pointer width of the host build",
)
profile_option = click.option(
    "--profile", "-p", "profile_file", default=None, help="Build profile JSON file"
)


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Host API binding generator."""
    _setup_logging(verbose)


@cli.command()
@click.option("--input", "-i", "input_file", required=True, help="Input API schema (JSON)")
@click.option("--output", "-o", "output_path", required=True, help="Output directory")
@profile_option
@precision_option
@bits_option
@click.option("--package", default="host_api", show_default=True, help="Generated package name")
@click.option(
    "--runtime-import",
    "runtime_import",
    default="hostbind.runtime",
    show_default=True,
    help="Import path of the runtime support package",
)
@click.option(
    "--checked/--unchecked",
    default=True,
    help="Refuse calls through unresolved handles (checked) or pass them to the host",
)
def gen(
    input_file: str,
    output_path: str,
    profile_file: str | None,
    precision: str,
    bits: str,
    package: str,
    runtime_import: str,
    checked: bool,
) -> None:
    """Generate bindings from an API schema."""
    options = GeneratorOptions(
        precision=precision,
        bits=int(bits),
        package=package,
        runtime_import=runtime_import,
        checked=checked,
    )
    try:
        files = generate(_read_schema(input_file), _read_profile(profile_file), options)
    except GenerationError as e:
        _fail(e)

    write_output(files, output_path)
    print(f"Generated {len(files)} files in {Path(output_path) / package}")


@cli.command()
@click.option("--output", "-o", "output_path", default=".", help="Output directory")
@click.option("--name", default="hostbind_runtime", help="Runtime package name")
def runtime(output_path: str, name: str) -> None:
    """Copy the runtime support package next to generated code."""
    runtime_dir = Path(output_path) / name
    runtime_dir.mkdir(parents=True, exist_ok=True)
    for filename, content in python.runtime().items():
        (runtime_dir / filename).write_text(content)
    print(f"Generated Python runtime in {runtime_dir}")


@cli.command()
@click.option("--input", "-i", "input_file", required=True, help="Input API schema (JSON)")
@profile_option
@precision_option
@bits_option
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def info(
    input_file: str, profile_file: str | None, precision: str, bits: str, output_json: bool
) -> None:
    """Display profile closure and builtin layout information."""
    try:
        schema = _read_schema(input_file)
        profile = _read_profile(profile_file) or BuildProfile()
        report = compute_closure(schema, profile)
        build_config = build_config_name(precision, int(bits))
        layouts = calculate_layouts(schema, build_config) if schema.builtin_size_tables else None
    except GenerationError as e:
        _fail(e)

    if output_json:
        _output_json(schema, report, layouts)
    else:
        _output_plain(schema, report, layouts)


@cli.command()
@click.option("--input", "-i", "input_file", required=True, help="Input API schema (JSON)")
@click.option("--output", "-o", "output_file", required=True, help="Output schema (JSON)")
@profile_option
def trim(input_file: str, output_file: str, profile_file: str | None) -> None:
    """Write the schema reduced by a build profile."""
    try:
        schema = apply(_read_schema(input_file), _read_profile(profile_file))
    except GenerationError as e:
        _fail(e)

    with open(output_file, "w", encoding="utf-8") as f:
        f.write(schema.to_json(indent=2))
        f.write("\n")
    print(f"Wrote {len(schema.classes)} classes to {output_file}")


def _output_json(schema: Schema, report: ClosureReport, layouts: LayoutInfo | None) -> None:
    """Output schema info as JSON."""
    data: dict = {
        "version": [
            schema.header.major_version,
            schema.header.minor_version,
            schema.header.patch_version,
        ],
        "precision": schema.header.precision,
        "classes": {
            "total": len(schema.classes),
            "included": sorted(report.final),
            "excluded": sorted(report.excluded),
        },
        "builtins": {},
    }

    if layouts is not None:
        data["buildConfig"] = layouts.build_config
        for name, layout in layouts.builtins.items():
            data["builtins"][name] = {
                "size": layout.size,
                "members": {m.name: m.offset for m in layout.members},
            }

    print(json.dumps(data, indent=2))


def _output_plain(schema: Schema, report: ClosureReport, layouts: LayoutInfo | None) -> None:
    """Output schema info using rich text formatting."""
    console = Console()
    header = schema.header

    console.print("[bold cyan]Schema[/bold cyan]")
    schema_table = Table(show_header=False, box=None, padding=(0, 2, 0, 2))
    schema_table.add_column("Label", style="dim")
    schema_table.add_column("Value", style="white")
    schema_table.add_row(
        "Version", f"{header.major_version}.{header.minor_version}.{header.patch_version}"
    )
    schema_table.add_row("Precision", header.precision or "any")
    schema_table.add_row("Build configs", ", ".join(schema.build_configs()) or "none")
    schema_table.add_row("Classes", f"{len(report.final)} of {len(schema.classes)}")
    schema_table.add_row("Excluded", str(len(report.excluded)))
    console.print(schema_table)
    console.print()

    if layouts is None:
        return

    console.print(f"[bold cyan]Builtins ({layouts.build_config})[/bold cyan]")
    builtin_table = Table(show_header=True, box=None, padding=(0, 2, 0, 0))
    builtin_table.add_column("Name", style="white")
    builtin_table.add_column("Size", style="yellow", justify="right")
    builtin_table.add_column("Members", style="dim")

    for name, layout in layouts.builtins.items():
        members = ", ".join(f"{m.name}@{m.offset}" for m in layout.members)
        builtin_table.add_row(name, f"{layout.size} bytes", members)

    console.print(builtin_table)


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
