"""
Command-line interface for the worklet transform.
"""
# typer relies on function calls used as default values
# pyright: reportCallInDefaultInitializer=false

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from worklets.errors import WorkletError
from worklets.options import WorkletOptions
from worklets.plugin import TransformResult, transform_file

cli = typer.Typer(
	name="worklets",
	help="Package Python functions for execution in an isolated interpreter",
	no_args_is_help=True,
)


def _build_options(
	release: bool,
	omit_native_only_data: bool,
	relative_source_location: bool,
	disable_source_maps: bool,
	extra_globals: list[str] | None,
) -> WorkletOptions:
	return WorkletOptions(
		# Without --release, fall back to WORKLETS_ENV / PYTHON_ENV
		release=True if release else None,
		omit_native_only_data=omit_native_only_data,
		relative_source_location=relative_source_location,
		disable_source_maps=disable_source_maps,
		extra_globals=frozenset(extra_globals or ()),
	)


def _run(console: Console, file: Path, options: WorkletOptions) -> TransformResult:
	if not file.exists():
		console.log(f"❌ File not found: {file}")
		raise typer.Exit(1)
	try:
		return transform_file(file, options)
	except WorkletError as exc:
		console.log(f"❌ [red]{exc}[/red]")
		raise typer.Exit(1) from None
	except SyntaxError as exc:
		console.log(f"❌ [red]{file}:{exc.lineno}: {exc.msg}[/red]")
		raise typer.Exit(1) from None


def _configure_logging(verbose: bool) -> None:
	logging.basicConfig(
		level=logging.DEBUG if verbose else logging.WARNING,
		format="%(levelname)s %(name)s: %(message)s",
	)


@cli.command("compile")
def compile_command(
	file: Path = typer.Argument(..., help="Python module to transform"),
	output: Path | None = typer.Option(
		None, "--output", "-o", help="Write the result here instead of stdout"
	),
	release: bool = typer.Option(False, "--release", help="Build in release mode"),
	omit_native_only_data: bool = typer.Option(
		False, "--omit-native-only-data", help="Never emit init data"
	),
	relative_source_location: bool = typer.Option(
		False,
		"--relative-source-location",
		help="Report source locations relative to the current directory",
	),
	disable_source_maps: bool = typer.Option(
		False, "--disable-source-maps", help="Do not embed source maps"
	),
	extra_globals: list[str] | None = typer.Option(
		None, "--global", "-g", help="Name provided by the target runtime"
	),
	verbose: bool = typer.Option(False, "--verbose", "-v"),
):
	"""Transform a module, replacing worklets with their factories."""
	_configure_logging(verbose)
	console = Console(stderr=True)
	options = _build_options(
		release,
		omit_native_only_data,
		relative_source_location,
		disable_source_maps,
		extra_globals,
	)
	result = _run(console, file, options)
	if output is None:
		typer.echo(result.code, nl=False)
	else:
		output.write_text(result.code, encoding="utf-8")
		console.log(f"✅ Wrote {len(result.worklets)} worklet(s) to {output}")


@cli.command("inspect")
def inspect_command(
	file: Path = typer.Argument(..., help="Python module to inspect"),
	release: bool = typer.Option(False, "--release", help="Build in release mode"),
	extra_globals: list[str] | None = typer.Option(
		None, "--global", "-g", help="Name provided by the target runtime"
	),
	verbose: bool = typer.Option(False, "--verbose", "-v"),
):
	"""List the worklets a module declares."""
	_configure_logging(verbose)
	console = Console()
	options = _build_options(release, False, False, False, extra_globals)
	result = _run(console, file, options)
	if not result.worklets:
		console.log("⚠️  No worklets found")
		return

	table = Table(title=str(file))
	table.add_column("Name", style="cyan")
	table.add_column("Hash", justify="right")
	table.add_column("Captures")
	table.add_column("Line", justify="right")
	for factory in result.worklets:
		table.add_row(
			factory.name,
			str(factory.hash),
			", ".join(factory.closure_names) or "-",
			str(factory.function.node.lineno),
		)
	console.print(table)


def main() -> None:
	cli()


if __name__ == "__main__":
	main()
