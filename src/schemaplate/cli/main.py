"""schemaplate command line interface."""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.syntax import Syntax

from ..config import get_settings
from ..exceptions import ParameterValidationError, SchemaplateError
from ..templates import Template

console = Console()

MUSTACHE_SUFFIXES = (".mst", ".mustache")


def load_template_file(path: Path, skip_validation: bool = False) -> Template:
    """Load a Mustache or YAML template file.

    Args:
        path: Template file; ``.mst``/``.mustache`` files are loaded as Mustache text
        skip_validation: Do not compile the parameter validator

    Returns:
        Compiled template
    """
    text = path.read_text(encoding="utf-8")
    if path.suffix in MUSTACHE_SUFFIXES:
        return asyncio.run(Template.load_mst(text))
    return asyncio.run(
        Template.load_yaml(text, file_path=path, skip_validation=skip_validation)
    )


def _read_parameters(params_path: Optional[Path]) -> Dict[str, Any]:
    if params_path is None:
        return {}
    parameters = json.loads(params_path.read_text(encoding="utf-8"))
    if not isinstance(parameters, dict):
        raise click.BadParameter("parameters file must contain a JSON object")
    return parameters


@click.group()
@click.option("--log-level", default=None, help="Override SCHEMAPLATE_LOG_LEVEL")
def schemaplate(log_level: Optional[str]) -> None:
    """schemaplate - parameter schemas and rendering for Mustache templates."""
    level = (log_level or get_settings().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


@schemaplate.command()
@click.argument("template_file", type=click.Path(exists=True, path_type=Path))
def validate(template_file: Path) -> None:
    """Check that a template file loads and compiles."""
    try:
        tmpl = load_template_file(template_file)
    except SchemaplateError as e:
        console.print(f"[bold red]Invalid template {template_file}:[/bold red] {e}")
        sys.exit(1)

    properties = tmpl.get_parameters_schema().get("properties", {})
    console.print(f"[green]✓ {template_file} is valid[/green] ({len(properties)} parameters)")


@schemaplate.command()
@click.argument("template_file", type=click.Path(exists=True, path_type=Path))
def schema(template_file: Path) -> None:
    """Print the parameter schema of a template as JSON."""
    try:
        tmpl = load_template_file(template_file, skip_validation=True)
    except SchemaplateError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)

    console.print_json(json.dumps(tmpl.get_parameters_schema()))


@schemaplate.command()
@click.argument("template_file", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--params",
    "params_path",
    type=click.Path(exists=True, path_type=Path),
    help="JSON file with template parameters",
)
@click.option("--skip-validation", is_flag=True, help="Render without validating parameters")
def render(template_file: Path, params_path: Optional[Path], skip_validation: bool) -> None:
    """Render a template with parameters from a JSON file."""
    try:
        parameters = _read_parameters(params_path)
        tmpl = load_template_file(template_file, skip_validation=skip_validation)
        rendered = tmpl.render(parameters, skip_validation=skip_validation)
    except json.JSONDecodeError as e:
        console.print(f"[red]Error: Invalid JSON in parameters file - {e}[/red]")
        sys.exit(1)
    except ParameterValidationError as e:
        console.print("[bold red]Parameters failed validation:[/bold red]")
        for error in e.errors:
            console.print(f"  • {error['path']}: {error['message']}")
        sys.exit(1)
    except SchemaplateError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)

    if tmpl.content_type == "application/json":
        console.print(Syntax(rendered, "json", theme="monokai"))
    elif tmpl.content_type.endswith("yaml"):
        console.print(Syntax(rendered, "yaml", theme="monokai"))
    else:
        click.echo(rendered)


def main() -> None:
    schemaplate()


if __name__ == "__main__":
    main()
