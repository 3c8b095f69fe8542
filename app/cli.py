from __future__ import annotations

from pathlib import Path
from typing import Any

import orjson
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from adapters.filesystem.json_utils import dump_scene_bytes, load_json, write_bytes_atomic
from domain.errors import SceneValidationError
from domain.models import Scene
from domain.services.extract_scene_view import summarize_scene
from domain.services.scene_mapper import load_scene, map_scene_to_state, validate_scene

app = typer.Typer(no_args_is_help=True)
console = Console()


def _read_payload(input_path: Path) -> dict[str, Any]:
    if not input_path.exists():
        console.print(f"[red]File not found:[/] {input_path}")
        raise typer.Exit(code=1)
    try:
        return load_json(input_path)
    except orjson.JSONDecodeError as exc:
        console.print(f"[red]Invalid JSON:[/] {exc}")
        raise typer.Exit(code=1) from exc


@app.command("validate")
def validate(input_path: Path = typer.Argument(..., help="Scene JSON file to validate.")) -> None:
    data = _read_payload(input_path)
    try:
        scene = Scene.model_validate(data)
        validate_scene(scene)
    except (ValidationError, SceneValidationError) as exc:
        console.print(f"[red]Validation failed:[/] {exc}")
        raise typer.Exit(code=1) from exc
    console.print(f"[green]Valid scene:[/] {input_path} ({len(scene.elements)} elements)")


@app.command("normalize")
def normalize(
    input_path: Path = typer.Argument(..., help="Scene JSON file to normalize."),
    output_path: Path | None = typer.Option(
        None, "--output", "-o", help="Where to write the normalized scene (defaults to in place).",
    ),
) -> None:
    scene = load_scene(_read_payload(input_path))
    normalized = map_scene_to_state(scene).to_scene()
    target_path = output_path or input_path
    write_bytes_atomic(target_path, dump_scene_bytes(normalized))
    console.print(f"[green]Wrote[/] {target_path}")


@app.command("info")
def info(input_path: Path = typer.Argument(..., help="Scene JSON file to summarize.")) -> None:
    summary = summarize_scene(load_scene(_read_payload(input_path)))
    table = Table(title=str(input_path))
    table.add_column("Field")
    table.add_column("Value", justify="right")
    table.add_row("version", str(summary["version"]))
    table.add_row("elements", str(summary["elements"]))
    for kind, count in summary["kinds"].items():
        table.add_row(f"  {kind.lower()}", str(count))
    table.add_row("parented", str(summary["parented"]))
    table.add_row("connectors", str(summary["connectors"]))
    table.add_row("external links", str(summary["external_links"]))
    console.print(table)


if __name__ == "__main__":
    app()
