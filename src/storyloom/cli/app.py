"""
Root Typer application for the storyloom CLI.

    storyloom serve               start the REST API
    storyloom config              show the effective upstream configuration
    storyloom generate PROMPT     generate illustrations and write them to disk
"""

from __future__ import annotations

import asyncio
import base64
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.markup import escape
from rich.table import Table

from storyloom.cli.utils import console, err_console
from storyloom.core.errors import ConfigError
from storyloom.core.logging import configure_logging
from storyloom.execution.models import InvocationFailed
from storyloom.integrations.images import (
    GeneratedImages,
    GenerateImageRequest,
    ImageGenerationClient,
    ImageGenerationSettings,
)

app = typer.Typer(
    name="storyloom",
    help="storyloom: illustrated children's stories over slow upstream APIs.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
    log_level: str = typer.Option("info", "--log-level"),
) -> None:
    """Start the storyloom REST API server."""
    import uvicorn

    from storyloom.api.app import create_app

    console.print(f"[bold green]Starting storyloom API[/bold green] on {host}:{port}")
    uvicorn.run(create_app(configure_logs=True), host=host, port=port, log_level=log_level)


@app.command("config")
def show_config(
    format: str = typer.Option("table", "--format", "-f", help="Output format: table, json"),
) -> None:
    """Show the image upstream's timeout, retry and admission settings."""
    settings = ImageGenerationSettings()
    values = {
        "endpoint": settings.endpoint,
        "timeout_ms": settings.timeout_ms,
        "max_attempts": settings.max_attempts,
        "base_backoff_ms": settings.base_backoff_ms,
        "max_concurrent": settings.max_concurrent,
        "api_key": "set" if settings.api_key else "missing",
        "org_id": "set" if settings.org_id else "missing",
    }

    if format == "json":
        console.print_json(data=values)
        return

    table = Table(title="openai.images")
    table.add_column("Setting")
    table.add_column("Value")
    for key, value in values.items():
        table.add_row(key, str(value))
    console.print(table)


def _write_images(result: GeneratedImages, out_dir: Path, stem: str) -> list[Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for index, image in enumerate(result.images, start=1):
        if not image.b64_json:
            continue
        path = out_dir / f"{stem}-{index}.png"
        path.write_bytes(base64.b64decode(image.b64_json))
        written.append(path)
    return written


@app.command("generate")
def generate(
    prompt: str = typer.Argument(..., help="Illustration prompt"),
    out_dir: Path = typer.Option(Path("."), "--out", "-o", help="Directory for PNG files"),
    stem: str = typer.Option("illustration", "--name", help="File name prefix"),
    size: str = typer.Option("1536x1024", "--size"),
    quality: str = typer.Option("high", "--quality"),
    n: int = typer.Option(1, "--n", help="Number of variations"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every attempt"),
) -> None:
    """Generate illustrations for PROMPT via the image upstream."""
    configure_logging(level="INFO" if verbose else "WARNING", json_format=False)
    try:
        request = GenerateImageRequest(prompt=prompt, size=size, quality=quality, n=n)
    except ValidationError as e:
        err_console.print(f"[red]Invalid request:[/red] {escape(str(e))}")
        raise typer.Exit(code=1) from e

    async def _run() -> GeneratedImages:
        client = ImageGenerationClient(ImageGenerationSettings())
        try:
            return await client.generate(request)
        finally:
            await client.aclose()

    try:
        result = asyncio.run(_run())
    except ConfigError as e:
        err_console.print(f"[red]Configuration error:[/red] {escape(e.message)}")
        raise typer.Exit(code=1) from e
    except InvocationFailed as e:
        err_console.print(
            f"[red]Generation failed[/red] ({e.kind.value}, {e.attempts_made} attempt(s)): {escape(e.message)}"
        )
        raise typer.Exit(code=2) from e

    for path in _write_images(result, out_dir, stem):
        console.print(f"[green]wrote[/green] {path}")
    console.print(f"{len(result.images)} image(s) in {result.attempts_made} attempt(s)")


__all__ = ["app"]
