"""Command line interface: run the server, submit and follow generation tasks."""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .client import ApiError, GenerationClient, PollError, PollState, TaskPoller

console = Console()
error_console = Console(stderr=True)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

app = typer.Typer(
    name="pictora",
    help="AI image generation server and client",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

ServerOption = Annotated[
    str,
    typer.Option("--server", "-S", help="Server base URL", envvar="PICTORA_SERVER"),
]


def print_error(message: str) -> None:
    error_console.print(f"[red]Error:[/red] {message}")


def _parse_options(options: list[str]) -> dict[str, str]:
    parsed: dict[str, str] = {}
    for option in options:
        key, sep, value = option.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"Expected key=value, got {option!r}")
        parsed[key.strip()] = value.strip()
    return parsed


def _coerce(value: str) -> object:
    """Turn CLI strings into JSON scalars where they look like one."""
    lowered = value.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value


@app.command("serve")
def serve(
    host: Annotated[Optional[str], typer.Option("--host", help="Bind address")] = None,
    port: Annotated[Optional[int], typer.Option("--port", "-p", help="Bind port")] = None,
    reload: Annotated[bool, typer.Option("--reload", help="Auto-reload on changes")] = False,
    log_level: Annotated[str, typer.Option("--log-level", help="Log level")] = "info",
):
    """Run the API server with uvicorn."""
    import uvicorn

    from .web.config import WebConfig

    logging.basicConfig(level=log_level.upper(), format=LOG_FORMAT)
    config = WebConfig.load()

    uvicorn.run(
        "pictora.web.app:create_app",
        host=host or config.host,
        port=port or config.port,
        reload=reload,
        log_level=log_level,
        factory=True,
    )


@app.command("generate")
def generate(
    module: Annotated[str, typer.Argument(help="Module id, e.g. figurine or standard")],
    description: Annotated[str, typer.Argument(help="What to generate")],
    image: Annotated[
        Optional[list[str]],
        typer.Option("--image", "-i", help="Reference image: file, URL or data URL"),
    ] = None,
    option: Annotated[
        Optional[list[str]],
        typer.Option("--option", "-o", help="Extra module field as key=value"),
    ] = None,
    server: ServerOption = "http://localhost:8000",
    interval: Annotated[float, typer.Option("--interval", help="Polling interval (s)")] = 1.0,
    show_logs: Annotated[bool, typer.Option("--logs", help="Print task logs")] = False,
):
    """Submit a generation task and follow it until it finishes."""
    payload: dict[str, object] = {"description": description}
    payload.update({k: _coerce(v) for k, v in _parse_options(option or []).items()})
    images = image or []
    if len(images) == 1:
        payload["referenceImage"] = images[0]
    elif images:
        payload["referenceImages"] = images

    try:
        state = asyncio.run(_generate(server, module, payload, interval))
    except (ApiError, PollError) as e:
        print_error(e.message)
        raise typer.Exit(1) from None
    except KeyboardInterrupt:
        raise typer.Exit(130) from None

    if state is None:
        raise typer.Exit(1)
    if show_logs:
        for line in state.logs:
            console.print(f"[dim]{line}[/dim]")
    if state.error:
        print_error(state.error)
        raise typer.Exit(1)
    for url in state.images:
        console.print(url)


async def _generate(
    server: str, module: str, payload: dict[str, object], interval: float
) -> PollState | None:
    async with GenerationClient(server) as client:
        accepted = await client.generate(module, payload)
        task_id = accepted["taskId"]
        console.print(f"[cyan]Task {task_id}[/cyan] [dim]{accepted.get('usedPrompt', '')}[/dim]")

        with Progress(
            SpinnerColumn(),
            TextColumn("{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            console=console,
        ) as progress:
            bar = progress.add_task("pending", total=100)

            def on_update(state: PollState) -> None:
                progress.update(bar, completed=state.progress, description=state.status.value)

            async with TaskPoller(client, interval=interval, on_update=on_update) as poller:
                return await poller.poll(task_id)


@app.command("status")
def status(
    task_id: Annotated[str, typer.Argument(help="Task id")],
    server: ServerOption = "http://localhost:8000",
):
    """Show the current status of a task."""

    async def fetch() -> dict:
        async with GenerationClient(server) as client:
            return await client.get_task_status(task_id)

    try:
        data = asyncio.run(fetch())
    except ApiError as e:
        print_error(e.message)
        raise typer.Exit(1) from None

    state = PollState.from_status(task_id, data or {})
    console.print(f"[cyan]{state.task_id}[/cyan] {state.status.value} ({state.progress}%)")
    for url in state.images:
        console.print(f"  {url}")
    if state.error:
        console.print(f"[red]{state.error}[/red]")


@app.command("modules")
def modules():
    """List available generation modules."""
    from dataclasses import fields

    from .generation.inputs import MODULE_INPUTS

    table = Table(title="Modules", show_header=True, header_style="bold")
    table.add_column("Module", style="cyan")
    table.add_column("Fields", style="")
    for module, input_cls in MODULE_INPUTS.items():
        names = [f.name for f in fields(input_cls) if not f.name.startswith("reference")]
        table.add_row(module.value, ", ".join(names))
    console.print(table)


if __name__ == "__main__":
    app()
