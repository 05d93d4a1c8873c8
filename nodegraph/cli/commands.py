"""CLI commands for nodegraph.

``config`` shows the effective settings; ``demo`` wires a host and a plugin
over an in-process channel and pushes one intent through the spine.
"""

import asyncio
import json
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from nodegraph import __logo__, __version__
from nodegraph.cli.shared.logging_utils import configure_logging
from nodegraph.config.loader import get_config_path, load_config
from nodegraph.config.schema import Config
from nodegraph.plugins.channel import create_channel_pair
from nodegraph.plugins.gateway import HostGateway
from nodegraph.plugins.renderer import NodeRenderer, RendererHost
from nodegraph.plugins.runtime import PluginRuntime
from nodegraph.spine.executor import ExecutionSpine
from nodegraph.spine.intents import build_intent
from nodegraph.spine.listeners import PluginListener

app = typer.Typer(
    name="nodegraph",
    help=f"{__logo__} nodegraph - plugin runtime and execution spine",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} nodegraph v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """nodegraph - plugin runtime and execution spine."""
    pass


def _load(config_path: str | None) -> Config:
    path = Path(config_path).expanduser() if config_path else None
    try:
        return load_config(path)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


@app.command()
def config(
    config_path: str = typer.Option(None, "--config", "-c", help="Config file (default ~/.nodegraph/config.json)"),
):
    """Show the effective configuration."""
    cfg = _load(config_path)
    table = Table(title=f"nodegraph config ({config_path or get_config_path()})")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for section, values in cfg.model_dump().items():
        for key, value in values.items():
            table.add_row(f"{section}.{key}", json.dumps(value, ensure_ascii=False))
    console.print(table)


# ============================================================================
# Demo
# ============================================================================


async def _run_demo(cfg: Config) -> dict[str, Any]:
    host_end, plugin_end = create_channel_pair(
        host_allowed=cfg.runtime.allowed_origins or None,
    )
    runtime = PluginRuntime(plugin_end, call_timeout=cfg.runtime.host_call_timeout)
    runtime.register_method("echo", lambda args: args)
    runtime.register_method(
        "layout:propose",
        lambda args: {"deltas": [{"op": "move", "node": "n1", "x": 10, "y": 20}]},
    )

    gateway = HostGateway(cfg.runtime)
    report: dict[str, Any] = {}
    try:
        session = await gateway.connect({"id": "demo", "name": "Demo plugin"}, host_end)
        report["methods"] = session.methods
        report["echo"] = await gateway.call("demo", "echo", {"hello": "world"})
        missing = await gateway.call_result("demo", "missing")
        report["missing"] = f"{missing.kind.value}: {missing.error}"

        document: dict[str, Any] = {"n1": {"x": 0, "y": 0}}

        def commit(deltas: list[Any], context: dict[str, Any]) -> None:
            for delta in deltas:
                document[delta["node"]].update(x=delta["x"], y=delta["y"])

        spine = ExecutionSpine(
            [PluginListener(id="demo-layout", session=gateway.get("demo"), method="layout:propose")],
            validate=lambda intent, deltas, context: {"ok": all(d.get("node") in document for d in deltas)},
            commit_deltas=commit,
        )
        result = await spine.execute_intent(build_intent("layout:auto", source="cli"))
        report["spine"] = result.status.value
        report["document"] = document
        report["renderer"] = await _run_renderer(cfg)
    finally:
        gateway.teardown_all()
        runtime.destroy()
    return report


async def _run_renderer(cfg: Config) -> dict[str, Any]:
    host_end, plugin_end = create_channel_pair()
    host = RendererHost(host_end, payload={"label": "n1"})
    renderer = NodeRenderer(
        plugin_end,
        lambda payload, controls: None,
        auto_height=cfg.runtime.auto_height,
        measure=lambda: 48.0,
    )
    renderer.start()
    for _ in range(20):
        if host.ready and (host.height is not None or not cfg.runtime.auto_height):
            break
        await asyncio.sleep(0.01)
    state = {"ready": host.ready, "height": host.height, "renders": renderer.render_count}
    renderer.destroy()
    host.destroy()
    return state


@app.command()
def demo(
    config_path: str = typer.Option(None, "--config", "-c", help="Config file (default ~/.nodegraph/config.json)"),
    verbose: bool = typer.Option(False, "--verbose", help="Log protocol traffic at DEBUG"),
):
    """Run an in-process host/plugin session and one intent."""
    cfg = _load(config_path)
    configure_logging("DEBUG" if verbose else cfg.logging.level, cfg.logging.file)
    report = asyncio.run(_run_demo(cfg))

    table = Table(title=f"{__logo__} nodegraph demo")
    table.add_column("Step", style="cyan")
    table.add_column("Result")
    for key, value in report.items():
        table.add_row(key, value if isinstance(value, str) else json.dumps(value, ensure_ascii=False))
    console.print(table)


if __name__ == "__main__":
    app()
