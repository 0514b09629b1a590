"""CLI entry point."""

from __future__ import annotations

import asyncio
import json
import os
from typing import Any, TextIO

import rich_click as click

from archsim.config import RuntimeConfig
from archsim.core.design import analyze_design
from archsim.core.errors import ArchsimError
from archsim.core.graph.model import GraphCollection
from archsim.core.logging_config import configure_logging
from archsim.core.planner import ExecutionPlanner
from archsim.frontends.cli.output import (
    console,
    error_exit,
    output_json,
    print_issues,
    print_table,
    stage_markup,
)
from archsim.server.engine import RuntimeEngine
from archsim.transport.http import HTTPServer

# Configure rich-click styling
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.USE_MARKDOWN = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = "Try running '--help' for more information."
click.rich_click.ERRORS_EPILOGUE = ""
click.rich_click.MAX_WIDTH = 100


def _load_collection(file: TextIO) -> GraphCollection:
    """Read and parse a graph payload, exiting with a message on failure."""
    try:
        payload = json.load(file)
    except json.JSONDecodeError as err:
        error_exit(f"{file.name}: invalid JSON ({err})")
    try:
        return GraphCollection.from_dict(payload)
    except ArchsimError as err:
        error_exit(str(err))


def _parse_data(data: str | None) -> Any:
    if data is None:
        return None
    try:
        return json.loads(data)
    except json.JSONDecodeError as err:
        error_exit(f"--data is not valid JSON ({err})")


# =========================================================================
# Root CLI
# =========================================================================
@click.group()
@click.version_option(package_name="archsim")
@click.option("--log-level", default=None, help="Log level (default: ARCHSIM_LOG_LEVEL or WARNING)")
def cli(log_level: str | None):
    """archsim - Simulation runtime for architecture graphs.

    Deploy an architecture design in-process and exercise it with
    simulated requests.

    **Standalone commands** (no server required):

        archsim plan       Show the execution order of a graph file

        archsim analyze    Show the design report of a graph file

        archsim request    Run one simulated request against a graph file

    **Server commands**:

        archsim serve      Start the HTTP runtime
    """
    configure_logging(level=log_level or os.environ.get("ARCHSIM_LOG_LEVEL", "WARNING"))


@cli.command()
@click.option("--host", default=None, help="Interface to bind (default: ARCHSIM_HOST or 127.0.0.1)")
@click.option("--port", "-p", type=int, default=None, help="Port (default: ARCHSIM_PORT or 8787)")
def serve(host: str | None, port: int | None):
    """Start the HTTP runtime.

    **Examples:**

        archsim serve

        archsim --log-level INFO serve --port 9000
    """
    try:
        config = RuntimeConfig.from_env()
    except ValueError as err:
        error_exit(str(err))
    if host:
        config.host = host
    if port is not None:
        config.port = port

    server = HTTPServer(engine=RuntimeEngine(config=config))
    console.print(f"[bold]archsim[/bold] runtime on http://{config.host}:{config.port}")
    try:
        asyncio.run(server.serve())
    except KeyboardInterrupt:
        console.print("Stopped.")


@cli.command()
@click.argument("file", type=click.File("r"))
@click.option("--json", "-j", "json_output", is_flag=True, help="Output as JSON")
def plan(file: TextIO, json_output: bool):
    """Show the execution order of a graph file.

    **Examples:**

        archsim plan design.json

        cat design.json | archsim plan - --json
    """
    collection = _load_collection(file)
    try:
        order = ExecutionPlanner().plan(collection)
    except ArchsimError as err:
        error_exit(str(err))

    if json_output:
        output_json({"executionOrder": order.to_list(), "totalNodes": len(order)})
        return

    print_table(
        f"Execution order ({len(order)} nodes)",
        ["#", "Kind", "Id", "Label"],
        [
            [str(entry.index + 1), entry.node.kind.value, entry.node.id, entry.node.display_label]
            for entry in order
        ],
    )


@cli.command()
@click.argument("file", type=click.File("r"))
@click.option("--json", "-j", "json_output", is_flag=True, help="Output as JSON")
def analyze(file: TextIO, json_output: bool):
    """Show the design report of a graph file.

    Lists runtime dependency issues, service boundary issues, the workflow
    stages and whether the design is ready to deploy.
    """
    collection = _load_collection(file)
    report = analyze_design(collection).to_dict()

    if json_output:
        output_json(report)
        return

    print_table(
        "Workflow",
        ["Stage", "Status", "Detail"],
        [
            [stage["title"], stage_markup(stage["status"]), stage["detail"]]
            for stage in report["workflowModel"]["stages"]
        ],
    )
    print_issues("Runtime issues", report["runtimeModel"]["issues"])
    print_issues("Service issues", report["serviceModel"]["issues"])

    deploy = report["deploy"]
    if deploy["ready"]:
        console.print("[bold green]Ready to deploy[/bold green]")
    else:
        console.print(
            f"[bold red]Not ready[/bold red] ({deploy['errorCount']} errors, "
            f"{deploy['warningCount']} warnings)"
        )


@cli.command()
@click.argument("file", type=click.File("r"))
@click.argument("method")
@click.argument("path")
@click.option("--data", "-d", default=None, help="JSON request body")
@click.option("--debug", is_flag=True, help="Include routing details (_runtime)")
def request(file: TextIO, method: str, path: str, data: str | None, debug: bool):
    """Run one simulated request against a graph file.

    The graph is deployed in-process; nothing is started.

    **Examples:**

        archsim request design.json GET /users/42

        archsim request design.json POST /users -d '{"name": "Ada"}' --debug
    """
    collection = _load_collection(file)
    payload = _parse_data(data)

    try:
        engine = RuntimeEngine(config=RuntimeConfig.from_env())
        engine.deploy(collection)
    except (ArchsimError, ValueError) as err:
        error_exit(str(err))

    result = engine.dispatch(method, path, payload=payload, debug=debug)
    console.print(f"[bold]{result.status}[/bold] {result.outcome.value}", highlight=False)
    output_json(result.body)


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
