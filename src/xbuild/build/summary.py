"""Rich-rendered build summary.

After a build the CLI prints one table row per evaluated node, showing
whether its action ran or it was already up to date:

    Node        Tool     Status       Output
    app         rustc    built        build/intermediate/app.o
    elf         ld       up to date   build/zinc.elf
"""

from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from .task_graph import BuildReport, TaskNode


def _output_label(node: TaskNode, root_dir: Optional[Path]) -> str:
    if node.output is None:
        return "-"
    if root_dir is not None:
        try:
            return str(node.output.relative_to(root_dir))
        except ValueError:
            pass
    return str(node.output)


def render_summary(report: BuildReport, root_dir: Optional[Path] = None) -> Table:
    """Build a table describing every node evaluated by ``report``."""
    table = Table(title=f"Build summary ({report.executed_count} built, {report.up_to_date_count} up to date)")
    table.add_column("Node", no_wrap=True)
    table.add_column("Tool")
    table.add_column("Status")
    table.add_column("Output", overflow="fold")

    for node in report.executed:
        table.add_row(node.name, node.tool or "-", Text("built", style="bold green"), _output_label(node, root_dir))
    for node in report.up_to_date:
        table.add_row(node.name, node.tool or "-", Text("up to date", style="dim"), _output_label(node, root_dir))
    return table


def print_summary(report: BuildReport, root_dir: Optional[Path] = None, console: Optional[Console] = None) -> None:
    """Print the build summary table."""
    console = console if console is not None else Console()
    console.print(render_summary(report, root_dir))
