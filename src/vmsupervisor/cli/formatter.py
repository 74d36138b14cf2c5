import logging
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from vmsupervisor.core.models import LaunchCommand
from vmsupervisor.runtime.probe import ProbeResult

# Create a stderr console for logging
error_console = Console(stderr=True)


def configure_logging(level: str = "INFO") -> None:
    """
    Route library log records to the stderr console.
    Clears previously installed handlers so repeated calls don't duplicate output.
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level.upper())

    handler = RichHandler(console=error_console, show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    root_logger.addHandler(handler)


class OutputFormatter:
    """
    Handles output formatting for the CLI.
    Ensures separation of concerns between System Logs (stderr) and Data (stdout).
    """

    @staticmethod
    def log(message: str, severity: str = "info") -> None:
        """
        Print system messages to stderr with color coding.
        """
        style = "white"
        prefix = "[SYSTEM]"

        if severity == "warning":
            style = "yellow"
        elif severity == "error":
            style = "red"
        elif severity == "critical":
            style = "bold red"
        elif severity == "success":
            style = "green"

        error_console.print(f"[{style}]{prefix} {message}[/{style}]", markup=True, highlight=False)

    @staticmethod
    def print_command(command: LaunchCommand) -> None:
        """
        Print the rendered command line to stdout, and its environment as a table to stderr.
        """
        typer.echo(command.render())

        if not command.env:
            return

        table = Table(title="Extra Environment", header_style="bold")
        table.add_column("Variable", style="bold")
        table.add_column("Value")
        for key, value in sorted(command.env.items()):
            table.add_row(key, value)
        error_console.print(table)

    @staticmethod
    def print_probe_result(url: str, result: ProbeResult) -> None:
        """
        Print one health check result to stdout.
        """
        if result.passed:
            typer.echo(f"{url}: healthy (status {result.status_code})")
        else:
            typer.echo(f"{url}: unhealthy ({result.error})")
