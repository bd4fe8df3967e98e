"""Output formatting for CLI and programmatic use."""

import json
from datetime import date, datetime
from enum import Enum
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.pretty import Pretty
from rich.table import Table


class JSONEncoder(json.JSONEncoder):
    """Custom JSON encoder for output."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


class OutputFormatter:
    """Formats output for both Rich terminal and JSON modes."""

    def __init__(self, json_mode: bool = False):
        """Initialize formatter.

        Args:
            json_mode: If True, output JSON instead of Rich formatting
        """
        self.json_mode = json_mode
        self.console = Console()

    def output(self, data: dict[str, Any], message: str = "") -> None:
        """Output data in appropriate format.

        Args:
            data: Data to output
            message: Optional message for Rich mode
        """
        if self.json_mode:
            self._output_json(data)
        else:
            self._output_rich(data, message)

    def _output_json(self, data: dict[str, Any]) -> None:
        """Output as JSON to stdout."""
        print(json.dumps(data, cls=JSONEncoder, indent=2))

    def _output_rich(self, data: dict[str, Any], message: str) -> None:
        if message:
            self.console.print(f"[green]✓[/green] {message}")

        payload = data.get("data", {})
        if "status" in payload:
            self._render_status(payload["status"])
        elif "queue" in payload:
            self._render_queue(payload["queue"])
        elif "entry" in payload:
            self._render_entry(payload["entry"])

    def _render_status(self, status: dict) -> None:
        """Render store summary with Rich."""
        panel = Panel(
            f"""Backend: {status["backend"]}
Location: {status["location"]}
Queued mutations: {status["queue_size"]}
Cached entries: {len(status["entries"])}""",
            title="Offline Cache",
            border_style="green",
        )
        self.console.print(panel)

        if not status["entries"]:
            return

        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Key", style="cyan")
        table.add_column("Collection", style="yellow")
        table.add_column("Records", justify="right")
        for entry in status["entries"]:
            table.add_row(entry["key"], entry["collection"], str(entry["records"]))
        self.console.print(table)

    def _render_queue(self, queue: list[dict]) -> None:
        """Render pending mutations, oldest first."""
        if not queue:
            self.console.print("[dim]No pending changes[/dim]")
            return

        table = Table(title="Pending Changes", show_header=True, header_style="bold cyan")
        table.add_column("ID", style="dim")
        table.add_column("Action", style="cyan")
        table.add_column("Target")
        table.add_column("Queued", style="green")
        table.add_column("Retries", justify="right", style="magenta")

        for mutation in queue:
            action = mutation["action"]
            target = action.get("id") or action.get("temp_id") or "-"
            retries = mutation["retry_count"]
            table.add_row(
                mutation["id"],
                action["type"],
                target,
                str(mutation["timestamp"])[:19],
                f"[red]{retries}[/red]" if retries else "0",
            )

        self.console.print(table)
        self.console.print(f"\nTotal pending: {len(queue)}")

    def _render_entry(self, entry: dict) -> None:
        self.console.print(Panel(Pretty(entry["value"]), title=entry["key"], border_style="blue"))

    def error(self, message: str, error_code: str | None = None) -> None:
        """Output error message.

        Args:
            message: Error message
            error_code: Optional error code
        """
        if self.json_mode:
            output = {"success": False, "error": message}
            if error_code:
                output["error_code"] = error_code
            print(json.dumps(output))
        else:
            self.console.print(f"[red]✗ Error:[/red] {message}")

    def success(self, message: str, data: dict | None = None) -> None:
        """Output success message.

        Args:
            message: Success message
            data: Optional data to include
        """
        if self.json_mode:
            output: dict[str, Any] = {"success": True, "message": message}
            if data:
                output["data"] = data
            print(json.dumps(output, cls=JSONEncoder))
        else:
            self.console.print(f"[green]✓[/green] {message}")
