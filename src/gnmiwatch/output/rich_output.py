from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from rich.console import Console

_STATUS_STYLES = {
    "connected": "green",
    "stale": "yellow",
    "disconnected": "red",
    "up": "green",
    "down": "red",
}


def _styled(value: str) -> str:
    style = _STATUS_STYLES.get(value, "dim")
    return f"[{style}]{value}[/{style}]"


class RichOutput:
    """Rich-based terminal output helpers for *gnmiwatch*."""

    def __init__(self, console: Console) -> None:
        self._con = console

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    def device_table(self, routers: dict[str, dict[str, Any]]) -> None:
        """Print one row per configured device."""
        table = Table(title="Devices")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("Role")
        table.add_column("Host")
        table.add_column("Status")
        table.add_column("Last update")
        table.add_column("Last error", style="dim")

        for device_id, info in routers.items():
            table.add_row(
                device_id,
                str(info.get("name") or ""),
                str(info.get("type") or ""),
                str(info.get("host") or ""),
                _styled(str(info.get("status", "unknown"))),
                str(info.get("lastUpdate") or "-"),
                escape(str(info.get("lastError") or "")),
            )

        self._con.print(table)

    def stats_panel(self, stats: dict[str, Any]) -> None:
        """Print the active/total summary."""
        routers = stats.get("routers", {})
        text = (
            f"[bold]{routers.get('active', 0)}[/bold]/{routers.get('total', 0)} devices active"
            f" ({routers.get('percentage', 0)}%)"
        )
        self._con.print(Panel(text, expand=False))

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    def link_table(self, links: dict[str, dict[str, Any]]) -> None:
        table = Table(title="Links")
        table.add_column("Link", style="cyan")
        table.add_column("Status")
        table.add_column("Side A")
        table.add_column("Side B")

        for link_id, link in links.items():
            sides = []
            for key in ("router1", "router2"):
                side = link.get(key, {})
                sides.append(f"{side.get('id')}:{side.get('interface')} ({side.get('state')})")
            table.add_row(link_id, _styled(str(link.get("status"))), *sides)

        self._con.print(table)

    # ------------------------------------------------------------------
    # Message helpers
    # ------------------------------------------------------------------

    def error(self, message: str) -> None:
        """Print a bold red error line."""
        self._con.print(f"[bold red]Error:[/bold red] {escape(message)}")

    def info(self, message: str) -> None:
        """Print an informational message (plain)."""
        self._con.print(message)
