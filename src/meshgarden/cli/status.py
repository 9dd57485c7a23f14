"""Status commands: status, show."""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.panel import Panel
from rich.table import Table

from ._common import AGENT_HOME, console, format_age, state_icon
from ..config import open_store
from ..errors import MeshgardenError, NotFoundError


def register_status_commands(main: click.Group) -> None:
    """Register status commands on the main CLI group."""

    @main.command()
    @click.option("--home", default=AGENT_HOME, help="Agent home directory.", type=click.Path())
    def status(home: str):
        """Show every joined network and its reconciliation state."""
        home_path = Path(home).expanduser()
        if not home_path.exists():
            console.print("[bold red]No agent found.[/] Join a network first.")
            sys.exit(1)

        try:
            with open_store(home_path, create=False) as store:
                entries = store.interfaces()
        except (MeshgardenError, OSError) as exc:
            console.print(f"\n  [red]Error:[/] {exc}\n")
            sys.exit(1)

        if not entries:
            console.print("\n  [dim]No interfaces.[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Network", style="bold")
        table.add_column("Device", style="cyan")
        table.add_column("Address")
        table.add_column("Port", justify="right")
        table.add_column("Peers", justify="right")
        table.add_column("State")
        table.add_column("Updated", style="dim")

        for entry in entries:
            iface = entry.interface
            table.add_row(
                iface.network.name,
                iface.device.name,
                str(iface.device.addr),
                str(iface.listen_port),
                str(len(iface.peers)),
                state_icon(entry.log),
                format_age(entry.log.timestamp) if entry.log else "-",
            )

        console.print()
        console.print(table)
        console.print()

    @main.command()
    @click.argument("device")
    @click.argument("network")
    @click.option("--home", default=AGENT_HOME, help="Agent home directory.", type=click.Path())
    def show(device: str, network: str, home: str):
        """Show one interface and its peers."""
        home_path = Path(home).expanduser()
        try:
            with open_store(home_path, create=False) as store:
                iface = store.interface_by_device(device, network)
                try:
                    last = store.last_log_by_device(device, network)
                except NotFoundError:
                    last = None
        except (MeshgardenError, OSError) as exc:
            console.print(f"\n  [red]Error:[/] {exc}\n")
            sys.exit(1)

        lines = [
            f"Network:  [bold]{iface.network.name}[/] ({iface.network.cidr})",
            f"Device:   [cyan]{iface.device.name}[/] {iface.device.addr}",
            f"Key:      [dim]{iface.device.public_key_text}[/]",
            f"Endpoint: {iface.device.endpoint or '-'}",
            f"Port:     {iface.listen_port}",
            f"State:    {state_icon(last)}",
        ]
        if last and last.message:
            lines.append(f"Message:  [dim]{last.message}[/]")
        console.print()
        console.print(Panel("\n".join(lines), title=iface.label, border_style="bright_blue"))

        if iface.peers:
            table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
            table.add_column("Peer", style="cyan")
            table.add_column("Address")
            table.add_column("Endpoint", style="dim")
            table.add_column("Public key", style="dim")
            for peer in iface.peers:
                table.add_row(peer.name, str(peer.addr), peer.endpoint or "-", peer.public_key_text)
            console.print(table)
        console.print()
