"""Shared utilities for CLI command modules."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from rich.console import Console

from .. import AGENT_HOME
from ..models import InterfaceLog, State

console = Console()

__all__ = ["AGENT_HOME", "console", "state_icon", "format_age"]


def state_icon(log: Optional[InterfaceLog]) -> str:
    """Map the last log entry to a Rich-formatted status.

    Args:
        log: Most recent log entry, or None.

    Returns:
        str: Rich markup string for the state.
    """
    if log is None:
        return "[dim]NEW[/]"
    if log.state == State.FAILED:
        return f"[bold red]{log.operation.value} FAILED[/]"
    if log.dirty:
        return f"[bold yellow]{log.state.value.upper()} (dirty)[/]"
    return f"[bold green]{log.state.value.upper()}[/]"


def format_age(ts: datetime) -> str:
    """Render a timestamp as a short relative age (e.g. '5m ago')."""
    seconds = int((datetime.now(timezone.utc) - ts).total_seconds())
    if seconds < 60:
        return f"{max(seconds, 0)}s ago"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"
