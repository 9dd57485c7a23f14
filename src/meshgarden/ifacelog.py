"""
Append-only reconciliation log, one history per interface.

Entries are only ever inserted. The entry with the highest id for an
interface is its current status; nothing here scans full history.
Both helpers run inside a caller's :class:`~meshgarden.db.Transaction`
so an entry commits atomically with the store change it describes.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Optional

from .db import Transaction, sql_errors
from .errors import ParseError
from .models import Interface, InterfaceLog, Operation, State

logger = logging.getLogger("meshgarden.ifacelog")

_LOG_COLUMNS = "l.id, l.ts, l.operation, l.state, l.dirty, l.message"


def log_from_row(row: sqlite3.Row) -> InterfaceLog:
    """Build an :class:`InterfaceLog` from a selected row.

    Raises:
        ParseError: If the operation or state is not a known value.
    """
    try:
        operation = Operation(row["operation"])
        state = State(row["state"])
    except ValueError as exc:
        raise ParseError(
            f"invalid log entry {row['id']}: {exc}", operation="query interface log",
        ) from exc
    return InterfaceLog(
        id=row["id"],
        timestamp=datetime.fromtimestamp(row["ts"] or 0, tz=timezone.utc),
        operation=operation,
        state=state,
        dirty=bool(row["dirty"]),
        message=row["message"],
    )


def append_log_tx(
    tx: Transaction,
    iface: Interface,
    operation: Operation,
    state: State,
    dirty: bool,
    message: str = "",
) -> InterfaceLog:
    """Append a log entry for ``iface`` within ``tx``.

    Returns:
        The entry as written, with its assigned id.

    Raises:
        NotFoundError: If the interface has not been stored.
    """
    now = datetime.now(timezone.utc).replace(microsecond=0)
    operation = Operation(operation)
    state = State(state)
    with sql_errors(f"append log for interface {iface.label!r}", entity=iface.label):
        cur = tx.execute(
            "insert into iface_log (ts, iface_id, operation, state, dirty, message)\n"
            "values (?, ?, ?, ?, ?, ?)",
            (int(now.timestamp()), iface.id, operation.value, state.value, dirty, message),
        )
    entry = InterfaceLog(
        id=cur.lastrowid,
        timestamp=now,
        operation=operation,
        state=state,
        dirty=dirty,
        message=message,
    )
    logger.info(
        "Interface %s: %s -> %s (dirty=%s)", iface.label, operation.value, state.value, dirty,
    )
    return entry


def last_log_tx(tx: Transaction, iface: Interface) -> Optional[InterfaceLog]:
    """Most recent log entry for ``iface``, or None when it has no history."""
    with sql_errors(f"query last log for interface {iface.label!r}", entity=iface.label):
        row = tx.execute(
            f"select {_LOG_COLUMNS}\n"
            "from iface_log l\n"
            "where l.iface_id = ?\n"
            "order by l.id desc\n"
            "limit 1",
            (iface.id,),
        ).fetchone()
    if row is None:
        return None
    return log_from_row(row)


def last_log_by_device_tx(
    tx: Transaction, device_name: str, network_name: str,
) -> Optional[InterfaceLog]:
    """Most recent log entry for the interface of ``device_name`` on ``network_name``."""
    with sql_errors("query interface last log", entity=f"{device_name}@{network_name}"):
        row = tx.execute(
            f"select {_LOG_COLUMNS}\n"
            "from iface_log l join iface i on (i.id = l.iface_id)\n"
            "where i.device_name = ? and i.net_name = ?\n"
            "order by l.id desc\n"
            "limit 1",
            (device_name, network_name),
        ).fetchone()
    if row is None:
        return None
    return log_from_row(row)
