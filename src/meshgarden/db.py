"""
SQLite schema, scoped transactions and error translation.

A :class:`Transaction` rolls back on every exit path unless
:meth:`Transaction.commit` was called, so a failure anywhere between
``BEGIN`` and ``COMMIT`` leaves nothing half-written.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence, Union

from .errors import ConflictError, NotFoundError, StorageError

logger = logging.getLogger("meshgarden.db")

SCHEMA = """
create table if not exists iface (
    id integer primary key autoincrement,
    created_at integer,
    updated_at integer,

    api_url text not null,

    net_id text not null,
    net_name text not null,
    net_cidr text not null,

    device_id text not null,
    device_name text not null,
    device_endpoint text not null,
    device_addr text not null,
    public_key text not null,

    listen_port integer,

    key blob not null,

    device_token blob not null
);

create unique index if not exists iface_device_id_unique
on iface(device_id);

create unique index if not exists iface_device_net_name_unique
on iface(net_name, device_name);

create unique index if not exists iface_public_key_unique
on iface(public_key);

create table if not exists peer (
    iface_id integer not null,
    device_id text not null,
    device_name text not null,
    device_endpoint text not null,
    device_addr text not null,
    public_key text not null,
    foreign key(iface_id) references iface(id)
);

create index if not exists peer_iface_id
on peer(iface_id);

create table if not exists iface_log (
    id integer primary key autoincrement,
    ts integer,
    iface_id integer not null,
    operation text not null,
    state text not null,
    dirty bool not null default false,
    message text not null,
    foreign key(iface_id) references iface(id)
);

create index if not exists iface_log_iface_id
on iface_log(iface_id, id);
"""

# Unique index columns -> the identity they protect.
_UNIQUE_ENTITIES = {
    "iface.device_id": "device id",
    "iface.net_name, iface.device_name": "network and device name",
    "iface.public_key": "public key",
}


def _unique_entity(message: str) -> Optional[str]:
    _, _, columns = message.partition("UNIQUE constraint failed:")
    return _UNIQUE_ENTITIES.get(columns.strip(), columns.strip() or None)


@contextmanager
def sql_errors(operation: str, entity: Optional[str] = None) -> Iterator[None]:
    """Translate ``sqlite3`` failures into the agent error taxonomy.

    UNIQUE violations become :class:`ConflictError`, FOREIGN KEY
    violations :class:`NotFoundError`, anything else :class:`StorageError`.
    """
    try:
        yield
    except sqlite3.IntegrityError as exc:
        message = str(exc)
        if "UNIQUE" in message:
            raise ConflictError(
                f"{_unique_entity(message)} already in use",
                operation=operation,
                entity=entity or _unique_entity(message),
            ) from exc
        if "FOREIGN KEY" in message:
            raise NotFoundError(
                "referenced interface does not exist", operation=operation, entity=entity,
            ) from exc
        raise StorageError(message, operation=operation, entity=entity) from exc
    except sqlite3.Error as exc:
        raise StorageError(str(exc), operation=operation, entity=entity) from exc


class Transaction:
    """A single database transaction.

    Use as a context manager. Leaving the block without calling
    :meth:`commit` (exception, early return) rolls back.

    Args:
        conn: Connection opened in autocommit mode.
        write: Take the write lock up front (``BEGIN IMMEDIATE``).
    """

    def __init__(self, conn: sqlite3.Connection, write: bool = False) -> None:
        self._conn = conn
        self._write = write
        self._finished = False

    def __enter__(self) -> "Transaction":
        with sql_errors("begin transaction"):
            self._conn.execute("begin immediate" if self._write else "begin")
        logger.debug("Transaction begun (write=%s)", self._write)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self._finished:
            self.rollback()

    @property
    def finished(self) -> bool:
        return self._finished

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        """Run one statement. Errors surface as raw ``sqlite3`` exceptions."""
        if self._finished:
            raise StorageError("transaction already finished", operation="execute statement")
        return self._conn.execute(sql, params)

    def commit(self) -> None:
        with sql_errors("commit transaction"):
            self._conn.execute("commit")
        self._finished = True
        logger.debug("Transaction committed")

    def rollback(self) -> None:
        self._finished = True
        try:
            self._conn.execute("rollback")
        except sqlite3.Error as exc:
            # A failed statement may already have ended the transaction.
            logger.debug("Rollback skipped: %s", exc)
        else:
            logger.debug("Transaction rolled back")


def connect(path: Union[str, Path], uri: bool = False) -> sqlite3.Connection:
    """Open the database at ``path`` and ensure the schema exists.

    The connection may be closed from a thread other than the one
    using it; it must still only be used by one thread at a time.

    Raises:
        StorageError: If the file cannot be opened or initialized.
    """
    with sql_errors("open database", entity=str(path)):
        conn = sqlite3.connect(
            str(path), isolation_level=None, check_same_thread=False, uri=uri,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("pragma foreign_keys = on")
        conn.executescript(SCHEMA)
    return conn
