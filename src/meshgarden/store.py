"""
Interface store — durable, encrypted home of the agent's interfaces.

Each interface is one ``iface`` row, its peer snapshot lives in
``peer`` and its reconciliation history in ``iface_log``. Every write
touching more than one row happens in a single transaction, and every
read either returns a fully parsed and decrypted aggregate or raises.

The store key is supplied by the caller and used only to seal and
open the two secrets on each interface (private key, device token).

Usage:
    store = Store(home / "meshgarden.db", key)
    iface_id = store.ensure_interface(iface)
    store.with_log(iface, lambda tx, last: append_log_tx(tx, iface, ...))
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar, Union

from .cipher import KEY_SIZE as STORE_KEY_SIZE
from .cipher import decrypt_secret, encrypt_secret
from .db import Transaction, connect, sql_errors
from .errors import CryptoError, NotFoundError, ParseError, StorageError, ValidationError
from .ifacelog import last_log_by_device_tx, last_log_tx
from .models import Interface, InterfaceLog, InterfaceWithLog
from .protocol import Device, Network
from .wireguard import KEY_SIZE, format_key, parse_address, parse_key

logger = logging.getLogger("meshgarden.store")

T = TypeVar("T")

LogCallback = Callable[[Transaction, Optional[InterfaceLog]], T]


def _check_key(raw: bytes, operation: str, entity: str) -> None:
    if len(raw) != KEY_SIZE:
        raise ValidationError(
            f"invalid key length {len(raw)}", operation=operation, entity=entity,
        )


class Store:
    """SQLite-backed store for interfaces, peers and their log.

    Safe to share between threads: each thread gets its own connection
    on first use. The store does not serialize concurrent callers
    working on the same interface; run one worker per interface if that
    matters.

    Args:
        path: Database file (or ``":memory:"``).
        key: 32-byte store key sealing secrets at rest.
    """

    def __init__(self, path: Union[str, Path], key: bytes) -> None:
        if len(key) != STORE_KEY_SIZE:
            raise CryptoError(
                f"invalid store key length {len(key)}", operation="open store", entity="store key",
            )
        self._path = path
        self._key = bytes(key)
        if str(path) == ":memory:":
            # Named shared-cache database so every thread sees the same data.
            self._target: Union[str, Path] = f"file:meshgarden-{id(self)}?mode=memory&cache=shared"
            self._uri = True
        else:
            self._target = path
            self._uri = False
        self._local = threading.local()
        self._lock = threading.Lock()
        self._conns: list[sqlite3.Connection] = []
        self._closed = False
        # Open eagerly so a bad path fails here rather than on first use.
        self._connection()
        logger.debug("Opened store %s", path)

    def __enter__(self) -> "Store":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Close the connections of every thread that used the store."""
        with self._lock:
            conns, self._conns = self._conns, []
            self._closed = True
        for conn in conns:
            conn.close()
        logger.debug("Closed store %s (%d connections)", self._path, len(conns))

    def transaction(self, write: bool = False) -> Transaction:
        """Start a scoped transaction (use with ``with``)."""
        return Transaction(self._connection(), write=write)

    def _connection(self) -> sqlite3.Connection:
        if self._closed:
            raise StorageError("store is closed", operation="open database", entity=str(self._path))
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            return conn
        with self._lock:
            if self._closed:
                raise StorageError("store is closed", operation="open database", entity=str(self._path))
            conn = connect(self._target, uri=self._uri)
            self._conns.append(conn)
        self._local.conn = conn
        return conn

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------

    def ensure_interface(self, iface: Interface) -> int:
        """Insert or fully replace an interface and its peer set.

        ``iface.id == 0`` inserts a new row and assigns ``iface.id``.
        A nonzero id overwrites every field of that row. The peer set
        is always replaced wholesale.

        Returns:
            The interface id.

        Raises:
            ValidationError: If a key is not 32 bytes.
            ConflictError: If the device id, network/device name pair or
                public key belongs to another interface.
            StorageError: On database failure.
        """
        original_id = iface.id
        try:
            with self.transaction(write=True) as tx:
                self.ensure_interface_tx(tx, iface)
                tx.commit()
        except Exception:
            iface.id = original_id
            raise
        return iface.id

    def ensure_interface_tx(self, tx: Transaction, iface: Interface) -> int:
        """Upsert ``iface`` within an open transaction. See :meth:`ensure_interface`."""
        op = f"upsert interface {iface.label!r}"
        _check_key(iface.key, op, "key")
        _check_key(iface.device.public_key, op, "public_key")
        for peer in iface.peers:
            _check_key(peer.public_key, op, f"peer {peer.id} public_key")

        now = int(time.time())
        row_id: Optional[int] = iface.id if iface.id > 0 else None
        with sql_errors(op):
            cur = tx.execute(
                """
insert into iface (
    id, created_at, updated_at,
    api_url,
    net_id, net_name, net_cidr,
    device_id, device_name, device_endpoint, device_addr, public_key,
    listen_port, key, device_token
)
values (
    ?, ?, ?,
    ?,
    ?, ?, ?,
    ?, ?, ?, ?, ?,
    ?, ?, ?)
on conflict (id) do update set
    updated_at = excluded.updated_at,
    api_url = excluded.api_url,
    net_id = excluded.net_id,
    net_name = excluded.net_name,
    net_cidr = excluded.net_cidr,
    device_id = excluded.device_id,
    device_name = excluded.device_name,
    device_endpoint = excluded.device_endpoint,
    device_addr = excluded.device_addr,
    public_key = excluded.public_key,
    listen_port = excluded.listen_port,
    key = excluded.key,
    device_token = excluded.device_token
""",
                (
                    row_id, now, now,
                    iface.api_url,
                    iface.network.id, iface.network.name, str(iface.network.cidr),
                    iface.device.id, iface.device.name,
                    iface.device.endpoint, str(iface.device.addr),
                    format_key(iface.device.public_key),
                    iface.listen_port,
                    encrypt_secret(iface.key, self._key),
                    encrypt_secret(iface.device_token, self._key),
                ),
            )
        if row_id is None:
            row_id = cur.lastrowid

        with sql_errors(f"replace peers of interface {iface.label!r}"):
            tx.execute("delete from peer where iface_id = ?", (row_id,))
        for peer in iface.peers:
            with sql_errors(f"insert peer {peer.id!r}", entity=peer.id):
                tx.execute(
                    "insert into peer (iface_id, device_id, device_name, device_endpoint,"
                    " device_addr, public_key)\n"
                    "values (?, ?, ?, ?, ?, ?)",
                    (
                        row_id, peer.id, peer.name, peer.endpoint,
                        str(peer.addr), format_key(peer.public_key),
                    ),
                )

        if iface.id != row_id:
            logger.info("Inserted interface %s as id %d", iface.label, row_id)
        else:
            logger.info("Updated interface %s (id %d, %d peers)", iface.label, row_id, len(iface.peers))
        iface.id = row_id
        return row_id

    def with_log(self, iface: Interface, fn: LogCallback) -> Any:
        """Run ``fn(tx, last_log)`` in a write transaction and commit if it returns.

        ``last_log`` is the interface's most recent entry, or None when it
        has no history. Any exception from ``fn`` rolls back everything it
        wrote and propagates unchanged.

        Returns:
            Whatever ``fn`` returns.
        """
        with self.transaction(write=True) as tx:
            last = last_log_tx(tx, iface)
            result = fn(tx, last)
            tx.commit()
        return result

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------

    def interface(self, iface_id: int) -> Interface:
        """Load one interface with secrets decrypted and peers attached.

        Raises:
            NotFoundError: No interface has that id.
            ParseError: A stored address or key is malformed.
            CryptoError: A secret fails to decrypt.
        """
        with self.transaction() as tx:
            return self._interface_tx(tx, iface_id)

    def interface_by_device(self, device_name: str, network_name: str) -> Interface:
        """Load the interface for ``device_name`` on ``network_name``."""
        with self.transaction() as tx:
            with sql_errors("query interface", entity=f"{device_name}@{network_name}"):
                row = tx.execute(
                    "select id from iface where device_name = ? and net_name = ?",
                    (device_name, network_name),
                ).fetchone()
            if row is None:
                raise NotFoundError(
                    f"no interface for device name {device_name!r} network name {network_name!r}",
                    operation="query interface",
                    entity=f"{device_name}@{network_name}",
                )
            return self._interface_tx(tx, row["id"])

    def interfaces(self) -> list[InterfaceWithLog]:
        """Every stored interface with its most recent log entry."""
        with self.transaction() as tx:
            with sql_errors("query interfaces"):
                ids = [r["id"] for r in tx.execute("select id from iface order by id").fetchall()]
            result = []
            for iface_id in ids:
                iface = self._interface_tx(tx, iface_id)
                result.append(InterfaceWithLog(interface=iface, log=last_log_tx(tx, iface)))
        return result

    def last_log_by_device(self, device_name: str, network_name: str) -> InterfaceLog:
        """Most recent log entry for a device's interface.

        Raises:
            NotFoundError: No such interface, or it has no history.
        """
        with self.transaction() as tx:
            entry = last_log_by_device_tx(tx, device_name, network_name)
        if entry is None:
            raise NotFoundError(
                f"no log for device name {device_name!r} network name {network_name!r}",
                operation="query interface last log",
                entity=f"{device_name}@{network_name}",
            )
        return entry

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------

    def _interface_tx(self, tx: Transaction, iface_id: int) -> Interface:
        op = f"query interface {iface_id}"
        with sql_errors(op):
            row = tx.execute(
                """
select
    api_url,
    net_id, net_name, net_cidr,
    device_id, device_name, device_endpoint, device_addr, public_key,
    listen_port, key, device_token
from iface where id = ?
""",
                (iface_id,),
            ).fetchone()
        if row is None:
            raise NotFoundError(f"interface {iface_id} does not exist", operation=op)

        network = Network(
            id=row["net_id"],
            name=row["net_name"],
            cidr=_parse(parse_address, row["net_cidr"], op, "network CIDR"),
        )
        device = Device(
            id=row["device_id"],
            name=row["device_name"],
            endpoint=row["device_endpoint"],
            addr=_parse(parse_address, row["device_addr"], op, "device address"),
            public_key=_parse(parse_key, row["public_key"], op, "public key"),
        )
        key = self._decrypt(row["key"], op, "key")
        device_token = self._decrypt(row["device_token"], op, "device token")

        with sql_errors(f"query peers of interface {iface_id}"):
            peer_rows = tx.execute(
                "select device_id, device_name, device_endpoint, device_addr, public_key\n"
                "from peer\n"
                "where iface_id = ?\n"
                "order by rowid",
                (iface_id,),
            ).fetchall()
        peers = [
            Device(
                id=p["device_id"],
                name=p["device_name"],
                endpoint=p["device_endpoint"],
                addr=_parse(parse_address, p["device_addr"], op, "peer address"),
                public_key=_parse(parse_key, p["public_key"], op, "peer public key"),
            )
            for p in peer_rows
        ]

        logger.debug("Loaded interface %d (%d peers)", iface_id, len(peers))
        return Interface(
            id=iface_id,
            api_url=row["api_url"],
            network=network,
            device=device,
            listen_port=row["listen_port"] or 0,
            key=key,
            device_token=device_token,
            peers=peers,
        )

    def _decrypt(self, blob: Optional[bytes], op: str, entity: str) -> bytes:
        try:
            return decrypt_secret(blob or b"", self._key)
        except CryptoError as exc:
            raise CryptoError(
                f"failed to decrypt {entity}: {exc.message}", operation=op, entity=entity,
            ) from exc


def _parse(parser: Callable[[str], T], text: Any, op: str, entity: str) -> T:
    try:
        return parser(text)
    except ParseError as exc:
        raise ParseError(f"invalid {entity} {text!r}", operation=op, entity=entity) from exc
