"""
Agent bookkeeping for the join/refresh protocol.

The transport to the control plane lives elsewhere. This module takes
the responses it produced, turns them into Interface aggregates and
persists each one together with the log entry describing it, in one
transaction. It also records the outcome of tunnel reconciliation
steps performed by a higher layer.

Flow:
    1. build a JoinDeviceRequest, ``valid()`` it, send it (external)
    2. agent.record_join(None, private_key, None, response), taking the
       control-plane URL and listen port from the AgentConfig
    3. reconcile the tunnel (external), then agent.record_applied(iface)
"""

from __future__ import annotations

import logging
from typing import Optional

from .config import AgentConfig
from .errors import ValidationError
from .ifacelog import append_log_tx
from .models import Interface, InterfaceLog, Operation, State
from .protocol import JoinDeviceResponse, RefreshDeviceRequest
from .store import Store
from .wireguard import KEY_SIZE

logger = logging.getLogger("meshgarden.agent")


def _check_response(response: JoinDeviceResponse, operation: str) -> None:
    """Reject device or peer keys that are not 32 bytes."""
    devices = [("device", response.device)] + [
        (f"peer {p.id}", p) for p in response.peers
    ]
    for entity, device in devices:
        if len(device.public_key) != KEY_SIZE:
            raise ValidationError(
                f"invalid key length {len(device.public_key)}",
                operation=operation,
                entity=f"{entity} public_key",
            )


def refresh_request(
    name: Optional[str] = None,
    key: Optional[bytes] = None,
    endpoint: Optional[str] = None,
) -> RefreshDeviceRequest:
    """Build and validate a refresh request. Omitted fields stay unchanged.

    Raises:
        ValidationError: If the key or endpoint is malformed.
    """
    req = RefreshDeviceRequest(name=name or "", key=key or b"", endpoint=endpoint or "")
    req.valid()
    return req


class Agent:
    """Persists join/refresh results and reconciliation outcomes.

    Args:
        store: Open interface store.
        config: Supplies the default control-plane URL and listen port
            for new interfaces.
    """

    def __init__(self, store: Store, config: Optional[AgentConfig] = None) -> None:
        self.store = store
        self.config = config or AgentConfig()

    def record_join(
        self,
        api_url: Optional[str],
        private_key: bytes,
        listen_port: Optional[int],
        response: JoinDeviceResponse,
        message: str = "",
    ) -> Interface:
        """Store a newly joined interface and log the join.

        ``api_url`` and ``listen_port`` fall back to the agent config when None.

        Returns:
            The stored interface with its assigned id.

        Raises:
            ValidationError: If the response carries malformed keys.
            ConflictError: If this device or network/device name is
                already stored.
        """
        _check_response(response, "record join")
        iface = Interface(
            api_url=self.config.api_url if api_url is None else api_url,
            network=response.network,
            device=response.device,
            listen_port=self.config.listen_port if listen_port is None else listen_port,
            key=private_key,
            device_token=response.token,
            peers=list(response.peers),
        )

        def join(tx, last_log: Optional[InterfaceLog]) -> None:
            self.store.ensure_interface_tx(tx, iface)
            append_log_tx(
                tx, iface, Operation.JOIN, State.JOINED, True,
                message or f"joined network {iface.network.name!r}",
            )

        try:
            self.store.with_log(iface, join)
        except Exception:
            iface.id = 0
            raise
        logger.info("Joined %s with %d peers", iface.label, len(iface.peers))
        return iface

    def record_refresh(
        self,
        iface: Interface,
        response: JoinDeviceResponse,
        message: str = "",
    ) -> Interface:
        """Replace an interface's network, device and peers from a refresh.

        The device token is kept unless the response carries a new one.

        Returns:
            The updated interface (same id).
        """
        _check_response(response, "record refresh")
        updated = iface.model_copy(
            update={
                "network": response.network,
                "device": response.device,
                "peers": list(response.peers),
                "device_token": response.token or iface.device_token,
            },
        )

        def refresh(tx, last_log: Optional[InterfaceLog]) -> None:
            self.store.ensure_interface_tx(tx, updated)
            append_log_tx(
                tx, updated, Operation.REFRESH, State.REFRESHED, True,
                message or f"refreshed {len(updated.peers)} peers",
            )

        self.store.with_log(updated, refresh)
        return updated

    def record_applied(self, iface: Interface, message: str = "") -> InterfaceLog:
        """Log that the tunnel now matches the stored interface."""
        return self.store.with_log(
            iface,
            lambda tx, last_log: append_log_tx(
                tx, iface, Operation.APPLY, State.APPLIED, False, message,
            ),
        )

    def record_failed(
        self, iface: Interface, operation: Operation, message: str,
    ) -> InterfaceLog:
        """Log a failed reconciliation step; the interface stays dirty."""
        return self.store.with_log(
            iface,
            lambda tx, last_log: append_log_tx(
                tx, iface, operation, State.FAILED, True, message,
            ),
        )

    def needs_apply(self, iface: Interface) -> bool:
        """True when the interface has no history or its last entry is dirty."""
        return self.store.with_log(
            iface, lambda tx, last_log: last_log is None or last_log.dirty,
        )
