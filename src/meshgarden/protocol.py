"""
Control-plane protocol: join/refresh request and response shapes.

These are the payloads exchanged with the control plane. The models
describe structure only; ``valid()`` on the request types enforces the
field contracts (key and machine-id lengths, port range, endpoint
syntax) that must hold before anything reaches the store or the
tunnel layer.

Wire format is JSON with camelCase names. Byte strings (keys, machine
IDs, tokens) travel as standard base64; addresses as ``ip/prefix``.
"""

from __future__ import annotations

import base64
import binascii
from datetime import datetime
from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    IPvAnyInterface,
    PlainSerializer,
)

from .errors import ValidationError
from .wireguard import KEY_SIZE, format_key, split_host_port

MACHINE_ID_SIZE = 32


def _decode_base64(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"invalid base64: {exc}") from exc


# Standard alphabet with padding, as the control plane encodes byte strings.
Base64Bytes = Annotated[
    bytes,
    BeforeValidator(_decode_base64),
    PlainSerializer(lambda b: base64.b64encode(b).decode("ascii"), return_type=str, when_used="json"),
]


class WireModel(BaseModel):
    """Base for all protocol payloads."""

    model_config = ConfigDict(populate_by_name=True)

    def to_json(self) -> str:
        """Serialize to the control plane's JSON form."""
        return self.model_dump_json(by_alias=True, exclude_none=True)

    @classmethod
    def from_json(cls, data: str | bytes):
        """Parse a JSON payload received from the control plane."""
        return cls.model_validate_json(data)


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------

class PlanDoc(WireModel):
    """Plan and quota attached to a subscription."""

    name: str = ""
    free: bool = False
    device_limit: int = Field(default=0, alias="deviceLimit")
    expires_in_days: int = Field(default=0, alias="expiresInDays")


class GetSubscriptionResponse(WireModel):
    """A single subscription as reported by the control plane."""

    id: str
    created: datetime
    not_before: Optional[datetime] = Field(default=None, alias="notBefore")
    not_after: Optional[datetime] = Field(default=None, alias="notAfter")
    plan: PlanDoc = Field(default_factory=PlanDoc)


class ListSubscriptionsResponse(WireModel):
    subscriptions: list[GetSubscriptionResponse] = Field(default_factory=list)


class GetSubscriptionTokenResponse(WireModel):
    """Subscription token used to authorize device joins."""

    id: str
    token: Base64Bytes


# ---------------------------------------------------------------------------
# Topology
# ---------------------------------------------------------------------------

class Network(WireModel):
    """A mesh network: identifier, display name and address block."""

    id: str
    name: str
    cidr: IPvAnyInterface = Field(alias="address")


class Device(WireModel):
    """A device in a network, either this one or a remote peer.

    Attributes:
        id: Control-plane device identifier.
        name: Display name, unique within the network.
        endpoint: ``host:port`` where the device can be reached, or empty.
        addr: Address of the device inside the network.
        public_key: 32-byte Curve25519 public key.
    """

    id: str
    name: str
    endpoint: str = ""
    addr: IPvAnyInterface
    public_key: Base64Bytes = Field(alias="publicKey")

    @property
    def public_key_text(self) -> str:
        return format_key(self.public_key)


# ---------------------------------------------------------------------------
# Join / refresh
# ---------------------------------------------------------------------------

class JoinDeviceRequest(WireModel):
    """Request to join a device to a network.

    Attributes:
        name: Logical name given to the device on join.
        network: Network to join; the subscription's default when empty.
        machine_id: App-specific machine ID, protecting the real one.
        key: Public key of this device.
        endpoint: Public ``host:port`` where this device can be reached.
        available_addr: Address to use, only when starting a new network.
        available_port: Port to use, only when starting a new network.
    """

    name: str
    network: Optional[str] = None
    machine_id: Base64Bytes = Field(alias="machineId")
    key: Base64Bytes
    endpoint: Optional[str] = None
    available_addr: Optional[IPvAnyInterface] = Field(default=None, alias="availableAddr")
    available_port: Optional[int] = Field(default=None, alias="availablePort")

    def valid(self) -> None:
        """Check field contracts.

        Raises:
            ValidationError: Naming the offending field.
        """
        if len(self.machine_id) != MACHINE_ID_SIZE:
            raise ValidationError(
                f"invalid machine ID length {len(self.machine_id)}",
                operation="validate join request",
                entity="machine_id",
            )
        if len(self.key) != KEY_SIZE:
            raise ValidationError(
                f"invalid key length {len(self.key)}",
                operation="validate join request",
                entity="key",
            )
        port = self.available_port or 0
        if port < 0 or port > 65535:
            raise ValidationError(
                f"invalid port {port}",
                operation="validate join request",
                entity="available_port",
            )


class JoinDeviceResponse(WireModel):
    """Control plane's answer to a join (or refresh).

    Attributes:
        network: The network joined.
        device: The assigned device; persists for the lifetime of this
            device's membership in the network.
        peers: Full snapshot of the other devices on the network.
        plan: Subscription plan information.
        token: Device token authenticating subsequent device requests.
    """

    network: Network
    device: Device
    peers: list[Device] = Field(default_factory=list)
    plan: PlanDoc = Field(default_factory=PlanDoc)
    token: Base64Bytes = b""


class RefreshDeviceRequest(WireModel):
    """Update this device's registration. Empty fields are left unchanged."""

    name: str = ""
    key: Base64Bytes = b""
    endpoint: str = ""

    def valid(self) -> None:
        """Check the fields that were supplied.

        The endpoint must be ``host:port`` with a decimal port in 0..65535.
        This is stricter than Go's ``net.SplitHostPort``, which accepts an
        empty port or a service name; a tunnel endpoint needs a number.

        Raises:
            ValidationError: Naming the offending field.
        """
        if self.key and len(self.key) != KEY_SIZE:
            raise ValidationError(
                f"invalid key length {len(self.key)}",
                operation="validate refresh request",
                entity="key",
            )
        if self.endpoint:
            try:
                split_host_port(self.endpoint)
            except ValidationError as exc:
                raise ValidationError(
                    f"invalid endpoint: {exc.message}",
                    operation="validate refresh request",
                    entity="endpoint",
                ) from exc

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_defaults=True)
