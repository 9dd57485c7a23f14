"""
WireGuard value types — keys, addresses and endpoints.

Keys are raw 32-byte Curve25519 values, written as standard base64
the same way ``wg`` prints them. Addresses are ``ip/prefix``
interface values. These helpers are the only place text from the
store or the wire is turned back into key and address values.
"""

from __future__ import annotations

import base64
import binascii
import ipaddress
from typing import Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

from .errors import ParseError, ValidationError

KEY_SIZE = 32

Address = Union[ipaddress.IPv4Interface, ipaddress.IPv6Interface]


def format_key(raw: bytes) -> str:
    """Render a raw key as base64 text."""
    return base64.b64encode(bytes(raw)).decode("ascii")


def parse_key(text: str) -> bytes:
    """Parse base64 key text back into 32 raw bytes.

    Args:
        text: Base64-encoded key.

    Returns:
        The raw key bytes.

    Raises:
        ParseError: If the text is not base64 or not exactly 32 bytes.
    """
    try:
        raw = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError, TypeError) as exc:
        raise ParseError(f"invalid key {text!r}", operation="parse key", entity="key") from exc
    if len(raw) != KEY_SIZE:
        raise ParseError(
            f"invalid key length {len(raw)}", operation="parse key", entity="key",
        )
    return raw


def parse_address(text: str) -> Address:
    """Parse an ``ip/prefix`` address. A bare IP is taken as a host route.

    Raises:
        ParseError: If the text is not an IPv4 or IPv6 interface address.
    """
    try:
        return ipaddress.ip_interface(text)
    except (ValueError, TypeError) as exc:
        raise ParseError(
            f"invalid address {text!r}", operation="parse address", entity="address",
        ) from exc


def split_host_port(endpoint: str) -> tuple[str, int]:
    """Split a ``host:port`` endpoint.

    IPv6 hosts must be bracketed (``[fd00::1]:51820``). The host may be
    empty; the port may not. The port must be decimal and at most 65535,
    so service names such as ``host:https`` and an empty port (``host:``)
    are rejected, unlike Go's ``net.SplitHostPort``.

    Returns:
        (host, port)

    Raises:
        ValidationError: If the endpoint is not ``host:port``.
    """
    def fail(reason: str) -> ValidationError:
        return ValidationError(
            f"{reason} in {endpoint!r}", operation="parse endpoint", entity="endpoint",
        )

    if endpoint.startswith("["):
        end = endpoint.find("]")
        if end < 0:
            raise fail("missing ']'")
        host = endpoint[1:end]
        rest = endpoint[end + 1:]
        if not rest.startswith(":"):
            raise fail("missing port")
        port_text = rest[1:]
    else:
        if ":" not in endpoint:
            raise fail("missing port")
        host, port_text = endpoint.rsplit(":", 1)
        if ":" in host:
            raise fail("too many colons")
    if "[" in host or "]" in host:
        raise fail("unexpected bracket")
    if not (port_text.isascii() and port_text.isdigit()):
        raise fail(f"invalid port {port_text!r}")
    port = int(port_text)
    if port > 65535:
        raise fail(f"invalid port {port}")
    return host, port


def generate_private_key() -> bytes:
    """Generate a fresh Curve25519 private key (32 raw bytes)."""
    return X25519PrivateKey.generate().private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )


def public_key(private_key: bytes) -> bytes:
    """Derive the 32-byte public key for a private key.

    Raises:
        ValidationError: If the private key is not 32 bytes.
    """
    if len(private_key) != KEY_SIZE:
        raise ValidationError(
            f"invalid key length {len(private_key)}",
            operation="derive public key",
            entity="key",
        )
    return X25519PrivateKey.from_private_bytes(private_key).public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
