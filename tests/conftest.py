"""Shared test fixtures for meshgarden."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from meshgarden.models import Interface
from meshgarden.protocol import Device, Network
from meshgarden.store import Store


@pytest.fixture
def tmp_agent_home(tmp_path: Path) -> Path:
    """Provide a temporary agent home directory for testing."""
    agent_home = tmp_path / ".meshgarden"
    agent_home.mkdir()
    return agent_home


@pytest.fixture
def store_key() -> bytes:
    return os.urandom(32)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "meshgarden.db"


@pytest.fixture
def store(db_path: Path, store_key: bytes):
    """An open store on a fresh database file."""
    st = Store(db_path, store_key)
    yield st
    st.close()


def make_device(name: str, addr: str = "10.0.0.2/24", endpoint: str = "", device_id: str = "") -> Device:
    """Build a device with a random public key."""
    return Device(
        id=device_id or f"dev-{name}",
        name=name,
        endpoint=endpoint,
        addr=addr,
        public_key=os.urandom(32),
    )


def make_interface(
    device_name: str = "laptop",
    network_name: str = "office",
    peers: int = 2,
    **kwargs,
) -> Interface:
    """Build an unsaved interface with ``peers`` random peers."""
    fields = dict(
        api_url="https://api.example.test",
        network=Network(id=f"net-{network_name}", name=network_name, cidr="10.0.0.0/24"),
        device=make_device(device_name, addr="10.0.0.1/24", endpoint="198.51.100.7:51820",
                           device_id=f"dev-{device_name}-{network_name}"),
        listen_port=51820,
        key=os.urandom(32),
        device_token=b"device-token-" + device_name.encode(),
        peers=[
            make_device(f"peer{i}", addr=f"10.0.0.{10 + i}/24", endpoint=f"203.0.113.{i}:51820",
                        device_id=f"dev-peer{i}-{network_name}")
            for i in range(peers)
        ],
    )
    fields.update(kwargs)
    return Interface(**fields)


@pytest.fixture
def new_interface():
    """Factory fixture for unsaved interfaces (see make_interface)."""
    return make_interface


@pytest.fixture
def new_device():
    """Factory fixture for devices with random keys (see make_device)."""
    return make_device
