"""
Agent configuration and store-key handling.

Layout under the agent home (``$MESHGARDEN_HOME``, default ~/.meshgarden):
    config/config.yaml   # AgentConfig
    meshgarden.db        # interface store
    store.key            # 32-byte store key, mode 0600
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel

from . import AGENT_HOME
from .cipher import KEY_SIZE, generate_key
from .errors import CryptoError
from .store import Store

logger = logging.getLogger("meshgarden.config")

DEFAULT_API_URL = "https://api.meshgarden.io"


class AgentConfig(BaseModel):
    """Persistent agent configuration."""

    api_url: str = DEFAULT_API_URL
    db_file: str = "meshgarden.db"
    key_file: str = "store.key"
    listen_port: int = 0


def agent_home(home: Optional[Path] = None) -> Path:
    """Resolve the agent home directory."""
    return Path(home or AGENT_HOME).expanduser()


def load_config(home: Path) -> AgentConfig:
    """Load config.yaml from the agent home.

    Returns:
        AgentConfig from disk, or defaults if missing or invalid.
    """
    config_file = home / "config" / "config.yaml"
    if config_file.exists():
        try:
            data = yaml.safe_load(config_file.read_text()) or {}
            return AgentConfig(**data)
        except (yaml.YAMLError, ValueError, TypeError) as exc:
            logger.warning("Failed to load config (%s), using defaults", exc)
    return AgentConfig()


def save_config(home: Path, config: AgentConfig) -> Path:
    """Write config.yaml under the agent home."""
    config_dir = home / "config"
    config_dir.mkdir(parents=True, exist_ok=True)
    config_file = config_dir / "config.yaml"
    config_file.write_text(yaml.safe_dump(config.model_dump(), default_flow_style=False))
    return config_file


def load_store_key(path: Path) -> bytes:
    """Read a store key file.

    Raises:
        CryptoError: If the file does not hold exactly 32 bytes.
    """
    key = path.read_bytes()
    if len(key) != KEY_SIZE:
        raise CryptoError(
            f"invalid store key length {len(key)}",
            operation="load store key",
            entity=str(path),
        )
    return key


def load_or_create_store_key(path: Path) -> bytes:
    """Read the store key, generating it (mode 0600) if absent."""
    if path.exists():
        return load_store_key(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    key = generate_key()
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(key)
    logger.info("Generated new store key at %s", path)
    return key


def open_store(home: Optional[Path] = None, create: bool = True) -> Store:
    """Open the interface store configured for an agent home.

    Args:
        home: Agent home; defaults to ``$MESHGARDEN_HOME``.
        create: Generate a store key if none exists yet.
    """
    home = agent_home(home)
    config = load_config(home)
    key_path = home / config.key_file
    key = load_or_create_store_key(key_path) if create else load_store_key(key_path)
    home.mkdir(parents=True, exist_ok=True)
    return Store(home / config.db_file, key)
