"""
Meshgarden — mesh VPN agent core.

Joins a device to networks run by a remote control plane, keeps the
resulting keys and topology in an encrypted local store, and records
every reconciliation step in an append-only log.
"""

import os

__version__ = "0.1.0"

AGENT_HOME = os.environ.get("MESHGARDEN_HOME", "~/.meshgarden")
