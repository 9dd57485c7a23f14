"""
Meshgarden CLI — read-only view of the agent's interfaces.

Entry point: meshgarden.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="meshgarden")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def main(verbose: bool):
    """Meshgarden mesh VPN agent."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG)


from .status import register_status_commands

register_status_commands(main)
