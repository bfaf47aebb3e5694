"""Command-line interface for keypool."""

from keypool.cli.keys import keys_group

__all__ = ["keys_group"]
