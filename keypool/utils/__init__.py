"""Shared helpers for keypool."""

from keypool.utils.logging_config import configure_logging, get_logger, mask_secret

__all__ = ["configure_logging", "get_logger", "mask_secret"]
