"""Utility functions package."""

from smartflash_llm.utils.logger import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
