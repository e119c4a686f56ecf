"""Utility functions for vpsdeploy."""

from vpsdeploy.utils.logging import bound_context, configure_logging, get_logger

__all__ = [
    "bound_context",
    "configure_logging",
    "get_logger",
]
