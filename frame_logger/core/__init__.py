"""Shared infrastructure: logging, configuration, async helpers."""

from .config_manager import ConfigManager, get_config_manager
from .logging_config import configure_logging
from .logging_utils import StructuredLogger, ensure_structured_logger, get_module_logger
from .retry_policy import NO_RETRY_POLICY, RetryPolicy

__all__ = [
    "ConfigManager",
    "NO_RETRY_POLICY",
    "RetryPolicy",
    "StructuredLogger",
    "configure_logging",
    "ensure_structured_logger",
    "get_config_manager",
    "get_module_logger",
]
