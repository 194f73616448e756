"""Logging configuration for airgap_deployer."""

from airgap_deployer.logging.config import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
