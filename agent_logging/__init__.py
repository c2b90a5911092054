"""Logging package."""
from .setup import configure_component_loggers, setup_logging

__all__ = ["configure_component_loggers", "setup_logging"]
