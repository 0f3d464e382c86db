"""Shared helpers for entry points."""

from crowdledger.utilities.logger import setup_logger

__all__ = ["setup_logger"]
