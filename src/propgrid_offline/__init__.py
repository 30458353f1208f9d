"""Offline cache manager for the PropGrid deal-alert landing page."""

__version__ = "1.0.0"
