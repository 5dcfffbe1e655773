"""Declarative reconciliation of Kemp LoadMaster configuration."""

__version__ = "0.1.0"
