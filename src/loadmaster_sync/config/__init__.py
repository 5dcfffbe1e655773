"""Configuration management for loadmaster-sync."""

from .models import (
    ProjectConfig,
    ProviderConfig,
    ResourceDeclaration,
    RetryConfig,
    SyncConfig,
)
from .parser import Config, ConfigValidationError

__all__ = [
    "ProjectConfig",
    "ProviderConfig",
    "ResourceDeclaration",
    "RetryConfig",
    "SyncConfig",
    "Config",
    "ConfigValidationError",
]
