"""YAML configuration parser for loadmaster-sync."""

import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import yaml
from pydantic import ValidationError

from .models import ProjectConfig, ProviderConfig, ResourceDeclaration, RetryConfig, SyncConfig

# Provider fields the environment may supply when the file leaves them unset
ENV_FALLBACKS = {
    "host": "LOADMASTER_HOST",
    "username": "LOADMASTER_USERNAME",
    "password": "LOADMASTER_PASSWORD",
    "api_key": "LOADMASTER_API_KEY",
}


class ConfigValidationError(Exception):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, errors: Optional[List[Dict]] = None):
        self.message = message
        self.errors = errors or []
        super().__init__(self.message)

    def __str__(self) -> str:
        """Format validation errors for display."""
        if not self.errors:
            return self.message

        error_lines = [self.message, ""]
        for error in self.errors:
            location = " -> ".join(str(loc) for loc in error.get("loc", []))
            msg = error.get("msg", "Unknown error")
            error_lines.append(f"  - {location}: {msg}")

        return "\n".join(error_lines)


class Config:
    """Configuration manager for loadmaster-sync."""

    def __init__(
        self,
        config_path: str,
        environ: Optional[Dict[str, str]] = None,
        known_kinds: Optional[Iterable[str]] = None,
    ):
        """Initialize configuration manager.

        Args:
            config_path: Path to loadmaster.yaml configuration file
            environ: Environment used for provider fallbacks (defaults to os.environ)
            known_kinds: Resource kinds accepted in declarations; unchecked when None
        """
        self.config_path = Path(config_path)
        self.environ = os.environ if environ is None else environ
        self.known_kinds = set(known_kinds) if known_kinds is not None else None
        self.data: Dict = {}
        self.settings: Optional[SyncConfig] = None

    @property
    def project(self) -> ProjectConfig:
        return self._loaded().project

    @property
    def provider(self) -> ProviderConfig:
        return self._loaded().provider

    @property
    def retry(self) -> RetryConfig:
        return self._loaded().retry

    @property
    def resources(self) -> List[ResourceDeclaration]:
        return self._loaded().resources

    def load(self) -> "Config":
        """Load and validate configuration from YAML file.

        Returns:
            Self for method chaining

        Raises:
            ConfigValidationError: If configuration is invalid
            FileNotFoundError: If configuration file doesn't exist
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                self.data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Failed to parse YAML: {e}")

        if not isinstance(self.data, dict):
            raise ConfigValidationError("Configuration root must be a mapping")

        self._apply_env_fallbacks()

        validation_errors = self.validate()
        if validation_errors:
            raise ConfigValidationError(
                f"Configuration validation failed with {len(validation_errors)} error(s)",
                validation_errors,
            )

        return self

    def validate(self) -> List[Dict]:
        """Validate configuration against schema.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if "project" not in self.data:
            errors.append({"loc": ["project"], "msg": "Required field 'project' is missing"})

        try:
            self.settings = SyncConfig(**self.data)
        except ValidationError as e:
            self.settings = None
            for error in e.errors():
                errors.append({"loc": list(error["loc"]), "msg": error["msg"]})
        except TypeError as e:
            self.settings = None
            errors.append({"loc": [], "msg": str(e)})

        if self.known_kinds is not None:
            for idx, resource in enumerate(self.data.get("resources") or []):
                kind = resource.get("kind") if isinstance(resource, dict) else None
                if kind is not None and kind not in self.known_kinds:
                    errors.append(
                        {
                            "loc": ["resources", idx, "kind"],
                            "msg": f"Unknown resource kind '{kind}'",
                        }
                    )

        if errors:
            self.settings = None
        return errors

    def get_resource(self, name: str) -> Optional[ResourceDeclaration]:
        """Get a resource declaration by name."""
        for resource in self.resources:
            if resource.name == name:
                return resource
        return None

    def _apply_env_fallbacks(self) -> None:
        provider = self.data.get("provider")
        if provider is None:
            provider = {}
            self.data["provider"] = provider
        if not isinstance(provider, dict):
            return

        for field, variable in ENV_FALLBACKS.items():
            if not provider.get(field) and self.environ.get(variable):
                provider[field] = self.environ[variable]

    def _loaded(self) -> SyncConfig:
        if self.settings is None:
            raise RuntimeError("Configuration not loaded. Call load() first.")
        return self.settings
