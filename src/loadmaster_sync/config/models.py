"""Pydantic models for configuration schema."""

import re
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")


class ProviderConfig(BaseModel):
    """Connection settings for the LoadMaster management interface."""

    host: Optional[str] = Field(None, description="Management address, optionally with port")
    username: Optional[str] = Field(None, description="API user name")
    password: Optional[str] = Field(None, description="API user password")
    api_key: Optional[str] = Field(None, description="API key; preferred over username/password")
    verify_ssl: bool = Field(True, description="Verify the appliance TLS certificate")
    timeout: float = Field(30.0, gt=0, description="Per-request timeout in seconds")

    @model_validator(mode="after")
    def validate_credentials(self):
        """Host and one complete set of credentials are required."""
        if not self.host:
            raise ValueError("host is required (set it in the file or LOADMASTER_HOST)")
        if not self.api_key and not (self.username and self.password):
            raise ValueError(
                "either api_key or both username and password are required "
                "(LOADMASTER_API_KEY, LOADMASTER_USERNAME, LOADMASTER_PASSWORD)"
            )
        return self


class RetryConfig(BaseModel):
    """Backoff policy for transient transport failures."""

    max_attempts: int = Field(5, ge=1, le=50)
    base_delay: float = Field(0.5, ge=0)
    max_delay: float = Field(30.0, ge=0)
    exponential_base: float = Field(2.0, ge=1.0)
    jitter: bool = True
    max_elapsed: Optional[float] = Field(None, gt=0, description="Overall retry budget in seconds")

    @model_validator(mode="after")
    def validate_delays(self):
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must not be smaller than base_delay")
        return self


class ResourceDeclaration(BaseModel):
    """One declared resource instance."""

    name: str = Field(..., description="Unique name used as the state key")
    kind: str = Field(..., description="Resource kind, see `lmsync kinds`")
    attributes: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not NAME_PATTERN.match(v):
            raise ValueError(
                "name must start with a letter or underscore and contain only "
                "letters, digits, underscores and hyphens"
            )
        return v


class ProjectConfig(BaseModel):
    """Project-level settings."""

    name: str = Field(..., description="Project name")
    state_path: str = Field(".lmsync/state.json", description="Where recorded state is kept")
    log_dir: Optional[str] = Field(None, description="Directory for JSON log files")


class SyncConfig(BaseModel):
    """Complete validated configuration."""

    project: ProjectConfig
    provider: ProviderConfig
    retry: RetryConfig = Field(default_factory=RetryConfig)
    resources: List[ResourceDeclaration] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_names(self):
        seen = set()
        for resource in self.resources:
            if resource.name in seen:
                raise ValueError(f"duplicate resource name: {resource.name}")
            seen.add(resource.name)
        return self
