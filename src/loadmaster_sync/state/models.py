"""Recorded state data models."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordedState(BaseModel):
    """Last-synchronized view of one resource instance."""

    kind: str = Field(..., description="Resource kind (e.g. real_server)")
    identifier: str = Field(..., description="Exposed identifier, flat or '<parent>/<child>'")
    attributes: Dict[str, Any] = Field(
        default_factory=dict, description="Desired attributes plus server-filled values"
    )
    updated_at: datetime = Field(
        default_factory=_utcnow, description="When this record was last replaced"
    )

    def get(self, attribute: str, default: Any = None) -> Any:
        """Get a recorded attribute value."""
        return self.attributes.get(attribute, default)

    def same_attributes(self, other: "RecordedState") -> bool:
        """True if both records describe the same remote entity state."""
        return (
            self.kind == other.kind
            and self.identifier == other.identifier
            and self.attributes == other.attributes
        )


class StateFile(BaseModel):
    """All recorded resources for one appliance, keyed by declared name."""

    version: str = Field("1.0", description="State file format version")
    host: str = Field("", description="Appliance the resources live on")
    timestamp: datetime = Field(default_factory=_utcnow, description="Last update timestamp")
    resources: Dict[str, RecordedState] = Field(
        default_factory=dict, description="Recorded resources keyed by declared name"
    )
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Global metadata")

    def put(self, name: str, state: RecordedState) -> None:
        """Record a resource, replacing any previous record wholesale."""
        self.resources[name] = state
        self.timestamp = _utcnow()

    def remove(self, name: str) -> Optional[RecordedState]:
        """Forget a resource and return its last record."""
        state = self.resources.pop(name, None)
        if state is not None:
            self.timestamp = _utcnow()
        return state

    def get(self, name: str) -> Optional[RecordedState]:
        return self.resources.get(name)

    def has(self, name: str) -> bool:
        return name in self.resources

    def items(self) -> List[Tuple[str, RecordedState]]:
        return list(self.resources.items())

    def find_by_identifier(self, kind: str, identifier: str) -> Optional[str]:
        """Return the declared name recorded for a kind/identifier pair."""
        for name, state in self.resources.items():
            if state.kind == kind and state.identifier == identifier:
                return name
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StateFile":
        """Create StateFile from dictionary."""
        return cls.model_validate(data)
