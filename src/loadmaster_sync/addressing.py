"""Identifiers the LoadMaster endpoints expect for each resource kind.

Two shapes exist. Rules and OWASP blobs are addressed by a flat name.
Servers, sub services and rule attachments live under a virtual service
and are addressed by a (parent, child) pair. The real-server endpoints
overload the child parameter: ``!<index>`` selects the server with that
exact index while a bare value (an address) selects the first match.
"""

import os
from dataclasses import dataclass
from typing import Tuple, Union

from loadmaster_sync.utils.errors import ParseError

EXACT_INDEX_SIGIL = "!"
SCOPE_SEPARATOR = "/"


@dataclass(frozen=True)
class FlatIdentifier:
    """A single opaque name."""

    name: str

    def resolve(self) -> str:
        return self.name

    def to_external(self) -> str:
        return self.name


@dataclass(frozen=True)
class ScopedIdentifier:
    """A child addressed within a parent virtual service."""

    parent: str
    child: str
    exact: bool = True

    def resolve(self) -> Tuple[str, str]:
        """Return the (parent, child) parameter pair for the remote call."""
        child = f"{EXACT_INDEX_SIGIL}{self.child}" if self.exact else self.child
        return self.parent, child

    def to_external(self) -> str:
        return f"{self.parent}{SCOPE_SEPARATOR}{self.child}"


def resolve(identifier: Union[FlatIdentifier, ScopedIdentifier]) -> Union[str, Tuple[str, str]]:
    """Resolve a flat or scoped identifier to its remote parameter value(s)."""
    return identifier.resolve()


def parse_scoped(external_id: str, exact: bool = True) -> ScopedIdentifier:
    """Parse ``"<parent>/<child>"`` as supplied to an import.

    Raises:
        ParseError: Not exactly two non-empty components
    """
    parts = external_id.split(SCOPE_SEPARATOR)
    if len(parts) != 2 or not all(part.strip() for part in parts):
        raise ParseError(
            f"Unable to parse ID {external_id!r}: expected '<parent>{SCOPE_SEPARATOR}<child>'",
            suggestions=[f"Use the form '<virtual service id>{SCOPE_SEPARATOR}<child id>'"],
        )
    parent, child = (part.strip() for part in parts)
    return ScopedIdentifier(parent=parent, child=child, exact=exact)


def parse_index(value: str) -> int:
    """Parse a numeric appliance index.

    Raises:
        ParseError: Not a non-negative integer
    """
    text = str(value).strip()
    if not text.isdigit():
        raise ParseError(f"Unable to parse ID {value!r}: expected a numeric index")
    return int(text)


def strip_extension(filename: str) -> str:
    """OWASP blobs are addressed by filename without its extension."""
    return os.path.splitext(filename)[0]
