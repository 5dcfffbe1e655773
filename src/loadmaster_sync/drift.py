"""Recognition of "entity no longer exists" responses.

Each endpoint family reports a missing entity differently: some by a
message alone, some by a response code, the virtual service endpoint by
both. Each reconciler therefore carries its own signature table.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from loadmaster_sync.api.errors import LoadMasterError


@dataclass(frozen=True)
class NotFoundSignature:
    """Fields an error must carry to mean "absent". Unset fields are wildcards."""

    message: Optional[str] = None
    code: Optional[int] = None

    def __post_init__(self):
        if self.message is None and self.code is None:
            raise ValueError("a signature needs a message, a code or both")

    def matches(self, error: LoadMasterError) -> bool:
        if self.message is not None and error.message != self.message:
            return False
        if self.code is not None and error.code != self.code:
            return False
        return True


class DriftDetector:
    """Checks remote errors against a resource kind's signature table."""

    def __init__(self, signatures: Iterable[NotFoundSignature]):
        self.signatures: Tuple[NotFoundSignature, ...] = tuple(signatures)

    def is_absent(self, error: BaseException) -> bool:
        """True if ``error`` says the entity no longer exists remotely."""
        if not isinstance(error, LoadMasterError):
            return False
        return any(signature.matches(error) for signature in self.signatures)
