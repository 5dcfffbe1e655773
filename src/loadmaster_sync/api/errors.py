"""Typed errors raised by the LoadMaster API client."""

from typing import Optional


class LoadMasterError(Exception):
    """A command rejected by the appliance.

    The appliance answers every command with a JSON envelope carrying a
    numeric ``code`` and a free-text ``message``. Anything other than a
    success envelope is raised as this error.
    """

    def __init__(self, code: int, message: str, command: Optional[str] = None):
        self.code = code
        self.message = message
        self.command = command
        super().__init__(f"{code}: {message}")

    def __repr__(self) -> str:
        return f"LoadMasterError(code={self.code!r}, message={self.message!r})"


class TransportError(Exception):
    """The HTTP exchange itself failed (reset, truncated body, timeout)."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.message = message
        self.cause = cause
        super().__init__(message)
