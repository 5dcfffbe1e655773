"""Persistence and locking for the recorded state file."""

import fcntl
import json
import os
import time
from pathlib import Path
from typing import Optional

from .models import RecordedState, StateFile


class StateError(Exception):
    """Base exception for state management errors."""

    pass


class StateLockError(StateError):
    """Another process holds the state lock."""

    pass


class StateNotFoundError(StateError):
    """The state file has not been written yet."""

    pass


class StateHostMismatchError(StateError):
    """The state file records resources of a different appliance."""

    pass


class StateManager:
    """Reads, writes and locks the recorded state of one project.

    Every ``put`` and ``remove`` is written through to disk, so a run that
    dies halfway leaves the records of the resources it already changed.
    """

    LOCK_POLL_INTERVAL = 0.1

    def __init__(self, state_path: str):
        self.state_path = Path(state_path)
        self._lock_fd: Optional[int] = None
        self._current_state: Optional[StateFile] = None

    @property
    def lock_path(self) -> Path:
        return self.state_path.with_suffix(".lock")

    def exists(self) -> bool:
        return self.state_path.exists()

    def load(self) -> StateFile:
        """
        Read the state file into memory.

        Raises:
            StateNotFoundError: The file does not exist
            StateError: The file is not JSON or does not describe a state
        """
        if not self.exists():
            raise StateNotFoundError(f"State file not found: {self.state_path}")

        raw = self.state_path.read_text(encoding="utf-8")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StateError(f"Failed to parse state file {self.state_path}: {e}") from e

        try:
            state = StateFile.from_dict(data)
        except ValueError as e:
            raise StateError(f"Failed to load state file {self.state_path}: {e}") from e

        self._current_state = state
        return state

    def save(self, state: StateFile) -> None:
        """
        Write ``state`` to disk, replacing the previous file atomically.

        Raises:
            StateError: The file could not be written
        """
        payload = json.dumps(state.to_dict(), indent=2, ensure_ascii=False)
        staging = self.state_path.with_suffix(".tmp")

        try:
            self.state_path.parent.mkdir(parents=True, exist_ok=True)
            staging.write_text(payload, encoding="utf-8")
            staging.replace(self.state_path)
        except OSError as e:
            raise StateError(f"Failed to save state file {self.state_path}: {e}") from e

        self._current_state = state

    def initialize(self, host: str) -> StateFile:
        """Write an empty state for ``host`` and make it current."""
        state = StateFile(host=host)
        self.save(state)
        return state

    def load_or_initialize(self, host: str) -> StateFile:
        """Load the state file, creating an empty one on first use.

        Raises:
            StateHostMismatchError: The existing file belongs to another appliance
        """
        if not self.exists():
            return self.initialize(host)

        state = self.load()
        self.check_host(host)
        return state

    def check_host(self, host: str) -> None:
        """Refuse to reconcile against an appliance the state was not recorded on.

        A state file without a host, or an empty ``host``, matches anything.
        """
        state = self.get_state()
        if host and state.host and state.host != host:
            raise StateHostMismatchError(
                f"State file {self.state_path} records resources of {state.host}, "
                f"not {host}"
            )

    def lock(self, timeout: float = 30) -> None:
        """
        Take the exclusive state lock, polling until ``timeout`` seconds pass.

        Raises:
            StateLockError: The lock is still held by someone else
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self.lock_path), os.O_CREAT | os.O_RDWR)
        deadline = time.monotonic() + timeout

        while not self._try_lock(fd):
            if time.monotonic() >= deadline:
                os.close(fd)
                raise StateLockError(
                    f"State file {self.state_path} is locked by another process "
                    f"(waited {timeout}s)"
                )
            time.sleep(self.LOCK_POLL_INTERVAL)

        self._lock_fd = fd

    @staticmethod
    def _try_lock(fd: int) -> bool:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return False
        return True

    def unlock(self) -> None:
        """Release the state lock if this manager holds it."""
        fd, self._lock_fd = self._lock_fd, None
        if fd is None:
            return
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def __enter__(self):
        self.lock()
        try:
            if self.exists():
                self.load()
        except StateError:
            self.unlock()
            raise
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.unlock()

    def get_state(self) -> StateFile:
        """
        The state loaded or saved last.

        Raises:
            StateError: Nothing has been loaded yet
        """
        if self._current_state is None:
            raise StateError("State not loaded. Call load() first.")
        return self._current_state

    def put(self, name: str, state: RecordedState) -> None:
        """Replace the record for ``name`` and persist immediately."""
        current = self.get_state()
        current.put(name, state)
        self.save(current)

    def remove(self, name: str) -> Optional[RecordedState]:
        """Drop the record for ``name`` and persist immediately."""
        current = self.get_state()
        removed = current.remove(name)
        self.save(current)
        return removed
