"""Recorded state management."""

from .models import RecordedState, StateFile
from .manager import (
    StateManager,
    StateError,
    StateHostMismatchError,
    StateLockError,
    StateNotFoundError,
)

__all__ = [
    "RecordedState",
    "StateFile",
    "StateManager",
    "StateError",
    "StateHostMismatchError",
    "StateLockError",
    "StateNotFoundError",
]
