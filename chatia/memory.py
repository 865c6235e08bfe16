"""Memory-context collaborators: caller id -> prior context text."""
from __future__ import annotations

from typing import Dict, Optional, Protocol
import threading


class MemoryProvider(Protocol):
    def context_for(self, caller_id: str) -> Optional[str]:
        ...


class NullMemory:
    """Default collaborator; there is never any prior context."""

    def context_for(self, caller_id: str) -> Optional[str]:
        return None


class StaticMemory:
    """In-process notes keyed by caller, for embedding and tests."""

    def __init__(self, notes: Dict[str, str] | None = None) -> None:
        self._notes = dict(notes or {})
        self._lock = threading.Lock()

    def remember(self, caller_id: str, text: str) -> None:
        with self._lock:
            self._notes[caller_id] = text

    def context_for(self, caller_id: str) -> Optional[str]:
        with self._lock:
            return self._notes.get(caller_id) or None


def build_memory(config) -> MemoryProvider:
    notes = config.memory.get("notes")
    if isinstance(notes, dict) and notes:
        return StaticMemory({str(k): str(v) for k, v in notes.items()})
    return NullMemory()
