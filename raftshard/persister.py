"""Holds the persistent state of a Raft peer: its serialized state and a snapshot."""

from __future__ import annotations

import threading
from typing import Optional


def _clone(data: Optional[bytes]) -> bytes:
    """Return an independent, immutable copy of ``data`` (``None`` becomes empty)."""
    if data is None:
        return b""
    return bytes(data)


class Persister:
    """Thread-safe store for Raft state and a service snapshot."""

    def __init__(self, raftstate: Optional[bytes] = None, snapshot: Optional[bytes] = None) -> None:
        self._lock = threading.Lock()
        self._raftstate = _clone(raftstate)
        self._snapshot = _clone(snapshot)

    def copy(self) -> Persister:
        """Return a new persister holding the same state and snapshot."""
        with self._lock:
            return Persister(self._raftstate, self._snapshot)

    def read_raft_state(self) -> bytes:
        """Return the saved Raft state."""
        with self._lock:
            return self._raftstate

    def raft_state_size(self) -> int:
        """Return the size in bytes of the saved Raft state."""
        with self._lock:
            return len(self._raftstate)

    def save(self, raftstate: Optional[bytes], snapshot: Optional[bytes]) -> None:
        """Save Raft state and snapshot together as one atomic action."""
        state = _clone(raftstate)
        snap = _clone(snapshot)
        with self._lock:
            self._raftstate = state
            self._snapshot = snap

    def read_snapshot(self) -> bytes:
        """Return the saved snapshot."""
        with self._lock:
            return self._snapshot

    def snapshot_size(self) -> int:
        """Return the size in bytes of the saved snapshot."""
        with self._lock:
            return len(self._snapshot)