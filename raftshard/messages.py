"""Data carried between Raft peers and from Raft to the service above it."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, List, Optional

DEBUG = False

logger = logging.getLogger("raftshard")


def dprintf(fmt: str, *args: Any) -> None:
    """Log a %-style debug message when ``DEBUG`` is enabled."""
    if DEBUG:
        logger.debug(fmt, *args)


class State(IntEnum):
    """Role of a Raft peer."""

    FOLLOWER = 0
    CANDIDATE = 1
    LEADER = 2


@dataclass(frozen=True)
class LogEntry:
    """One entry of the replicated log."""

    command: Any
    term: int


@dataclass(frozen=True)
class ApplyMsg:
    """A committed command or an installed snapshot delivered to the service."""

    command_valid: bool = False
    command: Any = None
    command_index: int = 0
    snapshot_valid: bool = False
    snapshot: Optional[bytes] = None
    snapshot_term: int = 0
    snapshot_index: int = 0


@dataclass(frozen=True)
class RequestVoteArgs:
    term: int
    candidate_id: int
    last_log_term: int
    last_log_index: int


@dataclass(frozen=True)
class RequestVoteReply:
    term: int = 0
    vote_granted: bool = False


@dataclass(frozen=True)
class AppendEntriesArgs:
    term: int
    leader_id: int
    prev_log_index: int
    prev_log_term: int
    entries: List[LogEntry] = field(default_factory=list)
    leader_commit: int = 0


@dataclass(frozen=True)
class AppendEntriesReply:
    term: int = 0
    success: bool = False


@dataclass(frozen=True)
class InstallSnapshotArgs:
    term: int
    leader_id: int
    last_included_index: int
    last_included_term: int
    data: bytes = b""
    done: bool = True


@dataclass(frozen=True)
class InstallSnapshotReply:
    term: int = 0