"""Shard controller types: configurations and the RPC arguments and replies.

A configuration assigns each shard to a replica group. Configuration 0 has
no groups and assigns every shard to group 0, the invalid group.
"""

from __future__ import annotations

import copy as _copy
from dataclasses import dataclass, field
from typing import Dict, List

NSHARDS = 10

OK = "OK"


def _empty_shards() -> List[int]:
    return [0] * NSHARDS


@dataclass
class Config:
    """A numbered assignment of shards to groups."""

    num: int = 0
    shards: List[int] = field(default_factory=_empty_shards)
    groups: Dict[int, List[str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.shards = list(self.shards)
        if len(self.shards) != NSHARDS:
            raise ValueError(f"a config needs exactly {NSHARDS} shards, got {len(self.shards)}")

    def copy(self) -> Config:
        """Return a deep copy that shares no mutable state with this one."""
        return Config(
            num=self.num,
            shards=list(self.shards),
            groups=_copy.deepcopy(self.groups),
        )


@dataclass
class JoinArgs:
    servers: Dict[int, List[str]] = field(default_factory=dict)


@dataclass
class JoinReply:
    wrong_leader: bool = False
    err: str = ""


@dataclass
class LeaveArgs:
    gids: List[int] = field(default_factory=list)


@dataclass
class LeaveReply:
    wrong_leader: bool = False
    err: str = ""


@dataclass
class MoveArgs:
    shard: int = 0
    gid: int = 0


@dataclass
class MoveReply:
    wrong_leader: bool = False
    err: str = ""


@dataclass
class QueryArgs:
    num: int = -1


@dataclass
class QueryReply:
    wrong_leader: bool = False
    err: str = ""
    config: Config = field(default_factory=Config)