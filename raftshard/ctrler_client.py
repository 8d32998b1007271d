"""Client for the shard controller service."""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from .ctrler_common import (
    Config,
    JoinArgs,
    LeaveArgs,
    MoveArgs,
    QueryArgs,
)

QUERY = "ShardCtrler.Query"
JOIN = "ShardCtrler.Join"
LEAVE = "ShardCtrler.Leave"
MOVE = "ShardCtrler.Move"


class ServerEnd(Protocol):
    """Delivers an RPC to one server; returns the reply, or ``None`` on failure."""

    def call(self, method: str, args: Any) -> Any: ...


class Clerk:
    """Talks to the shard controller replicas, retrying until one leader answers."""

    def __init__(self, servers: Sequence[ServerEnd], retry_delay: float = 0.1) -> None:
        self.servers = list(servers)
        self.retry_delay = retry_delay

    def _until_accepted(self, method: str, args: Any) -> Any:
        """Try every server in turn, forever, until one that leads replies."""
        while True:
            for srv in self.servers:
                reply = srv.call(method, args)
                if reply is not None and not reply.wrong_leader:
                    return reply
            time.sleep(self.retry_delay)

    def query(self, num: int) -> Config:
        """Fetch configuration ``num``, or the latest one when ``num`` is -1."""
        return self._until_accepted(QUERY, QueryArgs(num=num)).config

    def join(self, servers: Dict[int, List[str]]) -> None:
        """Add the given groups (gid -> server names)."""
        self._until_accepted(JOIN, JoinArgs(servers=servers))

    def leave(self, gids: List[int]) -> None:
        """Remove the given groups."""
        self._until_accepted(LEAVE, LeaveArgs(gids=list(gids)))

    def move(self, shard: int, gid: int) -> None:
        """Hand ``shard`` to group ``gid``."""
        self._until_accepted(MOVE, MoveArgs(shard=shard, gid=gid))