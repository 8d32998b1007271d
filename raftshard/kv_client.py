"""Client for the sharded key/value service.

The client asks the shard controller which group owns a key's shard, then
talks to that group, refreshing its configuration whenever it fails.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Sequence

from . import ctrler_client
from .ctrler_common import NSHARDS, Config
from .kv_common import Err, GetArgs, PutAppendArgs

GET = "ShardKV.Get"
PUT_APPEND = "ShardKV.PutAppend"


def key2shard(key: str) -> int:
    """Return the shard that holds ``key``: its first byte modulo the shard count."""
    data = key.encode("utf-8")
    shard = data[0] if data else 0
    return shard % NSHARDS


class Clerk:
    """Issues Get, Put and Append requests to the group that owns each key."""

    def __init__(
        self,
        ctrlers: Sequence[ctrler_client.ServerEnd],
        make_end: Callable[[str], Any],
        retry_delay: float = 0.1,
    ) -> None:
        self.sm = ctrler_client.Clerk(ctrlers, retry_delay)
        self.config = Config()
        self.make_end = make_end
        self.retry_delay = retry_delay

    def _refresh(self) -> None:
        time.sleep(self.retry_delay)
        self.config = self.sm.query(-1)

    def get(self, key: str) -> str:
        """Return the value of ``key``, or "" if it does not exist; retries forever."""
        args = GetArgs(key=key)
        while True:
            gid = self.config.shards[key2shard(key)]
            for name in self.config.groups.get(gid, []):
                reply = self.make_end(name).call(GET, args)
                if reply is None:
                    continue
                if reply.err in (Err.OK, Err.ERR_NO_KEY):
                    return reply.value
                if reply.err == Err.ERR_WRONG_GROUP:
                    break
            self._refresh()

    def put_append(self, key: str, value: str, op: str) -> None:
        """Apply a "Put" or "Append" of ``value`` to ``key``; retries forever."""
        args = PutAppendArgs(key=key, value=value, op=op)
        while True:
            gid = self.config.shards[key2shard(key)]
            for name in self.config.groups.get(gid, []):
                reply = self.make_end(name).call(PUT_APPEND, args)
                if reply is None:
                    continue
                if reply.err == Err.OK:
                    return
                if reply.err == Err.ERR_WRONG_GROUP:
                    break
            self._refresh()

    def put(self, key: str, value: str) -> None:
        self.put_append(key, value, "Put")

    def append(self, key: str, value: str) -> None:
        self.put_append(key, value, "Append")