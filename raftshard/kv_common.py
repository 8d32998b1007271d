"""Sharded key/value service: error codes and RPC arguments and replies."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Err(str, Enum):
    """Outcome reported by a key/value server."""

    OK = "OK"
    ERR_NO_KEY = "ErrNoKey"
    ERR_WRONG_GROUP = "ErrWrongGroup"
    ERR_WRONG_LEADER = "ErrWrongLeader"


@dataclass
class PutAppendArgs:
    key: str
    value: str
    op: str  # "Put" or "Append"


@dataclass
class PutAppendReply:
    err: Optional[Err] = None


@dataclass
class GetArgs:
    key: str


@dataclass
class GetReply:
    err: Optional[Err] = None
    value: str = ""