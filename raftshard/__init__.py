"""Raft peer, in-memory persister, and shard controller and sharded key/value clients."""

__version__ = "0.1.0"