# raftshard

Building blocks for a replicated, sharded service:

- `raftshard.raft.Raft` is one peer of a Raft cluster. It runs leader election, log
  replication, persistence and log compaction through snapshots. It delivers committed
  entries and installed snapshots as `ApplyMsg` objects on a queue that you supply.
- `raftshard.persister.Persister` is thread-safe, in-memory stable storage. It saves the
  Raft state and a service snapshot together, in one step.
- `raftshard.messages` holds the data types that peers exchange: `LogEntry`, `ApplyMsg`,
  `State`, and the args and reply types for `RequestVote`, `AppendEntries` and
  `InstallSnapshot`. It also has `dprintf`, which logs only when the module-level `DEBUG`
  flag is set.
- `raftshard.ctrler_common` defines `Config` and the controller RPC args and reply types.
  A `Config` maps each of `NSHARDS` (10) shards to a group id, and each group id to its
  server names.
- `raftshard.ctrler_client.Clerk` is a client for a shard controller. It provides
  `query`, `join`, `leave` and `move`.
- `raftshard.kv_common` defines `Err` and the key/value RPC args and reply types.
- `raftshard.kv_client.Clerk` is a client for a sharded key/value service. It provides
  `get`, `put`, `append` and `put_append`. `key2shard(key)` gives the shard a key belongs
  to: the key's first byte modulo `NSHARDS`, or shard 0 for the empty key.

The package has no runtime dependencies.

## Endpoints

Every component talks to its peers through endpoints. An endpoint is any object with a
`call(method, args)` method that returns the reply object, or `None` when the request or
the reply was lost. Each component uses these method names:

| Caller | Method names |
| --- | --- |
| `Raft` | `"request_vote"`, `"append_entries"`, `"install_snapshot"` |
| `ctrler_client.Clerk` | `"ShardCtrler.Query"`, `"ShardCtrler.Join"`, `"ShardCtrler.Leave"`, `"ShardCtrler.Move"` |
| `kv_client.Clerk` | `"ShardKV.Get"`, `"ShardKV.PutAppend"` |

## A Raft peer

```python
import queue
from raftshard.persister import Persister
from raftshard.raft import Raft

apply_queue = queue.Queue()
rf = Raft(peers, 0, Persister(), apply_queue)

index, term, is_leader = rf.start("some command")
term, is_leader = rf.get_state()

msg = apply_queue.get()
if msg.command_valid:
    print(msg.command_index, msg.command)
elif msg.snapshot_valid:
    print("snapshot through", msg.snapshot_index)

rf.snapshot(msg.command_index, b"service state")   # trim the log through this index
rf.kill()
```

An incoming RPC goes to `request_vote`, `append_entries` or `install_snapshot`. Each one
takes the matching args object from `raftshard.messages` and returns the reply object.
When you restart a peer with a `Persister` that already holds state, it resumes from that
state.

## Shard controller client

```python
from raftshard.ctrler_client import Clerk

ck = Clerk(controller_endpoints)          # retry_delay=0.1 seconds by default
ck.join({1: ["x", "y", "z"]})
config = ck.query(-1)                     # -1 asks for the latest configuration
ck.move(0, 1)
ck.leave([1])
```

Each call tries every server in turn. It stops at the first reply that does not have
`wrong_leader` set, and otherwise sleeps for `retry_delay` and tries again, forever.

## Sharded key/value client

```python
from raftshard.kv_client import Clerk, key2shard

kv = Clerk(controller_endpoints, make_end)
kv.put("k", "v")
kv.append("k", "w")
value = kv.get("k")                       # "" when the key does not exist
```

`make_end(server_name)` turns a server name from `Config.groups` into an endpoint. The
clerk sends each request to the servers of the group that owns the key's shard. When no
server accepts it, the clerk sleeps, fetches the latest configuration from the
controller, and tries again.

## What this package does not do

- It has no shard controller server and no key/value server. The clerks only send
  requests to servers that you provide through endpoints.
- It has no network transport. You supply the endpoints that carry calls between peers.
- It stores state only in memory. `Persister` writes nothing to disk.
- It provides no command-line program.

## Running the tests

```
pip install .[test]
pytest
```