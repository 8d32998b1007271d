from typing import Any, Dict, List, Optional

import pytest

from raftshard.ctrler_common import NSHARDS, Config, QueryReply
from raftshard.kv_client import GET, PUT_APPEND, Clerk, key2shard
from raftshard.kv_common import Err, GetReply, PutAppendReply


class FakeCtrler:
    """Hands out configurations in order, repeating the last."""

    def __init__(self, configs: List[Config]) -> None:
        self.configs = list(configs)
        self.queries = 0

    def call(self, method: str, args: Any) -> Any:
        self.queries += 1
        if len(self.configs) > 1:
            return QueryReply(config=self.configs.pop(0))
        return QueryReply(config=self.configs[0])


class FakeKV:
    """A tiny key/value server owning a set of shards."""

    def __init__(self, owned: set, store: Optional[Dict[str, str]] = None, leader: bool = True) -> None:
        self.owned = owned
        self.store = store if store is not None else {}
        self.leader = leader
        self.calls: List[tuple] = []

    def call(self, method: str, args: Any) -> Any:
        self.calls.append((method, args))
        if not self.leader:
            return GetReply(err=Err.ERR_WRONG_LEADER) if method == GET else PutAppendReply(err=Err.ERR_WRONG_LEADER)
        if key2shard(args.key) not in self.owned:
            return GetReply(err=Err.ERR_WRONG_GROUP) if method == GET else PutAppendReply(err=Err.ERR_WRONG_GROUP)
        if method == GET:
            if args.key in self.store:
                return GetReply(err=Err.OK, value=self.store[args.key])
            return GetReply(err=Err.ERR_NO_KEY)
        if args.op == "Put":
            self.store[args.key] = args.value
        else:
            self.store[args.key] = self.store.get(args.key, "") + args.value
        return PutAppendReply(err=Err.OK)


def one_group_config(num: int = 1) -> Config:
    return Config(num=num, shards=[100] * NSHARDS, groups={100: ["server-100-0", "server-100-1"]})


def make_clerk(ctrler: FakeCtrler, servers: Dict[str, Any]) -> Clerk:
    return Clerk([ctrler], lambda name: servers[name], retry_delay=0)


def test_key2shard_empty_key_is_shard_zero():
    assert key2shard("") == 0


def test_key2shard_digits_spread_over_all_shards():
    shards = {key2shard(str(i)) for i in range(10)}
    assert shards == set(range(NSHARDS))


def test_key2shard_depends_only_on_first_character():
    assert key2shard("abc") == key2shard("a")
    assert all(0 <= key2shard(k) < NSHARDS for k in ["x", "Z", "hello", "9zz"])


def test_put_then_get_roundtrip():
    kv = FakeKV(set(range(NSHARDS)))
    ck = make_clerk(FakeCtrler([one_group_config()]), {"server-100-0": kv, "server-100-1": kv})
    ck.put("1", "value")
    assert ck.get("1") == "value"


def test_append_extends_value():
    kv = FakeKV(set(range(NSHARDS)))
    ck = make_clerk(FakeCtrler([one_group_config()]), {"server-100-0": kv, "server-100-1": kv})
    ck.put("k", "ab")
    ck.append("k", "cd")
    assert ck.get("k") == "abcd"
    assert [args.op for method, args in kv.calls if method == PUT_APPEND] == ["Put", "Append"]


def test_get_missing_key_returns_empty_string():
    kv = FakeKV(set(range(NSHARDS)))
    ck = make_clerk(FakeCtrler([one_group_config()]), {"server-100-0": kv, "server-100-1": kv})
    assert ck.get("absent") == ""


def test_initial_config_triggers_query():
    ctrler = FakeCtrler([one_group_config()])
    kv = FakeKV(set(range(NSHARDS)), {"5": "v"})
    ck = make_clerk(ctrler, {"server-100-0": kv, "server-100-1": kv})
    assert ck.config.num == 0
    assert ck.get("5") == "v"
    assert ctrler.queries == 1
    assert ck.config.num == 1


def test_wrong_leader_moves_to_next_server():
    follower = FakeKV(set(range(NSHARDS)), leader=False)
    leader = FakeKV(set(range(NSHARDS)), {"7": "seven"})
    ck = make_clerk(FakeCtrler([one_group_config()]), {"server-100-0": follower, "server-100-1": leader})
    assert ck.get("7") == "seven"
    assert len(follower.calls) == 1


def test_wrong_group_refreshes_configuration():
    old_group = FakeKV(set())
    new_group = FakeKV(set(range(NSHARDS)), {"3": "moved"})
    first = Config(num=1, shards=[100] * NSHARDS, groups={100: ["old"]})
    second = Config(num=2, shards=[101] * NSHARDS, groups={101: ["new"]})
    ctrler = FakeCtrler([first, second])
    ck = make_clerk(ctrler, {"old": old_group, "new": new_group})
    assert ck.get("3") == "moved"
    assert ctrler.queries == 2
    assert ck.config.num == 2
    # wrong group stops trying the rest of the group after one server
    assert len(old_group.calls) == 1


@pytest.mark.parametrize("op", ["Put", "Append"])
def test_put_append_sends_op(op):
    kv = FakeKV(set(range(NSHARDS)))
    ck = make_clerk(FakeCtrler([one_group_config()]), {"server-100-0": kv, "server-100-1": kv})
    ck.put_append("key", "v", op)
    method, args = kv.calls[-1]
    assert method == PUT_APPEND
    assert (args.key, args.value, args.op) == ("key", "v", op)
    assert kv.store["key"] == "v"


def test_failed_calls_are_retried():
    class Flaky:
        def __init__(self, inner):
            self.inner = inner
            self.failures = 2

        def call(self, method, args):
            if self.failures:
                self.failures -= 1
                return None
            return self.inner.call(method, args)

    flaky = Flaky(FakeKV(set(range(NSHARDS)), {"2": "ok"}))
    config = Config(num=1, shards=[100] * NSHARDS, groups={100: ["only"]})
    ck = make_clerk(FakeCtrler([config]), {"only": flaky})
    assert ck.get("2") == "ok"
    assert flaky.failures == 0