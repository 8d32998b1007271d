import threading

from raftshard.persister import Persister


def test_new_persister_is_empty():
    p = Persister()
    assert p.read_raft_state() == b""
    assert p.read_snapshot() == b""
    assert p.raft_state_size() == 0
    assert p.snapshot_size() == 0


def test_save_and_read_round_trip():
    p = Persister()
    p.save(b"state-bytes", b"snap")
    assert p.read_raft_state() == b"state-bytes"
    assert p.read_snapshot() == b"snap"
    assert p.raft_state_size() == len(b"state-bytes")
    assert p.snapshot_size() == len(b"snap")


def test_save_none_stores_empty():
    p = Persister()
    p.save(b"abc", b"def")
    p.save(None, None)
    assert p.read_raft_state() == b""
    assert p.read_snapshot() == b""


def test_save_clones_mutable_input():
    p = Persister()
    buf = bytearray(b"hello")
    p.save(buf, buf)
    buf[0] = ord("j")
    assert p.read_raft_state() == b"hello"
    assert p.read_snapshot() == b"hello"


def test_copy_holds_same_content():
    p = Persister()
    p.save(b"state", b"snapshot")
    q = p.copy()
    assert q is not p
    assert q.read_raft_state() == p.read_raft_state()
    assert q.read_snapshot() == p.read_snapshot()


def test_copy_is_independent_of_later_saves():
    p = Persister()
    p.save(b"one", b"first")
    q = p.copy()
    p.save(b"two-longer", b"second")
    assert q.read_raft_state() == b"one"
    assert q.read_snapshot() == b"first"
    q.save(b"x", b"y")
    assert p.read_raft_state() == b"two-longer"


def test_concurrent_saves_keep_state_and_snapshot_paired():
    p = Persister()
    pairs = [(bytes([i]) * (i + 1), bytes([i]) * (2 * i + 1)) for i in range(20)]

    def worker(state, snap):
        for _ in range(50):
            p.save(state, snap)

    threads = [threading.Thread(target=worker, args=pair) for pair in pairs]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    state = p.read_raft_state()
    snap = p.read_snapshot()
    assert (state, snap) in pairs