"""A single Raft peer: leader election, log replication, persistence and snapshots."""

from __future__ import annotations

import bisect
import logging
import pickle
import queue
import random
import threading
import time
from typing import Any, List, Optional, Protocol, Sequence, Tuple

from .messages import (
    AppendEntriesArgs,
    AppendEntriesReply,
    ApplyMsg,
    InstallSnapshotArgs,
    InstallSnapshotReply,
    LogEntry,
    RequestVoteArgs,
    RequestVoteReply,
    State,
)
from .persister import Persister

HEARTBEAT_INTERVAL = 0.100
ELECTION_TIMEOUT = 0.850
ELECTION_JITTER = 0.150
_RETRY_PAUSE = 0.010

logger = logging.getLogger("raftshard.raft")


class PeerEnd(Protocol):
    """Something that delivers an RPC to a peer; returns ``None`` when it fails."""

    def call(self, method: str, args: Any) -> Any: ...


class Raft:
    """One peer of a Raft cluster."""

    def __init__(
        self,
        peers: Sequence[PeerEnd],
        me: int,
        persister: Persister,
        apply_queue: "queue.Queue[ApplyMsg]",
    ) -> None:
        self._lock = threading.Lock()
        self._apply_cond = threading.Condition(self._lock)
        self._dead = threading.Event()
        self.peers = list(peers)
        self.persister = persister
        self.me = me
        self.apply_queue = apply_queue

        self.current_term = 0
        self.voted_for = -1
        self.leader_id = -1
        self.state = State.FOLLOWER
        self.log: List[LogEntry] = []
        self.log_start_index = 0
        self.log_start_term = 0
        self.commit_index = 0
        self.last_applied = 0
        self.snapshot_data: bytes = b""
        self.next_index = [0] * len(self.peers)
        self.match_index = [0] * len(self.peers)

        self._read_persist(persister.read_raft_state())
        self._timer = time.monotonic()

        threading.Thread(target=self._ticker, daemon=True).start()
        threading.Thread(target=self._applier, daemon=True).start()

    # ------------------------------------------------------------ state

    def get_state(self) -> Tuple[int, bool]:
        """Return the current term and whether this peer believes it leads."""
        with self._lock:
            return self.current_term, self.state == State.LEADER

    def _last_log(self) -> Tuple[int, int]:
        if self.log:
            return self.log_start_index + len(self.log), self.log[-1].term
        return self.log_start_index, self.log_start_term

    def _persist(self) -> None:
        """Save persistent state; the caller holds the lock."""
        raftstate = pickle.dumps(
            (self.current_term, self.voted_for, list(self.log), self.log_start_index, self.log_start_term)
        )
        self.persister.save(raftstate, self.snapshot_data)

    def _read_persist(self, data: bytes) -> None:
        if not data:
            return
        try:
            term, voted_for, log, start_index, start_term = pickle.loads(data)
        except Exception:  # corrupt state: start fresh, as on decode failure
            return
        self.current_term = term
        self.voted_for = voted_for
        self.log = list(log)
        self.log_start_index = start_index
        self.log_start_term = start_term
        self.snapshot_data = self.persister.read_snapshot()

    def snapshot(self, index: int, snapshot: bytes) -> None:
        """Record a service snapshot covering the log through ``index`` and trim the log."""
        with self._lock:
            if index <= self.log_start_index:
                return
            self.snapshot_data = bytes(snapshot)
            self.log_start_term = self.log[index - self.log_start_index - 1].term
            self.log = self.log[index - self.log_start_index:]
            self.log_start_index = index
            self._persist()

    # ------------------------------------------------------------ RPC handlers

    def request_vote(self, args: RequestVoteArgs) -> RequestVoteReply:
        with self._lock:
            reply_term = self.current_term
            my_index, my_term = self._last_log()
            if args.term <= self.current_term:
                return RequestVoteReply(reply_term, False)
            self.current_term = args.term
            self.state = State.FOLLOWER
            if args.last_log_term < my_term or (
                args.last_log_term == my_term and args.last_log_index < my_index
            ):
                return RequestVoteReply(reply_term, False)
            self._timer = time.monotonic()
            self.voted_for = args.candidate_id
            self._persist()
            return RequestVoteReply(reply_term, True)

    def append_entries(self, args: AppendEntriesArgs) -> AppendEntriesReply:
        with self._lock:
            reply_term = self.current_term
            if args.term < self.current_term:
                return AppendEntriesReply(reply_term, False)
            self.current_term = args.term
            self.state = State.FOLLOWER
            self._timer = time.monotonic()
            self.leader_id = args.leader_id

            my_last, _ = self._last_log()
            start = self.log_start_index
            if args.prev_log_index < start or (
                args.prev_log_index != start
                and (
                    args.prev_log_index > my_last
                    or self.log[args.prev_log_index - start - 1].term != args.prev_log_term
                )
            ):
                return AppendEntriesReply(reply_term, False)

            if args.entries:
                self.log = self.log[: args.prev_log_index - start] + list(args.entries)
            if args.leader_commit > self.commit_index:
                self.commit_index = min(args.leader_commit, len(self.log) + start)
                self._apply_cond.notify_all()
            self._persist()
            return AppendEntriesReply(reply_term, True)

    def install_snapshot(self, args: InstallSnapshotArgs) -> InstallSnapshotReply:
        with self._lock:
            reply = InstallSnapshotReply(self.current_term)
            if args.term < self.current_term or args.last_included_index <= self.log_start_index:
                return reply
            self.snapshot_data = bytes(args.data)
            self.log = self.log[args.last_included_index - self.log_start_index:]
            self.log_start_index = args.last_included_index
            self.log_start_term = args.last_included_term
            self.commit_index = max(self.commit_index, self.log_start_index)
            self._apply_cond.notify_all()
            self._persist()
            return reply

    # ------------------------------------------------------------ sending

    def _send(self, server: int, method: str, args: Any) -> Any:
        try:
            return self.peers[server].call(method, args)
        except Exception:
            return None

    # ------------------------------------------------------------ election

    def _leader_election(self) -> None:
        """Run one election; entered with the lock held, which it releases."""
        self.state = State.CANDIDATE
        self.current_term += 1
        self.voted_for = self.me
        self._timer = time.monotonic()
        term = self.current_term
        last_index, last_term = self._last_log()
        self._lock.release()

        vote_args = RequestVoteArgs(term, self.me, last_term, last_index)
        mu = threading.Lock()
        cond = threading.Condition(mu)
        tally = {"votes": 1, "finished": 1}
        npeers = len(self.peers)

        def ask(server: int) -> None:
            reply = self._send(server, "request_vote", vote_args)
            if reply is None:
                self._continue_request_vote(server, vote_args)
                return
            with cond:
                if reply.term > term:
                    with self._lock:
                        if reply.term > self.current_term:
                            self.current_term = reply.term
                            self.state = State.FOLLOWER
                elif reply.vote_granted:
                    tally["votes"] += 1
                tally["finished"] += 1
                cond.notify_all()

        for server in range(npeers):
            if server != self.me:
                threading.Thread(target=ask, args=(server,), daemon=True).start()

        with cond:
            while (
                not self.killed()
                and self.state == State.CANDIDATE
                and self.current_term == term
                and tally["votes"] <= npeers // 2
                and tally["finished"] < npeers
            ):
                cond.wait(0.05)
            votes = tally["votes"]

        with self._lock:
            if self.state == State.CANDIDATE and self.current_term == term and votes > npeers // 2:
                self.state = State.LEADER
                self.leader_id = self.me
                for i in range(npeers):
                    self.next_index[i] = len(self.log) + 1 + self.log_start_index
                    self.match_index[i] = self.log_start_index
                threading.Thread(target=self._heartbeat, daemon=True).start()
                logger.debug("%d becomes leader at term %d", self.me, term)
            self._persist()

    def _continue_request_vote(self, server: int, args: RequestVoteArgs) -> None:
        while not self.killed():
            if self._send(server, "request_vote", args) is not None:
                return
            time.sleep(_RETRY_PAUSE)

    # ------------------------------------------------------------ replication

    def _heartbeat(self) -> None:
        while not self.killed():
            with self._lock:
                if self.state != State.LEADER:
                    return
                npeers = len(self.peers)
                append_index = len(self.log) + self.log_start_index
                term = self.current_term
                commit_index = self.commit_index
                start_index = self.log_start_index
                start_term = self.log_start_term
                snapshot = self.snapshot_data
                batches: List[List[LogEntry]] = [[] for _ in range(npeers)]
                prev_index = [0] * npeers
                prev_term = [0] * npeers
                for i in range(npeers):
                    if i != self.me and self.next_index[i] > start_index:
                        nxt = self.next_index[i]
                        batches[i] = self.log[nxt - start_index - 1: append_index - start_index]
                        prev_index[i] = nxt - 1
                        if prev_index[i] == 0:
                            prev_term[i] = 0
                        elif prev_index[i] <= start_index:
                            prev_term[i] = start_term
                        else:
                            prev_term[i] = self.log[prev_index[i] - 1 - start_index].term
                need_install = [self.next_index[i] <= start_index for i in range(npeers)]
                tail_is_current = (
                    append_index > commit_index
                    and append_index > start_index
                    and self.log[append_index - start_index - 1].term == term
                )

            cond = threading.Condition(threading.Lock())
            tally = {"success": 1, "finished": 1}

            def send_one(server: int) -> None:
                if need_install[server]:
                    args = InstallSnapshotArgs(term, self.me, start_index, start_term, snapshot, True)
                    reply = self._send(server, "install_snapshot", args)
                    if reply is None:
                        return
                    with self._lock:
                        if term != self.current_term:
                            return
                        if reply.term > term:
                            self.current_term = reply.term
                            self.state = State.FOLLOWER
                            self._persist()
                        else:
                            self.next_index[server] = start_index + 1
                    return
                args = AppendEntriesArgs(
                    term, self.me, prev_index[server], prev_term[server], batches[server], commit_index
                )
                reply = self._send(server, "append_entries", args)
                if reply is None:
                    return
                with cond, self._lock:
                    if term != self.current_term:
                        return
                    if reply.term > term:
                        self.current_term = reply.term
                        self.state = State.FOLLOWER
                        self._persist()
                    elif reply.success:
                        self.match_index[server] = append_index
                        self.next_index[server] = append_index + 1
                        tally["success"] += 1
                    else:
                        self.next_index[server] = self._search_first_log_index(prev_index[server])
                    tally["finished"] += 1
                    cond.notify_all()

            for server in range(npeers):
                if server != self.me:
                    threading.Thread(target=send_one, args=(server,), daemon=True).start()

            if tail_is_current:
                def wait_commit() -> None:
                    with cond:
                        while (
                            not self.killed()
                            and self.state == State.LEADER
                            and tally["success"] <= npeers // 2
                            and tally["finished"] < npeers
                        ):
                            cond.wait(0.05)
                        won = tally["success"] > npeers // 2
                    if won:
                        with self._lock:
                            if append_index > self.commit_index:
                                self.commit_index = append_index
                                self._apply_cond.notify_all()

                threading.Thread(target=wait_commit, daemon=True).start()

            time.sleep(HEARTBEAT_INTERVAL)

    def _search_first_log_index(self, index: int) -> int:
        """Return the first log index whose term equals that of ``index``; lock held."""
        if index == 0 or index > len(self.log) + self.log_start_index:
            return 1
        if index <= self.log_start_index:
            return self.log_start_index
        term = self.log[index - self.log_start_index - 1].term
        left = bisect.bisect_left(
            self.log, term, 0, index - self.log_start_index, key=lambda entry: entry.term
        )
        return left + self.log_start_index + 1

    # ------------------------------------------------------------ client

    def start(self, command: Any) -> Tuple[int, int, bool]:
        """Propose ``command``; return (index, term, is_leader)."""
        with self._lock:
            index = len(self.log) + 1 + self.log_start_index
            term = self.current_term
            is_leader = self.state == State.LEADER
            if is_leader and not self.killed():
                self.log.append(LogEntry(command, term))
                self._persist()
            return index, term, is_leader

    # ------------------------------------------------------------ applying

    def _applier(self) -> None:
        while not self.killed():
            with self._apply_cond:
                while self.commit_index <= self.last_applied and not self.killed():
                    self._apply_cond.wait(0.05)
                if self.killed():
                    return
                if self.last_applied < self.log_start_index:
                    self.last_applied = self.log_start_index
                    msg = ApplyMsg(
                        snapshot_valid=True,
                        snapshot=self.snapshot_data,
                        snapshot_term=self.log_start_term,
                        snapshot_index=self.log_start_index,
                    )
                else:
                    self.last_applied += 1
                    entry = self.log[self.last_applied - 1 - self.log_start_index]
                    msg = ApplyMsg(command_valid=True, command=entry.command, command_index=self.last_applied)
            self.apply_queue.put(msg)

    # ------------------------------------------------------------ lifecycle

    def kill(self) -> None:
        """Stop this peer's background work."""
        self._dead.set()

    def killed(self) -> bool:
        return self._dead.is_set()

    def _ticker(self) -> None:
        while not self.killed():
            stamp = self._timer
            time.sleep(ELECTION_TIMEOUT + random.random() * ELECTION_JITTER)
            if self.killed():
                return
            self._lock.acquire()
            if stamp == self._timer and self.state != State.LEADER:
                threading.Thread(target=self._leader_election, daemon=True).start()
                # ownership of the lock passes to the election thread
            else:
                self._lock.release()


__all__: Optional[list] = ["Raft"]