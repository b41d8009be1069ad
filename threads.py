from dataclasses import dataclass, field, replace
from typing import Callable, Optional, Protocol

from config import TOMBSTONE_TEXT
from replies import Reply
from utils import new_id, timestamp


@dataclass(slots=True)
class Thread:
    board: str
    text: str
    secret_hash: str
    thread_id: str = field(default_factory=new_id)
    created_on: float = field(default_factory=timestamp)
    bumped_on: float = 0.0
    reported: bool = False
    replies: list[Reply] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.bumped_on < self.created_on:
            self.bumped_on = self.created_on

    def find_reply(self, reply_id: str) -> Optional[Reply]:
        for reply in self.replies:
            if reply.reply_id == reply_id:
                return reply
        return None

    def __str__(self) -> str:
        reported_marker = " [REPORTED]" if self.reported else ""
        return f"Thread {self.thread_id} on /{self.board}/ ({len(self.replies)} replies){reported_marker}"


def snapshot(thread: Thread) -> Thread:
    """Detached copy of a thread, so callers never hold live store state."""
    return replace(thread, replies=[replace(reply) for reply in thread.replies])


def recency_key(thread: Thread) -> tuple[float, str]:
    return (-thread.bumped_on, thread.thread_id)


class ThreadStore(Protocol):
    """Atomic persistence primitives over threads and their owned replies."""

    async def initialize(self) -> None: ...

    async def close(self) -> None: ...

    async def create_thread(self, board: str, text: str, secret_hash: str) -> Thread: ...

    async def append_reply(self, thread_id: str, text: str, secret_hash: str) -> Optional[Reply]: ...

    async def set_thread_reported(self, thread_id: str) -> bool: ...

    async def set_reply_reported(self, thread_id: str, reply_id: str) -> bool: ...

    async def tombstone_reply(self, thread_id: str, reply_id: str) -> bool: ...

    async def delete_thread(self, thread_id: str) -> bool: ...

    async def list_recent_by_board(self, board: str, limit: int) -> list[Thread]: ...

    async def get_thread(self, thread_id: str) -> Optional[Thread]: ...

    async def get_reply(self, thread_id: str, reply_id: str) -> Optional[Reply]: ...

    async def count_threads(self) -> int: ...


class MemoryThreadStore:
    """
    Process-local thread store.

    None of the mutating methods await between reading and writing a thread,
    so each one runs to completion on the event loop and is atomic with respect
    to every other coroutine touching the same thread.
    """

    def __init__(self, clock: Callable[[], float] = timestamp) -> None:
        self.clock = clock
        self.threads: dict[str, Thread] = {}

    async def initialize(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def create_thread(self, board: str, text: str, secret_hash: str) -> Thread:
        now = self.clock()
        thread = Thread(board, text, secret_hash, created_on=now, bumped_on=now)
        self.threads[thread.thread_id] = thread
        return snapshot(thread)

    async def append_reply(self, thread_id: str, text: str, secret_hash: str) -> Optional[Reply]:
        thread = self.threads.get(thread_id)
        if thread is None:
            return None
        now = self.clock()
        reply = Reply(text, secret_hash, created_on=now)
        thread.replies.append(reply)
        thread.bumped_on = max(thread.bumped_on, now)
        return replace(reply)

    async def set_thread_reported(self, thread_id: str) -> bool:
        thread = self.threads.get(thread_id)
        if thread is None:
            return False
        thread.reported = True
        return True

    async def set_reply_reported(self, thread_id: str, reply_id: str) -> bool:
        reply = self._live_reply(thread_id, reply_id)
        if reply is None:
            return False
        reply.reported = True
        return True

    async def tombstone_reply(self, thread_id: str, reply_id: str) -> bool:
        reply = self._live_reply(thread_id, reply_id)
        if reply is None:
            return False
        reply.text = TOMBSTONE_TEXT
        return True

    async def delete_thread(self, thread_id: str) -> bool:
        return self.threads.pop(thread_id, None) is not None

    async def list_recent_by_board(self, board: str, limit: int) -> list[Thread]:
        on_board = [t for t in self.threads.values() if t.board == board]
        return [snapshot(t) for t in sorted(on_board, key=recency_key)[:max(limit, 0)]]

    async def get_thread(self, thread_id: str) -> Optional[Thread]:
        thread = self.threads.get(thread_id)
        return snapshot(thread) if thread else None

    async def get_reply(self, thread_id: str, reply_id: str) -> Optional[Reply]:
        reply = self._live_reply(thread_id, reply_id)
        return replace(reply) if reply else None

    async def count_threads(self) -> int:
        return len(self.threads)

    def _live_reply(self, thread_id: str, reply_id: str) -> Optional[Reply]:
        thread = self.threads.get(thread_id)
        if thread is None:
            return None
        return thread.find_reply(reply_id)
