from typing import Iterable, Optional

from config import REPLY_PREVIEW_LIMIT
from models import PublicReply, PublicThread
from replies import Reply
from threads import Thread
from utils import as_datetime


def latest_replies(replies: list[Reply], limit: int = REPLY_PREVIEW_LIMIT) -> list[Reply]:
    """
    The `limit` most recently created replies, kept in their stored (chronological)
    order. Replies created at the same instant are ranked by their position in
    the thread, so the later-appended one counts as more recent.
    """
    if limit <= 0:
        return []
    ranked = sorted(enumerate(replies), key=lambda pair: (pair[1].created_on, pair[0]), reverse=True)
    kept = sorted(ranked[:limit], key=lambda pair: pair[0])
    return [reply for _, reply in kept]


def public_reply(reply: Reply) -> PublicReply:
    return PublicReply(id=reply.reply_id, text=reply.text, created_on=as_datetime(reply.created_on))


def public_thread(thread: Thread, replies: Iterable[Reply]) -> PublicThread:
    return PublicThread(
        id=thread.thread_id,
        text=thread.text,
        created_on=as_datetime(thread.created_on),
        bumped_on=as_datetime(thread.bumped_on),
        replies=[public_reply(reply) for reply in replies],
    )


class BoardView:
    """Read-side projections of stored threads; moderation-only fields never leave here."""

    def __init__(self, preview_limit: int = REPLY_PREVIEW_LIMIT) -> None:
        self.preview_limit = preview_limit

    def project_listing(self, threads: Iterable[Thread]) -> list[PublicThread]:
        return [public_thread(thread, latest_replies(thread.replies, self.preview_limit))
                for thread in threads]

    def project_full(self, thread: Optional[Thread]) -> Optional[PublicThread]:
        if thread is None:
            return None
        return public_thread(thread, thread.replies)
