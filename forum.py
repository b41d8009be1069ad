import logging
from typing import Awaitable, Callable, List, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from boards import BoardView
from config import LISTING_LIMIT
from exceptions import ErrorKind, Result, StorageUnavailable
from models import (ModerationRequest, NewReply, NewThread, PublicThread,
                    ReplyCreated, ThreadCreated)
from moderation import ModerationGuard, Outcome
from security import SecurityManager
from threads import ThreadStore

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

SUCCESS = "success"
REPORTED = "reported"


def thread_location(board: str, thread_id: str) -> str:
    return f"/b/{board}/{thread_id}"


def reply_location(board: str, thread_id: str, reply_id: str) -> str:
    return f"{thread_location(board, thread_id)}?new_reply_id={reply_id}"


def _validate(model: type[M], **fields) -> M | Result:
    try:
        return model(**fields)
    except ValidationError as e:
        errors = [{"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                  for err in e.errors()]
        return Result.fail(ErrorKind.VALIDATION, "Invalid or missing fields", errors)


async def _guarded(operation: str, call: Callable[[], Awaitable[Result[T]]]) -> Result[T]:
    try:
        return await call()
    except StorageUnavailable as e:
        logger.error("%s failed: storage unavailable (%s)", operation, e)
        return Result.fail(ErrorKind.STORAGE_UNAVAILABLE, "Storage unavailable")


class ThreadService:
    """
    The board's user-facing operations.

    Every operation returns a Result; expected failures (bad input, missing
    thread or reply, wrong secret, storage outage) are values, not exceptions.
    Nothing is retried here: creating a thread or reply twice posts it twice.
    """

    def __init__(self, store: ThreadStore, security_manager: Optional[SecurityManager] = None,
                 board_view: Optional[BoardView] = None, listing_limit: int = LISTING_LIMIT):
        self.store = store
        self.security = security_manager or SecurityManager()
        self.view = board_view or BoardView()
        self.guard = ModerationGuard(store, self.security)
        self.listing_limit = listing_limit

    async def start(self) -> None:
        await self.store.initialize()

    async def stop(self) -> None:
        await self.store.close()

    async def _reply_missing(self, thread_id: str) -> Result:
        # Tells a missing parent thread apart from a missing reply.
        if await self.store.get_thread(thread_id) is None:
            return Result.fail(ErrorKind.NOT_FOUND, "Thread not found")
        return Result.fail(ErrorKind.NOT_FOUND, "Reply not found")

    async def create_thread(self, board: str, text: str, secret: str) -> Result[ThreadCreated]:
        request = _validate(NewThread, board=board, text=text, secret=secret)
        if isinstance(request, Result):
            return request

        async def run() -> Result[ThreadCreated]:
            secret_hash = await self.security.hash_secret_async(request.secret)
            thread = await self.store.create_thread(request.board, request.text, secret_hash)
            logger.info("Created thread %s on /%s/", thread.thread_id, thread.board)
            return Result.success(ThreadCreated(
                thread_id=thread.thread_id,
                board=thread.board,
                location=thread_location(thread.board, thread.thread_id),
            ))

        return await _guarded("create_thread", run)

    async def create_reply(self, thread_id: str, text: str, secret: str,
                           board: Optional[str] = None) -> Result[ReplyCreated]:
        request = _validate(NewReply, thread_id=thread_id, text=text, secret=secret)
        if isinstance(request, Result):
            return request

        async def run() -> Result[ReplyCreated]:
            secret_hash = await self.security.hash_secret_async(request.secret)
            reply = await self.store.append_reply(request.thread_id, request.text, secret_hash)
            if reply is None:
                return Result.fail(ErrorKind.NOT_FOUND, "Thread not found")
            logger.info("Created reply %s in thread %s", reply.reply_id, request.thread_id)
            return Result.success(ReplyCreated(
                thread_id=request.thread_id,
                reply_id=reply.reply_id,
                board=board,
                location=reply_location(board, request.thread_id, reply.reply_id) if board else None,
            ))

        return await _guarded("create_reply", run)

    async def list_board(self, board: str) -> Result[List[PublicThread]]:
        async def run() -> Result[List[PublicThread]]:
            threads = await self.store.list_recent_by_board(board, self.listing_limit)
            return Result.success(self.view.project_listing(threads))

        return await _guarded("list_board", run)

    async def view_thread(self, thread_id: str) -> Result[PublicThread]:
        async def run() -> Result[PublicThread]:
            thread = self.view.project_full(await self.store.get_thread(thread_id))
            if thread is None:
                return Result.fail(ErrorKind.NOT_FOUND, "Thread not found")
            return Result.success(thread)

        return await _guarded("view_thread", run)

    async def delete_thread(self, thread_id: str, secret: str) -> Result[str]:
        request = _validate(ModerationRequest, thread_id=thread_id, secret=secret)
        if isinstance(request, Result):
            return request

        async def run() -> Result[str]:
            outcome = await self.guard.check_thread(request.thread_id, request.secret)
            if outcome is Outcome.NOT_FOUND:
                return Result.fail(ErrorKind.NOT_FOUND, "Thread not found")
            if outcome is Outcome.FORBIDDEN:
                return Result.fail(ErrorKind.FORBIDDEN, "incorrect password")
            if not await self.store.delete_thread(request.thread_id):
                return Result.fail(ErrorKind.NOT_FOUND, "Thread not found")
            logger.info("Deleted thread %s", request.thread_id)
            return Result.success(SUCCESS)

        return await _guarded("delete_thread", run)

    async def delete_reply(self, thread_id: str, reply_id: str, secret: str) -> Result[str]:
        request = _validate(ModerationRequest, thread_id=thread_id, reply_id=reply_id, secret=secret)
        if isinstance(request, Result):
            return request

        async def run() -> Result[str]:
            outcome = await self.guard.check_reply(request.thread_id, request.reply_id, request.secret)
            if outcome is Outcome.NOT_FOUND:
                return await self._reply_missing(request.thread_id)
            if outcome is Outcome.FORBIDDEN:
                return Result.fail(ErrorKind.FORBIDDEN, "incorrect password")
            if not await self.store.tombstone_reply(request.thread_id, request.reply_id):
                return await self._reply_missing(request.thread_id)
            logger.info("Tombstoned reply %s in thread %s", request.reply_id, request.thread_id)
            return Result.success(SUCCESS)

        return await _guarded("delete_reply", run)

    async def report_thread(self, thread_id: str) -> Result[str]:
        async def run() -> Result[str]:
            if not await self.store.set_thread_reported(thread_id):
                return Result.fail(ErrorKind.NOT_FOUND, "Thread not found")
            logger.info("Thread %s reported", thread_id)
            return Result.success(REPORTED)

        return await _guarded("report_thread", run)

    async def report_reply(self, thread_id: str, reply_id: str) -> Result[str]:
        async def run() -> Result[str]:
            if not await self.store.set_reply_reported(thread_id, reply_id):
                return await self._reply_missing(thread_id)
            logger.info("Reply %s in thread %s reported", reply_id, thread_id)
            return Result.success(REPORTED)

        return await _guarded("report_reply", run)
