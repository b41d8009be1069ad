"""
Secret-gated authorization for destructive moderation.

Deleting a thread or a reply requires the secret chosen when it was posted.
Reporting is deliberately not gated and never goes through this module.
"""

import logging
from enum import Enum

from security import SecurityManager
from threads import ThreadStore

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    AUTHORIZED = "authorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"


class ModerationGuard:
    def __init__(self, store: ThreadStore, security_manager: SecurityManager):
        self.store = store
        self.security = security_manager

    async def authorize(self, stored_secret: str, supplied_secret: str) -> Outcome:
        """Compare a supplied secret with a stored hash. Secrets are never logged."""
        if await self.security.verify_secret_async(supplied_secret, stored_secret):
            return Outcome.AUTHORIZED
        return Outcome.FORBIDDEN

    async def check_thread(self, thread_id: str, supplied_secret: str) -> Outcome:
        thread = await self.store.get_thread(thread_id)
        if thread is None:
            return Outcome.NOT_FOUND
        outcome = await self.authorize(thread.secret_hash, supplied_secret)
        if outcome is Outcome.FORBIDDEN:
            logger.warning("Rejected secret for thread %s", thread_id)
        return outcome

    async def check_reply(self, thread_id: str, reply_id: str, supplied_secret: str) -> Outcome:
        reply = await self.store.get_reply(thread_id, reply_id)
        if reply is None:
            return Outcome.NOT_FOUND
        outcome = await self.authorize(reply.secret_hash, supplied_secret)
        if outcome is Outcome.FORBIDDEN:
            logger.warning("Rejected secret for reply %s in thread %s", reply_id, thread_id)
        return outcome
