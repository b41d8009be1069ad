import asyncio
import base64
import hashlib

import bcrypt

from config import BCRYPT_ROUNDS


class SecurityManager:
    def __init__(self, rounds: int = BCRYPT_ROUNDS):
        self.rounds = rounds

    @staticmethod
    def _prehash(secret: str) -> bytes:
        # bcrypt only reads 72 bytes; digest first so long secrets stay exact.
        digest = hashlib.sha256(secret.encode('utf-8')).digest()
        return base64.b64encode(digest)

    def hash_secret(self, secret: str) -> str:
        """Generate a salted bcrypt hash of a post secret"""
        secret_hash = bcrypt.hashpw(self._prehash(secret), bcrypt.gensalt(rounds=self.rounds))
        return secret_hash.decode('utf-8')

    def verify_secret(self, secret: str, hashed: str) -> bool:
        """Verify a secret against its stored hash in constant time"""
        try:
            return bcrypt.checkpw(self._prehash(secret), hashed.encode('utf-8'))
        except ValueError:
            # Malformed stored hash: treat as a mismatch, never as a match.
            return False

    async def hash_secret_async(self, secret: str) -> str:
        return await asyncio.to_thread(self.hash_secret, secret)

    async def verify_secret_async(self, secret: str, hashed: str) -> bool:
        return await asyncio.to_thread(self.verify_secret, secret, hashed)
