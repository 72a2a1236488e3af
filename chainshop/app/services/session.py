"""
Session store - auth token and profile snapshot under the ``token`` and
``user`` keys of a pluggable key/value storage.
"""
import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Protocol

from pydantic import ValidationError
from redis.asyncio import Redis

from chainshop.app.core.constants import SESSION_TOKEN_KEY, SESSION_USER_KEY
from chainshop.app.core.exceptions import ServiceError
from chainshop.app.core.logging import get_logger
from chainshop.app.schemas import SessionUser

logger = get_logger(__name__)


class SessionInvalidError(ServiceError):
    def __init__(self, message: str = "Not logged in"):
        super().__init__(message, 401)


class SessionStorage(Protocol):
    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class MemorySessionStorage:
    def __init__(self):
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileSessionStorage:
    """All keys in one JSON object on disk; survives restarts."""

    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Session file unreadable, starting empty", path=str(self.path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self._read().get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    async def delete(self, key: str) -> None:
        async with self._lock:
            data = self._read()
            if data.pop(key, None) is not None:
                self._write(data)


class RedisSessionStorage:
    """Session keys in Redis under a common prefix."""

    def __init__(self, redis: Redis, prefix: str = "chainshop:session:"):
        self.redis = redis
        self.prefix = prefix

    @classmethod
    def from_settings(cls, host: str, port: int, db: int) -> "RedisSessionStorage":
        return cls(Redis(host=host, port=port, db=db, decode_responses=True))

    async def get(self, key: str) -> Optional[str]:
        return await self.redis.get(self.prefix + key)

    async def set(self, key: str, value: str) -> None:
        await self.redis.set(self.prefix + key, value)

    async def delete(self, key: str) -> None:
        await self.redis.delete(self.prefix + key)

    async def close(self) -> None:
        await self.redis.aclose()


@dataclass
class Session:
    token: str
    user: SessionUser


class SessionStore:
    def __init__(self, storage: SessionStorage):
        self.storage = storage

    async def start(self, token: str, user: dict) -> Session:
        """Persist a fresh login/signup. The user snapshot is marked logged in."""
        snapshot = {
            "email": user.get("email", ""),
            "name": user.get("fullname") or user.get("name", ""),
            "walletAddress": user.get("walletAddress") or user.get("wallet_address"),
            **user,
            "isLoggedIn": True,
        }
        session_user = SessionUser.model_validate(snapshot)
        await self.storage.set(SESSION_TOKEN_KEY, token)
        await self.storage.set(SESSION_USER_KEY, json.dumps(session_user.to_payload(), ensure_ascii=False))
        logger.info("Session started", email=session_user.email)
        return Session(token=token, user=session_user)

    async def end(self) -> None:
        await self.storage.delete(SESSION_TOKEN_KEY)
        await self.storage.delete(SESSION_USER_KEY)
        logger.info("Session ended")

    async def token(self) -> Optional[str]:
        return await self.storage.get(SESSION_TOKEN_KEY)

    async def current(self) -> Session:
        token = await self.storage.get(SESSION_TOKEN_KEY)
        raw_user = await self.storage.get(SESSION_USER_KEY)
        if not token or not raw_user:
            raise SessionInvalidError()

        try:
            user = SessionUser.model_validate(json.loads(raw_user))
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.warning("Corrupt session user, clearing session", error=str(e))
            await self.end()
            raise SessionInvalidError("Session data is corrupt")

        if not user.is_logged_in:
            await self.end()
            raise SessionInvalidError()
        return Session(token=token, user=user)

    async def is_authenticated(self) -> bool:
        try:
            await self.current()
        except SessionInvalidError:
            return False
        return True

    async def update_user(self, **changes) -> Session:
        """Merge profile changes into the stored snapshot."""
        session = await self.current()
        data = session.user.to_payload()
        data.update(SessionUser.model_validate(changes).model_dump(by_alias=True, exclude_unset=True))
        return await self.start(session.token, data)
