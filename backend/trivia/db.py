from __future__ import annotations

import asyncio
import copy
import inspect
import logging
from functools import lru_cache
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    ADMIN_KEY: str = "change-me"
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:8080"
    CORS_ORIGIN_REGEX: Optional[str] = None
    LOG_LEVEL: str = "INFO"

    COUNTDOWN_SEC: int = 3
    QUESTION_DURATION_SEC: int = 20
    TICK_INTERVAL_SEC: float = 1.0
    EVENT_LOG_LIMIT: int = 500
    EVENT_RETENTION_SEC: float = 300.0


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()


Record = Dict[str, Any]
Callback = Callable[[Optional[Record]], Union[Awaitable[None], None]]


def _split_path(path: str) -> List[str]:
    parts = path.strip("/").split("/")
    if not all(parts):
        raise ValueError(f"Invalid record path: {path!r}")
    return parts


class Subscription:
    """Ordered delivery of record snapshots to a single callback.

    Every subscriber drains its own queue, so one slow subscriber lags
    behind without holding up the others, and a callback always finishes
    before the next snapshot is handed to it.
    """

    def __init__(self, game_id: str, callback: Callback):
        self.game_id = game_id
        self.callback = callback
        self.pending = 0
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._deliver())

    def push(self, record: Optional[Record]) -> None:
        self.pending += 1
        self._queue.put_nowait(record)

    async def join(self) -> None:
        await self._queue.join()

    def cancel(self) -> None:
        self._closed = True
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()
        self._task = None

    async def _deliver(self) -> None:
        while not self._closed:
            record = await self._queue.get()
            try:
                result = self.callback(record)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Subscriber callback failed for game %s", self.game_id)
            finally:
                self.pending -= 1
                self._queue.task_done()


class InMemoryGameStore:
    """Shared game records with field-level merge and change notifications.

    Stands in for a realtime key-value database: ``write`` merges a patch
    whose keys are ``/`` separated paths, last write wins per field, and
    every committed change is fanned out to the game's subscribers in
    commit order. There is no compare-and-swap.
    """

    def __init__(self):
        self._records: Dict[str, Record] = {}
        self._subscribers: Dict[str, List[Subscription]] = {}
        self._lock = asyncio.Lock()

    async def get(self, game_id: str) -> Optional[Record]:
        async with self._lock:
            record = self._records.get(game_id)
            return copy.deepcopy(record) if record is not None else None

    async def exists(self, game_id: str) -> bool:
        async with self._lock:
            return game_id in self._records

    async def write(self, game_id: str, patch: Dict[str, Any]) -> bool:
        """Merge ``patch`` into the record. Returns False if the record is gone."""
        async with self._lock:
            record = self._records.get(game_id)
            if record is None:
                logger.warning("Dropping write to missing game %s: %s", game_id, sorted(patch))
                return False

            for path, value in patch.items():
                *parents, leaf = _split_path(path)
                node = record
                for key in parents:
                    node = node.get(key)
                    if not isinstance(node, dict):
                        break
                if not isinstance(node, dict):
                    # parent was removed (e.g. a player left); don't resurrect it
                    logger.debug("Dropping write to %s/%s: parent missing", game_id, path)
                    continue
                # None is kept as an explicit null
                node[leaf] = copy.deepcopy(value)

            self._publish(game_id, record)
            return True

    async def replace(self, game_id: str, value: Optional[Record]) -> None:
        async with self._lock:
            if value is None:
                self._records.pop(game_id, None)
            else:
                self._records[game_id] = copy.deepcopy(value)
            self._publish(game_id, self._records.get(game_id))

    async def remove(self, game_id: str, path: str) -> bool:
        async with self._lock:
            record = self._records.get(game_id)
            if record is None:
                return False

            *parents, leaf = _split_path(path)
            node: Any = record
            for key in parents:
                node = node.get(key) if isinstance(node, dict) else None
                if node is None:
                    return False
            if not isinstance(node, dict) or leaf not in node:
                return False

            del node[leaf]
            self._publish(game_id, record)
            return True

    async def subscribe(self, game_id: str, callback: Callback) -> Subscription:
        subscription = Subscription(game_id, callback)
        async with self._lock:
            self._subscribers.setdefault(game_id, []).append(subscription)
            # initial read
            record = self._records.get(game_id)
            subscription.push(copy.deepcopy(record) if record is not None else None)
            subscription.start()
        return subscription

    async def unsubscribe(self, subscription: Subscription) -> None:
        async with self._lock:
            subscribers = self._subscribers.get(subscription.game_id, [])
            if subscription in subscribers:
                subscribers.remove(subscription)
            if not subscribers:
                self._subscribers.pop(subscription.game_id, None)
        subscription.cancel()

    async def flush(self) -> None:
        """Wait until every queued notification has been delivered.

        Callbacks may write again, so keep draining until nothing is left.
        """
        while True:
            busy = [
                sub
                for subs in list(self._subscribers.values())
                for sub in list(subs)
                if sub.pending
            ]
            if not busy:
                return
            for sub in busy:
                await sub.join()

    def _publish(self, game_id: str, record: Optional[Record]) -> None:
        for subscription in self._subscribers.get(game_id, []):
            subscription.push(copy.deepcopy(record) if record is not None else None)


store: Any = InMemoryGameStore()
