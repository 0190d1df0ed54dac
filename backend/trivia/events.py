from __future__ import annotations

import asyncio
from typing import Any, Dict, List

from .utils import now_ts


class EventStore:
    """Sequenced per-game events so HTTP clients can poll for record changes."""

    def __init__(self, limit: int = 500, retention_sec: float = 300.0):
        self.limit = limit
        self.retention_sec = retention_sec
        self._events: Dict[str, List[dict[str, Any]]] = {}
        self._seq: Dict[str, int] = {}
        # game id -> when its ``game_deleted`` marker was written
        self._closed: Dict[str, float] = {}
        self._lock = asyncio.Lock()

    async def append(self, game_id: str, payload: dict[str, Any]) -> int:
        """Store a new event for a game and return its sequence number."""

        async with self._lock:
            now = now_ts()
            self._prune(now, keep=game_id)
            seq = self._seq.get(game_id, 0) + 1
            self._seq[game_id] = seq
            events = self._events.setdefault(game_id, [])
            events.append({"seq": seq, "timestamp": now, "payload": payload})
            # only the most recent events are kept; pollers that fall further
            # behind re-read the full record
            if len(events) > self.limit:
                del events[: len(events) - self.limit]
            return seq

    async def list(self, game_id: str, after: int | None = None, limit: int = 200) -> List[dict[str, Any]]:
        """Return events for a game that occur after the given sequence."""

        async with self._lock:
            events = self._events.get(game_id, [])
            if after is not None:
                events = [e for e in events if e["seq"] > after]
            return [dict(e) for e in events[:limit]]

    async def reset(self, game_id: str) -> None:
        """Clear stored events for a game and emit a reset marker.

        Sequence numbers keep increasing across resets so a poller holding an
        old ``after`` value still sees the marker.
        """

        async with self._lock:
            self._events.pop(game_id, None)
            self._closed.pop(game_id, None)
        await self.append(game_id, {"type": "game_reset"})

    async def close(self, game_id: str) -> int:
        """Emit the ``game_deleted`` marker; the history is dropped after ``retention_sec``."""

        seq = await self.append(game_id, {"type": "game_deleted"})
        async with self._lock:
            self._closed[game_id] = now_ts()
        return seq

    def _prune(self, now: float, keep: str) -> None:
        for game_id, closed_at in list(self._closed.items()):
            if game_id != keep and now - closed_at >= self.retention_sec:
                self._events.pop(game_id, None)
                self._seq.pop(game_id, None)
                del self._closed[game_id]
