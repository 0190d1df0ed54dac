from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from .db import Settings, Subscription, get_settings
from .errors import GameNotFound
from .events import EventStore
from .game import HostController, create_game
from .player import PlayerSession, join_game
from .utils import normalize_game_id

logger = logging.getLogger(__name__)


class GameRegistry:
    """Live host controllers and player sessions served by this process."""

    def __init__(self, store: Any, events: EventStore, settings: Optional[Settings] = None):
        self.store = store
        self.events = events
        self.settings = settings or get_settings()
        self.hosts: Dict[str, HostController] = {}
        self.players: Dict[Tuple[str, str], PlayerSession] = {}
        self._feeds: Dict[str, Subscription] = {}

    async def create(self, host_name: str, game_id: Optional[str] = None) -> HostController:
        game_id = await create_game(self.store, host_name, game_id)
        host = HostController(self.store, game_id, settings=self.settings)
        await host.attach()
        self.hosts[game_id] = host

        await self.events.reset(game_id)
        self._feeds[game_id] = await self.store.subscribe(game_id, self._feed(game_id))
        return host

    def host(self, game_id: str) -> HostController:
        host = self.hosts.get(normalize_game_id(game_id))
        if host is None or host.closed:
            raise GameNotFound(game_id)
        return host

    async def join(self, game_id: str, name: str) -> PlayerSession:
        game_id = normalize_game_id(game_id)
        session = await join_game(self.store, game_id, name)
        self.players[(game_id, session.player_id)] = session
        return session

    def player(self, game_id: str, player_id: str) -> PlayerSession:
        session = self.players.get((normalize_game_id(game_id), player_id))
        if session is None or session.not_found:
            raise GameNotFound(game_id)
        return session

    async def leave(self, game_id: str, player_id: str) -> None:
        session = self.player(game_id, player_id)
        await session.leave_game()
        del self.players[(session.game_id, player_id)]

    async def teardown(self, game_id: str) -> None:
        host = self.host(game_id)
        game_id = host.game_id
        await host.teardown_game()
        del self.hosts[game_id]

        feed = self._feeds.pop(game_id, None)
        if feed is not None:
            await self.store.unsubscribe(feed)
        for key in [k for k in self.players if k[0] == game_id]:
            await self.players.pop(key).close()
        await self.events.close(game_id)

    async def record(self, game_id: str) -> dict:
        record = await self.store.get(normalize_game_id(game_id))
        if record is None:
            raise GameNotFound(game_id)
        return record

    async def list_events(self, game_id: str, after: Optional[int] = None, limit: int = 200) -> List[dict]:
        return await self.events.list(normalize_game_id(game_id), after=after, limit=limit)

    def _feed(self, game_id: str):
        async def publish(record: Optional[dict]) -> None:
            if record is not None:
                await self.events.append(game_id, {"type": "game_update", "game": record})

        return publish
