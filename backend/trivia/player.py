from __future__ import annotations

import logging
import time
from typing import Any, Callable, List, Optional

from .db import Subscription
from .errors import GameAlreadyStarted, GameNotFound
from .models import Answer, Game, Phase, Player
from .utils import new_player_id, now_ts, rank_of, sort_leaderboard

logger = logging.getLogger(__name__)


async def join_game(
    store: Any,
    game_id: str,
    name: str,
    *,
    clock: Callable[[], float] = time.monotonic,
) -> "PlayerSession":
    name = name.strip()
    if not name:
        raise ValueError("Please enter your name")

    record = await store.get(game_id)
    if record is None:
        raise GameNotFound(game_id)
    if Game.from_record(game_id, record).status != "waiting":
        raise GameAlreadyStarted(game_id)

    player = Player(id=new_player_id(), name=name, joined_at=now_ts())
    if not await store.write(game_id, {f"players/{player.id}": player.to_wire()}):
        raise GameNotFound(game_id)
    logger.info("Player %r joined game %s as %s", name, game_id, player.id)

    session = PlayerSession(store, game_id, player.id, clock=clock)
    await session.connect()
    return session


class PlayerSession:
    """A player's view of one game and the only path for their answers.

    The session never touches phase, scores or other players: the single
    field it writes is its own ``players/<id>/answer``.
    """

    def __init__(
        self,
        store: Any,
        game_id: str,
        player_id: str,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.game_id = game_id
        self.player_id = player_id
        self.clock = clock

        self.game: Optional[Game] = None
        self.not_found = False
        self.last_answer: Optional[Answer] = None

        self._question_index = -1
        self._question_started_at: Optional[float] = None
        self._answered_index: Optional[int] = None
        self._subscription: Optional[Subscription] = None

    async def connect(self) -> None:
        record = await self.store.get(self.game_id)
        if record is None:
            raise GameNotFound(self.game_id)
        self._observe(record)
        self._subscription = await self.store.subscribe(self.game_id, self._on_update)

    async def close(self) -> None:
        if self._subscription is not None:
            await self.store.unsubscribe(self._subscription)
            self._subscription = None

    @property
    def player(self) -> Optional[Player]:
        return self.game.players.get(self.player_id) if self.game else None

    @property
    def score(self) -> int:
        player = self.player
        return player.score if player else 0

    @property
    def rank(self) -> int:
        return rank_of(self.leaderboard(), self.player_id)

    def leaderboard(self) -> List[Player]:
        return sort_leaderboard(self.game.players.values()) if self.game else []

    @property
    def has_answered(self) -> bool:
        game, player = self.game, self.player
        if game is None or player is None:
            return False
        return (
            self._answered_index == game.current_question_index
            or game.live_answer(player) is not None
        )

    async def submit_answer(self, option_index: int) -> bool:
        """Answer the active question. Returns False when the answer is ignored."""
        game = self.game
        if game is None or game.phase != Phase.QUESTION:
            logger.debug("Player %s: answer outside question phase ignored", self.player_id)
            return False

        player = self.player
        question = game.current_question
        if player is None or question is None:
            logger.debug("Player %s: unknown player or question", self.player_id)
            return False
        if self.has_answered:
            logger.debug(
                "Player %s: duplicate answer for question %d ignored",
                self.player_id,
                game.current_question_index,
            )
            return False
        if not 0 <= option_index < len(question.options):
            return False

        index = game.current_question_index
        started_at = self._question_started_at if self._question_started_at is not None else self.clock()
        answer = Answer(
            question_index=index,
            option=option_index,
            time=max(0, round((self.clock() - started_at) * 1000)),
            is_correct=option_index == question.correct_answer,
            submitted_at=now_ts(),
        )
        self._answered_index = index
        self.last_answer = answer
        await self.store.write(self.game_id, {f"players/{self.player_id}/answer": answer.to_wire()})
        return True

    async def leave_game(self) -> None:
        await self.close()
        await self.store.remove(self.game_id, f"players/{self.player_id}")
        logger.info("Player %s left game %s", self.player_id, self.game_id)

    async def _on_update(self, record: Optional[dict]) -> None:
        if record is None:
            if not self.not_found:
                logger.info("Game %s is gone, player %s stops", self.game_id, self.player_id)
            self.not_found = True
            self.game = None
            return
        self._observe(record)

    def _observe(self, record: dict) -> None:
        game = Game.from_record(self.game_id, record)
        # the local start marker is taken the first time a question index is seen
        if game.phase == Phase.QUESTION and game.current_question_index != self._question_index:
            self._question_index = game.current_question_index
            self._question_started_at = self.clock()
            self.last_answer = None
        self.game = game
