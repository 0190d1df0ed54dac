from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Coroutine, Dict, List, Optional, Sequence, Union

from .db import Settings, Subscription, get_settings
from .errors import GameNotFound
from .models import Game, Phase, Player, Question
from .scoring import QuestionResult, score_question
from .utils import new_game_id, normalize_game_id, now_ts, sort_leaderboard

logger = logging.getLogger(__name__)


# Host-side phase variants. Only the host holds these; the shared record
# carries the matching ``Phase`` value.
@dataclass(frozen=True)
class Countdown:
    value: int
    phase = Phase.COUNTDOWN


@dataclass(frozen=True)
class Asking:
    index: int
    time_left: int
    phase = Phase.QUESTION


@dataclass(frozen=True)
class Revealing:
    index: int
    result: QuestionResult
    phase = Phase.RESULTS


@dataclass(frozen=True)
class Standings:
    index: int
    phase = Phase.LEADERBOARD


@dataclass(frozen=True)
class Finished:
    winner: Optional[Player]
    phase = Phase.FINISHED


HostState = Union[Countdown, Asking, Revealing, Standings, Finished]


async def create_game(store: Any, host_name: str, game_id: Optional[str] = None) -> str:
    """Create an empty lobby record and return its id."""
    if game_id is not None:
        game_id = normalize_game_id(game_id)
        if not game_id:
            raise ValueError("Game id cannot be empty")
        if await store.exists(game_id):
            raise ValueError(f"Game {game_id} already exists")
    else:
        game_id = new_game_id()
        while await store.exists(game_id):
            game_id = new_game_id()

    game = Game(id=game_id, host=host_name.strip(), created_at=now_ts())
    await store.replace(game_id, game.to_wire())
    logger.info("Created game %s for host %r", game_id, game.host)
    return game_id


class HostController:
    """Drives one game through its phases.

    The host is the only writer of phase, question index, time left and
    scores. Players write nothing but their own answer, so the two never
    race on a field.
    """

    def __init__(
        self,
        store: Any,
        game_id: str,
        settings: Optional[Settings] = None,
        on_finished: Optional[Callable[[Player], None]] = None,
    ):
        self.store = store
        self.game_id = game_id
        self.settings = settings or get_settings()
        self.on_finished = on_finished

        self.state: Optional[HostState] = None
        self.game: Optional[Game] = None
        self.questions: List[Question] = []
        self.results: Dict[int, QuestionResult] = {}
        self.closed = False

        # the host's own copy of every score it has written
        self._scores: Dict[str, int] = {}
        self._timer: Optional[asyncio.Task] = None
        self._subscription: Optional[Subscription] = None
        self._handlers = {
            Countdown: self._ignore_update,
            Asking: self._during_question,
            Revealing: self._ignore_update,
            Standings: self._ignore_update,
            Finished: self._ignore_update,
        }

    @property
    def phase(self) -> Optional[Phase]:
        return self.state.phase if self.state is not None else None

    @property
    def duration_ms(self) -> int:
        return self.settings.QUESTION_DURATION_SEC * 1000

    async def attach(self) -> Game:
        record = await self.store.get(self.game_id)
        if record is None:
            raise GameNotFound(self.game_id)
        self.game = Game.from_record(self.game_id, record)
        if self._subscription is None:
            self._subscription = await self.store.subscribe(self.game_id, self._on_update)
        return self.game

    async def start_game(self, questions: Sequence[Question]) -> None:
        if self.state is not None:
            raise ValueError("Game already started")
        if not questions:
            raise ValueError("Cannot start: need at least one question")

        self.state = Countdown(self.settings.COUNTDOWN_SEC)
        try:
            game = await self.attach()
        except GameNotFound:
            self.state = None
            raise

        self.questions = list(questions)
        self._scores = {pid: p.score for pid, p in game.players.items()}
        await self.store.write(
            self.game_id,
            {
                "questions": [q.to_wire() for q in self.questions],
                "status": "started",
                "phase": Phase.COUNTDOWN.value,
                "currentQuestionIndex": -1,
                "timeLeft": self.settings.QUESTION_DURATION_SEC,
            },
        )
        logger.info(
            "Game %s started with %d questions and %d players",
            self.game_id,
            len(self.questions),
            len(game.players),
        )
        self._timer = self._schedule(self._run_countdown())

    async def start_question(self, index: int) -> None:
        if index < 0:
            raise ValueError("Question index cannot be negative")
        self._cancel_timer()
        if index >= len(self.questions):
            await self.finish_game()
            return

        duration = self.settings.QUESTION_DURATION_SEC
        self.state = Asking(index, duration)
        patch: Dict[str, Any] = {
            "phase": Phase.QUESTION.value,
            "currentQuestionIndex": index,
            "timeLeft": duration,
        }
        for pid in self._known_player_ids():
            patch[f"players/{pid}/answer"] = None
        await self.store.write(self.game_id, patch)
        logger.info("Game %s: question %d/%d", self.game_id, index + 1, len(self.questions))

        # finish or teardown may have happened during the write
        if not self.closed and self._asking(index):
            self._timer = self._schedule(self._run_question_timer(index))

    async def show_results(self, index: int) -> Optional[QuestionResult]:
        """Score question ``index`` and move to results.

        Runs at most once per question: whichever of the timer and the
        "all answered" check gets here first wins, later calls are no-ops.
        """
        if not self._asking(index):
            logger.debug("Game %s: results for question %d already shown", self.game_id, index)
            return None
        # score what the store holds, not what the subscription has delivered so far
        await self.refresh()
        if not self._asking(index):
            return None

        players = list(self.game.players.values()) if self.game else []
        result = score_question(
            players, self.questions[index], index, duration_ms=self.duration_ms
        )
        self.state = Revealing(index, result)
        self.results[index] = result
        self._cancel_timer()

        patch: Dict[str, Any] = {"phase": Phase.RESULTS.value}
        for pid, points in result.awards.items():
            if points:
                total = self._scores.get(pid, self.game.players[pid].score) + points
                self._scores[pid] = total
                patch[f"players/{pid}/score"] = total
        await self.store.write(self.game_id, patch)
        logger.info(
            "Game %s: question %d scored, %d correct, fastest=%s",
            self.game_id,
            index,
            len(result.correct_player_ids),
            result.fastest_player_id,
        )
        return result

    async def advance_to_leaderboard(self) -> bool:
        state = self.state
        if not isinstance(state, Revealing):
            logger.debug("Game %s: leaderboard requested during %s", self.game_id, self.phase)
            return False
        self.state = Standings(state.index)
        await self.store.write(self.game_id, {"phase": Phase.LEADERBOARD.value})
        return True

    async def advance_to_next_question(self) -> bool:
        state = self.state
        if not isinstance(state, Standings):
            logger.debug("Game %s: next question requested during %s", self.game_id, self.phase)
            return False
        await self.start_question(state.index + 1)
        return True

    async def finish_game(self) -> bool:
        if self.state is None or isinstance(self.state, Finished):
            return False
        self._cancel_timer()

        ranking = sort_leaderboard(self._players_with_scores())
        winner = ranking[0] if ranking else None
        self.state = Finished(winner)
        await self.store.write(self.game_id, {"phase": Phase.FINISHED.value})
        logger.info("Game %s finished, winner=%s", self.game_id, winner.name if winner else None)

        if winner is not None and self.on_finished is not None:
            self.on_finished(winner)
        return True

    async def teardown_game(self) -> None:
        self._cancel_timer()
        await self._detach()
        await self.store.replace(self.game_id, None)
        self.closed = True
        logger.info("Game %s torn down", self.game_id)

    async def refresh(self) -> Optional[Game]:
        """Re-read the record from the store instead of waiting for the subscription."""
        record = await self.store.get(self.game_id)
        if record is not None:
            self.game = Game.from_record(self.game_id, record)
        return self.game

    def leaderboard(self) -> List[Player]:
        return sort_leaderboard(self._players_with_scores())

    def _asking(self, index: int) -> bool:
        return isinstance(self.state, Asking) and self.state.index == index

    async def _run_countdown(self) -> None:
        while isinstance(self.state, Countdown) and self.state.value > 0:
            await asyncio.sleep(self.settings.TICK_INTERVAL_SEC)
            if not isinstance(self.state, Countdown):
                return
            self.state = Countdown(self.state.value - 1)
        if isinstance(self.state, Countdown):
            await self.start_question(0)

    async def _run_question_timer(self, index: int) -> None:
        while True:
            await asyncio.sleep(self.settings.TICK_INTERVAL_SEC)
            if not await self._tick(index):
                return

    async def _tick(self, index: int) -> bool:
        """One second of question ``index``. Returns False once the timer is done."""
        state = self.state
        if not isinstance(state, Asking) or state.index != index:
            return False

        time_left = max(0, state.time_left - 1)
        self.state = replace(state, time_left=time_left)
        await self.store.write(self.game_id, {"timeLeft": time_left})
        if time_left == 0:
            await self.show_results(index)
            return False
        return True

    async def _on_update(self, record: Optional[dict]) -> None:
        if record is None:
            if not self.closed:
                logger.warning("Game %s record disappeared", self.game_id)
                self.closed = True
                self._cancel_timer()
            return

        self.game = Game.from_record(self.game_id, record)
        handler = self._handlers.get(type(self.state))
        if handler is not None:
            await handler(self.game)

    async def _during_question(self, game: Game) -> None:
        state = self.state
        if isinstance(state, Asking) and game.all_answered(state.index):
            await self.show_results(state.index)

    async def _ignore_update(self, game: Game) -> None:
        # answers landing outside the question phase are never scored
        return None

    def _known_player_ids(self) -> List[str]:
        return list(self.game.players) if self.game else []

    def _players_with_scores(self) -> List[Player]:
        if not self.game:
            return []
        return [
            p.model_copy(update={"score": self._scores.get(pid, p.score)})
            for pid, p in self.game.players.items()
        ]

    def _schedule(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.create_task(coro)
        task.add_done_callback(self._report_timer_failure)
        return task

    def _report_timer_failure(self, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error("Game %s timer failed", self.game_id, exc_info=task.exception())

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()

    async def _detach(self) -> None:
        if self._subscription is not None:
            await self.store.unsubscribe(self._subscription)
            self._subscription = None
