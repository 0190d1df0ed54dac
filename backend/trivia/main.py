import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from .db import settings, store
from .errors import GameAlreadyStarted, GameNotFound
from .events import EventStore
from .game import HostController
from .question_sets import PREDEFINED_QUESTION_SETS, get_question_set
from .registry import GameRegistry
from .schemas import (
    AnswerIn,
    CreateGameIn,
    CreateGameOut,
    HostActionIn,
    HostActionOut,
    JoinIn,
    LeaveIn,
    PlayerViewOut,
    ResultsOut,
    StandingOut,
    StartGameIn,
)
from .utils import standings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


def get_registry(request: Request) -> GameRegistry:
    return request.app.state.registry


def require_admin(request: Request, x_admin_key: Optional[str] = Header(default=None)):
    if x_admin_key != request.app.state.registry.settings.ADMIN_KEY:
        raise HTTPException(status_code=401, detail="Invalid admin key")


def _host(registry: GameRegistry, game_id: str) -> HostController:
    try:
        return registry.host(game_id)
    except GameNotFound as exc:
        raise HTTPException(404, "Game not found") from exc


def create_app(registry: Optional[GameRegistry] = None) -> FastAPI:
    app = FastAPI(title="Trivia Live API")
    app.state.registry = registry or GameRegistry(
        store, EventStore(limit=settings.EVENT_LOG_LIMIT, retention_sec=settings.EVENT_RETENTION_SEC), settings
    )

    cfg = app.state.registry.settings
    origins = [o.strip() for o in cfg.CORS_ORIGINS.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_origin_regex=cfg.CORS_ORIGIN_REGEX or None,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.post("/api/game", response_model=CreateGameOut)
    async def create_game(payload: CreateGameIn, registry: GameRegistry = Depends(get_registry)):
        if not payload.host_name.strip():
            raise HTTPException(status_code=400, detail="Please enter your name")
        try:
            host = await registry.create(payload.host_name, payload.game_id)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return CreateGameOut(game_id=host.game_id)

    @app.get("/api/game/{game_id}")
    async def get_game(game_id: str, registry: GameRegistry = Depends(get_registry)):
        try:
            return await registry.record(game_id)
        except GameNotFound as exc:
            raise HTTPException(404, "Game not found") from exc

    @app.get("/api/game/{game_id}/events")
    async def list_events(
        game_id: str,
        after: int | None = None,
        limit: int = 200,
        registry: GameRegistry = Depends(get_registry),
    ):
        events = await registry.list_events(game_id, after=after, limit=limit)
        latest_seq = events[-1]["seq"] if events else after
        return {"events": events, "latest_seq": latest_seq}

    @app.get("/api/game/{game_id}/standings", response_model=list[StandingOut])
    async def get_standings(game_id: str, registry: GameRegistry = Depends(get_registry)):
        host = _host(registry, game_id)
        await host.refresh()
        return standings(host.leaderboard())

    @app.get("/api/question-sets")
    async def list_question_sets():
        return [
            {"index": idx, "name": qs.name, "questions": [q.to_wire() for q in qs.questions]}
            for idx, qs in enumerate(PREDEFINED_QUESTION_SETS)
        ]

    @app.post("/api/join")
    async def join(payload: JoinIn, registry: GameRegistry = Depends(get_registry)):
        try:
            session = await registry.join(payload.game_id, payload.name)
        except GameNotFound as exc:
            raise HTTPException(status_code=404, detail="Game not found. Please check the Game ID.") from exc
        except GameAlreadyStarted as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"game_id": session.game_id, "player_id": session.player_id, "name": session.player.name}

    @app.post("/api/leave")
    async def leave(payload: LeaveIn, registry: GameRegistry = Depends(get_registry)):
        try:
            await registry.leave(payload.game_id, payload.player_id)
        except GameNotFound as exc:
            raise HTTPException(404, "Game not found") from exc
        return {"ok": True}

    @app.post("/api/answer")
    async def answer(payload: AnswerIn, registry: GameRegistry = Depends(get_registry)):
        try:
            session = registry.player(payload.game_id, payload.player_id)
        except GameNotFound as exc:
            raise HTTPException(404, "Game not found") from exc
        ok = await session.submit_answer(payload.option_index)
        return {"accepted": ok}

    @app.get("/api/game/{game_id}/player/{player_id}", response_model=PlayerViewOut)
    async def player_view(game_id: str, player_id: str, registry: GameRegistry = Depends(get_registry)):
        try:
            session = registry.player(game_id, player_id)
        except GameNotFound as exc:
            raise HTTPException(404, "Game not found") from exc
        game, player = session.game, session.player
        if game is None or player is None:
            raise HTTPException(404, "Player not found")
        return PlayerViewOut(
            player_id=player_id,
            name=player.name,
            phase=game.phase.value if game.phase else None,
            current_question_index=game.current_question_index,
            time_left=game.time_left,
            score=session.score,
            rank=session.rank,
            answered=session.has_answered,
            last_answer=session.last_answer,
        )

    @app.get("/api/admin/verify")
    async def verify(_: None = Depends(require_admin)):
        return {"ok": True}

    @app.post("/api/admin/start")
    async def start(
        payload: StartGameIn,
        registry: GameRegistry = Depends(get_registry),
        _: None = Depends(require_admin),
    ):
        host = _host(registry, payload.game_id)
        try:
            if payload.questions:
                questions = payload.questions
            elif payload.question_set is not None:
                questions = get_question_set(payload.question_set).questions
            else:
                raise ValueError("Cannot start: need custom questions or a question set")
            await host.start_game(questions)
        except GameNotFound as exc:
            raise HTTPException(404, "Game not found") from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"ok": True}

    @app.post("/api/admin/leaderboard", response_model=HostActionOut)
    async def show_leaderboard(
        payload: HostActionIn,
        registry: GameRegistry = Depends(get_registry),
        _: None = Depends(require_admin),
    ):
        host = _host(registry, payload.game_id)
        accepted = await host.advance_to_leaderboard()
        return HostActionOut(accepted=accepted, phase=host.phase.value if host.phase else None)

    @app.post("/api/admin/next", response_model=HostActionOut)
    async def next_question(
        payload: HostActionIn,
        registry: GameRegistry = Depends(get_registry),
        _: None = Depends(require_admin),
    ):
        host = _host(registry, payload.game_id)
        accepted = await host.advance_to_next_question()
        return HostActionOut(accepted=accepted, phase=host.phase.value if host.phase else None)

    @app.post("/api/admin/finish", response_model=HostActionOut)
    async def finish(
        payload: HostActionIn,
        registry: GameRegistry = Depends(get_registry),
        _: None = Depends(require_admin),
    ):
        host = _host(registry, payload.game_id)
        accepted = await host.finish_game()
        return HostActionOut(accepted=accepted, phase=host.phase.value if host.phase else None)

    @app.post("/api/admin/teardown")
    async def teardown(
        payload: HostActionIn,
        registry: GameRegistry = Depends(get_registry),
        _: None = Depends(require_admin),
    ):
        try:
            await registry.teardown(payload.game_id)
        except GameNotFound as exc:
            raise HTTPException(404, "Game not found") from exc
        return {"ok": True}

    @app.get("/api/admin/game/{game_id}/results", response_model=ResultsOut)
    async def results(
        game_id: str,
        registry: GameRegistry = Depends(get_registry),
        _: None = Depends(require_admin),
    ):
        host = _host(registry, game_id)
        index = getattr(host.state, "index", -1)
        return ResultsOut(result=host.results.get(index))

    return app


app = create_app()
