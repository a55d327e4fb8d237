from __future__ import annotations

import dataclasses
import logging
import random
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from catan_sandbox import __version__
from catan_sandbox.engine.actions import dispatch
from catan_sandbox.engine.config import RuleConfig
from catan_sandbox.engine.errors import GameNotFoundError, IllegalActionError
from catan_sandbox.engine.game_state import MAX_PLAYERS, MIN_PLAYERS
from catan_sandbox.engine.legal import legal_actions
from catan_sandbox.engine.rules import GameEngine
from catan_sandbox.engine.serialization import build_snapshot, serialize_state
from catan_sandbox.service.autoplay import AutoPlayer, PriorityDecisionClient, RandomDecisionClient
from catan_sandbox.service.repository import GameRepository, InMemoryGameRepository

logger = logging.getLogger(__name__)


class CreateGameRequest(BaseModel):
    num_players: int = Field(4, ge=MIN_PLAYERS, le=MAX_PLAYERS)
    seed: Optional[int] = None
    player_names: Optional[List[str]] = None
    harbors: Optional[bool] = None
    auto_setup: Optional[bool] = None
    victory_points_to_win: Optional[int] = Field(None, ge=2)


class ActionRequest(BaseModel):
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class AutoTurnRequest(BaseModel):
    client: str = Field("priority", pattern="^(priority|random)$")
    seed: Optional[int] = None
    turns: int = Field(1, ge=1, le=50)


def _config_for(request: CreateGameRequest) -> RuleConfig:
    overrides = {
        name: value
        for name, value in (
            ("harbors", request.harbors),
            ("auto_setup", request.auto_setup),
            ("victory_points_to_win", request.victory_points_to_win),
        )
        if value is not None
    }
    return dataclasses.replace(RuleConfig.from_env(), **overrides)


def create_app(repository: GameRepository | None = None) -> FastAPI:
    repo = repository if repository is not None else InMemoryGameRepository()
    app = FastAPI(title="Catan Sandbox", version=__version__)
    app.state.repository = repo

    def not_found(exc: GameNotFoundError) -> HTTPException:
        return HTTPException(status_code=404, detail=str(exc))

    @app.get("/")
    def index() -> Dict[str, Any]:
        return {"status": "ok", "version": __version__, "games": len(repo.ids())}

    @app.post("/api/games", status_code=201)
    def create_game(request: Optional[CreateGameRequest] = None) -> Dict[str, Any]:
        request = request or CreateGameRequest()
        engine = GameEngine(
            request.num_players,
            seed=request.seed,
            config=_config_for(request),
            player_names=request.player_names,
        )
        repo.add(engine)
        with repo.lock(engine.game_id) as locked:
            return serialize_state(locked.state)

    @app.get("/api/games/{game_id}")
    def get_game(game_id: str) -> Dict[str, Any]:
        try:
            with repo.lock(game_id) as engine:
                return serialize_state(engine.state)
        except GameNotFoundError as exc:
            raise not_found(exc)

    @app.delete("/api/games/{game_id}")
    def delete_game(game_id: str) -> Dict[str, Any]:
        try:
            repo.remove(game_id)
        except GameNotFoundError as exc:
            raise not_found(exc)
        return {"deleted": game_id}

    @app.post("/api/games/{game_id}/actions")
    def apply_action(game_id: str, request: ActionRequest):
        try:
            with repo.lock(game_id) as engine:
                result = dispatch(engine, {"type": request.type, "payload": request.payload})
        except GameNotFoundError as exc:
            raise not_found(exc)
        if "error" in result:
            return JSONResponse(status_code=400, content=result)
        return result

    @app.post("/api/games/{game_id}/reroll")
    def reroll_board(game_id: str):
        try:
            with repo.lock(game_id) as engine:
                try:
                    event = engine.reroll_board()
                except IllegalActionError as exc:
                    return JSONResponse(status_code=400, content={"error": exc.message, "reason": exc.reason})
                return {"event": event.to_dict(), "state": serialize_state(engine.state)}
        except GameNotFoundError as exc:
            raise not_found(exc)

    @app.get("/api/games/{game_id}/legal-actions")
    def get_legal_actions(game_id: str, player_id: Optional[int] = None) -> Dict[str, Any]:
        try:
            with repo.lock(game_id) as engine:
                pid = engine.current_player if player_id is None else player_id
                return {
                    "playerId": pid,
                    "actions": [action.to_dict() for action in legal_actions(engine.state, pid)],
                }
        except GameNotFoundError as exc:
            raise not_found(exc)

    @app.get("/api/games/{game_id}/snapshot")
    def get_snapshot(game_id: str) -> Dict[str, Any]:
        try:
            with repo.lock(game_id) as engine:
                return build_snapshot(engine.state)
        except GameNotFoundError as exc:
            raise not_found(exc)

    @app.post("/api/games/{game_id}/auto-turn")
    def auto_turn(game_id: str, request: Optional[AutoTurnRequest] = None) -> Dict[str, Any]:
        request = request or AutoTurnRequest()
        rng = random.Random(request.seed)
        client = RandomDecisionClient(rng) if request.client == "random" else PriorityDecisionClient(rng)
        player = AutoPlayer(client)
        try:
            with repo.lock(game_id) as engine:
                steps = []
                for _ in range(request.turns):
                    if engine.winner is not None:
                        break
                    steps.extend(step.to_dict() for step in player.play_turn(engine))
                return {"steps": steps, "state": serialize_state(engine.state)}
        except GameNotFoundError as exc:
            raise not_found(exc)

    return app


app = create_app()
