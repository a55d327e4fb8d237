"""Automated players.

An ``AutoPlayer`` drives one turn of a game by asking a ``DecisionClient`` to
pick among the legal candidates. Decisions are untrusted: they go through the
same ``perform`` path as any human request, rejected ones are retried with the
error message attached, and when the client keeps failing the turn falls back
to a safe default so that the game always makes progress.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from ..engine.actions import parse_action, perform
from ..engine.errors import IllegalActionError
from ..engine.legal import legal_actions
from ..engine.rules import GameEngine
from ..engine.serialization import build_snapshot
from ..engine.types import Action, ActionType, GameEvent

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
MAX_ACTIONS_PER_TURN = 8

# Lower value wins.
ACTION_PRIORITY: Dict[ActionType, int] = {
    ActionType.BUILD_CITY: 0,
    ActionType.BUILD_TOWN: 1,
    ActionType.BUILD_ROAD: 2,
    ActionType.BUY_DEV_CARD: 3,
    ActionType.HARBOR_TRADE: 4,
    ActionType.MOVE_ROBBER: 5,
    ActionType.ROLL_DICE: 6,
    ActionType.END_TURN: 7,
}


class DecisionClient(Protocol):
    def choose_action(
        self,
        snapshot: Mapping[str, Any],
        candidates: Sequence[Mapping[str, Any]],
        last_error: Optional[str] = None,
    ) -> Mapping[str, Any]:
        """Return a raw ``{type, payload}`` mapping."""
        ...


class RandomDecisionClient:
    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def choose_action(self, snapshot, candidates, last_error=None):
        if not candidates:
            return {"type": ActionType.END_TURN.value, "payload": {}}
        return dict(self.rng.choice(list(candidates)))


class PriorityDecisionClient:
    """Greedy builder: city, town, road, card, trade, robber, roll, end turn."""

    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def choose_action(self, snapshot, candidates, last_error=None):
        if not candidates:
            return {"type": ActionType.END_TURN.value, "payload": {}}

        def rank(candidate: Mapping[str, Any]) -> int:
            try:
                return ACTION_PRIORITY.get(ActionType(candidate["type"]), len(ACTION_PRIORITY))
            except (KeyError, ValueError):
                return len(ACTION_PRIORITY)

        best = min(rank(candidate) for candidate in candidates)
        pool = [candidate for candidate in candidates if rank(candidate) == best]
        # A rejected trade is not retried; move down the list instead.
        if last_error and best == ACTION_PRIORITY[ActionType.HARBOR_TRADE]:
            pool = [candidate for candidate in candidates if rank(candidate) > best] or pool
        return dict(self.rng.choice(pool))


@dataclass
class TurnStep:
    action: Action
    event: GameEvent
    attempts: int
    fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.to_dict(),
            "event": self.event.to_dict(),
            "attempts": self.attempts,
            "fallback": self.fallback,
        }


class AutoPlayer:
    def __init__(
        self,
        client: DecisionClient | None = None,
        max_attempts: int = MAX_ATTEMPTS,
        max_actions_per_turn: int = MAX_ACTIONS_PER_TURN,
    ):
        if max_attempts < 1 or max_actions_per_turn < 1:
            raise ValueError("max_attempts and max_actions_per_turn must be positive")
        self.client = client or PriorityDecisionClient()
        self.max_attempts = max_attempts
        self.max_actions_per_turn = max_actions_per_turn

    @staticmethod
    def fallback_action(engine: GameEngine) -> Action:
        state = engine.state
        player = state.players[state.current_player]
        if not state.in_setup and not player.has_rolled:
            return Action(ActionType.ROLL_DICE, {"player_id": player.player_id})
        return Action(ActionType.END_TURN, {"player_id": player.player_id})

    def _decide(self, engine: GameEngine) -> TurnStep | None:
        state = engine.state
        player_id = state.current_player
        snapshot = build_snapshot(state)
        candidates = [action.to_dict() for action in legal_actions(state, player_id)]
        last_error: str | None = None
        for attempt in range(1, self.max_attempts + 1):
            raw = None
            try:
                raw = self.client.choose_action(snapshot, candidates, last_error)
                action = parse_action(raw)
                payload = dict(action.payload)
                payload.setdefault("player_id", player_id)
                action = Action(action.action_type, payload)
                event = perform(engine, action)
            except IllegalActionError as exc:
                last_error = exc.message
                logger.warning(
                    "game %s player %d: decision %r rejected (attempt %d/%d): %s",
                    engine.game_id,
                    player_id,
                    raw,
                    attempt,
                    self.max_attempts,
                    exc.message,
                )
                continue
            except Exception as exc:
                # Client or payload failures count as a spent attempt.
                last_error = str(exc)
                logger.warning(
                    "game %s player %d: decision %r failed (attempt %d/%d): %s",
                    engine.game_id,
                    player_id,
                    raw,
                    attempt,
                    self.max_attempts,
                    exc,
                )
                continue
            return TurnStep(action, event, attempt)
        return None

    def _fallback(self, engine: GameEngine, attempts: int) -> TurnStep:
        action = self.fallback_action(engine)
        logger.info(
            "game %s player %d: falling back to %s", engine.game_id, engine.current_player, action.action_type.value
        )
        event = perform(engine, action)
        return TurnStep(action, event, attempts, fallback=True)

    def play_turn(self, engine: GameEngine) -> List[TurnStep]:
        """Play until the current player's turn ends or the game is won."""
        player_id = engine.current_player
        steps: List[TurnStep] = []
        while engine.winner is None and engine.current_player == player_id:
            if len(steps) >= self.max_actions_per_turn:
                steps.append(self._fallback(engine, 0))
                # A fallback roll still leaves the turn open.
                if engine.winner is None and engine.current_player == player_id:
                    steps.append(self._fallback(engine, 0))
                break
            step = self._decide(engine)
            if step is None:
                step = self._fallback(engine, self.max_attempts)
            steps.append(step)
        return steps
