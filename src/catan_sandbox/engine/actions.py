"""Action call contract: ``{type, payload}`` in, ``{event, state}`` or ``{error}`` out.

Actions from people and from automated decision clients go through the same
``perform`` path, so both are held to exactly the same rules.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping

from .errors import IllegalActionError, UnknownActionError
from .rules import GameEngine
from .serialization import serialize_state
from .types import Action, ActionType, GameEvent

logger = logging.getLogger(__name__)

_TRUE_STRINGS = {"1", "true", "yes"}


def parse_action(raw: object) -> Action:
    """Turn a raw mapping (JSON body, decision-client output) into an ``Action``."""
    if isinstance(raw, Action):
        return raw
    if not isinstance(raw, Mapping):
        raise UnknownActionError("malformed_action", "Action must be an object with a type")
    kind = raw.get("type", raw.get("action"))
    try:
        action_type = ActionType(kind)
    except ValueError:
        raise UnknownActionError("unknown_action", f"Unknown action type: {kind!r}") from None
    payload = raw.get("payload") or {}
    if not isinstance(payload, Mapping):
        raise UnknownActionError("malformed_payload", "Action payload must be an object")
    return Action(action_type, dict(payload))


def _require(payload: Mapping[str, Any], key: str) -> Any:
    if payload.get(key) is None:
        raise UnknownActionError("missing_field", f"Missing payload field: {key}")
    return payload[key]


def _flag(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


_HANDLERS: Dict[ActionType, Callable[[GameEngine, Mapping[str, Any], Any], GameEvent]] = {
    ActionType.ROLL_DICE: lambda engine, p, pid: engine.roll_dice(pid),
    ActionType.MOVE_ROBBER: lambda engine, p, pid: engine.move_robber(_require(p, "hex_id"), pid),
    ActionType.BUILD_ROAD: lambda engine, p, pid: engine.build_road(
        _require(p, "edge_id"), pid, free=_flag(p.get("free", False))
    ),
    ActionType.BUILD_TOWN: lambda engine, p, pid: engine.build_town(_require(p, "node_id"), pid),
    ActionType.BUILD_CITY: lambda engine, p, pid: engine.build_city(_require(p, "node_id"), pid),
    ActionType.HARBOR_TRADE: lambda engine, p, pid: engine.trade_harbor(
        pid, _require(p, "give"), _require(p, "receive")
    ),
    ActionType.BUY_DEV_CARD: lambda engine, p, pid: engine.buy_dev_card(pid),
    ActionType.PLAY_KNIGHT: lambda engine, p, pid: engine.play_knight(pid),
    ActionType.PLAY_ROAD_BUILDING: lambda engine, p, pid: engine.play_road_building(pid),
    ActionType.PLAY_YEAR_OF_PLENTY: lambda engine, p, pid: engine.play_year_of_plenty(
        pid, _require(p, "resource1"), _require(p, "resource2")
    ),
    ActionType.PLAY_MONOPOLY: lambda engine, p, pid: engine.play_monopoly(pid, _require(p, "resource")),
    ActionType.END_TURN: lambda engine, p, pid: engine.end_turn(pid),
}


def perform(engine: GameEngine, action: Action | Mapping[str, Any]) -> GameEvent:
    """Apply one action to ``engine``; raises ``IllegalActionError`` without mutating on failure."""
    action = parse_action(action)
    payload = action.payload
    return _HANDLERS[action.action_type](engine, payload, payload.get("player_id"))


def dispatch(engine: GameEngine, raw: object) -> Dict[str, Any]:
    try:
        event = perform(engine, raw)
    except IllegalActionError as exc:
        logger.debug("game %s rejected %r: %s", engine.game_id, raw, exc.message)
        return {"error": exc.message, "reason": exc.reason}
    return {"event": event.to_dict(), "state": serialize_state(engine.state)}
