import pytest

from catan_sandbox.engine.actions import dispatch, parse_action, perform
from catan_sandbox.engine.errors import IllegalActionError, UnknownActionError
from catan_sandbox.engine.serialization import build_snapshot, serialize_state
from catan_sandbox.engine.types import Action, ActionType


def test_parse_action_accepts_type_or_action_key():
    assert parse_action({"type": "rollDice"}) == Action(ActionType.ROLL_DICE, {})
    assert parse_action({"action": "endTurn", "payload": {"player_id": 1}}) == Action(
        ActionType.END_TURN, {"player_id": 1}
    )


@pytest.mark.parametrize(
    "raw, reason",
    [
        ({"type": "teleport"}, "unknown_action"),
        ({}, "unknown_action"),
        ("rollDice", "malformed_action"),
        ({"type": "rollDice", "payload": [1, 2]}, "malformed_payload"),
    ],
)
def test_parse_action_rejects_bad_input(raw, reason):
    with pytest.raises(UnknownActionError) as excinfo:
        parse_action(raw)
    assert excinfo.value.reason == reason


def test_missing_payload_field(engine, force_roll):
    force_roll(engine, 8)
    with pytest.raises(IllegalActionError) as excinfo:
        perform(engine, {"type": "buildRoad", "payload": {}})
    assert excinfo.value.reason == "missing_field"


def test_dispatch_success_returns_event_and_state(engine):
    result = dispatch(engine, {"type": "rollDice", "payload": {"player_id": 0}})
    assert result["event"]["type"] == "rollDice"
    assert result["event"]["gameId"] == engine.game_id
    assert result["state"]["players"][0]["hasRolled"] is True
    assert "error" not in result


def test_dispatch_error_leaves_state_untouched(engine):
    before = serialize_state(engine.state)
    result = dispatch(engine, {"type": "endTurn", "payload": {}})
    assert result == {"error": "Roll the dice before ending your turn", "reason": "must_roll"}
    assert serialize_state(engine.state) == before


def test_dispatch_reports_unknown_action(engine):
    result = dispatch(engine, {"type": "teleport"})
    assert result["reason"] == "unknown_action"


def test_string_ids_and_flags_are_coerced(make_engine):
    engine = make_engine(2, auto_setup=False)
    node_id = next(node.node_id for node in engine.board.nodes if node.can_build)
    perform(engine, {"type": "buildTown", "payload": {"node_id": str(node_id)}})
    edge_id = engine.board.edges_of(node_id)[0]
    perform(engine, {"type": "buildRoad", "payload": {"edge_id": str(edge_id), "free": "true"}})
    assert engine.board.edges[edge_id].owner_id == 0


def test_event_log_grows_with_each_action(engine, force_roll):
    start = len(engine.log)
    force_roll(engine, 6)
    perform(engine, {"type": "endTurn", "payload": {}})
    assert [event.event_type for event in engine.log[start:]] == ["rollDice", "endTurn"]
    assert [event.event_id for event in engine.log] == list(range(len(engine.log)))


def test_snapshot_lists_open_board_and_players(engine):
    snapshot = build_snapshot(engine.state)
    assert snapshot["currentPlayerId"] == 0
    assert len(snapshot["players"]) == 4
    assert snapshot["devCardsRemaining"] == 25
    assert snapshot["robberTileId"] == engine.board.robber_tile()
    occupied = {node.node_id for node in engine.board.buildings()}
    assert all(node["id"] not in occupied for node in snapshot["openNodes"])
    assert all(len(node["tiles"]) == 3 for node in snapshot["openNodes"])
    assert len(snapshot["openEdges"]) == 72 - 8


@pytest.mark.parametrize(
    "raw",
    [
        {"type": "buildTown", "payload": {"node_id": float("inf")}},
        {"type": "rollDice", "payload": {"player_id": float("-inf")}},
    ],
)
def test_non_finite_ids_are_rejected(engine, raw):
    before = serialize_state(engine.state)
    result = dispatch(engine, raw)
    assert result["reason"] in {"node_not_found", "invalid_player"}
    assert serialize_state(engine.state) == before
