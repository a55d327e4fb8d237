import random
from typing import Dict, Iterable, List

import pytest

from catan_sandbox.engine.config import RuleConfig
from catan_sandbox.engine.rules import GameEngine, distance_rule_ok
from catan_sandbox.engine.types import TRADEABLE_RESOURCES, Building, BuildingType, ResourceType


@pytest.fixture
def engine():
    return GameEngine(4, seed=7)


@pytest.fixture
def make_engine():
    def factory(num_players=2, seed=3, **overrides):
        return GameEngine(num_players, seed=seed, config=RuleConfig(**overrides))

    return factory


@pytest.fixture
def place():
    def _place(engine, player_id, node_id, kind=BuildingType.TOWN):
        engine.board.nodes[node_id].building = Building(player_id, kind)

    return _place


@pytest.fixture
def finish_setup(place):
    """Place two towns per player on spread-out nodes, skipping ``avoid`` and its neighbours."""

    def _finish(engine, avoid: Iterable[int] = ()) -> Dict[int, List[int]]:
        board = engine.board
        blocked = set(avoid)
        for node_id in list(blocked):
            blocked.update(board.neighbors_of(node_id))
        placed: Dict[int, List[int]] = {player.player_id: [] for player in engine.players}
        candidates = [node.node_id for node in reversed(board.nodes) if node.node_id not in blocked]
        for player in engine.players:
            while len(placed[player.player_id]) < 2:
                node_id = next(
                    nid for nid in candidates if board.nodes[nid].building is None and distance_rule_ok(board, nid)
                )
                place(engine, player.player_id, node_id)
                placed[player.player_id].append(node_id)
        assert not engine.state.in_setup
        return placed

    return _finish


@pytest.fixture
def ready_engine(make_engine, finish_setup):
    """Two-player game with setup done by hand, waiting for player 0 to roll."""
    engine = make_engine(2, auto_setup=False)
    finish_setup(engine)
    return engine


@pytest.fixture
def force_roll(monkeypatch):
    def roll(engine, total, player_id=None):
        d1 = max(1, total - 6)
        values = iter([d1, total - d1])
        monkeypatch.setattr(engine.rng, "randint", lambda low, high: next(values))
        return engine.roll_dice(player_id)

    return roll


@pytest.fixture
def give():
    def _give(engine, player_id, **amounts):
        resources = engine.players[player_id].resources
        for name, amount in amounts.items():
            resources[ResourceType(name)] = amount

    return _give


@pytest.fixture
def clear_hand():
    def _clear(engine, player_id):
        for resource in TRADEABLE_RESOURCES:
            engine.players[player_id].resources[resource] = 0

    return _clear


@pytest.fixture
def rng():
    return random.Random(1234)
