import networkx as nx
import pytest

from catan_sandbox.engine.config import RuleConfig
from catan_sandbox.engine.errors import IllegalActionError
from catan_sandbox.engine.game_state import DevCard
from catan_sandbox.engine.rules import GameEngine, longest_road_length
from catan_sandbox.engine.serialization import serialize_state
from catan_sandbox.engine.types import BuildingType, DevCardType, Harbor, ResourceType, TurnPhase


def _producing_tile(engine):
    return next(tile for tile in engine.board.tiles if tile.produces and not tile.has_robber)


def _path_of_five(board):
    graph = board.to_networkx()
    paths = nx.single_source_shortest_path(graph, 0, cutoff=5)
    path = next(p for p in paths.values() if len(p) == 6)
    edge_ids = [graph[a][b]["edge_id"] for a, b in zip(path, path[1:])]
    return path, edge_ids


def test_auto_setup_places_two_towns_and_roads(engine):
    board = engine.board
    deserts = {tile.tile_id for tile in board.tiles if tile.resource == ResourceType.DESERT}
    for player in engine.players:
        towns = [node for node in board.buildings() if node.building.owner_id == player.player_id]
        assert len(towns) == 2
        assert engine.state.count_roads(player.player_id) == 2
        assert all(not deserts.intersection(node.adjacent_tiles) for node in towns)
        assert player.victory_points == 2
        assert all(amount == 1 for amount in player.resources.values())
    assert engine.state.phase == TurnPhase.ROLL


def test_player_count_bounds():
    with pytest.raises(ValueError):
        GameEngine(1)
    with pytest.raises(ValueError):
        GameEngine(7)
    assert len(GameEngine(6, seed=1).players) == 6


def test_second_roll_rejected_without_mutation(engine, force_roll):
    force_roll(engine, 6)
    before = serialize_state(engine.state)
    with pytest.raises(IllegalActionError) as excinfo:
        engine.roll_dice()
    assert excinfo.value.reason == "already_rolled"
    assert serialize_state(engine.state) == before


def test_rejections_are_idempotent(engine):
    before = serialize_state(engine.state)
    for _ in range(3):
        with pytest.raises(IllegalActionError):
            engine.build_road(0)
    assert serialize_state(engine.state) == before


def test_must_roll_before_building(engine, give):
    give(engine, 0, wood=5, brick=5)
    with pytest.raises(IllegalActionError) as excinfo:
        engine.build_road(0)
    assert excinfo.value.reason == "must_roll"


def test_end_turn_requires_roll(engine):
    with pytest.raises(IllegalActionError) as excinfo:
        engine.end_turn()
    assert excinfo.value.reason == "must_roll"


def test_not_your_turn(engine):
    with pytest.raises(IllegalActionError) as excinfo:
        engine.roll_dice(player_id=1)
    assert excinfo.value.reason == "not_your_turn"
    with pytest.raises(IllegalActionError) as excinfo:
        engine.roll_dice(player_id=9)
    assert excinfo.value.reason == "invalid_player"


def test_seven_requires_robber_move(engine, force_roll, give):
    force_roll(engine, 7)
    assert engine.state.robber_pending
    assert engine.state.phase == TurnPhase.MOVE_ROBBER

    give(engine, 0, wood=2, brick=2)
    with pytest.raises(IllegalActionError) as excinfo:
        engine.build_road(0)
    assert excinfo.value.reason == "must_move_robber"

    current = engine.board.robber_tile()
    with pytest.raises(IllegalActionError) as excinfo:
        engine.move_robber(current)
    assert excinfo.value.reason == "robber_same_tile"

    water = next(tile for tile in engine.board.tiles if tile.is_water)
    with pytest.raises(IllegalActionError) as excinfo:
        engine.move_robber(water.tile_id)
    assert excinfo.value.reason == "robber_on_water"

    with pytest.raises(IllegalActionError) as excinfo:
        engine.move_robber(999)
    assert excinfo.value.reason == "tile_not_found"

    target = next(tile for tile in engine.board.land_tiles() if not tile.has_robber)
    engine.move_robber(target.tile_id)
    assert engine.board.robber_tile() == target.tile_id
    assert not engine.state.robber_pending
    assert sum(1 for tile in engine.board.tiles if tile.has_robber) == 1


def test_move_robber_without_seven(engine, force_roll):
    force_roll(engine, 8)
    target = next(tile for tile in engine.board.land_tiles() if not tile.has_robber)
    with pytest.raises(IllegalActionError) as excinfo:
        engine.move_robber(target.tile_id)
    assert excinfo.value.reason == "robber_not_pending"


def test_roll_produces_for_towns_and_cities(make_engine, place, finish_setup, force_roll):
    engine = make_engine(4, auto_setup=False)
    board = engine.board
    tile = _producing_tile(engine)
    corners = board.tile_nodes(tile.tile_id)
    town_node = corners[0]
    city_node = next(nid for nid in corners[1:] if nid not in board.neighbors_of(town_node))
    place(engine, 0, town_node)
    place(engine, 0, city_node, BuildingType.CITY)
    finish_setup(engine, avoid=corners)
    for other in board.tiles:
        if other is not tile:
            other.number_token = None

    before = engine.players[0].resources[tile.resource]
    others_before = [dict(p.resources) for p in engine.players[1:]]
    event = force_roll(engine, tile.number_token)

    assert engine.players[0].resources[tile.resource] == before + 3
    assert [p.resources for p in engine.players[1:]] == others_before
    assert event.details["production"] == {0: {tile.resource.value: 3}}


def test_robber_blocks_production(make_engine, place, finish_setup, force_roll):
    engine = make_engine(2, auto_setup=False)
    board = engine.board
    tile = _producing_tile(engine)
    place(engine, 0, board.tile_nodes(tile.tile_id)[0])
    finish_setup(engine, avoid=board.tile_nodes(tile.tile_id))
    for other in board.tiles:
        other.has_robber = other is tile

    before = engine.players[0].resources[tile.resource]
    force_roll(engine, tile.number_token)
    assert engine.players[0].resources[tile.resource] == before


def test_build_town_and_city(ready_engine, force_roll, give):
    engine = ready_engine
    board = engine.board
    force_roll(engine, 8)
    home = next(node for node in board.buildings() if node.building.owner_id == 0)

    # Two roads away from the town, then a town at the end.
    first_edge = next(eid for eid in board.edges_of(home.node_id) if board.edges[eid].owner_id is None)
    middle = next(n for n in board.edges[first_edge].endpoints if n != home.node_id)
    second_edge = next(eid for eid in board.edges_of(middle) if eid != first_edge)
    target = next(n for n in board.edges[second_edge].endpoints if n != middle)

    give(engine, 0, wood=3, brick=3, wheat=1, sheep=1, ore=0)
    engine.build_road(first_edge)
    engine.build_road(second_edge)
    if board.nodes[target].building is None and all(
        board.nodes[n].building is None for n in board.neighbors_of(target)
    ):
        engine.build_town(target)
        assert board.nodes[target].building.kind == BuildingType.TOWN
        assert engine.players[0].victory_points == 3

    give(engine, 0, wheat=2, ore=3)
    engine.build_city(home.node_id)
    assert home.building.kind == BuildingType.CITY
    assert engine.players[0].resources[ResourceType.ORE] == 0
    with pytest.raises(IllegalActionError) as excinfo:
        engine.build_city(home.node_id)
    assert excinfo.value.reason == "city_requires_town"


def test_town_distance_rule_and_connection(ready_engine, force_roll, give):
    engine = ready_engine
    board = engine.board
    force_roll(engine, 8)
    give(engine, 0, wood=1, brick=1, wheat=1, sheep=1)
    home = next(node for node in board.buildings() if node.building.owner_id == 0)

    with pytest.raises(IllegalActionError) as excinfo:
        engine.build_town(home.node_id)
    assert excinfo.value.reason == "node_occupied"

    with pytest.raises(IllegalActionError) as excinfo:
        engine.build_town(board.neighbors_of(home.node_id)[0])
    assert excinfo.value.reason == "too_close"

    lonely = next(
        node.node_id
        for node in board.nodes
        if node.building is None
        and all(board.nodes[n].building is None for n in board.neighbors_of(node.node_id))
        and all(board.edges[e].owner_id is None for e in board.edges_of(node.node_id))
    )
    with pytest.raises(IllegalActionError) as excinfo:
        engine.build_town(lonely)
    assert excinfo.value.reason == "town_not_connected"


def test_road_must_connect(ready_engine, force_roll, give):
    engine = ready_engine
    board = engine.board
    force_roll(engine, 8)
    give(engine, 0, wood=1, brick=1)
    far = next(
        edge.edge_id
        for edge in board.edges
        if all(board.nodes[n].building is None for n in edge.endpoints)
        and all(board.edges[e].owner_id is None for n in edge.endpoints for e in board.edges_of(n))
    )
    with pytest.raises(IllegalActionError) as excinfo:
        engine.build_road(far)
    assert excinfo.value.reason == "road_not_connected"
    assert engine.players[0].resources[ResourceType.WOOD] == 1


def test_harbor_ratios(ready_engine, force_roll, give, clear_hand):
    engine = ready_engine
    force_roll(engine, 8)
    for node in engine.board.buildings():
        node.harbors = []
    home = next(node for node in engine.board.buildings() if node.building.owner_id == 0)
    home.harbors = [Harbor(2, ResourceType.WHEAT)]

    assert engine.trading_ratio(0, ResourceType.WHEAT) == 2
    assert engine.trading_ratio(0, ResourceType.ORE) == 4

    clear_hand(engine, 0)
    give(engine, 0, wheat=2, sheep=3)
    event = engine.trade_harbor(0, "wheat", "ore")
    assert event.details["ratio"] == 2
    assert engine.players[0].resources[ResourceType.WHEAT] == 0
    assert engine.players[0].resources[ResourceType.ORE] == 1
    assert engine.players[0].trades == 1

    with pytest.raises(IllegalActionError) as excinfo:
        engine.trade_harbor(0, "sheep", "wood")
    assert excinfo.value.reason == "insufficient_resources"

    home.harbors = [Harbor(3)]
    engine.trade_harbor(0, "sheep", "wood")
    assert engine.players[0].resources[ResourceType.SHEEP] == 0


def test_trade_validation(ready_engine, force_roll, give):
    engine = ready_engine
    force_roll(engine, 8)
    give(engine, 0, wood=8)
    with pytest.raises(IllegalActionError) as excinfo:
        engine.trade_harbor(0, "wood", "wood")
    assert excinfo.value.reason == "invalid_trade_pair"
    with pytest.raises(IllegalActionError) as excinfo:
        engine.trade_harbor(0, "gold", "wood")
    assert excinfo.value.reason == "invalid_resource"
    with pytest.raises(IllegalActionError) as excinfo:
        engine.trade_harbor(0, "wood", "desert")
    assert excinfo.value.reason == "invalid_resource"


def test_end_turn_cycles_players(engine, force_roll):
    seen = []
    for _ in range(len(engine.players)):
        seen.append(engine.current_player)
        force_roll(engine, 6)
        engine.end_turn()
    assert seen == [0, 1, 2, 3]
    assert engine.current_player == 0
    assert engine.state.turn == 5
    assert all(not player.has_rolled for player in engine.players)


def test_manual_setup_phase(make_engine):
    engine = make_engine(2, auto_setup=False)
    board = engine.board
    assert engine.state.phase == TurnPhase.SETUP
    with pytest.raises(IllegalActionError) as excinfo:
        engine.roll_dice()
    assert excinfo.value.reason == "setup_in_progress"

    node_id = next(node.node_id for node in board.nodes if node.can_build)
    engine.build_town(node_id)
    player = engine.players[0]
    assert player.free_roads == 1
    assert all(amount == 1 for amount in player.resources.values())

    edge_id = board.edges_of(node_id)[0]
    engine.build_road(edge_id, free=True)
    assert player.free_roads == 0
    with pytest.raises(IllegalActionError) as excinfo:
        engine.build_road(board.edges_of(node_id)[1], free=True)
    assert excinfo.value.reason == "no_free_roads"

    engine.end_turn()
    assert engine.current_player == 1


def test_longest_road_awarded_and_broken(make_engine, place, finish_setup, force_roll, give):
    engine = make_engine(2, auto_setup=False)
    board = engine.board
    path, edge_ids = _path_of_five(board)
    place(engine, 0, path[0])
    finish_setup(engine, avoid=path)
    for edge_id in edge_ids[:4]:
        board.edges[edge_id].owner_id = 0

    force_roll(engine, 8)
    give(engine, 0, wood=1, brick=1)
    engine.build_road(edge_ids[4])

    player = engine.players[0]
    assert longest_road_length(board, 0) == 5
    assert player.longest_road
    # three towns plus the longest road
    assert player.victory_points == 3 + 2

    place(engine, 1, path[2])
    assert longest_road_length(board, 0) == 3


def test_game_over_blocks_actions(make_engine, place, finish_setup):
    engine = make_engine(2, auto_setup=False, victory_points_to_win=3)
    finish_setup(engine)
    player = engine.players[0]
    player.dev_cards = [DevCard(DevCardType.KNIGHT, can_play=True) for _ in range(3)]
    robber_targets = [tile.tile_id for tile in engine.board.land_tiles()]
    for _ in range(3):
        engine.play_knight()
        if engine.winner is not None:
            break
        target = next(tid for tid in robber_targets if not engine.board.tiles[tid].has_robber)
        engine.move_robber(target)

    assert engine.winner == 0
    assert engine.log[-1].event_type == "gameOver"
    with pytest.raises(IllegalActionError) as excinfo:
        engine.roll_dice()
    assert excinfo.value.reason == "game_over"


def test_reroll_only_before_first_roll(engine, force_roll):
    tile_count = len(engine.board.tiles)
    event = engine.reroll_board()
    assert event.event_type == "rerollBoard"
    assert all(player.victory_points == 2 for player in engine.players)
    assert len(engine.board.tiles) == tile_count

    force_roll(engine, 6)
    with pytest.raises(IllegalActionError) as excinfo:
        engine.reroll_board()
    assert excinfo.value.reason == "reroll_after_start"


def test_config_from_env():
    config = RuleConfig.from_env({"CATAN_HARBORS": "0", "CATAN_VICTORY_POINTS_TO_WIN": "12"})
    assert config.harbors is False
    assert config.victory_points_to_win == 12
    with pytest.raises(ValueError):
        RuleConfig.from_env({"CATAN_AUTO_SETUP": "maybe"})


def test_occupied_targets_rejected_the_same_way_twice(ready_engine, force_roll, give):
    engine = ready_engine
    force_roll(engine, 8)
    give(engine, 0, wood=9, brick=9, wheat=9, sheep=9, ore=9)
    home = next(node for node in engine.board.buildings() if node.building.owner_id == 0)
    rival = next(node for node in engine.board.buildings() if node.building.owner_id == 1)
    edge_id = engine.board.edges_of(home.node_id)[0]
    engine.build_road(edge_id)

    for call, reason in (
        (lambda: engine.build_town(home.node_id), "node_occupied"),
        (lambda: engine.build_city(rival.node_id), "city_requires_town"),
        (lambda: engine.build_road(edge_id), "edge_occupied"),
    ):
        reasons = []
        for _ in range(2):
            with pytest.raises(IllegalActionError) as excinfo:
                call()
            reasons.append(excinfo.value.reason)
        assert reasons == [reason, reason]
