"""Candidate actions for automated players.

``legal_actions`` is a pure read of the game state: it never mutates and never
consumes randomness, so the same state always yields the same ordered list.
Build candidates are ranked by production score before being capped per kind,
so bots see the richest spots first. Every list ends with a fallback that the
engine accepts in the current phase.
"""

from __future__ import annotations

from typing import Dict, List

from .game_state import GameState, PlayerState
from .rules import (
    COSTS,
    can_afford,
    distance_rule_ok,
    node_touches_own_road,
    road_touches_network,
    trading_ratio,
)
from .types import TRADEABLE_RESOURCES, Action, ActionType, Board, BuildingType

SETUP_CANDIDATES = 2
CITY_CANDIDATES = 2

# Number of dice combinations that roll each token.
PIP_WEIGHTS: Dict[int, int] = {n: 6 - abs(7 - n) for n in (2, 3, 4, 5, 6, 8, 9, 10, 11, 12)}


def node_production_score(board: Board, node_id: int) -> int:
    """Sum of pip weights of the producing, unrobbed tiles around a node."""
    score = 0
    for tile_id in board.nodes[node_id].adjacent_tiles:
        tile = board.tiles[tile_id]
        if tile.produces and not tile.has_robber:
            score += PIP_WEIGHTS.get(tile.number_token, 0)
    return score


def _ranked(ids: List[int], score) -> List[int]:
    return sorted(ids, key=lambda item: (-score(item), item))


def _end_turn() -> Action:
    return Action(ActionType.END_TURN, {})


def _open_town_nodes(state: GameState, player: PlayerState, limit: int, connected: bool) -> List[Action]:
    board = state.board
    open_nodes: List[int] = []
    for node in board.nodes:
        if not node.can_build or node.building is not None:
            continue
        if not distance_rule_ok(board, node.node_id):
            continue
        if connected and not node_touches_own_road(board, node.node_id, player.player_id):
            continue
        open_nodes.append(node.node_id)
    ranked = _ranked(open_nodes, lambda node_id: node_production_score(board, node_id))
    return [
        Action(ActionType.BUILD_TOWN, {"node_id": node_id, "player_id": player.player_id})
        for node_id in ranked[:limit]
    ]


def _open_road_edges(state: GameState, player: PlayerState, limit: int, free: bool) -> List[Action]:
    board = state.board
    open_edges = [
        edge.edge_id
        for edge in board.edges
        if edge.owner_id is None and road_touches_network(board, edge.edge_id, player.player_id)
    ]

    def reach(edge_id: int) -> int:
        edge = board.edges[edge_id]
        return max(node_production_score(board, node_id) for node_id in edge.endpoints)

    return [
        Action(ActionType.BUILD_ROAD, {"edge_id": edge_id, "player_id": player.player_id, "free": free})
        for edge_id in _ranked(open_edges, reach)[:limit]
    ]


def _setup_actions(state: GameState, player: PlayerState) -> List[Action]:
    actions: List[Action] = []
    if player.setup_towns < 2:
        actions.extend(_open_town_nodes(state, player, SETUP_CANDIDATES - player.setup_towns, connected=False))
    if player.free_roads > 0:
        actions.extend(_open_road_edges(state, player, min(SETUP_CANDIDATES, player.free_roads), free=True))
    actions.append(_end_turn())
    return actions


def _robber_targets(state: GameState, player: PlayerState) -> List[int]:
    """Land tiles ordered by the production they deny opponents; own tiles last."""
    board = state.board

    def rank(tile_id: int):
        tile = board.tiles[tile_id]
        own = False
        denied = 0
        for node_id in board.tile_nodes(tile_id):
            building = board.nodes[node_id].building
            if building is None:
                continue
            if building.owner_id == player.player_id:
                own = True
            else:
                denied += 2 if building.kind == BuildingType.CITY else 1
        weight = PIP_WEIGHTS.get(tile.number_token, 0) if tile.produces else 0
        return (own, -denied * weight, tile_id)

    targets = [tile.tile_id for tile in board.land_tiles() if not tile.has_robber]
    return sorted(targets, key=rank)


def _robber_actions(state: GameState, player: PlayerState) -> List[Action]:
    actions = [
        Action(ActionType.MOVE_ROBBER, {"hex_id": tile_id, "player_id": player.player_id})
        for tile_id in _robber_targets(state, player)
    ]
    actions.append(_end_turn())
    return actions


def _harbor_trades(state: GameState, player: PlayerState) -> List[Action]:
    actions: List[Action] = []
    for give in TRADEABLE_RESOURCES:
        ratio = trading_ratio(state.board, player.player_id, give, state.config.bank_trade_ratio)
        if player.resources[give] < ratio:
            continue
        # Ask for whatever the player holds least of.
        receive = min(
            (res for res in TRADEABLE_RESOURCES if res != give),
            key=lambda res: player.resources[res],
        )
        actions.append(
            Action(
                ActionType.HARBOR_TRADE,
                {"player_id": player.player_id, "give": give.value, "receive": receive.value},
            )
        )
    return actions


def _main_actions(state: GameState, player: PlayerState) -> List[Action]:
    config = state.config
    cap = config.candidate_cap
    actions: List[Action] = []

    if can_afford(player.resources, COSTS[ActionType.BUILD_TOWN]) and (
        state.count_buildings(player.player_id, BuildingType.TOWN) < config.max_towns
    ):
        actions.extend(_open_town_nodes(state, player, cap, connected=True))

    if state.count_roads(player.player_id) < config.max_roads:
        if player.free_roads > 0:
            actions.extend(_open_road_edges(state, player, cap, free=True))
        elif can_afford(player.resources, COSTS[ActionType.BUILD_ROAD]):
            actions.extend(_open_road_edges(state, player, cap, free=False))

    if can_afford(player.resources, COSTS[ActionType.BUILD_CITY]) and (
        state.count_buildings(player.player_id, BuildingType.CITY) < config.max_cities
    ):
        towns = _ranked(
            [
                node.node_id
                for node in state.board.buildings()
                if node.building.owner_id == player.player_id and node.building.kind == BuildingType.TOWN
            ],
            lambda node_id: node_production_score(state.board, node_id),
        )
        actions.extend(
            Action(ActionType.BUILD_CITY, {"node_id": node_id, "player_id": player.player_id})
            for node_id in towns[:CITY_CANDIDATES]
        )

    actions.extend(_harbor_trades(state, player))

    if state.dev_deck and can_afford(player.resources, COSTS[ActionType.BUY_DEV_CARD]):
        actions.append(Action(ActionType.BUY_DEV_CARD, {"player_id": player.player_id}))

    actions.append(_end_turn())
    return actions


def legal_actions(state: GameState, player_id: int) -> List[Action]:
    if state.winner is not None:
        return []
    if not 0 <= player_id < len(state.players) or player_id != state.current_player:
        return []
    player = state.players[player_id]

    if state.in_setup:
        return _setup_actions(state, player)
    if not player.has_rolled:
        return [Action(ActionType.ROLL_DICE, {})]
    if state.robber_pending:
        return _robber_actions(state, player)
    return _main_actions(state, player)
