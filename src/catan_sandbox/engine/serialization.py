from __future__ import annotations

from collections import Counter
from typing import Any, Dict, List

from .game_state import GameState, PlayerState
from .rules import player_harbors
from .types import Board, BuildingType, CardTiming


def serialize_board(board: Board) -> Dict[str, Any]:
    return {
        "tiles": [
            {
                "id": tile.tile_id,
                "q": tile.axial[0],
                "r": tile.axial[1],
                "center": {"x": tile.center[0], "y": tile.center[1]},
                "resource": tile.resource.value,
                "number": tile.number_token,
                "hasRobber": tile.has_robber,
                "harbor": tile.harbor.to_dict() if tile.harbor else None,
            }
            for tile in board.tiles
        ],
        "nodes": [
            {
                "id": node.node_id,
                "x": node.position[0],
                "y": node.position[1],
                "adjHexes": list(node.adjacent_tiles),
                "building": (
                    {"ownerId": node.building.owner_id, "type": node.building.kind.value}
                    if node.building
                    else None
                ),
                "harbors": [harbor.to_dict() for harbor in node.harbors],
                "canBuild": node.can_build,
            }
            for node in board.nodes
        ],
        "edges": [
            {"id": edge.edge_id, "n1": edge.node_a, "n2": edge.node_b, "ownerId": edge.owner_id}
            for edge in board.edges
        ],
    }


def serialize_player(state: GameState, player: PlayerState) -> Dict[str, Any]:
    return {
        "id": player.player_id,
        "name": player.name,
        "color": player.color,
        "resources": {res.value: amount for res, amount in player.resources.items()},
        "victoryPoints": player.victory_points,
        "devCards": [card.to_dict() for card in player.dev_cards],
        "playedDevCards": {kind.value: count for kind, count in player.played_cards.items()},
        "knightsPlayed": player.knights_played,
        "longestRoad": player.longest_road,
        "largestArmy": player.largest_army,
        "hasRolled": player.has_rolled,
        "boughtDevCardThisTurn": player.bought_dev_card_this_turn,
        "freeRoads": player.free_roads,
        "trades": player.trades,
        "towns": state.count_buildings(player.player_id, BuildingType.TOWN),
        "cities": state.count_buildings(player.player_id, BuildingType.CITY),
        "roads": state.count_roads(player.player_id),
    }


def serialize_state(state: GameState) -> Dict[str, Any]:
    return {
        "id": state.game_id,
        "board": serialize_board(state.board),
        "players": [serialize_player(state, player) for player in state.players],
        "current": state.current_player,
        "turn": state.turn,
        "phase": state.phase.value,
        "lastRoll": state.last_roll.to_dict() if state.last_roll else None,
        "robberPending": state.robber_pending,
        "devCardsRemaining": len(state.dev_deck),
        "winner": state.winner,
        "log": [event.to_dict() for event in state.log[-20:]],
    }


def _dev_card_summary(player: PlayerState) -> Dict[str, Any]:
    kinds = Counter(card.kind.value for card in player.dev_cards)
    return {
        "held": len(player.dev_cards),
        "playable": sum(1 for card in player.dev_cards if card.can_play),
        "victory": sum(1 for card in player.dev_cards if card.kind.timing == CardTiming.PASSIVE),
        "byKind": dict(kinds),
        "played": {kind.value: count for kind, count in player.played_cards.items()},
    }


def build_snapshot(state: GameState) -> Dict[str, Any]:
    """Read-only view handed to external decision clients."""
    board = state.board
    open_nodes: List[Dict[str, Any]] = []
    for node in board.nodes:
        if node.building is not None or not node.can_build:
            continue
        open_nodes.append(
            {
                "id": node.node_id,
                "tiles": [
                    {
                        "id": tile_id,
                        "resource": board.tiles[tile_id].resource.value,
                        "number": board.tiles[tile_id].number_token,
                    }
                    for tile_id in node.adjacent_tiles
                ],
                "neighbors": board.neighbors_of(node.node_id),
                "harbors": [harbor.to_dict() for harbor in node.harbors],
            }
        )
    open_edges = [
        {"id": edge.edge_id, "nodes": [edge.node_a, edge.node_b]}
        for edge in board.edges
        if edge.owner_id is None
    ]
    return {
        "gameId": state.game_id,
        "currentPlayerId": state.current_player,
        "phase": state.phase.value,
        "players": [
            {
                "id": player.player_id,
                "resources": {res.value: amount for res, amount in player.resources.items()},
                "victoryPoints": player.victory_points,
                "devCards": _dev_card_summary(player),
                "hasRolled": player.has_rolled,
                "freeRoads": player.free_roads,
                "harbors": [harbor.to_dict() for harbor in player_harbors(board, player.player_id)],
            }
            for player in state.players
        ],
        "openNodes": open_nodes,
        "openEdges": open_edges,
        "robberTileId": board.robber_tile(),
        "robberPending": state.robber_pending,
        "devCardsRemaining": len(state.dev_deck),
        "lastRoll": state.last_roll.to_dict() if state.last_roll else None,
    }
