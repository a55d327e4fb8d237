from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

import networkx as nx


class ResourceType(str, Enum):
    WOOD = "wood"
    BRICK = "brick"
    WHEAT = "wheat"
    SHEEP = "sheep"
    ORE = "ore"
    DESERT = "desert"
    WATER = "water"

    @property
    def is_tradeable(self) -> bool:
        return self in TRADEABLE_RESOURCES


TRADEABLE_RESOURCES: Tuple[ResourceType, ...] = (
    ResourceType.WOOD,
    ResourceType.BRICK,
    ResourceType.WHEAT,
    ResourceType.SHEEP,
    ResourceType.ORE,
)


class BuildingType(str, Enum):
    TOWN = "town"
    CITY = "city"


class CardTiming(str, Enum):
    """When a development card may be played after it is bought."""

    DELAYED = "delayed"  # locked until the owner's next end of turn
    PASSIVE = "passive"  # never played; scores while held


class DevCardType(str, Enum):
    KNIGHT = "knight"
    ROAD_BUILDING = "road-building"
    YEAR_OF_PLENTY = "year-of-plenty"
    MONOPOLY = "monopoly"
    VICTORY_POINT = "victory"

    @property
    def timing(self) -> CardTiming:
        if self == DevCardType.VICTORY_POINT:
            return CardTiming.PASSIVE
        return CardTiming.DELAYED


class ActionType(str, Enum):
    ROLL_DICE = "rollDice"
    MOVE_ROBBER = "moveRobber"
    BUILD_ROAD = "buildRoad"
    BUILD_TOWN = "buildTown"
    BUILD_CITY = "buildCity"
    HARBOR_TRADE = "harborTrade"
    BUY_DEV_CARD = "buyDevCard"
    PLAY_KNIGHT = "playKnight"
    PLAY_ROAD_BUILDING = "playRoadBuilding"
    PLAY_YEAR_OF_PLENTY = "playYearOfPlenty"
    PLAY_MONOPOLY = "playMonopoly"
    END_TURN = "endTurn"


class TurnPhase(str, Enum):
    SETUP = "setup"
    ROLL = "roll"
    MOVE_ROBBER = "move_robber"
    MAIN = "main"
    END = "end"


@dataclass(frozen=True)
class Harbor:
    ratio: int
    resource: Optional[ResourceType] = None  # None trades any resource

    @property
    def is_generic(self) -> bool:
        return self.resource is None

    def to_dict(self) -> Dict[str, object]:
        return {
            "ratio": self.ratio,
            "resource": "any" if self.resource is None else self.resource.value,
        }


@dataclass
class Tile:
    tile_id: int
    axial: Tuple[int, int]
    center: Tuple[float, float]
    resource: ResourceType
    number_token: int | None = None
    has_robber: bool = False
    harbor: Harbor | None = None

    @property
    def is_water(self) -> bool:
        return self.resource == ResourceType.WATER

    @property
    def produces(self) -> bool:
        return self.resource.is_tradeable and self.number_token is not None


@dataclass(frozen=True)
class Building:
    owner_id: int
    kind: BuildingType


@dataclass
class Node:
    node_id: int
    position: Tuple[float, float]
    adjacent_tiles: List[int] = field(default_factory=list)
    building: Building | None = None
    harbors: List[Harbor] = field(default_factory=list)
    can_build: bool = False


@dataclass
class Edge:
    edge_id: int
    node_a: int
    node_b: int
    owner_id: int | None = None

    @property
    def endpoints(self) -> Tuple[int, int]:
        return (self.node_a, self.node_b)

    def touches(self, node_id: int) -> bool:
        return node_id == self.node_a or node_id == self.node_b


@dataclass
class Board:
    tiles: List[Tile]
    nodes: List[Node]
    edges: List[Edge]
    _node_edges: Dict[int, List[int]] = field(init=False, repr=False, compare=False)
    _tile_nodes: Dict[int, List[int]] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._node_edges = {node.node_id: [] for node in self.nodes}
        for edge in self.edges:
            self._node_edges[edge.node_a].append(edge.edge_id)
            self._node_edges[edge.node_b].append(edge.edge_id)
        self._tile_nodes = {tile.tile_id: [] for tile in self.tiles}
        for node in self.nodes:
            for tile_id in node.adjacent_tiles:
                self._tile_nodes[tile_id].append(node.node_id)

    def node(self, node_id: int) -> Node | None:
        if 0 <= node_id < len(self.nodes):
            return self.nodes[node_id]
        return None

    def edge(self, edge_id: int) -> Edge | None:
        if 0 <= edge_id < len(self.edges):
            return self.edges[edge_id]
        return None

    def tile(self, tile_id: int) -> Tile | None:
        if 0 <= tile_id < len(self.tiles):
            return self.tiles[tile_id]
        return None

    def edges_of(self, node_id: int) -> List[int]:
        return list(self._node_edges.get(node_id, []))

    def neighbors_of(self, node_id: int) -> List[int]:
        neighbors: List[int] = []
        for edge_id in self._node_edges.get(node_id, []):
            edge = self.edges[edge_id]
            neighbors.append(edge.node_b if edge.node_a == node_id else edge.node_a)
        return neighbors

    def tile_nodes(self, tile_id: int) -> List[int]:
        return list(self._tile_nodes.get(tile_id, []))

    def land_tiles(self) -> Iterable[Tile]:
        return (tile for tile in self.tiles if not tile.is_water)

    def robber_tile(self) -> int:
        for tile in self.tiles:
            if tile.has_robber:
                return tile.tile_id
        raise LookupError("board has no robber")

    def buildings(self) -> Iterable[Node]:
        return (node for node in self.nodes if node.building is not None)

    def to_networkx(self) -> nx.Graph:
        graph = nx.Graph()
        graph.add_nodes_from(node.node_id for node in self.nodes)
        graph.add_edges_from(
            (edge.node_a, edge.node_b, {"edge_id": edge.edge_id}) for edge in self.edges
        )
        return graph


@dataclass(frozen=True)
class DiceRoll:
    d1: int
    d2: int

    @property
    def total(self) -> int:
        return self.d1 + self.d2

    def to_dict(self) -> Dict[str, int]:
        return {"d1": self.d1, "d2": self.d2, "total": self.total}


@dataclass(frozen=True)
class Action:
    action_type: ActionType
    payload: Dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {"type": self.action_type.value, "payload": dict(self.payload)}


@dataclass(frozen=True)
class GameEvent:
    event_id: int
    game_id: str
    turn: int
    timestamp: str
    event_type: str
    details: Dict[str, object]

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.event_id,
            "gameId": self.game_id,
            "turn": self.turn,
            "timestamp": self.timestamp,
            "type": self.event_type,
            "details": dict(self.details),
        }
