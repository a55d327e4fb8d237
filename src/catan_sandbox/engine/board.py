from __future__ import annotations

import logging
import math
import random
from typing import Dict, List, Sequence, Tuple

import numpy as np

from .errors import BoardGenerationError
from .types import Board, Edge, Harbor, Node, ResourceType, Tile

logger = logging.getLogger(__name__)

AXIAL_RADIUS = 2
TILE_SIZE = 48
KEY_PRECISION = 3
HARBOR_MIN_SPACING = 2

STANDARD_RESOURCES = [
    ResourceType.WOOD,
    ResourceType.WOOD,
    ResourceType.WOOD,
    ResourceType.WOOD,
    ResourceType.SHEEP,
    ResourceType.SHEEP,
    ResourceType.SHEEP,
    ResourceType.SHEEP,
    ResourceType.WHEAT,
    ResourceType.WHEAT,
    ResourceType.WHEAT,
    ResourceType.WHEAT,
    ResourceType.BRICK,
    ResourceType.BRICK,
    ResourceType.BRICK,
    ResourceType.ORE,
    ResourceType.ORE,
    ResourceType.ORE,
    ResourceType.DESERT,
]

STANDARD_NUMBER_TOKENS = [
    2,
    3,
    3,
    4,
    4,
    5,
    5,
    6,
    6,
    8,
    8,
    9,
    9,
    10,
    10,
    11,
    11,
    12,
]

STANDARD_HARBORS = [
    Harbor(ratio=2, resource=ResourceType.WOOD),
    Harbor(ratio=2, resource=ResourceType.BRICK),
    Harbor(ratio=2, resource=ResourceType.WHEAT),
    Harbor(ratio=2, resource=ResourceType.SHEEP),
    Harbor(ratio=2, resource=ResourceType.ORE),
    Harbor(ratio=3),
    Harbor(ratio=3),
    Harbor(ratio=3),
    Harbor(ratio=3),
]

AXIAL_DIRECTIONS = [
    (1, 0),
    (1, -1),
    (0, -1),
    (-1, 0),
    (-1, 1),
    (0, 1),
]

# Pointy-top corner angles: 60 * i - 30 degrees.
CORNER_ANGLES = np.deg2rad(60.0 * np.arange(6) - 30.0)


def axial_coords(radius: int = AXIAL_RADIUS) -> List[Tuple[int, int]]:
    coords: List[Tuple[int, int]] = []
    for q in range(-radius, radius + 1):
        for r in range(max(-radius, -q - radius), min(radius, -q + radius) + 1):
            coords.append((q, r))
    return coords


def ring_coords(radius: int) -> List[Tuple[int, int]]:
    return [coord for coord in axial_coords(radius) if hex_distance(coord, (0, 0)) == radius]


def hex_distance(a: Tuple[int, int], b: Tuple[int, int]) -> int:
    dq = a[0] - b[0]
    dr = a[1] - b[1]
    return (abs(dq) + abs(dq + dr) + abs(dr)) // 2


def axial_to_pixel(q: int, r: int, size: float = TILE_SIZE) -> Tuple[float, float]:
    return (size * math.sqrt(3) * (q + r / 2), size * 1.5 * r)


def hex_corners(center: Tuple[float, float], size: float = TILE_SIZE) -> np.ndarray:
    """Return the six corners of a pointy-top hex as a (6, 2) array."""
    cx, cy = center
    return np.column_stack((cx + size * np.cos(CORNER_ANGLES), cy + size * np.sin(CORNER_ANGLES)))


def resource_pool(count: int) -> List[ResourceType]:
    if count == len(STANDARD_RESOURCES):
        return list(STANDARD_RESOURCES)
    if count <= 0:
        return []
    producing = [res for res in STANDARD_RESOURCES if res != ResourceType.DESERT]
    pool = [producing[idx % len(producing)] for idx in range(count - 1)]
    pool.append(ResourceType.DESERT)
    return pool


def number_pool(count: int) -> List[int]:
    return [STANDARD_NUMBER_TOKENS[idx % len(STANDARD_NUMBER_TOKENS)] for idx in range(count)]


def _touches_land(coord: Tuple[int, int], land: set) -> bool:
    q, r = coord
    return any((q + dq, r + dr) in land for dq, dr in AXIAL_DIRECTIONS)


def _spaced(candidate: Tuple[int, int], placed: Sequence[Tuple[int, int]]) -> bool:
    return all(hex_distance(candidate, other) >= HARBOR_MIN_SPACING for other in placed)


def _place_greedy(candidates: List[Tuple[int, int]], count: int) -> List[Tuple[int, int]]:
    placed: List[Tuple[int, int]] = []
    for _ in range(count):
        choice = next((hex_ for hex_ in candidates if _spaced(hex_, placed)), None)
        if choice is not None:
            placed.append(choice)
    return placed


def _place_backtracking(candidates: List[Tuple[int, int]], count: int) -> List[Tuple[int, int]]:
    best: List[Tuple[int, int]] = []

    def search(start: int, placed: List[Tuple[int, int]]) -> bool:
        nonlocal best
        if len(placed) > len(best):
            best = list(placed)
        if len(placed) == count:
            return True
        if len(placed) + (len(candidates) - start) < count:
            return False
        for idx in range(start, len(candidates)):
            hex_ = candidates[idx]
            if not _spaced(hex_, placed):
                continue
            placed.append(hex_)
            if search(idx + 1, placed):
                return True
            placed.pop()
        return False

    search(0, [])
    return best


def place_harbors(
    water_coords: List[Tuple[int, int]],
    land_coords: List[Tuple[int, int]],
    rng: random.Random,
    harbors: Sequence[Harbor] = STANDARD_HARBORS,
    backtracking: bool = True,
) -> Dict[Tuple[int, int], Harbor]:
    """Assign harbors to shoreline water hexes, keeping them HARBOR_MIN_SPACING apart.

    The greedy pass walks the shuffled shoreline once per harbor and may place
    fewer than ``len(harbors)``. With ``backtracking`` the same shuffled order
    is searched depth-first so a full placement is found whenever one exists.
    """
    land = set(land_coords)
    candidates = [coord for coord in water_coords if _touches_land(coord, land)]
    rng.shuffle(candidates)
    if backtracking:
        chosen = _place_backtracking(candidates, len(harbors))
    else:
        chosen = _place_greedy(candidates, len(harbors))
    if len(chosen) < len(harbors):
        logger.info("placed %d of %d harbors", len(chosen), len(harbors))
    return {coord: harbor for coord, harbor in zip(chosen, harbors)}


def _build_tiles(
    radius: int, rng: random.Random, size: float, with_harbors: bool, backtracking: bool
) -> List[Tile]:
    land_coords = axial_coords(radius)
    resources = resource_pool(len(land_coords))
    rng.shuffle(resources)
    numbers = number_pool(sum(1 for res in resources if res != ResourceType.DESERT))
    rng.shuffle(numbers)

    tiles: List[Tile] = []
    number_idx = 0
    for tile_id, (q, r) in enumerate(land_coords):
        resource = resources[tile_id]
        number_token = None
        if resource != ResourceType.DESERT:
            number_token = numbers[number_idx]
            number_idx += 1
        tiles.append(
            Tile(
                tile_id=tile_id,
                axial=(q, r),
                center=axial_to_pixel(q, r, size),
                resource=resource,
                number_token=number_token,
                has_robber=resource == ResourceType.DESERT,
            )
        )

    if with_harbors:
        water_coords = ring_coords(radius + 1)
        harbor_at = place_harbors(water_coords, land_coords, rng, backtracking=backtracking)
        for q, r in water_coords:
            tiles.append(
                Tile(
                    tile_id=len(tiles),
                    axial=(q, r),
                    center=axial_to_pixel(q, r, size),
                    resource=ResourceType.WATER,
                    harbor=harbor_at.get((q, r)),
                )
            )
    return tiles


def _attach_harbor(node: Node, harbor: Harbor) -> None:
    if harbor not in node.harbors:
        node.harbors.append(harbor)


def build_board(tiles: List[Tile], size: float = TILE_SIZE) -> Board:
    """Deduplicate tile corners into nodes and tile sides into edges, then prune water-only nodes."""
    node_index: Dict[Tuple[float, float], int] = {}
    nodes: List[Node] = []
    edge_index: Dict[Tuple[int, int], int] = {}
    edge_pairs: List[Tuple[int, int]] = []
    corners_by_tile: Dict[int, List[int]] = {}

    for tile in tiles:
        corner_ids: List[int] = []
        for x, y in hex_corners(tile.center, size):
            key = (round(float(x), KEY_PRECISION), round(float(y), KEY_PRECISION))
            if key not in node_index:
                node_index[key] = len(nodes)
                nodes.append(Node(node_id=len(nodes), position=(float(x), float(y))))
            node = nodes[node_index[key]]
            if tile.tile_id not in node.adjacent_tiles:
                node.adjacent_tiles.append(tile.tile_id)
            corner_ids.append(node.node_id)
        corners_by_tile[tile.tile_id] = corner_ids

        for i in range(6):
            a = corner_ids[i]
            b = corner_ids[(i + 1) % 6]
            pair = (min(a, b), max(a, b))
            if pair not in edge_index:
                edge_index[pair] = len(edge_pairs)
                edge_pairs.append(pair)

    for tile in tiles:
        if tile.harbor is None:
            continue
        for node_id in corners_by_tile[tile.tile_id]:
            _attach_harbor(nodes[node_id], tile.harbor)

    for node in nodes:
        node.can_build = any(not tiles[tile_id].is_water for tile_id in node.adjacent_tiles)

    _rehome_stranded_harbors(tiles, nodes, corners_by_tile)

    remap: Dict[int, int] = {}
    kept_nodes: List[Node] = []
    for node in nodes:
        if not node.can_build:
            continue
        remap[node.node_id] = len(kept_nodes)
        node.node_id = len(kept_nodes)
        kept_nodes.append(node)

    edges: List[Edge] = []
    for a, b in edge_pairs:
        if a in remap and b in remap:
            edges.append(Edge(edge_id=len(edges), node_a=remap[a], node_b=remap[b]))

    board = Board(tiles=tiles, nodes=kept_nodes, edges=edges)
    validate_board(board)
    return board


def _rehome_stranded_harbors(
    tiles: List[Tile], nodes: List[Node], corners_by_tile: Dict[int, List[int]]
) -> None:
    buildable = [node for node in nodes if node.can_build]
    if not buildable:
        return
    positions = np.array([node.position for node in buildable])
    for tile in tiles:
        if tile.harbor is None:
            continue
        corners = [nodes[node_id] for node_id in corners_by_tile[tile.tile_id]]
        if any(node.can_build for node in corners):
            continue
        # Every corner is about to be pruned: move the harbor ashore.
        best_node, best_distance = None, math.inf
        for corner in corners:
            distances = np.hypot(positions[:, 0] - corner.position[0], positions[:, 1] - corner.position[1])
            idx = int(np.argmin(distances))
            if distances[idx] < best_distance:
                best_node, best_distance = buildable[idx], float(distances[idx])
        _attach_harbor(best_node, tile.harbor)


def validate_board(board: Board) -> None:
    for idx, node in enumerate(board.nodes):
        if node.node_id != idx:
            raise BoardGenerationError(f"node ids are not contiguous at {idx}")
        for tile_id in node.adjacent_tiles:
            if not 0 <= tile_id < len(board.tiles):
                raise BoardGenerationError(f"node {idx} references missing tile {tile_id}")
        if not 1 <= len(node.adjacent_tiles) <= 3:
            raise BoardGenerationError(f"node {idx} touches {len(node.adjacent_tiles)} tiles")
    for idx, edge in enumerate(board.edges):
        if edge.edge_id != idx:
            raise BoardGenerationError(f"edge ids are not contiguous at {idx}")
        if not (0 <= edge.node_a < len(board.nodes) and 0 <= edge.node_b < len(board.nodes)):
            raise BoardGenerationError(f"edge {idx} has a dangling endpoint")
    robbers = [tile for tile in board.tiles if tile.has_robber]
    if len(robbers) != 1 or robbers[0].is_water:
        raise BoardGenerationError(f"expected one robbed land tile, found {len(robbers)}")


def generate_board(
    radius: int = AXIAL_RADIUS,
    rng: random.Random | None = None,
    harbors: bool = False,
    backtracking: bool = True,
    size: float = TILE_SIZE,
) -> Board:
    """Generate a board of land hexes within ``radius``; deterministic for a seeded ``rng``.

    With ``harbors`` a ring of water hexes is added at ``radius + 1`` and
    harbor tokens are placed on it.
    """
    if radius < 0:
        raise ValueError(f"radius must be non-negative, got {radius}")
    if rng is None:
        rng = random.Random()
    tiles = _build_tiles(radius, rng, size, harbors, backtracking)
    board = build_board(tiles, size)
    logger.debug(
        "generated board: %d tiles, %d nodes, %d edges", len(board.tiles), len(board.nodes), len(board.edges)
    )
    return board


def standard_board(seed: int | None = None, harbors: bool = True, backtracking: bool = True) -> Board:
    return generate_board(AXIAL_RADIUS, random.Random(seed), harbors=harbors, backtracking=backtracking)
