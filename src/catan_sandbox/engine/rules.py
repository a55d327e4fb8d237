from __future__ import annotations

import logging
import random
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Sequence

import networkx as nx

from .board import generate_board
from .config import RuleConfig
from .errors import IllegalActionError
from .game_state import (
    DevCard,
    GameState,
    PlayerState,
    ResourceBank,
    initial_game_state,
    initial_players,
)
from .types import (
    TRADEABLE_RESOURCES,
    ActionType,
    Board,
    Building,
    BuildingType,
    CardTiming,
    DevCardType,
    DiceRoll,
    GameEvent,
    Harbor,
    ResourceType,
)

logger = logging.getLogger(__name__)

COSTS: Dict[ActionType, Dict[ResourceType, int]] = {
    ActionType.BUILD_ROAD: {ResourceType.WOOD: 1, ResourceType.BRICK: 1},
    ActionType.BUILD_TOWN: {
        ResourceType.WOOD: 1,
        ResourceType.BRICK: 1,
        ResourceType.WHEAT: 1,
        ResourceType.SHEEP: 1,
    },
    ActionType.BUILD_CITY: {ResourceType.WHEAT: 2, ResourceType.ORE: 3},
    ActionType.BUY_DEV_CARD: {ResourceType.SHEEP: 1, ResourceType.WHEAT: 1, ResourceType.ORE: 1},
}

LONGEST_ROAD_MIN = 5
LARGEST_ARMY_MIN = 3
DISCARD_THRESHOLD = 7


def can_afford(resources: ResourceBank, cost: Dict[ResourceType, int]) -> bool:
    return all(resources.get(key, 0) >= amount for key, amount in cost.items())


def _apply_cost(resources: ResourceBank, cost: Dict[ResourceType, int]) -> None:
    for key, amount in cost.items():
        resources[key] -= amount


def parse_resource(value: object) -> ResourceType:
    try:
        resource = ResourceType(value.value if isinstance(value, ResourceType) else str(value).lower())
    except ValueError:
        raise IllegalActionError("invalid_resource", f"Unknown resource: {value!r}") from None
    if not resource.is_tradeable:
        raise IllegalActionError("invalid_resource", f"{resource.value} is not a tradeable resource")
    return resource


def distance_rule_ok(board: Board, node_id: int) -> bool:
    return all(board.nodes[neighbor].building is None for neighbor in board.neighbors_of(node_id))


def owns_building(board: Board, node_id: int, player_id: int) -> bool:
    building = board.nodes[node_id].building
    return building is not None and building.owner_id == player_id


def road_touches_network(board: Board, edge_id: int, player_id: int) -> bool:
    edge = board.edges[edge_id]
    for node_id in edge.endpoints:
        if owns_building(board, node_id, player_id):
            return True
        building = board.nodes[node_id].building
        if building is not None:
            # An opponent's building cuts the road network at this node.
            continue
        for other_id in board.edges_of(node_id):
            if other_id != edge_id and board.edges[other_id].owner_id == player_id:
                return True
    return False


def node_touches_own_road(board: Board, node_id: int, player_id: int) -> bool:
    return any(board.edges[edge_id].owner_id == player_id for edge_id in board.edges_of(node_id))


def trading_ratio(board: Board, player_id: int, resource: ResourceType, default: int = 4) -> int:
    """Best exchange ratio for ``resource``: specific harbor, generic harbor or the bank default."""
    ratio = default
    for node in board.buildings():
        if node.building.owner_id != player_id:
            continue
        for harbor in node.harbors:
            if harbor.is_generic or harbor.resource == resource:
                ratio = min(ratio, harbor.ratio)
    return ratio


def player_harbors(board: Board, player_id: int) -> List[Harbor]:
    harbors: List[Harbor] = []
    for node in board.buildings():
        if node.building.owner_id == player_id:
            harbors.extend(h for h in node.harbors if h not in harbors)
    return harbors


def longest_road_length(board: Board, player_id: int) -> int:
    graph = nx.Graph()
    graph.add_edges_from(edge.endpoints for edge in board.edges if edge.owner_id == player_id)
    if graph.number_of_edges() == 0:
        return 0

    def blocked(node_id: int) -> bool:
        building = board.nodes[node_id].building
        return building is not None and building.owner_id != player_id

    best = 0

    def walk(node_id: int, used: set, length: int) -> None:
        nonlocal best
        best = max(best, length)
        if length > 0 and blocked(node_id):
            return
        for neighbor in graph.neighbors(node_id):
            key = frozenset((node_id, neighbor))
            if key in used:
                continue
            used.add(key)
            walk(neighbor, used, length + 1)
            used.discard(key)

    for start in graph.nodes:
        walk(start, set(), 0)
    return best


def _award_title(scores: Sequence[int], holder: int | None, minimum: int) -> int | None:
    """Title holder after a recount: strictly highest at ``minimum`` or more; the holder keeps ties."""
    top = max(scores) if scores else 0
    if top < minimum:
        return None
    leaders = [pid for pid, score in enumerate(scores) if score == top]
    if len(leaders) == 1:
        return leaders[0]
    if holder in leaders:
        return holder
    return None


def victory_points(state: GameState, player: PlayerState) -> int:
    points = 0
    for node in state.board.buildings():
        if node.building.owner_id == player.player_id:
            points += 1 if node.building.kind == BuildingType.TOWN else 2
    if player.longest_road:
        points += 2
    if player.largest_army:
        points += 2
    return points + player.held_victory_cards()


class GameEngine:
    """Turn-based rules engine for one game.

    Every public operation validates first, mutates second and finishes with
    ``_commit``, which refreshes standings, appends the event to the log and
    checks for a winner. A rejected call raises ``IllegalActionError`` and
    leaves the state untouched.
    """

    def __init__(
        self,
        num_players: int = 4,
        *,
        seed: int | None = None,
        rng: random.Random | None = None,
        config: RuleConfig | None = None,
        game_id: str | None = None,
        player_names: Sequence[str] | None = None,
    ):
        self.config = config or RuleConfig()
        self.rng = rng if rng is not None else random.Random(seed)
        board = self._new_board()
        self.state = initial_game_state(
            board,
            self.rng,
            num_players=num_players,
            config=self.config,
            game_id=game_id,
            player_names=player_names,
        )
        if self.config.auto_setup:
            self._place_initial_buildings()
        self._refresh_standings()
        logger.info("created game %s with %d players", self.state.game_id, num_players)

    # ----- read helpers -----

    @property
    def game_id(self) -> str:
        return self.state.game_id

    @property
    def board(self) -> Board:
        return self.state.board

    @property
    def players(self) -> List[PlayerState]:
        return self.state.players

    @property
    def current_player(self) -> int:
        return self.state.current_player

    @property
    def winner(self) -> int | None:
        return self.state.winner

    @property
    def log(self) -> List[GameEvent]:
        return self.state.log

    def trading_ratio(self, player_id: int, resource: ResourceType) -> int:
        return trading_ratio(self.board, player_id, resource, self.config.bank_trade_ratio)

    # ----- setup -----

    def _new_board(self) -> Board:
        return generate_board(
            self.config.board_radius,
            self.rng,
            harbors=self.config.harbors,
            backtracking=self.config.harbor_backtracking,
        )

    def _place_initial_buildings(self) -> None:
        board = self.board
        deserts = {tile.tile_id for tile in board.tiles if tile.resource == ResourceType.DESERT}
        available = [
            node.node_id
            for node in board.nodes
            if node.can_build and node.building is None and not deserts.intersection(node.adjacent_tiles)
        ]
        for player in self.players:
            for _ in range(2):
                if not available:
                    logger.warning("ran out of setup nodes for player %d", player.player_id)
                    break
                node_id = available.pop(self.rng.randrange(len(available)))
                board.nodes[node_id].building = Building(player.player_id, BuildingType.TOWN)
                open_edges = [
                    edge_id for edge_id in board.edges_of(node_id) if board.edges[edge_id].owner_id is None
                ]
                if open_edges:
                    board.edges[self.rng.choice(open_edges)].owner_id = player.player_id
                neighbors = set(board.neighbors_of(node_id))
                available = [nid for nid in available if nid not in neighbors]

    def reroll_board(self) -> GameEvent:
        """Throw the board away and deal a fresh one; only before anyone has rolled."""
        self._require_active()
        if any(p.has_rolled for p in self.players) or any(e.event_type == "rollDice" for e in self.log):
            raise IllegalActionError("reroll_after_start", "The board can only be rerolled before the first roll")
        names = [player.name for player in self.players]
        self.state.board = self._new_board()
        self.state.players = initial_players(len(names), self.config, names)
        self.state.current_player = 0
        self.state.robber_pending = False
        if self.config.auto_setup:
            self._place_initial_buildings()
        logger.info("rerolled board for game %s", self.game_id)
        return self._commit("rerollBoard", {"tiles": len(self.board.tiles)})

    # ----- validation helpers -----

    def _require_active(self) -> None:
        if self.state.winner is not None:
            raise IllegalActionError("game_over", "The game is over")

    def _acting_player(self, player_id: int | None) -> PlayerState:
        self._require_active()
        if player_id is None:
            player_id = self.state.current_player
        try:
            player_id = int(player_id)
        except (TypeError, ValueError, OverflowError):
            raise IllegalActionError("invalid_player", f"Invalid player: {player_id!r}") from None
        if not 0 <= player_id < len(self.players):
            raise IllegalActionError("invalid_player", f"Invalid player: {player_id}")
        if player_id != self.state.current_player:
            raise IllegalActionError("not_your_turn", f"It is not player {player_id}'s turn")
        return self.players[player_id]

    def _require_main_phase(self, player: PlayerState) -> None:
        if self.state.in_setup:
            raise IllegalActionError("setup_in_progress", "Finish initial placement first")
        if not player.has_rolled:
            raise IllegalActionError("must_roll", "You must roll the dice before building or trading!")
        if self.state.robber_pending:
            raise IllegalActionError("must_move_robber", "Move the robber first")

    def _require_cost(self, player: PlayerState, action: ActionType, label: str) -> None:
        if not can_afford(player.resources, COSTS[action]):
            raise IllegalActionError("insufficient_resources", f"Not enough resources for {label}")

    @staticmethod
    def _as_int(value: object, reason: str, label: str) -> int:
        try:
            return int(value)
        except (TypeError, ValueError, OverflowError):
            raise IllegalActionError(reason, f"Invalid {label}: {value!r}") from None

    def _take_card(self, player: PlayerState, kind: DevCardType, label: str) -> None:
        idx = player.playable_card_index(kind)
        if idx is None:
            raise IllegalActionError("no_playable_card", f"No playable {label} card")
        del player.dev_cards[idx]
        player.played_cards[kind] = player.played_cards.get(kind, 0) + 1

    # ----- dice and robber -----

    def roll_dice(self, player_id: int | None = None) -> GameEvent:
        player = self._acting_player(player_id)
        if self.state.in_setup:
            raise IllegalActionError("setup_in_progress", "Finish initial placement first")
        if player.has_rolled:
            raise IllegalActionError("already_rolled", "You already rolled this turn!")

        roll = DiceRoll(self.rng.randint(1, 6), self.rng.randint(1, 6))
        self.state.last_roll = roll
        player.has_rolled = True
        details: Dict[str, object] = roll.to_dict()
        if roll.total == 7:
            self.state.robber_pending = True
            if self.config.discard_on_seven:
                details["discarded"] = self._discard_half()
        else:
            details["production"] = self._produce(roll.total)
        return self._commit("rollDice", details)

    def _produce(self, total: int) -> Dict[int, Dict[str, int]]:
        board = self.board
        produced: Dict[int, Dict[str, int]] = {}
        for tile in board.tiles:
            if tile.has_robber or tile.number_token != total or not tile.produces:
                continue
            for node_id in board.tile_nodes(tile.tile_id):
                building = board.nodes[node_id].building
                if building is None:
                    continue
                amount = 2 if building.kind == BuildingType.CITY else 1
                self.players[building.owner_id].resources[tile.resource] += amount
                gains = produced.setdefault(building.owner_id, {})
                gains[tile.resource.value] = gains.get(tile.resource.value, 0) + amount
        return produced

    def _discard_half(self) -> Dict[int, Dict[str, int]]:
        discarded: Dict[int, Dict[str, int]] = {}
        for player in self.players:
            if player.total_resources <= DISCARD_THRESHOLD:
                continue
            hand = [res for res in TRADEABLE_RESOURCES for _ in range(player.resources[res])]
            lost: Dict[str, int] = {}
            for resource in self.rng.sample(hand, len(hand) // 2):
                player.resources[resource] -= 1
                lost[resource.value] = lost.get(resource.value, 0) + 1
            discarded[player.player_id] = lost
        return discarded

    def move_robber(self, hex_id: int, player_id: int | None = None) -> GameEvent:
        player = self._acting_player(player_id)
        if not self.state.robber_pending:
            raise IllegalActionError("robber_not_pending", "The robber can only move after a 7 or a Knight")
        tile = self.board.tile(self._as_int(hex_id, "tile_not_found", "tile"))
        if tile is None:
            raise IllegalActionError("tile_not_found", f"Invalid tile: {hex_id}")
        if tile.is_water:
            raise IllegalActionError("robber_on_water", "The robber must stay on land")
        if tile.has_robber:
            raise IllegalActionError("robber_same_tile", "The robber must move to a different tile")

        for other in self.board.tiles:
            other.has_robber = False
        tile.has_robber = True
        self.state.robber_pending = False
        details: Dict[str, object] = {"playerId": player.player_id, "hexId": tile.tile_id}
        if self.config.robber_steals:
            details["stolen"] = self._steal(player, tile.tile_id)
        return self._commit("moveRobber", details)

    def _steal(self, thief: PlayerState, tile_id: int) -> Dict[str, object] | None:
        victims = sorted(
            {
                self.board.nodes[node_id].building.owner_id
                for node_id in self.board.tile_nodes(tile_id)
                if self.board.nodes[node_id].building is not None
            }
            - {thief.player_id}
        )
        victims = [pid for pid in victims if self.players[pid].total_resources > 0]
        if not victims:
            return None
        victim = self.players[self.rng.choice(victims)]
        hand = [res for res in TRADEABLE_RESOURCES for _ in range(victim.resources[res])]
        resource = self.rng.choice(hand)
        victim.resources[resource] -= 1
        thief.resources[resource] += 1
        return {"from": victim.player_id, "resource": resource.value}

    # ----- building -----

    def build_road(self, edge_id: int, player_id: int | None = None, free: bool = False) -> GameEvent:
        player = self._acting_player(player_id)
        edge = self.board.edge(self._as_int(edge_id, "edge_not_found", "edge"))
        if edge is None:
            raise IllegalActionError("edge_not_found", f"Invalid edge: {edge_id}")
        if edge.owner_id is not None:
            raise IllegalActionError("edge_occupied", "Edge already taken")
        if free:
            if player.free_roads <= 0:
                raise IllegalActionError("no_free_roads", "No free roads available")
        else:
            self._require_main_phase(player)
        if not road_touches_network(self.board, edge.edge_id, player.player_id):
            raise IllegalActionError("road_not_connected", "Road must connect to your building or existing road")
        if self.state.count_roads(player.player_id) >= self.config.max_roads:
            raise IllegalActionError("no_road_pieces", "No road pieces left")
        if not free:
            self._require_cost(player, ActionType.BUILD_ROAD, "road")

        if free:
            player.free_roads -= 1
        else:
            _apply_cost(player.resources, COSTS[ActionType.BUILD_ROAD])
        edge.owner_id = player.player_id
        return self._commit("buildRoad", {"playerId": player.player_id, "edgeId": edge.edge_id, "free": free})

    def build_town(self, node_id: int, player_id: int | None = None) -> GameEvent:
        player = self._acting_player(player_id)
        node = self.board.node(self._as_int(node_id, "node_not_found", "node"))
        if node is None:
            raise IllegalActionError("node_not_found", f"Invalid node: {node_id}")
        if not node.can_build:
            raise IllegalActionError("node_not_buildable", "Cannot build here - no adjacent land")
        if node.building is not None:
            raise IllegalActionError("node_occupied", "Node already has a building")
        if not distance_rule_ok(self.board, node.node_id):
            raise IllegalActionError("too_close", "Too close to another town/city")
        setup = self.state.in_setup
        if setup:
            if player.setup_towns >= 2:
                raise IllegalActionError("setup_towns_placed", "You already placed your starting towns")
        else:
            self._require_main_phase(player)
            if not node_touches_own_road(self.board, node.node_id, player.player_id):
                raise IllegalActionError("town_not_connected", "Town must touch one of your roads")
        if self.state.count_buildings(player.player_id, BuildingType.TOWN) >= self.config.max_towns:
            raise IllegalActionError("no_town_pieces", "No town pieces left")
        if not setup:
            self._require_cost(player, ActionType.BUILD_TOWN, "town")

        if setup:
            player.setup_towns += 1
            player.free_roads += 1
        else:
            _apply_cost(player.resources, COSTS[ActionType.BUILD_TOWN])
        node.building = Building(player.player_id, BuildingType.TOWN)
        return self._commit("buildTown", {"playerId": player.player_id, "nodeId": node.node_id, "setup": setup})

    def build_city(self, node_id: int, player_id: int | None = None) -> GameEvent:
        player = self._acting_player(player_id)
        node = self.board.node(self._as_int(node_id, "node_not_found", "node"))
        if node is None:
            raise IllegalActionError("node_not_found", f"Invalid node: {node_id}")
        building = node.building
        if building is None or building.owner_id != player.player_id or building.kind != BuildingType.TOWN:
            raise IllegalActionError("city_requires_town", "Must upgrade your own town")
        self._require_main_phase(player)
        if self.state.count_buildings(player.player_id, BuildingType.CITY) >= self.config.max_cities:
            raise IllegalActionError("no_city_pieces", "No city pieces left")
        self._require_cost(player, ActionType.BUILD_CITY, "city")

        _apply_cost(player.resources, COSTS[ActionType.BUILD_CITY])
        node.building = Building(player.player_id, BuildingType.CITY)
        return self._commit("buildCity", {"playerId": player.player_id, "nodeId": node.node_id})

    # ----- trading -----

    def trade_harbor(self, player_id: int | None, give: object, receive: object) -> GameEvent:
        player = self._acting_player(player_id)
        give_res = parse_resource(give)
        receive_res = parse_resource(receive)
        if give_res == receive_res:
            raise IllegalActionError("invalid_trade_pair", "Cannot trade a resource for itself")
        self._require_main_phase(player)
        ratio = self.trading_ratio(player.player_id, give_res)
        if player.resources[give_res] < ratio:
            raise IllegalActionError("insufficient_resources", f"Not enough {give_res.value} to trade")

        player.resources[give_res] -= ratio
        player.resources[receive_res] += 1
        player.trades += 1
        return self._commit(
            "harborTrade",
            {
                "playerId": player.player_id,
                "giveResource": give_res.value,
                "receiveResource": receive_res.value,
                "ratio": ratio,
            },
        )

    # ----- development cards -----

    def buy_dev_card(self, player_id: int | None = None) -> GameEvent:
        player = self._acting_player(player_id)
        self._require_main_phase(player)
        if not self.state.dev_deck:
            raise IllegalActionError("deck_empty", "No development cards remaining")
        self._require_cost(player, ActionType.BUY_DEV_CARD, "dev card")

        _apply_cost(player.resources, COSTS[ActionType.BUY_DEV_CARD])
        kind = self.state.dev_deck.pop()
        player.dev_cards.append(DevCard(kind=kind, can_play=False))
        player.bought_dev_card_this_turn = True
        return self._commit("buyDevCard", {"playerId": player.player_id, "cardType": kind.value})

    def play_knight(self, player_id: int | None = None) -> GameEvent:
        player = self._acting_player(player_id)
        if self.state.robber_pending:
            raise IllegalActionError("must_move_robber", "Move the robber first")
        self._take_card(player, DevCardType.KNIGHT, "Knight")
        player.knights_played += 1
        self.state.robber_pending = True
        return self._commit("playKnight", {"playerId": player.player_id, "knightsPlayed": player.knights_played})

    def play_road_building(self, player_id: int | None = None) -> GameEvent:
        player = self._acting_player(player_id)
        self._take_card(player, DevCardType.ROAD_BUILDING, "Road Building")
        player.free_roads += 2
        return self._commit("playRoadBuilding", {"playerId": player.player_id, "freeRoads": player.free_roads})

    def play_year_of_plenty(self, player_id: int | None, resource1: object, resource2: object) -> GameEvent:
        player = self._acting_player(player_id)
        first = parse_resource(resource1)
        second = parse_resource(resource2)
        self._take_card(player, DevCardType.YEAR_OF_PLENTY, "Year of Plenty")
        player.resources[first] += 1
        player.resources[second] += 1
        return self._commit(
            "playYearOfPlenty",
            {"playerId": player.player_id, "resource1": first.value, "resource2": second.value},
        )

    def play_monopoly(self, player_id: int | None, resource: object) -> GameEvent:
        player = self._acting_player(player_id)
        target = parse_resource(resource)
        self._take_card(player, DevCardType.MONOPOLY, "Monopoly")
        total = 0
        for other in self.players:
            if other.player_id == player.player_id:
                continue
            total += other.resources[target]
            other.resources[target] = 0
        player.resources[target] += total
        return self._commit(
            "playMonopoly", {"playerId": player.player_id, "resource": target.value, "totalStolen": total}
        )

    # ----- turn end -----

    def end_turn(self, player_id: int | None = None) -> GameEvent:
        player = self._acting_player(player_id)
        if not self.state.in_setup and not player.has_rolled:
            raise IllegalActionError("must_roll", "Roll the dice before ending your turn")

        for card in player.dev_cards:
            if card.kind.timing == CardTiming.DELAYED:
                card.can_play = True
        player.bought_dev_card_this_turn = False
        player.has_rolled = False
        player.free_roads = 0
        self.state.robber_pending = False
        self.state.current_player = (self.state.current_player + 1) % len(self.players)
        self.state.turn += 1
        return self._commit("endTurn", {"playerId": player.player_id, "nextPlayer": self.state.current_player})

    # ----- post-action hook -----

    def _refresh_standings(self) -> None:
        state = self.state
        holder = next((p.player_id for p in state.players if p.longest_road), None)
        lengths = [longest_road_length(state.board, p.player_id) for p in state.players]
        road_holder = _award_title(lengths, holder, LONGEST_ROAD_MIN)

        holder = next((p.player_id for p in state.players if p.largest_army), None)
        army_holder = _award_title([p.knights_played for p in state.players], holder, LARGEST_ARMY_MIN)

        for player in state.players:
            player.longest_road = player.player_id == road_holder
            player.largest_army = player.player_id == army_holder
            player.victory_points = victory_points(state, player)

    def _event(self, event_type: str, details: Dict[str, object]) -> GameEvent:
        event = GameEvent(
            event_id=len(self.state.log),
            game_id=self.state.game_id,
            turn=self.state.turn,
            timestamp=datetime.now(timezone.utc).isoformat(),
            event_type=event_type,
            details=details,
        )
        self.state.log.append(event)
        return event

    def _commit(self, event_type: str, details: Dict[str, object]) -> GameEvent:
        self._refresh_standings()
        event = self._event(event_type, details)
        logger.debug("game %s: %s %s", self.game_id, event_type, details)
        self._check_winner()
        return event

    def _check_winner(self) -> None:
        if self.state.winner is not None:
            return
        count = len(self.players)
        order: Iterable[int] = ((self.state.current_player + offset) % count for offset in range(count))
        for pid in order:
            player = self.players[pid]
            if player.victory_points >= self.config.victory_points_to_win:
                self.state.winner = pid
                logger.info("game %s won by player %d with %d VP", self.game_id, pid, player.victory_points)
                self._event("gameOver", {"winner": pid, "victoryPoints": player.victory_points})
                return
