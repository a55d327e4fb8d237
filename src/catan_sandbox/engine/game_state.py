from __future__ import annotations

import random
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from .config import RuleConfig
from .types import (
    TRADEABLE_RESOURCES,
    Board,
    BuildingType,
    CardTiming,
    DevCardType,
    DiceRoll,
    GameEvent,
    ResourceType,
    TurnPhase,
)

PLAYER_COLORS = ["#1976d2", "#e53935", "#8e24aa", "#ef6c00", "#2e7d32", "#6d4c41"]
MIN_PLAYERS = 2
MAX_PLAYERS = len(PLAYER_COLORS)

DEV_CARD_DECK: List[DevCardType] = (
    [DevCardType.VICTORY_POINT] * 5
    + [DevCardType.KNIGHT] * 14
    + [DevCardType.ROAD_BUILDING] * 2
    + [DevCardType.YEAR_OF_PLENTY] * 2
    + [DevCardType.MONOPOLY] * 2
)

ResourceBank = Dict[ResourceType, int]


def empty_resources(amount: int = 0) -> ResourceBank:
    return {resource: amount for resource in TRADEABLE_RESOURCES}


@dataclass
class DevCard:
    kind: DevCardType
    can_play: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {"kind": self.kind.value, "canPlay": self.can_play}


@dataclass
class PlayerState:
    player_id: int
    name: str
    color: str
    resources: ResourceBank
    victory_points: int = 0
    dev_cards: List[DevCard] = field(default_factory=list)
    played_cards: Dict[DevCardType, int] = field(default_factory=dict)
    knights_played: int = 0
    longest_road: bool = False
    largest_army: bool = False
    has_rolled: bool = False
    bought_dev_card_this_turn: bool = False
    free_roads: int = 0
    setup_towns: int = 0
    trades: int = 0

    @property
    def total_resources(self) -> int:
        return sum(self.resources.values())

    def playable_card_index(self, kind: DevCardType) -> int | None:
        for idx, card in enumerate(self.dev_cards):
            if card.kind == kind and card.can_play:
                return idx
        return None

    def held_victory_cards(self) -> int:
        return sum(1 for card in self.dev_cards if card.kind.timing == CardTiming.PASSIVE)


@dataclass
class GameState:
    game_id: str
    board: Board
    players: List[PlayerState]
    config: RuleConfig
    dev_deck: List[DevCardType]
    current_player: int = 0
    turn: int = 1
    last_roll: DiceRoll | None = None
    robber_pending: bool = False
    log: List[GameEvent] = field(default_factory=list)
    winner: int | None = None

    @property
    def in_setup(self) -> bool:
        return sum(1 for _ in self.board.buildings()) < len(self.players) * 2

    @property
    def phase(self) -> TurnPhase:
        if self.winner is not None:
            return TurnPhase.END
        if self.in_setup:
            return TurnPhase.SETUP
        if not self.players[self.current_player].has_rolled:
            return TurnPhase.ROLL
        if self.robber_pending:
            return TurnPhase.MOVE_ROBBER
        return TurnPhase.MAIN

    def count_buildings(self, player_id: int, kind: BuildingType) -> int:
        return sum(
            1
            for node in self.board.buildings()
            if node.building.owner_id == player_id and node.building.kind == kind
        )

    def count_roads(self, player_id: int) -> int:
        return sum(1 for edge in self.board.edges if edge.owner_id == player_id)

    def cards_in_play(self) -> int:
        """Deck plus hands plus played piles; constant for the whole game."""
        held = sum(len(player.dev_cards) for player in self.players)
        played = sum(sum(player.played_cards.values()) for player in self.players)
        return len(self.dev_deck) + held + played


def initial_players(
    num_players: int, config: RuleConfig, names: Sequence[str] | None = None
) -> List[PlayerState]:
    if not MIN_PLAYERS <= num_players <= MAX_PLAYERS:
        raise ValueError(f"num_players must be between {MIN_PLAYERS} and {MAX_PLAYERS}, got {num_players}")
    names = list(names or [])
    players: List[PlayerState] = []
    for pid in range(num_players):
        players.append(
            PlayerState(
                player_id=pid,
                name=names[pid] if pid < len(names) else f"Player {pid + 1}",
                color=PLAYER_COLORS[pid],
                resources=empty_resources(config.starting_resources),
            )
        )
    return players


def shuffled_deck(rng: random.Random) -> List[DevCardType]:
    deck = list(DEV_CARD_DECK)
    rng.shuffle(deck)
    return deck


def initial_game_state(
    board: Board,
    rng: random.Random,
    num_players: int = 4,
    config: RuleConfig | None = None,
    game_id: str | None = None,
    player_names: Sequence[str] | None = None,
) -> GameState:
    if config is None:
        config = RuleConfig()
    return GameState(
        game_id=game_id or uuid.uuid4().hex,
        board=board,
        players=initial_players(num_players, config, player_names),
        config=config,
        dev_deck=shuffled_deck(rng),
    )
