"""Core game engine for the Catan sandbox."""

from .actions import dispatch, parse_action, perform
from .board import generate_board, standard_board
from .config import RuleConfig
from .errors import (
    BoardGenerationError,
    CatanError,
    GameNotFoundError,
    IllegalActionError,
    UnknownActionError,
)
from .game_state import GameState, PlayerState, initial_game_state
from .legal import legal_actions
from .rules import GameEngine
from .serialization import build_snapshot, serialize_board, serialize_state
from .types import Action, ActionType, Board, BuildingType, DevCardType, ResourceType, TurnPhase

__all__ = [
    "Action",
    "ActionType",
    "Board",
    "BoardGenerationError",
    "BuildingType",
    "CatanError",
    "DevCardType",
    "GameEngine",
    "GameNotFoundError",
    "GameState",
    "IllegalActionError",
    "PlayerState",
    "ResourceType",
    "RuleConfig",
    "TurnPhase",
    "UnknownActionError",
    "build_snapshot",
    "dispatch",
    "generate_board",
    "initial_game_state",
    "legal_actions",
    "parse_action",
    "perform",
    "serialize_board",
    "serialize_state",
    "standard_board",
]
