"""Game storage and automated-player orchestration."""

from .autoplay import AutoPlayer, DecisionClient, PriorityDecisionClient, RandomDecisionClient
from .repository import GameRepository, InMemoryGameRepository

__all__ = [
    "AutoPlayer",
    "DecisionClient",
    "GameRepository",
    "InMemoryGameRepository",
    "PriorityDecisionClient",
    "RandomDecisionClient",
]
