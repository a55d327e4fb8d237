"""Game storage.

The web layer and the CLI never keep engines in module globals; they go through
a ``GameRepository``. The in-memory implementation hands out one lock per game
so that a request holds its game for the whole engine interaction while other
games stay available.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterator, List

from ..engine.errors import GameNotFoundError
from ..engine.rules import GameEngine


class GameRepository(ABC):
    @abstractmethod
    def add(self, engine: GameEngine) -> GameEngine:
        ...

    @abstractmethod
    def get(self, game_id: str) -> GameEngine:
        ...

    @abstractmethod
    def remove(self, game_id: str) -> None:
        ...

    @abstractmethod
    def ids(self) -> List[str]:
        ...

    @abstractmethod
    @contextmanager
    def lock(self, game_id: str) -> Iterator[GameEngine]:
        """Hold the game's lock and yield its engine."""
        ...


class InMemoryGameRepository(GameRepository):
    def __init__(self) -> None:
        self._games: Dict[str, GameEngine] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def add(self, engine: GameEngine) -> GameEngine:
        with self._registry_lock:
            self._games[engine.game_id] = engine
            self._locks.setdefault(engine.game_id, threading.Lock())
        return engine

    def get(self, game_id: str) -> GameEngine:
        with self._registry_lock:
            try:
                return self._games[game_id]
            except KeyError:
                raise GameNotFoundError(game_id) from None

    def remove(self, game_id: str) -> None:
        with self._registry_lock:
            if game_id not in self._games:
                raise GameNotFoundError(game_id)
            del self._games[game_id]
            self._locks.pop(game_id, None)

    def ids(self) -> List[str]:
        with self._registry_lock:
            return list(self._games)

    @contextmanager
    def lock(self, game_id: str) -> Iterator[GameEngine]:
        with self._registry_lock:
            game_lock = self._locks.get(game_id)
        if game_lock is None:
            raise GameNotFoundError(game_id)
        with game_lock:
            yield self.get(game_id)

    def __len__(self) -> int:
        return len(self._games)

    def __contains__(self, game_id: object) -> bool:
        return game_id in self._games
