"""Exceptions raised by the board generator, rules engine and game repository."""

from __future__ import annotations


class CatanError(Exception):
    """Base class for every error raised by catan_sandbox."""


class IllegalActionError(CatanError, ValueError):
    """An action failed validation. Raised before any state is mutated."""

    def __init__(self, reason: str, message: str | None = None):
        self.reason = reason
        self.message = message or reason.replace("_", " ").capitalize()
        super().__init__(self.message)


class UnknownActionError(IllegalActionError):
    """The action kind or its payload could not be understood."""


class BoardGenerationError(CatanError, RuntimeError):
    """A generated board broke a structural invariant."""


class GameNotFoundError(CatanError, KeyError):
    def __init__(self, game_id: str):
        self.game_id = game_id
        super().__init__(f"Game not found: {game_id}")

    def __str__(self) -> str:
        return f"Game not found: {self.game_id}"
