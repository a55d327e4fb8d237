from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Mapping

ENV_PREFIX = "CATAN_"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class RuleConfig:
    """Rule set for one game.

    Every deliberate simplification of the tabletop rules is a flag here
    instead of a silent divergence: ``discard_on_seven`` and ``robber_steals``
    are off by default, and ``auto_setup`` replaces the manual snake draft
    with random initial placement.
    """

    board_radius: int = 2
    harbors: bool = True
    harbor_backtracking: bool = True
    victory_points_to_win: int = 10
    bank_trade_ratio: int = 4
    starting_resources: int = 1
    auto_setup: bool = True
    discard_on_seven: bool = False
    robber_steals: bool = False
    max_roads: int = 15
    max_towns: int = 5
    max_cities: int = 4
    candidate_cap: int = 3

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "RuleConfig":
        """Build a config from ``CATAN_<FIELD>`` variables, e.g. ``CATAN_HARBORS=0``."""
        if environ is None:
            environ = os.environ
        overrides = {}
        for spec in fields(cls):
            raw = environ.get(ENV_PREFIX + spec.name.upper())
            if raw is None:
                continue
            overrides[spec.name] = _coerce(spec.name, raw, cls.__dataclass_fields__[spec.name].default)
        return cls(**overrides)


def _coerce(name: str, raw: str, default: object) -> object:
    value = raw.strip().lower()
    if isinstance(default, bool):
        if value in _TRUE_VALUES:
            return True
        if value in _FALSE_VALUES:
            return False
        raise ValueError(f"{ENV_PREFIX}{name.upper()} must be a boolean, got {raw!r}")
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name.upper()} must be an integer, got {raw!r}") from None
