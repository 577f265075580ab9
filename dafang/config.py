from __future__ import annotations

import os
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field

from .models.enums import Color, Difficulty, PlayerType

DEBUG = os.getenv("DAFANG_DEBUG", "0") == "1"

# Arbiter
MAX_ATTEMPTS = int(os.getenv("DAFANG_MAX_ATTEMPTS", "3"))
RETRY_DELAY = float(os.getenv("DAFANG_RETRY_DELAY", "1.0"))

# Remote reasoning service
AI_TIMEOUT = float(os.getenv("DAFANG_AI_TIMEOUT", "60"))
AI_USER_AGENT = os.getenv("AI_USER_AGENT", "DafangEngine/0.1")
AI_TEMPERATURE = 1.0

# Caches
FORMATION_CACHE_SIZE = int(os.getenv("DAFANG_FORMATION_CACHE_SIZE", "4096"))
SCORE_CACHE_SIZE = int(os.getenv("DAFANG_SCORE_CACHE_SIZE", "1024"))

# Simulation; empty time limit means no deadline
_sim_limit = os.getenv("DAFANG_SIM_TIME_LIMIT", "")
SIM_TIME_LIMIT: float | None = float(_sim_limit) if _sim_limit else None
SIM_WORKERS = int(os.getenv("DAFANG_SIM_WORKERS", "1"))

REDIS_URL = os.getenv("REDIS_URL")


@dataclass(frozen=True)
class SimulationBudget:
    """Per-difficulty playout budget.

    The agent scales with the number of empty cells ``e``:
    ``N = min(max_simulations, e**2)`` playouts per candidate and
    ``D = max(4, min_depth, min(max_depth, e))`` plies per playout.
    Under a deadline each candidate still gets ``min(N, min_simulations)``.
    """

    min_depth: int
    max_depth: int
    min_simulations: int
    max_simulations: int


DIFFICULTY_BUDGETS: dict[Difficulty, SimulationBudget] = {
    Difficulty.EASY: SimulationBudget(1, 5, 10, 50),
    Difficulty.MEDIUM: SimulationBudget(1, 10, 10, 100),
    Difficulty.HARD: SimulationBudget(1, 15, 10, 150),
}


class AIConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str = ""
    model: str = ""
    api_key: str = Field("", alias="apiKey")


class PlayerConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    player_type: PlayerType = Field(PlayerType.LOCAL, alias="playerType")
    difficulty: Difficulty = Difficulty.EASY
    ai_config: AIConfig = Field(default_factory=AIConfig, alias="aiConfig")


def default_players() -> dict[Color, PlayerConfig]:
    return {
        Color.BLACK: PlayerConfig(player_type=PlayerType.SELF),
        Color.WHITE: PlayerConfig(player_type=PlayerType.LOCAL),
    }


def update_player_config(
    players: dict[Color, PlayerConfig], color: Color, new: PlayerConfig
) -> dict[Color, PlayerConfig]:
    """Apply ``new`` to ``color`` and keep exactly one human seat.

    Taking the human seat hands this color's previous type to the other
    color; leaving it moves the human to the other color. Debug mode allows
    any combination.
    """
    out = {c: p.model_copy(deep=True) for c, p in players.items()}
    other = color.opponent
    old_type = out[color].player_type
    out[color] = new.model_copy(deep=True)
    if DEBUG:
        return out
    if new.player_type is PlayerType.SELF and old_type is not PlayerType.SELF:
        out[other] = out[other].model_copy(update={"player_type": old_type})
    elif new.player_type is not PlayerType.SELF and old_type is PlayerType.SELF:
        out[other] = out[other].model_copy(update={"player_type": PlayerType.SELF})
    return out
