from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field

from .. import config
from ..config import DIFFICULTY_BUDGETS
from ..core.cache import CacheContext
from ..errors import InvariantViolation
from ..models.enums import Color, PlayerType
from .arbiter import Arbiter
from .simulation import SimulationAgent
from .sources import LocalDecisionSource, RemoteDecisionSource
from .store import GameSession


@dataclass
class SessionRuntime:
    """Process-local companions of a session: caches, lock and seeded helpers."""

    seed: int | None = None
    caches: CacheContext = field(default_factory=CacheContext)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    local: LocalDecisionSource = field(init=False)
    agents: dict[Color, SimulationAgent] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.local = LocalDecisionSource(self.seed)

    def agent_for(self, color: Color, sess: GameSession) -> SimulationAgent:
        budget = DIFFICULTY_BUDGETS[sess.players[color].difficulty]
        agent = self.agents.get(color)
        if agent is None or agent.budget != budget:
            seed = None if self.seed is None else random.Random(f"{self.seed}:{color.value}").getrandbits(32)
            agent = SimulationAgent(
                budget,
                cache=self.caches.scores,
                seed=seed,
                time_limit=config.SIM_TIME_LIMIT,
                max_workers=config.SIM_WORKERS,
            )
            self.agents[color] = agent
        return agent

    def reset(self) -> None:
        self.caches.clear()
        self.agents.clear()
        self.local = LocalDecisionSource(self.seed)


_runtimes: dict[str, SessionRuntime] = {}


def runtime_for(sess: GameSession) -> SessionRuntime:
    rt = _runtimes.get(sess.id)
    if rt is None:
        rt = _runtimes[sess.id] = SessionRuntime(seed=sess.seed)
    return rt


def drop_runtime(sid: str) -> None:
    _runtimes.pop(sid, None)


def arbiter_for(sess: GameSession, rt: SessionRuntime, **overrides) -> Arbiter:
    color = sess.state.to_move
    player = sess.players[color]
    if player.player_type is PlayerType.SELF:
        raise InvariantViolation(f"{color.value} is played by a human")
    if player.player_type is PlayerType.AI:
        source = RemoteDecisionSource(player.ai_config)
    else:
        source = rt.local
    return Arbiter(
        source,
        caches=rt.caches,
        difficulty=player.difficulty,
        agent=rt.agent_for(color, sess),
        session_id=sess.id,
        **overrides,
    )
