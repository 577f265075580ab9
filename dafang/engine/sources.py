from __future__ import annotations

import json
import random
from dataclasses import dataclass
from typing import Protocol

import httpx

from ..ai.reasoning import request_completion
from ..config import AIConfig
from ..models.api import Action
from ..models.enums import Color
from ..models.game import GameState
from .conversation import Conversation
from .simulation import ShuffledBag


@dataclass
class DecisionContext:
    state: GameState
    color: Color
    legal: list[Action]
    conversation: Conversation
    attempt: int = 1


class DecisionSource(Protocol):
    name: str

    async def propose(self, ctx: DecisionContext) -> str: ...


class LocalDecisionSource:
    """Picks from the heuristic legal set, avoiding the color's previous pick."""

    name = "local"

    def __init__(self, seed: int | None = None) -> None:
        self._rng = random.Random(seed)
        self._bag: ShuffledBag[Action] | None = None
        self._bag_key: tuple | None = None
        self._last: dict[Color, Action] = {}

    async def propose(self, ctx: DecisionContext) -> str:
        key = (ctx.state.turn, ctx.color, tuple(ctx.legal))
        if self._bag is None or key != self._bag_key:
            self._bag = ShuffledBag(ctx.legal, self._rng)
            self._bag_key = key
        last = self._last.get(ctx.color)
        pick = None
        if len(ctx.legal) > 1:
            pick = self._bag.draw_where(lambda a: a != last)
        if pick is None:
            pick = self._bag.draw()
        self._last[ctx.color] = pick
        return json.dumps(pick.wire())


class RemoteDecisionSource:
    name = "ai"

    def __init__(
        self, cfg: AIConfig, transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        self.cfg = cfg
        self.transport = transport

    async def propose(self, ctx: DecisionContext) -> str:
        st = ctx.state
        messages = ctx.conversation.request_messages(st.board, ctx.color, st.phase, ctx.legal)
        return await request_completion(self.cfg, messages, transport=self.transport)
