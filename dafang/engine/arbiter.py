"""Decision arbitration for machine players.

One decision is requested from a source (local heuristic or remote reasoning
service), parsed, checked against the heuristic legal set and the full rules,
and only then committed. Failed proposals are fed back into the conversation
and retried after a fixed delay, up to ``max_attempts`` times.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass

from .. import config
from ..ai.parsing import parse_decision
from ..core.cache import CacheContext
from ..errors import (
    FatalTurnError,
    IllegalAction,
    InvariantViolation,
    MalformedProposal,
    ProposalRejected,
    RepeatedMove,
    TransportFailure,
)
from ..models.api import Action, DecisionRecord, describe_action
from ..models.enums import ChatRole, Difficulty
from ..models.game import GameState
from . import movegen, rules
from .conversation import Conversation
from .logging.logger import log_applied, log_error, log_rejected
from .simulation import SimulationAgent
from .sources import DecisionContext, DecisionSource

logger = logging.getLogger(__name__)


@dataclass
class Decision:
    action: Action
    attempts: int
    forced: bool = False
    source: str = "local"

    def record(self) -> DecisionRecord:
        return DecisionRecord(
            action=self.action, attempts=self.attempts, forced=self.forced, source=self.source
        )


@dataclass
class TurnResult:
    decision: Decision
    outcome: rules.Outcome


class Arbiter:
    def __init__(
        self,
        source: DecisionSource,
        *,
        caches: CacheContext | None = None,
        difficulty: Difficulty = Difficulty.EASY,
        agent: SimulationAgent | None = None,
        max_attempts: int | None = None,
        retry_delay: float | None = None,
        session_id: str = "",
    ) -> None:
        self.source = source
        self.caches = caches or CacheContext()
        self.difficulty = difficulty
        self.agent = agent
        self.max_attempts = max_attempts if max_attempts is not None else config.MAX_ATTEMPTS
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        self.retry_delay = retry_delay if retry_delay is not None else config.RETRY_DELAY
        self.session_id = session_id

    def legal_for(self, state: GameState) -> list[Action]:
        return movegen.legal_actions(
            state.phase,
            state.to_move,
            state.board,
            state.counters,
            difficulty=self.difficulty,
            cache=self.caches.formations,
            agent=self.agent,
        )

    def check(self, state: GameState, legal: list[Action], content: str) -> Action:
        """Parse and validate one proposal; raises a ``ProposalRejected`` subclass."""
        action = parse_decision(content)
        if action.phase is not state.phase:
            raise MalformedProposal(
                f"expected a '{state.phase.value}' decision, got '{action.action}'",
                content=content,
                action=action,
            )
        if action not in legal:
            raise IllegalAction(
                f"{describe_action(action)} is not one of the legal decisions",
                content=content,
                action=action,
            )
        ok, why = rules.validate(state, action)
        if not ok:
            raise IllegalAction(why, content=content, action=action)
        if len(legal) > 1 and rules.is_repeat_move(
            state, state.to_move, action, self.caches.formations
        ):
            raise RepeatedMove(
                f"{describe_action(action)} just undoes your previous move",
                content=content,
                action=action,
            )
        return action

    async def decide(self, state: GameState, conversation: Conversation) -> Decision:
        if state.over:
            raise InvariantViolation("game is already over")
        color = state.to_move
        legal = await asyncio.to_thread(self.legal_for, state)
        if not legal:
            raise InvariantViolation(f"{color.value} has no legal action in {state.phase.value}")
        if conversation.messages[-1].role is not ChatRole.USER:
            conversation.add_state(state.board, color, state.phase)

        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1 and self.retry_delay > 0:
                await asyncio.sleep(self.retry_delay)
            ctx = DecisionContext(state, color, legal, conversation, attempt)
            try:
                content = await self.source.propose(ctx)
            except TransportFailure as e:
                last_error = e
                logger.warning("attempt %d for %s: %s", attempt, color.value, e)
                log_rejected(self.session_id, state.turn, color, attempt, str(e))
                continue
            try:
                action = self.check(state, legal, content)
            except RepeatedMove as e:
                last_error = e
                if attempt == self.max_attempts:
                    logger.info("accepting repeated move for %s after %d attempts", color.value, attempt)
                    return Decision(e.action, attempt, forced=True, source=self.source.name)
                self._reject(state, conversation, attempt, e)
                continue
            except ProposalRejected as e:
                last_error = e
                self._reject(state, conversation, attempt, e)
                continue
            return Decision(action, attempt, source=self.source.name)

        err = FatalTurnError(color, self.max_attempts, last_error)
        log_error(self.session_id, state.turn, color, err)
        raise err

    def _reject(
        self, state: GameState, conversation: Conversation, attempt: int, e: ProposalRejected
    ) -> None:
        color = state.to_move
        logger.info("attempt %d for %s rejected: %s", attempt, color.value, e.reason)
        log_rejected(self.session_id, state.turn, color, attempt, e.reason, e.action)
        conversation.add_rejection(e.content, e.reason, state.board, color, state.phase)

    async def play_turn(self, state: GameState, conversation: Conversation) -> TurnResult:
        """Decide for the player to move and commit the decision."""
        decision = await self.decide(state, conversation)
        color = state.to_move
        outcome = rules.apply_action(state, decision.action, self.caches.formations)
        log_applied(
            self.session_id, state.turn, color, decision.action, outcome.message, decision.forced
        )
        conversation.add_assistant(json.dumps(decision.action.wire()))
        record_outcome(conversation, state, outcome)
        return TurnResult(decision, outcome)


def record_outcome(conversation: Conversation, state: GameState, outcome: rules.Outcome) -> None:
    """Append the feedback/state turn that follows a committed action."""
    if state.over:
        conversation.add_user(
            f"{outcome.message}. Game over: {state.winner.value} wins ({state.reason})."
        )
        return
    conversation.add_state(state.board, state.to_move, state.phase, feedback=outcome.message + ".")
