import asyncio
import json

import pytest

from dafang import config
from dafang.core.geometry import OPENING_CELLS
from dafang.engine import rules
from dafang.engine.arbiter import Arbiter
from dafang.engine.conversation import Conversation
from dafang.engine.sources import DecisionContext, LocalDecisionSource
from dafang.errors import (
    FatalTurnError,
    IllegalAction,
    InvariantViolation,
    MalformedProposal,
    TransportFailure,
)
from dafang.models.api import MoveAction, PlaceAction
from dafang.models.enums import ChatRole, Color, Phase
from dafang.models.game import GameState
from tests.utils.boards import build_state

B, W = Color.BLACK, Color.WHITE

REPEAT = '{"action": "moving", "position": [2, 3], "newPosition": [2, 2]}'
FORWARD = '{"action": "moving", "position": [2, 3], "newPosition": [2, 4]}'


class ScriptedSource:
    name = "script"

    def __init__(self, replies):
        self.replies = list(replies)
        self.contexts: list[DecisionContext] = []

    async def propose(self, ctx: DecisionContext) -> str:
        self.contexts.append(ctx)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def _arbiter(source, **kw):
    return Arbiter(source, retry_delay=0, max_attempts=3, **kw)


def _moving_state() -> GameState:
    rows = ["B.....", "......", "...B..", "......", "......", "B....W"]
    state = build_state(rows, phase=Phase.MOVING)
    state.last_moves[B] = MoveAction(position=(2, 2), new_position=(2, 3))
    return state


def test_three_malformed_replies_are_fatal():
    source = ScriptedSource(["no idea", "{not json}", '{"action": "flying"}'])
    conv = Conversation()
    with pytest.raises(FatalTurnError) as exc:
        asyncio.run(_arbiter(source).decide(GameState(), conv))
    assert isinstance(exc.value.last_error, MalformedProposal)
    assert exc.value.attempts == 3
    # system + state, then an assistant/user pair per rejection
    assert len(conv) == 2 + 6
    roles = [m.role for m in conv.messages[2:]]
    assert roles == [ChatRole.ASSISTANT, ChatRole.USER] * 3
    assert "rejected" in conv.messages[-1].content


def test_illegal_then_valid_is_accepted():
    source = ScriptedSource(
        [
            '{"action": "placing", "position": [0, 0]}',
            'Sure! {"action": "placing", "position": [1, 4]} good luck',
        ]
    )
    decision = asyncio.run(_arbiter(source).decide(GameState(), Conversation()))
    assert decision.action == PlaceAction(position=(1, 4))
    assert decision.attempts == 2
    assert not decision.forced
    assert decision.source == "script"
    assert [c.attempt for c in source.contexts] == [1, 2]


def test_wrong_phase_counts_as_malformed():
    source = ScriptedSource([FORWARD, '{"action": "placing", "position": [4, 4]}'])
    conv = Conversation()
    decision = asyncio.run(_arbiter(source).decide(GameState(), conv))
    assert decision.attempts == 2
    assert "expected a 'placing' decision" in conv.messages[-1].content


def test_transport_failures_do_not_grow_the_conversation():
    source = ScriptedSource([TransportFailure("down")] * 3)
    conv = Conversation()
    with pytest.raises(FatalTurnError) as exc:
        asyncio.run(_arbiter(source).decide(GameState(), conv))
    assert isinstance(exc.value.last_error, TransportFailure)
    assert len(conv) == 2


def test_repeated_move_is_forced_on_the_last_attempt():
    state = _moving_state()
    arb = _arbiter(ScriptedSource([REPEAT] * 3))
    arb.legal_for = rules.all_actions
    conv = Conversation()
    decision = asyncio.run(arb.decide(state, conv))
    assert decision.forced
    assert decision.attempts == 3
    assert decision.action == MoveAction(position=(2, 3), new_position=(2, 2))
    assert len(conv) == 2 + 4


def test_repeated_move_then_fresh_move():
    state = _moving_state()
    arb = _arbiter(ScriptedSource([REPEAT, FORWARD]))
    arb.legal_for = rules.all_actions
    decision = asyncio.run(arb.decide(state, Conversation()))
    assert not decision.forced
    assert decision.action == MoveAction(position=(2, 3), new_position=(2, 4))


def test_repeat_allowed_when_it_is_the_only_choice():
    state = _moving_state()
    only = MoveAction(position=(2, 3), new_position=(2, 2))
    arb = _arbiter(ScriptedSource([REPEAT]))
    arb.legal_for = lambda s: [only]
    decision = asyncio.run(arb.decide(state, Conversation()))
    assert decision.attempts == 1
    assert not decision.forced


def test_fatal_turn_leaves_state_untouched():
    state = build_state(["BB....", "B.....", "......", "......", "....W.", "......"])
    before = state.copy()
    source = ScriptedSource(['{"action": "placing", "position": [5, 5]}'] * 3)
    with pytest.raises(FatalTurnError) as exc:
        asyncio.run(_arbiter(source).play_turn(state, Conversation()))
    assert isinstance(exc.value.last_error, IllegalAction)
    assert state.board == before.board
    assert state.turn == before.turn
    assert state.counters == before.counters


def test_decide_on_finished_game_is_a_caller_error():
    state = GameState()
    state.winner = W
    with pytest.raises(InvariantViolation):
        asyncio.run(_arbiter(ScriptedSource([])).decide(state, Conversation()))


def test_local_source_opens_on_an_opening_cell():
    state = GameState()
    conv = Conversation()
    result = asyncio.run(_arbiter(LocalDecisionSource(seed=1)).play_turn(state, conv))
    assert result.decision.action.position in OPENING_CELLS
    assert result.decision.source == "local"
    assert state.turn == 1
    assert state.to_move is W
    assert conv.messages[-2].role is ChatRole.ASSISTANT
    assert json.loads(conv.messages[-2].content)["action"] == "placing"
    assert conv.messages[-1].role is ChatRole.USER


def test_local_source_avoids_its_previous_pick():
    state = GameState()
    legal = [PlaceAction(position=p) for p in OPENING_CELLS]
    src = LocalDecisionSource(seed=3)
    ctx = DecisionContext(state, B, legal, Conversation())
    first = asyncio.run(src.propose(ctx))
    second = asyncio.run(src.propose(ctx))
    assert first != second


@pytest.mark.timeout(120)
def test_local_players_keep_the_game_consistent():
    state = GameState()
    conv = Conversation()
    arbiters = {
        B: _arbiter(LocalDecisionSource(seed=10)),
        W: _arbiter(LocalDecisionSource(seed=20)),
    }

    async def play(turns: int) -> None:
        for _ in range(turns):
            if state.over:
                return
            await arbiters[state.to_move].play_turn(state, conv)
            assert state.counters.stones[B] == state.board.count(B)
            assert state.counters.stones[W] == state.board.count(W)
            assert state.counters.pending >= 0

    asyncio.run(play(150))
    assert state.turn > 0


@pytest.mark.parametrize("attempts", [0, -1])
def test_attempt_bound_must_allow_one_try(attempts):
    with pytest.raises(ValueError):
        Arbiter(ScriptedSource([]), retry_delay=0, max_attempts=attempts)


def test_attempt_bound_comes_from_config(monkeypatch):
    monkeypatch.setattr(config, "MAX_ATTEMPTS", 0)
    with pytest.raises(ValueError):
        Arbiter(ScriptedSource([]))
    monkeypatch.setattr(config, "MAX_ATTEMPTS", 1)
    source = ScriptedSource(["pass"])
    with pytest.raises(FatalTurnError) as exc:
        asyncio.run(Arbiter(source, retry_delay=0).decide(GameState(), Conversation()))
    assert exc.value.attempts == 1
    assert isinstance(exc.value.last_error, MalformedProposal)
