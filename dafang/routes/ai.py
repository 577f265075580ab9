from __future__ import annotations

from fastapi import APIRouter, HTTPException

from ..engine.session import arbiter_for, runtime_for
from ..engine.store import get_session, save_session
from ..errors import FatalTurnError, InvariantViolation
from ..models.views import AITurnResponse, FormationView, SessionView

router = APIRouter(prefix="/sessions", tags=["ai"])


@router.post("/{sid}/ai/next", response_model=AITurnResponse)
async def next_turn(sid: str) -> AITurnResponse:
    """Let the machine player whose turn it is decide and commit one action."""
    sess = await get_session(sid)
    if not sess:
        raise HTTPException(404, "session not found")
    rt = runtime_for(sess)
    async with rt.lock:
        sess = await get_session(sid)
        if not sess:
            raise HTTPException(404, "session not found")
        if sess.state.over:
            raise HTTPException(409, "game is over")
        try:
            arbiter = arbiter_for(sess, rt)
        except InvariantViolation as e:
            raise HTTPException(409, str(e))
        sess.push_snapshot()
        try:
            result = await arbiter.play_turn(sess.state, sess.conversation)
        except FatalTurnError as e:
            sess.history.pop()
            await save_session(sess)
            raise HTTPException(
                502, f"{e}. Check the AI service settings for {e.color.value} and try again."
            )
        except InvariantViolation as e:
            sess.history.pop()
            raise HTTPException(409, str(e))
        await save_session(sess)
    return AITurnResponse(
        decision=result.decision.record(),
        message=result.outcome.message,
        formation=FormationView.of(result.outcome.formation),
        session=SessionView(id=sess.id, game=sess.state.view(), players=sess.players),
    )
