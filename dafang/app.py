from __future__ import annotations

import asyncio
import logging
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import TypeAdapter, ValidationError

from . import config
from .config import PlayerConfig, default_players, update_player_config
from .engine import movegen, rules
from .engine.arbiter import record_outcome
from .engine.logging.logger import log_applied
from .engine.session import drop_runtime, runtime_for
from .engine.store import GameSession, delete_session, get_session, logs, save_session, store
from .errors import InvariantViolation
from .logging_listeners import register_listeners
from .models.api import (
    ActionLogEntry,
    ActionLogResponse,
    ApplyActionRequest,
    CreateSessionRequest,
    UndoRequest,
)
from .models.enums import Color, PlayerType
from .models.views import (
    ApplyActionResponse,
    FormationView,
    LegalActionsResponse,
    SessionView,
)
from .routes.ai import router as ai_router

logger = logging.getLogger(__name__)

app = FastAPI(title="Dafang Engine")
register_listeners()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(ai_router)


def view(sess: GameSession) -> SessionView:
    return SessionView(id=sess.id, game=sess.state.view(), players=sess.players)


async def load(sid: str) -> GameSession:
    sess = await get_session(sid)
    if not sess:
        raise HTTPException(404, "session not found")
    return sess


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "ok": True,
        "storage": "redis" if config.REDIS_URL else "memory",
        "debug": config.DEBUG,
    }


@app.get("/sessions", response_model=list[SessionView])
async def list_sessions():
    return [view(s) for s in (await store.all()).values()]


@app.post("/sessions", response_model=SessionView)
async def create_session(req: CreateSessionRequest | None = None):
    req = req or CreateSessionRequest()
    players = default_players()
    if req.players:
        players.update(req.players)
    sess = GameSession(id=str(uuid4()), players=players, seed=req.seed)
    sess.conversation.add_state(sess.state.board, sess.state.to_move, sess.state.phase)
    await save_session(sess)
    return view(sess)


@app.get("/sessions/{sid}", response_model=SessionView)
async def read_session(sid: str):
    return view(await load(sid))


@app.delete("/sessions/{sid}")
async def remove_session(sid: str) -> dict[str, bool]:
    await load(sid)
    await delete_session(sid)
    drop_runtime(sid)
    return {"deleted": True}


@app.get("/sessions/{sid}/legal_actions", response_model=LegalActionsResponse)
async def list_legal_actions(sid: str, scope: str = Query("all", pattern="^(all|heuristic)$")):
    sess = await load(sid)
    st = sess.state
    if scope == "all":
        return LegalActionsResponse(
            color=st.to_move, phase=st.phase, scope=scope, actions=rules.all_actions(st)
        )
    # The heuristic set shares the seeded agent with machine turns.
    rt = runtime_for(sess)
    async with rt.lock:
        sess = await load(sid)
        st = sess.state
        actions = []
        if not st.over:
            player = sess.players[st.to_move]
            try:
                actions = await asyncio.to_thread(
                    movegen.legal_actions,
                    st.phase,
                    st.to_move,
                    st.board,
                    st.counters,
                    difficulty=player.difficulty,
                    cache=rt.caches.formations,
                    agent=rt.agent_for(st.to_move, sess),
                )
            except InvariantViolation as e:
                raise HTTPException(409, str(e))
    return LegalActionsResponse(color=st.to_move, phase=st.phase, scope=scope, actions=actions)


@app.post("/sessions/{sid}/action", response_model=ApplyActionResponse)
async def apply_action(sid: str, req: ApplyActionRequest):
    sess = await load(sid)
    rt = runtime_for(sess)
    async with rt.lock:
        sess = await load(sid)
        st = sess.state
        if st.over:
            raise HTTPException(409, "game is over")
        color = st.to_move
        ok, why = rules.validate(st, req.action)
        if not ok:
            raise HTTPException(400, why)
        sess.push_snapshot()
        outcome = rules.apply_action(st, req.action, rt.caches.formations)
        log_applied(sess.id, st.turn, color, req.action, outcome.message)
        record_outcome(sess.conversation, st, outcome)
        await save_session(sess)
    return ApplyActionResponse(
        applied=True,
        message=outcome.message,
        formation=FormationView.of(outcome.formation),
        session=view(sess),
    )


@app.post("/sessions/{sid}/undo", response_model=SessionView)
async def undo(sid: str, req: UndoRequest | None = None):
    sess = await load(sid)
    rt = runtime_for(sess)
    async with rt.lock:
        sess = await load(sid)
        color = req.color if req else None
        if color is None:
            humans = [c for c, p in sess.players.items() if p.player_type is PlayerType.SELF]
            color = humans[0] if len(humans) == 1 else None
        if not sess.undo(color):
            raise HTTPException(409, "nothing to undo")
        await save_session(sess)
    return view(sess)


@app.post("/sessions/{sid}/restart", response_model=SessionView)
async def restart(sid: str):
    sess = await load(sid)
    rt = runtime_for(sess)
    async with rt.lock:
        sess = await load(sid)
        sess.restart()
        sess.conversation.add_state(sess.state.board, sess.state.to_move, sess.state.phase)
        rt.reset()
        logs.clear(sid)
        await save_session(sess)
    return view(sess)


@app.put("/sessions/{sid}/players/{color}", response_model=SessionView)
async def update_player(sid: str, color: Color, cfg: PlayerConfig):
    sess = await load(sid)
    rt = runtime_for(sess)
    async with rt.lock:
        sess = await load(sid)
        sess.players = update_player_config(sess.players, color, cfg)
        await save_session(sess)
    return view(sess)


@app.delete("/sessions/{sid}/cache")
async def clear_cache(sid: str) -> dict[str, Any]:
    sess = await load(sid)
    rt = runtime_for(sess)
    stats = rt.caches.stats()
    rt.caches.clear()
    return {"cleared": True, "before": stats}


@app.get("/sessions/{sid}/log", response_model=ActionLogResponse)
async def get_action_log(sid: str, limit: int = Query(50, ge=1, le=1000)):
    await load(sid)
    ta = TypeAdapter(ActionLogEntry)
    entries: list[ActionLogEntry] = []
    for raw in logs.list(sid, limit):
        try:
            entries.append(ta.validate_json(raw))
        except ValidationError:
            logger.warning("skipping malformed log entry for %s", sid)
    return ActionLogResponse(entries=entries)
