from __future__ import annotations

import asyncio
import os
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

import redis.asyncio as redis
from pydantic import BaseModel

from .. import config
from ..config import PlayerConfig, default_players
from ..models.api import ChatMessage
from ..models.enums import Color
from ..models.game import GameState, GameView
from .conversation import Conversation

MAX_SESSIONS = int(os.getenv("MAX_SESSIONS", "50"))
MAX_LOG_ENTRIES = int(os.getenv("MAX_LOG_ENTRIES", "1000"))
MAX_UNDO = int(os.getenv("MAX_UNDO", "200"))


@dataclass
class Snapshot:
    state: GameState
    conversation_length: int


@dataclass
class GameSession:
    id: str
    state: GameState = field(default_factory=GameState)
    players: dict[Color, PlayerConfig] = field(default_factory=default_players)
    conversation: Conversation = field(default_factory=Conversation)
    history: list[Snapshot] = field(default_factory=list)
    seed: int | None = None

    def push_snapshot(self) -> None:
        self.history.append(Snapshot(self.state.copy(), len(self.conversation)))
        del self.history[:-MAX_UNDO]

    def undo(self, color: Color | None = None) -> bool:
        """Roll back to before ``color``'s latest action (any action when ``None``)."""
        while self.history:
            snap = self.history.pop()
            if color is None or snap.state.to_move is color:
                self.state = snap.state
                self.conversation.truncate(snap.conversation_length)
                return True
        return False

    def restart(self) -> None:
        self.state = GameState()
        self.conversation = Conversation()
        self.history.clear()

    def to_record(self) -> SessionRecord:
        return SessionRecord(
            id=self.id,
            game=self.state.view(),
            players=self.players,
            messages=list(self.conversation.messages),
            seed=self.seed,
        )

    @classmethod
    def from_record(cls, rec: SessionRecord) -> GameSession:
        # Undo history is process-local and not persisted.
        return cls(
            id=rec.id,
            state=GameState.from_view(rec.game),
            players=dict(rec.players),
            conversation=Conversation(list(rec.messages)),
            seed=rec.seed,
        )


class SessionRecord(BaseModel):
    id: str
    game: GameView
    players: dict[Color, PlayerConfig]
    messages: list[ChatMessage]
    seed: int | None = None


class SessionStore(Protocol):
    async def get(self, sid: str) -> Optional[GameSession]: ...
    async def set(self, s: GameSession) -> None: ...
    async def delete(self, sid: str) -> None: ...
    async def all(self) -> Dict[str, GameSession]: ...


class MemorySessionStore:
    """In-process store with an asyncio.Lock; evicts the least recently used session."""

    def __init__(self, max_sessions: int = MAX_SESSIONS) -> None:
        self._data: OrderedDict[str, GameSession] = OrderedDict()
        self._lock = asyncio.Lock()
        self.max_sessions = max_sessions

    async def get(self, sid: str) -> Optional[GameSession]:
        async with self._lock:
            s = self._data.get(sid)
            if s is not None:
                self._data.move_to_end(sid)
            return s

    async def set(self, s: GameSession) -> None:
        async with self._lock:
            self._data[s.id] = s
            self._data.move_to_end(s.id)
            while len(self._data) > self.max_sessions:
                self._data.popitem(last=False)

    async def delete(self, sid: str) -> None:
        async with self._lock:
            self._data.pop(sid, None)

    async def all(self) -> Dict[str, GameSession]:
        async with self._lock:
            return dict(self._data)


class RedisSessionStore:
    """Cross-worker store using Redis. Set REDIS_URL to enable."""

    INDEX = "dafang:sessions:index"  # sorted-set: member=sid, score=last touch

    def __init__(self, url: str, max_sessions: int = MAX_SESSIONS) -> None:
        self._r = redis.from_url(url, encoding="utf-8", decode_responses=True)
        self._prefix = "dafang:sessions:"
        self.max_sessions = max_sessions

    def _key(self, sid: str) -> str:
        return f"{self._prefix}{sid}"

    async def _touch(self, sid: str) -> None:
        await self._r.zadd(self.INDEX, {sid: time.time()})
        count = await self._r.zcard(self.INDEX)
        if count <= self.max_sessions:
            return
        evicted = await self._r.zpopmin(self.INDEX, count - self.max_sessions)
        if evicted:
            await self._r.delete(*[self._key(s) for s, _ in evicted])

    async def get(self, sid: str) -> Optional[GameSession]:
        data = await self._r.get(self._key(sid))
        if not data:
            await self._r.zrem(self.INDEX, sid)
            return None
        await self._touch(sid)
        return GameSession.from_record(SessionRecord.model_validate_json(data))

    async def set(self, s: GameSession) -> None:
        await self._r.set(self._key(s.id), s.to_record().model_dump_json())
        await self._touch(s.id)

    async def delete(self, sid: str) -> None:
        await self._r.delete(self._key(sid))
        await self._r.zrem(self.INDEX, sid)

    async def all(self) -> Dict[str, GameSession]:
        sids = await self._r.zrevrange(self.INDEX, 0, -1)
        out: Dict[str, GameSession] = {}
        for sid in sids:
            data = await self._r.get(self._key(sid))
            if data:
                out[sid] = GameSession.from_record(SessionRecord.model_validate_json(data))
        return out


class MemoryLogStore:
    """Per-session action log kept as JSON lines, newest last."""

    def __init__(self, max_entries: int = MAX_LOG_ENTRIES) -> None:
        self._data: dict[str, list[str]] = {}
        self.max_entries = max_entries

    def append(self, sid: str, entry_json: str) -> None:
        lst = self._data.setdefault(sid, [])
        lst.append(entry_json)
        del lst[: -self.max_entries]

    def list(self, sid: str, limit: int) -> List[str]:
        return list(self._data.get(sid, [])[-limit:])

    def clear(self, sid: str) -> None:
        self._data.pop(sid, None)


store: SessionStore = (
    RedisSessionStore(config.REDIS_URL) if config.REDIS_URL else MemorySessionStore()
)
logs = MemoryLogStore()


# Convenience helpers (import these in app.py)
async def save_session(s: GameSession) -> None:
    await store.set(s)


async def get_session(sid: str) -> Optional[GameSession]:
    return await store.get(sid)


async def delete_session(sid: str) -> None:
    await store.delete(sid)
    logs.clear(sid)
