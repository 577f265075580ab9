import asyncio
import json

import httpx
import pytest

from dafang import config
from dafang.app import app
from dafang.engine import movegen
from dafang.engine import session as session_module
from dafang.engine import store as store_module
from dafang.engine.sources import RemoteDecisionSource
from dafang.engine.store import GameSession, SessionRecord
from tests.integration.utils.helpers import _create_session, _get, _stones


class CopyingSessionStore:
    """Hands out a fresh deserialized copy on every read, like the Redis store."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, sid: str):
        raw = self._data.get(sid)
        return GameSession.from_record(SessionRecord.model_validate_json(raw)) if raw else None

    async def set(self, s: GameSession) -> None:
        self._data[s.id] = s.to_record().model_dump_json()

    async def delete(self, sid: str) -> None:
        self._data.pop(sid, None)

    async def all(self) -> dict[str, GameSession]:
        return {sid: await self.get(sid) for sid in list(self._data)}


AI_WHITE = {
    "white": {
        "playerType": "ai",
        "difficulty": "easy",
        "aiConfig": {"url": "http://reasoner.test/v1/chat/completions", "model": "m", "apiKey": "k"},
    }
}


@pytest.fixture()
def copying_store(monkeypatch) -> CopyingSessionStore:
    st = CopyingSessionStore()
    monkeypatch.setattr(store_module, "store", st)
    monkeypatch.setattr(config, "RETRY_DELAY", 0.0)
    return st


def _held_remote(monkeypatch):
    """Remote player that signals when it is asked and answers once released."""
    gate = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        gate["asked"].set()
        await gate["release"].wait()
        prompt = json.loads(request.content)["messages"][-1]["content"]
        options = json.loads(prompt.split("Legal decisions: ")[1].split(". Choose")[0])
        content = json.dumps(options[-1])
        return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

    transport = httpx.MockTransport(handler)
    monkeypatch.setattr(
        session_module,
        "RemoteDecisionSource",
        lambda cfg: RemoteDecisionSource(cfg, transport=transport),
    )
    return gate


async def _while_remote_thinks(gate, make_request):
    """Run ``make_request`` while a remote turn holds the session lock."""
    gate["asked"] = asyncio.Event()
    gate["release"] = asyncio.Event()
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://t") as client:
        r = await client.post("/sessions", json={"players": AI_WHITE})
        sid = r.json()["id"]
        r = await client.post(
            f"/sessions/{sid}/action", json={"action": {"action": "placing", "position": [1, 1]}}
        )
        assert r.status_code == 200

        machine = asyncio.create_task(client.post(f"/sessions/{sid}/ai/next"))
        await gate["asked"].wait()
        other = asyncio.create_task(make_request(client, sid))
        # Give the second request time to read the session and queue on the lock.
        await asyncio.sleep(0.05)
        assert not other.done()
        gate["release"].set()
        machine_r, other_r = await machine, await other
        final = (await client.get(f"/sessions/{sid}")).json()
    return machine_r, other_r, final


def test_human_action_waits_for_the_machine_turn(copying_store, monkeypatch):
    gate = _held_remote(monkeypatch)

    def place(client, sid):
        return client.post(
            f"/sessions/{sid}/action", json={"action": {"action": "placing", "position": [4, 4]}}
        )

    machine_r, human_r, final = asyncio.run(_while_remote_thinks(gate, place))
    assert machine_r.status_code == 200
    assert human_r.status_code == 200
    picked = tuple(machine_r.json()["decision"]["action"]["position"])

    game = final["game"]
    assert game["turn"] == 3
    assert game["to_move"] == "white"
    assert _stones(game) == {(1, 1): "black", picked: "white", (4, 4): "black"}


def test_heuristic_actions_wait_for_the_machine_turn(copying_store, monkeypatch):
    gate = _held_remote(monkeypatch)

    def heuristic(client, sid):
        return client.get(f"/sessions/{sid}/legal_actions", params={"scope": "heuristic"})

    machine_r, legal_r, final = asyncio.run(_while_remote_thinks(gate, heuristic))
    assert machine_r.status_code == 200
    body = legal_r.json()
    # Generated for the position after the machine's stone.
    assert body["color"] == "black"
    taken = {tuple(pos) for pos in _stones(final["game"])}
    assert body["actions"]
    assert all(tuple(a["position"]) not in taken for a in body["actions"])


def test_heuristic_actions_run_off_the_event_loop(http, monkeypatch):
    real = movegen.legal_actions
    on_loop = []

    def spy(*args, **kwargs):
        try:
            asyncio.get_running_loop()
            on_loop.append(True)
        except RuntimeError:
            on_loop.append(False)
        return real(*args, **kwargs)

    monkeypatch.setattr(movegen, "legal_actions", spy)
    sid, _ = _create_session(http)
    body = _get(http, f"/sessions/{sid}/legal_actions?scope=heuristic")
    assert len(body["actions"]) == 4
    assert on_loop == [False]
