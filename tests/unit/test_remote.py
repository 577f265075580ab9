import asyncio
import json

import httpx
import pytest

from dafang.ai.reasoning import request_completion
from dafang.config import AIConfig
from dafang.engine.arbiter import Arbiter
from dafang.engine.conversation import Conversation
from dafang.engine.sources import DecisionContext, RemoteDecisionSource
from dafang.errors import FatalTurnError, TransportFailure
from dafang.models.api import ChatMessage, PlaceAction
from dafang.models.enums import ChatRole, Color
from dafang.models.game import GameState

OPENAI_URL = "http://reasoner.test/v1/chat/completions"
OLLAMA_URL = "http://reasoner.test/api/chat"


def _cfg(url: str = OPENAI_URL) -> AIConfig:
    return AIConfig(url=url, model="m-1", apiKey="secret")


def _openai(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def test_remote_source_sends_history_with_legal_set():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_openai('{"action": "placing", "position": [1, 1]}'))

    source = RemoteDecisionSource(_cfg(), transport=httpx.MockTransport(handler))
    state = GameState()
    conv = Conversation()
    conv.add_state(state.board, Color.BLACK, state.phase)
    legal = [PlaceAction(position=(1, 1)), PlaceAction(position=(4, 4))]
    reply = asyncio.run(source.propose(DecisionContext(state, Color.BLACK, legal, conv)))

    assert json.loads(reply) == {"action": "placing", "position": [1, 1]}
    req = seen[0]
    assert req.method == "POST"
    assert req.headers["authorization"] == "Bearer secret"
    body = json.loads(req.content)
    assert body["model"] == "m-1"
    assert body["stream"] is False
    assert body["temperature"] == 1.0
    assert body["messages"][0]["role"] == "system"
    last = body["messages"][-1]
    assert last["role"] == "user"
    assert "Legal decisions" in last["content"]
    assert '"position":[4,4]' in last["content"]
    # The stored history is not touched by the request decoration.
    assert "Legal decisions" not in conv.messages[-1].content


def test_ollama_style_response():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"message": {"content": "hello"}})

    messages = [ChatMessage(role=ChatRole.USER, content="hi")]
    out = asyncio.run(request_completion(_cfg(OLLAMA_URL), messages, httpx.MockTransport(handler)))
    assert out == "hello"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"error": "boom"}),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"choices": []}),
        httpx.Response(200, json=_openai("   ")),
    ],
)
def test_bad_responses_are_transport_failures(response):
    transport = httpx.MockTransport(lambda request: response)
    messages = [ChatMessage(role=ChatRole.USER, content="hi")]
    with pytest.raises(TransportFailure):
        asyncio.run(request_completion(_cfg(), messages, transport))


def test_unreachable_service_is_a_transport_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    messages = [ChatMessage(role=ChatRole.USER, content="hi")]
    with pytest.raises(TransportFailure):
        asyncio.run(request_completion(_cfg(), messages, httpx.MockTransport(handler)))


def test_missing_url_is_a_transport_failure():
    with pytest.raises(TransportFailure):
        asyncio.run(request_completion(AIConfig(), [], None))


def test_arbiter_retries_remote_until_it_gives_up():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503)

    source = RemoteDecisionSource(_cfg(), transport=httpx.MockTransport(handler))
    arb = Arbiter(source, retry_delay=0, max_attempts=3)
    with pytest.raises(FatalTurnError):
        asyncio.run(arb.decide(GameState(), Conversation()))
    assert len(calls) == 3


def test_arbiter_recovers_after_a_bad_reply():
    replies = iter(["I pass", '{"action": "placing", "position": [4, 1]}'])

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_openai(next(replies)))

    source = RemoteDecisionSource(_cfg(), transport=httpx.MockTransport(handler))
    conv = Conversation()
    state = GameState()
    result = asyncio.run(Arbiter(source, retry_delay=0).play_turn(state, conv))
    assert result.decision.action == PlaceAction(position=(4, 1))
    assert result.decision.attempts == 2
    assert result.decision.source == "ai"
    assert state.board[(4, 1)] is not None
