from __future__ import annotations

import logging
from typing import Any

import httpx

from .. import config
from ..config import AIConfig
from ..errors import TransportFailure
from ..models.api import ChatMessage

logger = logging.getLogger(__name__)


def build_payload(cfg: AIConfig, messages: list[ChatMessage]) -> dict[str, Any]:
    return {
        "model": cfg.model,
        "messages": [m.model_dump(mode="json") for m in messages],
        "temperature": config.AI_TEMPERATURE,
        "stream": False,
    }


def extract_content(url: str, body: Any) -> str:
    """Message text from an OpenAI-style or Ollama-style chat response."""
    try:
        if "completions" in url:
            content = body["choices"][0]["message"]["content"]
        else:
            content = body["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise TransportFailure(f"unexpected response shape: missing {e}") from e
    if not isinstance(content, str) or not content.strip():
        raise TransportFailure("response carried no content")
    return content


async def request_completion(
    cfg: AIConfig,
    messages: list[ChatMessage],
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    if not cfg.url:
        raise TransportFailure("no reasoning service URL configured")
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {cfg.api_key}",
        "User-Agent": config.AI_USER_AGENT,
    }
    try:
        async with httpx.AsyncClient(
            timeout=config.AI_TIMEOUT, headers=headers, transport=transport
        ) as client:
            r = await client.post(cfg.url, json=build_payload(cfg, messages))
            if r.status_code != 200:
                raise TransportFailure(f"reasoning service answered HTTP {r.status_code}")
            body = r.json()
    except httpx.HTTPError as e:
        raise TransportFailure(f"reasoning service unreachable: {e}") from e
    except ValueError as e:
        raise TransportFailure("reasoning service returned non-JSON body") from e
    content = extract_content(cfg.url, body)
    logger.debug("reasoning reply: %s", content)
    return content
