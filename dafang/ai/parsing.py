from __future__ import annotations

import json
import re

from pydantic import ValidationError

from ..errors import MalformedProposal
from ..models.api import Action, action_adapter

# First brace to the last brace on the same line; replies are one-line objects.
_OBJECT_RE = re.compile(r"\{.*\}")


def extract_object(text: str) -> str:
    m = _OBJECT_RE.search(text or "")
    if not m:
        raise MalformedProposal("reply contains no JSON object", content=text or "")
    return m.group(0)


def parse_decision(text: str) -> Action:
    """Turn a free-text reply into a validated action or raise ``MalformedProposal``."""
    raw = extract_object(text)
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedProposal(f"reply is not valid JSON: {e.msg}", content=text) from e
    if not isinstance(data, dict):
        raise MalformedProposal("reply must be a JSON object", content=text)
    try:
        return action_adapter.validate_python(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(x) for x in err['loc']) or 'action'}: {err['msg']}" for err in e.errors()
        )
        raise MalformedProposal(f"invalid decision ({problems})", content=text) from e
