from __future__ import annotations

import logging

from .engine import store
from .events import TurnEvent, event_bus
from .models.api import ActionLogEntry, describe_action

logger = logging.getLogger("dafang.turns")


def _on_turn_event(ev: TurnEvent) -> None:
    # Convert event to ActionLogEntry JSON for the session log
    entry = ActionLogEntry(
        session_id=ev.session_id,
        turn=ev.turn,
        color=ev.color,
        action=ev.action,
        result=ev.result,
        message=ev.message,
        attempt=ev.attempt,
    )
    store.logs.append(ev.session_id, entry.model_dump_json(by_alias=True))
    what = describe_action(ev.action) if ev.action is not None else "-"
    logger.info(
        "[%s] turn=%d %s %s %s: %s",
        ev.session_id,
        ev.turn,
        ev.color.value,
        ev.result.value,
        what,
        ev.message or "",
    )


def register_listeners() -> None:
    event_bus.subscribe(TurnEvent, _on_turn_event)
