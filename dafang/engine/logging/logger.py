from __future__ import annotations

from ...events import TurnEvent, event_bus
from ...models.api import Action
from ...models.enums import ActionLogResult, Color


def log_event(
    session_id: str,
    turn: int,
    color: Color,
    action: Action | None,
    result: ActionLogResult,
    message: str | None = None,
    attempt: int | None = None,
) -> None:
    event_bus.emit(
        TurnEvent(
            session_id=session_id,
            turn=turn,
            color=color,
            action=action,
            result=result,
            message=message,
            attempt=attempt,
        )
    )


def log_applied(
    session_id: str, turn: int, color: Color, action: Action, message: str, forced: bool = False
) -> None:
    result = ActionLogResult.FORCED if forced else ActionLogResult.APPLIED
    log_event(session_id, turn, color, action, result, message)


def log_rejected(
    session_id: str,
    turn: int,
    color: Color,
    attempt: int,
    reason: str,
    action: Action | None = None,
) -> None:
    log_event(session_id, turn, color, action, ActionLogResult.REJECTED, reason, attempt)


def log_error(session_id: str, turn: int, color: Color, error: Exception) -> None:
    log_event(session_id, turn, color, None, ActionLogResult.ERROR, str(error))
