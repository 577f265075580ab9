from __future__ import annotations

from typing import Any


class DafangError(Exception):
    pass


class ProposalRejected(DafangError):
    """A proposed decision failed validation; the arbiter may retry."""

    def __init__(self, reason: str, content: str = "", action: Any = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.content = content
        self.action = action


class MalformedProposal(ProposalRejected):
    pass


class IllegalAction(ProposalRejected):
    pass


class RepeatedMove(ProposalRejected):
    pass


class TransportFailure(DafangError):
    """The remote decision source could not be reached or answered garbage."""


class InvariantViolation(DafangError):
    """Caller error: the engine was asked something that cannot be answered."""


class FatalTurnError(DafangError):
    def __init__(self, color: Any, attempts: int, last_error: Exception) -> None:
        super().__init__(
            f"{getattr(color, 'value', color)} could not produce a valid decision "
            f"after {attempts} attempts: {last_error}"
        )
        self.color = color
        self.attempts = attempts
        self.last_error = last_error
