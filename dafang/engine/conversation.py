from __future__ import annotations

import json

from ..models.api import Action, ChatMessage
from ..models.board import Board
from ..models.enums import ChatRole, Color, Phase

SYSTEM_PROMPT = (
    "You are an expert player of dafang, a formation game on a square board of 6 "
    "horizontal and 6 vertical lines. Two sides, black and white, take part. The game "
    "starts in the 'placing' phase: players alternate placing stones; a stone that "
    "completes a formation (a 2x2 square, an edge-to-edge diagonal of 3, 4, 5 or 6 "
    "stones, or a full inner rank or file) sets isFormation=true on the stones involved "
    "and earns extra placements. When the board is full the 'removing' phase starts and "
    "each side removes one opponent stone that is not part of a formation. Then comes the "
    "'moving' phase: move one stone one step to an adjacent empty point, either to build a "
    "new formation (which earns removals of opponent stones) or to stop the opponent from "
    "building one. A side with fewer than 3 stones, or with no stone able to move, loses. "
    "Learn from the game history you are sent, then decide from the current board (a 6x6 "
    'array whose cells look like {"color":"black","isFormation":false} or null) and the '
    "phase (placing|moving|removing). Reply strictly with "
    '{"action": "placing|moving|removing", "position": [row,col], "newPosition": [row,col]} '
    'where "newPosition" is only present when action is moving, and nothing else.'
)

REPLY_TEMPLATES: dict[Phase, str] = {
    Phase.PLACING: '{"action": "placing", "position": [row,col]}',
    Phase.MOVING: '{"action": "moving", "position": [row,col], "newPosition": [row,col]}',
    Phase.REMOVING: '{"action": "removing", "position": [row,col]}',
}


def state_text(board: Board, color: Color, phase: Phase) -> str:
    return (
        f"Current board: {json.dumps(board.to_wire(), separators=(',', ':'))}. "
        f"Your color: {color.value}. Current phase: '{phase.value}'. "
        "Give your best decision for this position."
    )


def legal_text(legal: list[Action], phase: Phase) -> str:
    options = json.dumps([a.wire() for a in legal], separators=(",", ":"))
    return (
        f" Legal decisions: {options}. Choose exactly one of them and reply only with "
        f"{REPLY_TEMPLATES[phase]}."
    )


class Conversation:
    """Rolling chat history sent to the remote reasoning service."""

    def __init__(self, messages: list[ChatMessage] | None = None) -> None:
        self.messages: list[ChatMessage] = messages or [
            ChatMessage(role=ChatRole.SYSTEM, content=SYSTEM_PROMPT)
        ]

    def add_user(self, content: str) -> None:
        self.messages.append(ChatMessage(role=ChatRole.USER, content=content))

    def add_assistant(self, content: str) -> None:
        self.messages.append(ChatMessage(role=ChatRole.ASSISTANT, content=content))

    def add_state(self, board: Board, color: Color, phase: Phase, feedback: str = "") -> None:
        prefix = f"{feedback.strip()} " if feedback else ""
        self.add_user(prefix + state_text(board, color, phase))

    def add_rejection(
        self, content: str, reason: str, board: Board, color: Color, phase: Phase
    ) -> None:
        self.add_assistant(content)
        self.add_state(
            board,
            color,
            phase,
            feedback=f"Your decision was rejected: {reason}. Pick again from the legal decisions.",
        )

    def request_messages(
        self, board: Board, color: Color, phase: Phase, legal: list[Action]
    ) -> list[ChatMessage]:
        """Copy of the history whose last user turn carries the legal set and template."""
        out = list(self.messages)
        if out[-1].role is not ChatRole.USER:
            out.append(ChatMessage(role=ChatRole.USER, content=state_text(board, color, phase)))
        last = out[-1]
        out[-1] = ChatMessage(role=ChatRole.USER, content=last.content + legal_text(legal, phase))
        return out

    def truncate(self, length: int) -> None:
        del self.messages[max(1, length):]

    def __len__(self) -> int:
        return len(self.messages)
