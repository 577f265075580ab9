from enum import Enum

Coord = tuple[int, int]  # (row, col)


class Color(str, Enum):
    BLACK = "black"
    WHITE = "white"

    @property
    def opponent(self) -> "Color":
        return Color.WHITE if self is Color.BLACK else Color.BLACK


class Phase(str, Enum):
    PLACING = "placing"
    MOVING = "moving"
    REMOVING = "removing"


class FormationKind(str, Enum):
    SQUARE = "square"
    DIAGONAL = "diagonal"
    LINE = "line"


class PlayerType(str, Enum):
    SELF = "self"  # human at this device
    LOCAL = "local"  # built-in heuristic player
    AI = "ai"  # remote reasoning service


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class ActionLogResult(str, Enum):
    APPLIED = "applied"
    REJECTED = "rejected"
    FORCED = "forced"
    ERROR = "error"


class ChatRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
