from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, TypeAdapter, field_validator

from ..config import PlayerConfig
from .enums import ActionLogResult, ChatRole, Color, Coord, Phase

# ----- Actions (discriminated on "action") -----

StrictCoord = tuple[StrictInt, StrictInt]


def _check_coord(v: Coord) -> Coord:
    r, c = v
    if not (0 <= r < 6 and 0 <= c < 6):
        raise ValueError(f"position {list(v)} is off the board")
    return v


class _ActionBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    def wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class PlaceAction(_ActionBase):
    action: Literal["placing"] = "placing"
    position: StrictCoord

    @field_validator("position")
    @classmethod
    def check_position(cls, v: Coord) -> Coord:
        return _check_coord(v)

    @property
    def phase(self) -> Phase:
        return Phase.PLACING


class MoveAction(_ActionBase):
    action: Literal["moving"] = "moving"
    position: StrictCoord
    new_position: StrictCoord = Field(alias="newPosition")

    @field_validator("position", "new_position")
    @classmethod
    def check_position(cls, v: Coord) -> Coord:
        return _check_coord(v)

    @property
    def phase(self) -> Phase:
        return Phase.MOVING


class RemoveAction(_ActionBase):
    action: Literal["removing"] = "removing"
    position: StrictCoord

    @field_validator("position")
    @classmethod
    def check_position(cls, v: Coord) -> Coord:
        return _check_coord(v)

    @property
    def phase(self) -> Phase:
        return Phase.REMOVING


Action = Annotated[Union[PlaceAction, MoveAction, RemoveAction], Field(discriminator="action")]
action_adapter: TypeAdapter[Action] = TypeAdapter(Action)


def describe_action(action: Action) -> str:
    if isinstance(action, MoveAction):
        return f"move {list(action.position)} -> {list(action.new_position)}"
    verb = "place" if isinstance(action, PlaceAction) else "remove"
    return f"{verb} {list(action.position)}"


# ----- Conversation -----


class ChatMessage(BaseModel):
    role: ChatRole
    content: str


class DecisionRecord(BaseModel):
    action: Action
    attempts: int
    forced: bool = False
    source: str = "local"


# ----- Logging -----


class ActionLogEntry(BaseModel):
    session_id: str
    turn: int
    color: Color
    action: Optional[Action] = None
    result: ActionLogResult
    message: str | None = None
    attempt: int | None = None
    ts: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ActionLogResponse(BaseModel):
    entries: list[ActionLogEntry]


# ----- API IO -----


class CreateSessionRequest(BaseModel):
    players: dict[Color, PlayerConfig] | None = None
    seed: int | None = None


class ApplyActionRequest(BaseModel):
    action: Action


class UndoRequest(BaseModel):
    color: Color | None = None
