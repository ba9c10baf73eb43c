from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from pairs.logic.types import SessionView
from pairs.session.room import RoomInfo

# ASCII control character boundaries for input validation
_SPACE_ORD = 0x20
_DEL_ORD = 0x7F

_ROOM_ID_FIELD = Field(min_length=1, max_length=50, pattern=r"^[a-zA-Z0-9_-]+$")


class ClientMessageType(StrEnum):
    CREATE_ROOM = "create_room"
    JOIN_ROOM = "join_room"
    REJOIN_ROOM = "rejoin_room"
    LEAVE_ROOM = "leave_room"
    CHANGE_NAME = "change_name"
    TOGGLE_READY = "toggle_ready"
    START_GAME = "start_game"
    FLIP_CELL = "flip_cell"
    PAUSE_GAME = "pause_game"
    RESUME_GAME = "resume_game"
    REQUEST_RESET = "request_reset"
    VOTE_RESET = "vote_reset"
    RESET_GAME = "reset_game"
    REMOVE_ROOM = "remove_room"
    GET_STATE = "get_state"
    PING = "ping"


class SessionMessageType(StrEnum):
    GAME_STATE = "game_state"
    ERROR = "session_error"
    ROOM_CREATED = "room_created"
    ROOM_JOINED = "room_joined"
    ROOM_LEFT = "room_left"
    PLAYER_JOINED = "player_joined"
    PLAYER_LEFT = "player_left"
    PLAYER_NAME_CHANGED = "player_name_changed"
    GAME_STARTED = "game_started"
    GAME_PAUSED = "game_paused"
    GAME_RESUMED = "game_resumed"
    CELLS_HIDDEN = "cells_hidden"
    GAME_OVER = "game_over"
    RESET_REQUESTED = "reset_requested"
    RESET_VOTE_UPDATE = "reset_vote_update"
    RESET_ACCEPTED = "reset_accepted"
    RESET_DECLINED = "reset_declined"
    ROOM_REMOVED = "room_removed"
    PONG = "pong"


class SessionErrorCode(StrEnum):
    """Transport-level error codes. Game rejections reuse RejectionCode values."""

    INVALID_MESSAGE = "invalid_message"
    NOT_IN_ROOM = "not_in_room"
    INTERNAL_ERROR = "internal_error"
    SERVER_FULL = "server_full"


def _validate_display_text(v: str) -> str:
    if any(ord(c) < _SPACE_ORD or ord(c) == _DEL_ORD for c in v):
        raise ValueError("text must not contain control characters")
    stripped = v.strip()
    if not stripped:
        raise ValueError("text must not be blank")
    return stripped


class _NamedMessage(BaseModel):
    player_name: str = Field(min_length=1, max_length=30)

    @field_validator("player_name")
    @classmethod
    def _validate_name(cls, v: str) -> str:
        return _validate_display_text(v)


class CreateRoomMessage(_NamedMessage):
    type: Literal[ClientMessageType.CREATE_ROOM] = ClientMessageType.CREATE_ROOM
    room_id: str = _ROOM_ID_FIELD
    max_players: int | None = Field(default=None, ge=1, le=8)
    theme: str = Field(default="numbers", min_length=1, max_length=30, pattern=r"^[a-z0-9_-]+$")
    grid_size: int = Field(default=4, ge=2, le=8)


class JoinRoomMessage(_NamedMessage):
    type: Literal[ClientMessageType.JOIN_ROOM] = ClientMessageType.JOIN_ROOM
    room_id: str = _ROOM_ID_FIELD


class RejoinRoomMessage(BaseModel):
    type: Literal[ClientMessageType.REJOIN_ROOM] = ClientMessageType.REJOIN_ROOM
    room_id: str = _ROOM_ID_FIELD


class LeaveRoomMessage(BaseModel):
    type: Literal[ClientMessageType.LEAVE_ROOM] = ClientMessageType.LEAVE_ROOM


class ChangeNameMessage(BaseModel):
    type: Literal[ClientMessageType.CHANGE_NAME] = ClientMessageType.CHANGE_NAME
    name: str = Field(min_length=1, max_length=30)

    @field_validator("name")
    @classmethod
    def _validate_name(cls, v: str) -> str:
        return _validate_display_text(v)


class ToggleReadyMessage(BaseModel):
    type: Literal[ClientMessageType.TOGGLE_READY] = ClientMessageType.TOGGLE_READY


class StartGameMessage(BaseModel):
    type: Literal[ClientMessageType.START_GAME] = ClientMessageType.START_GAME


class FlipCellMessage(BaseModel):
    type: Literal[ClientMessageType.FLIP_CELL] = ClientMessageType.FLIP_CELL
    cell_id: int = Field(ge=0, lt=64, strict=True)


class PauseGameMessage(BaseModel):
    type: Literal[ClientMessageType.PAUSE_GAME] = ClientMessageType.PAUSE_GAME


class ResumeGameMessage(BaseModel):
    type: Literal[ClientMessageType.RESUME_GAME] = ClientMessageType.RESUME_GAME


class RequestResetMessage(BaseModel):
    type: Literal[ClientMessageType.REQUEST_RESET] = ClientMessageType.REQUEST_RESET


class VoteResetMessage(BaseModel):
    type: Literal[ClientMessageType.VOTE_RESET] = ClientMessageType.VOTE_RESET
    accepted: bool = Field(strict=True)


class ResetGameMessage(BaseModel):
    type: Literal[ClientMessageType.RESET_GAME] = ClientMessageType.RESET_GAME


class RemoveRoomMessage(BaseModel):
    type: Literal[ClientMessageType.REMOVE_ROOM] = ClientMessageType.REMOVE_ROOM


class GetStateMessage(BaseModel):
    type: Literal[ClientMessageType.GET_STATE] = ClientMessageType.GET_STATE


class PingMessage(BaseModel):
    type: Literal[ClientMessageType.PING] = ClientMessageType.PING


ClientMessage = Annotated[
    CreateRoomMessage
    | JoinRoomMessage
    | RejoinRoomMessage
    | LeaveRoomMessage
    | ChangeNameMessage
    | ToggleReadyMessage
    | StartGameMessage
    | FlipCellMessage
    | PauseGameMessage
    | ResumeGameMessage
    | RequestResetMessage
    | VoteResetMessage
    | ResetGameMessage
    | RemoveRoomMessage
    | GetStateMessage
    | PingMessage,
    Field(discriminator="type"),
]

_client_message_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


def parse_client_message(data: dict) -> ClientMessage:
    """Validate a decoded client frame into its typed message.

    Raises pydantic.ValidationError for unknown types or bad fields.
    """
    return _client_message_adapter.validate_python(data)


# --- Server messages ---


class GameStateMessage(BaseModel):
    type: Literal[SessionMessageType.GAME_STATE] = SessionMessageType.GAME_STATE
    state: SessionView


class ErrorMessage(BaseModel):
    type: Literal[SessionMessageType.ERROR] = SessionMessageType.ERROR
    code: str
    message: str


class RoomCreatedMessage(BaseModel):
    type: Literal[SessionMessageType.ROOM_CREATED] = SessionMessageType.ROOM_CREATED
    room: RoomInfo


class RoomJoinedMessage(BaseModel):
    type: Literal[SessionMessageType.ROOM_JOINED] = SessionMessageType.ROOM_JOINED
    room: RoomInfo
    rejoined: bool = False


class RoomLeftMessage(BaseModel):
    type: Literal[SessionMessageType.ROOM_LEFT] = SessionMessageType.ROOM_LEFT
    room_id: str


class PlayerJoinedMessage(BaseModel):
    type: Literal[SessionMessageType.PLAYER_JOINED] = SessionMessageType.PLAYER_JOINED
    player_id: str
    player_name: str
    current_players: int
    max_players: int


class PlayerLeftMessage(BaseModel):
    type: Literal[SessionMessageType.PLAYER_LEFT] = SessionMessageType.PLAYER_LEFT
    player_id: str
    player_name: str
    left_during_game: bool


class PlayerNameChangedMessage(BaseModel):
    type: Literal[SessionMessageType.PLAYER_NAME_CHANGED] = SessionMessageType.PLAYER_NAME_CHANGED
    player_id: str
    name: str


class GameStartedMessage(BaseModel):
    type: Literal[SessionMessageType.GAME_STARTED] = SessionMessageType.GAME_STARTED


class GamePausedMessage(BaseModel):
    type: Literal[SessionMessageType.GAME_PAUSED] = SessionMessageType.GAME_PAUSED
    paused_by: str


class GameResumedMessage(BaseModel):
    type: Literal[SessionMessageType.GAME_RESUMED] = SessionMessageType.GAME_RESUMED


class CellsHiddenMessage(BaseModel):
    type: Literal[SessionMessageType.CELLS_HIDDEN] = SessionMessageType.CELLS_HIDDEN
    cell_ids: list[int]


class GameOverMessage(BaseModel):
    type: Literal[SessionMessageType.GAME_OVER] = SessionMessageType.GAME_OVER
    winner_id: str | None
    winner_ids: list[str]
    is_tie: bool


class ResetRequestedMessage(BaseModel):
    type: Literal[SessionMessageType.RESET_REQUESTED] = SessionMessageType.RESET_REQUESTED
    requested_by: str
    votes: dict[str, bool]


class ResetVoteUpdateMessage(BaseModel):
    type: Literal[SessionMessageType.RESET_VOTE_UPDATE] = SessionMessageType.RESET_VOTE_UPDATE
    votes: dict[str, bool]
    all_voted: bool


class ResetAcceptedMessage(BaseModel):
    type: Literal[SessionMessageType.RESET_ACCEPTED] = SessionMessageType.RESET_ACCEPTED


class ResetDeclinedMessage(BaseModel):
    type: Literal[SessionMessageType.RESET_DECLINED] = SessionMessageType.RESET_DECLINED
    declined_by: str | None


class RoomRemovedMessage(BaseModel):
    type: Literal[SessionMessageType.ROOM_REMOVED] = SessionMessageType.ROOM_REMOVED
    room_id: str


class PongMessage(BaseModel):
    type: Literal[SessionMessageType.PONG] = SessionMessageType.PONG
