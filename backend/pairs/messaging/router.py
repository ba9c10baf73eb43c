from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from pairs.messaging.types import (
    ChangeNameMessage,
    CreateRoomMessage,
    ErrorMessage,
    FlipCellMessage,
    GetStateMessage,
    JoinRoomMessage,
    LeaveRoomMessage,
    PauseGameMessage,
    PingMessage,
    RejoinRoomMessage,
    RemoveRoomMessage,
    RequestResetMessage,
    ResetGameMessage,
    ResumeGameMessage,
    SessionErrorCode,
    StartGameMessage,
    ToggleReadyMessage,
    VoteResetMessage,
    parse_client_message,
)

if TYPE_CHECKING:
    from pairs.messaging.protocol import ConnectionProtocol
    from pairs.session.manager import SessionManager

logger = logging.getLogger(__name__)


class MessageRouter:
    """
    Routes incoming messages to the session manager.

    Holds no game state of its own and can be tested without real WebSocket
    connections.
    """

    def __init__(self, session_manager: SessionManager) -> None:
        self._session_manager = session_manager

    async def handle_message(
        self,
        connection: ConnectionProtocol,
        raw_message: dict[str, Any],
    ) -> None:
        try:
            message = parse_client_message(raw_message)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("invalid message from %s: %s", connection.connection_id, e)
            await connection.send_message(
                ErrorMessage(code=SessionErrorCode.INVALID_MESSAGE, message=str(e)).model_dump(),
            )
            return

        try:
            await self._dispatch(connection, message)
        except Exception:
            logger.exception("unhandled error for %s handling %s", connection.connection_id, message.type)
            await connection.send_message(
                ErrorMessage(code=SessionErrorCode.INTERNAL_ERROR, message="Internal server error").model_dump(),
            )

    async def _dispatch(self, connection: ConnectionProtocol, message: Any) -> None:  # noqa: ANN401, C901, PLR0912
        manager = self._session_manager
        if isinstance(message, CreateRoomMessage):
            await manager.create_room(
                connection,
                room_id=message.room_id,
                player_name=message.player_name,
                max_players=message.max_players,
                theme=message.theme,
                grid_size=message.grid_size,
            )
        elif isinstance(message, JoinRoomMessage):
            await manager.join_room(connection, message.room_id, message.player_name)
        elif isinstance(message, RejoinRoomMessage):
            await manager.rejoin_room(connection, message.room_id)
        elif isinstance(message, LeaveRoomMessage):
            await manager.leave_room(connection)
        elif isinstance(message, ChangeNameMessage):
            await manager.change_name(connection, message.name)
        elif isinstance(message, ToggleReadyMessage):
            await manager.toggle_ready(connection)
        elif isinstance(message, StartGameMessage):
            await manager.start_game(connection)
        elif isinstance(message, FlipCellMessage):
            await manager.flip_cell(connection, message.cell_id)
        elif isinstance(message, PauseGameMessage):
            await manager.pause_game(connection)
        elif isinstance(message, ResumeGameMessage):
            await manager.resume_game(connection)
        elif isinstance(message, RequestResetMessage):
            await manager.request_reset(connection)
        elif isinstance(message, VoteResetMessage):
            await manager.vote_reset(connection, accepted=message.accepted)
        elif isinstance(message, ResetGameMessage):
            await manager.reset_game(connection)
        elif isinstance(message, RemoveRoomMessage):
            await manager.remove_room(connection)
        elif isinstance(message, GetStateMessage):
            await manager.send_state(connection)
        elif isinstance(message, PingMessage):
            await manager.handle_ping(connection)

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        structlog.contextvars.bind_contextvars(player_id=connection.player_id)
        stale = self._session_manager.register_connection(connection)
        if stale is not None:
            # the old socket must stop acting for this player
            with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                await stale.close(code=1000, reason="replaced_by_reconnect")

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        # Seats survive a dropped socket; the player comes back with rejoin_room.
        self._session_manager.unregister_connection(connection)
        structlog.contextvars.clear_contextvars()
