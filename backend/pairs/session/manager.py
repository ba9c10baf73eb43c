from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Any

import structlog

from pairs.logic.enums import RejectionCode
from pairs.logic.manager import GameSessionManager
from pairs.logic.results import Rejected
from pairs.logic.types import build_session_view
from pairs.messaging.types import (
    CellsHiddenMessage,
    ErrorMessage,
    GameOverMessage,
    GamePausedMessage,
    GameResumedMessage,
    GameStartedMessage,
    GameStateMessage,
    PlayerJoinedMessage,
    PlayerLeftMessage,
    PlayerNameChangedMessage,
    PongMessage,
    ResetAcceptedMessage,
    ResetDeclinedMessage,
    ResetRequestedMessage,
    ResetVoteUpdateMessage,
    RoomCreatedMessage,
    RoomJoinedMessage,
    RoomLeftMessage,
    RoomRemovedMessage,
    SessionErrorCode,
)
from pairs.session.broadcast import broadcast_to_connections
from pairs.session.resolution_scheduler import ResolutionScheduler
from pairs.session.room_manager import ROOM_NOT_FOUND, RoomManager

if TYPE_CHECKING:
    from pairs.logic.results import VoteResult
    from pairs.logic.state import Session
    from pairs.messaging.protocol import ConnectionProtocol

logger = structlog.get_logger()

DEFAULT_RESOLVE_DELAY_SECONDS = 0.6
DEFAULT_MAX_PLAYERS = 4


class SessionManager:
    """Deliver game intents to the rules engine and results to the right players.

    Owns connections, room membership and one asyncio.Lock per room: every
    mutation of a room (including the deferred pair resolution) runs under that
    lock, so intents for one room are applied strictly one at a time while
    different rooms proceed independently. Rejections go to the requester only;
    state changes are broadcast to every connected member of the room.
    """

    def __init__(
        self,
        game_manager: GameSessionManager | None = None,
        *,
        resolve_delay_seconds: float = DEFAULT_RESOLVE_DELAY_SECONDS,
        max_rooms: int = 0,
        default_max_players: int = DEFAULT_MAX_PLAYERS,
    ) -> None:
        self._game = game_manager or GameSessionManager()
        self._max_rooms = max_rooms
        self._default_max_players = default_max_players
        self._room_manager = RoomManager()
        self._connections: dict[str, ConnectionProtocol] = {}  # player_id -> live connection
        self._memberships: dict[str, str] = {}  # player_id -> room_id
        self._room_locks: dict[str, asyncio.Lock] = {}  # room_id -> Lock
        self._scheduler = ResolutionScheduler(on_resolve=self._resolve_pair, delay_seconds=resolve_delay_seconds)

    @property
    def game_manager(self) -> GameSessionManager:
        return self._game

    @property
    def room_manager(self) -> RoomManager:
        return self._room_manager

    @property
    def room_count(self) -> int:
        return self._room_manager.room_count

    @property
    def active_game_count(self) -> int:
        return self._game.store.active_count

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    @property
    def resolve_delay_seconds(self) -> float:
        return self._scheduler.delay_seconds

    @property
    def pending_resolution_count(self) -> int:
        return self._scheduler.pending_count

    def get_room_id(self, player_id: str) -> str | None:
        return self._memberships.get(player_id)

    # --- Connections ---

    def register_connection(self, connection: ConnectionProtocol) -> ConnectionProtocol | None:
        """Bind a connection to its player id.

        A newer connection replaces an older one. The replaced connection is
        returned so the caller can close it; it no longer receives broadcasts.
        """
        stale = self._connections.get(connection.player_id)
        self._connections[connection.player_id] = connection
        if stale is None or stale is connection:
            return None
        logger.info("connection replaced", player_id=connection.player_id, stale_connection_id=stale.connection_id)
        return stale

    def unregister_connection(self, connection: ConnectionProtocol) -> None:
        """Forget a dropped connection. The player keeps their seat and may rejoin."""
        if self._connections.get(connection.player_id) is connection:
            del self._connections[connection.player_id]

    def cancel_pending_resolutions(self) -> None:
        self._scheduler.cancel_all()

    # --- Room membership ---

    async def create_room(
        self,
        connection: ConnectionProtocol,
        room_id: str,
        player_name: str,
        max_players: int | None,
        theme: str,
        grid_size: int,
    ) -> None:
        player_id = connection.player_id
        if player_id in self._memberships:
            await self._send_error(connection, RejectionCode.ALREADY_IN_ROOM, "You must leave your current room first")
            return
        if self._max_rooms and self._room_manager.room_count >= self._max_rooms:
            await self._send_error(connection, SessionErrorCode.SERVER_FULL, "Server at capacity")
            return

        if max_players is None:
            max_players = self._default_max_players

        lock = self._room_locks.setdefault(room_id, asyncio.Lock())
        async with lock:
            room = self._room_manager.create_room(room_id, max_players, theme, grid_size, host_id=player_id)
            if isinstance(room, Rejected):
                await self._send_rejection(connection, room)
                return

            result = self._game.add_player(room_id, player_id, player_name, theme, grid_size)
            if isinstance(result, Rejected):
                self._room_manager.remove_room(room_id)
                self._room_locks.pop(room_id, None)
                await self._send_rejection(connection, result)
                return

            self._memberships[player_id] = room_id
            logger.info("room created", room_id=room_id, player_id=player_id)
            await connection.send_message(RoomCreatedMessage(room=room.info()).model_dump())
            await self._send_state(connection, result.session)

    async def join_room(self, connection: ConnectionProtocol, room_id: str, player_name: str) -> None:
        player_id = connection.player_id
        if player_id in self._memberships:
            await self._send_error(connection, RejectionCode.ALREADY_IN_ROOM, "You must leave your current room first")
            return

        lock = self._room_locks.get(room_id)
        if lock is None:
            await self._send_rejection(connection, ROOM_NOT_FOUND)
            return

        async with lock:
            room = self._room_manager.join_room(room_id, player_id)
            if isinstance(room, Rejected):
                await self._send_rejection(connection, room)
                return

            result = self._game.add_player(room_id, player_id, player_name, room.theme, room.grid_size)
            if isinstance(result, Rejected):
                self._room_manager.leave_room(room_id, player_id)
                await self._send_rejection(connection, result)
                return

            self._memberships[player_id] = room_id
            logger.info("player joined room", room_id=room_id, player_id=player_id)
            await connection.send_message(RoomJoinedMessage(room=room.info()).model_dump())
            await self._broadcast_state(result.session)
            await self._broadcast(
                room_id,
                PlayerJoinedMessage(
                    player_id=player_id,
                    player_name=player_name,
                    current_players=room.player_count,
                    max_players=room.max_players,
                ).model_dump(),
            )

    async def rejoin_room(self, connection: ConnectionProtocol, room_id: str) -> None:
        """Reattach a reconnected player to their seat and send them the current snapshot."""
        player_id = connection.player_id
        lock = self._room_locks.get(room_id)
        room = self._room_manager.get_room(room_id)
        if lock is None or room is None:
            await self._send_rejection(connection, ROOM_NOT_FOUND)
            return

        async with lock:
            result = self._game.get_state(room_id)
            if isinstance(result, Rejected):
                await self._send_rejection(connection, result)
                return
            if player_id not in result.session.players:
                await self._send_error(connection, SessionErrorCode.NOT_IN_ROOM, "You are not seated in this room")
                return

            self._memberships[player_id] = room_id
            logger.info("player rejoined room", room_id=room_id, player_id=player_id)
            await connection.send_message(RoomJoinedMessage(room=room.info(), rejoined=True).model_dump())
            await self._send_state(connection, result.session)

    async def leave_room(self, connection: ConnectionProtocol) -> None:
        player_id = connection.player_id
        located = await self._locate(connection)
        if located is None:
            return
        room_id, lock = located

        async with lock:
            self._room_manager.leave_room(room_id, player_id)
            result = self._game.remove_player(room_id, player_id)
            self._memberships.pop(player_id, None)

            with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                await connection.send_message(RoomLeftMessage(room_id=room_id).model_dump())

            if isinstance(result, Rejected):
                logger.warning("leaving player had no seat", room_id=room_id, reason=result.reason)
                room_emptied = self._room_manager.get_room(room_id) is None
            else:
                room_emptied = result.session.is_empty
                if room_emptied:
                    self._scheduler.cancel(room_id)
                    self._game.remove_game(room_id)
                    self._room_manager.remove_room(room_id)
                else:
                    if result.cells_to_hide:
                        await self._broadcast(
                            room_id,
                            CellsHiddenMessage(cell_ids=list(result.cells_to_hide)).model_dump(),
                        )
                    await self._broadcast(
                        room_id,
                        PlayerLeftMessage(
                            player_id=player_id,
                            player_name=result.player.name,
                            left_during_game=result.left_during_game,
                        ).model_dump(),
                    )
                    await self._broadcast_state(result.session)

        # Drop the lock outside the async with block to avoid deleting it while held.
        if room_emptied:
            self._room_locks.pop(room_id, None)

    async def change_name(self, connection: ConnectionProtocol, name: str) -> None:
        located = await self._locate(connection)
        if located is None:
            return
        room_id, lock = located
        async with lock:
            result = self._game.change_player_name(room_id, connection.player_id, name)
            if isinstance(result, Rejected):
                await self._send_rejection(connection, result)
                return
            await self._broadcast(
                room_id,
                PlayerNameChangedMessage(player_id=connection.player_id, name=name).model_dump(),
            )
            await self._broadcast_state(result.session)

    async def toggle_ready(self, connection: ConnectionProtocol) -> None:
        located = await self._locate(connection)
        if located is None:
            return
        room_id, lock = located
        async with lock:
            result = self._game.toggle_ready(room_id, connection.player_id)
            if isinstance(result, Rejected):
                await self._send_rejection(connection, result)
                return
            await self._broadcast_state(result.session)

    async def send_state(self, connection: ConnectionProtocol) -> None:
        located = await self._locate(connection)
        if located is None:
            return
        room_id, lock = located
        async with lock:
            result = self._game.get_state(room_id)
            if isinstance(result, Rejected):
                await self._send_rejection(connection, result)
                return
            await self._send_state(connection, result.session)

    async def handle_ping(self, connection: ConnectionProtocol) -> None:
        await connection.send_message(PongMessage().model_dump())

    # --- Round ---

    async def start_game(self, connection: ConnectionProtocol) -> None:
        located = await self._locate(connection)
        if located is None:
            return
        room_id, lock = located
        async with lock:
            result = self._game.start_game(room_id)
            if isinstance(result, Rejected):
                await self._send_rejection(connection, result)
                return
            await self._broadcast_state(result.session)
            await self._broadcast(room_id, GameStartedMessage().model_dump())

    async def flip_cell(self, connection: ConnectionProtocol, cell_id: int) -> None:
        located = await self._locate(connection)
        if located is None:
            return
        room_id, lock = located
        async with lock:
            result = self._game.flip_cell(room_id, connection.player_id, cell_id)
            if isinstance(result, Rejected):
                await self._send_rejection(connection, result)
                return
            await self._broadcast_state(result.session)
            if result.should_resolve:
                self._scheduler.schedule(room_id)

    async def _resolve_pair(self, room_id: str) -> None:
        """Resolution timer callback: score the pair, hide mismatches, release the board."""
        lock = self._room_locks.get(room_id)
        if lock is None:
            logger.info("room gone before resolution", room_id=room_id)
            return

        async with lock:
            result = self._game.resolve(room_id)
            if isinstance(result, Rejected):
                logger.info("resolution skipped", room_id=room_id, reason=result.reason)
                return

            if result.cells_to_hide:
                await self._broadcast(room_id, CellsHiddenMessage(cell_ids=list(result.cells_to_hide)).model_dump())
            self._game.finish_resolution(room_id)
            await self._broadcast_state(result.session)
            if result.game_over:
                session = result.session
                await self._broadcast(
                    room_id,
                    GameOverMessage(
                        winner_id=session.winner_id,
                        winner_ids=list(session.winner_ids),
                        is_tie=session.is_tie,
                    ).model_dump(),
                )

    async def pause_game(self, connection: ConnectionProtocol) -> None:
        located = await self._locate(connection)
        if located is None:
            return
        room_id, lock = located
        async with lock:
            result = self._game.pause(room_id, connection.player_id)
            if isinstance(result, Rejected):
                await self._send_rejection(connection, result)
                return
            await self._broadcast_state(result.session)
            await self._broadcast(room_id, GamePausedMessage(paused_by=result.session.paused_by or "").model_dump())

    async def resume_game(self, connection: ConnectionProtocol) -> None:
        located = await self._locate(connection)
        if located is None:
            return
        room_id, lock = located
        async with lock:
            result = self._game.resume(room_id, connection.player_id)
            if isinstance(result, Rejected):
                await self._send_rejection(connection, result)
                return
            await self._broadcast_state(result.session)
            await self._broadcast(room_id, GameResumedMessage().model_dump())

    # --- Reset vote ---

    async def request_reset(self, connection: ConnectionProtocol) -> None:
        located = await self._locate(connection)
        if located is None:
            return
        room_id, lock = located
        async with lock:
            result = self._game.request_reset(room_id, connection.player_id)
            if isinstance(result, Rejected):
                await self._send_rejection(connection, result)
                return
            await self._broadcast(
                room_id,
                ResetRequestedMessage(requested_by=connection.player_id, votes=result.votes).model_dump(),
            )
            await self._conclude_vote(room_id, result)

    async def vote_reset(self, connection: ConnectionProtocol, *, accepted: bool) -> None:
        located = await self._locate(connection)
        if located is None:
            return
        room_id, lock = located
        async with lock:
            result = self._game.vote_reset(room_id, connection.player_id, accepted=accepted)
            if isinstance(result, Rejected):
                await self._send_rejection(connection, result)
                return
            await self._broadcast(
                room_id,
                ResetVoteUpdateMessage(votes=result.votes, all_voted=result.all_voted).model_dump(),
            )
            await self._conclude_vote(room_id, result)

    async def _conclude_vote(self, room_id: str, result: VoteResult) -> None:
        """Replay the round on unanimous acceptance, otherwise announce the decline. Caller holds the lock."""
        if not result.all_voted:
            await self._broadcast_state(result.session)
            return

        if not result.all_accepted:
            await self._broadcast(room_id, ResetDeclinedMessage(declined_by=result.declined_by).model_dump())
            await self._broadcast_state(result.session)
            return

        self._scheduler.cancel(room_id)
        reset = self._game.execute_reset(room_id)
        if isinstance(reset, Rejected):
            logger.warning("accepted reset could not run", room_id=room_id, reason=reset.reason)
            return
        await self._broadcast(room_id, ResetAcceptedMessage().model_dump())
        await self._broadcast_state(reset.session)
        await self._broadcast(room_id, GameStartedMessage().model_dump())

    # --- Teardown ---

    async def reset_game(self, connection: ConnectionProtocol) -> None:
        """Send everyone back to the lobby: wipe the session, then close the room."""
        located = await self._locate(connection)
        if located is None:
            return
        room_id, lock = located
        async with lock:
            result = self._game.reset_game(room_id)
            if isinstance(result, Rejected):
                await self._send_rejection(connection, result)
                return
            await self._broadcast_state(result.session)
            await self._teardown_room(room_id)
        self._room_locks.pop(room_id, None)

    async def remove_room(self, connection: ConnectionProtocol) -> None:
        located = await self._locate(connection)
        if located is None:
            return
        room_id, lock = located
        async with lock:
            await self._teardown_room(room_id)
        self._room_locks.pop(room_id, None)

    async def _teardown_room(self, room_id: str) -> None:
        """Drop the room ledger entry, the session and every membership. Caller holds the lock."""
        self._scheduler.cancel(room_id)
        connections = self._room_connections(room_id)
        self._room_manager.remove_room(room_id)
        self._game.remove_game(room_id)
        for player_id in [pid for pid, rid in self._memberships.items() if rid == room_id]:
            del self._memberships[player_id]
        logger.info("room torn down", room_id=room_id)
        await broadcast_to_connections(connections, RoomRemovedMessage(room_id=room_id).model_dump())

    # --- Internal helpers ---

    async def _locate(self, connection: ConnectionProtocol) -> tuple[str, asyncio.Lock] | None:
        """Find the requester's room and its lock, or tell them they are not in one."""
        room_id = self._memberships.get(connection.player_id)
        lock = self._room_locks.get(room_id) if room_id is not None else None
        if room_id is None or lock is None:
            await self._send_error(connection, SessionErrorCode.NOT_IN_ROOM, "You must join a room first")
            return None
        structlog.contextvars.bind_contextvars(room_id=room_id)
        return room_id, lock

    def _room_connections(self, room_id: str) -> list[ConnectionProtocol]:
        return [
            self._connections[player_id]
            for player_id, member_room_id in self._memberships.items()
            if member_room_id == room_id and player_id in self._connections
        ]

    async def _broadcast(self, room_id: str, message: dict[str, Any]) -> None:
        await broadcast_to_connections(self._room_connections(room_id), message)

    async def _broadcast_state(self, session: Session) -> None:
        message = GameStateMessage(state=build_session_view(session)).model_dump()
        await self._broadcast(session.room_id, message)

    @staticmethod
    async def _send_state(connection: ConnectionProtocol, session: Session) -> None:
        await connection.send_message(GameStateMessage(state=build_session_view(session)).model_dump())

    async def _send_rejection(self, connection: ConnectionProtocol, rejected: Rejected) -> None:
        await self._send_error(connection, rejected.code, rejected.reason)

    @staticmethod
    async def _send_error(connection: ConnectionProtocol, code: str, message: str) -> None:
        logger.warning("session error sent to client", error_code=str(code), error_message=message)
        with contextlib.suppress(RuntimeError, OSError, ConnectionError):
            await connection.send_message(ErrorMessage(code=code, message=message).model_dump())
