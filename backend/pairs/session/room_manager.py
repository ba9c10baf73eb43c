"""Room ledger: creation, joining, leaving and removal with a capacity check."""

import logging

from pairs.logic.enums import RejectionCode
from pairs.logic.results import Rejected
from pairs.session.room import Room, RoomInfo

logger = logging.getLogger(__name__)

ROOM_NOT_FOUND = Rejected(RejectionCode.ROOM_NOT_FOUND, "Room not found")


class RoomManager:
    """Own room membership and capacity.

    Pure bookkeeping: callers hold the per-room lock and deliver any rejection
    to the requesting connection.
    """

    def __init__(self) -> None:
        self._rooms: dict[str, Room] = {}

    def get_room(self, room_id: str) -> Room | None:
        return self._rooms.get(room_id)

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    def get_rooms_info(self) -> list[RoomInfo]:
        return [room.info() for room in self._rooms.values()]

    def create_room(
        self,
        room_id: str,
        max_players: int,
        theme: str,
        grid_size: int,
        host_id: str,
    ) -> Room | Rejected:
        """Create a room with the host as its first member."""
        if room_id in self._rooms:
            return Rejected(RejectionCode.ROOM_EXISTS, "Room already exists")
        room = Room(
            room_id=room_id,
            max_players=max_players,
            theme=theme,
            grid_size=grid_size,
            host_id=host_id,
            player_ids=[host_id],
        )
        self._rooms[room_id] = room
        logger.info("room created, max_players=%d", max_players)
        return room

    def join_room(self, room_id: str, player_id: str) -> Room | Rejected:
        room = self._rooms.get(room_id)
        if room is None:
            return ROOM_NOT_FOUND
        if player_id in room.player_ids:
            return Rejected(RejectionCode.ALREADY_IN_ROOM, "Already in room")
        if room.is_full:
            return Rejected(RejectionCode.ROOM_FULL, "Room full")
        room.player_ids.append(player_id)
        return room

    def leave_room(self, room_id: str, player_id: str) -> Room | Rejected:
        """Drop a member. The host role passes to the next member; empty rooms are discarded."""
        room = self._rooms.get(room_id)
        if room is None:
            return ROOM_NOT_FOUND
        if player_id not in room.player_ids:
            return Rejected(RejectionCode.NOT_IN_ROOM, "Not in room")
        room.player_ids.remove(player_id)
        if room.host_id == player_id:
            room.host_id = room.player_ids[0] if room.player_ids else None
        if room.is_empty:
            self._rooms.pop(room_id, None)
            logger.info("room %s is empty, removed", room_id)
        return room

    def remove_room(self, room_id: str) -> Room | Rejected:
        room = self._rooms.pop(room_id, None)
        if room is None:
            return ROOM_NOT_FOUND
        logger.info("room %s removed", room_id)
        return room
