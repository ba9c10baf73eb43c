"""Room model for the capacity/membership ledger."""

from dataclasses import dataclass, field

from pydantic import BaseModel


class RoomInfo(BaseModel):
    """Room summary for membership messages and the status endpoint."""

    room_id: str
    host_id: str | None
    current_players: int
    max_players: int
    theme: str
    grid_size: int


@dataclass
class Room:
    """A named room players join before and during a game.

    Tracks membership and capacity only. Game rules live on the session of the
    same room id.
    """

    room_id: str
    max_players: int
    theme: str
    grid_size: int
    host_id: str | None = None
    player_ids: list[str] = field(default_factory=list)

    @property
    def player_count(self) -> int:
        return len(self.player_ids)

    @property
    def is_empty(self) -> bool:
        return self.player_count == 0

    @property
    def is_full(self) -> bool:
        return self.player_count >= self.max_players

    def info(self) -> RoomInfo:
        return RoomInfo(
            room_id=self.room_id,
            host_id=self.host_id,
            current_players=self.player_count,
            max_players=self.max_players,
            theme=self.theme,
            grid_size=self.grid_size,
        )
