"""
Tagged result types returned by the game session manager.

Every public manager operation returns exactly one success variant or Rejected.
Callers branch with isinstance(result, Rejected) and never need try/except for
expected failures.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pairs.logic.enums import RejectionCode
    from pairs.logic.state import Player, Session


@dataclass(frozen=True)
class Rejected:
    code: RejectionCode
    reason: str


@dataclass(frozen=True)
class SessionResult:
    session: Session


@dataclass(frozen=True)
class FlipResult:
    session: Session
    should_resolve: bool = False  # second cell revealed; caller must schedule resolve()


@dataclass(frozen=True)
class ResolveResult:
    session: Session
    is_match: bool
    cells_to_hide: tuple[int, ...] = ()
    game_over: bool = False


@dataclass(frozen=True)
class GameOverResult:
    session: Session
    over: bool


@dataclass(frozen=True)
class RemoveResult:
    session: Session
    player: Player
    left_during_game: bool = False
    reset_cancelled: bool = False
    cells_to_hide: tuple[int, ...] = ()


@dataclass(frozen=True)
class VoteResult:
    session: Session
    votes: dict[str, bool] = field(default_factory=dict)
    all_voted: bool = False
    all_accepted: bool = False
    declined_by: str | None = None


@dataclass(frozen=True)
class RemovedResult:
    room_id: str
    player_ids: list[str] = field(default_factory=list)
