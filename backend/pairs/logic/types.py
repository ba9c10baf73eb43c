"""
Pydantic snapshot models that cross the logic/transport boundary.

Sessions are mutable dataclasses owned by the store; clients only ever receive
these immutable views built from them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from pairs.logic.enums import GamePhase

if TYPE_CHECKING:
    from pairs.logic.state import Session


class CellView(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    value: int | str


class PlayerView(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    ready: bool
    has_turn: bool
    score: int
    pairs_found: int
    moves: int


class ResetRequestView(BaseModel):
    model_config = ConfigDict(frozen=True)

    requested_by: str
    votes: dict[str, bool]


class SessionView(BaseModel):
    """Full game snapshot sent to clients on every broadcast-worthy change."""

    model_config = ConfigDict(frozen=True)

    room_id: str
    theme: str
    grid_size: int
    phase: GamePhase
    players: list[PlayerView]  # turn order
    started: bool
    over: bool
    paused: bool
    paused_by: str | None
    board: list[CellView]
    revealed: list[int]
    matched: list[int]
    processing: bool
    reset_request: ResetRequestView | None
    reset_used: bool
    winner_id: str | None
    winner_ids: list[str]
    is_tie: bool


def build_session_view(session: Session) -> SessionView:
    """Snapshot a session for delivery to clients."""
    reset_request = None
    if session.reset_request is not None:
        reset_request = ResetRequestView(
            requested_by=session.reset_request.requested_by,
            votes=dict(session.reset_request.votes),
        )
    return SessionView(
        room_id=session.room_id,
        theme=session.theme,
        grid_size=session.grid_size,
        phase=session.phase,
        players=[
            PlayerView(
                id=p.id,
                name=p.name,
                ready=p.ready,
                has_turn=session.has_turn(p.id),
                score=p.score,
                pairs_found=p.pairs_found,
                moves=p.moves,
            )
            for p in session.ordered_players
        ],
        started=session.started,
        over=session.over,
        paused=session.paused,
        paused_by=session.paused_by,
        board=[CellView(id=c.id, value=c.value) for c in session.board],
        revealed=list(session.revealed),
        matched=sorted(session.matched),
        processing=session.processing,
        reset_request=reset_request,
        reset_used=session.reset_used,
        winner_id=session.winner_id,
        winner_ids=list(session.winner_ids),
        is_tie=session.is_tie,
    )
