"""
Session state models for the memory-match game.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pairs.logic.enums import GamePhase


@dataclass(frozen=True)
class Cell:
    """A board position. The id is stable; only its place in the board list is shuffled."""

    id: int
    value: int | str


@dataclass
class Player:
    """
    Per-player stat record, indexed by player id inside a Session.

    Turn ownership is not stored here: it lives on the session as current_turn_id.
    """

    id: str
    name: str
    ready: bool = False
    score: int = 0
    pairs_found: int = 0
    moves: int = 0

    def reset_stats(self) -> None:
        self.ready = False
        self.score = 0
        self.pairs_found = 0
        self.moves = 0


@dataclass
class ResetRequest:
    """A live rematch vote. Votes keep insertion order so the first decliner is well defined."""

    requested_by: str
    votes: dict[str, bool] = field(default_factory=dict)

    def declined_by(self) -> str | None:
        return next((player_id for player_id, accepted in self.votes.items() if not accepted), None)


@dataclass
class Session:
    """
    Authoritative game state for one room.

    Lifecycle:
    - Created lazily on the first add_player for a room (theme and grid size captured then)
    - start_game deals the board and hands the turn to turn_order[0]
    - resolve advances the turn after every pair of reveals
    - Over once every cell is matched; execute_reset re-enters the active round
    - Destroyed by remove_game
    """

    room_id: str
    theme: str
    grid_size: int
    players: dict[str, Player] = field(default_factory=dict)  # player_id -> Player
    turn_order: list[str] = field(default_factory=list)  # join order, the only source of turn order
    current_turn_id: str | None = None

    started: bool = False
    over: bool = False
    paused: bool = False
    paused_by: str | None = None

    board: list[Cell] = field(default_factory=list)
    revealed: list[int] = field(default_factory=list)  # at most 2 face-up cell ids pending resolution
    matched: set[int] = field(default_factory=set)
    processing: bool = False  # second reveal accepted, resolution not yet cleared

    reset_request: ResetRequest | None = None
    reset_used: bool = False

    winner_id: str | None = None
    winner_ids: list[str] = field(default_factory=list)
    is_tie: bool = False

    @property
    def is_active(self) -> bool:
        return self.started and not self.over

    @property
    def is_empty(self) -> bool:
        return not self.turn_order

    @property
    def player_count(self) -> int:
        return len(self.turn_order)

    @property
    def host_id(self) -> str | None:
        return self.turn_order[0] if self.turn_order else None

    @property
    def ordered_players(self) -> list[Player]:
        return [self.players[player_id] for player_id in self.turn_order]

    @property
    def current_player(self) -> Player | None:
        if self.current_turn_id is None:
            return None
        return self.players.get(self.current_turn_id)

    @property
    def phase(self) -> GamePhase:
        if self.over:
            return GamePhase.OVER
        if not self.started:
            return GamePhase.LOBBY
        if self.processing:
            return GamePhase.RESOLVING
        if self.paused:
            return GamePhase.PAUSED
        return GamePhase.ACTIVE

    def has_turn(self, player_id: str) -> bool:
        return self.current_turn_id is not None and self.current_turn_id == player_id

    def cell(self, cell_id: int) -> Cell | None:
        return next((c for c in self.board if c.id == cell_id), None)

    def next_player_id(self, player_id: str) -> str | None:
        """Return the player after player_id in turn order, wrapping around."""
        if player_id not in self.turn_order:
            return None
        index = self.turn_order.index(player_id)
        return self.turn_order[(index + 1) % len(self.turn_order)]

    def clear_round(self) -> None:
        """Drop every piece of per-round state (board, reveals, pause, outcome)."""
        self.board = []
        self.revealed = []
        self.matched = set()
        self.processing = False
        self.paused = False
        self.paused_by = None
        self.current_turn_id = None
        self.winner_id = None
        self.winner_ids = []
        self.is_tie = False
