"""
Authoritative memory-match game rules over an explicit session store.

GameSessionManager is synchronous and transport-agnostic. It never awaits and
never raises for caller-visible failures: every operation returns a success
result or Rejected. Callers are responsible for linearizing calls per room.
"""

from __future__ import annotations

import random

import structlog

from pairs.logic.board import generate_board
from pairs.logic.enums import RejectionCode
from pairs.logic.results import (
    FlipResult,
    GameOverResult,
    Rejected,
    RemovedResult,
    RemoveResult,
    ResolveResult,
    SessionResult,
    VoteResult,
)
from pairs.logic.settings import GameSettings
from pairs.logic.state import Player, ResetRequest, Session
from pairs.logic.store import SessionStore

logger = structlog.get_logger()

_GAME_NOT_FOUND = Rejected(RejectionCode.GAME_NOT_FOUND, "Game not found")
_PLAYER_NOT_FOUND = Rejected(RejectionCode.PLAYER_NOT_FOUND, "Player not found")


class GameSessionManager:
    def __init__(
        self,
        store: SessionStore | None = None,
        settings: GameSettings | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._store = store if store is not None else SessionStore()
        self._settings = settings or GameSettings()
        self._rng = rng or random.Random()  # noqa: S311

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def settings(self) -> GameSettings:
        return self._settings

    # --- Lobby ---

    def add_player(
        self,
        room_id: str,
        player_id: str,
        name: str,
        theme: str,
        grid_size: int,
    ) -> SessionResult | Rejected:
        """Add a player, creating the room's session on first use.

        Re-adding a player id that is already seated is an idempotent rejoin and
        returns the session unchanged, even mid-round.
        """
        session = self._store.get(room_id)
        if session is None:
            if not self._settings.is_valid_grid_size(grid_size):
                return Rejected(
                    RejectionCode.INVALID_GRID_SIZE,
                    f"Grid size must be an even number between {self._settings.min_grid_size} "
                    f"and {self._settings.max_grid_size}",
                )
            session = self._store.get_or_create(room_id, theme, grid_size)
            logger.info("session created", room_id=room_id, theme=theme, grid_size=grid_size)

        if player_id in session.players:
            return SessionResult(session)

        if session.started:
            return Rejected(RejectionCode.GAME_ALREADY_STARTED, "Cannot add player to started game")
        if session.over:
            return Rejected(RejectionCode.GAME_OVER, "Game is over; reset to play again")

        session.players[player_id] = Player(id=player_id, name=name)
        session.turn_order.append(player_id)
        return SessionResult(session)

    def change_player_name(self, room_id: str, player_id: str, name: str) -> SessionResult | Rejected:
        session = self._store.get(room_id)
        if session is None:
            return _GAME_NOT_FOUND
        player = session.players.get(player_id)
        if player is None:
            return _PLAYER_NOT_FOUND
        player.name = name
        return SessionResult(session)

    def toggle_ready(self, room_id: str, player_id: str) -> SessionResult | Rejected:
        session = self._store.get(room_id)
        if session is None:
            return _GAME_NOT_FOUND
        player = session.players.get(player_id)
        if player is None:
            return _PLAYER_NOT_FOUND
        player.ready = not player.ready
        return SessionResult(session)

    def get_state(self, room_id: str) -> SessionResult | Rejected:
        session = self._store.get(room_id)
        if session is None:
            return _GAME_NOT_FOUND
        return SessionResult(session)

    def start_game(self, room_id: str) -> SessionResult | Rejected:
        """Deal the board and hand the first turn to the host.

        The host (first in turn order) never needs to be ready; every guest does.
        A finished game stays over until execute_reset or reset_game.
        """
        session = self._store.get(room_id)
        if session is None:
            return _GAME_NOT_FOUND
        if session.started:
            return Rejected(RejectionCode.GAME_ALREADY_STARTED, "Game already started")
        if session.over:
            return Rejected(RejectionCode.GAME_OVER, "Game is over; reset to play again")
        if session.is_empty:
            return Rejected(RejectionCode.NO_PLAYERS, "Game has no players")
        guests = session.ordered_players[1:]
        if guests and not all(p.ready for p in guests):
            return Rejected(RejectionCode.PLAYERS_NOT_READY, "Not all players are ready")

        self._deal(session)
        logger.info("game started", room_id=room_id, players=session.player_count)
        return SessionResult(session)

    # --- Turn protocol ---

    def flip_cell(self, room_id: str, player_id: str, cell_id: int) -> FlipResult | Rejected:
        """Reveal one cell for the player holding the turn.

        The second reveal of a turn sets processing and asks the caller to
        schedule resolve(); no further flip is accepted until it is cleared.
        """
        session = self._store.get(room_id)
        if session is None:
            return _GAME_NOT_FOUND
        if player_id not in session.players:
            return _PLAYER_NOT_FOUND
        if not session.is_active:
            return Rejected(RejectionCode.GAME_NOT_ACTIVE, "Game is not in progress")
        if session.paused:
            return Rejected(RejectionCode.GAME_PAUSED, "Game is paused")
        if not session.has_turn(player_id):
            return Rejected(RejectionCode.NOT_YOUR_TURN, "Not your turn")
        if len(session.revealed) >= 2:  # noqa: PLR2004
            return Rejected(RejectionCode.TOO_MANY_REVEALED, "Cannot flip more than 2 cells")
        if session.processing:
            return Rejected(RejectionCode.RESOLUTION_PENDING, "Previous turn is still resolving")
        if cell_id in session.revealed:
            return Rejected(RejectionCode.CELL_ALREADY_REVEALED, "Cell already flipped")
        if cell_id in session.matched:
            return Rejected(RejectionCode.CELL_ALREADY_MATCHED, "Cell already matched")
        if session.cell(cell_id) is None:
            return Rejected(RejectionCode.INVALID_CELL, f"No cell with id {cell_id}")

        session.revealed.append(cell_id)
        if len(session.revealed) == 2:  # noqa: PLR2004
            session.processing = True
            return FlipResult(session, should_resolve=True)
        return FlipResult(session)

    def resolve(self, room_id: str) -> ResolveResult | Rejected:
        """Score the two revealed cells and pass the turn, match or not."""
        session = self._store.get(room_id)
        if session is None:
            return _GAME_NOT_FOUND
        if len(session.revealed) != 2:  # noqa: PLR2004
            return Rejected(RejectionCode.NOTHING_TO_RESOLVE, "No pair of cells awaiting resolution")

        first_id, second_id = session.revealed
        first, second = session.cell(first_id), session.cell(second_id)
        is_match = first is not None and second is not None and first.value == second.value

        current = session.current_player
        if current is not None:
            current.moves += 1

        cells_to_hide: tuple[int, ...] = ()
        if is_match:
            if current is not None:
                current.score += self._settings.match_points
                current.pairs_found += 1
            session.matched.update((first_id, second_id))
        else:
            cells_to_hide = (first_id, second_id)
        session.revealed = []
        self._advance_turn(session)

        logger.debug(
            "pair resolved",
            room_id=room_id,
            cells=[first_id, second_id],
            is_match=is_match,
            player_id=current.id if current is not None else None,
        )
        game_over = self._finish_if_complete(session)
        return ResolveResult(session, is_match=is_match, cells_to_hide=cells_to_hide, game_over=game_over)

    def finish_resolution(self, room_id: str) -> SessionResult | Rejected:
        """Clear the processing flag once hidden cells have been delivered."""
        session = self._store.get(room_id)
        if session is None:
            return _GAME_NOT_FOUND
        session.processing = False
        return SessionResult(session)

    def check_game_over(self, room_id: str) -> GameOverResult | Rejected:
        session = self._store.get(room_id)
        if session is None:
            return _GAME_NOT_FOUND
        if session.over:
            return GameOverResult(session, over=True)
        return GameOverResult(session, over=self._finish_if_complete(session))

    # --- Departure ---

    def remove_player(self, room_id: str, player_id: str) -> RemoveResult | Rejected:
        session = self._store.get(room_id)
        if session is None:
            return _GAME_NOT_FOUND
        player = session.players.get(player_id)
        if player is None:
            return _PLAYER_NOT_FOUND

        left_during_game = session.is_active
        cells_to_hide: tuple[int, ...] = ()

        if session.has_turn(player_id):
            index = session.turn_order.index(player_id)
            remaining = [pid for pid in session.turn_order if pid != player_id]
            session.current_turn_id = remaining[index % len(remaining)] if remaining else None
            # the successor starts a clean turn; any half-finished reveal is withdrawn
            cells_to_hide = tuple(session.revealed)
            session.revealed = []
            session.processing = False

        session.turn_order.remove(player_id)
        del session.players[player_id]

        if session.paused_by == player_id:
            session.paused = False
            session.paused_by = None

        reset_cancelled = session.reset_request is not None
        if reset_cancelled:
            session.reset_request = None
            session.reset_used = True

        logger.info(
            "player removed",
            room_id=room_id,
            player_id=player_id,
            left_during_game=left_during_game,
            reset_cancelled=reset_cancelled,
        )
        return RemoveResult(
            session,
            player=player,
            left_during_game=left_during_game,
            reset_cancelled=reset_cancelled,
            cells_to_hide=cells_to_hide,
        )

    # --- Pause ---

    def pause(self, room_id: str, player_id: str) -> SessionResult | Rejected:
        session = self._store.get(room_id)
        if session is None:
            return _GAME_NOT_FOUND
        if player_id not in session.players:
            return _PLAYER_NOT_FOUND
        if not session.paused:
            session.paused = True
            session.paused_by = player_id
        return SessionResult(session)

    def resume(self, room_id: str, player_id: str) -> SessionResult | Rejected:
        session = self._store.get(room_id)
        if session is None:
            return _GAME_NOT_FOUND
        if player_id not in session.players:
            return _PLAYER_NOT_FOUND
        if session.paused_by is not None and session.paused_by != player_id:
            return Rejected(RejectionCode.NOT_PAUSER, "Only the pausing player may resume")
        session.paused = False
        session.paused_by = None
        return SessionResult(session)

    # --- Reset vote ---

    def request_reset(self, room_id: str, player_id: str) -> VoteResult | Rejected:
        """Open the session's single rematch vote with the requester's acceptance."""
        session = self._store.get(room_id)
        if session is None:
            return _GAME_NOT_FOUND
        if player_id not in session.players:
            return _PLAYER_NOT_FOUND
        if not session.started and not session.over:
            return Rejected(RejectionCode.GAME_NOT_ACTIVE, "Game has not started")
        if session.reset_used:
            return Rejected(RejectionCode.RESET_ALREADY_USED, "Reset already used")
        if session.reset_request is not None:
            return Rejected(RejectionCode.RESET_ALREADY_REQUESTED, "Reset already requested")

        session.reset_request = ResetRequest(requested_by=player_id, votes={player_id: True})
        logger.info("reset requested", room_id=room_id, player_id=player_id)
        return self._tally_votes(session)

    def vote_reset(self, room_id: str, player_id: str, *, accepted: bool) -> VoteResult | Rejected:
        session = self._store.get(room_id)
        if session is None:
            return _GAME_NOT_FOUND
        if player_id not in session.players:
            return _PLAYER_NOT_FOUND
        request = session.reset_request
        if request is None:
            return Rejected(RejectionCode.RESET_NOT_PENDING, "No reset pending")
        if player_id in request.votes:
            return Rejected(RejectionCode.ALREADY_VOTED, "Already voted")

        request.votes[player_id] = accepted
        return self._tally_votes(session)

    def execute_reset(self, room_id: str) -> SessionResult | Rejected:
        """Replay the room from scratch: fresh board, zeroed stats, host to move.

        The reset latch is kept, so a session gets at most one rematch.
        """
        session = self._store.get(room_id)
        if session is None:
            return _GAME_NOT_FOUND
        if session.is_empty:
            return Rejected(RejectionCode.NO_PLAYERS, "Game has no players")

        session.reset_request = None
        for player in session.players.values():
            player.reset_stats()
        self._deal(session)
        logger.info("game reset", room_id=room_id)
        return SessionResult(session)

    # --- Teardown ---

    def reset_game(self, room_id: str) -> SessionResult | Rejected:
        """Wipe the session back to an empty shell, keeping only its room settings."""
        session = self._store.get(room_id)
        if session is None:
            return _GAME_NOT_FOUND
        session.clear_round()
        session.players = {}
        session.turn_order = []
        session.started = False
        session.over = False
        session.reset_request = None
        session.reset_used = False
        return SessionResult(session)

    def remove_game(self, room_id: str) -> RemovedResult | Rejected:
        session = self._store.remove(room_id)
        if session is None:
            return _GAME_NOT_FOUND
        logger.info("session removed", room_id=room_id)
        return RemovedResult(room_id=room_id, player_ids=list(session.turn_order))

    # --- Internal helpers ---

    def _deal(self, session: Session) -> None:
        session.clear_round()
        session.board = generate_board(session.grid_size, session.theme, settings=self._settings, rng=self._rng)
        session.started = True
        session.over = False
        session.current_turn_id = session.host_id

    @staticmethod
    def _advance_turn(session: Session) -> None:
        if session.current_turn_id is None:
            session.current_turn_id = session.host_id
            return
        session.current_turn_id = session.next_player_id(session.current_turn_id)

    def _finish_if_complete(self, session: Session) -> bool:
        """End the round once every cell is matched. Return True if it ended now."""
        if not session.board or len(session.matched) != len(session.board):
            return False

        players = session.ordered_players
        if players:
            best = max(p.score for p in players)
            leaders = [p.id for p in players if p.score == best]
        else:
            leaders = []
        if len(leaders) == 1:
            session.winner_id = leaders[0]
            session.winner_ids = leaders
            session.is_tie = False
        else:
            session.winner_id = None
            session.winner_ids = leaders
            session.is_tie = len(leaders) > 1

        session.over = True
        session.started = False
        session.processing = False
        session.current_turn_id = None
        for player in players:
            player.ready = False

        logger.info(
            "game over",
            room_id=session.room_id,
            winner_id=session.winner_id,
            winner_ids=session.winner_ids,
            is_tie=session.is_tie,
        )
        return True

    def _tally_votes(self, session: Session) -> VoteResult:
        request = session.reset_request
        if request is None:
            return VoteResult(session)
        all_voted = all(pid in request.votes for pid in session.turn_order)
        votes = dict(request.votes)
        if not all_voted:
            return VoteResult(session, votes=votes)

        session.reset_used = True
        declined_by = request.declined_by()
        if declined_by is None:
            return VoteResult(session, votes=votes, all_voted=True, all_accepted=True)

        session.reset_request = None
        logger.info("reset declined", room_id=session.room_id, declined_by=declined_by)
        return VoteResult(session, votes=votes, all_voted=True, all_accepted=False, declined_by=declined_by)
