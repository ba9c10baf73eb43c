"""
String enum definitions for memory-match game concepts.
"""

from enum import StrEnum


class RejectionCode(StrEnum):
    """Reason codes attached to rejected intents."""

    # not found
    ROOM_NOT_FOUND = "room_not_found"
    GAME_NOT_FOUND = "game_not_found"
    PLAYER_NOT_FOUND = "player_not_found"

    # precondition
    ROOM_EXISTS = "room_exists"
    ROOM_FULL = "room_full"
    ALREADY_IN_ROOM = "already_in_room"
    NOT_IN_ROOM = "not_in_room"
    INVALID_GRID_SIZE = "invalid_grid_size"
    GAME_ALREADY_STARTED = "game_already_started"
    GAME_OVER = "game_over"
    GAME_NOT_ACTIVE = "game_not_active"
    NO_PLAYERS = "no_players"
    PLAYERS_NOT_READY = "players_not_ready"
    GAME_PAUSED = "game_paused"
    NOT_YOUR_TURN = "not_your_turn"
    TOO_MANY_REVEALED = "too_many_revealed"
    RESOLUTION_PENDING = "resolution_pending"
    CELL_ALREADY_REVEALED = "cell_already_revealed"
    CELL_ALREADY_MATCHED = "cell_already_matched"
    INVALID_CELL = "invalid_cell"
    NOTHING_TO_RESOLVE = "nothing_to_resolve"
    RESET_ALREADY_USED = "reset_already_used"
    RESET_ALREADY_REQUESTED = "reset_already_requested"
    RESET_NOT_PENDING = "reset_not_pending"
    ALREADY_VOTED = "already_voted"

    # authorization
    NOT_PAUSER = "not_pauser"


class GamePhase(StrEnum):
    """Coarse lifecycle phase of a session, derived from its flags."""

    LOBBY = "lobby"
    ACTIVE = "active"
    PAUSED = "paused"
    RESOLVING = "resolving"
    OVER = "over"
