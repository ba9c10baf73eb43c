from pairs.logic.enums import RejectionCode
from pairs.messaging.types import SessionErrorCode, SessionMessageType
from pairs.session.manager import SessionManager
from pairs.tests.helpers.session import ROOM_ID, open_room, wait_for_resolution
from pairs.tests.mocks.connection import MockConnection


def _types(conn: MockConnection) -> list[str]:
    return [m["type"] for m in conn.sent_messages]


def _error_codes(conn: MockConnection) -> list[str]:
    return [m["code"] for m in conn.messages_of_type(SessionMessageType.ERROR)]


class TestCreateRoom:
    async def test_host_receives_room_and_snapshot(self, session_manager):
        conn = MockConnection("p1")
        session_manager.register_connection(conn)

        await session_manager.create_room(conn, ROOM_ID, "Alice", 3, "animals", 6)

        assert _types(conn) == [SessionMessageType.ROOM_CREATED, SessionMessageType.GAME_STATE]
        room = conn.sent_messages[0]["room"]
        assert room == {
            "room_id": ROOM_ID,
            "host_id": "p1",
            "current_players": 1,
            "max_players": 3,
            "theme": "animals",
            "grid_size": 6,
        }
        state = conn.last_state()
        assert state["phase"] == "lobby"
        assert [p["name"] for p in state["players"]] == ["Alice"]
        assert session_manager.get_room_id("p1") == ROOM_ID
        assert session_manager.room_count == 1

    async def test_missing_max_players_uses_server_default(self, game_manager):
        manager = SessionManager(game_manager, default_max_players=6)
        conn = MockConnection("p1")
        manager.register_connection(conn)

        await manager.create_room(conn, ROOM_ID, "Alice", None, "numbers", 4)

        assert conn.sent_messages[0]["room"]["max_players"] == 6

    async def test_member_cannot_create_second_room(self, session_manager):
        (host,) = await open_room(session_manager, ["p1"], start=False)

        await session_manager.create_room(host, "room2", "Alice", 4, "numbers", 4)

        assert _error_codes(host) == [RejectionCode.ALREADY_IN_ROOM]
        assert session_manager.room_count == 1

    async def test_existing_room_id_is_rejected(self, session_manager):
        await open_room(session_manager, ["p1"], start=False)
        other = MockConnection("p2")
        session_manager.register_connection(other)

        await session_manager.create_room(other, ROOM_ID, "Bob", 4, "numbers", 4)

        assert _error_codes(other) == [RejectionCode.ROOM_EXISTS]
        assert session_manager.get_room_id("p2") is None

    async def test_invalid_grid_size_leaves_no_room_behind(self, session_manager):
        conn = MockConnection("p1")
        session_manager.register_connection(conn)

        await session_manager.create_room(conn, ROOM_ID, "Alice", 4, "numbers", 3)

        assert _error_codes(conn) == [RejectionCode.INVALID_GRID_SIZE]
        assert session_manager.room_count == 0
        assert session_manager.get_room_id("p1") is None

    async def test_server_full(self, game_manager):
        manager = SessionManager(game_manager, max_rooms=1)
        await open_room(manager, ["p1"], start=False)
        conn = MockConnection("p2")
        manager.register_connection(conn)

        await manager.create_room(conn, "room2", "Bob", 4, "numbers", 4)

        assert _error_codes(conn) == [SessionErrorCode.SERVER_FULL]


class TestJoinRoom:
    async def test_join_notifies_everyone(self, session_manager):
        (host,) = await open_room(session_manager, ["p1"], start=False)
        guest = MockConnection("p2")
        session_manager.register_connection(guest)

        await session_manager.join_room(guest, ROOM_ID, "Bob")

        assert _types(guest)[0] == SessionMessageType.ROOM_JOINED
        assert guest.sent_messages[0]["rejoined"] is False
        assert [p["id"] for p in guest.last_state()["players"]] == ["p1", "p2"]
        joined = host.messages_of_type(SessionMessageType.PLAYER_JOINED)
        assert joined == [
            {
                "type": "player_joined",
                "player_id": "p2",
                "player_name": "Bob",
                "current_players": 2,
                "max_players": 4,
            },
        ]

    async def test_join_missing_room(self, session_manager):
        conn = MockConnection("p2")
        session_manager.register_connection(conn)
        await session_manager.join_room(conn, "nope", "Bob")
        assert _error_codes(conn) == [RejectionCode.ROOM_NOT_FOUND]

    async def test_join_full_room(self, session_manager):
        host = MockConnection("p1")
        session_manager.register_connection(host)
        await session_manager.create_room(host, ROOM_ID, "Alice", 1, "numbers", 4)
        guest = MockConnection("p2")
        session_manager.register_connection(guest)

        await session_manager.join_room(guest, ROOM_ID, "Bob")

        assert _error_codes(guest) == [RejectionCode.ROOM_FULL]

    async def test_join_started_game_rolls_back_membership(self, session_manager):
        await open_room(session_manager, ["p1", "p2"])
        late = MockConnection("p3")
        session_manager.register_connection(late)

        await session_manager.join_room(late, ROOM_ID, "Carol")

        assert _error_codes(late) == [RejectionCode.GAME_ALREADY_STARTED]
        assert session_manager.room_manager.get_room(ROOM_ID).player_ids == ["p1", "p2"]
        assert session_manager.get_room_id("p3") is None


class TestNotInRoom:
    async def test_actions_require_membership(self, session_manager, mock_connection):
        session_manager.register_connection(mock_connection)

        await session_manager.flip_cell(mock_connection, 0)
        await session_manager.start_game(mock_connection)
        await session_manager.leave_room(mock_connection)

        assert _error_codes(mock_connection) == [SessionErrorCode.NOT_IN_ROOM] * 3


class TestLobby:
    async def test_toggle_ready_broadcasts_state(self, session_manager):
        host, guest = await open_room(session_manager, ["p1", "p2"], start=False)

        await session_manager.toggle_ready(guest)

        for conn in (host, guest):
            assert conn.last_state()["players"][1]["ready"] is True

    async def test_change_name(self, session_manager):
        host, guest = await open_room(session_manager, ["p1", "p2"], start=False)

        await session_manager.change_name(guest, "Robert")

        assert host.messages_of_type(SessionMessageType.PLAYER_NAME_CHANGED) == [
            {"type": "player_name_changed", "player_id": "p2", "name": "Robert"},
        ]
        assert host.last_state()["players"][1]["name"] == "Robert"

    async def test_start_requires_ready_guests(self, session_manager):
        host, guest = await open_room(session_manager, ["p1", "p2"], start=False)

        await session_manager.start_game(host)

        assert _error_codes(host) == [RejectionCode.PLAYERS_NOT_READY]
        assert guest.sent_messages == []

    async def test_start_broadcasts_board(self, session_manager):
        host, guest = await open_room(session_manager, ["p1", "p2"], start=False)
        await session_manager.toggle_ready(guest)

        await session_manager.start_game(host)

        for conn in (host, guest):
            assert _types(conn)[-2:] == [SessionMessageType.GAME_STATE, SessionMessageType.GAME_STARTED]
            state = conn.last_state()
            assert state["phase"] == "active"
            assert len(state["board"]) == 16
            assert [p["has_turn"] for p in state["players"]] == [True, False]

    async def test_send_state_goes_to_requester_only(self, session_manager):
        host, guest = await open_room(session_manager, ["p1", "p2"])

        await session_manager.send_state(guest)

        assert _types(guest) == [SessionMessageType.GAME_STATE]
        assert host.sent_messages == []

    async def test_ping(self, session_manager, mock_connection):
        await session_manager.handle_ping(mock_connection)
        assert mock_connection.sent_messages == [{"type": "pong"}]


class TestFlipAndResolve:
    async def test_match_is_resolved_after_delay(self, session_manager):
        host, guest = await open_room(session_manager, ["p1", "p2"])

        await session_manager.flip_cell(host, 0)
        await session_manager.flip_cell(host, 1)

        assert guest.last_state()["revealed"] == [0, 1]
        assert guest.last_state()["phase"] == "resolving"

        await wait_for_resolution(session_manager)

        state = guest.last_state()
        assert state["matched"] == [0, 1]
        assert state["revealed"] == []
        assert state["processing"] is False
        assert state["players"][0]["score"] == 10
        assert [p["has_turn"] for p in state["players"]] == [False, True]
        assert guest.messages_of_type(SessionMessageType.CELLS_HIDDEN) == []

    async def test_mismatch_hides_cells_for_everyone(self, session_manager):
        host, guest = await open_room(session_manager, ["p1", "p2"])

        await session_manager.flip_cell(host, 0)
        await session_manager.flip_cell(host, 2)
        await wait_for_resolution(session_manager)

        for conn in (host, guest):
            assert conn.messages_of_type(SessionMessageType.CELLS_HIDDEN) == [
                {"type": "cells_hidden", "cell_ids": [0, 2]},
            ]
            assert conn.last_state()["processing"] is False

    async def test_rejection_goes_only_to_requester(self, session_manager):
        host, guest = await open_room(session_manager, ["p1", "p2"])

        await session_manager.flip_cell(guest, 0)

        assert _error_codes(guest) == [RejectionCode.NOT_YOUR_TURN]
        assert host.sent_messages == []

    async def test_no_flip_accepted_while_resolving(self, session_manager):
        host, _guest = await open_room(session_manager, ["p1", "p2"])
        await session_manager.flip_cell(host, 0)
        await session_manager.flip_cell(host, 2)

        await session_manager.flip_cell(host, 4)

        assert _error_codes(host) == [RejectionCode.TOO_MANY_REVEALED]
        await wait_for_resolution(session_manager)

    async def test_game_over_is_announced(self, session_manager):
        host, guest = await open_room(session_manager, ["p1", "p2"], grid_size=2)

        await session_manager.flip_cell(host, 0)
        await session_manager.flip_cell(host, 1)
        await wait_for_resolution(session_manager)
        await session_manager.flip_cell(guest, 2)
        await session_manager.flip_cell(guest, 3)
        await wait_for_resolution(session_manager)

        for conn in (host, guest):
            assert conn.messages_of_type(SessionMessageType.GAME_OVER) == [
                {"type": "game_over", "winner_id": None, "winner_ids": ["p1", "p2"], "is_tie": True},
            ]
            assert conn.last_state()["phase"] == "over"
        assert session_manager.active_game_count == 0

    async def test_finished_game_stays_over_on_start(self, session_manager):
        host, guest = await open_room(session_manager, ["p1", "p2"], grid_size=2)
        await session_manager.flip_cell(host, 0)
        await session_manager.flip_cell(host, 1)
        await wait_for_resolution(session_manager)
        await session_manager.flip_cell(guest, 2)
        await session_manager.flip_cell(guest, 3)
        await wait_for_resolution(session_manager)
        await session_manager.toggle_ready(guest)
        host.clear()

        await session_manager.start_game(host)

        assert _error_codes(host) == [RejectionCode.GAME_OVER]
        assert host.messages_of_type(SessionMessageType.GAME_STARTED) == []
        assert session_manager.active_game_count == 0


class TestPause:
    async def test_pause_and_resume(self, session_manager):
        host, guest = await open_room(session_manager, ["p1", "p2"])

        await session_manager.pause_game(guest)
        assert host.messages_of_type(SessionMessageType.GAME_PAUSED) == [{"type": "game_paused", "paused_by": "p2"}]

        await session_manager.flip_cell(host, 0)
        await session_manager.resume_game(host)
        assert _error_codes(host) == [RejectionCode.GAME_PAUSED, RejectionCode.NOT_PAUSER]

        await session_manager.resume_game(guest)
        assert host.messages_of_type(SessionMessageType.GAME_RESUMED) == [{"type": "game_resumed"}]
        assert host.last_state()["paused"] is False


class TestResetVote:
    async def test_accepted_reset_replays_round(self, session_manager):
        host, guest = await open_room(session_manager, ["p1", "p2"])
        await session_manager.flip_cell(host, 0)
        await session_manager.flip_cell(host, 1)
        await wait_for_resolution(session_manager)

        await session_manager.request_reset(host)
        assert guest.messages_of_type(SessionMessageType.RESET_REQUESTED) == [
            {"type": "reset_requested", "requested_by": "p1", "votes": {"p1": True}},
        ]

        guest.clear()
        await session_manager.vote_reset(guest, accepted=True)

        assert _types(guest) == [
            SessionMessageType.RESET_VOTE_UPDATE,
            SessionMessageType.RESET_ACCEPTED,
            SessionMessageType.GAME_STATE,
            SessionMessageType.GAME_STARTED,
        ]
        state = guest.last_state()
        assert state["matched"] == []
        assert state["reset_used"] is True
        assert [p["score"] for p in state["players"]] == [0, 0]
        assert [p["has_turn"] for p in state["players"]] == [True, False]

    async def test_declined_reset(self, session_manager):
        host, guest = await open_room(session_manager, ["p1", "p2"])
        await session_manager.request_reset(host)

        await session_manager.vote_reset(guest, accepted=False)

        assert host.messages_of_type(SessionMessageType.RESET_DECLINED) == [
            {"type": "reset_declined", "declined_by": "p2"},
        ]
        await session_manager.request_reset(host)
        assert _error_codes(host) == [RejectionCode.RESET_ALREADY_USED]

    async def test_accepted_reset_cancels_pending_resolution(self, session_manager):
        host, guest = await open_room(session_manager, ["p1", "p2"])
        await session_manager.flip_cell(host, 0)
        await session_manager.flip_cell(host, 2)
        await session_manager.request_reset(host)

        await session_manager.vote_reset(guest, accepted=True)

        assert session_manager.pending_resolution_count == 0
        await wait_for_resolution(session_manager)
        assert host.messages_of_type(SessionMessageType.CELLS_HIDDEN) == []
        assert host.last_state()["revealed"] == []


class TestLeaveRoom:
    async def test_leaving_notifies_remaining_players(self, session_manager):
        host, guest = await open_room(session_manager, ["p1", "p2"])

        await session_manager.leave_room(guest)

        assert guest.messages_of_type(SessionMessageType.ROOM_LEFT) == [{"type": "room_left", "room_id": ROOM_ID}]
        assert host.messages_of_type(SessionMessageType.PLAYER_LEFT) == [
            {"type": "player_left", "player_id": "p2", "player_name": "P2", "left_during_game": True},
        ]
        assert [p["id"] for p in host.last_state()["players"]] == ["p1"]
        assert session_manager.get_room_id("p2") is None
        assert guest.messages_of_type(SessionMessageType.GAME_STATE) == []

    async def test_turn_holder_leaving_hides_their_reveal(self, session_manager):
        host, guest = await open_room(session_manager, ["p1", "p2"])
        await session_manager.flip_cell(host, 5)

        await session_manager.leave_room(host)

        assert guest.messages_of_type(SessionMessageType.CELLS_HIDDEN) == [{"type": "cells_hidden", "cell_ids": [5]}]
        assert [p["has_turn"] for p in guest.last_state()["players"]] == [True]

    async def test_last_player_leaving_removes_room(self, session_manager):
        (host,) = await open_room(session_manager, ["p1"], start=False)

        await session_manager.leave_room(host)

        assert session_manager.room_count == 0
        assert ROOM_ID not in session_manager.game_manager.store

        await session_manager.create_room(host, ROOM_ID, "Alice", 4, "numbers", 4)
        assert host.messages_of_type(SessionMessageType.ROOM_CREATED)


class TestTeardown:
    async def test_remove_room_kicks_everyone(self, session_manager):
        host, guest = await open_room(session_manager, ["p1", "p2"])

        await session_manager.remove_room(guest)

        for conn in (host, guest):
            assert conn.sent_messages == [{"type": "room_removed", "room_id": ROOM_ID}]
        assert session_manager.room_count == 0
        assert session_manager.get_room_id("p1") is None

        await session_manager.flip_cell(host, 0)
        assert _error_codes(host) == [SessionErrorCode.NOT_IN_ROOM]

    async def test_reset_game_sends_empty_shell_then_removes(self, session_manager):
        host, guest = await open_room(session_manager, ["p1", "p2"])

        await session_manager.reset_game(host)

        assert _types(guest) == [SessionMessageType.GAME_STATE, SessionMessageType.ROOM_REMOVED]
        state = guest.last_state()
        assert state["players"] == []
        assert state["phase"] == "lobby"
        assert session_manager.room_count == 0

    async def test_removal_during_resolution_is_quiet(self, session_manager):
        host, guest = await open_room(session_manager, ["p1", "p2"])
        await session_manager.flip_cell(host, 0)
        await session_manager.flip_cell(host, 2)

        await session_manager.remove_room(host)
        guest.clear()
        await wait_for_resolution(session_manager)

        assert guest.sent_messages == []
        assert session_manager.pending_resolution_count == 0


class TestReconnect:
    async def test_dropped_connection_keeps_seat_and_rejoins(self, session_manager):
        host, guest = await open_room(session_manager, ["p1", "p2"])
        session_manager.unregister_connection(guest)

        await session_manager.flip_cell(host, 0)
        assert guest.sent_messages == []

        returning = MockConnection("p2")
        session_manager.register_connection(returning)
        await session_manager.rejoin_room(returning, ROOM_ID)

        assert returning.sent_messages[0]["type"] == SessionMessageType.ROOM_JOINED
        assert returning.sent_messages[0]["rejoined"] is True
        assert returning.last_state()["revealed"] == [0]
        assert session_manager.connection_count == 2

    async def test_stale_unregister_keeps_newer_connection(self, session_manager):
        _host, guest = await open_room(session_manager, ["p1", "p2"])
        returning = MockConnection("p2")
        assert session_manager.register_connection(returning) is guest

        session_manager.unregister_connection(guest)

        assert session_manager.connection_count == 2

    async def test_registering_same_connection_twice_replaces_nothing(self, session_manager, mock_connection):
        assert session_manager.register_connection(mock_connection) is None
        assert session_manager.register_connection(mock_connection) is None

    async def test_rejoin_requires_a_seat(self, session_manager):
        await open_room(session_manager, ["p1"], start=False)
        stranger = MockConnection("p9")
        session_manager.register_connection(stranger)

        await session_manager.rejoin_room(stranger, ROOM_ID)
        await session_manager.rejoin_room(stranger, "nope")

        assert _error_codes(stranger) == [SessionErrorCode.NOT_IN_ROOM, RejectionCode.ROOM_NOT_FOUND]


class TestBroadcastIsolation:
    async def test_closed_connection_does_not_block_others(self, session_manager):
        host, guest, third = await open_room(session_manager, ["p1", "p2", "p3"])
        await guest.close()

        await session_manager.pause_game(host)

        assert host.messages_of_type(SessionMessageType.GAME_PAUSED)
        assert third.messages_of_type(SessionMessageType.GAME_PAUSED)
