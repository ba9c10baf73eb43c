from pairs.logic.state import Session


class SessionStore:
    """In-memory registry of game sessions keyed by room id.

    Owned by the process and passed to the GameSessionManager explicitly,
    so independent stores (one per server instance or per test) never share state.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}  # room_id -> Session

    def get(self, room_id: str) -> Session | None:
        return self._sessions.get(room_id)

    def get_or_create(self, room_id: str, theme: str, grid_size: int) -> Session:
        """Return the session for a room, creating it with the given theme and grid size if absent."""
        session = self._sessions.get(room_id)
        if session is None:
            session = Session(room_id=room_id, theme=theme, grid_size=grid_size)
            self._sessions[room_id] = session
        return session

    def remove(self, room_id: str) -> Session | None:
        return self._sessions.pop(room_id, None)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    @property
    def active_count(self) -> int:
        """Number of sessions with a round in progress."""
        return sum(1 for session in self._sessions.values() if session.is_active)
