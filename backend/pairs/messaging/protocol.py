"""Abstract connection protocol for the session layer."""

from abc import ABC, abstractmethod
from typing import Any

from pairs.messaging.encoder import decode, encode


class ConnectionProtocol(ABC):
    """
    Abstract interface for one client connection.

    Lets the session and routing logic run without real WebSockets.
    """

    @property
    @abstractmethod
    def connection_id(self) -> str:
        """Unique identifier for this connection."""
        ...

    @property
    @abstractmethod
    def player_id(self) -> str:
        """Stable player identity, kept across reconnects."""
        ...

    @abstractmethod
    async def send_bytes(self, data: bytes) -> None: ...

    @abstractmethod
    async def receive_bytes(self) -> bytes: ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None: ...

    async def send_message(self, data: dict[str, Any]) -> None:
        await self.send_bytes(encode(data))

    async def receive_message(self) -> dict[str, Any]:
        raw = await self.receive_bytes()
        return decode(raw)
