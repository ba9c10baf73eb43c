"""Shared broadcast utility for sending messages to room members."""

from __future__ import annotations

import contextlib
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pairs.messaging.protocol import ConnectionProtocol


async def broadcast_to_connections(
    connections: Iterable[ConnectionProtocol],
    message: dict[str, Any],
) -> None:
    """Send a message to every connection.

    A failed send to one member never prevents delivery to the others.
    """
    for connection in list(connections):
        with contextlib.suppress(RuntimeError, OSError, ConnectionError):
            await connection.send_message(message)
