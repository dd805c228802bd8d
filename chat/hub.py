import logging
from typing import Dict, Iterable, List, Optional, Set
from uuid import UUID, uuid4

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

from auth.models import User

logger = logging.getLogger(__name__)


def user_room(user_id: UUID) -> str:
    return f"user:{user_id}"


def conversation_room(conversation_id: UUID) -> str:
    return f"conversation:{conversation_id}"


class Connection:
    """One live socket and the rooms it has joined."""

    def __init__(self, websocket: WebSocket, user: User):
        self.id = uuid4().hex
        self.websocket = websocket
        self.user = user
        self.rooms: Set[str] = set()


class ConnectionHub:
    """Room-based fan-out over live WebSocket connections.

    A room is a set of connection ids; a user with several sessions has one
    connection per session.
    """

    def __init__(self):
        # Map of connection id -> Connection
        self.connections: Dict[str, Connection] = {}
        # Map of room -> set of connection ids
        self.rooms: Dict[str, Set[str]] = {}

    def register(self, websocket: WebSocket, user: User) -> Connection:
        connection = Connection(websocket, user)
        self.connections[connection.id] = connection
        self.join(connection, user_room(user.id))
        return connection

    def unregister(self, connection: Connection):
        self.connections.pop(connection.id, None)
        for room in list(connection.rooms):
            self.leave(connection, room)

    def join(self, connection: Connection, room: str):
        if room not in self.rooms:
            self.rooms[room] = set()
        self.rooms[room].add(connection.id)
        connection.rooms.add(room)

    def leave(self, connection: Connection, room: str):
        if room in self.rooms:
            self.rooms[room].discard(connection.id)
            if not self.rooms[room]:
                del self.rooms[room]
        connection.rooms.discard(room)

    def is_member(self, connection: Connection, room: str) -> bool:
        return room in connection.rooms

    def members(self, room: str) -> List[Connection]:
        return [
            self.connections[connection_id]
            for connection_id in self.rooms.get(room, set())
            if connection_id in self.connections
        ]

    async def send(self, connection: Connection, event: str, data) -> bool:
        """Send one event envelope, dropping the connection if the socket is dead."""
        try:
            await connection.websocket.send_json(
                jsonable_encoder({"type": event, "data": data})
            )
            return True
        except Exception as e:
            logger.warning(f"Dropping connection {connection.id} of user {connection.user.id}: {e}")
            self.unregister(connection)
            return False

    async def publish(
        self,
        room: str,
        event: str,
        data,
        exclude_connection: Optional[Connection] = None,
        exclude_user: Optional[UUID] = None
    ) -> int:
        """Send an event to every connection in a room.

        Returns:
            Number of connections the event was delivered to
        """
        return await self._deliver(
            self.members(room), event, data, exclude_connection, exclude_user
        )

    async def broadcast(self, event: str, data, exclude_connection: Optional[Connection] = None) -> int:
        return await self._deliver(
            list(self.connections.values()), event, data, exclude_connection, None
        )

    async def _deliver(
        self,
        targets: Iterable[Connection],
        event: str,
        data,
        exclude_connection: Optional[Connection],
        exclude_user: Optional[UUID]
    ) -> int:
        delivered = 0
        for connection in targets:
            if exclude_connection is not None and connection.id == exclude_connection.id:
                continue
            if exclude_user is not None and connection.user.id == exclude_user:
                continue
            if await self.send(connection, event, data):
                delivered += 1
        return delivered
