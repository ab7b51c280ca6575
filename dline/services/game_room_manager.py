"""
WebSocket connection manager for live game co-editing.

Each game has one broadcast room. Every message sent to a room carries a
per-game monotonic sequence number so clients can detect missed events and
ask for a resync instead of trusting the last event they saw.
"""

import asyncio
import json
import logging
from typing import Dict, Set, Optional, List, Any
from datetime import datetime, timedelta
from fastapi import WebSocket

from dline.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

# Timeout for WebSocket connections (clients ping every 30 seconds)
WEBSOCKET_TIMEOUT_SECONDS = 60


class GameRoomManager:
    """Manages WebSocket connections grouped into per-game rooms."""

    def __init__(self):
        """Initialize the room manager."""
        # game_id -> sockets currently viewing that game
        self.rooms: Dict[int, Set[WebSocket]] = {}
        # socket -> authenticated user id
        self.socket_users: Dict[WebSocket, int] = {}
        # socket -> game it has joined (at most one)
        self.socket_games: Dict[WebSocket, int] = {}
        # socket -> last activity timestamp
        self.connection_timestamps: Dict[WebSocket, datetime] = {}
        # game_id -> last sequence number issued
        self.sequences: Dict[int, int] = {}
        self._lock = asyncio.Lock()

    async def connect(self, user_id: int, websocket: WebSocket):
        """
        Register an authenticated WebSocket connection.

        Args:
            user_id: ID of the user
            websocket: WebSocket connection object
        """
        async with self._lock:
            self.socket_users[websocket] = user_id
            self.connection_timestamps[websocket] = utcnow()
        logger.info(f"WebSocket connected for user {user_id}")

    async def disconnect(self, websocket: WebSocket) -> Optional[int]:
        """
        Forget a connection and remove it from its room.

        Returns:
            The game the socket was viewing, if any
        """
        async with self._lock:
            game_id = self._remove_from_room(websocket)
            user_id = self.socket_users.pop(websocket, None)
            self.connection_timestamps.pop(websocket, None)
        logger.info(f"WebSocket disconnected for user {user_id}")
        return game_id

    def _remove_from_room(self, websocket: WebSocket) -> Optional[int]:
        """Caller must hold the lock."""
        game_id = self.socket_games.pop(websocket, None)
        if game_id is not None and game_id in self.rooms:
            self.rooms[game_id].discard(websocket)
            # Clean up empty rooms
            if not self.rooms[game_id]:
                del self.rooms[game_id]
        return game_id

    async def join_game(self, websocket: WebSocket, game_id: int) -> Optional[int]:
        """
        Put a socket in a game's room, leaving any room it was in.

        Returns:
            The previously joined game, if it differs from ``game_id``
        """
        async with self._lock:
            previous = self.socket_games.get(websocket)
            if previous == game_id:
                return None
            self._remove_from_room(websocket)
            self.rooms.setdefault(game_id, set()).add(websocket)
            self.socket_games[websocket] = game_id
            self.connection_timestamps[websocket] = utcnow()
        return previous

    async def leave_game(self, websocket: WebSocket) -> Optional[int]:
        """Remove a socket from its room; returns the game it left."""
        async with self._lock:
            return self._remove_from_room(websocket)

    async def get_joined_game(self, websocket: WebSocket) -> Optional[int]:
        async with self._lock:
            return self.socket_games.get(websocket)

    async def get_active_users(self, game_id: int) -> List[int]:
        """Distinct user ids currently in a game's room."""
        async with self._lock:
            sockets = self.rooms.get(game_id, set())
            return sorted({self.socket_users[ws] for ws in sockets if ws in self.socket_users})

    async def get_room_size(self, game_id: int) -> int:
        async with self._lock:
            return len(self.rooms.get(game_id, set()))

    async def get_sequence(self, game_id: int) -> int:
        """Last sequence number issued for a game (0 before any broadcast)."""
        async with self._lock:
            return self.sequences.get(game_id, 0)

    def build_message(
        self,
        event: str,
        game_id: Optional[int],
        data: Any,
        seq: Optional[int],
        user_id: Optional[int] = None,
    ) -> Dict:
        return {
            "type": event,
            "game_id": game_id,
            "seq": seq,
            "data": data,
            "user_id": user_id,
            "timestamp": utcnow().isoformat(),
        }

    async def broadcast(
        self,
        game_id: int,
        event: str,
        data: Any,
        user_id: Optional[int] = None,
        exclude: Optional[WebSocket] = None,
    ) -> Dict:
        """
        Send an event to every socket in a game's room.

        The sequence number is advanced even when nobody is listening, so a
        client that reconnects can tell it missed something.

        Args:
            game_id: Room to broadcast to
            event: Event name (e.g. "point-created")
            data: JSON-serializable payload
            user_id: User who caused the event
            exclude: Socket that should not receive its own echo

        Returns:
            The message that was sent
        """
        async with self._lock:
            seq = self.sequences.get(game_id, 0) + 1
            self.sequences[game_id] = seq
            connections = self.rooms.get(game_id, set()).copy()

        message = self.build_message(event, game_id, data, seq, user_id)
        message_json = json.dumps(message, default=str)

        # Send outside the lock to avoid blocking other rooms
        disconnected = []
        for websocket in connections:
            if websocket is exclude:
                continue
            try:
                await websocket.send_text(message_json)
            except Exception as e:
                logger.warning(f"Error sending {event} to game {game_id} subscriber: {e}")
                disconnected.append(websocket)

        if disconnected:
            async with self._lock:
                for websocket in disconnected:
                    self._remove_from_room(websocket)

        return message

    async def send_to_socket(self, websocket: WebSocket, message: Dict) -> bool:
        """Send a message to one socket; returns False if delivery failed."""
        try:
            await websocket.send_text(json.dumps(message, default=str))
            return True
        except Exception as e:
            logger.warning(f"Error sending WebSocket message: {e}")
            return False

    async def update_activity(self, websocket: WebSocket):
        """
        Update the last activity timestamp for a WebSocket connection.
        Called when receiving ping or other messages from client.
        """
        async with self._lock:
            if websocket in self.connection_timestamps:
                self.connection_timestamps[websocket] = utcnow()

    async def cleanup_stale_connections(self) -> List[WebSocket]:
        """
        Drop and close connections with no activity within the timeout period;
        the room hears user-left for each.

        Returns:
            The sockets that were removed
        """
        threshold = utcnow() - timedelta(seconds=WEBSOCKET_TIMEOUT_SECONDS)
        async with self._lock:
            stale = [
                ws for ws, last_activity in self.connection_timestamps.items()
                if last_activity < threshold
            ]
        for websocket in stale:
            user_id = self.socket_users.get(websocket)
            game_id = await self.disconnect(websocket)
            if game_id is not None:
                await self.broadcast(game_id, "user-left", {"user_id": user_id}, user_id=user_id)
            try:
                await websocket.close(code=1001, reason="Connection timed out")
            except Exception as e:
                logger.warning(f"Error closing stale WebSocket: {e}")
            logger.info("Cleaned up stale WebSocket connection")
        return stale


# Global room manager instance
_game_room_manager: Optional[GameRoomManager] = None


def get_game_room_manager() -> GameRoomManager:
    """
    Get the global room manager instance.
    """
    global _game_room_manager
    if _game_room_manager is None:
        _game_room_manager = GameRoomManager()
    return _game_room_manager


async def emit_game_event(game_id: int, event: str, data: Any, user_id: Optional[int] = None) -> None:
    """
    Broadcast a server-side mutation event to a game's room.

    Called by routes after their transaction commits. Delivery is best effort:
    a failure here is logged and never fails the request.
    """
    try:
        await get_game_room_manager().broadcast(game_id, event, data, user_id=user_id)
    except Exception as e:
        logger.error(f"Failed to broadcast {event} for game {game_id}: {e}", exc_info=True)
