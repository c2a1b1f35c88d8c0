"""
WebSocket Service
Registry of connected operators and their inbox sessions
"""
from fastapi import WebSocket, WebSocketDisconnect
from typing import Any, Dict, List, Optional, Set
import logging
from datetime import datetime, timezone

from app.services.inbox_session import InboxSession

logger = logging.getLogger(__name__)


class OperatorConnection:
    """One accepted socket and the inbox session it drives"""

    def __init__(self, websocket: WebSocket, session: InboxSession, user_id: Optional[str] = None):
        self.websocket = websocket
        self.session = session
        self.user_id = user_id
        self.connected_at = datetime.now(timezone.utc)

    @property
    def open_contact_id(self) -> Optional[str]:
        return self.session.active_contact_id

    def describe(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "open_contact_id": self.open_contact_id,
            "connected_at": self.connected_at.isoformat()
        }


class ConnectionManager:
    """
    Tracks connected operators.

    The contacts open across all sessions decide whether an inbound message
    counts as unread (see get_open_contact_ids).
    """

    def __init__(self):
        self.connections: Dict[Any, OperatorConnection] = {}

    async def connect(
        self,
        websocket: WebSocket,
        session: InboxSession,
        user_id: Optional[str] = None
    ) -> OperatorConnection:
        """Register an already accepted socket"""
        connection = OperatorConnection(websocket, session, user_id)
        self.connections[websocket] = connection
        logger.info(f"✅ Operator connected: user={user_id}, sessions={len(self.connections)}")
        return connection

    def disconnect(self, websocket: WebSocket) -> None:
        """Forget the socket and release its session's subscriptions"""
        connection = self.connections.pop(websocket, None)
        if connection is None:
            return

        connection.session.close()
        logger.info(f"🔌 Operator disconnected: user={connection.user_id}, sessions={len(self.connections)}")

    async def send(self, websocket: WebSocket, frame: Dict[str, Any]) -> bool:
        """
        Send one frame to a registered socket.

        Returns:
            False when the socket is unknown or already closed (it is then dropped)
        """
        if websocket not in self.connections:
            logger.warning(f"Frame '{frame.get('type')}' for an unregistered WebSocket dropped")
            return False

        try:
            await websocket.send_json(frame)
        except (RuntimeError, WebSocketDisconnect) as e:
            logger.warning(f"WebSocket closed while sending '{frame.get('type')}': {e}")
            self.disconnect(websocket)
            return False

        logger.debug(f"📤 Frame sent: type={frame.get('type')}")
        return True

    def get_session(self, websocket: WebSocket) -> Optional[InboxSession]:
        connection = self.connections.get(websocket)
        return connection.session if connection else None

    def get_connection_count(self) -> int:
        return len(self.connections)

    def get_open_contact_ids(self) -> Set[str]:
        """Contacts currently open in at least one operator session"""
        return {
            connection.open_contact_id
            for connection in self.connections.values()
            if connection.open_contact_id
        }

    def describe(self) -> List[Dict[str, Any]]:
        return [connection.describe() for connection in self.connections.values()]


# Singleton instance
connection_manager = ConnectionManager()


def get_connection_manager() -> ConnectionManager:
    return connection_manager
