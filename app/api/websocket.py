"""
WebSocket API Endpoint
Real-time inbox for clinic operators
"""
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, Query, status
import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from app.auth.dependencies import get_current_operator
from app.auth.jwt_handler import authenticate_token, OperatorTokenError
from app.config import settings
from app.models.operator import Operator
from app.services.contact_service import ContactService, get_contact_service
from app.services.draft_service import DraftService, get_draft_service
from app.services.errors import InboxError
from app.services.inbox_session import InboxSession
from app.services.message_service import MessageService, get_message_service
from app.services.notification_relay import NotificationRelay, get_notification_relay
from app.services.websocket_service import ConnectionManager, get_connection_manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


async def forward_events(session: InboxSession, websocket: WebSocket, connection_manager: ConnectionManager):
    """Push every change seen by the session to the operator's screen"""
    while True:
        frame = await session.next_event()
        if not await connection_manager.send(websocket, frame):
            break


async def handle_command(session: InboxSession, message: dict) -> dict:
    """
    Execute one client command.

    Returns:
        Frame to send back
    """
    message_type = message.get("type", "")

    if message_type == "open_contact":
        contact_id = message.get("contact_id")
        if not contact_id:
            return {"type": "error", "message": "contact_id is required"}
        try:
            return await session.open_contact(contact_id)
        except InboxError as e:
            return {"type": "error", "status": e.status_code, "message": str(e)}

    if message_type == "close_contact":
        session.close_contact()
        return {"type": "contact_closed"}

    if message_type == "ping":
        return {"type": "pong", "timestamp": datetime.now(timezone.utc).isoformat()}

    return {"type": "error", "message": f"Unknown command '{message_type}'"}


@router.websocket("/ws/inbox")
async def inbox_websocket(
    websocket: WebSocket,
    token: Optional[str] = Query(None, description="JWT authentication token"),
    connection_manager: ConnectionManager = Depends(get_connection_manager),
    relay: NotificationRelay = Depends(get_notification_relay),
    contact_service: ContactService = Depends(get_contact_service),
    message_service: MessageService = Depends(get_message_service),
    draft_service: DraftService = Depends(get_draft_service)
):
    """
    WebSocket endpoint for the live inbox.

    **Connection URL:**
    ```
    ws://your-api.com/ws/inbox?token={jwt_token}
    ```

    **Client commands:**
    - `{"type": "open_contact", "contact_id": "..."}` selects a conversation
      (resets its unread count and answers with a `snapshot` frame)
    - `{"type": "close_contact"}` deselects it
    - `{"type": "ping"}` answers with `pong`

    **Server frames:**
    - `contacts`: initial sidebar
    - `snapshot`: contact, messages and typing state of the opened conversation
    - `change`: confirmed insert/update/delete on contacts or the open conversation
      (`{"type": "change", "table", "event", "record", "old_record", "commit_timestamp"}`)
    - `typing`: AI typing indicator of the open conversation
    - `ping`: keepalive after a quiet period
    """
    if not token:
        logger.warning("WebSocket connection attempt without token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    try:
        operator = authenticate_token(token)
    except OperatorTokenError as e:
        logger.warning(f"Invalid WebSocket token: {e}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    user_id = operator.operator_id
    logger.info(f"✅ WebSocket token verified for {operator.label}")
    await websocket.accept()

    session = InboxSession(relay, contact_service, message_service, draft_service, user_id=user_id)
    pump: Optional[asyncio.Task] = None

    try:
        initial = await session.start()
        await connection_manager.connect(websocket, session, user_id)
        await connection_manager.send(websocket, initial)

        pump = asyncio.create_task(forward_events(session, websocket, connection_manager))
        logger.info(f"🔄 Starting WebSocket keepalive loop for user={user_id}")

        while True:
            try:
                data = await asyncio.wait_for(
                    websocket.receive_text(),
                    timeout=settings.WEBSOCKET_KEEPALIVE_SECONDS
                )
                logger.debug(f"📩 Received from client: {data}")

                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    await connection_manager.send(websocket, {"type": "error", "message": "Commands must be JSON"})
                    continue

                if not isinstance(message, dict):
                    await connection_manager.send(websocket, {"type": "error", "message": "Commands must be JSON objects"})
                    continue

                if message.get("type") == "pong":
                    logger.debug(f"🏓 Received pong from user={user_id}")
                    continue

                reply = await handle_command(session, message)
                await connection_manager.send(websocket, reply)

            except asyncio.TimeoutError:
                # Quiet period: ping to keep proxies from dropping the connection
                sent = await connection_manager.send(websocket, {
                    "type": "ping",
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "message": "keepalive"
                })
                if not sent:
                    break

    except WebSocketDisconnect:
        logger.info(f"WebSocket client disconnected: user={user_id}")

    except Exception as e:
        logger.error(f"❌ Unexpected error in inbox WebSocket for user={user_id}: {e}")

    finally:
        if pump is not None:
            pump.cancel()
        connection_manager.disconnect(websocket)
        session.close()


@router.get(
    "/ws/stats",
    summary="Live inbox sessions",
    description="Connected operators and the conversation each one has open"
)
async def get_websocket_stats(
    operator: Operator = Depends(get_current_operator),
    connection_manager: ConnectionManager = Depends(get_connection_manager)
):
    """
    **Response Example:**
    ```json
    {
        "total_connections": 1,
        "open_contacts": ["c1a2b3c4-0000-0000-0000-000000000001"],
        "operators": [
            {"user_id": "a1b2...", "open_contact_id": "c1a2...", "connected_at": "2025-10-21T15:00:00+00:00"}
        ]
    }
    ```
    """
    return {
        "total_connections": connection_manager.get_connection_count(),
        "open_contacts": sorted(connection_manager.get_open_contact_ids()),
        "operators": connection_manager.describe()
    }
