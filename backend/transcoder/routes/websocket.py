"""WebSocket endpoint for real-time updates."""
import logging
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for real-time job updates.

    Clients can connect to receive:
    - job_progress: Progress of a running job
    - job_status: Status changes (processing -> completed/failed)
    - queue_update: Pending/active counts
    """
    manager = websocket.app.state.websocket_manager
    await manager.connect(websocket)

    try:
        await manager.send_to(websocket, {
            "type": "system",
            "message": "Connected to transcoding service",
        })
        await manager.send_to(websocket, manager.queue_update_message())

        # Keep connection alive and answer pings
        while True:
            try:
                data = await websocket.receive_json()

                if data.get("type") == "ping":
                    await manager.send_to(websocket, {"type": "pong"})

            except WebSocketDisconnect:
                logger.info("WebSocket client disconnected normally")
                break
            except Exception as e:
                logger.error(f"Error receiving WebSocket message: {e}")
                break

    except Exception as e:
        logger.error(f"WebSocket error: {e}")

    finally:
        manager.disconnect(websocket)
