"""WebSocket connection manager for broadcasting queue events."""
import logging
from typing import Optional, Set
from fastapi import WebSocket

from transcoder.models.schemas import JobSnapshot
from transcoder.services.job_queue import QueueEvent, TranscodeQueue

logger = logging.getLogger(__name__)


class WebSocketManager:
    """Manages WebSocket connections and pushes job updates to them."""

    def __init__(self):
        self.connections: Set[WebSocket] = set()
        self.queue: Optional[TranscodeQueue] = None

    def attach(self, queue: TranscodeQueue):
        """
        Forward queue events to connected clients.

        Args:
            queue: Transcode queue to follow
        """
        self.queue = queue
        queue.subscribe(QueueEvent.QUEUED, self._on_queue_changed)
        queue.subscribe(QueueEvent.STARTED, self._on_job_status)
        queue.subscribe(QueueEvent.PROGRESS, self._on_job_progress)
        queue.subscribe(QueueEvent.COMPLETED, self._on_job_status)

    async def connect(self, websocket: WebSocket):
        """
        Accept and register new WebSocket connection.

        Args:
            websocket: WebSocket connection
        """
        await websocket.accept()
        self.connections.add(websocket)
        logger.info(f"WebSocket connected. Total connections: {len(self.connections)}")

    def disconnect(self, websocket: WebSocket):
        """Remove WebSocket connection."""
        self.connections.discard(websocket)
        logger.info(f"WebSocket disconnected. Total connections: {len(self.connections)}")

    async def broadcast(self, message: dict):
        """
        Broadcast message to all connected clients.

        Args:
            message: Message dictionary to broadcast
        """
        if not self.connections:
            return

        dead_connections = set()

        for connection in list(self.connections):
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.error(f"Error sending message to WebSocket: {e}")
                dead_connections.add(connection)

        for connection in dead_connections:
            self.connections.discard(connection)

        if dead_connections:
            logger.info(f"Removed {len(dead_connections)} dead connections")

    async def send_to(self, websocket: WebSocket, message: dict):
        """Send message to specific client."""
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.error(f"Error sending message to WebSocket: {e}")
            self.connections.discard(websocket)

    def queue_update_message(self) -> dict:
        overview = self.queue.queue_overview() if self.queue else None
        return {
            "type": "queue_update",
            "pending": overview.pending if overview else 0,
            "active": overview.active if overview else 0,
            "concurrency_limit": overview.concurrency_limit if overview else 0,
        }

    async def _on_queue_changed(self, job: JobSnapshot):
        await self.broadcast(self.queue_update_message())

    async def _on_job_status(self, job: JobSnapshot):
        await self.broadcast({
            "type": "job_status",
            "job_id": job.job_id,
            "status": job.status.value,
            "content_ref": job.content_ref,
            "error": job.error,
            "manifest_path": job.result.data.manifest_path if job.result and job.result.data else None,
        })
        await self.broadcast(self.queue_update_message())

    async def _on_job_progress(self, job_id: str, percent: float):
        await self.broadcast({
            "type": "job_progress",
            "job_id": job_id,
            "percent": percent,
        })

    def get_connection_count(self) -> int:
        """Get number of active connections."""
        return len(self.connections)
