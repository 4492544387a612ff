"""
FastAPI control surface for a recording session.

Frontends use it to:
  - start/stop recording
  - read or clear the transcript
  - receive segments, errors, audio levels and state changes over /ws
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from . import __version__
from .app.session import RecordingSession
from .models.audio_data import TranscriptSegment
from .utils.exceptions import CaptureError
from .utils.logger import null_logger

LEVEL_BROADCAST_INTERVAL_S = 0.1


# ============================================================================
# Pydantic Models for API
# ============================================================================

class SegmentModel(BaseModel):
    index: int
    text: str
    start_ms: int
    end_ms: int
    created_at: str


class RecordingResponse(BaseModel):
    ok: bool
    message: str
    state: str


class ConnectionManager:
    """Manages WebSocket connections for real-time updates"""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.active_connections: List[WebSocket] = []
        self.logger = logger or null_logger()

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)
        self.logger.info(f"WebSocket connected. Total: {len(self.active_connections)}")

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
            self.logger.info(f"WebSocket disconnected. Total: {len(self.active_connections)}")

    async def broadcast(self, message: dict):
        """Broadcast message to all connected clients"""
        disconnected = []
        for connection in list(self.active_connections):
            try:
                await connection.send_json(message)
            except Exception as e:
                self.logger.error(f"Error broadcasting to client: {e}")
                disconnected.append(connection)

        for conn in disconnected:
            self.disconnect(conn)


class EventBridge:
    """
    Forwards session callbacks (called on capture and transcription threads)
    to WebSocket clients on the server's event loop.
    """

    def __init__(self, session: RecordingSession, manager: ConnectionManager):
        self.session = session
        self.manager = manager
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self._last_level = 0.0

        session.on_segment = self.on_segment
        session.on_error = self.on_error
        session.on_level = self.on_level
        session.state_manager.register_callback(None, self.on_state_change)

    def publish(self, message: dict):
        if self.loop is None or self.loop.is_closed():
            return
        asyncio.run_coroutine_threadsafe(self.manager.broadcast(message), self.loop)

    def on_segment(self, segment: TranscriptSegment):
        self.publish({'type': 'segment', 'data': segment.to_dict()})

    def on_error(self, error: Exception):
        self.publish({
            'type': 'error',
            'error': str(error),
            'kind': type(error).__name__,
        })

    def on_level(self, level: float):
        now = time.monotonic()
        if now - self._last_level < LEVEL_BROADCAST_INTERVAL_S:
            return
        self._last_level = now
        self.publish({'type': 'level', 'level': level})

    def on_state_change(self, state_data, old_state):
        self.publish({
            'type': 'state_change',
            'old_state': old_state.value,
            'new_state': state_data.state.value,
            'timestamp': state_data.timestamp.isoformat(),
            'error': state_data.error,
        })


def _segment_model(index: int, segment: TranscriptSegment) -> SegmentModel:
    return SegmentModel(index=index, **segment.to_dict())


def create_app(session: RecordingSession, logger: Optional[logging.Logger] = None) -> FastAPI:
    logger = logger or null_logger()
    manager = ConnectionManager(logger=logger)
    bridge = EventBridge(session, manager)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        bridge.loop = asyncio.get_running_loop()
        logger.info("Starting livescribe server...")

        yield

        logger.info("Shutting down livescribe server...")
        await asyncio.get_running_loop().run_in_executor(None, session.close)
        bridge.loop = None

    app = FastAPI(
        title="Livescribe API",
        description="Live transcription of system audio and microphone",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.session = session
    app.state.connection_manager = manager

    # ========================================================================
    # REST API Endpoints
    # ========================================================================

    @app.get("/")
    async def root():
        return {
            "name": "livescribe",
            "version": __version__,
            "endpoints": {
                "status": "GET /status",
                "start": "POST /recording/start",
                "stop": "POST /recording/stop",
                "segments": "GET /segments",
                "clear": "DELETE /segments",
                "transcript": "GET /transcript",
                "websocket": "WS /ws",
            },
        }

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "state": session.state_manager.current_state.value,
            "is_recording": session.is_recording,
        }

    @app.get("/status")
    async def get_status():
        return session.get_status()

    @app.post("/recording/start", response_model=RecordingResponse)
    async def start_recording():
        if session.is_recording:
            raise HTTPException(status_code=409, detail="Recording already running")

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, session.start)
        except CaptureError as e:
            raise HTTPException(status_code=500, detail=f"Failed to start audio capture: {e}")

        return RecordingResponse(
            ok=True,
            message=f"Recording from {len(session.device_ids)} device(s)",
            state=session.state_manager.current_state.value,
        )

    @app.post("/recording/stop", response_model=RecordingResponse)
    async def stop_recording():
        loop = asyncio.get_running_loop()
        stopped = await loop.run_in_executor(None, session.stop)
        return RecordingResponse(
            ok=True,
            message="Recording stopped" if stopped else "Recording not running",
            state=session.state_manager.current_state.value,
        )

    @app.get("/segments", response_model=List[SegmentModel])
    async def list_segments(since: int = 0):
        segments = session.segments()
        return [_segment_model(i, s) for i, s in enumerate(segments) if i >= since]

    @app.delete("/segments")
    async def clear_segments():
        session.clear()
        return {"ok": True}

    @app.get("/transcript", response_class=PlainTextResponse)
    async def get_transcript():
        return session.full_transcript()

    # ========================================================================
    # WebSocket Endpoint for Real-time Updates
    # ========================================================================

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await manager.connect(websocket)

        try:
            await websocket.send_json({
                'type': 'connected',
                'data': session.get_status(),
            })

            # Updates are pushed by the session callbacks
            while True:
                await websocket.receive_text()

        except WebSocketDisconnect:
            manager.disconnect(websocket)
        except Exception as e:
            logger.error(f"WebSocket error: {e}")
            manager.disconnect(websocket)

    return app
