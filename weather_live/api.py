"""
REST and WebSocket API module for Weather Live Poller.

Provides:
- Liveness check
- Stored observation retrieval
- Poller status
- Real-time `weather_update` channel over WebSocket
"""

import asyncio
import logging
import os
from typing import Any, Dict, List, Optional
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .broadcaster import ConnectionManager, WEATHER_UPDATE_EVENT
from .config import Settings, load_settings
from .database import Database
from .fetcher import WeatherFetcher
from .scheduler import WeatherPoller

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logging.getLogger("urllib3.connectionpool").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

SERVICE_NAME = "Weather Live API"
SERVICE_VERSION = "1.0.0"


# =============================================================================
# Pydantic Models
# =============================================================================

class WeatherObservation(BaseModel):
    id: int
    timestamp: str
    temperature: Optional[float]
    windspeed: Optional[float]
    winddirection: Optional[float]
    weathercode: Optional[int]
    raw: Dict[str, Any]


class HealthResponse(BaseModel):
    ok: bool
    ts: str


class PollResultModel(BaseModel):
    success: bool
    observation_id: Optional[int]
    temperature: Optional[float]
    error_message: Optional[str]
    poll_time: str
    response_time_ms: int
    broadcast_scheduled: bool


class StatusResponse(BaseModel):
    status: str
    uptime: str
    poller_running: bool
    poll_interval_seconds: float
    next_poll: Optional[str]
    poll_count: int
    success_count: int
    failure_count: int
    last_result: Optional[PollResultModel]
    stored_observations: int
    connected_clients: int


# =============================================================================
# Application Factory
# =============================================================================

def create_app(
    settings: Optional[Settings] = None,
    fetcher: Optional[WeatherFetcher] = None,
    autostart: bool = True
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Runtime settings. Loaded from the environment when omitted.
        fetcher: Fetcher to poll with. Built from settings when omitted.
        autostart: Start the interval poller during startup.
    """
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info(f"Starting {SERVICE_NAME}...")
        app.state.start_time = datetime.now(timezone.utc)

        app.state.db = Database(settings.db_path)

        broadcaster = ConnectionManager()
        broadcaster.bind_loop(asyncio.get_running_loop())
        app.state.broadcaster = broadcaster

        poller = WeatherPoller(
            settings=settings,
            database=app.state.db,
            broadcaster=broadcaster,
            fetcher=fetcher
        )
        app.state.poller = poller

        if not settings.is_complete:
            logger.warning("LAT, LON or API_KEY not set; poll cycles will fail until configured")

        if autostart:
            poller.start()

        yield

        logger.info("Shutting down...")
        poller.stop()
        app.state.db.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title=SERVICE_NAME,
        description="Polls current weather, stores each observation and pushes it to live clients",
        version=SERVICE_VERSION,
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.db = None
    app.state.poller = None
    app.state.broadcaster = None
    app.state.start_time = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    register_routes(app)
    return app


# =============================================================================
# Utility Functions
# =============================================================================

def get_database(request: Request) -> Database:
    db = request.app.state.db
    if not db:
        raise HTTPException(status_code=503, detail="Database not available")
    return db


def get_uptime(start_time: Optional[datetime]) -> str:
    """Get formatted uptime string."""
    if not start_time:
        return "N/A"
    delta = datetime.now(timezone.utc) - start_time
    hours, remainder = divmod(int(delta.total_seconds()), 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours}h {minutes}m {seconds}s"


# =============================================================================
# Routes
# =============================================================================

def register_routes(app: FastAPI) -> None:

    @app.get("/", tags=["Info"])
    async def root():
        """API information."""
        settings = app.state.settings
        return {
            "name": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "location": {"lat": settings.lat, "lon": settings.lon},
            "poll_interval_seconds": settings.poll_interval_seconds,
            "realtime": {"path": "/ws", "event": WEATHER_UPDATE_EVENT},
        }

    @app.get("/api/health", response_model=HealthResponse, tags=["Health"])
    async def health_check():
        """Liveness check."""
        return HealthResponse(ok=True, ts=datetime.now(timezone.utc).isoformat())

    @app.get("/api/weather/latest", response_model=WeatherObservation, tags=["Weather"])
    async def get_latest(request: Request):
        """Get the most recent observation."""
        latest = get_database(request).get_latest()
        if not latest:
            raise HTTPException(status_code=404, detail="No observations stored yet")
        return WeatherObservation(**latest)

    @app.get("/api/weather", response_model=List[WeatherObservation], tags=["Weather"])
    async def get_recent(
        request: Request,
        limit: int = Query(default=50, ge=1, le=500)
    ):
        """Get recent observations, newest first."""
        return [WeatherObservation(**o) for o in get_database(request).get_recent(limit)]

    @app.get("/api/weather/{observation_id}", response_model=WeatherObservation, tags=["Weather"])
    async def get_observation(request: Request, observation_id: int):
        """Get a single observation."""
        observation = get_database(request).get_observation(observation_id)
        if not observation:
            raise HTTPException(status_code=404, detail=f"Observation not found: {observation_id}")
        return WeatherObservation(**observation)

    @app.get("/api/status", response_model=StatusResponse, tags=["Status"])
    async def get_status(request: Request):
        """Get poller and storage status."""
        poller = request.app.state.poller
        db = get_database(request)
        if not poller:
            raise HTTPException(status_code=503, detail="Poller not available")

        info = poller.get_scheduler_status()
        last = info["last_result"]

        if not info["is_running"]:
            status = "stopped"
        elif last and not last["success"]:
            status = "degraded"
        else:
            status = "healthy"

        return StatusResponse(
            status=status,
            uptime=get_uptime(request.app.state.start_time),
            poller_running=info["is_running"],
            poll_interval_seconds=info["poll_interval_seconds"],
            next_poll=info["next_poll"],
            poll_count=info["poll_count"],
            success_count=info["success_count"],
            failure_count=info["failure_count"],
            last_result=PollResultModel(**last) if last else None,
            stored_observations=db.count(),
            connected_clients=request.app.state.broadcaster.active_count,
        )

    @app.websocket("/ws")
    async def weather_socket(websocket: WebSocket):
        """Real-time channel: latest observation on connect, then every new one."""
        manager: ConnectionManager = websocket.app.state.broadcaster
        db: Database = websocket.app.state.db

        await manager.connect(websocket)
        try:
            latest = db.get_latest()
            if latest:
                await manager.send(websocket, WEATHER_UPDATE_EVENT, latest)
            while True:
                # Client frames, text or binary, carry no meaning
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
        except WebSocketDisconnect:
            pass
        finally:
            manager.disconnect(websocket)


def main() -> None:
    import uvicorn

    settings = load_settings()
    # .env is only loaded by load_settings, after the import-time basicConfig
    logging.getLogger().setLevel(settings.log_level)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    main()
