"""FastAPI application entrypoint."""
from fastapi import FastAPI, Query, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from keywatch.api import ws_session, rest_status
from keywatch.core.config import settings
from keywatch.core.logging import setup_logging

# Setup logging
setup_logging()

# Create FastAPI app
app = FastAPI(
    title="Keywatch Backend",
    description="Live keyword monitoring over a streaming transcription service",
    version="0.1.0"
)

# CORS middleware (allow frontend connections)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,  # Must be False when using "*" origins
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(rest_status.router)


# WebSocket endpoint
@app.websocket("/ws/session")
async def websocket_endpoint(
    websocket: WebSocket,
    channels: int = Query(settings.channels, ge=1, le=settings.max_channels)
):
    """WebSocket endpoint for a monitoring session. Invalid `channels` closes with 1008."""
    # websocket_session_endpoint calls websocket.accept() itself
    await ws_session.websocket_session_endpoint(websocket, channels=channels)


@app.on_event("startup")
async def startup_event():
    """Log configuration on startup."""
    from keywatch.core.logging import logger
    import os

    port = os.getenv("PORT", settings.port)
    logger.info(f"Starting Keywatch Backend on {settings.host}:{port}")
    logger.info(
        f"Capture rate: {settings.sample_rate} Hz, playback rate: {settings.playback_sample_rate} Hz, "
        f"initial buffer: {settings.buffer_initial_samples} samples"
    )
    if not settings.api_key:
        logger.warning("No API key configured (set KEYWATCH_API_KEY); sessions will fail to connect")
    if settings.initial_keywords:
        logger.info(f"Initial keywords: {', '.join(settings.initial_keywords)}")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    from keywatch.core.logging import logger
    from keywatch.services.session_registry import session_registry

    for session_id in await session_registry.list_session_ids():
        controller = await session_registry.get(session_id)
        if controller is not None:
            await controller.stop()
    logger.info("Shutting down Keywatch Backend")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "keywatch.main:app",
        host=settings.host,
        port=settings.port,
        reload=True
    )
