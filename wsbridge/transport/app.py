"""
Bridge Application

FastAPI application exposing the websocket endpoint of the bridge.
This is the main entry point:

    uvicorn wsbridge.transport.app:app --port 3000

Clients connect on "/" (or "/ws") and exchange JSON frames; every
connection is bridged onto the configured publish/subscribe backbone.
See wsbridge.config for the environment variables.

Environment variables can be loaded from a .env file in the project root.
"""

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, WebSocket

# Load environment variables from .env file
load_dotenv()

from wsbridge import __version__
from wsbridge.backbone import create_backbone_factory
from wsbridge.config import BridgeConfig
from wsbridge.session import SessionRegistry
from wsbridge.transport.handler import BridgeHandler
from wsbridge.transport.queue import OutboundQueueManager

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Global instances (created at startup)
config: BridgeConfig | None = None
registry: SessionRegistry | None = None
queue_manager: OutboundQueueManager | None = None
handler: BridgeHandler | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Initializes and tears down all bridge components.
    """
    global config, registry, queue_manager, handler

    # Startup
    config = BridgeConfig.from_env()
    logging.getLogger().setLevel(config.log_level)
    logger.info(f"Starting bridge (backbone={config.backbone})...")

    backbone_factory = create_backbone_factory(
        backend=config.backbone,
        redis_url=config.redis_url,
        rabbitmq_url=config.rabbitmq_url,
        exchange_name=config.rabbitmq_exchange,
    )

    registry = SessionRegistry(
        backbone_factory=backbone_factory,
        system_topic=config.system_topic,
    )
    queue_manager = OutboundQueueManager(max_queue_size=config.outbound_queue_size)
    handler = BridgeHandler(registry=registry, queue_manager=queue_manager)

    logger.info("Bridge started")

    yield

    # Shutdown
    logger.info("Shutting down bridge...")
    await registry.shutdown()
    await queue_manager.shutdown()
    handler = None
    logger.info("Bridge stopped")


app = FastAPI(
    title="WebSocket Pub/Sub Bridge",
    description="Relays websocket client frames onto a publish/subscribe backbone",
    version=__version__,
    lifespan=lifespan
)


@app.websocket("/")
@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for bridge clients.

    Each connection becomes one bridging session.
    """
    if handler is None:
        await websocket.close(code=1011, reason="Bridge not initialized")
        return

    await handler.handle_connection(websocket)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "backbone": config.backbone if config else None,
        "sessions": registry.session_count if registry else 0,
        "initialized_sessions": registry.initialized_count if registry else 0,
        "connection_queues": queue_manager.connection_count() if queue_manager else 0,
    }
