import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from .core.config import settings, Settings
from .db.database import init_db, AsyncSessionLocal
from .db.history import SqlHistorySink
from .api.routes import router as api_router
from .api.websocket import router as ws_router, scanner_callback
from .scanner.neighbor_table import default_neighbor_table
from .scanner.network_scanner import ScanManager
from .scanner.orchestrator import ScanOrchestrator
from .scanner.oui_lookup import VendorDatabase
from .scanner.probe import ProbeExecutor, create_prober
from .scanner.topology import LocalTopologyResolver

logger = logging.getLogger(__name__)


def build_scan_manager(config: Settings, vendor_db: VendorDatabase, history_sink=None) -> ScanManager:
    """Wire the scan engine together from configuration."""
    topology = LocalTopologyResolver()
    executor = ProbeExecutor(
        prober=create_prober(config.PROBE_METHOD),
        vendor_db=vendor_db,
        neighbor_table=default_neighbor_table(),
        topology=topology,
    )
    orchestrator = ScanOrchestrator(
        executor,
        pacing_delay_ms=config.PACING_DELAY_MS,
        topology=topology,
        default_subnet=config.DEFAULT_SUBNET,
    )
    return ScanManager(orchestrator, history_sink=history_sink)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting %s v%s", settings.APP_NAME, settings.APP_VERSION)

    await init_db()
    logger.info("Database initialized")

    # One vendor table per process, shared by every scan
    vendor_db = VendorDatabase.from_settings(settings.OUI_DATABASE_PATH)
    scan_manager = build_scan_manager(settings, vendor_db, SqlHistorySink(AsyncSessionLocal))
    scan_manager.register_callback(scanner_callback)

    app.state.vendor_db = vendor_db
    app.state.scan_manager = scan_manager

    yield

    logger.info("Shutting down...")
    await scan_manager.shutdown()
    scan_manager.unregister_callback(scanner_callback)


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Authorized IPv4 host discovery with MAC vendor enrichment",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api", tags=["API"])
    app.include_router(ws_router, tags=["WebSocket"])

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "status": "running"
        }

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "scan_running": app.state.scan_manager.is_running
        }

    return app


app = create_app()
