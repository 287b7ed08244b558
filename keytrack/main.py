# =======================================================================================
# keytrack/main.py - FastAPI Application Entry Point
# =======================================================================================
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from .api.errors import register_exception_handlers
from .api.routes.auth import router as auth_router
from .api.routes.dashboard import router as dashboard_router
from .api.routes.keys import router as keys_router
from .api.routes.qr import router as qr_router
from .api.routes.realtime import router as realtime_router
from .config import config
from .database import DatabaseManager
from .logging_config import configure_logging
from .models.schemas import HealthResponse
from .services.audit_service import AuditService
from .services.auth_service import AuthService
from .services.dashboard_service import DashboardService
from .services.fanout import FanoutHub
from .services.key_admin import KeyAdminService
from .services.key_store import KeyStore
from .services.key_transitions import KeyTransitionService

logger = logging.getLogger(__name__)


def create_app(database: Optional[DatabaseManager] = None,
               create_tables: Optional[bool] = None) -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="KeyTrack API",
        version="1.0.0",
        description="Campus key management: QR handoffs and real-time key status",
        debug=config.API_DEBUG,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    # Services (one set per app; routes reach them through app.state)
    db = database or DatabaseManager()
    fanout = FanoutHub()
    audit = AuditService(db)
    auth_service = AuthService(db)
    key_store = KeyStore(db)

    app.state.db = db
    app.state.fanout = fanout
    app.state.auth_service = auth_service
    app.state.key_store = key_store
    app.state.transitions = KeyTransitionService(key_store, auth_service, fanout, audit)
    app.state.key_admin = KeyAdminService(key_store, fanout, audit)
    app.state.dashboard_service = DashboardService(db)

    # Routers
    app.include_router(auth_router, prefix="/api", tags=["auth"])
    app.include_router(keys_router, prefix="/api", tags=["keys"])
    app.include_router(qr_router, prefix="/api", tags=["qr"])
    app.include_router(dashboard_router, prefix="/api", tags=["dashboard"])
    app.include_router(realtime_router, tags=["realtime"])

    @app.get("/api/health", response_model=HealthResponse, tags=["health"])
    def api_health(request: Request):
        try:
            request.app.state.dashboard_service.ping()
            return HealthResponse(status="ok", data_available=True, message=None)
        except SQLAlchemyError as e:
            return HealthResponse(status="error", data_available=False, message=str(e))

    should_create = config.DB_CREATE_TABLES if create_tables is None else create_tables

    @app.on_event("startup")
    async def startup_event():
        if should_create:
            db.create_tables()
        logger.info("KeyTrack API started (debug=%s)", config.API_DEBUG)

    @app.on_event("shutdown")
    async def shutdown_event():
        db.dispose()

    return app
