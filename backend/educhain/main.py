"""EduChain - FastAPI Application.

Academic certificate issuance and verification with on-chain reconciliation.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from educhain import __version__
from educhain.api import admin, certificates, institutions
from educhain.bridges.content import build_content_store
from educhain.bridges.ledger import build_ledger_client
from educhain.core.config import Settings, get_settings
from educhain.core.database import build_engine, build_session_maker, create_tables
from educhain.core.errors import EduChainError

logger = logging.getLogger(__name__)


async def handle_domain_error(request: Request, exc: EduChainError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)
        if settings.CREATE_TABLES_ON_STARTUP:
            await create_tables(engine)
        app.state.session_maker = build_session_maker(engine)
        # Implementations are chosen once here, never per call
        app.state.ledger = build_ledger_client(settings)
        app.state.content_store = build_content_store(settings)
        logger.info(f"{settings.APP_NAME} started")
        try:
            yield
        finally:
            await app.state.ledger.close()
            await app.state.content_store.close()
            await engine.dispose()
    
    app = FastAPI(
        title=settings.APP_NAME,
        description="EduChain - Academic certificate registry with on-chain verification",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    
    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    
    app.add_exception_handler(EduChainError, handle_domain_error)
    
    # Include routers
    app.include_router(institutions.router)
    app.include_router(certificates.router)
    app.include_router(admin.router)
    
    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {
            "service": settings.APP_NAME,
            "version": __version__,
            "status": "operational",
        }
    
    @app.get("/health")
    async def health(request: Request):
        """Detailed health check."""
        ledger = getattr(request.app.state, "ledger", None)
        return {
            "status": "healthy",
            "ledger": {
                "mode": ledger.mode if ledger else None,
                "configured": ledger.is_configured if ledger else False,
            },
        }
    
    return app


app = create_app()
