import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from docshare.api.errors import unavailable_response
from docshare.api.routers import documents, otp, shares
from docshare.core.config import get_settings
from docshare.db.base import Base
from docshare.db.session import engine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # development databases only; production runs the alembic migrations
    Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    docs_url = "/docs" if settings.enable_docs else None
    redoc_url = "/redoc" if settings.enable_docs else None
    openapi_url = "/openapi.json" if settings.enable_docs else None

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        docs_url=docs_url,
        redoc_url=redoc_url,
        openapi_url=openapi_url,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
        expose_headers=["Content-Disposition", "Content-Type", "Content-Length"],
    )

    app.include_router(documents.router)
    app.include_router(shares.router)
    app.include_router(otp.router)

    @app.exception_handler(SQLAlchemyError)
    async def store_unavailable(request: Request, exc: SQLAlchemyError):
        logger.error(f"Store failure on {request.method} {request.url.path}: {exc.__class__.__name__}")
        return unavailable_response()

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
