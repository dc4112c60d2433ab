"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import router
from .api.routes import get_ocr_backend
from .config import get_settings
from . import __version__


def configure_logging(debug: bool = False) -> None:
    """Root logging for the service; DEBUG shows per-field match decisions."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Warm the OCR engine before serving; a cold engine retries on first use."""
    logger.info(f"Starting {app.title} {__version__}")

    backend = get_ocr_backend()
    if backend.initialize():
        logger.info("OCR engine warm")
    else:
        logger.warning("OCR engine unavailable at startup; labels will verify against empty text until it loads")

    yield

    logger.info("Label verification API stopped")


def create_app() -> FastAPI:
    """Build the application: CORS, versioned routes, root index."""
    settings = get_settings()
    configure_logging(settings.debug)

    app = FastAPI(
        title=settings.app_name,
        description="""
## Alcohol Label Verification API

Checks photographed alcohol labels against submitted product data.

### Features
- **Front/Back Upload**: Front label required, back label optional
- **Multi-variant OCR**: Each photo is enhanced several ways; the best transcript wins
- **Field Checks**: Brand, product type, alcohol content (incl. proof), net contents
- **Advisory Checks**: Government warning completeness, wine sulfites, beer ingredients
- **Manual Correction**: Re-verify an edited transcript via `/verify/text`
        """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.include_router(router, prefix="/api/v1")

    @app.get("/", include_in_schema=False)
    async def index():
        return {
            "message": settings.app_name,
            "version": __version__,
            "docs": "/docs",
            "endpoints": ["/api/v1/health", "/api/v1/verify", "/api/v1/verify/text"],
        }

    return app


app = create_app()
