import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from thumbnail_editor.api.v1.routes import router as api_v1_router

logger = logging.getLogger(__name__)

# Load environment variables from .env file
env_path = Path(__file__).parent.parent / ".env"

if env_path.exists():
    load_dotenv(dotenv_path=env_path, override=True)
    logger.info("Loaded environment configuration from %s", env_path)
else:
    logger.info("No .env file at %s; using process environment", env_path)


def create_app() -> FastAPI:
    """
    Application factory for the Thumbnail Editor API.

    Keeping this as a separate function makes it easier to extend
    configuration and testing later.
    """
    logging.basicConfig(level=os.getenv("THUMBNAIL_LOG_LEVEL", "INFO"))

    app = FastAPI(
        title="Thumbnail Editor API",
        version="0.1.0",
        description="Generate, re-crop and replace sized renditions of master images.",
    )

    # Infrastructure-level health check (non-versioned) primarily for ops.
    @app.get("/health", tags=["health"])
    async def root_health_check() -> dict:
        """Simple root health check endpoint."""
        return {"status": "ok"}

    # Public, versioned API routes.
    app.include_router(api_v1_router)

    # Serve master images and renditions under the public upload URL.
    app.mount(
        os.getenv("THUMBNAIL_UPLOAD_URL", "/uploads"),
        StaticFiles(directory=os.getenv("THUMBNAIL_UPLOAD_DIR", "storage/uploads"), check_dir=False),
        name="uploads",
    )

    return app


app = create_app()
