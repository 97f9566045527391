from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import uvicorn
import logging

from image_gallery.storage.dynamodb import DynamoDBService
from image_gallery.storage.s3 import S3Service
from image_gallery.storage.local import LocalBlobStore, JsonMetadataStore
from image_gallery.settings import settings
from image_gallery.routers.image_service import router as image_router
from image_gallery.exceptions import add_exception_handlers

logging.basicConfig(level=logging.INFO)
log = logging.getLogger("image-gallery")

def create_stores():
    """Builds the (payload store, metadata store) pair for the configured backend."""
    if settings.storage_backend == "aws":
        return S3Service(), DynamoDBService()
    return LocalBlobStore(), JsonMetadataStore()

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
        Async context manager for FastAPI application lifecycle events.
        Initializes and closes the storage backend for the application.
    """
    # Initialize resources
    app.state.blobs, app.state.db = create_stores()
    log.info("Using %s storage backend", settings.storage_backend)
    yield
    # Cleanup resources
    app.state.blobs.close()
    app.state.db.close()

# Initialize App
app = FastAPI(
    title=settings.app_title,
    lifespan=lifespan,
    description="Tagged image gallery with on-demand renditions",
    root_path = "/api/v1"
)

# Add exception handlers
add_exception_handlers(app)

# CORS - Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=['*'],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add the routers
app.include_router(image_router)

# Check Health
@app.get("/")
def read_root():
    """
        Default end point

    """
    return "Image Gallery is running."

if __name__ == "__main__":
    uvicorn.run("image_gallery.main:app", host="0.0.0.0", port=8000, reload=True)
