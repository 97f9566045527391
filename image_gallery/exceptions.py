"""
    Centralized exception handling for the FastAPI application.
"""
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
import logging

log = logging.getLogger(__name__)

class APIException(Exception):
    """Base class for API exceptions."""
    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(self.detail)

class ImageNotFoundException(APIException):
    """Exception for when an image or its payload is not found."""
    def __init__(self, image_id: str):
        super().__init__(status_code=404, detail=f"Image with ID '{image_id}' not found.")

class InvalidImageException(APIException):
    """Exception for invalid uploads."""
    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)

class InvalidFormatException(APIException):
    """Exception for a missing or unsupported output format."""
    def __init__(self, fmt):
        if fmt is None or str(fmt).strip() == "":
            detail = "Output format is required."
        else:
            detail = f"Unsupported output format: '{fmt}'."
        super().__init__(status_code=400, detail=detail)

class InvalidSizeException(APIException):
    """Exception for a size outside the allowed set."""
    def __init__(self, size):
        super().__init__(status_code=400, detail=f"Invalid size: {size}.")

class InvalidSearchException(APIException):
    """Exception for bad pagination parameters."""
    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)

class ImageProcessingException(APIException):
    """Exception for resize/encode failures. The detail stays generic."""
    def __init__(self, detail: str = "Failed to process image."):
        super().__init__(status_code=500, detail=detail)

class StorageUnavailableException(APIException):
    """Exception for storage write failures."""
    def __init__(self, detail: str):
        super().__init__(status_code=503, detail=detail)

class DuplicateImageIdException(APIException):
    """Exception for an image ID that already exists."""
    def __init__(self, image_id: str):
        super().__init__(status_code=500, detail=f"Image ID collision on '{image_id}'.")

async def api_exception_handler(request: Request, exc: APIException):
    """Handles API exceptions."""
    log.error(f"API Exception: {exc.detail}", exc_info=exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )

async def http_exception_handler(request: Request, exc: HTTPException):
    """Handles FastAPI HTTP exceptions."""
    log.error(f"HTTP Exception: {exc.detail}", exc_info=exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )

async def generic_exception_handler(request: Request, exc: Exception):
    """Handles all other exceptions."""
    log.error(f"Unhandled Exception: {str(exc)}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred."},
    )

def add_exception_handlers(app):
    """Adds exception handlers to the FastAPI app."""
    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
