from fastapi import APIRouter, Depends, UploadFile, File, Form, Query, Response
from typing import List, Optional
from io import BytesIO
from urllib.parse import quote
import logging
from PIL import Image, UnidentifiedImageError

from image_gallery.storage.base import BlobStore, MetadataStore
from image_gallery.dependencies.dependencies import get_blob_store, get_metadata_store
from image_gallery.image_service.service import save_image_and_meta, search_images, list_tags, get_image
from image_gallery.image_service.rendition import render_image, DEFAULT_SIZE
from image_gallery.image_service.models import (
    ImageItem,
    ImageRecord,
    UploadResponse,
    SearchImagesResponse,
    TagsResponse,
)
from image_gallery.exceptions import InvalidImageException
from image_gallery.settings import settings

log = logging.getLogger(__name__)

router = APIRouter(
    prefix="/images",
    tags=["image-gallery"]
)

# Allowed content types, all decodable by Pillow
ALLOWED_IMAGE_TYPES = {
    "image/png",
    "image/jpeg",
    "image/gif",
    "image/webp",
    "image/bmp",
}

MIME_MAP = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
    "BMP": "image/bmp",
}

def validate_image_bytes(file_bytes: bytes, content_type: str) -> str:
    """Validate that the uploaded file is a real image and return its actual type."""
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise InvalidImageException(f"Unsupported content type: {content_type}")
    try:
        with Image.open(BytesIO(file_bytes)) as img:
            img.load()
            image_format = img.format
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError):
        raise InvalidImageException("Invalid image file")
    mime_type = MIME_MAP.get((image_format or "").upper())
    if mime_type not in ALLOWED_IMAGE_TYPES:
        raise InvalidImageException(f"Unsupported image type: {image_format}")
    return mime_type

def parse_tags(raw: Optional[str]) -> List[str]:
    """Comma separated tags, trimmed, blanks and duplicates dropped."""
    if not raw:
        return []
    tags = [t.strip() for t in raw.split(",")]
    return list(dict.fromkeys(t for t in tags if t))

def content_disposition(filename: str) -> str:
    """Attachment header, with an RFC 5987 form for non-ASCII names."""
    fallback = filename.encode("ascii", "replace").decode("ascii").replace("?", "_").replace("\"", "")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"

def to_item(record: ImageRecord) -> ImageItem:
    return ImageItem(
        image_id=record.image_id,
        filename=record.filename,
        original_name=record.original_name,
        size=record.size,
        content_type=record.content_type,
        tags=record.tags,
        uploaded_at=record.uploaded_at,
    )

@router.post("", response_model=UploadResponse, status_code=201)
async def upload_image(
    file: UploadFile = File(...),
    tags: Optional[str] = Form(None),  # Comma Separated Values
    response: Response = None,
    db: MetadataStore = Depends(get_metadata_store),
    blobs: BlobStore = Depends(get_blob_store)
):
    """Uploads an image with at least one tag."""
    # Add security header
    if response:
        response.headers["X-Content-Type-Options"] = "nosniff"

    # Pre-check content-type
    if file.content_type not in ALLOWED_IMAGE_TYPES:
        raise InvalidImageException(f"Unsupported content type: {file.content_type}")

    tags_list = parse_tags(tags)
    if not tags_list:
        raise InvalidImageException("At least one tag is required")

    contents = await file.read()
    if not contents:
        raise InvalidImageException("Empty file")
    if len(contents) > settings.max_upload_bytes:
        raise InvalidImageException(f"File exceeds {settings.max_upload_bytes} bytes")

    # Validate actual file content
    content_type = validate_image_bytes(contents, file.content_type)

    image = save_image_and_meta(
        db=db,
        blobs=blobs,
        data=contents,
        original_name=file.filename or "image",
        content_type=content_type,
        tags=tags_list
    )
    return UploadResponse(
        image_id=image.image_id,
        filename=image.filename,
        original_name=image.original_name,
        tags=image.tags,
        uploaded_at=image.uploaded_at,
    )

@router.get("/search", response_model=SearchImagesResponse)
def search_images_handler(
    tags: Optional[str] = Query(None, description="Comma separated tags"),
    limit: int = Query(settings.search_default_limit, ge=1, le=settings.search_max_limit),
    offset: int = Query(0, ge=0),
    db: MetadataStore = Depends(get_metadata_store)
):
    """Searches images by tag, newest first."""
    records = search_images(db, tags=parse_tags(tags), limit=limit, offset=offset)
    images = [to_item(r) for r in records]
    return SearchImagesResponse(images=images, total=len(images))

@router.get("/tags", response_model=TagsResponse)
def list_tags_handler(db: MetadataStore = Depends(get_metadata_store)):
    """Lists every tag in use."""
    return TagsResponse(tags=list_tags(db))

@router.get("/{image_id}")
def get_image_handler(
    image_id: str,
    db: MetadataStore = Depends(get_metadata_store),
    blobs: BlobStore = Depends(get_blob_store)
):
    """Returns the original image bytes."""
    image = get_image(db, blobs, image_id)
    return Response(
        content=image.buffer,
        media_type=image.content_type,
        headers={
            "Cache-Control": "public, max-age=31536000",
            "X-Content-Type-Options": "nosniff",
        },
    )

@router.get("/{image_id}/download")
def download_image(
    image_id: str,
    format: Optional[str] = Query(None, description="png, bmp, ico or svg"),
    # Raw string so non-numeric sizes get the same 400 as unsupported ones
    size: Optional[str] = Query(None, description="Square output size in pixels, default 1024"),
    db: MetadataStore = Depends(get_metadata_store),
    blobs: BlobStore = Depends(get_blob_store)
):
    """
    Downloads the image re-rendered at the requested format and size.

    BMP and ICO are delivered as PNG (ICO capped at 256px); SVG wraps a PNG.
    The filename extension always matches the bytes sent.
    """
    rendition = render_image(db, blobs, image_id, format, DEFAULT_SIZE if size is None else size)
    return Response(
        content=rendition.content,
        media_type=rendition.content_type,
        headers={
            "Content-Disposition": content_disposition(rendition.filename),
            "X-Content-Type-Options": "nosniff",
        },
    )
