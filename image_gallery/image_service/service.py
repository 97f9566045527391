from datetime import datetime, timezone
from io import BytesIO
from typing import List, Optional, Dict, Any
import logging
import ntpath
import re
from botocore.exceptions import BotoCoreError, ClientError

from image_gallery.storage.base import BlobStore, MetadataStore, BlobExistsError, MetadataExistsError
from image_gallery.image_service.models import ImageRecord
from image_gallery.settings import settings
from image_gallery.exceptions import (
    DuplicateImageIdException,
    ImageNotFoundException,
    InvalidSearchException,
    StorageUnavailableException,
)

log = logging.getLogger(__name__)

STORAGE_ERRORS = (BotoCoreError, ClientError, OSError)
# ValueError covers unparseable JSON in the local metadata file
METADATA_ERRORS = STORAGE_ERRORS + (ValueError,)

DIMENSION_MARKER = re.compile(r"_\d+x\d+")

def blob_key(image_id: str) -> str:
    """Payload location, derived from the image ID alone."""
    return f"{image_id}.bin"

def sanitize_filename(name: str) -> str:
    """Drops directory components and the first `_WxH` marker from an upload name."""
    base = ntpath.basename(name or "")
    base = DIMENSION_MARKER.sub("", base, count=1)
    return base or "image"

def save_image_and_meta(
    db: MetadataStore,
    blobs: BlobStore,
    data: bytes,
    original_name: str,
    content_type: str,
    tags: List[str]
) -> ImageRecord:
    """Stores the payload, then appends the metadata entry.

    The two writes are not atomic: if the metadata write fails the payload
    stays behind as an orphan that no lookup can reach.
    """
    image = ImageRecord(
        filename = sanitize_filename(original_name),
        original_name = original_name,
        size = len(data),
        content_type = content_type,
        tags = list(dict.fromkeys(tags)),
        uploaded_at = datetime.now(timezone.utc),
    )
    key = blob_key(image.image_id)

    try:
        blobs.upload(fileobj=BytesIO(data), key=key, content_type=content_type)
    except BlobExistsError:
        log.error("Payload %s already exists, refusing to overwrite", key)
        raise DuplicateImageIdException(image.image_id)
    except STORAGE_ERRORS as e:
        log.error(f"Payload upload failed: {e}")
        raise StorageUnavailableException(f"Failed to store image: {e}")

    item = image.model_dump()
    item["uploaded_at"] = item["uploaded_at"].isoformat()
    try:
        db.put_metadata(item)
    except MetadataExistsError:
        log.error("Metadata for %s already exists", image.image_id)
        raise DuplicateImageIdException(image.image_id)
    except METADATA_ERRORS as e:
        log.error(f"Metadata write failed, payload {key} is orphaned: {e}")
        raise StorageUnavailableException(f"Failed to save image metadata: {e}")

    log.info("Saved image %s with tags %s", image.image_id, image.tags)
    return image

def _to_record(item: Dict[str, Any]) -> ImageRecord:
    uploaded_at = item["uploaded_at"]
    if isinstance(uploaded_at, str):
        uploaded_at = datetime.fromisoformat(uploaded_at)
    if uploaded_at.tzinfo is None:
        uploaded_at = uploaded_at.replace(tzinfo=timezone.utc)
    return ImageRecord(
        image_id=item["image_id"],
        filename=item.get("filename") or item.get("original_name", ""),
        original_name=item.get("original_name") or item.get("filename", ""),
        size=int(item.get("size", 0)),
        content_type=item.get("content_type", "application/octet-stream"),
        tags=list(item.get("tags", [])),
        uploaded_at=uploaded_at,
    )

def load_records(db: MetadataStore) -> List[ImageRecord]:
    """Reads every metadata entry in insertion order.

    An unreadable or corrupt collection reads as empty, bad entries are skipped.
    """
    try:
        items = db.scan_metadata()
    except METADATA_ERRORS as e:
        log.warning(f"Metadata collection unreadable, treating as empty: {e}")
        return []

    records = []
    for item in items:
        try:
            records.append(_to_record(item))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            log.warning(f"Skipping malformed metadata entry {item!r}: {e}")
    return records

def get_image(db: MetadataStore, blobs: BlobStore, image_id: str) -> ImageRecord:
    """Gets an image with its bytes. Missing metadata or payload is a not-found."""
    try:
        item = db.get_metadata(image_id)
    except METADATA_ERRORS as e:
        log.warning(f"Metadata lookup for {image_id} failed, treating as missing: {e}")
        item = None
    if not item:
        log.info("Image not found: %s", image_id)
        raise ImageNotFoundException(image_id)

    try:
        record = _to_record(item)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        log.warning(f"Malformed metadata entry for {image_id}: {e}")
        raise ImageNotFoundException(image_id)

    try:
        data = blobs.download(blob_key(image_id))
    except STORAGE_ERRORS as e:
        log.error(f"Payload read for {image_id} failed: {e}")
        raise StorageUnavailableException(f"Failed to read image: {e}")
    if data is None:
        log.warning("Payload missing for image %s", image_id)
        raise ImageNotFoundException(image_id)

    record.buffer = data
    return record

def _matches(record: ImageRecord, needles: List[str]) -> bool:
    return any(
        needle in tag.lower()
        for needle in needles
        for tag in record.tags
    )

def search_images(
    db: MetadataStore,
    tags: Optional[List[str]] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None
) -> List[ImageRecord]:
    """Tag search, newest first, paginated.

    A record matches when any requested tag is a case-insensitive substring
    of any of its tags. No tags matches everything.
    """
    limit = settings.search_default_limit if limit is None else limit
    offset = 0 if offset is None else offset
    if limit < 1:
        raise InvalidSearchException("limit must be at least 1")
    if offset < 0:
        raise InvalidSearchException("offset must not be negative")

    records = load_records(db)
    needles = [t.strip().lower() for t in tags or [] if t and t.strip()]
    if needles:
        records = [r for r in records if _matches(r, needles)]

    # sorted() is stable with reverse=True, ties keep insertion order
    records = sorted(records, key=lambda r: r.uploaded_at, reverse=True)
    page = records[offset:offset + limit]
    log.info("Found %d images matching %s (returning %d)", len(records), needles, len(page))
    return page

def list_tags(db: MetadataStore) -> List[str]:
    """Every distinct tag across all images, sorted."""
    return sorted({tag for record in load_records(db) for tag in record.tags})
