from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field
import secrets
import string
import time

ID_PREFIX = "img"
ID_ALPHABET = string.digits + string.ascii_lowercase
ID_SUFFIX_LENGTH = 8  # 36**8 is about 2**41

def new_image_id() -> str:
    """Generates a new unique image ID: prefix, creation millis, random base36 suffix."""
    suffix = "".join(secrets.choice(ID_ALPHABET) for _ in range(ID_SUFFIX_LENGTH))
    return f"{ID_PREFIX}_{int(time.time() * 1000)}_{suffix}"

class ImageRecord(BaseModel):
    image_id: str = Field(default_factory=new_image_id)
    filename: str
    original_name: str
    size: int
    content_type: str
    tags: List[str] = []
    uploaded_at: datetime
    # Raw bytes, only attached when fetched by ID, never persisted with the metadata
    buffer: Optional[bytes] = Field(default=None, exclude=True, repr=False)

class ImageItem(BaseModel):
    image_id: str
    filename: str
    original_name: str
    size: int
    content_type: str
    tags: List[str]
    uploaded_at: datetime

class UploadResponse(BaseModel):
    image_id: str
    filename: str
    original_name: str
    tags: List[str]
    uploaded_at: datetime

class SearchImagesResponse(BaseModel):
    images: List[ImageItem]
    total: int

class TagsResponse(BaseModel):
    tags: List[str]
