"""Rendition pipeline: turn a stored original into a (format, size) download.

Pillow only produces PNG here. BMP and ICO requests are served as PNG bytes
labelled as PNG, ICO additionally clamped to 256 px. SVG requests get the
PNG embedded as a base64 data URI inside a minimal SVG document. Each of
these substitutions is an explicit entry in FORMAT_POLICIES.
"""
from base64 import b64encode
from dataclasses import dataclass
from enum import Enum
from io import BytesIO
from typing import Optional
import logging

from PIL import Image, UnidentifiedImageError

from image_gallery.storage.base import BlobStore, MetadataStore
from image_gallery.image_service.service import get_image
from image_gallery.exceptions import (
    InvalidFormatException,
    InvalidSizeException,
    ImageProcessingException,
)

log = logging.getLogger(__name__)

ALLOWED_SIZES = (1024, 512, 256, 128, 100, 96, 70, 64, 50, 46, 40, 38, 32, 24, 20, 16)
ICO_MAX_SIZE = 256
DEFAULT_SIZE = 1024

PNG_CONTENT_TYPE = "image/png"
SVG_CONTENT_TYPE = "image/svg+xml"

class OutputFormat(str, Enum):
    PNG = "png"
    BMP = "bmp"
    ICO = "ico"
    SVG = "svg"

@dataclass(frozen=True)
class FormatPolicy:
    """How a requested format is actually produced."""
    content_type: str
    extension: str
    max_size: Optional[int] = None
    svg_wrapped: bool = False
    # True when the bytes are not what the format label promises
    emulated: bool = False

FORMAT_POLICIES = {
    OutputFormat.PNG: FormatPolicy(PNG_CONTENT_TYPE, "png"),
    # No BMP encoder in the pipeline, PNG bytes are served
    OutputFormat.BMP: FormatPolicy(PNG_CONTENT_TYPE, "png", emulated=True),
    # No ICO container, a single PNG clamped to the ICO size limit
    OutputFormat.ICO: FormatPolicy(PNG_CONTENT_TYPE, "png", max_size=ICO_MAX_SIZE, emulated=True),
    # Raster payload in an SVG wrapper, not a vector trace
    OutputFormat.SVG: FormatPolicy(SVG_CONTENT_TYPE, "svg", svg_wrapped=True),
}

@dataclass(frozen=True)
class Rendition:
    content: bytes
    content_type: str
    filename: str
    size: int
    emulated: bool = False

def parse_format(value) -> OutputFormat:
    if isinstance(value, OutputFormat):
        return value
    if value is None:
        raise InvalidFormatException(value)
    try:
        return OutputFormat(str(value).strip().lower())
    except ValueError:
        raise InvalidFormatException(value)

def validate_size(size) -> int:
    # bool is an int subclass, True must not pass as 1
    if isinstance(size, bool) or not isinstance(size, int) or size not in ALLOWED_SIZES:
        raise InvalidSizeException(size)
    return size

def parse_size(value) -> int:
    """Accepts an int or a decimal string such as a raw query value."""
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise InvalidSizeException(value)
    return validate_size(value)

def effective_size(fmt: OutputFormat, size: int) -> int:
    policy = FORMAT_POLICIES[fmt]
    if policy.max_size is not None:
        return min(size, policy.max_size)
    return size

def rendition_filename(original_name: str, size: int, extension: str) -> str:
    """`{name up to the first dot}_{size}px.{extension}`

    `size` is the requested size, also when the pixels were clamped.
    """
    stem = (original_name or "").split(".")[0] or "image"
    return f"{stem}_{size}px.{extension}"

def resize_to_fit(img: Image.Image, size: int) -> Image.Image:
    """Scales so the longer side is `size`, keeping aspect ratio. Small images are enlarged."""
    if img.mode not in ("RGB", "RGBA", "L", "LA"):
        has_alpha = "A" in img.getbands() or "transparency" in img.info
        img = img.convert("RGBA" if has_alpha else "RGB")
    width, height = img.size
    scale = size / max(width, height)
    target = (max(1, round(width * scale)), max(1, round(height * scale)))
    if target == img.size:
        return img.copy()
    return img.resize(target, Image.Resampling.LANCZOS)

def encode_png(img: Image.Image) -> bytes:
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()

def wrap_png_in_svg(png_bytes: bytes, size: int) -> bytes:
    payload = b64encode(png_bytes).decode("ascii")
    return (
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{size}" height="{size}" '
        f'viewBox="0 0 {size} {size}">'
        f'<image href="data:image/png;base64,{payload}" width="{size}" height="{size}"/>'
        f'</svg>'
    ).encode("utf-8")

def render_image_bytes(data: bytes, fmt, size, original_name: str = "image") -> Rendition:
    """Renders raw image bytes. Format and size are checked before decoding."""
    fmt = parse_format(fmt)
    size = parse_size(size)
    policy = FORMAT_POLICIES[fmt]
    target = effective_size(fmt, size)

    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            png_bytes = encode_png(resize_to_fit(img, target))
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        log.error(f"Rendition {fmt.value}@{target} failed: {e}")
        raise ImageProcessingException()

    content = wrap_png_in_svg(png_bytes, target) if policy.svg_wrapped else png_bytes
    if policy.emulated:
        log.info("Format %s served as %s", fmt.value, policy.content_type)
    return Rendition(
        content=content,
        content_type=policy.content_type,
        filename=rendition_filename(original_name, size, policy.extension),
        size=target,
        emulated=policy.emulated,
    )

def render_image(
    db: MetadataStore,
    blobs: BlobStore,
    image_id: str,
    fmt,
    size
) -> Rendition:
    """Renders a stored image. Raises before any storage access on bad format or size."""
    fmt = parse_format(fmt)
    size = parse_size(size)
    image = get_image(db, blobs, image_id)
    rendition = render_image_bytes(image.buffer, fmt, size, original_name=image.original_name)
    log.info("Rendered %s as %s", image_id, rendition.filename)
    return rendition
