"""
Image download, transcoding and quality assessment.

Pages and covers are stored as WebP. WebP cannot encode images larger
than 16383 px on either side, so tall long-strip pages fall back to JPEG
(65500 px). Animated images cannot fall back and fail permanently when
they are too large.
"""

import asyncio
import io
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import httpx
from django.conf import settings
from PIL import Image, ImageFile, ImageStat, UnidentifiedImageError

from catalog.exceptions import ImageTooLargeError, SourceFetchError
from catalog.models import ImageQuality
from catalog.services import storage
from catalog.sources.http import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)

WEBP_MAX_DIMENSION = 16383
JPEG_MAX_DIMENSION = 65500
WEBP_QUALITY = 85
JPEG_QUALITY = 88

MIN_DIMENSION = 50
MAX_ASPECT_RATIO = 50
UNIFORM_STDDEV = 2.0

RETRYABLE_STATUS = {408, 425, 429, 500, 502, 503, 504}

_decode_lock = threading.Lock()


@dataclass
class TranscodedImage:
    data: bytes
    extension: str
    format: str
    width: int
    height: int
    animated: bool = False
    quality: str = ImageQuality.HEALTHY
    issues: List[str] = field(default_factory=list)

    @property
    def metadata(self) -> Dict:
        return {
            "width": self.width,
            "height": self.height,
            "format": self.format,
            "animated": self.animated,
            "issues": self.issues,
        }


@dataclass
class UploadResult:
    url: str
    format: str
    quality: str
    metadata: Dict


async def download_image(
    url: str,
    client: Optional[httpx.AsyncClient] = None,
    retries: Optional[int] = None,
    headers: Optional[Dict[str, str]] = None,
) -> bytes:
    """
    Download an image, retrying transient failures with exponential backoff.

    Raises:
        SourceFetchError: When every attempt failed
    """
    retries = retries if retries is not None else getattr(settings, "CATALOG_IMAGE_RETRIES", 5)
    timeout = getattr(settings, "CATALOG_REQUEST_TIMEOUT", 30)
    request_headers = {"User-Agent": DEFAULT_USER_AGENT}
    request_headers.update(headers or {})

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=httpx.Timeout(timeout), follow_redirects=True)

    last_error = None
    try:
        for attempt in range(retries + 1):
            try:
                response = await client.get(url, headers=request_headers)
                if response.status_code < 400:
                    return response.content
                last_error = f"HTTP {response.status_code}"
                if response.status_code not in RETRYABLE_STATUS:
                    break
            except httpx.HTTPError as e:
                last_error = str(e) or e.__class__.__name__

            if attempt < retries:
                await asyncio.sleep(min(2 ** attempt, 30) * 0.5)
    finally:
        if owns_client:
            await client.aclose()

    raise SourceFetchError(f"Failed to fetch image {url}: {last_error}")


def assess_quality(image: Image.Image, truncated: bool) -> tuple:
    """
    Flag suspicious images.

    Returns:
        (quality, issues): corrupted when the data was truncated, degraded
        for tiny, extremely stretched or near-uniform images
    """
    issues = []
    width, height = image.size

    if truncated:
        issues.append("truncated image data")
    if width < MIN_DIMENSION or height < MIN_DIMENSION:
        issues.append(f"tiny dimensions {width}x{height}")
    if min(width, height) > 0 and max(width, height) / min(width, height) > MAX_ASPECT_RATIO:
        issues.append(f"extreme aspect ratio {width}x{height}")

    sample = image.convert("L")
    sample.thumbnail((256, 256))
    if max(ImageStat.Stat(sample).stddev) < UNIFORM_STDDEV:
        issues.append("near-uniform content")

    if truncated:
        return ImageQuality.CORRUPTED, issues
    if issues:
        return ImageQuality.DEGRADED, issues
    return ImageQuality.HEALTHY, issues


def _open(data: bytes):
    """
    Open and fully decode, tolerating truncated files.

    LOAD_TRUNCATED_IMAGES is process-wide and read by every decode, so both
    the strict and the tolerant pass hold _decode_lock.
    """
    with _decode_lock:
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
            return image, False
        except UnidentifiedImageError as e:
            raise SourceFetchError("Downloaded content is not an image") from e
        except OSError:
            pass

        ImageFile.LOAD_TRUNCATED_IMAGES = True
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except OSError as e:
            raise SourceFetchError(f"Undecodable image data: {e}") from e
        finally:
            ImageFile.LOAD_TRUNCATED_IMAGES = False
        return image, True


def transcode(data: bytes) -> TranscodedImage:
    """
    Convert raw image bytes to WebP, or JPEG when too large for WebP.

    Raises:
        ImageTooLargeError: If no supported format can hold the image
        SourceFetchError: If the bytes are not a decodable image
    """
    image, truncated = _open(data)
    width, height = image.size
    animated = bool(getattr(image, "is_animated", False))
    quality, issues = assess_quality(image, truncated)

    output = io.BytesIO()
    if width <= WEBP_MAX_DIMENSION and height <= WEBP_MAX_DIMENSION:
        if animated:
            image.save(output, format="WEBP", save_all=True, quality=WEBP_QUALITY)
        else:
            frame = image if image.mode in ("RGB", "RGBA") else image.convert("RGBA")
            frame.save(output, format="WEBP", quality=WEBP_QUALITY)
        return TranscodedImage(output.getvalue(), "webp", "webp", width, height, animated, quality, issues)

    if animated or width > JPEG_MAX_DIMENSION or height > JPEG_MAX_DIMENSION:
        raise ImageTooLargeError(width, height, animated=animated)

    image.convert("RGB").save(output, format="JPEG", quality=JPEG_QUALITY, optimize=True)
    return TranscodedImage(output.getvalue(), "jpg", "jpeg", width, height, animated, quality, issues)


async def upload_image(
    url: str,
    base_path: str,
    client: Optional[httpx.AsyncClient] = None,
    headers: Optional[Dict[str, str]] = None,
) -> UploadResult:
    """
    Download, transcode and store one image.

    Args:
        url: Catalog URL of the image
        base_path: Storage path without extension

    Returns:
        UploadResult with the public URL, chosen format and quality
    """
    data = await download_image(url, client=client, headers=headers)
    image = await asyncio.to_thread(transcode, data)
    public_url = await asyncio.to_thread(storage.save_object, f"{base_path}.{image.extension}", image.data)

    if image.quality != ImageQuality.HEALTHY:
        logger.warning(f"{base_path}: {image.quality} image ({', '.join(image.issues)})")

    return UploadResult(url=public_url, format=image.format, quality=image.quality, metadata=image.metadata)
