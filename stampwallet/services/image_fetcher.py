"""
Bounded download of business-supplied images (strip backgrounds, logos).

URLs come from card designs, so fetches are capped in time and size and
restricted to raster image content types. Every failure returns None and the
caller falls back to a solid background or the SVG icon.
"""

import io
import logging
from typing import Optional

import httpx
from PIL import Image

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/webp",
}


class SafeImageFetcher:
    def __init__(
        self,
        timeout: float = 5.0,
        max_bytes: int = 3 * 1024 * 1024,
        transport: httpx.BaseTransport | None = None,
    ):
        self.timeout = timeout
        self.max_bytes = max_bytes
        self._transport = transport

    def fetch_bytes(self, url: str | None) -> Optional[bytes]:
        """Download `url`, enforcing scheme, content type and size limits."""
        if not url or not url.startswith(("http://", "https://")):
            return None

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport, follow_redirects=True) as client:
                with client.stream("GET", url) as response:
                    if response.status_code != 200:
                        logger.warning(f"Image fetch failed ({response.status_code}): {url}")
                        return None

                    content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
                    if content_type not in ALLOWED_CONTENT_TYPES:
                        logger.warning(f"Rejected image with content type '{content_type}': {url}")
                        return None

                    declared = response.headers.get("content-length")
                    if declared and declared.isdigit() and int(declared) > self.max_bytes:
                        logger.warning(f"Rejected image larger than {self.max_bytes} bytes: {url}")
                        return None

                    buffer = bytearray()
                    for chunk in response.iter_bytes():
                        buffer.extend(chunk)
                        if len(buffer) > self.max_bytes:
                            logger.warning(f"Image exceeded {self.max_bytes} bytes while streaming: {url}")
                            return None
                    return bytes(buffer)

        except httpx.HTTPError as e:
            logger.warning(f"Image fetch error for {url}: {e}")
            return None

    def fetch_image(self, url: str | None) -> Optional[Image.Image]:
        """Download and decode an image, or None."""
        data = self.fetch_bytes(url)
        if data is None:
            return None
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
            return image
        except (OSError, ValueError) as e:
            logger.warning(f"Could not decode image from {url}: {e}")
            return None


def create_image_fetcher() -> SafeImageFetcher:
    """Factory function to create SafeImageFetcher from settings."""
    from stampwallet.core.config import settings

    return SafeImageFetcher(
        timeout=settings.image_fetch_timeout,
        max_bytes=settings.image_fetch_max_bytes,
    )
