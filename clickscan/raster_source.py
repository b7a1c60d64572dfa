"""
Raster acquisition for the click-to-scan pipeline.

Responsibility:
    Produce a Raster from either a viewport capture or an image URL.
    Supported URL forms:
        - http:// and https://  → fetched with httpx
        - data:                 → decoded inline (base64 or percent-encoded)
        - file:// or bare path  → read from disk
    Vector images (image/svg+xml) are handed to an injected rasterizer
    before pixel decoding.

Non-goals:
    - No retries and no timeouts beyond the HTTP client's own.
    - No image enhancement or resizing of bitmap sources.
    - No built-in SVG renderer.

Failure behavior:
    Every failure to obtain or decode pixels raises UnreachableImageError
    with the offending source in the message.
"""

import asyncio
import base64
import binascii
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, Tuple
from urllib.parse import unquote_to_bytes, urlsplit
from urllib.request import url2pathname

import cv2
import httpx
import numpy as np

from clickscan.detection import Raster
from clickscan.errors import UnreachableImageError

logger = logging.getLogger(__name__)

ViewportCapture = Callable[[], Awaitable[bytes]]

# (svg bytes, target width, target height) -> encoded bitmap bytes (e.g. PNG)
Rasterizer = Callable[[bytes, Optional[int], Optional[int]], bytes]

_SVG_MEDIA_TYPE = "image/svg+xml"
_SVG_EXTENSIONS = {".svg", ".svgz"}


def decode_image_bytes(data: bytes, source: str = "<bytes>") -> Raster:
    """Decode encoded image bytes (PNG, JPEG, ...) into a BGR Raster.

    Raises:
        UnreachableImageError: If the bytes are empty or not a decodable image.
    """
    if not data:
        raise UnreachableImageError(f"Image source is empty: {source}")

    buffer = np.frombuffer(data, dtype=np.uint8)
    pixels = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    if pixels is None:
        raise UnreachableImageError(
            f"Image could not be decoded: {source} ({len(data)} bytes)."
        )
    return Raster.from_array(pixels)


def parse_data_url(url: str) -> Tuple[str, bytes]:
    """Split a data: URL into (media type, payload bytes).

    Raises:
        UnreachableImageError: If the URL is malformed.
    """
    header, sep, payload = url[len("data:"):].partition(",")
    if not sep:
        raise UnreachableImageError("Malformed data URL: missing ','.")

    params = [p.strip() for p in header.split(";")]
    media_type = params[0].lower() or "text/plain"
    if "base64" in (p.lower() for p in params[1:]):
        try:
            data = base64.b64decode(unquote_to_bytes(payload), validate=False)
        except (binascii.Error, ValueError) as e:
            raise UnreachableImageError(f"Malformed base64 data URL: {e}") from e
    else:
        data = unquote_to_bytes(payload)
    return media_type, data


def file_viewport_capture(path: str) -> ViewportCapture:
    """Build a viewport capture that reads a screenshot from disk."""
    screenshot = Path(path)

    async def capture() -> bytes:
        return await asyncio.to_thread(screenshot.read_bytes)

    return capture


class RasterSource:
    """Viewport capture and image fetching behind one object.

    Usage:
        source = RasterSource(viewport_capture=file_viewport_capture("shot.png"))
        raster = await source.fetch_and_decode("https://example.com/qr.png")
        await source.aclose()

    The HTTP client is created on first use unless one is injected; an
    injected client is never closed by this object.
    """

    def __init__(
        self,
        viewport_capture: Optional[ViewportCapture] = None,
        client: Optional[httpx.AsyncClient] = None,
        rasterizer: Optional[Rasterizer] = None,
        timeout: float = 30.0,
    ) -> None:
        self._viewport_capture = viewport_capture
        self._client = client
        self._owns_client = client is None
        self._rasterizer = rasterizer
        self._timeout = timeout

    async def capture_visible_viewport(self) -> bytes:
        """Capture the visible viewport as encoded image bytes.

        Raises:
            UnreachableImageError: If no capture is configured or it fails.
        """
        if self._viewport_capture is None:
            raise UnreachableImageError("No viewport capture is configured.")
        try:
            return await self._viewport_capture()
        except OSError as e:
            raise UnreachableImageError(f"Viewport capture failed: {e}") from e

    async def capture_viewport_raster(self) -> Raster:
        data = await self.capture_visible_viewport()
        return decode_image_bytes(data, source="viewport capture")

    async def fetch_and_decode(
        self,
        url: str,
        target_width: Optional[int] = None,
        target_height: Optional[int] = None,
    ) -> Raster:
        """Fetch an image and decode it into a Raster.

        Args:
            url: http(s), data or file URL, or a local path.
            target_width: Width to rasterize vector images at.
            target_height: Height to rasterize vector images at.

        Raises:
            UnreachableImageError: If the source cannot be read or decoded.
        """
        media_type, data = await self._read(url)

        if self._is_vector(url, media_type):
            data = await self._rasterize(url, data, target_width, target_height)

        raster = decode_image_bytes(data, source=_describe(url))
        logger.debug(
            "Decoded %s into %dx%d raster.", _describe(url), raster.width, raster.height
        )
        return raster

    async def aclose(self) -> None:
        """Close the HTTP client if this object created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _read(self, url: str) -> Tuple[str, bytes]:
        """Return (media type, bytes) for any supported URL form."""
        scheme = urlsplit(url).scheme.lower()

        if scheme in ("http", "https"):
            return await self._read_http(url)
        if scheme == "data":
            return parse_data_url(url)
        if scheme == "file":
            return "", await self._read_file(Path(url2pathname(urlsplit(url).path)))
        if scheme == "" or len(scheme) == 1:
            # Bare path; a one-letter "scheme" is a Windows drive letter.
            return "", await self._read_file(Path(url))

        raise UnreachableImageError(f"Unsupported image URL scheme '{scheme}': {_describe(url)}")

    async def _read_http(self, url: str) -> Tuple[str, bytes]:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)

        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise UnreachableImageError(f"Failed to request the image: {url} ({e})") from e

        if not response.is_success:
            raise UnreachableImageError(
                f"Failed to request the image: {url} (HTTP {response.status_code})"
            )

        media_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        return media_type, response.content

    async def _read_file(self, path: Path) -> bytes:
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise UnreachableImageError(f"Image file not readable: {path} ({e})") from e

    @staticmethod
    def _is_vector(url: str, media_type: str) -> bool:
        if media_type == _SVG_MEDIA_TYPE:
            return True
        if media_type:
            return False
        return Path(urlsplit(url).path).suffix.lower() in _SVG_EXTENSIONS

    async def _rasterize(
        self,
        url: str,
        data: bytes,
        target_width: Optional[int],
        target_height: Optional[int],
    ) -> bytes:
        if self._rasterizer is None:
            raise UnreachableImageError(
                f"Vector image needs a rasterizer, none configured: {_describe(url)}"
            )
        logger.debug("Rasterizing vector image at %sx%s.", target_width, target_height)
        return await asyncio.to_thread(self._rasterizer, data, target_width, target_height)


def _describe(url: str) -> str:
    """Shorten data URLs for log and error messages."""
    if url.startswith("data:"):
        return url[:40] + "..." if len(url) > 40 else url
    return url
