"""
QR and 1D barcode decoding backed by OpenCV.

Public contract:
    await OpenCVDecoder().decode(raster) -> list[DetectedBarcode]

Constraints:
    - Input pixels must be a BGR numpy array (as returned by cv2.imdecode).
    - Output order is QR codes first, then 1D barcodes, each in OpenCV's
      order. This is the "decode order" preserved downstream.
    - Codes that are located but fail to decode (empty payload) are dropped.

Non-goals:
    - No attempt to improve decode accuracy (no enhancement, no retries
      at other scales).
    - No geometry or policy logic.
"""

import asyncio
import logging
from typing import List, Optional, Protocol, Sequence

import cv2
import numpy as np

from clickscan.detection import DetectedBarcode, Raster

logger = logging.getLogger(__name__)


class BarcodeDecoder(Protocol):
    async def decode(self, raster: Raster) -> List[DetectedBarcode]: ...


def to_barcodes(
    decoded_info: Optional[Sequence[str]],
    points: Optional[np.ndarray],
) -> List[DetectedBarcode]:
    """Convert OpenCV detector output into DetectedBarcode objects.

    Args:
        decoded_info: One payload string per located code ("" when the code
                      was located but not decoded).
        points: Corner array of shape (N, 4, 2) in raster pixels, or None.

    Returns:
        Decoded codes in OpenCV order. Empty list if nothing was decoded.
    """
    if decoded_info is None or points is None:
        return []

    corners = np.asarray(points, dtype=np.float64).reshape(len(decoded_info), -1, 2)

    barcodes: List[DetectedBarcode] = []
    for text, quad in zip(decoded_info, corners):
        if not text:
            logger.debug("Skipping located but undecoded code.")
            continue
        barcodes.append(DetectedBarcode(
            raw_value=text,
            corner_points=tuple((float(x), float(y)) for x, y in quad),
        ))

    return barcodes


class OpenCVDecoder:
    """Decoder using cv2.QRCodeDetector and cv2.barcode.BarcodeDetector.

    The detectors are created once; decode() runs the blocking OpenCV calls
    in a worker thread so the event loop keeps serving other work while the
    current cycle waits for it.

    Args:
        linear_barcodes: Also decode 1D barcodes (EAN, UPC, Code 128 ...).
    """

    def __init__(self, linear_barcodes: bool = True) -> None:
        self._qr_detector = cv2.QRCodeDetector()
        self._linear_detector = cv2.barcode.BarcodeDetector() if linear_barcodes else None
        logger.info(
            "OpenCVDecoder initialized (OpenCV %s, 1D barcodes %s)",
            cv2.__version__, "on" if linear_barcodes else "off",
        )

    async def decode(self, raster: Raster) -> List[DetectedBarcode]:
        """Decode all QR codes and 1D barcodes in a raster.

        Raises:
            TypeError: If raster.pixels is not a numpy ndarray.
            ValueError: If raster.pixels has the wrong shape.
        """
        self._validate_pixels(raster.pixels)
        return await asyncio.to_thread(self._decode_sync, raster.pixels)

    def _decode_sync(self, pixels: np.ndarray) -> List[DetectedBarcode]:
        barcodes: List[DetectedBarcode] = []

        ok, decoded_info, points, _ = self._qr_detector.detectAndDecodeMulti(pixels)
        if ok:
            barcodes.extend(to_barcodes(decoded_info, points))

        if self._linear_detector is not None:
            ok, decoded_info, _, points = self._linear_detector.detectAndDecodeWithType(pixels)
            if ok:
                barcodes.extend(to_barcodes(decoded_info, points))

        logger.debug("Decoded %d code(s).", len(barcodes))
        return barcodes

    @staticmethod
    def _validate_pixels(pixels: np.ndarray) -> None:
        """Validate that the pixel buffer meets the decoder contract.

        Raises:
            TypeError: If pixels is not a numpy ndarray.
            ValueError: If pixels is empty or has wrong dimensions.
        """
        if not isinstance(pixels, np.ndarray):
            raise TypeError(
                f"Expected raster pixels to be a numpy ndarray, "
                f"got {type(pixels).__name__}."
            )

        if pixels.size == 0:
            raise ValueError("Raster pixels are empty (zero size).")

        if pixels.ndim != 3 or pixels.shape[2] != 3:
            raise ValueError(
                f"Expected BGR pixels of shape (H, W, 3), got {pixels.shape}."
            )
