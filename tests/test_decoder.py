"""
Tests for the decoder module.
"""

import numpy as np
import pytest

from clickscan.decoder import OpenCVDecoder, to_barcodes
from clickscan.detection import Raster


def test_to_barcodes_converts_and_skips_undecoded():
    """Test conversion of detectAndDecodeMulti output."""
    points = np.array([
        [[0, 0], [10, 0], [10, 10], [0, 10]],
        [[20, 0], [30, 0], [30, 10], [20, 10]],
        [[40, 0], [50, 0], [50, 10], [40, 10]],
    ], dtype=np.float32)

    barcodes = to_barcodes(("https://a.example", "", "text"), points)

    assert [b.raw_value for b in barcodes] == ["https://a.example", "text"]
    assert barcodes[1].corner_points == ((40.0, 0.0), (50.0, 0.0), (50.0, 10.0), (40.0, 10.0))
    assert isinstance(barcodes[0].corner_points[0][0], float)


def test_to_barcodes_flat_points():
    """Test that a (1, N*4, 2)-style array is reshaped per code."""
    points = np.arange(16, dtype=np.float32).reshape(1, 8, 2)
    barcodes = to_barcodes(("a", "b"), points)

    assert len(barcodes) == 2
    assert barcodes[1].corner_points[0] == (8.0, 9.0)


def test_to_barcodes_nothing():
    """Test empty decoder output."""
    assert to_barcodes(None, None) == []
    assert to_barcodes((), None) == []


def test_validate_pixels():
    """Test the decoder input contract."""
    OpenCVDecoder._validate_pixels(np.zeros((4, 4, 3), dtype=np.uint8))

    with pytest.raises(TypeError):
        OpenCVDecoder._validate_pixels([[0, 0, 0]])
    with pytest.raises(ValueError, match="empty"):
        OpenCVDecoder._validate_pixels(np.zeros((0, 0, 3), dtype=np.uint8))
    with pytest.raises(ValueError, match="shape"):
        OpenCVDecoder._validate_pixels(np.zeros((4, 4), dtype=np.uint8))


@pytest.mark.asyncio
async def test_decode_blank_raster():
    """Test that a raster without codes decodes to nothing."""
    raster = Raster.from_array(np.full((64, 64, 3), 255, dtype=np.uint8))
    assert await OpenCVDecoder().decode(raster) == []


class FakeQRDetector:
    def __init__(self, info, points):
        self.result = (True, info, points, None)

    def detectAndDecodeMulti(self, pixels):
        return self.result


class FakeLinearDetector:
    def __init__(self, info, points):
        self.result = (True, info, ["EAN_13"] * len(info), points)

    def detectAndDecodeWithType(self, pixels):
        return self.result


def quads(count, offset=0):
    return np.array([
        [[x, 0], [x + 10, 0], [x + 10, 10], [x, 10]]
        for x in range(offset, offset + 20 * count, 20)
    ], dtype=np.float32)


def test_qr_codes_come_before_linear_barcodes():
    """Test that both detectors feed one list in a fixed order."""
    decoder = OpenCVDecoder()
    decoder._qr_detector = FakeQRDetector(("qr-1", "qr-2"), quads(2))
    decoder._linear_detector = FakeLinearDetector(("4006381333931", ""), quads(2, offset=100))

    barcodes = decoder._decode_sync(np.zeros((8, 8, 3), dtype=np.uint8))

    assert [b.raw_value for b in barcodes] == ["qr-1", "qr-2", "4006381333931"]
    assert barcodes[2].corner_points[0] == (100.0, 0.0)


def test_linear_barcodes_can_be_turned_off():
    """Test that only the QR detector runs when 1D decoding is disabled."""
    decoder = OpenCVDecoder(linear_barcodes=False)
    decoder._qr_detector = FakeQRDetector(("qr",), quads(1))

    barcodes = decoder._decode_sync(np.zeros((8, 8, 3), dtype=np.uint8))

    assert [b.raw_value for b in barcodes] == ["qr"]


def test_failed_detection_contributes_nothing():
    """Test that a detector reporting no success adds no codes."""
    decoder = OpenCVDecoder()
    decoder._qr_detector = FakeQRDetector(("ignored",), quads(1))
    decoder._qr_detector.result = (False, (), None, None)
    decoder._linear_detector = FakeLinearDetector(("12345670",), quads(1))

    barcodes = decoder._decode_sync(np.zeros((8, 8, 3), dtype=np.uint8))

    assert [b.raw_value for b in barcodes] == ["12345670"]
