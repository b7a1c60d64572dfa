"""
Tests for the detection data types.
"""

import json

import numpy as np
import pytest

from clickscan.detection import DetectedBarcode, Raster


def test_barcode_to_dict_is_json_ready():
    """Test that a decoded code serializes to plain lists and floats."""
    barcode = DetectedBarcode(
        raw_value="https://a.example",
        corner_points=((0.0, 1.5), (10.0, 1.5), (10.0, 12.0), (0.0, 12.0)),
    )

    data = barcode.to_dict()

    assert data == {
        "raw_value": "https://a.example",
        "corner_points": [[0.0, 1.5], [10.0, 1.5], [10.0, 12.0], [0.0, 12.0]],
    }
    assert json.loads(json.dumps(data)) == data


def test_raster_from_array():
    """Test that dimensions come from the array shape."""
    raster = Raster.from_array(np.zeros((30, 40, 3), dtype=np.uint8))
    assert (raster.width, raster.height) == (40, 30)


def test_raster_rejects_mismatched_size():
    """Test the width/height check against the pixel buffer."""
    with pytest.raises(ValueError):
        Raster(width=10, height=10, pixels=np.zeros((30, 40, 3), dtype=np.uint8))
