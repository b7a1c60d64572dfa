"""
Data transfer objects shared across the pipeline.

    DetectionTrigger — one user click, in the frame of a reference rectangle.
    Raster           — decoded pixels of the analyzed region.
    DetectedBarcode  — one decoded code with its corner polygon.

All three are frozen. Results are reordered and filtered downstream but
never mutated in place.

Non-goals:
    - No decoding, fetching or geometry logic.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

Point = Tuple[float, float]


@dataclass(frozen=True)
class DetectionTrigger:
    """A click position plus the rectangles needed to interpret it.

    Attributes:
        x: Click x, relative to the reference rectangle's left edge.
        y: Click y, relative to the reference rectangle's top edge.
        ref_width: Reference rectangle width (CSS pixels). This is the
            bounding box of the image element under the click, or the
            viewport when no such element exists.
        ref_height: Reference rectangle height (CSS pixels).
        viewport_width: Visible viewport width (CSS pixels).
        viewport_height: Visible viewport height (CSS pixels).
        source_image_url: URL of the image element under the click, if any.
        ref_left: Reference rectangle offset from the viewport's left edge.
        ref_top: Reference rectangle offset from the viewport's top edge.
    """

    x: float
    y: float
    ref_width: float
    ref_height: float
    viewport_width: float
    viewport_height: float
    source_image_url: Optional[str] = None
    ref_left: float = 0.0
    ref_top: float = 0.0

    def __post_init__(self) -> None:
        for name in ("ref_width", "ref_height", "viewport_width", "viewport_height"):
            if getattr(self, name) <= 0:
                raise ValueError(
                    f"DetectionTrigger.{name} must be positive, got {getattr(self, name)}."
                )

    @classmethod
    def from_viewport(
        cls,
        x: float,
        y: float,
        viewport_width: float,
        viewport_height: float,
    ) -> "DetectionTrigger":
        """Build a trigger for a click that found no image element."""
        return cls(
            x=x,
            y=y,
            ref_width=viewport_width,
            ref_height=viewport_height,
            viewport_width=viewport_width,
            viewport_height=viewport_height,
        )

    @property
    def viewport_x(self) -> float:
        """Click x in the viewport frame."""
        return self.ref_left + self.x

    @property
    def viewport_y(self) -> float:
        """Click y in the viewport frame."""
        return self.ref_top + self.y


@dataclass(frozen=True)
class Raster:
    """Decoded pixel buffer.

    Attributes:
        width: Width in pixels.
        height: Height in pixels.
        pixels: BGR image with shape (height, width, 3), as produced by
                cv2.imdecode.
    """

    width: int
    height: int
    pixels: np.ndarray

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"Raster dimensions must be positive, got {self.width}x{self.height}."
            )
        if self.pixels.shape[:2] != (self.height, self.width):
            raise ValueError(
                f"Raster pixels shape {self.pixels.shape} does not match "
                f"{self.width}x{self.height}."
            )

    @classmethod
    def from_array(cls, pixels: np.ndarray) -> "Raster":
        """Wrap an (H, W, C) array, taking the dimensions from its shape."""
        h, w = pixels.shape[:2]
        return cls(width=int(w), height=int(h), pixels=pixels)


@dataclass(frozen=True)
class DetectedBarcode:
    """A single decoded code.

    Attributes:
        raw_value: Decoded payload text.
        corner_points: Polygon vertices in raster pixel coordinates, in
                       decoder order. The polygon is implicitly closed.
    """

    raw_value: str
    corner_points: Tuple[Point, ...]

    def to_dict(self) -> dict:
        """Return a plain dict suitable for JSON serialization."""
        return {
            "raw_value": self.raw_value,
            "corner_points": [[x, y] for x, y in self.corner_points],
        }
