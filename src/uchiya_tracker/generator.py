"""
Renders random dot markers into images.
"""

import cv2
import numpy as np
from typing import Optional

from .config import RenderConfig
from .points import PointLike, as_point_array

# Fractional bits used when drawing sub-pixel circles
_SHIFT = 4


class UchiyaMarkerGenerator:
    """
    Draws black dots on a white grayscale image.

    Dot coordinates are scaled so their bounding square is ``marker_width``
    pixels wide and centered in the image. The mapping has no reflection so
    the angular order of the dots is the same in the image.
    """

    def __init__(self, config: Optional[RenderConfig] = None):
        config = config or RenderConfig()
        self.configure(config.width, config.height, config.marker_width)
        self.radius = config.dot_radius
        self.image: Optional[np.ndarray] = None

    def configure(self, width: int, height: int, marker_width: float) -> None:
        """
        Args:
            width: Image width in pixels
            height: Image height in pixels
            marker_width: Width of the marker in pixels
        """
        self.width = width
        self.height = height
        self.marker_width = marker_width

    def transform(self, dots: PointLike) -> np.ndarray:
        """Pixel coordinates of the dots once rendered."""
        dots = as_point_array(dots)
        if len(dots) == 0:
            return dots

        lower = dots.min(axis=0)
        upper = dots.max(axis=0)
        span = float((upper - lower).max())
        scale = self.marker_width / span if span > 0 else 1.0

        center = (lower + upper) / 2.0
        return (dots - center) * scale + np.array([self.width / 2.0, self.height / 2.0])

    def render(self, dots: PointLike) -> np.ndarray:
        """
        Render the dots.

        Returns:
            uint8 image of shape (height, width)
        """
        image = np.full((self.height, self.width), 255, dtype=np.uint8)
        factor = 1 << _SHIFT
        radius = int(round(self.radius * factor))

        for x, y in self.transform(dots):
            center = (int(round(x * factor)), int(round(y * factor)))
            cv2.circle(image, center, radius, 0, thickness=-1, lineType=cv2.LINE_AA, shift=_SHIFT)

        self.image = image
        return image
