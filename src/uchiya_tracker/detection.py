"""
Finding dots in images.

An image is binarized with Otsu's method and every external contour of the
binary image that looks like a filled ellipse becomes a dot. Only the
ellipse centers are passed on to the LLAH index.
"""

import cv2
import numpy as np
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .config import DetectionConfig

logger = logging.getLogger(__name__)


@dataclass
class FoundEllipse:
    """An ellipse fitted to a blob in the binary image."""

    center: Tuple[float, float]
    axes: Tuple[float, float]   # full lengths, as returned by cv2.fitEllipse
    angle: float                # degrees
    contour_area: float


def to_gray(image: np.ndarray) -> np.ndarray:
    """Convert a BGR or BGRA image to 8-bit grayscale. Gray input is passed through."""
    if image.ndim == 3:
        code = cv2.COLOR_BGRA2GRAY if image.shape[2] == 4 else cv2.COLOR_BGR2GRAY
        image = cv2.cvtColor(image, code)
    if image.dtype != np.uint8:
        image = cv2.normalize(image, None, 0, 255, cv2.NORM_MINMAX, cv2.CV_8U)
    return image


class OtsuBinarizer:
    """Global Otsu threshold. Foreground pixels are 255."""

    def __init__(self, invert: bool = True):
        """
        Args:
            invert: True when dots are darker than the background
        """
        self.invert = invert

    def __call__(self, image: np.ndarray) -> np.ndarray:
        gray = to_gray(image)
        mode = cv2.THRESH_BINARY_INV if self.invert else cv2.THRESH_BINARY
        _, binary = cv2.threshold(gray, 0, 255, mode + cv2.THRESH_OTSU)
        return binary


class EllipseBlobDetector:
    """Fits ellipses to the external contours of a binary image."""

    def __init__(
        self,
        min_area: float = 10.0,
        max_area: float = 10_000.0,
        min_fill: float = 0.7
    ):
        """
        Args:
            min_area: Smallest contour area in pixels
            max_area: Largest contour area in pixels
            min_fill: Minimum ratio of contour area to fitted ellipse area
        """
        self.min_area = min_area
        self.max_area = max_area
        self.min_fill = min_fill

    def __call__(self, binary: np.ndarray) -> List[FoundEllipse]:
        contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_NONE)

        found = []
        for contour in contours:
            # fitEllipse needs at least 5 points
            if len(contour) < 5:
                continue

            area = cv2.contourArea(contour)
            if area < self.min_area or area > self.max_area:
                continue

            (cx, cy), (major, minor), angle = cv2.fitEllipse(contour)
            ellipse_area = np.pi * major * minor / 4.0
            if ellipse_area <= 0 or area / ellipse_area < self.min_fill:
                continue

            found.append(FoundEllipse(
                center=(float(cx), float(cy)),
                axes=(float(major), float(minor)),
                angle=float(angle),
                contour_area=float(area)
            ))

        logger.debug("Found %d ellipses in %d contours", len(found), len(contours))
        return found


def create_detection(config: Optional[DetectionConfig] = None) -> Tuple[OtsuBinarizer, EllipseBlobDetector]:
    """Create the default binarizer and ellipse detector from a configuration."""
    config = config or DetectionConfig()
    binarizer = OtsuBinarizer(invert=config.invert)
    detector = EllipseBlobDetector(
        min_area=config.min_area,
        max_area=config.max_area,
        min_fill=config.min_fill
    )
    return binarizer, detector
