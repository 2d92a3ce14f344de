"""
Uchiya marker (random dot marker) tracking.

``TrackUchiyaMarkers`` processes single frames: dots are detected and the
LLAH index is asked which markers they belong to. ``UchiyaMarkerTracker``
is the high-level API which ties the configuration to the index.
"""

import cv2
import logging
import numpy as np
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from .config import AppConfig, MarkerConfig
from .config_manager import ConfigManager
from .detection import FoundEllipse, create_detection
from .operations import LlahOperations, LlahResult
from .points import PointIndex, PointLike, load_points

logger = logging.getLogger(__name__)

Binarizer = Callable[[np.ndarray], np.ndarray]
EllipseDetector = Callable[[np.ndarray], List[FoundEllipse]]


class TrackUchiyaMarkers:
    """
    Detector and tracker for Uchiya markers (a.k.a. random dot markers).

    Only detection is done so far. Matching the dots of a detected marker
    to tracked markers and estimating its pose are left to the caller.
    """

    def __init__(
        self,
        llah_ops: LlahOperations,
        binarizer: Optional[Binarizer] = None,
        ellipse_detector: Optional[EllipseDetector] = None
    ):
        """
        Args:
            llah_ops: Index with the registered markers
            binarizer: Converts an image into a binary image. Otsu if None.
            ellipse_detector: Finds ellipses in the binary image. Contour fitting if None.
        """
        default_binarizer, default_detector = create_detection()
        self.llah_ops = llah_ops
        self.binarizer = binarizer or default_binarizer
        self.ellipse_detector = ellipse_detector or default_detector

        # Own workspace so the index can be shared with other callers
        self.workspace = llah_ops.create_workspace()

        self.binary: Optional[np.ndarray] = None
        self.ellipses: List[FoundEllipse] = []
        self.centers: List[Tuple[float, float]] = []
        self.found_docs: Dict[int, LlahResult] = {}
        self.matches: List[PointIndex] = []

    def reset(self) -> None:
        """Forget everything from previous frames."""
        self.binary = None
        self.ellipses = []
        self.centers = []
        self.found_docs.clear()
        self.matches.clear()
        self.workspace.reset()

    def process(self, image: np.ndarray) -> Dict[int, LlahResult]:
        """
        Detect markers in a frame.

        Args:
            image: Gray or BGR image

        Returns:
            document_id -> LlahResult for every marker with matching dots.
            The results are recycled by the next call.
        """
        self.binary = self.binarizer(image)
        self.ellipses = self.ellipse_detector(self.binary)

        # Convert ellipses to points that LLAH understands
        self.centers = [e.center for e in self.ellipses]

        if len(self.centers) < self.llah_ops.number_of_neighbors + 1:
            logger.debug("Only %d dots found, skipping lookup", len(self.centers))
            self.found_docs.clear()
            return self.found_docs

        self.llah_ops.lookup_documents(self.centers, self.found_docs, self.workspace)
        return self.found_docs

    def lookup_matches(self, document_id: int) -> List[PointIndex]:
        """Marker dots matched in the last frame. The list is recycled by the next call."""
        result = self.found_docs.get(document_id)
        if result is None:
            self.matches.clear()
            return self.matches
        return result.lookup_matches(self.matches)


class UchiyaMarkerTracker:
    """
    Main application class for the Uchiya marker tracker.

    Integrates configuration management and the LLAH index. The index is
    rebuilt in memory from the registered marker files whenever it's needed.
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize the tracker.

        Args:
            config_path: Path to configuration file. If None, uses default.
        """
        self.config_manager = ConfigManager(config_path)
        self.config: Optional[AppConfig] = None
        self.llah_ops: Optional[LlahOperations] = None
        # Marker name for each document_id
        self.document_names: List[str] = []

        try:
            self.config = self.config_manager.load()
        except FileNotFoundError:
            # No config exists yet
            pass

    def initialize(self, data_directory: Optional[Path] = None) -> None:
        """
        Initialize a new tracker with default configuration.

        Args:
            data_directory: Base directory for data files
        """
        self.config = self.config_manager.create_default(data_directory)
        self.config_manager.save()
        self.llah_ops = None

    def register_marker(self, name: str, points_path: Path) -> MarkerConfig:
        """
        Register a marker from a file with its dot locations.

        Args:
            name: Name of the marker
            points_path: ``.csv`` or ``.json`` points file

        Returns:
            The created MarkerConfig

        Raises:
            ValueError: If the marker has too few dots
        """
        if self.config is None:
            raise ValueError("Tracker not initialized")

        points = load_points(points_path)
        required = self.config.llah.num_neighbors + 1
        if len(points) < required:
            raise ValueError(f"There needs to be at least {required} points")

        marker = self.config_manager.add_marker(name, points_path, num_points=len(points))
        self.config_manager.save()

        # Discretization has to be learned again with the new marker
        self.llah_ops = None
        return marker

    def build_index(self) -> LlahOperations:
        """
        Learn the hashing from all registered markers and register each of them.

        Returns:
            The built index

        Raises:
            ValueError: If no markers are registered
        """
        if self.config is None:
            raise ValueError("Tracker not initialized")
        if not self.config.markers:
            raise ValueError("No markers registered")

        llah = self.config.llah
        names = self.config.marker_names()
        point_sets = [load_points(self.config.markers[n].points_path) for n in names]

        ops = LlahOperations.from_config(llah)
        ops.learn_hashing(
            point_sets,
            llah.num_discrete,
            llah.histogram_length,
            llah.max_invariant_value
        )
        for points in point_sets:
            ops.create_document(points)

        logger.info("Built index with %d markers", len(names))
        self.llah_ops = ops
        self.document_names = names
        return ops

    def _get_index(self) -> LlahOperations:
        if self.llah_ops is None:
            return self.build_index()
        return self.llah_ops

    def _summarize(
        self,
        found: Dict[int, LlahResult],
        min_matches: Optional[int]
    ) -> List[Tuple[str, int, int]]:
        if min_matches is None:
            min_matches = self.config.min_matches

        summary = []
        for document_id, result in found.items():
            matches = result.count_matches()
            if matches >= min_matches:
                summary.append((self.document_names[document_id], matches, result.count_hits()))

        summary.sort(key=lambda item: (-item[1], -item[2], item[0]))
        return summary

    def recognize_points(
        self,
        points: PointLike,
        min_matches: Optional[int] = None
    ) -> List[Tuple[str, int, int]]:
        """
        Find the markers the observed dots belong to.

        Args:
            points: Observed dot locations
            min_matches: Minimum number of matched dots. Uses config default if None.

        Returns:
            List of (marker_name, matches, hits), best first
        """
        ops = self._get_index()
        found: Dict[int, LlahResult] = {}
        ops.lookup_documents(points, found)
        return self._summarize(found, min_matches)

    def create_frame_tracker(self) -> TrackUchiyaMarkers:
        """Create a frame tracker using the configured dot detection."""
        if self.config is None:
            raise ValueError("Tracker not initialized")

        binarizer, detector = create_detection(self.config.detection)
        return TrackUchiyaMarkers(self._get_index(), binarizer, detector)

    def recognize_image(
        self,
        image_path: Path,
        min_matches: Optional[int] = None
    ) -> List[Tuple[str, int, int]]:
        """
        Find the markers visible in an image.

        Args:
            image_path: Path to the image
            min_matches: Minimum number of matched dots. Uses config default if None.

        Returns:
            List of (marker_name, matches, hits), best first

        Raises:
            ValueError: If image cannot be read
        """
        img = cv2.imread(str(image_path))
        if img is None:
            raise ValueError(f"Could not read image: {image_path}")

        frame_tracker = self.create_frame_tracker()
        found = frame_tracker.process(img)
        return self._summarize(found, min_matches)

    def list_markers(self) -> List[str]:
        """List all registered markers."""
        if self.config is None:
            return []
        return self.config.marker_names()

    def get_stats(self) -> Dict:
        """
        Get comprehensive statistics about the tracker.

        Returns:
            Dictionary with tracker statistics
        """
        if self.config is None:
            return {"error": "Tracker not initialized"}

        index_stats = self.llah_ops.get_stats() if self.llah_ops else None

        return {
            'total_markers': len(self.config.markers),
            'total_points': sum(m.num_points or 0 for m in self.config.markers.values()),
            'llah': {
                'num_neighbors': self.config.llah.num_neighbors,
                'combination_size': self.config.llah.combination_size,
                'invariant_type': self.config.llah.invariant_type.value,
                'num_discrete': self.config.llah.num_discrete,
            },
            'index_stats': index_stats
        }
