"""
Uchiya Tracker - Random dot marker recognition with LLAH.

Registers planar dot patterns and identifies which registered pattern an
observed, rotated and partially occluded set of dots belongs to, using
Locally Likely Arrangement Hashing.
"""

__version__ = "0.1.0"

from .config import (
    AppConfig,
    DetectionConfig,
    InvariantType,
    LlahConfig,
    MarkerConfig,
    RenderConfig
)
from .config_manager import ConfigManager
from .hasher import AffineHasher, CrossRatioHasher, LlahHasher, create_hasher
from .hash_table import LlahHashTable
from .neighbors import CombinationPermutations, NeighborFinder
from .operations import (
    LlahDocument,
    LlahFeature,
    LlahOperations,
    LlahResult,
    LlahWorkspace
)
from .points import PointIndex
from .tracker import TrackUchiyaMarkers, UchiyaMarkerTracker

__all__ = [
    'AppConfig',
    'DetectionConfig',
    'InvariantType',
    'LlahConfig',
    'MarkerConfig',
    'RenderConfig',
    'ConfigManager',
    'AffineHasher',
    'CrossRatioHasher',
    'LlahHasher',
    'create_hasher',
    'LlahHashTable',
    'CombinationPermutations',
    'NeighborFinder',
    'LlahDocument',
    'LlahFeature',
    'LlahOperations',
    'LlahResult',
    'LlahWorkspace',
    'PointIndex',
    'TrackUchiyaMarkers',
    'UchiyaMarkerTracker',
]
