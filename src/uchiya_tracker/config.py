"""
Configuration models for the Uchiya marker tracker.

This module defines the configuration structure using Pydantic for validation.
"""

from enum import Enum
from pathlib import Path
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime


class InvariantType(str, Enum):
    """Family of geometric invariants used by the hasher."""

    AFFINE = "affine"
    CROSS_RATIO = "cross_ratio"


class LlahConfig(BaseModel):
    """Configuration for the LLAH index."""

    num_neighbors: int = Field(
        7,
        ge=4,
        le=12,
        description="Number of nearest neighbors (N) used to describe a point"
    )
    combination_size: int = Field(
        5,
        ge=4,
        le=12,
        description="Size of the combinations (M) drawn from the neighbors"
    )
    invariant_type: InvariantType = Field(
        InvariantType.AFFINE,
        description="Geometric invariant the features are built from"
    )
    num_discrete: int = Field(
        100,
        ge=2,
        le=1000,
        description="Number of discrete values each invariant is converted to"
    )
    hash_table_size: int = Field(
        500_000,
        ge=1,
        description="Hash codes are taken modulo this value"
    )
    histogram_length: int = Field(
        100_000,
        ge=100,
        description="Number of bins in the histogram used to learn the discretization"
    )
    max_invariant_value: float = Field(
        25.0,
        gt=0,
        description="Largest value an invariant is assumed to have"
    )

    @model_validator(mode='after')
    def validate_combination_size(self) -> 'LlahConfig':
        """Ensure the combination fits in the neighborhood and the invariant."""
        if self.combination_size > self.num_neighbors:
            raise ValueError("combination_size can't be larger than num_neighbors")
        if self.invariant_type == InvariantType.CROSS_RATIO and self.combination_size < 5:
            raise ValueError("Cross ratio invariants need combination_size >= 5")
        return self


class DetectionConfig(BaseModel):
    """Configuration for finding dots in images."""

    invert: bool = Field(
        True,
        description="Dots are darker than the background"
    )
    min_area: float = Field(
        10.0,
        ge=0,
        description="Smallest blob area in pixels"
    )
    max_area: float = Field(
        10_000.0,
        gt=0,
        description="Largest blob area in pixels"
    )
    min_fill: float = Field(
        0.7,
        ge=0,
        le=1,
        description="Minimum ratio of contour area to fitted ellipse area"
    )

    @model_validator(mode='after')
    def validate_area_range(self) -> 'DetectionConfig':
        """Ensure the area range isn't empty."""
        if self.min_area > self.max_area:
            raise ValueError("min_area can't be larger than max_area")
        return self


class RenderConfig(BaseModel):
    """Configuration for rendering markers into images."""

    width: int = Field(400, ge=10, description="Image width in pixels")
    height: int = Field(400, ge=10, description="Image height in pixels")
    marker_width: float = Field(300.0, gt=0, description="Width of the marker in pixels")
    dot_radius: float = Field(6.0, gt=0, description="Radius of each dot in pixels")


class MarkerConfig(BaseModel):
    """Configuration for a registered marker."""

    name: str = Field(..., description="Name of the marker")
    points_path: Path = Field(..., description="File containing the marker's dot locations")
    registered_at: Optional[datetime] = Field(
        default_factory=datetime.now,
        description="When this marker was registered"
    )
    num_points: Optional[int] = Field(None, description="Number of dots in the marker")

    @field_validator('points_path')
    @classmethod
    def validate_points_path(cls, v: Path) -> Path:
        """Ensure points_path is a Path object."""
        return Path(v) if not isinstance(v, Path) else v


class AppConfig(BaseModel):
    """Main application configuration."""

    markers: dict[str, MarkerConfig] = Field(
        default_factory=dict,
        description="Dictionary of all registered markers"
    )
    llah: LlahConfig = Field(
        default_factory=LlahConfig,
        description="LLAH index configuration"
    )
    detection: DetectionConfig = Field(
        default_factory=DetectionConfig,
        description="Dot detection configuration"
    )
    render: RenderConfig = Field(
        default_factory=RenderConfig,
        description="Marker rendering configuration"
    )
    min_matches: int = Field(
        5,
        ge=1,
        description="Minimum matched points for a marker to be reported"
    )
    data_directory: Path = Field(
        Path("data"),
        description="Base directory for all data files"
    )

    @field_validator('data_directory')
    @classmethod
    def validate_data_directory(cls, v: Path) -> Path:
        """Ensure data_directory is a Path object."""
        return Path(v) if not isinstance(v, Path) else v

    def add_marker(self, marker: MarkerConfig) -> None:
        """Add a new marker to the configuration."""
        self.markers[marker.name] = marker

    def marker_names(self) -> List[str]:
        """Names of the registered markers, in registration order."""
        return list(self.markers.keys())
