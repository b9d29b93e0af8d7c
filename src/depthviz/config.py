"""Configuration management for depthviz extraction runs."""

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Literal

import cv2
import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

logger = logging.getLogger(__name__)

VALID_RAW_DEPTH_FORMATS = ["npy", "npz", "tiff"]


class Palette(str, Enum):
    """Heatmap palettes.

    Resolved once when a VisualizationConfig is validated; each member maps
    to a fixed OpenCV colormap.
    """

    JET = "jet"
    TURBO = "turbo"
    INFERNO = "inferno"
    VIRIDIS = "viridis"

    @property
    def colormap(self) -> int:
        """OpenCV colormap constant for this palette."""
        return _PALETTE_COLORMAPS[self]


_PALETTE_COLORMAPS = {
    Palette.JET: cv2.COLORMAP_JET,
    Palette.TURBO: cv2.COLORMAP_TURBO,
    Palette.INFERNO: cv2.COLORMAP_INFERNO,
    Palette.VIRIDIS: cv2.COLORMAP_VIRIDIS,
}


class VisualizationConfig(BaseModel):
    """Immutable description of one heatmap rendering request.

    Attributes:
        min_distance: Lower bound of the configured distance range (meters).
        max_distance: Upper bound of the configured distance range (meters).
        auto_contrast: Use 2nd/98th percentile of valid depths as the color range.
        confidence_threshold: Maximum accepted confidence value (0 = best,
            100 = worst). 100 disables confidence filtering.
        log_scale: Map distances logarithmically instead of linearly.
        edge_boost: Add depth gradient magnitude to the normalized score.
        edge_factor: Weight of the gradient term.
        clahe: Apply tiled histogram equalization to the normalized score.
        temporal_smoothing: Blend depth over frames with an EMA.
        temporal_alpha: EMA weight of the current frame.
        motion_highlight: Whiten pixels whose depth changed between frames.
        motion_gain: Blend factor toward white for moving pixels.
        palette: Heatmap palette.
        overlay_enabled: Alpha-blend the heatmap over the reference image.
        overlay_strength: Heatmap weight in percent.
        store_previews: Keep a downscaled copy of every frame for navigation.
        preview_max_width: Maximum width of stored previews (pixels).
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    # Range
    min_distance: float = 10.0
    max_distance: float = 50.0
    auto_contrast: bool = False
    confidence_threshold: int = Field(default=50, ge=0, le=100)
    log_scale: bool = False

    # Enhancers
    edge_boost: bool = False
    edge_factor: float = Field(default=0.5, ge=0.0, le=2.0)
    clahe: bool = False
    temporal_smoothing: bool = False
    temporal_alpha: float = Field(default=0.3, ge=0.05, le=0.8)
    motion_highlight: bool = False
    motion_gain: float = Field(default=0.5, ge=0.0, le=1.0)

    # Color
    palette: Palette = Palette.JET
    overlay_enabled: bool = False
    overlay_strength: int = Field(default=60, ge=0, le=100)

    # Preview history
    store_previews: bool = True
    preview_max_width: int = Field(default=640, gt=0)

    @field_validator("palette", mode="before")
    @classmethod
    def normalize_palette(cls, v: Any) -> Any:
        """Accept palette names case-insensitively."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @model_validator(mode="after")
    def check_distance_range(self) -> "VisualizationConfig":
        """Validate that the configured range is positive and non-empty."""
        if self.min_distance <= 0:
            raise ValueError(
                f"min_distance must be positive, got {self.min_distance}"
            )
        if self.min_distance >= self.max_distance:
            raise ValueError(
                f"min_distance ({self.min_distance}) must be smaller than "
                f"max_distance ({self.max_distance})"
            )
        return self

    @model_validator(mode="after")
    def warn_extra_fields(self) -> "VisualizationConfig":
        """Warn about unknown configuration keys."""
        if self.__pydantic_extra__:
            logger.warning(
                "Unknown config keys in VisualizationConfig (ignored): %s",
                list(self.__pydantic_extra__.keys()),
            )
        return self

    @property
    def confidence_filtering(self) -> bool:
        """True when the threshold actually excludes any confidence value."""
        return self.confidence_threshold < 100

    def for_single_frame(self) -> "VisualizationConfig":
        """Copy with the enhancers that need neighbor frames switched off."""
        return self.model_copy(
            update={"temporal_smoothing": False, "motion_highlight": False}
        )


class SamplingConfig(BaseModel):
    """Which source frames a batch visits.

    Attributes:
        frame_start: First source frame index to process.
        frame_stop: Stop before this source index (None = end of source).
        frame_step: Process every Nth frame.
        target_fps: If set, derive the step from the source frame rate as
            ``max(1, round(source_fps / target_fps))`` (overrides frame_step).
    """

    model_config = ConfigDict(extra="allow")

    frame_start: int = Field(default=0, ge=0)
    frame_stop: int | None = None
    frame_step: int = Field(default=1, ge=1)
    target_fps: float | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def check_bounds(self) -> "SamplingConfig":
        """Validate that frame_stop lies after frame_start."""
        if self.frame_stop is not None and self.frame_stop <= self.frame_start:
            raise ValueError(
                f"frame_stop ({self.frame_stop}) must be greater than "
                f"frame_start ({self.frame_start})"
            )
        return self

    @model_validator(mode="after")
    def warn_extra_fields(self) -> "SamplingConfig":
        """Warn about unknown configuration keys."""
        if self.__pydantic_extra__:
            logger.warning(
                "Unknown config keys in SamplingConfig (ignored): %s",
                list(self.__pydantic_extra__.keys()),
            )
        return self

    def effective_step(self, source_fps: float) -> int:
        """Resolve the frame step for a source with the given frame rate.

        Args:
            source_fps: Source frame rate, or 0 when unknown.

        Returns:
            Step between processed source frames (>= 1).
        """
        if self.target_fps is None or source_fps <= 0:
            return self.frame_step
        return max(1, round(source_fps / self.target_fps))


class StorageConfig(BaseModel):
    """Which artifacts are persisted per rendered frame.

    Attributes:
        save_heatmaps: Write the composited heatmap PNG.
        save_raw_depth: Write the raw float depth buffer (needed for cheap re-render).
        raw_depth_format: On-disk float format for raw depth.
        save_confidence: Write the confidence map PNG.
        save_reference: Write the reference color image PNG.
    """

    model_config = ConfigDict(extra="allow")

    save_heatmaps: bool = True
    save_raw_depth: bool = True
    raw_depth_format: Literal["npy", "npz", "tiff"] = "npy"
    save_confidence: bool = True
    save_reference: bool = True

    @model_validator(mode="after")
    def warn_extra_fields(self) -> "StorageConfig":
        """Warn about unknown configuration keys."""
        if self.__pydantic_extra__:
            logger.warning(
                "Unknown config keys in StorageConfig (ignored): %s",
                list(self.__pydantic_extra__.keys()),
            )
        return self


class RuntimeConfig(BaseModel):
    """Runtime settings.

    Attributes:
        quiet: Suppress progress output.
    """

    model_config = ConfigDict(extra="allow")

    quiet: bool = False

    @model_validator(mode="after")
    def warn_extra_fields(self) -> "RuntimeConfig":
        """Warn about unknown configuration keys."""
        if self.__pydantic_extra__:
            logger.warning(
                "Unknown config keys in RuntimeConfig (ignored): %s",
                list(self.__pydantic_extra__.keys()),
            )
        return self


class DepthVizConfig(BaseModel):
    """Top-level configuration for a depth heatmap extraction run.

    Attributes:
        source_path: Path handed to FrameSource.open().
        output_dir: Root directory for persisted artifacts.
        sampling: Frame sampling configuration.
        visualization: Heatmap rendering configuration.
        storage: Artifact persistence configuration.
        runtime: Runtime configuration.
    """

    model_config = ConfigDict(extra="allow")

    source_path: str = ""
    output_dir: str = ""

    sampling: SamplingConfig = Field(default_factory=SamplingConfig)
    visualization: VisualizationConfig = Field(default_factory=VisualizationConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)

    @model_validator(mode="after")
    def warn_extra_fields(self) -> "DepthVizConfig":
        """Warn about unknown top-level keys."""
        if self.__pydantic_extra__:
            logger.warning(
                "Unknown config keys in DepthVizConfig (ignored): %s",
                list(self.__pydantic_extra__.keys()),
            )
        return self

    @classmethod
    def from_yaml(cls, path: str | Path) -> "DepthVizConfig":
        """Load configuration from a YAML file.

        Missing fields use their default values.

        Args:
            path: Path to YAML configuration file.

        Returns:
            Loaded configuration with defaults filled in.

        Raises:
            FileNotFoundError: If the file does not exist.
            yaml.YAMLError: If the file is not valid YAML.
            ValueError: If validation fails (with all errors collected).
        """
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f)

        if data is None:
            data = {}

        cls._log_default_sections(data)

        try:
            config = cls.model_validate(data)
        except ValidationError as e:
            formatted_errors = format_validation_errors(e)
            raise ValueError(
                f"Configuration validation failed:\n{formatted_errors}"
            ) from None

        return config

    @staticmethod
    def _log_default_sections(data: dict[str, Any]) -> None:
        """Log INFO messages about sections using defaults.

        Args:
            data: Configuration dictionary.
        """
        for section in ("sampling", "visualization", "storage", "runtime"):
            if section not in data:
                logger.info("Using default: %s (all defaults)", section)

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to a YAML file.

        All fields including defaults are written for explicitness.

        Args:
            path: Path to output YAML file.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(mode="json")

        with open(path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)


def format_validation_errors(error: ValidationError) -> str:
    """Format Pydantic validation errors with YAML-style paths.

    Args:
        error: Pydantic ValidationError.

    Returns:
        Formatted error string with YAML paths and messages.
    """
    lines = []
    for err in error.errors():
        loc = err["loc"]
        path_parts = []
        for part in loc:
            if isinstance(part, int) and path_parts:
                # Array index
                path_parts[-1] = f"{path_parts[-1]}[{part}]"
            else:
                path_parts.append(str(part))

        path = ".".join(path_parts)
        msg = err["msg"]
        lines.append(f"  {path}: {msg}")

    return "\n".join(lines)
