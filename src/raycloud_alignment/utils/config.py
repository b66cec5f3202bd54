"""
Configuration management for raycloud-alignment.

Registration settings are pydantic models read from YAML. Every field has
a default, so an empty file or no file at all yields a usable AppConfig.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Literal, Any, Dict

from pydantic import BaseModel, Field, ValidationError
import yaml


# -----------------------
# Typed config structures
# -----------------------


class RegistrationConfig(BaseModel):
    voxel_width: float = Field(default=0.5, description="Density grid cell size (world units)")
    estimate_rotation: bool = Field(
        default=True,
        description="Estimate the rotation about the vertical axis; disable when the clouds share a heading",
    )
    polar_angle_resolution: Optional[int] = Field(
        default=None,
        description="Number of angle bins of the polar field (None = 4 * max in-plane half width)",
    )
    polar_radius_resolution: Optional[int] = Field(
        default=None,
        description="Number of radius bins of the polar field (None = max in-plane half width)",
    )
    resolve_half_turn: bool = Field(
        default=True,
        description="Disambiguate theta vs theta + pi by comparing translation correlation peaks",
    )
    normalize_cross_power: bool = Field(
        default=False,
        description="Use phase-only correlation for the translation stage",
    )


class DebugConfig(BaseModel):
    image_output: bool = Field(default=False, description="Write intermediate magnitude fields as PNG images")
    output_dir: str = Field(default="debug")


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    file: Optional[str] = Field(default=None)


class ParallelConfig(BaseModel):
    enabled: bool = Field(default=False, description="Build the two density grids in worker processes")
    n_workers: Optional[int] = Field(default=None, description="Number of worker processes (None = cpu_count - 1)")


class IOConfig(BaseModel):
    chunk_points: int = Field(default=1_000_000, description="Number of rays per chunk for streamed reads")


class AppConfig(BaseModel):
    alignment: RegistrationConfig = Field(default_factory=RegistrationConfig)
    debug: DebugConfig = Field(default_factory=DebugConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    parallel: ParallelConfig = Field(default_factory=ParallelConfig)
    io: IOConfig = Field(default_factory=IOConfig)


# -----------------------
# Loader
# -----------------------


def _project_root() -> Path:
    """Checkout root: three levels above src/raycloud_alignment/utils."""
    return Path(__file__).resolve().parents[3]


def load_config(path: Optional[str | Path] = None, *, allow_missing: bool = True) -> AppConfig:
    """
    Read an AppConfig from YAML.

    With no path, config/default.yaml under the checkout root is used. A
    missing file yields the defaults unless allow_missing is False.

    Relative paths are tried against the working directory first and then
    against the repository root.

    Args:
        path: YAML file, absolute or relative
        allow_missing: Return defaults instead of raising FileNotFoundError

    Raises:
        ValueError: If the YAML does not validate against AppConfig
    """
    cfg_path: Path
    if path is None:
        cfg_path = _project_root() / "config" / "default.yaml"
    else:
        cfg_path = Path(path)
        if not cfg_path.is_absolute() and not cfg_path.exists():
            cfg_path = _project_root() / cfg_path

    if not cfg_path.exists():
        if allow_missing:
            return AppConfig()
        raise FileNotFoundError(f"Config file not found: {cfg_path}")

    with cfg_path.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration in {cfg_path}: {e}")
