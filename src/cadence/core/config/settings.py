"""Top-level cadence configuration.

``CadenceConfig`` aggregates the detection, escalation, runner, loop and
logging sections and loads them from YAML.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, model_validator

from cadence.core.config.detection import DetectionConfig, FollowUpConfig, WaitProfile
from cadence.core.config.escalation import EscalationConfig, RunnerConfig
from cadence.core.config.loop import LoopConfig
from cadence.core.exceptions import ConfigurationError


class LogConfig(BaseModel):
    """Configuration for structured logging.

    Controls log level, output format, and file rotation settings.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Minimum log level to capture",
    )
    format: Literal["json", "console", "both"] = Field(
        default="console",
        description="Output format: json for structured, console for human-readable, "
        "both for console to stderr and JSON to file",
    )
    file_path: Path | None = Field(
        default=None,
        description="Path for log file output (required if format='both')",
    )
    max_file_size_mb: int = Field(
        default=50,
        gt=0,
        le=1000,
        description="Maximum log file size before rotation (MB)",
    )
    backup_count: int = Field(
        default=5,
        ge=0,
        le=100,
        description="Number of rotated log files to keep",
    )
    include_timestamps: bool = Field(
        default=True,
        description="Include ISO8601 UTC timestamps in log entries",
    )

    @model_validator(mode="after")
    def _check_file_path_required(self) -> LogConfig:
        if self.format == "both" and self.file_path is None:
            raise ValueError(f"file_path is required when format='{self.format}'")
        return self


class CadenceConfig(BaseModel):
    """Complete cadence configuration, usually loaded from YAML.

    Example:
        profile: deep_research
        escalation:
          consecutive_same_kind_threshold: 4
        loop:
          max_iterations: 50
    """

    profile: WaitProfile | None = Field(
        default=None,
        description="Detection preset; explicit 'detection' values override it",
    )
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    follow_up: FollowUpConfig = Field(default_factory=FollowUpConfig)
    escalation: EscalationConfig = Field(default_factory=EscalationConfig)
    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    loop: LoopConfig = Field(default_factory=LoopConfig)
    logging: LogConfig = Field(default_factory=LogConfig)

    @model_validator(mode="before")
    @classmethod
    def _apply_profile(cls, data: object) -> object:
        if not isinstance(data, dict) or data.get("profile") is None:
            return data
        preset = DetectionConfig.for_profile(data["profile"]).model_dump()
        overrides = data.get("detection") or {}
        if isinstance(overrides, DetectionConfig):
            overrides = overrides.model_dump(exclude_unset=True)
        return {**data, "detection": {**preset, **overrides}}

    @classmethod
    def from_yaml(cls, path: Path) -> CadenceConfig:
        """Load configuration from a YAML file.

        Raises:
            ConfigurationError: If the file cannot be read or parsed.
            pydantic.ValidationError: If the content is structurally invalid.
        """
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file {path}: {e}") from e
        return cls.from_yaml_string(text)

    @classmethod
    def from_yaml_string(cls, yaml_str: str) -> CadenceConfig:
        """Load configuration from a YAML string."""
        try:
            data = yaml.safe_load(yaml_str)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML: {e}") from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Config root must be a mapping, got {type(data).__name__}"
            )
        return cls.model_validate(data)


__all__ = ["CadenceConfig", "LogConfig"]
