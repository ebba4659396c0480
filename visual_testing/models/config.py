"""Configuration models for the visual testing pipeline."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator

from visual_testing.models.base import CamelModel

CONFIG_FILE_NAME = ".rn-visual-testing.json"


class StorybookConfig(CamelModel):
    port: int = 7007
    host: str = "localhost"
    stories_pattern: str = "src/**/*.stories.{ts,tsx,js,jsx}"
    scheme: Optional[str] = None  # URL scheme for deep-link navigation

    @field_validator("port")
    @classmethod
    def check_port(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("storybook.port must be a positive integer")
        return v


class SimulatorConfig(CamelModel):
    device: str = "iPhone 15 Pro"
    os: str = "iOS 17.0"
    bundle_id: Optional[str] = None
    app_scheme: Optional[str] = None

    @field_validator("device")
    @classmethod
    def check_device(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("simulator.device is required")
        return v


class ComparisonConfig(CamelModel):
    mode: Literal["strict", "threshold"] = "threshold"
    threshold: float = 0.01
    include_metrics: bool = True
    # Per-pixel color distance tolerance used by the in-process diff backend
    pixel_threshold: float = 0.1

    @field_validator("threshold", "pixel_threshold")
    @classmethod
    def check_unit_interval(cls, v: float) -> float:
        if v < 0 or v > 1:
            raise ValueError("comparison thresholds must be between 0 and 1")
        return v


class TimingConfig(CamelModel):
    boot_timeout_seconds: float = 30.0
    boot_poll_interval_seconds: float = 1.0
    launch_settle_seconds: float = 3.0
    deep_link_settle_seconds: float = 1.5
    capture_settle_seconds: float = 0.5
    connect_timeout_seconds: float = 60.0
    render_timeout_seconds: float = 5.0
    list_scenes_timeout_seconds: float = 10.0
    server_timeout_seconds: float = 60.0


class VisualTestConfig(CamelModel):
    storybook: StorybookConfig = Field(default_factory=StorybookConfig)
    simulator: SimulatorConfig = Field(default_factory=SimulatorConfig)
    comparison: ComparisonConfig = Field(default_factory=ComparisonConfig)
    timing: TimingConfig = Field(default_factory=TimingConfig)

    baseline_dir: str = ".visual-baselines"
    screenshot_dir: str = ".visual-screenshots"
    platform: str = "ios"

    # Dashboard upload endpoint; upload is skipped when unset
    api_url: Optional[str] = None

    @property
    def device_dir_name(self) -> str:
        return re.sub(r"\s+", "", self.simulator.device)

    @property
    def bundle_id(self) -> Optional[str]:
        return self.simulator.bundle_id or self.simulator.app_scheme

    def baseline_root(self, project_path: Path) -> Path:
        return project_path / self.baseline_dir / self.platform / self.device_dir_name

    def branch_dir(self, project_path: Path, branch: str) -> Path:
        return project_path / self.screenshot_dir / branch

    @classmethod
    def load(cls, path: str | Path) -> "VisualTestConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_json_dict(), f, indent=2)
