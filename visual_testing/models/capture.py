"""Capture records produced by the capture orchestrator."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from pydantic import Field

from visual_testing.models.base import CamelModel

MANIFEST_FILE_NAME = "metadata.json"


class CaptureRecord(CamelModel):
    scene_id: str
    component_name: str = ""
    variant_name: str = ""
    image_path: Optional[str] = None  # absent when the capture failed
    branch: str
    commit_hash: str = ""
    captured_at_epoch_millis: int
    render_duration_millis: int = 0
    failure_reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.failure_reason is None and self.image_path is not None


class CaptureManifest(CamelModel):
    branch: str
    commit_hash: str = ""
    timestamp: int
    screenshots: list[CaptureRecord] = Field(default_factory=list)
    total_scenes: int = 0
    captured_count: int = 0
    failed_count: int = 0

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_json_dict(), f, indent=2)

    @classmethod
    def load(cls, path: Path) -> "CaptureManifest":
        with open(path) as f:
            return cls.model_validate(json.load(f))
