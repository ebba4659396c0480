"""Comparison verdicts and the aggregated run summary."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from pydantic import ConfigDict, Field, model_validator

from visual_testing.models.base import CamelModel

RESULTS_FILE_NAME = "comparison-results.json"


class ComparisonVerdict(CamelModel):
    model_config = ConfigDict(frozen=True)

    scene_id: str
    component_name: str = ""
    variant_name: str = ""
    baseline_path: Optional[str] = None  # None means the scene is new
    current_path: Optional[str] = None
    diff_path: Optional[str] = None
    pixel_diff_percent: float = Field(default=0.0, ge=0.0, le=100.0)
    similarity_score: float = Field(default=0.0, ge=0.0, le=1.0)
    has_difference: bool = False
    is_new: bool = False
    backend: Optional[str] = None  # which diff backend produced pixel_diff_percent
    render_duration_millis: Optional[int] = None
    failure_reason: Optional[str] = None

    @model_validator(mode="after")
    def check_new_scene_invariant(self) -> "ComparisonVerdict":
        if self.is_new and not (
            self.has_difference
            and self.pixel_diff_percent == 100.0
            and self.similarity_score == 0.0
        ):
            raise ValueError(
                "new scenes must report a difference with 100% pixel diff and 0 similarity"
            )
        return self

    @property
    def failed(self) -> bool:
        return self.failure_reason is not None

    @property
    def status(self) -> str:
        """One of "failed", "changed", "passed"."""
        if self.failed:
            return "failed"
        return "changed" if self.has_difference else "passed"

    @classmethod
    def new_scene(cls, scene_id: str, current_path: str | None, **extra) -> "ComparisonVerdict":
        return cls(
            scene_id=scene_id,
            current_path=current_path,
            pixel_diff_percent=100.0,
            similarity_score=0.0,
            has_difference=True,
            is_new=True,
            **extra,
        )


class RunSummary(CamelModel):
    base_branch: str
    current_branch: str
    timestamp: int  # epoch millis at creation
    total_scenes: int = 0
    compared_count: int = 0
    changed_count: int = 0
    passed_count: int = 0
    failed_count: int = 0
    results: list[ComparisonVerdict] = Field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return self.changed_count > 0

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_json_dict(), f, indent=2)

    @classmethod
    def load(cls, path: Path) -> "RunSummary":
        with open(path) as f:
            return cls.model_validate(json.load(f))
