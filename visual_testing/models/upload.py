"""Payload shapes exchanged with the results dashboard."""

from __future__ import annotations

from typing import Optional

from pydantic import Field

from visual_testing.models.base import CamelModel


class UploadStory(CamelModel):
    story_id: str
    component_name: str
    story_name: str
    baseline_url: Optional[str] = None
    current_url: Optional[str] = None
    diff_url: Optional[str] = None
    pixel_diff: float
    ssim_score: float
    has_diff: bool
    is_new: bool


class UploadPayload(CamelModel):
    branch: str
    base_branch: str
    commit_hash: str
    commit_message: str = ""
    stories: list[UploadStory] = Field(default_factory=list)


class UploadResponse(CamelModel):
    success: bool
    test_id: str
    url: str
