"""Catalog entry data structures."""

from __future__ import annotations

from pydantic import ConfigDict

from visual_testing.models.base import CamelModel


class Scene(CamelModel):
    """One component variant that can be rendered and captured on its own."""

    model_config = ConfigDict(frozen=True)

    id: str
    component_name: str
    variant_name: str
    group_path: str  # slash-separated catalog title, e.g. "UI/Button"
