"""Tests for the dashboard upload client."""

import json

import httpx
import pytest

from visual_testing.errors import UploadRejected
from visual_testing.models.comparison import ComparisonVerdict
from visual_testing.models.upload import UploadPayload
from visual_testing.reporter.summary import summarize
from visual_testing.upload.client import (
    build_payload,
    component_name_from_id,
    story_name_from_id,
    upload_results,
)


def _make_payload() -> UploadPayload:
    summary = summarize(
        [
            ComparisonVerdict(
                scene_id="button-group--primary-large",
                baseline_path="/b/button-group--primary-large.png",
                current_path="/c/button-group--primary-large.png",
                pixel_diff_percent=2.5,
                similarity_score=0.93,
                has_difference=True,
            ),
            ComparisonVerdict.new_scene(
                "ui-card--default", "/c/ui-card--default.png",
                component_name="Card", variant_name="Default",
            ),
        ],
        "main",
        "feature",
    )
    return build_payload(summary, "feature", "abc123", "Tweak padding")


class TestNameDerivation:
    """Tests for component/story name fallbacks."""

    def test_component_name(self):
        assert component_name_from_id("button--primary") == "Button"
        assert component_name_from_id("button-group--primary") == "ButtonGroup"

    def test_story_name(self):
        assert story_name_from_id("button--primary") == "Primary"
        assert story_name_from_id("button--primary-large") == "Primary Large"
        assert story_name_from_id("button") == "Default"


class TestBuildPayload:
    """Tests for build_payload."""

    def test_projects_verdicts(self):
        payload = _make_payload()
        assert payload.branch == "feature"
        assert payload.base_branch == "main"
        assert payload.commit_hash == "abc123"

        first, second = payload.stories
        assert first.story_id == "button-group--primary-large"
        assert first.component_name == "ButtonGroup"
        assert first.story_name == "Primary Large"
        assert first.pixel_diff == 2.5
        assert first.ssim_score == 0.93
        assert first.has_diff and not first.is_new

        assert second.component_name == "Card"
        assert second.story_name == "Default"
        assert second.is_new
        assert second.baseline_url is None

    def test_failed_comparisons_are_not_uploaded(self):
        summary = summarize(
            [
                ComparisonVerdict(
                    scene_id="button--primary",
                    baseline_path="/b/button--primary.png",
                    current_path="/c/button--primary.png",
                    similarity_score=1.0,
                ),
                ComparisonVerdict(
                    scene_id="card--default",
                    baseline_path="/b/card--default.png",
                    current_path="/c/card--default.png",
                    failure_reason="Image dimensions don't match: 10x10 vs 10x12",
                ),
            ],
            "main",
            "feature",
        )
        assert summary.failed_count == 1

        payload = build_payload(summary, "feature", "abc123")

        assert [s.story_id for s in payload.stories] == ["button--primary"]

    def test_wire_format_is_camel_case(self):
        data = _make_payload().to_json_dict()
        assert set(data) == {"branch", "baseBranch", "commitHash", "commitMessage", "stories"}
        assert set(data["stories"][0]) == {
            "storyId", "componentName", "storyName", "baselineUrl", "currentUrl",
            "diffUrl", "pixelDiff", "ssimScore", "hasDiff", "isNew",
        }


class TestUploadResults:
    """Tests for upload_results."""

    @pytest.mark.asyncio
    async def test_successful_upload(self):
        received = {}

        def handler(request: httpx.Request) -> httpx.Response:
            received["url"] = str(request.url)
            received["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "testId": "t-42", "url": "/tests/t-42"})

        response = await upload_results(
            "https://dash.example.com/", _make_payload(), transport=httpx.MockTransport(handler),
        )

        assert received["url"] == "https://dash.example.com/api/upload"
        assert received["body"]["baseBranch"] == "main"
        assert len(received["body"]["stories"]) == 2
        assert response.success
        assert response.test_id == "t-42"
        assert response.url == "/tests/t-42"

    @pytest.mark.asyncio
    async def test_error_status_raises_with_code(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(UploadRejected) as exc_info:
            await upload_results("https://dash.example.com", _make_payload(), transport=transport)
        assert exc_info.value.status_code == 500
        assert "boom" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(UploadRejected) as exc_info:
            await upload_results("https://dash.example.com", _make_payload(),
                                 transport=httpx.MockTransport(handler))
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_unexpected_body_raises(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(UploadRejected):
            await upload_results("https://dash.example.com", _make_payload(), transport=transport)
