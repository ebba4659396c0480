"""Projects a run summary to the dashboard shape and POSTs it."""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from visual_testing.errors import UploadRejected
from visual_testing.models.comparison import RunSummary
from visual_testing.models.upload import UploadPayload, UploadResponse, UploadStory

logger = logging.getLogger(__name__)

UPLOAD_PATH = "/api/upload"


def component_name_from_id(scene_id: str) -> str:
    """``button-group--primary`` -> ``ButtonGroup``."""
    head = scene_id.split("--")[0]
    return "".join(word[:1].upper() + word[1:] for word in head.split("-"))


def story_name_from_id(scene_id: str) -> str:
    """``button--primary-large`` -> ``Primary Large``; ``Default`` without a variant."""
    parts = scene_id.split("--")
    if len(parts) < 2:
        return "Default"
    return " ".join(word[:1].upper() + word[1:] for word in parts[1].split("-"))


def build_payload(
    summary: RunSummary,
    branch: str,
    commit_hash: str,
    commit_message: str = "",
) -> UploadPayload:
    """Project verdicts to dashboard stories; failed comparisons are not uploaded."""
    stories = []
    for v in summary.results:
        if v.failed:
            logger.debug("Not uploading %s: %s", v.scene_id, v.failure_reason)
            continue
        stories.append(UploadStory(
            story_id=v.scene_id,
            component_name=v.component_name or component_name_from_id(v.scene_id),
            story_name=v.variant_name or story_name_from_id(v.scene_id),
            baseline_url=v.baseline_path,
            current_url=v.current_path,
            diff_url=v.diff_path,
            pixel_diff=v.pixel_diff_percent,
            ssim_score=v.similarity_score,
            has_diff=v.has_difference,
            is_new=v.is_new,
        ))
    return UploadPayload(
        branch=branch,
        base_branch=summary.base_branch,
        commit_hash=commit_hash,
        commit_message=commit_message,
        stories=stories,
    )


async def upload_results(
    api_url: str,
    payload: UploadPayload,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> UploadResponse:
    """POST the payload to ``<api_url>/api/upload``.

    Raises UploadRejected on transport errors, non-2xx statuses and
    unparseable response bodies.
    """
    url = api_url.rstrip("/") + UPLOAD_PATH
    logger.info("Uploading %d results to %s", len(payload.stories), url)

    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            resp = await client.post(url, json=payload.to_json_dict())
    except httpx.HTTPError as e:
        raise UploadRejected(f"Upload failed: {e}") from e

    if not resp.is_success:
        raise UploadRejected(
            f"Upload failed: {resp.status_code} - {resp.text}",
            status_code=resp.status_code,
        )

    try:
        result = UploadResponse.model_validate(resp.json())
    except (ValueError, ValidationError) as e:
        raise UploadRejected(
            f"Unexpected upload response: {e}", status_code=resp.status_code
        ) from e

    logger.info("Upload complete: test %s", result.test_id)
    return result
