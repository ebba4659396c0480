"""Aggregation of comparison verdicts into a run summary."""

from __future__ import annotations

import logging
import time

from visual_testing.models.comparison import ComparisonVerdict, RunSummary

logger = logging.getLogger(__name__)


def summarize(
    verdicts: list[ComparisonVerdict],
    base_branch: str,
    current_branch: str,
) -> RunSummary:
    """Count passed/changed/failed verdicts, keeping their comparison order."""
    failed = sum(1 for v in verdicts if v.failed)
    changed = sum(1 for v in verdicts if not v.failed and v.has_difference)
    passed = len(verdicts) - failed - changed
    summary = RunSummary(
        base_branch=base_branch,
        current_branch=current_branch,
        timestamp=int(time.time() * 1000),
        total_scenes=len(verdicts),
        compared_count=len(verdicts) - failed,
        changed_count=changed,
        passed_count=passed,
        failed_count=failed,
        results=list(verdicts),
    )
    logger.debug("Summary: %d passed, %d changed, %d failed", passed, changed, failed)
    return summary
