"""JSON report output."""

from __future__ import annotations

from pathlib import Path

from visual_testing.models.comparison import RunSummary


def write_json_report(summary: RunSummary, output_path: Path) -> None:
    """Write the machine-readable ``comparison-results.json`` manifest."""
    summary.save(output_path)


def load_summary(path: Path) -> RunSummary:
    if not path.exists():
        raise FileNotFoundError(
            f"Comparison results not found at {path}. Run 'compare' command first."
        )
    return RunSummary.load(path)
