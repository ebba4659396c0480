"""Report generation orchestration."""

from __future__ import annotations

import logging
from pathlib import Path

from visual_testing.models.comparison import RESULTS_FILE_NAME, RunSummary

from .html_report import generate_html_report
from .json_report import write_json_report

logger = logging.getLogger(__name__)

HTML_REPORT_NAME = "report.html"


class Reporter:
    """Persists the run summary and renders the static report."""

    def generate_reports(
        self,
        summary: RunSummary,
        output_dir: Path,
        html: bool = True,
    ) -> dict[str, str]:
        """Write the JSON summary, then the HTML report. Returns format -> file path.

        The JSON summary is always written first; an HTML rendering failure is
        logged and does not affect it.
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        generated = {}

        json_path = output_dir / RESULTS_FILE_NAME
        write_json_report(summary, json_path)
        generated["json"] = str(json_path)
        logger.info("Results saved to: %s", json_path)

        if html:
            html_path = output_dir / HTML_REPORT_NAME
            try:
                generate_html_report(summary, html_path)
            except (OSError, ValueError) as e:
                logger.error("HTML report generation failed: %s", e)
            else:
                generated["html"] = str(html_path)
                logger.info("HTML report: %s", html_path)

        return generated
