"""HTML report generator: a static page with one card per compared scene."""

from __future__ import annotations

import html
import logging
from datetime import datetime, timezone
from pathlib import Path

from visual_testing.models.comparison import ComparisonVerdict, RunSummary

logger = logging.getLogger(__name__)

_BORDER_COLORS = {"passed": "#22c55e", "changed": "#eab308", "failed": "#ef4444"}


def _file_uri(path: str | None) -> str:
    if not path:
        return ""
    return Path(path).resolve().as_uri()


def _image_cell(path: str | None, label: str) -> str:
    if not path:
        return f'''
        <div class="result-image empty">
          <div class="result-image-label">No {label}</div>
        </div>'''
    return f'''
        <div class="result-image">
          <img src="{html.escape(_file_uri(path))}" alt="{label}" loading="lazy" onclick="this.classList.toggle('zoomed')"/>
          <div class="result-image-label">{label}</div>
        </div>'''


def _build_result_card(v: ComparisonVerdict) -> str:
    """Build the HTML card for a single verdict."""
    status = v.status
    title = v.component_name or v.scene_id
    if v.variant_name:
        title = f"{title} / {v.variant_name}"

    badges = f'<span class="badge {status}">{status.upper()}</span>'
    if v.is_new:
        badges += ' <span class="badge new">NEW</span>'

    meta = ""
    if v.failed:
        meta = f'<div class="failure-banner"><strong>Comparison failed:</strong> {html.escape(v.failure_reason or "")}</div>'
    elif v.is_new:
        meta = '<div class="result-diff">No baseline for this scene yet</div>'
    else:
        backend = f" &middot; {html.escape(v.backend)}" if v.backend else ""
        meta = (f'<div class="result-diff">{v.pixel_diff_percent:.2f}% different '
                f'&middot; SSIM: {v.similarity_score:.3f}{backend}</div>')

    return f'''
    <div class="result {status}" data-status="{status}">
      <div class="result-header" style="border-left: 4px solid {_BORDER_COLORS[status]};">
        <div class="result-title">{badges} <strong>{html.escape(title)}</strong></div>
        <div class="result-id"><code>{html.escape(v.scene_id)}</code></div>
        {meta}
      </div>
      <div class="result-images">
        {_image_cell(v.baseline_path, "Baseline")}
        {_image_cell(v.current_path, "Current")}
        {_image_cell(v.diff_path, "Diff")}
      </div>
    </div>'''


def generate_html_report(summary: RunSummary, output_path: Path) -> None:
    """Write a self-contained, filterable HTML report."""
    cards = "".join(_build_result_card(v) for v in summary.results)
    created = datetime.fromtimestamp(summary.timestamp / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")

    report_html = f'''<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>Visual Regression Report &mdash; {html.escape(summary.current_branch)}</title>
<style>
  :root {{ --pass: #22c55e; --changed: #eab308; --fail: #ef4444; --bg: #f8fafc; --card: white; --border: #e2e8f0; --text: #1e293b; --muted: #64748b; --accent: #6366f1; }}
  * {{ margin: 0; padding: 0; box-sizing: border-box; }}
  body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; background: var(--bg); color: var(--text); line-height: 1.6; padding: 1.5rem; }}
  .container {{ max-width: 1400px; margin: 0 auto; }}
  h1 {{ font-size: 1.8rem; margin-bottom: 0.3rem; }}
  .meta {{ color: var(--muted); margin-bottom: 1.5rem; font-size: 0.9rem; }}
  .summary {{ display: grid; grid-template-columns: repeat(auto-fit, minmax(130px, 1fr)); gap: 0.8rem; margin-bottom: 1.5rem; }}
  .stat {{ background: var(--card); border-radius: 8px; padding: 1rem; box-shadow: 0 1px 3px rgba(0,0,0,0.08); text-align: center; }}
  .stat .value {{ font-size: 1.8rem; font-weight: 700; }}
  .stat .label {{ font-size: 0.8rem; color: var(--muted); }}
  .stat.passed .value {{ color: var(--pass); }}
  .stat.changed .value {{ color: var(--changed); }}
  .stat.failed .value {{ color: var(--fail); }}
  .badge {{ display: inline-block; padding: 0.15rem 0.55rem; border-radius: 9999px; font-size: 0.7rem; font-weight: 600; text-transform: uppercase; white-space: nowrap; }}
  .badge.passed {{ background: #dcfce7; color: #166534; }}
  .badge.changed {{ background: #fef9c3; color: #854d0e; }}
  .badge.failed {{ background: #fecaca; color: #991b1b; }}
  .badge.new {{ background: #e0e7ff; color: #3730a3; }}
  .filter-bar {{ display: flex; gap: 0.5rem; margin-bottom: 1rem; flex-wrap: wrap; }}
  .filter-btn {{ padding: 0.3rem 0.8rem; border-radius: 6px; border: 1px solid var(--border); background: var(--card); cursor: pointer; font-size: 0.82rem; }}
  .filter-btn.active {{ background: var(--accent); color: white; border-color: var(--accent); }}
  #result-list {{ display: grid; grid-template-columns: repeat(auto-fill, minmax(420px, 1fr)); gap: 1rem; }}
  .result {{ background: var(--card); border-radius: 8px; overflow: hidden; box-shadow: 0 1px 3px rgba(0,0,0,0.08); }}
  .result-header {{ padding: 0.7rem 1rem; border-bottom: 1px solid var(--border); }}
  .result-id {{ font-size: 0.75rem; color: var(--muted); }}
  .result-diff {{ font-size: 0.8rem; color: var(--muted); margin-top: 0.2rem; }}
  .failure-banner {{ background: #fef2f2; border: 1px solid #fecaca; color: #991b1b; border-radius: 6px; padding: 0.4rem 0.6rem; margin-top: 0.4rem; font-size: 0.82rem; }}
  .result-images {{ display: grid; grid-template-columns: repeat(3, 1fr); }}
  .result-image {{ position: relative; aspect-ratio: 9 / 19; overflow: hidden; background: #f1f5f9; }}
  .result-image img {{ width: 100%; height: 100%; object-fit: contain; cursor: pointer; }}
  .result-image img.zoomed {{ position: fixed; top: 5%; left: 5%; width: 90%; height: 90%; z-index: 1000; background: rgba(0,0,0,0.85); border-radius: 8px; padding: 1rem; }}
  .result-image-label {{ position: absolute; bottom: 0; left: 0; right: 0; background: rgba(0,0,0,0.7); color: white; padding: 0.2rem; font-size: 0.7rem; text-align: center; }}
</style>
</head>
<body>
<div class="container">
  <h1>Visual Regression Report</h1>
  <p class="meta">Branch: {html.escape(summary.current_branch)} &middot; Base: {html.escape(summary.base_branch)} &middot; {created}</p>

  <div class="summary">
    <div class="stat"><div class="value">{summary.total_scenes}</div><div class="label">Total Scenes</div></div>
    <div class="stat passed"><div class="value">{summary.passed_count}</div><div class="label">Passed</div></div>
    <div class="stat changed"><div class="value">{summary.changed_count}</div><div class="label">Changed</div></div>
    <div class="stat failed"><div class="value">{summary.failed_count}</div><div class="label">Failed</div></div>
  </div>

  <div class="filter-bar">
    <button class="filter-btn active" onclick="filterResults('changed')">Changed ({summary.changed_count})</button>
    <button class="filter-btn" onclick="filterResults('passed')">Passed ({summary.passed_count})</button>
    <button class="filter-btn" onclick="filterResults('failed')">Failed ({summary.failed_count})</button>
    <button class="filter-btn" onclick="filterResults('all')">All ({summary.total_scenes})</button>
  </div>

  <div id="result-list">
    {cards}
  </div>
</div>

<script>
function filterResults(status) {{
  document.querySelectorAll('.filter-btn').forEach(b => b.classList.remove('active'));
  if (window.event) {{ window.event.target.classList.add('active'); }}
  document.querySelectorAll('.result').forEach(card => {{
    card.style.display = status === 'all' || card.dataset.status === status ? '' : 'none';
  }});
}}
filterResults('changed');
document.querySelector('.filter-btn').classList.add('active');
</script>
</body>
</html>'''

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(report_html)
