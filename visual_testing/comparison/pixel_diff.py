"""In-process pixel difference backend (Pillow + numpy).

Pixels are compared in YIQ space after blending against white, the same
perceptual metric pixelmatch uses. A pixel is mismatched when its squared
YIQ distance exceeds ``MAX_YIQ_DELTA * pixel_threshold ** 2``, which keeps
anti-aliasing noise from being counted at the default threshold.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
from PIL import Image

from visual_testing.comparison.backend import DiffBackend, DiffOutcome
from visual_testing.errors import DimensionMismatch

logger = logging.getLogger(__name__)

# Largest possible YIQ delta between two colors (black vs white)
MAX_YIQ_DELTA = 35215.0
DIFF_COLOR = (255, 0, 0, 255)


def load_rgba(path: Path) -> np.ndarray:
    with Image.open(path) as img:
        return np.asarray(img.convert("RGBA"), dtype=np.float64)


def check_dimensions(baseline: np.ndarray, current: np.ndarray) -> None:
    if baseline.shape[:2] != current.shape[:2]:
        raise DimensionMismatch(
            (baseline.shape[1], baseline.shape[0]),
            (current.shape[1], current.shape[0]),
        )


def _blend_white(rgba: np.ndarray) -> np.ndarray:
    alpha = rgba[..., 3:4] / 255.0
    return 255.0 + (rgba[..., :3] - 255.0) * alpha


def _to_yiq(rgb: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    y = r * 0.29889531 + g * 0.58662247 + b * 0.11448223
    i = r * 0.59597799 - g * 0.27417610 - b * 0.32180189
    q = r * 0.21147017 - g * 0.52261711 + b * 0.31114694
    return y, i, q


def color_delta(baseline: np.ndarray, current: np.ndarray) -> np.ndarray:
    """Per-pixel squared YIQ distance between two RGBA arrays of equal shape."""
    y1, i1, q1 = _to_yiq(_blend_white(baseline))
    y2, i2, q2 = _to_yiq(_blend_white(current))
    dy, di, dq = y1 - y2, i1 - i2, q1 - q2
    return 0.5053 * dy * dy + 0.299 * di * di + 0.1957 * dq * dq


def mismatch_mask(baseline: np.ndarray, current: np.ndarray, pixel_threshold: float) -> np.ndarray:
    check_dimensions(baseline, current)
    max_delta = MAX_YIQ_DELTA * pixel_threshold * pixel_threshold
    return color_delta(baseline, current) > max_delta


def write_diff_image(mask: np.ndarray, path: Path) -> None:
    """Mismatched pixels in red, everything else fully transparent."""
    out = np.zeros(mask.shape + (4,), dtype=np.uint8)
    out[mask] = DIFF_COLOR
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(out).save(path)


def compare_images(
    baseline_path: Path,
    current_path: Path,
    diff_path: Path | None = None,
    pixel_threshold: float = 0.1,
) -> tuple[int, int, Path | None]:
    """Return (mismatched pixels, total pixels, diff image path or None)."""
    baseline = load_rgba(baseline_path)
    current = load_rgba(current_path)
    mask = mismatch_mask(baseline, current, pixel_threshold)
    mismatched = int(mask.sum())
    total = int(mask.size)

    written = None
    if diff_path is not None and mismatched > 0:
        write_diff_image(mask, diff_path)
        written = diff_path
        logger.debug("Diff image saved: %s", diff_path)
    return mismatched, total, written


class PixelDiffBackend(DiffBackend):
    name = "pixel"

    def __init__(self, pixel_threshold: float = 0.1):
        self.pixel_threshold = pixel_threshold

    async def compare(self, baseline: Path, current: Path, diff_path: Path) -> DiffOutcome:
        mismatched, total, written = compare_images(
            baseline, current, diff_path, self.pixel_threshold
        )
        percent = (mismatched / total * 100.0) if total else 0.0
        return DiffOutcome(percent=percent, diff_path=written, backend=self.name)
