"""Structural similarity (SSIM) score between two captures."""

from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image
from skimage.metrics import structural_similarity as ssim

from visual_testing.errors import DimensionMismatch

DEFAULT_WINDOW = 7


def _load_rgb(path: Path) -> np.ndarray:
    with Image.open(path) as img:
        return np.asarray(img.convert("RGB"), dtype=np.uint8)


def _global_ssim(arr1: np.ndarray, arr2: np.ndarray) -> float:
    """Single-window SSIM for images too small for a sliding window."""
    a = arr1.astype(np.float64)
    b = arr2.astype(np.float64)
    c1 = (0.01 * 255) ** 2
    c2 = (0.03 * 255) ** 2
    mu1, mu2 = a.mean(), b.mean()
    sigma12 = np.mean((a - mu1) * (b - mu2))
    numerator = (2 * mu1 * mu2 + c1) * (2 * sigma12 + c2)
    denominator = (mu1 ** 2 + mu2 ** 2 + c1) * (a.var() + b.var() + c2)
    return float(numerator / denominator)


def structural_similarity_arrays(arr1: np.ndarray, arr2: np.ndarray) -> float:
    """SSIM in [0, 1] for two RGB arrays; 1.0 means identical."""
    if arr1.shape[:2] != arr2.shape[:2]:
        raise DimensionMismatch((arr1.shape[1], arr1.shape[0]), (arr2.shape[1], arr2.shape[0]))
    if np.array_equal(arr1, arr2):
        return 1.0

    win_size = min(DEFAULT_WINDOW, *arr1.shape[:2])
    if win_size % 2 == 0:
        win_size -= 1
    if win_size < 3:
        score = _global_ssim(arr1, arr2)
    else:
        score = ssim(arr1, arr2, win_size=win_size, channel_axis=2, data_range=255)
    return float(np.clip(score, 0.0, 1.0))


def structural_similarity(baseline_path: Path, current_path: Path) -> float:
    return structural_similarity_arrays(_load_rgb(baseline_path), _load_rgb(current_path))
