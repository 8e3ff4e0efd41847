"""Pixel-level comparison of captured images against golden images.

``compare_images`` scores two equally sized images: the fraction of
pixels whose colours match within a tolerance, an SSIM score, and an
optional difference image highlighting the pixels that did not match.

Pixels are compared in a normalised 4-component space: every channel
is scaled to ``[0, 1]`` and images without an alpha channel are treated
as fully opaque.  Two pixels match when the Euclidean distance between
them is strictly below the tolerance, or when they are identical if the
tolerance is zero.

Typical usage::

    options = ImageCompareOptions(pixel_match_tolerance=0.01)
    result = compare_images(options, captured, golden)
    if result.pixel_match_fraction < 1.0:
        ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import cv2
import numpy as np
from numpy.typing import NDArray
from skimage.metrics import structural_similarity

logger = logging.getLogger(__name__)

# SSIM stabilisation constants, relative to the dynamic range L = 1.0.
_SSIM_K1: float = 0.01
_SSIM_K2: float = 0.03

# Smallest window structural_similarity accepts.
_SSIM_MIN_WINDOW: int = 3


@dataclass
class ImageCompareOptions:
    """Options controlling ``compare_images``.

    Attributes:
        enable_ssim: Compute an SSIM score for images that are not an
            exact match.
        enable_difference_image: Produce a difference image.
        pixel_match_tolerance: Colour distance below which two pixels
            match.  ``0.0`` requires identical pixels.
        ssim_block_size: Side length in pixels of the SSIM window.
    """

    enable_ssim: bool = True
    enable_difference_image: bool = False
    pixel_match_tolerance: float = 0.0
    ssim_block_size: int = 8


@dataclass
class ImageCompareResult:
    """Result of ``compare_images``.

    Attributes:
        pixel_match_fraction: Matched pixels over total pixels (0-1).
        ssim: Structural similarity score (0-1).  Exactly ``1.0`` when
            every pixel matched.
        difference_image: Same shape and dtype as the first input;
            mismatching pixels hold a grey level of half their colour
            distance, matching pixels are left at zero.  ``None`` unless
            requested.
    """

    pixel_match_fraction: float = 0.0
    ssim: float = 0.0
    difference_image: NDArray | None = None


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------


def _native_max(image: NDArray) -> float:
    """Largest representable channel value for *image*'s dtype."""
    if np.issubdtype(image.dtype, np.integer):
        return float(np.iinfo(image.dtype).max)
    return 1.0


def _to_normalized_rgba(image: NDArray) -> NDArray[np.float64]:
    """Return *image* as a ``(H, W, 4)`` float array in ``[0, 1]``."""
    data = image.astype(np.float64) / _native_max(image)
    if data.ndim == 2:
        data = data[:, :, np.newaxis]

    channels = data.shape[2]
    if channels == 1:
        data = np.repeat(data, 3, axis=2)
    elif channels == 2:
        # Gray + alpha.
        gray = np.repeat(data[:, :, :1], 3, axis=2)
        data = np.concatenate([gray, data[:, :, 1:2]], axis=2)
    elif channels > 4:
        data = data[:, :, :4]

    if data.shape[2] == 3:
        alpha = np.ones(data.shape[:2] + (1,), dtype=np.float64)
        data = np.concatenate([data, alpha], axis=2)
    return data


def _to_gray(image: NDArray) -> NDArray[np.float64]:
    """Return *image* as a single-channel float array in ``[0, 1]``."""
    rgba = _to_normalized_rgba(image).astype(np.float32)
    gray = cv2.cvtColor(rgba, cv2.COLOR_BGRA2GRAY)
    return gray.astype(np.float64)


def _global_ssim(gray_a: NDArray[np.float64], gray_b: NDArray[np.float64]) -> float:
    """SSIM of two grayscale images taken as one block."""
    c1 = _SSIM_K1**2
    c2 = _SSIM_K2**2

    mu_a = gray_a.mean()
    mu_b = gray_b.mean()
    sigma_a_sq = gray_a.var()
    sigma_b_sq = gray_b.var()
    sigma_ab = ((gray_a - mu_a) * (gray_b - mu_b)).mean()

    score = ((2.0 * mu_a * mu_b + c1) * (2.0 * sigma_ab + c2)) / (
        (mu_a**2 + mu_b**2 + c1) * (sigma_a_sq + sigma_b_sq + c2)
    )
    return float(np.clip(score, 0.0, 1.0))


def _make_difference_image(
    reference: NDArray,
    distance: NDArray[np.float64],
    mismatched: NDArray[np.bool_],
) -> NDArray:
    native_max = _native_max(reference)
    diff = np.zeros_like(reference)
    level = np.clip(distance / 2.0, 0.0, 1.0) * native_max
    if np.issubdtype(reference.dtype, np.integer):
        level = np.round(level)
    level = level.astype(reference.dtype)

    if diff.ndim == 2:
        diff[mismatched] = level[mismatched]
        return diff

    channels = diff.shape[2]
    colour_channels = min(channels, 3)
    for c in range(colour_channels):
        plane = diff[:, :, c]
        plane[mismatched] = level[mismatched]
    if channels == 4:
        alpha = diff[:, :, 3]
        alpha[mismatched] = native_max
    return diff


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------


def compute_ssim(image_a: NDArray, image_b: NDArray, block_size: int = 8) -> float:
    """Structural similarity of two equally sized images.

    Both images are converted to normalised grayscale and scored with
    ``skimage.metrics.structural_similarity`` over a square window of
    ``block_size`` pixels.  The window is made odd, at least 3 and no
    larger than the smaller image side.  Images narrower than 3 pixels
    cannot hold a window; they are scored from global statistics as a
    single block.

    Args:
        image_a: First image.
        image_b: Second image, same height and width as *image_a*.
        block_size: Window side length in pixels.

    Returns:
        SSIM score in ``[0, 1]``.
    """
    gray_a = _to_gray(image_a)
    gray_b = _to_gray(image_b)

    side = min(gray_a.shape[0], gray_a.shape[1])
    if side < _SSIM_MIN_WINDOW:
        return _global_ssim(gray_a, gray_b)

    window = min(block_size, side)
    if window % 2 == 0:
        window -= 1
    window = max(_SSIM_MIN_WINDOW, window)

    score = structural_similarity(gray_a, gray_b, win_size=window, data_range=1.0)
    return float(np.clip(score, 0.0, 1.0))


def compare_images(
    options: ImageCompareOptions,
    image_a: NDArray | None,
    image_b: NDArray | None,
) -> ImageCompareResult:
    """Compare two images pixel by pixel.

    Missing images and size mismatches are reported through the log
    and yield an all-zero result; they never raise.

    Args:
        options: Comparison options.
        image_a: First image, usually the capture.
        image_b: Second image, usually the golden reference.

    Returns:
        An ``ImageCompareResult`` describing the similarity.
    """
    result = ImageCompareResult()

    if image_a is None or image_b is None:
        logger.error("Must provide 2 images for comparison")
        return result

    if image_a.shape[:2] != image_b.shape[:2]:
        logger.error(
            "Image sizes must match for comparison (%dx%d vs %dx%d)",
            image_a.shape[1],
            image_a.shape[0],
            image_b.shape[1],
            image_b.shape[0],
        )
        return result

    total_pixels = image_a.shape[0] * image_a.shape[1]
    if total_pixels == 0:
        logger.error("Cannot compare empty images")
        return result

    rgba_a = _to_normalized_rgba(image_a)
    rgba_b = _to_normalized_rgba(image_b)

    distance = np.linalg.norm(rgba_a - rgba_b, axis=2)
    if options.pixel_match_tolerance == 0.0:
        matched = np.all(rgba_a == rgba_b, axis=2)
    else:
        matched = distance < options.pixel_match_tolerance

    matched_count = int(np.count_nonzero(matched))
    result.pixel_match_fraction = matched_count / total_pixels

    if options.enable_difference_image:
        result.difference_image = _make_difference_image(image_a, distance, ~matched)

    # A full match needs no structural analysis.
    if matched_count == total_pixels:
        result.ssim = 1.0
    elif options.enable_ssim:
        result.ssim = compute_ssim(image_a, image_b, options.ssim_block_size)

    return result
