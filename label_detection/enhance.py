"""
Sharpness check and contrast enhancement of corrected label crops
"""

import logging
from dataclasses import dataclass

import cv2
import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class EnhanceParams:
    clahe_clip_limit: float = 2.0
    clahe_tile_size: int = 16
    sharpen_strength: float = 0.2


def _to_gray(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def calculate_sharpness(image: np.ndarray) -> float:
    """
    Variance of the Laplacian; higher means sharper.

    Computed on a quarter-size grayscale copy for speed.

    Args:
        image: BGR, BGRA or grayscale image

    Returns:
        Laplacian variance, 0 for an empty image
    """
    if image is None or image.size == 0:
        return 0.0

    gray = _to_gray(image)
    h, w = gray.shape[:2]
    small = cv2.resize(gray, (max(1, w // 4), max(1, h // 4)))

    laplacian = cv2.Laplacian(small, cv2.CV_64F)
    _, stddev = cv2.meanStdDev(laplacian)
    return float(stddev[0][0] ** 2)


def is_sharp(image: np.ndarray, threshold: float = 100.0) -> bool:
    """
    Check whether an image is sharp enough for recognition.

    Args:
        image: Input image
        threshold: Minimum Laplacian variance (100-200 works for labels)
    """
    sharpness = calculate_sharpness(image)
    if sharpness < threshold:
        logger.debug("Image too blurry, sharpness=%.1f, threshold=%.1f", sharpness, threshold)
        return False
    return True


def enhance(image: np.ndarray, params: EnhanceParams = None) -> np.ndarray:
    """
    CLAHE contrast enhancement followed by unsharp masking.

    Args:
        image: BGR, BGRA or grayscale image
        params: Enhancement parameters (defaults when None)

    Returns:
        Enhanced grayscale image
    """
    if params is None:
        params = EnhanceParams()

    gray = _to_gray(image)

    clahe = cv2.createCLAHE(
        clipLimit=params.clahe_clip_limit,
        tileGridSize=(params.clahe_tile_size, params.clahe_tile_size)
    )
    enhanced = clahe.apply(gray)

    if params.sharpen_strength > 0.01:
        blurred = cv2.GaussianBlur(enhanced, (0, 0), 1.5)
        enhanced = cv2.addWeighted(
            enhanced, 1.0 + params.sharpen_strength,
            blurred, -params.sharpen_strength,
            0
        )

    return enhanced
