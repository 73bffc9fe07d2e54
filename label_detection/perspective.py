"""
Perspective correction of a detected label
"""

import logging
from typing import Optional, Tuple

import cv2
import numpy as np

from .geometry import edge_lengths
from .models import CorrectionResult

logger = logging.getLogger(__name__)


def target_size(corners: np.ndarray) -> Tuple[int, int]:
    """
    Size of the corrected image for an ordered quadrilateral.

    Width is the mean of the top and bottom edges, height the mean of the
    left and right edges. Corner order must be exact; mixed-up edges give a
    sheared crop.

    Args:
        corners: Ordered corners (top-left, top-right, bottom-right, bottom-left)

    Returns:
        Tuple (width, height) in pixels
    """
    top, right, bottom, left = edge_lengths(corners)
    width = int(round((top + bottom) / 2.0))
    height = int(round((left + right) / 2.0))
    return width, height


def correct_perspective(image: np.ndarray, corners: np.ndarray) -> Optional[CorrectionResult]:
    """
    Warp the quadrilateral region of an image into an axis-aligned rectangle.

    Args:
        image: Source image (H, W) or (H, W, C) with 3 or 4 channels
        corners: Original (not expanded) ordered corners in image coordinates

    Returns:
        CorrectionResult, or None when the input or the geometry is degenerate
    """
    if image is None or image.size == 0:
        logger.warning("Perspective correction skipped: empty image")
        return None

    src = np.asarray(corners, dtype=np.float32)
    if src.shape != (4, 2):
        logger.warning("Perspective correction skipped: expected 4 corners, got shape %s", src.shape)
        return None

    width, height = target_size(src)
    if width <= 0 or height <= 0:
        logger.warning("Perspective correction skipped: invalid target size %dx%d", width, height)
        return None

    dst = np.array([
        [0, 0],
        [width, 0],
        [width, height],
        [0, height]
    ], dtype=np.float32)

    matrix = cv2.getPerspectiveTransform(src, dst)
    try:
        inverse = np.linalg.inv(matrix)
    except np.linalg.LinAlgError:
        logger.warning("Perspective correction skipped: singular homography")
        return None

    corrected = cv2.warpPerspective(image, matrix, (width, height), flags=cv2.INTER_LINEAR)

    logger.debug("Perspective correction: output size %dx%d", width, height)

    return CorrectionResult(
        corrected_image=corrected,
        perspective_matrix=matrix,
        width=width,
        height=height,
        inverse_matrix=inverse
    )
