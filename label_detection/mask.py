"""
Binary mask construction and morphological repair
"""

import cv2
import numpy as np

# 3x3 structuring element shared by closing and opening
KERNEL_SIZE = 3


def binarize(prob_map: np.ndarray, threshold: float) -> np.ndarray:
    """
    Binarize a probability grid.

    Args:
        prob_map: Probability grid (H, W)
        threshold: Pixels with p >= threshold become foreground

    Returns:
        uint8 mask with values 0 / 255
    """
    return np.where(np.asarray(prob_map) >= threshold, 255, 0).astype(np.uint8)


def refine_mask(prob_map: np.ndarray, threshold: float) -> np.ndarray:
    """
    Binarize the grid and repair the result.

    Closing runs first to reconnect broken label edges, opening second to
    drop speckles.

    Args:
        prob_map: Probability grid (H, W)
        threshold: Binarization threshold

    Returns:
        uint8 mask with values 0 / 255
    """
    binary = binarize(prob_map, threshold)

    kernel = np.ones((KERNEL_SIZE, KERNEL_SIZE), np.uint8)
    closed = cv2.morphologyEx(binary, cv2.MORPH_CLOSE, kernel)
    return cv2.morphologyEx(closed, cv2.MORPH_OPEN, kernel)
