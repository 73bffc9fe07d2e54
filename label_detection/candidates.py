"""
Quadrilateral candidates from a refined binary mask
"""

import logging
from typing import List, Optional

import cv2
import numpy as np

from .geometry import min_corner_distance, order_corners, signed_area
from .models import LabelCandidate

logger = logging.getLogger(__name__)

MIN_AREA_RATIO = 0.005
MAX_AREA_RATIO = 0.9

# Polygon simplification tolerances, as fraction of the contour perimeter
APPROX_EPSILONS = (0.02, 0.03, 0.04, 0.05)

# Vertices closer than this (grid units) make a candidate degenerate
MIN_VERTEX_DISTANCE = 3.0

CANNY_LOW = 75
CANNY_HIGH = 200


def find_boundary_contours(mask: np.ndarray) -> List[np.ndarray]:
    """
    Edge-detect the mask and return its external contours.

    Args:
        mask: uint8 mask (H, W) with values 0 / 255

    Returns:
        List of contours as returned by cv2.findContours
    """
    blurred = cv2.GaussianBlur(mask, (5, 5), 0)
    edges = cv2.Canny(blurred, CANNY_LOW, CANNY_HIGH)

    # Light dilation keeps the edge loops closed at the corners
    kernel = np.ones((3, 3), np.uint8)
    edges = cv2.dilate(edges, kernel, iterations=1)

    contours, _ = cv2.findContours(edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    return list(contours)


def approximate_quad(contour: np.ndarray) -> Optional[np.ndarray]:
    """
    Simplify a contour into 4 vertices.

    Tolerances grow until a 4-vertex polygon comes out. When none does, the
    simplification with the fewest vertices above 4 is reduced to its
    minimum-area rectangle.

    Args:
        contour: Contour points

    Returns:
        Unordered corners (4, 2) or None when the contour cannot give 4 vertices
    """
    peri = cv2.arcLength(contour, True)
    closest = None

    for eps in APPROX_EPSILONS:
        approx = cv2.approxPolyDP(contour, eps * peri, True)
        if len(approx) == 4:
            return approx.reshape(4, 2).astype(np.float32)
        if len(approx) > 4 and (closest is None or len(approx) < len(closest)):
            closest = approx

    if closest is None:
        return None

    rect = cv2.minAreaRect(closest.reshape(-1, 2).astype(np.float32))
    return cv2.boxPoints(rect).astype(np.float32)


def extract_candidates(mask: np.ndarray) -> List[LabelCandidate]:
    """
    Find 4-corner candidates in a refined mask.

    Only corners and area are filled in; scoring happens later. An empty
    list means nothing was found, not an error.

    Args:
        mask: uint8 mask (H, W) with values 0 / 255

    Returns:
        List of LabelCandidate with ordered corners
    """
    grid_area = float(mask.shape[0] * mask.shape[1])
    if grid_area == 0:
        return []

    min_area = grid_area * MIN_AREA_RATIO
    max_area = grid_area * MAX_AREA_RATIO

    candidates = []
    for contour in find_boundary_contours(mask):
        contour_area = cv2.contourArea(contour)
        if contour_area < min_area or contour_area > max_area:
            continue

        quad = approximate_quad(contour)
        if quad is None:
            continue

        corners = order_corners(quad)

        if min_corner_distance(corners) < MIN_VERTEX_DISTANCE:
            continue

        area = signed_area(corners)
        if area <= 0:
            continue

        candidates.append(LabelCandidate(corners=corners, area=area))

    logger.debug("Extracted %d candidate(s)", len(candidates))
    return candidates
