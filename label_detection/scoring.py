"""
Scoring and selection of quadrilateral candidates
"""

import logging
from typing import List, Optional

import cv2
import numpy as np

from .geometry import edge_lengths, interior_angles
from .models import LabelCandidate

logger = logging.getLogger(__name__)

# Interior angle deviation (degrees) at which the angle score reaches 0
ANGLE_TOLERANCE = 30.0

# Area ratio band considered fully plausible
AREA_RATIO_LOW = 0.05
AREA_RATIO_HIGH = 0.6

RECTANGULARITY_WEIGHT = 0.5
AREA_WEIGHT = 0.3
PROBABILITY_WEIGHT = 0.2

LIVE_MIN_SCORE = 0.4
FINAL_MIN_SCORE = 0.5


def rectangularity(corners: np.ndarray) -> float:
    """
    How close an ordered quadrilateral is to a rectangle (0-1).

    Mean of an angle score (interior angles near 90 degrees) and a side
    ratio score (opposite sides of equal length).
    """
    angles = interior_angles(corners)
    angle_scores = np.clip(1.0 - np.abs(angles - 90.0) / ANGLE_TOLERANCE, 0.0, 1.0)
    angle_score = float(angle_scores.mean())

    top, right, bottom, left = edge_lengths(corners)

    def side_ratio(a, b):
        longest = max(a, b)
        return min(a, b) / longest if longest > 0 else 0.0

    side_score = (side_ratio(top, bottom) + side_ratio(left, right)) / 2.0

    return (angle_score + side_score) / 2.0


def area_score(area_ratio: float) -> float:
    """
    Plausibility of the covered area: 1 inside [0.05, 0.6], linear falloff
    to 0 at ratio 0 and at ratio 1.
    """
    if area_ratio < AREA_RATIO_LOW:
        return max(0.0, area_ratio / AREA_RATIO_LOW)
    if area_ratio > AREA_RATIO_HIGH:
        return max(0.0, (1.0 - area_ratio) / (1.0 - AREA_RATIO_HIGH))
    return 1.0


def polygon_mask(shape, corners: np.ndarray) -> np.ndarray:
    """uint8 mask with the filled polygon set to 255."""
    mask = np.zeros(shape[:2], dtype=np.uint8)
    cv2.fillPoly(mask, [np.round(corners).astype(np.int32).reshape(-1, 1, 2)], 255)
    return mask


def mean_probability(prob_map: np.ndarray, corners: np.ndarray) -> float:
    """Mean probability over the pixels inside the polygon (0 when it covers none)."""
    mask = polygon_mask(prob_map.shape, corners)
    inside = prob_map[mask > 0]
    if inside.size == 0:
        return 0.0
    return float(inside.mean())


def score_candidates(prob_map: np.ndarray, candidates: List[LabelCandidate]) -> List[LabelCandidate]:
    """
    Fill in the scoring fields of every candidate and sort them by score.

    Args:
        prob_map: Probability grid (H, W) the candidates came from
        candidates: Candidates with corners and area

    Returns:
        The same candidates, best first
    """
    grid_area = float(prob_map.shape[0] * prob_map.shape[1])

    for cand in candidates:
        cand.rectangularity = rectangularity(cand.corners)
        cand.area_ratio = cand.area / grid_area if grid_area > 0 else 0.0
        cand.avg_probability = mean_probability(prob_map, cand.corners)
        cand.score = (
            RECTANGULARITY_WEIGHT * cand.rectangularity
            + AREA_WEIGHT * area_score(cand.area_ratio)
            + PROBABILITY_WEIGHT * cand.avg_probability
        )

    candidates.sort(key=lambda c: c.score, reverse=True)
    return candidates


def select_best(candidates: List[LabelCandidate], live: bool = True) -> Optional[LabelCandidate]:
    """
    Pick the top scored candidate if it is trustworthy enough.

    Args:
        candidates: Scored candidates, best first
        live: Live detection accepts a lower score than the final pass

    Returns:
        Best candidate, or None when nothing reaches the minimum score
    """
    if not candidates:
        return None

    best = candidates[0]
    min_score = LIVE_MIN_SCORE if live else FINAL_MIN_SCORE
    if best.score < min_score:
        logger.debug("Best candidate rejected: score %.3f < %.2f", best.score, min_score)
        return None

    return best
