"""
Quadrilateral geometry and coordinate mapping

Three coordinate systems are involved:
    - model space: the fixed probability grid of the segmentation model
    - analysis space: the camera frame rotated upright for analysis
    - source space: the original sensor image
"""

import logging
from enum import Enum
from typing import Tuple

import numpy as np

from .models import BoundingBox

logger = logging.getLogger(__name__)

VALID_ROTATIONS = (0, 90, 180, 270)
DEFAULT_EXPAND_RATIO = 0.02


def order_corners(corners: np.ndarray) -> np.ndarray:
    """
    Order corners: top-left, top-right, bottom-right, bottom-left.

    The point with the smallest x+y is top-left, the largest x+y is
    bottom-right. The remaining two are split by the side of the
    top-left -> bottom-right diagonal they lie on.

    Args:
        corners: Array with 4 corners [[x1,y1], [x2,y2], [x3,y3], [x4,y4]]

    Returns:
        Ordered corners as float32 array (4, 2)
    """
    pts = np.asarray(corners, dtype=np.float32).reshape(4, 2)
    sums = pts.sum(axis=1)

    tl_idx = int(np.argmin(sums))
    tl = pts[tl_idx]
    rest = [i for i in range(4) if i != tl_idx]
    # Equal sums (diamond shapes): the point farther from top-left is the opposite corner
    br_idx = max(rest, key=lambda i: (sums[i], float(np.linalg.norm(pts[i] - tl))))
    others = [i for i in rest if i != br_idx]

    diagonal = pts[br_idx] - tl

    def cross(i):
        rel = pts[i] - tl
        return float(diagonal[0] * rel[1] - diagonal[1] * rel[0])

    a, b = others
    cross_a, cross_b = cross(a), cross(b)
    if (cross_a < 0) != (cross_b < 0):
        tr_idx, bl_idx = (a, b) if cross_a < 0 else (b, a)
    else:
        # Both on one side (degenerate input): keep the output a permutation
        tr_idx, bl_idx = (a, b) if cross_a <= cross_b else (b, a)

    return pts[[tl_idx, tr_idx, br_idx, bl_idx]].copy()


def signed_area(corners: np.ndarray) -> float:
    """Shoelace area; positive for top-left, top-right, bottom-right, bottom-left order."""
    pts = np.asarray(corners, dtype=np.float64).reshape(-1, 2)
    x, y = pts[:, 0], pts[:, 1]
    return float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y)) / 2.0


def min_corner_distance(corners: np.ndarray) -> float:
    pts = np.asarray(corners, dtype=np.float64).reshape(-1, 2)
    min_dist = float('inf')
    for i in range(len(pts)):
        for j in range(i + 1, len(pts)):
            min_dist = min(min_dist, float(np.linalg.norm(pts[i] - pts[j])))
    return min_dist


def edge_lengths(corners: np.ndarray) -> Tuple[float, float, float, float]:
    """
    Lengths of the top, right, bottom and left edges of an ordered quadrilateral.
    """
    tl, tr, br, bl = np.asarray(corners, dtype=np.float64).reshape(4, 2)
    return (
        float(np.linalg.norm(tr - tl)),
        float(np.linalg.norm(br - tr)),
        float(np.linalg.norm(br - bl)),
        float(np.linalg.norm(bl - tl))
    )


def interior_angles(corners: np.ndarray) -> np.ndarray:
    """Interior angle in degrees at each of the 4 corners."""
    pts = np.asarray(corners, dtype=np.float64).reshape(4, 2)
    angles = np.zeros(4, dtype=np.float64)
    for i in range(4):
        v1 = pts[i - 1] - pts[i]
        v2 = pts[(i + 1) % 4] - pts[i]
        denom = np.linalg.norm(v1) * np.linalg.norm(v2)
        if denom == 0:
            angles[i] = 0.0
            continue
        cos_angle = np.clip(np.dot(v1, v2) / denom, -1.0, 1.0)
        angles[i] = np.degrees(np.arccos(cos_angle))
    return angles


def scale_quad(
    quad: np.ndarray,
    from_size: Tuple[int, int],
    to_size: Tuple[int, int]
) -> np.ndarray:
    """
    Scale a quadrilateral between two grids of different size.

    Args:
        quad: Corners (4, 2)
        from_size: (width, height) of the source grid
        to_size: (width, height) of the target grid

    Returns:
        Scaled corners (4, 2)
    """
    from_w, from_h = from_size
    to_w, to_h = to_size
    scale = np.array([to_w / float(from_w), to_h / float(from_h)], dtype=np.float32)
    return np.asarray(quad, dtype=np.float32).reshape(4, 2) * scale


def expand_quad(
    quad: np.ndarray,
    max_width: float,
    max_height: float,
    expand_ratio: float = DEFAULT_EXPAND_RATIO
) -> np.ndarray:
    """
    Grow a quadrilateral outward from its centroid.

    Compensates the model's tendency to under-segment label edges. The
    result is for display only.

    Args:
        quad: Corners (4, 2)
        max_width: Upper bound for x coordinates
        max_height: Upper bound for y coordinates
        expand_ratio: Relative growth (0.02 = 2%)

    Returns:
        Expanded corners (4, 2), clamped to [0, max_width] x [0, max_height]
    """
    pts = np.asarray(quad, dtype=np.float32).reshape(4, 2)
    center = pts.mean(axis=0)
    expanded = center + (pts - center) * (1.0 + expand_ratio)
    expanded[:, 0] = np.clip(expanded[:, 0], 0, max_width)
    expanded[:, 1] = np.clip(expanded[:, 1], 0, max_height)
    return expanded.astype(np.float32)


def _check_rotation(degrees: int) -> int:
    degrees = int(degrees) % 360
    if degrees not in VALID_ROTATIONS:
        raise ValueError(f"Rotation must be one of {VALID_ROTATIONS}, got {degrees}")
    return degrees


def rotated_size(width: int, height: int, degrees: int) -> Tuple[int, int]:
    """Size of a width x height image after rotating it by degrees."""
    if _check_rotation(degrees) in (90, 270):
        return height, width
    return width, height


def rotate_points(points: np.ndarray, degrees: int, width: float, height: float) -> np.ndarray:
    """
    Map points of a width x height image into the same image rotated clockwise.

    Args:
        points: Array (N, 2)
        degrees: Clockwise rotation, one of 0, 90, 180, 270
        width: Width of the unrotated image
        height: Height of the unrotated image

    Returns:
        Array (N, 2) in the rotated image
    """
    degrees = _check_rotation(degrees)
    pts = np.asarray(points, dtype=np.float32).reshape(-1, 2)
    x, y = pts[:, 0], pts[:, 1]

    if degrees == 90:
        rotated = np.column_stack((height - y, x))
    elif degrees == 180:
        rotated = np.column_stack((width - x, height - y))
    elif degrees == 270:
        rotated = np.column_stack((y, width - x))
    else:
        rotated = pts.copy()

    return rotated.astype(np.float32)


def rotate_quad(quad: np.ndarray, degrees: int, width: float, height: float) -> np.ndarray:
    """
    Rotate a quadrilateral clockwise together with its image and re-order it.

    Rotation moves the corner roles around (top-left can become top-right),
    so the result goes through order_corners again.
    """
    return order_corners(rotate_points(quad, degrees, width, height))


def unrotate_quad(quad: np.ndarray, degrees: int, rotated_width: float, rotated_height: float) -> np.ndarray:
    """
    Map a quadrilateral from a rotated (analysis) image back into the sensor image.

    Args:
        quad: Corners (4, 2) in the rotated image
        degrees: Clockwise rotation that was applied to the sensor image
        rotated_width: Width of the rotated image
        rotated_height: Height of the rotated image

    Returns:
        Ordered corners (4, 2) in sensor-image coordinates
    """
    inverse = (360 - _check_rotation(degrees)) % 360
    return rotate_quad(quad, inverse, rotated_width, rotated_height)


def bounding_box(quad: np.ndarray) -> BoundingBox:
    pts = np.asarray(quad, dtype=np.float32).reshape(-1, 2)
    return BoundingBox(
        left=float(pts[:, 0].min()),
        top=float(pts[:, 1].min()),
        right=float(pts[:, 0].max()),
        bottom=float(pts[:, 1].max())
    )


def rotation_angle(quad: np.ndarray) -> float:
    """Angle of the top edge (top-left -> top-right) in degrees."""
    pts = np.asarray(quad, dtype=np.float32).reshape(4, 2)
    dx = pts[1][0] - pts[0][0]
    dy = pts[1][1] - pts[0][1]
    return float(np.degrees(np.arctan2(dy, dx)))


class ScaleMode(Enum):
    """How an analysis image is fitted into a view"""
    FIT_START = "fit_start"
    CENTER_CROP = "center_crop"


class ViewTransformer:
    """
    Maps image coordinates onto a view (screen) for overlay rendering.

    The image is scaled to fill the view. FIT_START aligns it top-left and
    crops on the right/bottom, CENTER_CROP centres it and crops both sides.
    """

    def __init__(
        self,
        image_width: int,
        image_height: int,
        view_width: int,
        view_height: int,
        rotation_degrees: int = 0,
        scale_mode: ScaleMode = ScaleMode.FIT_START
    ):
        """
        Args:
            image_width: Image width before rotation
            image_height: Image height before rotation
            view_width: Visible view width
            view_height: Visible view height
            rotation_degrees: Clockwise image rotation (0, 90, 180, 270)
            scale_mode: Alignment of the scaled image inside the view
        """
        self.image_width = image_width
        self.image_height = image_height
        self.view_width = view_width
        self.view_height = view_height
        self.rotation_degrees = _check_rotation(rotation_degrees)
        self.scale_mode = scale_mode

        eff_w, eff_h = self.effective_image_size()
        self.scale = max(view_width / float(eff_w), view_height / float(eff_h))

        if scale_mode == ScaleMode.CENTER_CROP:
            self.offset_x = (view_width - eff_w * self.scale) / 2.0
            self.offset_y = (view_height - eff_h * self.scale) / 2.0
        else:
            self.offset_x = 0.0
            self.offset_y = 0.0

        logger.debug(
            "View transform: image=%dx%d view=%dx%d scale=%.4f mode=%s offset=(%.1f, %.1f)",
            eff_w, eff_h, view_width, view_height, self.scale,
            scale_mode.value, self.offset_x, self.offset_y
        )

    def effective_image_size(self) -> Tuple[int, int]:
        return rotated_size(self.image_width, self.image_height, self.rotation_degrees)

    def image_to_view(self, points: np.ndarray) -> np.ndarray:
        """
        Map image points to view coordinates.

        Args:
            points: Array (N, 2) in unrotated image coordinates

        Returns:
            Array (N, 2) in view coordinates
        """
        rotated = rotate_points(points, self.rotation_degrees, self.image_width, self.image_height)
        offset = np.array([self.offset_x, self.offset_y], dtype=np.float32)
        return rotated * np.float32(self.scale) + offset
