"""
Value objects passed between the detection stages
"""

from dataclasses import dataclass, fields
from typing import Optional, Tuple

import cv2
import numpy as np


@dataclass(frozen=True)
class ProbMapStats:
    """Summary statistics of a probability grid."""

    mean: float
    std_dev: float
    median: float
    min: float
    max: float


@dataclass(frozen=True)
class BoundingBox:
    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    def center(self) -> Tuple[float, float]:
        return (self.left + self.width / 2, self.top + self.height / 2)

    def area(self) -> float:
        return self.width * self.height


@dataclass(eq=False)
class LabelCandidate:
    """
    Provisional 4-corner polygon found in the refined mask.

    Scoring fields stay at 0 until the candidate went through the scorer.
    """

    corners: np.ndarray
    area: float
    rectangularity: float = 0.0
    area_ratio: float = 0.0
    avg_probability: float = 0.0
    score: float = 0.0

    __hash__ = None

    def __eq__(self, other):
        return _fields_equal(self, other)


@dataclass(frozen=True, eq=False)
class DetectionResult:
    """
    Outcome of one detection call.

    corner_points are grown outward from the centroid and only meant for
    display. original_corner_points follow the true label edge and are the
    ones to crop with. Both are in model-grid coordinates.
    """

    detected: bool = False
    corner_points: Optional[np.ndarray] = None
    original_corner_points: Optional[np.ndarray] = None
    bounding_box: Optional[BoundingBox] = None
    confidence: float = 0.0
    rotation_angle: float = 0.0
    model_width: int = 0
    model_height: int = 0

    @classmethod
    def not_detected(cls) -> "DetectionResult":
        return cls()

    def has_valid_corners(self) -> bool:
        return self.corner_points is not None and len(self.corner_points) == 4

    __hash__ = None

    def __eq__(self, other):
        return _fields_equal(self, other)


def detection_result(
    corner_points: np.ndarray,
    original_corner_points: np.ndarray,
    bounding_box: BoundingBox,
    confidence: float,
    rotation_angle: float,
    model_width: int,
    model_height: int
) -> DetectionResult:
    """
    Build a positive detection.

    Corner arrays are copied and made read-only.
    """
    expanded = np.array(corner_points, dtype=np.float32).reshape(4, 2)
    original = np.array(original_corner_points, dtype=np.float32).reshape(4, 2)
    expanded.setflags(write=False)
    original.setflags(write=False)

    return DetectionResult(
        detected=True,
        corner_points=expanded,
        original_corner_points=original,
        bounding_box=bounding_box,
        confidence=float(confidence),
        rotation_angle=float(rotation_angle),
        model_width=int(model_width),
        model_height=int(model_height)
    )


@dataclass
class CorrectionResult:
    """
    Perspective-corrected crop.

    perspective_matrix maps source-image points into the corrected image,
    inverse_matrix maps them back.
    """

    corrected_image: np.ndarray
    perspective_matrix: np.ndarray
    width: int
    height: int
    inverse_matrix: Optional[np.ndarray] = None

    def __post_init__(self):
        if self.inverse_matrix is None:
            self.inverse_matrix = np.linalg.inv(self.perspective_matrix)

    def map_to_source(self, points: np.ndarray) -> np.ndarray:
        """
        Map points measured in the corrected image back into the source image.

        Args:
            points: Array of shape (N, 2)

        Returns:
            Array of shape (N, 2) in source-image coordinates
        """
        return _transform_points(points, self.inverse_matrix)

    def map_to_corrected(self, points: np.ndarray) -> np.ndarray:
        """Map source-image points into the corrected image."""
        return _transform_points(points, self.perspective_matrix)


def _transform_points(points: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 1, 2)
    return cv2.perspectiveTransform(pts, np.asarray(matrix, dtype=np.float64)).reshape(-1, 2)


def _fields_equal(a, b) -> bool:
    """Field-wise equality of two dataclasses of the same type, comparing arrays by value."""
    if type(a) is not type(b):
        return NotImplemented
    for f in fields(a):
        left, right = getattr(a, f.name), getattr(b, f.name)
        if isinstance(left, np.ndarray) or isinstance(right, np.ndarray):
            if left is None or right is None or not np.array_equal(left, right):
                return False
        elif left != right:
            return False
    return True
