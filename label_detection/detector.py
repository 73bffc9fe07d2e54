"""
Label detector working on segmentation probability grids
"""

import logging
from typing import Callable, Optional, Tuple

import cv2
import numpy as np

from . import geometry
from .candidates import extract_candidates
from .config import DetectorSettings, load_settings
from .mask import refine_mask
from .models import CorrectionResult, DetectionResult, detection_result
from .perspective import correct_perspective
from .scoring import polygon_mask, score_candidates, select_best
from .statistics import compute_prob_map_stats
from .threshold import select_threshold

logger = logging.getLogger(__name__)

# Pixels above this probability count towards the reported confidence
CONFIDENCE_PROBABILITY = 0.5

SegmentationModel = Callable[[np.ndarray], np.ndarray]


class LabelDetector:
    """
    Class for label detection from a segmentation probability grid.

    Binarizes the grid with a threshold derived from its statistics, finds
    4-corner candidates in the repaired mask, scores them and keeps the
    best one. The detector holds no per-frame state; every call stands on
    its own.
    """

    def __init__(
        self,
        model_width: int = 256,
        model_height: int = 256,
        expand_ratio: float = geometry.DEFAULT_EXPAND_RATIO,
        model: Optional[SegmentationModel] = None
    ):
        """
        Initialize the detector.

        Args:
            model_width: Width of the probability grid produced by the model
            model_height: Height of the probability grid produced by the model
            expand_ratio: Outward growth of the display corners (0.02 = 2%)
            model: Segmentation model, a callable taking a normalized
                   (model_height, model_width, 3) float32 image and returning
                   a probability grid; only needed for detect()
        """
        if model_width <= 0 or model_height <= 0:
            raise ValueError(f"Model size must be positive, got {model_width}x{model_height}")

        self.model_width = model_width
        self.model_height = model_height
        self.expand_ratio = expand_ratio
        self.model = model

    @classmethod
    def from_settings(
        cls,
        settings: Optional[DetectorSettings] = None,
        model: Optional[SegmentationModel] = None
    ) -> "LabelDetector":
        """Create a detector from DetectorSettings (loaded from the environment by default)."""
        if settings is None:
            settings = load_settings()
        return cls(
            model_width=settings.model_width,
            model_height=settings.model_height,
            expand_ratio=settings.expand_ratio,
            model=model
        )

    def _validate_grid(self, prob_map: np.ndarray) -> np.ndarray:
        grid = np.asarray(prob_map)
        if grid.ndim != 2:
            raise ValueError(f"Probability grid must be 2-D, got shape {grid.shape}")
        if grid.shape != (self.model_height, self.model_width):
            raise ValueError(
                f"Probability grid shape {grid.shape} does not match model size "
                f"{self.model_height}x{self.model_width}"
            )
        return np.clip(grid.astype(np.float32), 0.0, 1.0)

    def detect_document_quad(self, prob_map: np.ndarray, live: bool = True) -> Optional[np.ndarray]:
        """
        Find the best label quadrilateral in a probability grid.

        Args:
            prob_map: Probability grid (model_height, model_width)
            live: Live detection (True) or final high quality pass (False)

        Returns:
            Ordered corners (4, 2) in model space, or None if nothing trustworthy was found
        """
        return self._find_quad(self._validate_grid(prob_map), live)

    def _find_quad(self, grid: np.ndarray, live: bool) -> Optional[np.ndarray]:
        stats = compute_prob_map_stats(grid)
        threshold = select_threshold(stats, live=live)
        logger.debug(
            "Grid stats mean=%.4f std=%.4f median=%.4f -> threshold %.3f",
            stats.mean, stats.std_dev, stats.median, threshold
        )

        mask = refine_mask(grid, threshold)
        candidates = extract_candidates(mask)
        if not candidates:
            logger.debug("No candidates found")
            return None

        best = select_best(score_candidates(grid, candidates), live=live)
        if best is None:
            return None

        logger.debug(
            "Best candidate: score=%.3f rect=%.3f area_ratio=%.3f avg_prob=%.3f",
            best.score, best.rectangularity, best.area_ratio, best.avg_probability
        )
        return best.corners.copy()

    def detect_prob_map(self, prob_map: np.ndarray, live: bool = True) -> DetectionResult:
        """
        Run the full pipeline on a probability grid.

        Args:
            prob_map: Probability grid (model_height, model_width), values in [0, 1]
            live: Live detection (True) or final high quality pass (False)

        Returns:
            DetectionResult in model space; detected is False when nothing
            trustworthy was found
        """
        grid = self._validate_grid(prob_map)
        quad = self._find_quad(grid, live)
        if quad is None:
            return DetectionResult.not_detected()

        expanded = geometry.expand_quad(
            quad, self.model_width, self.model_height, self.expand_ratio
        )

        return detection_result(
            corner_points=expanded,
            original_corner_points=quad,
            bounding_box=geometry.bounding_box(expanded),
            confidence=self.calculate_confidence(grid, quad),
            rotation_angle=geometry.rotation_angle(expanded),
            model_width=self.model_width,
            model_height=self.model_height
        )

    def calculate_confidence(self, prob_map: np.ndarray, quad: np.ndarray) -> float:
        """
        Mean probability of the confident (> 0.5) pixels inside the quadrilateral.

        Args:
            prob_map: Probability grid
            quad: Corners in grid coordinates

        Returns:
            Confidence in [0, 1], 0 when no pixel qualifies
        """
        region = polygon_mask(prob_map.shape, quad) > 0
        values = prob_map[region & (prob_map > CONFIDENCE_PROBABILITY)]
        if values.size == 0:
            return 0.0
        return float(values.mean())

    def map_to_image(
        self,
        result: DetectionResult,
        image_width: int,
        image_height: int,
        rotation_degrees: int = 0
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Map the corners of a detection into source-image coordinates.

        The grid covers the analysis image, which is the source image rotated
        clockwise by rotation_degrees.

        Args:
            result: Positive detection
            image_width: Width of the source (sensor) image
            image_height: Height of the source (sensor) image
            rotation_degrees: Clockwise rotation from source to analysis image

        Returns:
            Tuple (expanded_corners, original_corners) in source-image coordinates
        """
        if not result.detected:
            raise ValueError("Cannot map corners of a result that was not detected")

        analysis_size = geometry.rotated_size(image_width, image_height, rotation_degrees)
        model_size = (result.model_width, result.model_height)

        mapped = []
        for quad in (result.corner_points, result.original_corner_points):
            scaled = geometry.scale_quad(quad, model_size, analysis_size)
            mapped.append(
                geometry.unrotate_quad(scaled, rotation_degrees, analysis_size[0], analysis_size[1])
            )
        return mapped[0], mapped[1]

    def prepare_input(self, image: np.ndarray, rotation_degrees: int = 0) -> np.ndarray:
        """
        Turn a camera image into the model input.

        Rotates into analysis orientation, resizes to the model size and
        normalizes to [-1, 1].

        Args:
            image: BGR, BGRA or grayscale image
            rotation_degrees: Clockwise rotation from source to analysis image

        Returns:
            float32 array (model_height, model_width, 3)
        """
        rotation_codes = {
            90: cv2.ROTATE_90_CLOCKWISE,
            180: cv2.ROTATE_180,
            270: cv2.ROTATE_90_COUNTERCLOCKWISE,
        }
        degrees = int(rotation_degrees) % 360
        if degrees in rotation_codes:
            image = cv2.rotate(image, rotation_codes[degrees])
        elif degrees != 0:
            raise ValueError(f"Rotation must be one of {geometry.VALID_ROTATIONS}, got {degrees}")

        if image.ndim == 2:
            image = cv2.cvtColor(image, cv2.COLOR_GRAY2RGB)
        elif image.shape[2] == 4:
            image = cv2.cvtColor(image, cv2.COLOR_BGRA2RGB)
        else:
            image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)

        resized = cv2.resize(image, (self.model_width, self.model_height), interpolation=cv2.INTER_LINEAR)
        return (resized.astype(np.float32) - 127.5) / 127.5

    def detect(self, image: np.ndarray, rotation_degrees: int = 0, live: bool = True) -> DetectionResult:
        """
        Detect a label in a camera image using the segmentation model.

        Args:
            image: Source image (BGR, BGRA or grayscale)
            rotation_degrees: Clockwise rotation from source to analysis image
            live: Live detection (True) or final high quality pass (False)

        Returns:
            DetectionResult in model space
        """
        if image is None or image.size == 0:
            logger.warning("Detection skipped: empty image")
            return DetectionResult.not_detected()
        if self.model is None:
            raise ValueError("detect() needs a segmentation model; use detect_prob_map() for raw grids")

        model_input = self.prepare_input(image, rotation_degrees)

        try:
            output = self.model(model_input)
        except Exception:
            logger.exception("Segmentation model failed")
            return DetectionResult.not_detected()

        prob_map = np.clip(np.squeeze(np.asarray(output, dtype=np.float32)), 0.0, 1.0)
        return self.detect_prob_map(prob_map, live=live)

    def extract_and_correct(
        self,
        image: np.ndarray,
        result: DetectionResult,
        rotation_degrees: int = 0
    ) -> Optional[CorrectionResult]:
        """
        Crop the detected label out of the source image and remove perspective.

        Uses the original corners, never the expanded display corners.

        Args:
            image: Source image the detection refers to
            result: Detection for this image
            rotation_degrees: Clockwise rotation from source to analysis image

        Returns:
            CorrectionResult, or None when there is nothing to correct
        """
        if image is None or result is None or not result.has_valid_corners():
            logger.warning("extract_and_correct: invalid input")
            return None

        h, w = image.shape[:2]
        _, original = self.map_to_image(result, w, h, rotation_degrees)
        return correct_perspective(image, original)
