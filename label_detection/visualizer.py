"""
Visualization of a detected label
"""

from typing import Optional, Tuple

import cv2
import numpy as np

from .models import DetectionResult

Point = Tuple[float, float]


def clip_segment(p1, p2, width: float, height: float) -> Optional[Tuple[Point, Point]]:
    """
    Clip a segment to the rectangle [0, width] x [0, height] (Liang-Barsky).

    Args:
        p1: Segment start (x, y)
        p2: Segment end (x, y)
        width: Image width
        height: Image height

    Returns:
        Clipped (start, end), or None when the segment lies fully outside
    """
    x1, y1 = float(p1[0]), float(p1[1])
    dx = float(p2[0]) - x1
    dy = float(p2[1]) - y1

    t_enter, t_exit = 0.0, 1.0
    for p, q in ((-dx, x1), (dx, width - x1), (-dy, y1), (dy, height - y1)):
        if p == 0:
            if q < 0:
                return None
            continue
        t = q / p
        if p < 0:
            t_enter = max(t_enter, t)
        else:
            t_exit = min(t_exit, t)
        if t_enter > t_exit:
            return None

    return (
        (x1 + t_enter * dx, y1 + t_enter * dy),
        (x1 + t_exit * dx, y1 + t_exit * dy)
    )


class LabelVisualizer:
    """
    Class for drawing a label detection onto an image.

    The expanded quadrilateral is drawn as a translucent fill with a frame
    and corner dots. Expanded corners may lie on or past the image border,
    so frame edges are clipped before drawing.
    """

    def __init__(
        self,
        border_color: Tuple[int, int, int] = (0, 200, 0),  # BGR
        border_thickness: int = 3,
        fill_color: Tuple[int, int, int] = (120, 230, 120),
        fill_alpha: float = 0.3,
        corner_radius: int = 5
    ):
        """
        Args:
            border_color: Frame and corner color in BGR format
            border_thickness: Frame thickness in pixels
            fill_color: Fill color in BGR format
            fill_alpha: Fill opacity (0.0 = invisible, 1.0 = opaque)
            corner_radius: Radius of the corner dots, 0 disables them
        """
        self.border_color = border_color
        self.border_thickness = border_thickness
        self.fill_color = fill_color
        self.fill_alpha = fill_alpha
        self.corner_radius = corner_radius

    def _draw_fill(self, image: np.ndarray, corners: np.ndarray) -> np.ndarray:
        if self.fill_alpha <= 0:
            return image
        layer = image.copy()
        cv2.fillPoly(layer, [np.round(corners).astype(np.int32)], self.fill_color)
        return cv2.addWeighted(layer, self.fill_alpha, image, 1 - self.fill_alpha, 0)

    def _draw_frame(self, image: np.ndarray, corners: np.ndarray):
        h, w = image.shape[:2]

        for start, end in zip(corners, np.roll(corners, -1, axis=0)):
            clipped = clip_segment(start, end, w, h)
            if clipped is None:
                continue
            a, b = clipped
            cv2.line(
                image,
                (int(round(a[0])), int(round(a[1]))),
                (int(round(b[0])), int(round(b[1]))),
                self.border_color,
                self.border_thickness
            )

        if self.corner_radius > 0:
            for x, y in corners:
                if 0 <= x <= w and 0 <= y <= h:
                    cv2.circle(image, (int(x), int(y)), self.corner_radius, self.border_color, -1)

    @staticmethod
    def _draw_confidence(image: np.ndarray, confidence: float):
        text = f"Confidence: {confidence * 100:.1f}%"
        for color, thickness in (((255, 255, 255), 2), ((0, 0, 0), 1)):
            cv2.putText(image, text, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.7, color, thickness, cv2.LINE_AA)

    def visualize(
        self,
        image: np.ndarray,
        corners: Optional[np.ndarray],
        confidence: Optional[float] = None
    ) -> np.ndarray:
        """
        Draw a quadrilateral on a copy of the image.

        Args:
            image: Input image (BGR format)
            corners: 4 corners in image coordinates, None draws nothing
            confidence: Optional confidence printed in the top left corner

        Returns:
            Image with visualization
        """
        if image is None or corners is None:
            return image

        corners = np.asarray(corners, dtype=np.float32).reshape(4, 2)

        result = self._draw_fill(image.copy(), corners)
        self._draw_frame(result, corners)
        if confidence is not None:
            self._draw_confidence(result, confidence)

        return result

    def visualize_detection(
        self,
        image: np.ndarray,
        result: DetectionResult,
        expanded_corners: Optional[np.ndarray] = None
    ) -> np.ndarray:
        """
        Draw a detection on an image.

        Args:
            image: Image the detection was mapped onto
            result: Detection result
            expanded_corners: Display corners in image coordinates; when None
                              the model-space corners are scaled to the image

        Returns:
            Image with visualization (unchanged copy when nothing was detected)
        """
        if image is None:
            return image
        if not result.detected:
            return image.copy()

        if expanded_corners is None:
            h, w = image.shape[:2]
            scale = np.array([w / float(result.model_width), h / float(result.model_height)], dtype=np.float32)
            expanded_corners = result.corner_points * scale

        return self.visualize(image, expanded_corners, result.confidence)
