"""
Label Detection Module

Locates a rectangular label in a segmentation probability grid and
produces a perspective-corrected crop of the source image.
"""

from .detector import LabelDetector
from .models import CorrectionResult, DetectionResult, LabelCandidate, ProbMapStats
from .perspective import correct_perspective
from .visualizer import LabelVisualizer

__all__ = [
    'LabelDetector',
    'LabelVisualizer',
    'DetectionResult',
    'CorrectionResult',
    'LabelCandidate',
    'ProbMapStats',
    'correct_perspective',
]
