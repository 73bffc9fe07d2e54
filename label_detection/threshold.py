"""
Binarization threshold derived from the probability grid statistics
"""

from .models import ProbMapStats

# Grids whose median falls below this are treated as sparse foreground
SPARSE_MEDIAN = 0.01
SPARSE_MIN_THRESHOLD = 0.05
SPARSE_MEAN_FACTOR = 0.8

MIN_THRESHOLD = 0.08
MAX_THRESHOLD = 0.25
STD_DEV_FACTOR = 0.5

LIVE_MAX_THRESHOLD = 0.15


def select_threshold(stats: ProbMapStats, live: bool = True) -> float:
    """
    Choose the binarization threshold for a probability grid.

    Args:
        stats: Statistics of the grid
        live: True for interactive per-frame detection (favors recall),
              False for the final high quality pass

    Returns:
        Threshold in [0, 1]
    """
    if stats.median < SPARSE_MEDIAN:
        threshold = max(SPARSE_MIN_THRESHOLD, stats.mean * SPARSE_MEAN_FACTOR)
    else:
        threshold = stats.mean + STD_DEV_FACTOR * stats.std_dev
        threshold = min(MAX_THRESHOLD, max(MIN_THRESHOLD, threshold))

    if live:
        threshold = min(threshold, LIVE_MAX_THRESHOLD)

    return float(min(1.0, max(0.0, threshold)))
