"""
Summary statistics of the segmentation probability grid
"""

import numpy as np

from .models import ProbMapStats


def compute_prob_map_stats(prob_map: np.ndarray) -> ProbMapStats:
    """
    Compute mean, standard deviation, median, min and max of a probability grid.

    Never fails: an empty grid yields all-zero statistics.

    Args:
        prob_map: Probability grid (H, W) with values in [0, 1]

    Returns:
        ProbMapStats
    """
    values = np.asarray(prob_map, dtype=np.float64).ravel()
    if values.size == 0:
        return ProbMapStats(mean=0.0, std_dev=0.0, median=0.0, min=0.0, max=0.0)

    mean = float(values.mean())
    # Population standard deviation around the already computed mean
    std_dev = float(np.sqrt(np.mean((values - mean) ** 2)))

    return ProbMapStats(
        mean=mean,
        std_dev=std_dev,
        median=float(np.median(values)),
        min=float(values.min()),
        max=float(values.max())
    )
