"""
Detector settings read from the environment
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .geometry import DEFAULT_EXPAND_RATIO

DEFAULT_MODEL_SIZE = 256


@dataclass(frozen=True)
class DetectorSettings:
    model_width: int = DEFAULT_MODEL_SIZE
    model_height: int = DEFAULT_MODEL_SIZE
    expand_ratio: float = DEFAULT_EXPAND_RATIO
    log_level: str = "WARNING"


def load_settings(dotenv_path: Optional[str] = None) -> DetectorSettings:
    """
    Load settings from environment variables (and a .env file if present).

    Variables:
        LABEL_DETECTION_MODEL_WIDTH, LABEL_DETECTION_MODEL_HEIGHT,
        LABEL_DETECTION_EXPAND_RATIO, LABEL_DETECTION_LOG_LEVEL

    Args:
        dotenv_path: Explicit .env file; the default search is used when None

    Returns:
        DetectorSettings
    """
    load_dotenv(dotenv_path)

    settings = DetectorSettings(
        model_width=int(os.getenv("LABEL_DETECTION_MODEL_WIDTH", DEFAULT_MODEL_SIZE)),
        model_height=int(os.getenv("LABEL_DETECTION_MODEL_HEIGHT", DEFAULT_MODEL_SIZE)),
        expand_ratio=float(os.getenv("LABEL_DETECTION_EXPAND_RATIO", DEFAULT_EXPAND_RATIO)),
        log_level=os.getenv("LABEL_DETECTION_LOG_LEVEL", "WARNING").upper()
    )

    if settings.model_width <= 0 or settings.model_height <= 0:
        raise ValueError(
            f"Model size must be positive, got {settings.model_width}x{settings.model_height}"
        )
    if settings.expand_ratio < 0:
        raise ValueError(f"Expand ratio must not be negative, got {settings.expand_ratio}")

    return settings
