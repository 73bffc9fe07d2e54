#!/usr/bin/env python3
"""
CLI for the label detection module.

Usage:
    python -m label_detection -p probmap.npy
    python -m label_detection -p probmap.npy -i frame.jpg -o label.png --overlay overlay.png
"""

import argparse
import logging
import sys
from pathlib import Path

import cv2
import numpy as np

from .config import load_settings
from .detector import LabelDetector
from .enhance import calculate_sharpness
from .visualizer import LabelVisualizer


def parse_args(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description='Label boundary detection from a segmentation probability grid',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:

  # Detect only, print the corners in model space
  python -m label_detection -p probmap.npy

  # Detect and save the perspective-corrected label
  python -m label_detection -p probmap.npy -i frame.jpg -o label.png

Environment:
  LABEL_DETECTION_EXPAND_RATIO   growth of the display corners (default 0.02)
  LABEL_DETECTION_LOG_LEVEL      logging level (default WARNING)
  The model size is taken from the loaded grid.
        """
    )

    parser.add_argument(
        '-p', '--probmap',
        required=True,
        help='Probability grid saved with numpy.save (H x W floats in [0, 1])'
    )

    parser.add_argument(
        '-i', '--image',
        help='Source image the grid was computed from'
    )

    parser.add_argument(
        '-o', '--output',
        help='Output path for the corrected label (needs --image)'
    )

    parser.add_argument(
        '--overlay',
        help='Output path for the image with the detection drawn on it (needs --image)'
    )

    parser.add_argument(
        '--rotation',
        type=int,
        default=0,
        choices=[0, 90, 180, 270],
        help='Clockwise rotation from the source image to the grid orientation'
    )

    parser.add_argument(
        '--final',
        action='store_true',
        help='Use the stricter final-pass thresholds instead of live ones'
    )

    args = parser.parse_args(argv)
    if (args.output or args.overlay) and not args.image:
        parser.error('--output and --overlay need --image')

    return args


def main(argv=None):
    """Main CLI function"""
    args = parse_args(argv)
    settings = load_settings()
    logging.basicConfig(level=settings.log_level, format='%(levelname)s %(name)s: %(message)s')

    probmap_path = Path(args.probmap)
    if not probmap_path.exists():
        print(f"Error: Probability grid not found: {probmap_path}")
        return 1

    prob_map = np.load(str(probmap_path))
    if prob_map.ndim != 2:
        print(f"Error: Probability grid must be 2-D, got shape {prob_map.shape}")
        return 1

    detector = LabelDetector(
        model_width=prob_map.shape[1],
        model_height=prob_map.shape[0],
        expand_ratio=settings.expand_ratio
    )
    result = detector.detect_prob_map(prob_map, live=not args.final)

    if not result.detected:
        print("✗ Label was not detected!")
        return 1

    print("✓ Label detected")
    print(f"  Confidence:       {result.confidence * 100:.1f}%")
    print(f"  Rotation angle:   {result.rotation_angle:.1f}°")
    print(f"  Corners (model):  {np.round(result.original_corner_points, 1).tolist()}")

    if args.image is None:
        return 0

    image = cv2.imread(args.image, cv2.IMREAD_UNCHANGED)
    if image is None:
        print(f"Error: Failed to load image: {args.image}")
        return 1

    h, w = image.shape[:2]
    expanded, original = detector.map_to_image(result, w, h, args.rotation)
    print(f"  Corners (image):  {np.round(original, 1).tolist()}")

    if args.overlay:
        overlay = LabelVisualizer().visualize(image, expanded, result.confidence)
        cv2.imwrite(args.overlay, overlay)
        print(f"✓ Overlay saved: {args.overlay}")

    if args.output:
        correction = detector.extract_and_correct(image, result, args.rotation)
        if correction is None:
            print("✗ Perspective correction failed")
            return 1
        cv2.imwrite(args.output, correction.corrected_image)
        print(f"✓ Corrected label saved: {args.output} ({correction.width}x{correction.height} px, "
              f"sharpness {calculate_sharpness(correction.corrected_image):.1f})")

    return 0


if __name__ == '__main__':
    sys.exit(main())
