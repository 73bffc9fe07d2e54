"""
Tests for LabelDetector
"""

import cv2
import numpy as np
import pytest

from label_detection.candidates import extract_candidates
from label_detection.config import DetectorSettings, load_settings
from label_detection.detector import LabelDetector
from label_detection.geometry import order_corners, signed_area
from label_detection.mask import refine_mask
from label_detection.models import DetectionResult, detection_result
from label_detection.scoring import score_candidates
from label_detection.statistics import compute_prob_map_stats
from label_detection.threshold import select_threshold


def square_grid(size=256, start=71, end=186, value=0.9):
    """Grid with a square label covering about 20% of it"""
    grid = np.zeros((size, size), dtype=np.float32)
    grid[start:end, start:end] = value
    return grid


def model_space_result(quad, model_size=100):
    quad = np.asarray(quad, dtype=np.float32)
    return detection_result(
        corner_points=quad,
        original_corner_points=quad,
        bounding_box=None,
        confidence=0.9,
        rotation_angle=0.0,
        model_width=model_size,
        model_height=model_size
    )


class TestLabelDetector:
    """Tests for detection on probability grids"""

    @pytest.fixture
    def detector(self):
        """Create detector instance for tests"""
        return LabelDetector()

    def test_detector_init(self, detector):
        """Test default parameters"""
        assert detector.model_width == 256
        assert detector.model_height == 256
        assert detector.expand_ratio == 0.02
        assert detector.model is None

    def test_detector_invalid_size(self):
        with pytest.raises(ValueError):
            LabelDetector(model_width=0)

    def test_square_label(self, detector):
        """A clean square is found with a high confidence"""
        result = detector.detect_prob_map(square_grid())

        assert result.detected
        assert result.has_valid_corners()
        assert result.corner_points.shape == (4, 2)
        assert result.original_corner_points.shape == (4, 2)
        assert result.confidence == pytest.approx(0.9, abs=1e-4)
        assert abs(result.rotation_angle) < 2.0
        assert (result.model_width, result.model_height) == (256, 256)

        area_ratio = signed_area(result.original_corner_points) / (256 * 256)
        assert abs(area_ratio - 0.2) < 0.03

        # Original corners follow the label edge
        assert np.allclose(result.original_corner_points[0], [71, 71], atol=4)
        assert np.allclose(result.original_corner_points[2], [185, 185], atol=4)

    def test_expanded_corners_enclose_original(self, detector):
        result = detector.detect_prob_map(square_grid())

        assert signed_area(result.corner_points) > signed_area(result.original_corner_points)
        assert result.corner_points.min() >= 0
        assert result.corner_points.max() <= 256

        box = result.bounding_box
        assert box.left == pytest.approx(float(result.corner_points[:, 0].min()))
        assert box.bottom == pytest.approx(float(result.corner_points[:, 1].max()))

    def test_final_mode(self, detector):
        """The stricter final pass still accepts a clean label"""
        result = detector.detect_prob_map(square_grid(), live=False)
        assert result.detected

    def test_rotated_label(self, detector):
        grid = np.zeros((256, 256), dtype=np.float32)
        box = cv2.boxPoints(((128, 128), (120, 80), 30)).astype(np.int32)
        cv2.fillPoly(grid, [box], 0.9)

        result = detector.detect_prob_map(grid)

        assert result.detected
        assert result.confidence == pytest.approx(0.9, abs=1e-4)
        assert signed_area(result.original_corner_points) > 0

    def test_all_zero_grid(self, detector):
        result = detector.detect_prob_map(np.zeros((256, 256), dtype=np.float32))
        assert result == DetectionResult.not_detected()

    def test_uniform_low_grid(self, detector):
        """Background noise alone is not a label"""
        result = detector.detect_prob_map(np.full((256, 256), 0.02, dtype=np.float32))
        assert not result.detected
        assert result.corner_points is None

    def test_tiny_blobs(self, detector):
        grid = np.zeros((256, 256), dtype=np.float32)
        grid[30:40, 30:40] = 0.9
        grid[150:160, 200:210] = 0.9

        assert not detector.detect_prob_map(grid).detected

    def test_shape_mismatch(self, detector):
        with pytest.raises(ValueError):
            detector.detect_prob_map(np.zeros((128, 256), dtype=np.float32))

    def test_not_2d(self, detector):
        with pytest.raises(ValueError):
            detector.detect_prob_map(np.zeros((256, 256, 1), dtype=np.float32))

    def test_input_not_modified(self, detector):
        grid = square_grid()
        grid[0, 0] = 1.5
        copy = grid.copy()

        detector.detect_prob_map(grid)
        assert np.array_equal(grid, copy)

    def test_deterministic(self, detector):
        grid = square_grid()
        first = detector.detect_prob_map(grid)
        second = detector.detect_prob_map(grid)

        assert np.array_equal(first.corner_points, second.corner_points)
        assert first.confidence == second.confidence

    def test_detect_document_quad(self, detector):
        quad = detector.detect_document_quad(square_grid())
        assert quad.shape == (4, 2)
        assert np.array_equal(quad, order_corners(quad))
        # Caller owns the returned array
        quad[0, 0] = -1.0
        assert detector.detect_document_quad(square_grid())[0, 0] >= 0

        assert detector.detect_document_quad(np.zeros((256, 256), dtype=np.float32)) is None

    def test_result_corners_are_read_only(self, detector):
        result = detector.detect_prob_map(square_grid())
        with pytest.raises(ValueError):
            result.corner_points[0, 0] = 0

    def test_square_label_scores(self):
        """Pipeline output for the 20% square is a near-perfect rectangle"""
        grid = square_grid()
        threshold = select_threshold(compute_prob_map_stats(grid), live=True)

        scored = score_candidates(grid, extract_candidates(refine_mask(grid, threshold)))

        assert len(scored) == 1
        assert scored[0].rectangularity > 0.9
        assert scored[0].area_ratio == pytest.approx(0.2, abs=0.03)
        assert scored[0].score >= 0.5

    def test_results_compare_by_value(self, detector):
        """Detections of the same grid are equal and usable with `in`"""
        first = detector.detect_prob_map(square_grid())
        second = detector.detect_prob_map(square_grid())

        assert first == second
        assert first in [second]
        assert first != DetectionResult.not_detected()
        assert DetectionResult.not_detected() == DetectionResult.not_detected()

        shifted = detector.detect_prob_map(square_grid(start=60, end=175))
        assert first != shifted

    def test_results_not_hashable(self, detector):
        with pytest.raises(TypeError):
            hash(detector.detect_prob_map(square_grid()))


class TestMapToImage:
    """Tests for mapping detections into source images"""

    @pytest.fixture
    def detector(self):
        return LabelDetector(model_width=100, model_height=100)

    def test_no_rotation(self, detector):
        result = model_space_result([[10, 20], [60, 20], [60, 80], [10, 80]])
        expanded, original = detector.map_to_image(result, 200, 200)

        assert np.allclose(original, [[20, 40], [120, 40], [120, 160], [20, 160]])
        assert np.allclose(expanded, original)

    def test_rotation_90(self, detector):
        """Grid covers the sensor image rotated 90 degrees clockwise"""
        result = model_space_result([[10, 20], [60, 20], [60, 80], [10, 80]])
        _, original = detector.map_to_image(result, 400, 300, rotation_degrees=90)

        assert np.allclose(original, [[80, 120], [320, 120], [320, 270], [80, 270]])

    @pytest.mark.parametrize("degrees", [90, 180, 270])
    def test_mapped_corners_inside_image(self, detector, degrees):
        result = model_space_result([[10, 20], [60, 20], [60, 80], [10, 80]])
        _, original = detector.map_to_image(result, 400, 300, rotation_degrees=degrees)

        assert original[:, 0].min() >= 0 and original[:, 0].max() <= 400
        assert original[:, 1].min() >= 0 and original[:, 1].max() <= 300
        assert signed_area(original) > 0

    def test_not_detected(self, detector):
        with pytest.raises(ValueError):
            detector.map_to_image(DetectionResult.not_detected(), 400, 300)


class FakeModel:
    """Segmentation model stand-in returning a fixed grid"""

    def __init__(self, output):
        self.output = output
        self.inputs = []

    def __call__(self, model_input):
        self.inputs.append(model_input)
        return self.output


class TestDetectWithModel:
    """Tests for detect() and extract_and_correct()"""

    @pytest.fixture
    def image(self):
        return np.zeros((480, 640, 3), dtype=np.uint8)

    def test_model_input(self, image):
        model = FakeModel(square_grid()[np.newaxis, :, :, np.newaxis])
        detector = LabelDetector(model=model)

        result = detector.detect(image)

        assert result.detected
        assert len(model.inputs) == 1
        assert model.inputs[0].shape == (256, 256, 3)
        assert model.inputs[0].dtype == np.float32

    def test_prepare_input_normalized(self):
        detector = LabelDetector()
        white = np.full((50, 100, 3), 255, dtype=np.uint8)

        model_input = detector.prepare_input(white, rotation_degrees=90)

        assert model_input.shape == (256, 256, 3)
        assert np.allclose(model_input, 1.0)

    def test_prepare_input_grayscale(self):
        detector = LabelDetector(model_width=64, model_height=32)
        model_input = detector.prepare_input(np.zeros((40, 40), dtype=np.uint8))

        assert model_input.shape == (32, 64, 3)
        assert np.allclose(model_input, -1.0)

    def test_model_failure(self, image):
        def broken(_):
            raise RuntimeError("inference failed")

        result = LabelDetector(model=broken).detect(image)
        assert not result.detected

    def test_missing_model(self, image):
        with pytest.raises(ValueError):
            LabelDetector().detect(image)

    def test_empty_image(self):
        detector = LabelDetector(model=FakeModel(square_grid()))
        assert not detector.detect(np.array([])).detected
        assert not detector.detect(None).detected

    def test_extract_and_correct(self):
        image = np.full((512, 512, 3), 40, dtype=np.uint8)
        image[142:372, 142:372] = 220
        detector = LabelDetector()
        result = detector.detect_prob_map(square_grid())

        correction = detector.extract_and_correct(image, result)

        assert correction is not None
        assert abs(correction.width - 230) < 12
        assert abs(correction.height - 230) < 12
        assert correction.corrected_image.shape[:2] == (correction.height, correction.width)

    def test_extract_and_correct_not_detected(self, image):
        detector = LabelDetector()
        assert detector.extract_and_correct(image, DetectionResult.not_detected()) is None


class TestSettings:
    """Tests for settings loaded from the environment"""

    @pytest.fixture
    def env_file(self, tmp_path):
        return tmp_path / "missing.env"

    def test_defaults(self, monkeypatch, env_file):
        for name in ("WIDTH", "HEIGHT"):
            monkeypatch.delenv(f"LABEL_DETECTION_MODEL_{name}", raising=False)
        monkeypatch.delenv("LABEL_DETECTION_EXPAND_RATIO", raising=False)
        monkeypatch.delenv("LABEL_DETECTION_LOG_LEVEL", raising=False)

        assert load_settings(env_file) == DetectorSettings()

    def test_from_environment(self, monkeypatch, env_file):
        monkeypatch.setenv("LABEL_DETECTION_MODEL_WIDTH", "320")
        monkeypatch.setenv("LABEL_DETECTION_MODEL_HEIGHT", "240")
        monkeypatch.setenv("LABEL_DETECTION_EXPAND_RATIO", "0.05")
        monkeypatch.setenv("LABEL_DETECTION_LOG_LEVEL", "debug")

        settings = load_settings(env_file)

        assert settings == DetectorSettings(
            model_width=320, model_height=240, expand_ratio=0.05, log_level="DEBUG"
        )

    def test_from_dotenv_file(self, monkeypatch, tmp_path):
        # load_dotenv writes os.environ directly; registering the variable restores it afterwards
        monkeypatch.setenv("LABEL_DETECTION_MODEL_WIDTH", "1")
        monkeypatch.delenv("LABEL_DETECTION_MODEL_WIDTH")
        env_file = tmp_path / ".env"
        env_file.write_text("LABEL_DETECTION_MODEL_WIDTH=128\n")

        assert load_settings(env_file).model_width == 128

    @pytest.mark.parametrize("name, value", [
        ("LABEL_DETECTION_MODEL_WIDTH", "0"),
        ("LABEL_DETECTION_MODEL_HEIGHT", "-5"),
        ("LABEL_DETECTION_EXPAND_RATIO", "-0.1"),
        ("LABEL_DETECTION_MODEL_WIDTH", "wide"),
    ])
    def test_invalid_values(self, monkeypatch, env_file, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ValueError):
            load_settings(env_file)

    def test_detector_from_settings(self):
        settings = DetectorSettings(model_width=128, model_height=64, expand_ratio=0.1)
        detector = LabelDetector.from_settings(settings)

        assert (detector.model_width, detector.model_height) == (128, 64)
        assert detector.expand_ratio == 0.1
