"""Integration tests for the scoring pipeline."""

import unittest
import threading
from dataclasses import replace
from unittest.mock import Mock
import sys
import os

import cv2
import numpy as np

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from arrow_scoring.config.defaults import DEFAULT_CLASS_LABELS
from arrow_scoring.detection_pipeline import ScoringPipeline, build_session_end
from arrow_scoring.models.config import ObjectDetectionConfig
from arrow_scoring.models.detection import AnalysisStatus, SessionEnd
from arrow_scoring.services.error_handler import (
    AlreadyProcessing, CalibrationError, ConfigurationLoadFailure, ErrorHandler,
    InferenceFailure, InvalidImage, PipelineCancelled
)
from arrow_scoring.services.interfaces import InferenceGatewayInterface, SessionSinkInterface
from arrow_scoring.services.preprocessing import OpenCVImagePreprocessor

LABELS = tuple(DEFAULT_CLASS_LABELS)
TARGET_ID = LABELS.index("target")


def make_photo_bytes(width=400, height=300) -> bytes:
    ok, encoded = cv2.imencode('.png', np.full((height, width, 3), 90, dtype=np.uint8))
    assert ok
    return encoded.tobytes()


def make_raw_output(candidates):
    raw = np.zeros((1, 5 + len(LABELS), len(candidates)), dtype=np.float32)
    for index, (cx, cy, w, h, class_id, score) in enumerate(candidates):
        raw[0, 0:4, index] = (cx, cy, w, h)
        raw[0, 4, index] = 1.0
        raw[0, 5 + class_id, index] = score
    return raw


# Model-space output for a 400x300 photo letterboxed to 64 (scale 6.25, pad_y 8):
# a target face centered at (200, 150) with radius 125, one arrow in the middle
# and one 93.75 px to the right of it.
SCENE = make_raw_output([
    (32, 32, 40, 30, TARGET_ID, 0.9),
    (32, 32, 2, 2, 10, 0.8),
    (47, 32, 2, 2, 3, 0.7),
])


class FakeGateway(InferenceGatewayInterface):
    """Returns a canned raw output, optionally blocking until released."""

    def __init__(self, raw_output=SCENE, block=False, error=None):
        self.raw_output = raw_output
        self.error = error
        self.calls = 0
        self.closed = False
        self.entered = threading.Event()
        self.release = threading.Event()
        if not block:
            self.release.set()

    def infer(self, tensor):
        self.calls += 1
        self.entered.set()
        self.release.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return self.raw_output

    def close(self):
        self.closed = True


class TestScoringPipeline(unittest.TestCase):
    """Test cases for ScoringPipeline."""

    def setUp(self):
        """Set up test fixtures."""
        self.config = ObjectDetectionConfig(input_size=64, class_labels=LABELS)
        self.error_handler = ErrorHandler()
        self.gateway = FakeGateway()
        self.photo = make_photo_bytes()
        self.pipeline = self.make_pipeline(self.gateway)

    def tearDown(self):
        """Clean up test fixtures."""
        self.pipeline.shutdown()

    def make_pipeline(self, gateway, **kwargs):
        return ScoringPipeline(self.config, OpenCVImagePreprocessor(), gateway,
                               error_handler=self.error_handler, **kwargs)

    def test_process_scores_arrows(self):
        results = self.pipeline.process(self.photo)

        self.assertEqual([r.points for r in results], [10, 3])
        self.assertAlmostEqual(results[0].detection.center_x, 200.0)
        self.assertAlmostEqual(results[0].detection.center_y, 150.0)
        self.assertAlmostEqual(results[1].distance, 93.75)
        self.assertEqual(self.gateway.calls, 1)

    def test_invalid_config_rejected(self):
        with self.assertRaises(ConfigurationLoadFailure):
            ScoringPipeline(ObjectDetectionConfig(), OpenCVImagePreprocessor(), self.gateway)

    def test_same_buffer_while_running_is_rejected(self):
        gateway = FakeGateway(block=True)
        pipeline = self.make_pipeline(gateway)
        outcome = {}

        def run():
            outcome["results"] = pipeline.process(self.photo)

        worker = threading.Thread(target=run)
        worker.start()
        try:
            self.assertTrue(gateway.entered.wait(timeout=5))
            with self.assertRaises(AlreadyProcessing):
                pipeline.process(self.photo)
        finally:
            gateway.release.set()
            worker.join(timeout=5)

        self.assertEqual(len(outcome["results"]), 2)
        self.assertEqual(gateway.calls, 1)

        # The buffer can be processed again once the first call returned
        self.assertEqual(len(pipeline.process(self.photo)), 2)
        pipeline.shutdown()

    def test_distinct_buffers_run_concurrently(self):
        gateway = FakeGateway(block=True)
        pipeline = self.make_pipeline(gateway)
        first = pipeline.submit(self.photo)

        self.assertTrue(gateway.entered.wait(timeout=5))
        second = pipeline.submit(bytes(bytearray(self.photo)))
        gateway.release.set()

        self.assertTrue(first.result(timeout=5).succeeded)
        self.assertTrue(second.result(timeout=5).succeeded)
        pipeline.shutdown()

    def test_gateway_error_propagates_unchanged(self):
        error = RuntimeError("runtime exploded")
        pipeline = self.make_pipeline(FakeGateway(error=error))

        with self.assertRaises(RuntimeError) as ctx:
            pipeline.process(self.photo)

        self.assertIs(ctx.exception, error)

    def test_failure_releases_buffer(self):
        gateway = FakeGateway(error=InferenceFailure("no runtime"))
        pipeline = self.make_pipeline(gateway)

        for _ in range(2):
            with self.assertRaises(InferenceFailure):
                pipeline.process(self.photo)

        self.assertEqual(gateway.calls, 2)

    def test_invalid_image(self):
        with self.assertRaises(InvalidImage):
            self.pipeline.process(b"not a photo")
        self.assertEqual(self.gateway.calls, 0)

    def test_missing_target_face(self):
        pipeline = self.make_pipeline(FakeGateway(make_raw_output([(32, 32, 2, 2, 10, 0.8)])))

        with self.assertRaises(CalibrationError):
            pipeline.process(self.photo)

    def test_config_override(self):
        strict = replace(self.config, confidence_threshold=0.75)

        results = self.pipeline.process(self.photo, config=strict)

        self.assertEqual([r.points for r in results], [10])

    def test_invalid_config_override_rejected(self):
        bad = replace(self.config, confidence_threshold=-3.0, iou_threshold=7.0)

        with self.assertRaises(ConfigurationLoadFailure) as ctx:
            self.pipeline.process(self.photo, config=bad)

        self.assertEqual(len(ctx.exception.errors), 2)
        self.assertEqual(self.gateway.calls, 0)

    def test_config_override_cannot_change_input_size(self):
        resized = replace(self.config, input_size=128)

        with self.assertRaises(ConfigurationLoadFailure):
            self.pipeline.process(self.photo, config=resized)
        self.assertEqual(self.gateway.calls, 0)

    def test_miss_class_detection_is_not_scored(self):
        raw = make_raw_output([
            (32, 32, 40, 30, TARGET_ID, 0.9),
            (32, 32, 2, 2, 0, 0.8),
            (47, 32, 2, 2, 3, 0.7),
        ])
        pipeline = self.make_pipeline(FakeGateway(raw))

        results = pipeline.process(self.photo)

        self.assertEqual([(r.detection.class_label, r.points) for r in results], [("3", 3)])

    def test_cancel_before_inference(self):
        cancel = threading.Event()
        cancel.set()

        with self.assertRaises(PipelineCancelled):
            self.pipeline.process(self.photo, cancel_event=cancel)
        self.assertEqual(self.gateway.calls, 0)

    def test_analyze_success(self):
        sink = Mock(spec=SessionSinkInterface)
        pipeline = self.make_pipeline(self.gateway, session_sink=sink)

        result = pipeline.analyze(self.photo, image_ref="end-1.jpg")

        self.assertEqual(result.status, AnalysisStatus.SUCCESS)
        self.assertEqual(result.total_score, 13)
        self.assertEqual(len(result.detections), 3)
        self.assertIsNotNone(result.geometry)

        sink.record_end.assert_called_once()
        end = sink.record_end.call_args[0][0]
        self.assertIsInstance(end, SessionEnd)
        self.assertEqual(end.image_ref, "end-1.jpg")
        self.assertEqual(end.total_score, 13)
        self.assertEqual(end.arrow_count, 2)

    def test_analyze_failure_is_a_value(self):
        sink = Mock(spec=SessionSinkInterface)
        error = InferenceFailure("model crashed")
        pipeline = self.make_pipeline(FakeGateway(error=error), session_sink=sink)

        result = pipeline.analyze(self.photo, image_ref="end-2.jpg")

        self.assertEqual(result.status, AnalysisStatus.FAILURE)
        self.assertIs(result.error, error)
        self.assertEqual(result.error_type, "InferenceFailure")
        self.assertEqual(result.to_dict()["status"], "failure")
        sink.record_end.assert_not_called()

        stats = self.error_handler.get_error_stats()
        self.assertEqual(stats["error_type_counts"]["InferenceFailure"], 1)

    def test_build_session_end(self):
        results = self.pipeline.process(self.photo)

        end = build_session_end(results, "photo.jpg")

        self.assertEqual(end.scores, tuple(results))
        self.assertEqual(end.to_dict()["total_score"], 13)

    def test_get_status(self):
        self.pipeline.process(self.photo)
        self.pipeline.analyze(b"")

        status = self.pipeline.get_status()

        self.assertEqual(status["processed_count"], 1)
        self.assertEqual(status["failed_count"], 1)
        self.assertEqual(status["arrow_count"], 2)
        self.assertEqual(status["in_flight"], 0)
        self.assertGreaterEqual(status["avg_processing_time_ms"], 0.0)

    def test_shutdown_closes_gateway(self):
        self.pipeline.shutdown()

        self.assertTrue(self.gateway.closed)


if __name__ == '__main__':
    unittest.main()
