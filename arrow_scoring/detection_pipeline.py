"""Scoring pipeline that turns one target photo into arrow scores."""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Set, Tuple

from .models.config import ObjectDetectionConfig, TargetGeometry
from .models.detection import (
    AnalysisStatus, Detection, ScoreResult, SessionEnd, TargetAnalysisResult
)
from .services.detection_decoder import DetectionDecoder
from .services.error_handler import (
    AlreadyProcessing, CalibrationError, ConfigurationLoadFailure, ErrorHandler, ErrorSeverity,
    InferenceFailure, InvalidImage, InvalidModelOutput, PipelineCancelled, ScoringError,
    global_error_handler
)
from .services.inference_gateway import create_inference_gateway
from .services.interfaces import (
    DetectionDecoderInterface, ImagePreprocessorInterface, InferenceGatewayInterface,
    SessionSinkInterface, TargetScorerInterface
)
from .services.preprocessing import create_preprocessor
from .services.target_scorer import TargetScorer, resolve_geometry, split_impacts, total_points
from .logging_config import get_logger, log_performance

logger = get_logger("scoring_pipeline")

COMPONENT_NAME = "scoring_pipeline"

ERROR_SEVERITIES = {
    InvalidImage: ErrorSeverity.LOW,
    AlreadyProcessing: ErrorSeverity.LOW,
    PipelineCancelled: ErrorSeverity.LOW,
    CalibrationError: ErrorSeverity.MEDIUM,
    InvalidModelOutput: ErrorSeverity.HIGH,
    InferenceFailure: ErrorSeverity.HIGH,
}


def build_session_end(results: List[ScoreResult], image_ref: Optional[str] = None) -> SessionEnd:
    """Package the scores of one photo as an end for session management."""
    return SessionEnd(image_ref=image_ref, scores=tuple(results))


class ScoringPipeline:
    """Runs preprocessing, inference, decoding and scoring for one photo at a time.

    Each call is synchronous and single-threaded. Different photos may be
    processed concurrently (see ``submit``), but the same image buffer is
    never processed twice at once: a re-entrant call raises
    ``AlreadyProcessing``. The configuration is shared read-only.
    """

    def __init__(self,
                 config: ObjectDetectionConfig,
                 preprocessor: ImagePreprocessorInterface,
                 gateway: InferenceGatewayInterface,
                 decoder: Optional[DetectionDecoderInterface] = None,
                 scorer: Optional[TargetScorerInterface] = None,
                 session_sink: Optional[SessionSinkInterface] = None,
                 error_handler: Optional[ErrorHandler] = None):
        errors = config.validate()
        if errors:
            raise ConfigurationLoadFailure("Invalid detection configuration", errors)

        self.config = config
        self.preprocessor = preprocessor
        self.gateway = gateway
        self.decoder = decoder or DetectionDecoder(config.output_schema)
        self.scorer = scorer or TargetScorer()
        self.session_sink = session_sink

        self.error_handler = error_handler or global_error_handler
        self.error_handler.register_component(COMPONENT_NAME)

        # Single-flight bookkeeping, keyed by buffer identity
        self._in_flight: Set[int] = set()
        self._in_flight_lock = threading.Lock()

        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

        # Statistics
        self._stats_lock = threading.Lock()
        self.processed_count = 0
        self.failed_count = 0
        self.arrow_count = 0
        self.processing_times: List[float] = []
        self.max_processing_time_history = 100

        logger.info(f"Scoring pipeline initialized (input_size={config.input_size}, "
                    f"geometry={config.target_geometry.source})")

    @classmethod
    def from_config(cls, config: ObjectDetectionConfig, model_path: Optional[str] = None,
                    session_sink: Optional[SessionSinkInterface] = None) -> 'ScoringPipeline':
        """Wire up the pipeline components for a loaded configuration."""
        return cls(
            config=config,
            preprocessor=create_preprocessor(config),
            gateway=create_inference_gateway(config, model_path),
            session_sink=session_sink
        )

    @contextmanager
    def _single_flight(self, image_bytes: bytes):
        key = id(image_bytes)
        with self._in_flight_lock:
            if key in self._in_flight:
                raise AlreadyProcessing("This image is already being processed")
            self._in_flight.add(key)
        try:
            yield
        finally:
            with self._in_flight_lock:
                self._in_flight.discard(key)

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event], stage: str) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise PipelineCancelled(f"Processing cancelled {stage}")

    def _decoder_for(self, config: ObjectDetectionConfig) -> DetectionDecoderInterface:
        if config is self.config or config.output_schema == self.config.output_schema:
            return self.decoder
        return DetectionDecoder(config.output_schema)

    def _run(self, image_bytes: bytes, config: ObjectDetectionConfig,
             cancel_event: Optional[threading.Event]
             ) -> Tuple[List[ScoreResult], List[Detection], TargetGeometry]:
        start_time = time.perf_counter()

        preprocessing = self.preprocessor.preprocess(image_bytes, config.input_size)
        preprocess_done = time.perf_counter()

        self._check_cancelled(cancel_event, "before inference")
        raw_output = self.gateway.infer(preprocessing.tensor)
        inference_done = time.perf_counter()
        self._check_cancelled(cancel_event, "after inference")

        detections = list(self._decoder_for(config).decode(
            raw_output,
            preprocessing,
            config.confidence_threshold,
            config.iou_threshold,
            config.class_labels
        ))

        geometry = resolve_geometry(detections, config.target_geometry)
        impacts = split_impacts(detections, config.target_geometry)
        scores = [self.scorer.score(detection, geometry) for detection in impacts]
        finished = time.perf_counter()

        log_performance("Image scored", {
            "image_size": f"{preprocessing.original_width}x{preprocessing.original_height}",
            "detections": len(detections),
            "arrows": len(scores),
            "points": total_points(scores),
            "preprocess_ms": round((preprocess_done - start_time) * 1000, 1),
            "inference_ms": round((inference_done - preprocess_done) * 1000, 1),
            "postprocess_ms": round((finished - inference_done) * 1000, 1)
        })

        self._record_success(finished - start_time, len(scores))
        return scores, detections, geometry

    def _check_override(self, config: ObjectDetectionConfig) -> None:
        errors = config.validate()
        if errors:
            raise ConfigurationLoadFailure("Invalid per-call configuration", errors)

        # The gateway and its input tensor shape are fixed at startup
        if config.input_size != self.config.input_size:
            raise ConfigurationLoadFailure(
                "Per-call configuration cannot change input_size",
                [f"input_size: {config.input_size} != {self.config.input_size}"]
            )

    def process(self, image_bytes: bytes, config: Optional[ObjectDetectionConfig] = None,
                cancel_event: Optional[threading.Event] = None) -> List[ScoreResult]:
        """Score every arrow in one photo.

        Errors propagate to the caller unchanged: ``InvalidImage``,
        ``InvalidModelOutput``, ``CalibrationError``, ``AlreadyProcessing``,
        ``PipelineCancelled``, or whatever the inference gateway raised.
        An invalid per-call ``config`` raises ``ConfigurationLoadFailure``
        before any work is done.
        """
        if config is not None:
            self._check_override(config)

        with self._single_flight(image_bytes):
            scores, _, _ = self._run(image_bytes, config or self.config, cancel_event)
        return scores

    def analyze(self, image_bytes: bytes, image_ref: Optional[str] = None,
                cancel_event: Optional[threading.Event] = None) -> TargetAnalysisResult:
        """Score one photo and report the outcome as a value instead of raising.

        Scoring errors are recorded with the error handler and returned in the
        result; on success the end is handed to the session sink, if any.
        """
        try:
            with self._single_flight(image_bytes):
                scores, detections, geometry = self._run(image_bytes, self.config, cancel_event)
        except ScoringError as e:
            self._record_failure(e)
            return TargetAnalysisResult(status=AnalysisStatus.FAILURE, error=e, image_ref=image_ref)

        if self.session_sink is not None:
            self.session_sink.record_end(build_session_end(scores, image_ref))

        logger.info(f"Scored {len(scores)} arrow(s) for {total_points(scores)} points"
                    + (f" in {image_ref}" if image_ref else ""))

        return TargetAnalysisResult(
            status=AnalysisStatus.SUCCESS,
            scores=scores,
            detections=detections,
            geometry=geometry,
            image_ref=image_ref
        )

    def submit(self, image_bytes: bytes, image_ref: Optional[str] = None,
               cancel_event: Optional[threading.Event] = None) -> Future:
        """Analyze a photo on a background worker; returns a future of the result."""
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=self.config.max_workers,
                                                    thread_name_prefix="scoring")
            executor = self._executor
        return executor.submit(self.analyze, image_bytes, image_ref, cancel_event)

    def _record_success(self, elapsed: float, arrows: int) -> None:
        with self._stats_lock:
            self.processed_count += 1
            self.arrow_count += arrows
            self.processing_times.append(elapsed)
            if len(self.processing_times) > self.max_processing_time_history:
                self.processing_times = self.processing_times[-self.max_processing_time_history:]

    def _record_failure(self, error: ScoringError) -> None:
        with self._stats_lock:
            self.failed_count += 1
        severity = ERROR_SEVERITIES.get(type(error), ErrorSeverity.MEDIUM)
        self.error_handler.handle_error(COMPONENT_NAME, error, severity)

    def get_status(self) -> Dict[str, Any]:
        """Get pipeline counters and timings."""
        with self._stats_lock:
            avg_time = (sum(self.processing_times) / len(self.processing_times)
                        if self.processing_times else 0.0)
            stats = {
                "processed_count": self.processed_count,
                "failed_count": self.failed_count,
                "arrow_count": self.arrow_count,
                "avg_processing_time_ms": avg_time * 1000
            }

        with self._in_flight_lock:
            stats["in_flight"] = len(self._in_flight)

        stats["input_size"] = self.config.input_size
        stats["geometry_source"] = self.config.target_geometry.source
        stats["error_stats"] = self.error_handler.get_error_stats()
        return stats

    def shutdown(self, wait: bool = True) -> None:
        """Stop background workers and release the inference runtime."""
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)
        self.gateway.close()
        logger.info("Scoring pipeline shut down")

    def __enter__(self) -> 'ScoringPipeline':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
