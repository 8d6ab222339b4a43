"""Inference gateways: run the detection model on a prepared tensor."""

import os
import threading
from typing import List, Optional

import numpy as np
import onnxruntime as ort

from ..config.defaults import MODEL_SETTINGS
from ..models.config import ObjectDetectionConfig
from ..logging_config import get_logger
from .error_decorators import log_execution_time, with_error_handling
from .error_handler import ErrorSeverity, InferenceFailure, ModelLoadError
from .interfaces import InferenceGatewayInterface

logger = get_logger("inference_gateway")


def _check_input_shape(tensor: np.ndarray, input_size: int) -> None:
    expected = (1, 3, input_size, input_size)
    if tuple(tensor.shape) != expected:
        raise InferenceFailure(f"Expected input tensor of shape {expected}, got {tuple(tensor.shape)}")


class OnnxInferenceGateway(InferenceGatewayInterface):
    """Runs an ONNX detection model with ONNX Runtime."""

    def __init__(self, model_path: str, config: ObjectDetectionConfig,
                 providers: Optional[List[str]] = None,
                 num_threads: Optional[int] = None):
        if not os.path.exists(model_path):
            raise ModelLoadError(f"Model file not found: {model_path}")

        self.model_path = model_path
        self.input_size = config.input_size

        options = ort.SessionOptions()
        options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        options.intra_op_num_threads = num_threads or MODEL_SETTINGS["num_threads"]

        try:
            self.session = ort.InferenceSession(
                model_path,
                sess_options=options,
                providers=providers or MODEL_SETTINGS["onnx_providers"]
            )
        except Exception as e:
            raise ModelLoadError(f"Failed to load ONNX model {model_path}: {e}") from e

        inputs = self.session.get_inputs()
        if len(inputs) != 1:
            raise ModelLoadError(f"Expected a model with 1 input, got {len(inputs)}")
        self.input_name = inputs[0].name

        logger.info(f"ONNX model loaded: {model_path} (input '{self.input_name}' {inputs[0].shape})")

    @with_error_handling("inference_gateway", ErrorSeverity.HIGH)
    @log_execution_time("inference_gateway")
    def infer(self, tensor: np.ndarray) -> np.ndarray:
        _check_input_shape(tensor, self.input_size)

        try:
            outputs = self.session.run(None, {self.input_name: tensor.astype(np.float32, copy=False)})
        except Exception as e:
            raise InferenceFailure(f"ONNX inference failed: {e}") from e

        if not outputs:
            raise InferenceFailure("ONNX model returned no outputs")

        return np.asarray(outputs[0])


class TFLiteInferenceGateway(InferenceGatewayInterface):
    """Runs a TensorFlow Lite detection model.

    Models exported channels-last get the tensor transposed, and quantized
    models get their input quantized and output dequantized, so callers
    always deal in the float [1, 3, S, S] contract.
    """

    def __init__(self, model_path: str, config: ObjectDetectionConfig,
                 num_threads: Optional[int] = None):
        if not os.path.exists(model_path):
            raise ModelLoadError(f"Model file not found: {model_path}")

        try:
            import tflite_runtime.interpreter as tflite
        except ImportError as e:
            raise ModelLoadError("tflite-runtime is required for .tflite models "
                                 "(pip install arrow-scoring[tflite])") from e

        self.model_path = model_path
        self.input_size = config.input_size

        try:
            self.interpreter = tflite.Interpreter(
                model_path=model_path,
                num_threads=num_threads or MODEL_SETTINGS["num_threads"]
            )
            self.interpreter.allocate_tensors()
        except Exception as e:
            raise ModelLoadError(f"Failed to load TFLite model {model_path}: {e}") from e

        self.input_details = self.interpreter.get_input_details()
        self.output_details = self.interpreter.get_output_details()

        if len(self.input_details) != 1:
            raise ModelLoadError(f"Expected a model with 1 input, got {len(self.input_details)}")

        input_shape = tuple(int(v) for v in self.input_details[0]['shape'])
        self.channels_last = len(input_shape) == 4 and input_shape[-1] == 3 and input_shape[1] != 3
        self.quantized_input = self.input_details[0]['dtype'] in (np.uint8, np.int8)

        # Interpreter.invoke() is not safe to call from several threads at once
        self._lock = threading.Lock()

        logger.info(f"TFLite model loaded: {model_path} (input {input_shape}, "
                    f"channels_last={self.channels_last}, quantized={self.quantized_input})")

    def _prepare_input(self, tensor: np.ndarray) -> np.ndarray:
        detail = self.input_details[0]
        data = tensor.transpose(0, 2, 3, 1) if self.channels_last else tensor

        if self.quantized_input:
            scale, zero_point = detail['quantization']
            info = np.iinfo(detail['dtype'])
            data = np.clip(np.round(data / scale + zero_point), info.min, info.max)

        return np.ascontiguousarray(data.astype(detail['dtype']))

    def _read_output(self) -> np.ndarray:
        detail = self.output_details[0]
        data = self.interpreter.get_tensor(detail['index'])

        if detail['dtype'] in (np.uint8, np.int8):
            scale, zero_point = detail['quantization']
            data = (data.astype(np.float32) - zero_point) * scale

        return np.asarray(data, dtype=np.float32)

    @with_error_handling("inference_gateway", ErrorSeverity.HIGH)
    @log_execution_time("inference_gateway")
    def infer(self, tensor: np.ndarray) -> np.ndarray:
        _check_input_shape(tensor, self.input_size)

        with self._lock:
            try:
                self.interpreter.set_tensor(self.input_details[0]['index'], self._prepare_input(tensor))
                self.interpreter.invoke()
                return self._read_output()
            except Exception as e:
                raise InferenceFailure(f"TFLite inference failed: {e}") from e


def create_inference_gateway(config: ObjectDetectionConfig,
                             model_path: Optional[str] = None) -> InferenceGatewayInterface:
    """Build the gateway matching the model file type."""
    path = model_path or config.model_path or MODEL_SETTINGS["default_model"]
    suffix = os.path.splitext(path)[1].lower()

    if suffix == ".onnx":
        return OnnxInferenceGateway(path, config)
    if suffix == ".tflite":
        return TFLiteInferenceGateway(path, config)

    raise ModelLoadError(f"Unsupported model format '{suffix}' for {path}")
