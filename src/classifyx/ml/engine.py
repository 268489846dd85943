"""Inference engines: the model as an image path -> probability vector function."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

import numpy as np

from classifyx.ml.preprocessing import ImagePreprocessor

if TYPE_CHECKING:
    from numpy.typing import NDArray
    from onnxruntime import InferenceSession

    from classifyx.config import Settings

logger = logging.getLogger(__name__)


class ClassificationEngine(Protocol):
    """Protocol for a stateful, reusable classification engine."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    @property
    def output_size(self) -> int | None:
        """Return the declared length of the probability vector, if known."""
        ...

    def predict(self, image_path: str) -> NDArray[np.float32]:
        """Score an image file.

        Args:
            image_path: Path to a staged image file.

        Returns:
            One score per label, in label order.
        """
        ...


def _static_dim(value: object) -> int | None:
    """Return a fixed ONNX dimension, or None for symbolic/unknown ones."""
    if isinstance(value, int) and value > 0:
        return value
    return None


class OnnxClassificationEngine:
    """A classification engine backed by its own ONNX Runtime session."""

    def __init__(self, session: InferenceSession, settings: Settings, model_name: str) -> None:
        self._session = session
        self._model_name = model_name

        model_input = session.get_inputs()[0]
        self._input_name = model_input.name
        shape = list(model_input.shape)

        if len(shape) == 4:
            if settings.channels_last:
                height, width = _static_dim(shape[1]), _static_dim(shape[2])
            else:
                height, width = _static_dim(shape[2]), _static_dim(shape[3])
        else:
            height = width = None

        self._preprocessor = ImagePreprocessor(
            height=height or settings.input_size,
            width=width or settings.input_size,
            mean=settings.input_mean,
            scale=settings.input_scale,
            channels_last=settings.channels_last,
            max_pixels=settings.max_image_pixels,
        )

        output_shape = session.get_outputs()[0].shape
        self._output_size = _static_dim(output_shape[-1]) if output_shape else None

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def output_size(self) -> int | None:
        return self._output_size

    def predict(self, image_path: str) -> NDArray[np.float32]:
        tensor = self._preprocessor.load(image_path)
        outputs = self._session.run(None, {self._input_name: tensor})
        return np.asarray(outputs[0], dtype=np.float32).ravel()
