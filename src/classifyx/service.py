"""Classification request handling: stage -> predict -> decide -> release."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from classifyx.errors import BadInput, PayloadTooLarge
from classifyx.ml.decision import decide

if TYPE_CHECKING:
    from classifyx.ml.labels import LabelSet
    from classifyx.ml.pool import InferenceEnginePool
    from classifyx.storage import TempArtifactStore

logger = logging.getLogger(__name__)


class RequestState(StrEnum):
    RECEIVED = "received"
    STAGED = "staged"
    PREDICTING = "predicting"
    DECIDING = "deciding"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ClassificationResult:
    """The answer returned to the caller for one image."""

    image_path: str
    predicted_label: str
    probability: float
    confident: bool


class ClassificationRequestHandler:
    """Runs one upload through the pipeline, always removing the staged file."""

    def __init__(
        self,
        labels: LabelSet,
        store: TempArtifactStore,
        pool: InferenceEnginePool,
        *,
        max_payload_bytes: int | None = None,
    ) -> None:
        self._labels = labels
        self._store = store
        self._pool = pool
        self._max_payload_bytes = max_payload_bytes

    async def classify(self, payload: bytes, filename: str | None = None) -> ClassificationResult:
        """Classify an uploaded image.

        Raises:
            BadInput: Empty, oversized, or wrongly named upload. Nothing is staged.
            StagingError: The upload could not be written.
            InferenceError: The engine failed.
            PoolExhausted: No engine became free in time.
            DecisionError: The probability vector could not be turned into a label.
        """
        state = RequestState.RECEIVED
        if not payload:
            raise BadInput("Uploaded image is empty")
        if self._max_payload_bytes is not None and len(payload) > self._max_payload_bytes:
            raise PayloadTooLarge(f"Uploaded image exceeds {self._max_payload_bytes} bytes")

        with self._store.staged(payload, filename) as image:
            state = self._advance(state, RequestState.STAGED, image.name)
            try:
                state = self._advance(state, RequestState.PREDICTING, image.name)
                logger.info("Start processing image %s", image.name)
                started = time.perf_counter()
                vector = await self._pool.predict(image)
                elapsed_ms = (time.perf_counter() - started) * 1000
                logger.info("Image %s processed in %.1f ms", image.name, elapsed_ms)

                state = self._advance(state, RequestState.DECIDING, image.name)
                decision = decide(vector, self._labels)
            except asyncio.CancelledError:
                pending = self._pool.pending_call(image)
                if pending is not None:
                    # The engine thread keeps reading the file after we stop waiting
                    self._store.hold(image, pending)
                logger.info("Classification of %s cancelled while %s", image.name, state)
                raise
            except Exception:
                logger.exception("Classification of %s failed while %s", image.name, state)
                self._advance(state, RequestState.FAILED, image.name)
                raise

            self._advance(state, RequestState.COMPLETED, image.name)
            return ClassificationResult(
                image_path=image.name,
                predicted_label=decision.label,
                probability=decision.probability,
                confident=decision.confident,
            )

    @staticmethod
    def _advance(current: RequestState, new: RequestState, image_name: str) -> RequestState:
        logger.debug("Request for %s: %s -> %s", image_name, current, new)
        return new
