"""Best-label selection with a fixed confidence threshold."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from classifyx.errors import EmptyVectorError, ModelContractViolation, NonFiniteScoresError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

    from classifyx.ml.labels import LabelSet

CONFIDENCE_THRESHOLD: float = 0.7
NO_MATCH_LABEL: str = "None"


@dataclass(frozen=True)
class Decision:
    """Outcome of the decision policy for one probability vector."""

    label: str
    probability: float
    confident: bool


def decide(vector: NDArray[np.float32] | Sequence[float], labels: LabelSet) -> Decision:
    """Pick the highest-scoring label, or ``"None"`` if it is not above the threshold.

    Ties resolve to the lowest index. The maximum score is reported either way.

    Raises:
        EmptyVectorError: If the vector has no components.
        ModelContractViolation: If the vector and label set differ in length.
        NonFiniteScoresError: If any score is NaN or infinite.
    """
    scores = np.asarray(vector).ravel()
    if scores.size == 0:
        raise EmptyVectorError("Model returned an empty probability vector")
    if scores.size != len(labels):
        raise ModelContractViolation(
            f"Probability vector has {scores.size} components but there are {len(labels)} labels"
        )
    if not np.isfinite(scores).all():
        raise NonFiniteScoresError(f"Probability vector contains non-finite scores: {scores.tolist()}")

    # np.argmax returns the first occurrence of the maximum
    index = int(np.argmax(scores))
    probability = float(scores[index])

    if probability > CONFIDENCE_THRESHOLD:
        return Decision(label=labels.get(index), probability=probability, confident=True)
    return Decision(label=NO_MATCH_LABEL, probability=probability, confident=False)
