"""Exception hierarchy for the classification pipeline.

Client-correctable failures derive from :class:`BadInput`; everything else is
a server-side failure. :class:`ConfigurationError` and
:class:`ModelContractViolation` raised during startup keep the service from
accepting traffic.
"""

from __future__ import annotations


class ClassifyXError(Exception):
    """Base class for all ClassifyX errors."""


class BadInput(ClassifyXError):
    """The uploaded payload was empty or otherwise unusable."""


class PayloadTooLarge(BadInput):
    """The uploaded payload exceeds the configured size limit."""


class StagingError(ClassifyXError):
    """Writing the uploaded payload to temporary storage failed."""


class InferenceError(ClassifyXError):
    """The model engine failed to produce a probability vector."""


class PoolExhausted(ClassifyXError):
    """No inference engine became free within the acquisition timeout."""


class DecisionError(ClassifyXError):
    """A label could not be chosen from the probability vector."""


class EmptyVectorError(DecisionError):
    """The model returned a zero-length probability vector."""


class ModelContractViolation(DecisionError):
    """The model's output size does not match the label count."""


class NonFiniteScoresError(DecisionError):
    """The probability vector contains NaN or infinite scores."""


class ConfigurationError(ClassifyXError):
    """Startup configuration (labels, model source) is invalid."""
