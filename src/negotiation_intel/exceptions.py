"""
Exception types for the change intelligence pipeline.

Source lookup failures never leave the context aggregator; everything
else here may reach a caller of the counterproposal generator.
"""


class NegotiationIntelError(Exception):
    """Base exception for all pipeline errors."""


class PreconditionError(NegotiationIntelError):
    """Raised when an operation cannot be attempted with the given input."""


class OperationTimeoutError(NegotiationIntelError):
    """Raised when a bounded external call exceeds its timeout."""

    def __init__(self, label: str, timeout_seconds: float):
        self.label = label
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{label} timed out after {timeout_seconds:g}s")


class ModelInvocationError(NegotiationIntelError):
    """Raised when the text-generation call fails."""


class ModelTimeoutError(OperationTimeoutError, ModelInvocationError):
    """Raised when the text-generation call exceeds its timeout."""


class ResponseParseError(NegotiationIntelError):
    """Raised when a model response cannot be parsed into a valid result."""

    def __init__(self, message: str, raw_text: str = ""):
        self.raw_text = raw_text
        super().__init__(message)


class PersistenceError(NegotiationIntelError):
    """Raised when a persistence write fails or returns nothing."""
