"""
Error taxonomy for the training pipeline.

- ValidationError: malformed input to a single call; never coerced
- RunnerFailure: a batch failed inside a runner; its delta must not be merged
- ProtocolError: a runner received a message it does not understand
"""

from typing import Optional


class ZapZapError(Exception):
    """Base class for pipeline errors."""


class ValidationError(ZapZapError, ValueError):
    pass


class RunnerFailure(ZapZapError):

    def __init__(self, message: str, batch_id: Optional[str] = None,
                 runner_id: Optional[str] = None, trace: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.batch_id = batch_id
        self.runner_id = runner_id
        self.trace = trace

    def __str__(self):
        return f"batch {self.batch_id} on {self.runner_id}: {self.message}"


class ProtocolError(ZapZapError):

    def __init__(self, message: str, message_type: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.message_type = message_type


def check_epsilon(epsilon) -> float:
    if isinstance(epsilon, bool) or not isinstance(epsilon, (int, float)) \
            or not 0.0 <= epsilon <= 1.0:
        raise ValidationError(f"epsilon must be within [0, 1], got {epsilon!r}")
    return float(epsilon)
