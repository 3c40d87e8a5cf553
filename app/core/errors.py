"""Domain error taxonomy shared by the stores, the provider adapter and the worker."""

from __future__ import annotations


class JobEngineError(Exception):
  """Base class for all course generation failures."""

  code = "INTERNAL"

  def __init__(self, message: str, *, code: str | None = None) -> None:
    super().__init__(message)
    self.message = message
    if code is not None:
      self.code = code


class ValidationError(JobEngineError):
  """Malformed or missing input, or an illegal state transition request."""

  code = "VALIDATION"


class RetryLimitReachedError(ValidationError):
  """Raised when a retry is requested for a job already at its retry cap."""

  code = "RETRY_LIMIT_REACHED"


class InvalidTransitionError(ValidationError):
  """Raised when a job cannot move to the requested status from its current one."""

  code = "INVALID_TRANSITION"


class NotFoundError(JobEngineError):
  """A referenced entity does not exist for the caller's tenant."""

  code = "NOT_FOUND"


class ProviderError(JobEngineError):
  """The AI provider call failed or returned output that could not be parsed."""

  code = "PROVIDER_ERROR"


class StoreError(JobEngineError):
  """A persistence operation failed."""

  code = "STORE_ERROR"

  def __init__(self, message: str, *, code: str | None = None, output_lost: bool = False) -> None:
    # Flag generated output whose token cost was already spent before the write failed.
    if output_lost:
      message = f"{message} Generated output from the provider may have been lost."
    super().__init__(message, code=code)
    self.output_lost = output_lost


class JobCancelledError(JobEngineError):
  """Raised at a checkpoint when the job was cancelled by its owner."""

  code = "CANCELLED"


class JobOwnershipLostError(JobEngineError):
  """Raised at a checkpoint when this worker no longer holds the claim."""

  code = "OWNERSHIP_LOST"
