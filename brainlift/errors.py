"""Error taxonomy shared by the orchestrator and its collaborators."""
from __future__ import annotations


class ResearchError(Exception):
    """Base class for every error raised by the research core."""


class ValidationError(ResearchError):
    """Bad input to ``start_research``; no job is created."""


class CollaboratorError(ResearchError):
    """Failure reported by the search or synthesis collaborator."""

    retryable: bool = False


class TransientCollaboratorError(CollaboratorError):
    retryable = True


class NetworkError(TransientCollaboratorError):
    pass


class RateLimitError(TransientCollaboratorError):
    pass


class QuotaError(CollaboratorError):
    retryable = False


class QuotaExceededError(QuotaError):
    pass


class JobTimeoutError(ResearchError):
    """A job ran past its per-job deadline."""


class CancellationError(ResearchError):
    """The user cancelled the job."""

    def __init__(self, message: str = "cancelled"):
        super().__init__(message)


class WorkflowError(ResearchError):
    """Terminal failure of one workflow pipeline.

    ``stage`` names the pipeline stage that failed and ``cause`` is the
    last underlying exception. ``retryable`` is always False once the
    executor gives up, but is kept so callers can tell quota failures
    apart from exhausted transient ones in logs.
    """

    def __init__(self, stage: str, cause: BaseException, retryable: bool = False):
        self.stage = stage
        self.cause = cause
        self.retryable = retryable
        super().__init__(f"{stage} failed: {cause}")

    @property
    def cancelled(self) -> bool:
        return isinstance(self.cause, CancellationError)

    @property
    def message(self) -> str:
        if self.cancelled:
            return "cancelled"
        return str(self.cause) or type(self.cause).__name__
