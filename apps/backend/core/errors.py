"""
Recoverable errors raised by fetchers and extraction strategies.

None of these abort a pipeline run. The orchestrator catches them, records an
attempt on the trail and moves on to the next strategy.
"""
from typing import Optional


class PipelineError(Exception):
    """Base class for every recoverable pipeline failure."""

    def __init__(self, message: str, strategy: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.strategy = strategy

    def __str__(self) -> str:
        return self.message


class FetchError(PipelineError):
    """Network failure, DNS failure, timeout or non-2xx response."""

    def __init__(
        self,
        url: str,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        timed_out: bool = False,
    ):
        super().__init__(message, strategy="fetch")
        self.url = url
        self.status_code = status_code
        self.body = body
        self.timed_out = timed_out

    @property
    def is_transient(self) -> bool:
        """Network errors, timeouts and 5xx responses are worth retrying; 4xx are not."""
        if self.status_code is None:
            return True
        return self.status_code >= 500


class BlockedError(FetchError):
    """HTTP 403/429 (or LinkedIn's 999) or a bot-challenge page was served."""

    @property
    def is_transient(self) -> bool:
        return False


class EmptyContentError(PipelineError):
    """Strategy ran but produced no usable or sub-threshold text."""


class ParseError(PipelineError):
    """Malformed embedded JSON or malformed AI JSON response."""


class RenderTimeoutError(PipelineError):
    """Headless render exceeded its navigation, settle or selector wait."""


class StrategyUnavailableError(PipelineError):
    """Strategy is disabled or its backing capability is not configured."""
