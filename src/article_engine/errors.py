"""Error taxonomy for the article engine.

Collaborator failures are ``ProviderError`` subclasses. Only
``ContentGenerationError`` is allowed to abort a run.
"""

from __future__ import annotations


class ProviderError(Exception):
    """A collaborator (LLM, SERP, scorer, publisher) call failed."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status

    @property
    def is_transient(self) -> bool:
        # No status means timeout / network failure
        if self.status is None:
            return True
        return self.status == 429 or self.status >= 500


class AuthenticationError(ProviderError):
    """401/403 from a provider. Never retried."""

    @property
    def is_transient(self) -> bool:
        return False


class BadRequestError(ProviderError):
    """Any other 4xx from a provider. Never retried."""

    @property
    def is_transient(self) -> bool:
        return False


class QueryNotReadyError(ProviderError):
    """The scorer is still building the analysis for a query."""

    @property
    def is_transient(self) -> bool:
        return False


class ContentGenerationError(Exception):
    """A mandatory generation step failed; the run cannot produce a draft."""

    def __init__(self, step: str, reason: str):
        super().__init__(f"{step} failed: {reason}")
        self.step = step
        self.reason = reason
