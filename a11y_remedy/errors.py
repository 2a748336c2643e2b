"""Exception types raised inside the remediation pipeline."""

from __future__ import annotations

from enum import Enum
from typing import Optional

TRANSIENT_STATUS_CODES = frozenset({408, 429})


class InferenceFailure(str, Enum):
    NETWORK = "network"
    HTTP_STATUS = "http_status"
    SCHEMA_VIOLATION = "schema_violation"
    PARSE_FAILURE = "parse_failure"


class InferenceError(Exception):
    """The inference service did not yield a usable structured result."""

    def __init__(
        self,
        kind: InferenceFailure,
        message: str,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(f"{kind.value}: {message}")
        self.kind = kind
        self.message = message
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        """Only transport-level failures are worth repeating unchanged."""
        if self.kind is InferenceFailure.NETWORK:
            return True
        if self.kind is InferenceFailure.HTTP_STATUS and self.status_code is not None:
            return self.status_code >= 500 or self.status_code in TRANSIENT_STATUS_CODES
        return False


class ApplyError(Exception):
    """A mutation against the document tree was rejected."""

    kind = "apply"


class CaptureDegraded(Exception):
    """A render path could not produce real pixels; callers substitute a placeholder."""


class RunCancelled(Exception):
    """The run that owns a task was superseded or switched off."""
