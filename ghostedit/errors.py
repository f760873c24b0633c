"""Error and notice types shared by the completion and replacement paths."""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class GhostEditError(Exception):
    """Base class for ghostedit errors."""


class InferenceError(GhostEditError):
    """The inference service failed to produce a result."""


class InferenceUnavailable(InferenceError):
    """Service unreachable, timed out, or returned a bad response."""


class RequestCancelled(InferenceError):
    """The request was superseded or dismissed before it finished."""


class FailureKind(Enum):
    TRANSIENT = "transient"          # service unreachable, aborted
    EMPTY = "empty"                  # empty / low-quality result
    MATCH_FAILURE = "match_failure"  # no replacement found in the response
    NOOP = "noop"                    # candidate identical, colors unchanged
    TARGET_MISSING = "target_missing"  # chunk left the working set before apply
    STALE = "stale"                  # superseded request, never surfaced


def failure_kind(error: Exception) -> FailureKind:
    if isinstance(error, RequestCancelled):
        return FailureKind.STALE
    return FailureKind.TRANSIENT


@dataclass
class Notice:
    """A user-visible, non-blocking message."""
    level: str      # "info", "warning" or "error"
    message: str
    kind: Optional[FailureKind] = None
