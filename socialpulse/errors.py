"""
Error Taxonomy

Only UpstreamError (and InvalidQuery for malformed input) is meant to
reach callers of the read path. Everything else is absorbed by the
layer that raises it and turned into "try the next path" behavior.
"""

from typing import List, Optional


class SocialPulseError(Exception):
    """Base class for all errors raised by this package."""


class InvalidQuery(SocialPulseError, ValueError):
    """A QuerySpec was constructed with inconsistent fields."""


class CacheUnavailable(SocialPulseError):
    """Backing cache store is unreachable. Always recovered as a miss."""


class PrecomputedReadFailed(SocialPulseError):
    """Reading a precomputed slice failed or timed out. Routes to fallback."""


class FallbackComputationFailed(SocialPulseError):
    """Raw-data aggregation failed. No further fallback exists."""


class UpstreamError(SocialPulseError):
    """
    Raised by the read orchestrator when no path could produce a result.

    Carries every underlying cause so a single error describes the
    whole failed read.
    """

    def __init__(self, message: str, causes: Optional[List[BaseException]] = None):
        super().__init__(message)
        self.causes = list(causes or [])

    def __str__(self) -> str:
        base = super().__str__()
        if not self.causes:
            return base
        details = "; ".join(f"{type(c).__name__}: {c}" for c in self.causes)
        return f"{base} ({details})"


class RebuildUnsupported(SocialPulseError):
    """The precomputed store cannot rebuild itself in this deployment."""


class RebuildTargetFailed(SocialPulseError):
    """A single refresh target failed to rebuild."""

    def __init__(self, target: str, reason: str):
        super().__init__(f"{target}: {reason}")
        self.target = target
        self.reason = reason
