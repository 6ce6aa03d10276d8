"""
Generation error taxonomy.

Each class maps to one failure family so callers (and the HTTP layer) can tell
a bad configuration from a blocked precondition, a busy lock, or an internal bug.
"""

from typing import Any, Dict, List, Optional


class GenerationError(Exception):
    """Base class for every failure raised by the scheduling engine."""

    code = "GENERATION_ERROR"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> str:
        return f"{self.code}: {self.message}"


class ConfigurationError(GenerationError):
    """Raised when division settings or inputs make generation impossible (unsupported K, empty pools...)."""

    code = "CONFIGURATION_ERROR"
    status_code = 422


class PreconditionError(GenerationError):
    """Raised when persisted state blocks the operation. `blocking` lists the offending record ids."""

    code = "PRECONDITION_FAILED"
    status_code = 409

    def __init__(self, message: str, blocking: Optional[List[str]] = None):
        super().__init__(message)
        self.blocking = list(blocking or [])


class GenerationInProgressError(GenerationError):
    """Raised when another caller holds a non-stale generation lock. Retry later."""

    code = "GENERATION_IN_PROGRESS"
    status_code = 409


class ConsistencyError(GenerationError):
    """Internal invariant violated. `context` carries the counts and keys needed to debug it."""

    code = "CONSISTENCY_ERROR"
    status_code = 500

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = dict(context or {})
