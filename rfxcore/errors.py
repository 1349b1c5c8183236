#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Error taxonomy for the RFX proposal engine.

Every failure that crosses a component boundary is an RFXError carrying an
ErrorType classification and a details dict, so the pipeline caller can log
which phase (and which requirement, where known) failed.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorType(Enum):
    """Error type classifications."""
    EXTRACTION = "extraction"
    EXTERNAL_API = "external_api"
    TIMEOUT = "timeout"
    PRICING = "pricing"
    CONFIGURATION = "configuration"
    PIPELINE = "pipeline"


class RFXError(Exception):
    """Base exception for the proposal engine."""

    error_type = ErrorType.PIPELINE

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": True,
            "type": self.error_type.value,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp,
        }


class ExtractionError(RFXError):
    """Extraction produced nothing usable (malformed, empty or exhausted)."""
    error_type = ErrorType.EXTRACTION


class LLMUnavailableError(RFXError):
    """Raised when the router cannot resolve a provider for a function."""
    error_type = ErrorType.EXTERNAL_API


class RetriesExhaustedError(RFXError):
    """A transient failure persisted past the retry budget."""
    error_type = ErrorType.EXTERNAL_API

    def __init__(self, label: str, attempts: int, last_error: BaseException):
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{label} failed after {attempts} attempts: {last_error}",
            {"operation": label, "attempts": attempts,
             "last_error": str(last_error),
             "last_error_type": type(last_error).__name__},
        )


class OperationTimeoutError(RFXError):
    """An operation did not finish before its deadline."""
    error_type = ErrorType.TIMEOUT

    def __init__(self, label: str, seconds: float):
        self.label = label
        self.seconds = seconds
        super().__init__(
            f"{label} timed out after {seconds:g}s",
            {"operation": label, "timeout_seconds": seconds},
        )


class PricingError(RFXError):
    """Pricing cannot proceed (e.g. empty catalog)."""
    error_type = ErrorType.PRICING


class ConfigError(RFXError, ValueError):
    """Invalid configuration file or value."""
    error_type = ErrorType.CONFIGURATION


class PipelineError(RFXError):
    """A pipeline phase failed; the run was aborted before synthesis."""
    error_type = ErrorType.PIPELINE

    def __init__(self, phase: str, cause: BaseException):
        self.phase = phase
        self.cause = cause
        details = {"phase": phase, "cause": str(cause),
                   "cause_type": type(cause).__name__}
        if isinstance(cause, RFXError):
            details.update({f"cause_{k}": v for k, v in cause.details.items()})
        super().__init__(f"Pipeline aborted in {phase} phase: {cause}", details)
