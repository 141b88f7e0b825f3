"""
STOCKCOUNT Custom Exceptions

Provides the domain-specific exception hierarchy for the voice inventory
pipeline. Every error raised inside a session is one of these, so the session
loop can report it to the client and keep listening.

Exception Hierarchy:
    StockcountError (base)
    ├── ConfigurationError
    ├── TransportError
    │   ├── LLMTransportError
    │   └── SearchTransportError
    ├── ResolutionError
    │   ├── AmbiguousMatch
    │   └── NotFound
    ├── ValidationError
    │   └── UnitConversionError
    └── SessionError
        ├── SessionClosedError
        └── NoPendingConfirmationError
"""

from typing import Any, Optional, Sequence


class StockcountError(Exception):
    """Base exception for all STOCKCOUNT errors.

    Attributes:
        message: Human-readable error description
        details: Optional dict with additional error context
    """

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(StockcountError):
    """Error in configuration file or settings."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_file: Optional[str] = None,
    ) -> None:
        details = {}
        if config_key:
            details["config_key"] = config_key
        if config_file:
            details["config_file"] = config_file
        super().__init__(message, details)
        self.config_key = config_key
        self.config_file = config_file


# =============================================================================
# Transport Errors
# =============================================================================

class TransportError(StockcountError):
    """A backend (LLM, embeddings, similarity search, store) was unreachable.

    Retries belong to the transport layer. The pipeline treats this as
    "no result" and continues.
    """

    def __init__(
        self,
        message: str,
        service_name: Optional[str] = None,
        status: Optional[int] = None,
    ) -> None:
        details: dict[str, Any] = {}
        if service_name:
            details["service"] = service_name
        if status is not None:
            details["status"] = status
        super().__init__(message, details)
        self.service_name = service_name
        self.status = status


class LLMTransportError(TransportError):
    """LLM chat completion failed or returned nothing usable."""
    pass


class SearchTransportError(TransportError):
    """Embedding or similarity search backend failed."""
    pass


# =============================================================================
# Item Resolution Errors
# =============================================================================

class ResolutionError(StockcountError):
    """Base class for spoken-item-to-catalog resolution failures."""

    def __init__(self, message: str, spoken_text: str, details: Optional[dict[str, Any]] = None) -> None:
        details = dict(details or {})
        details["spoken"] = spoken_text
        super().__init__(message, details)
        self.spoken_text = spoken_text


class AmbiguousMatch(ResolutionError):
    """The best catalog candidate did not clear the acceptance threshold.

    Never auto-resolved: the suggestions are surfaced to the user as a
    clarification request.
    """

    def __init__(
        self,
        spoken_text: str,
        suggestions: Sequence[str],
        best_score: Optional[float] = None,
    ) -> None:
        details: dict[str, Any] = {"suggestions": list(suggestions)}
        if best_score is not None:
            details["best_score"] = round(best_score, 3)
        super().__init__(f"Ambiguous item: '{spoken_text}'", spoken_text, details)
        self.suggestions = list(suggestions)
        self.best_score = best_score


class NotFound(ResolutionError):
    """No catalog item came back from similarity search."""

    def __init__(self, spoken_text: str) -> None:
        super().__init__(f"Item not found: '{spoken_text}'", spoken_text)


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(StockcountError):
    """A command cannot be applied as stated (bad unit, bad quantity)."""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None) -> None:
        details: dict[str, Any] = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = value
        super().__init__(message, details)
        self.field = field
        self.value = value


class UnitConversionError(ValidationError):
    """Units are unknown or belong to incompatible families."""

    def __init__(self, message: str, from_unit: str, to_unit: str) -> None:
        super().__init__(message, field="unit", value=f"{from_unit}->{to_unit}")
        self.from_unit = from_unit
        self.to_unit = to_unit


# =============================================================================
# Session Errors
# =============================================================================

class SessionError(StockcountError):
    """Base class for session lifecycle errors."""

    def __init__(self, message: str, session_id: Optional[str] = None) -> None:
        details = {"session_id": session_id} if session_id else {}
        super().__init__(message, details)
        self.session_id = session_id


class SessionClosedError(SessionError):
    """Operation attempted on a session that has been torn down."""
    pass


class NoPendingConfirmationError(SessionError):
    """confirm/reject/correct arrived while nothing was awaiting confirmation."""
    pass


__all__ = [
    "StockcountError",
    "ConfigurationError",
    "TransportError",
    "LLMTransportError",
    "SearchTransportError",
    "ResolutionError",
    "AmbiguousMatch",
    "NotFound",
    "ValidationError",
    "UnitConversionError",
    "SessionError",
    "SessionClosedError",
    "NoPendingConfirmationError",
]
