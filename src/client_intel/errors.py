"""Error taxonomy for the Client Intelligence Engine.

Four recoverable failure kinds cross the core's boundaries:

  SourceUnavailableError     roster/billing/catalog missing or unreadable; degrade per component
  EnrichmentFailedError      search/AI call failed, timed out, or quota exhausted; fall back to rules
  MalformedRecordError       one usage fact or roster row failed shape validation; skip and count
  ConfigurationMissingError  no credentials for an optional tier; tier treated as unavailable

Public operations catch these and report them through result-with-status
values. Only ``NotFoundError`` is allowed to reach the HTTP layer.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Stable machine-readable error codes."""

    SOURCE_UNAVAILABLE = "source_unavailable"
    ENRICHMENT_FAILED = "enrichment_failed"
    QUOTA_EXCEEDED = "quota_exceeded"
    MALFORMED_RECORD = "malformed_record"
    CONFIGURATION_MISSING = "configuration_missing"
    NOT_FOUND = "not_found"


class ClientIntelError(Exception):
    """Base class for all engine errors.

    Args:
        message: Human-readable description.
        error_code: Machine-readable classification.
    """

    def __init__(self, message: str, error_code: ErrorCode) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class SourceUnavailableError(ClientIntelError):
    """A data source could not be read."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"{source} source unavailable: {reason}", ErrorCode.SOURCE_UNAVAILABLE)
        self.source = source


class EnrichmentFailedError(ClientIntelError):
    """An external enrichment tier failed or refused the call."""

    def __init__(self, tier: str, reason: str, error_code: ErrorCode = ErrorCode.ENRICHMENT_FAILED) -> None:
        super().__init__(f"{tier} enrichment failed: {reason}", error_code)
        self.tier = tier


class MalformedRecordError(ClientIntelError):
    """A single input row failed validation.

    Args:
        reason: What was wrong with the row.
        line_number: 1-based position in the source, when known.
    """

    def __init__(self, reason: str, line_number: int | None = None) -> None:
        location = f" (line {line_number})" if line_number is not None else ""
        super().__init__(f"malformed record{location}: {reason}", ErrorCode.MALFORMED_RECORD)
        self.reason = reason
        self.line_number = line_number


class ConfigurationMissingError(ClientIntelError):
    """An optional tier has no credentials configured."""

    def __init__(self, tier: str) -> None:
        super().__init__(f"{tier} tier is not configured", ErrorCode.CONFIGURATION_MISSING)
        self.tier = tier


class NotFoundError(ClientIntelError):
    """A client-scoped lookup matched nothing."""

    def __init__(self, resource: str, resource_id: str) -> None:
        super().__init__(f"{resource} '{resource_id}' not found", ErrorCode.NOT_FOUND)
        self.resource = resource
        self.resource_id = resource_id
