"""
Relay error types and upstream error classification.

Maps upstream (Gemini Live) failures to stable categories so logs stay
comparable across SDK versions, without crashing the caller.
"""
from typing import Optional


class RelayError(Exception):
    """Base class for errors raised by the relay."""


class EnvelopeError(RelayError):
    """A client frame is not valid JSON or does not match its envelope schema."""


class UnhandledEnvelopeError(EnvelopeError):
    """A client frame carries a `type` tag the relay does not know."""

    def __init__(self, tag: Optional[str]):
        self.tag = tag
        super().__init__(f"Unhandled envelope type: {tag!r}")


class UpstreamSetupError(RelayError):
    """The upstream conversational session could not be opened."""

    def __init__(self, category: str, detail: str):
        self.category = category
        self.detail = detail
        super().__init__(f"{category}: {detail}")


class UpstreamErrorCategory:
    """Stable upstream error categories."""

    AUTH_FAILED = "upstream.auth_failed"
    MISCONFIGURED = "upstream.misconfigured"
    NETWORK_ERROR = "upstream.network_error"
    RATE_LIMITED = "upstream.rate_limited"
    UNKNOWN_ERROR = "upstream.unknown_error"


class UpstreamErrorHandler:
    """Classifies upstream exceptions and produces log-safe details."""

    @staticmethod
    def classify_error(error: Exception) -> str:
        """Classify an upstream exception into a stable category string."""
        error_str = str(error).lower()

        if (
            "api key" in error_str
            or "unauthorized" in error_str
            or "permission" in error_str
            or "401" in error_str
            or "403" in error_str
        ):
            return UpstreamErrorCategory.AUTH_FAILED

        if "rate limit" in error_str or "429" in error_str or "quota" in error_str:
            return UpstreamErrorCategory.RATE_LIMITED

        if "not found" in error_str or "404" in error_str or "invalid argument" in error_str:
            return UpstreamErrorCategory.MISCONFIGURED

        if (
            isinstance(error, (ConnectionError, TimeoutError, OSError))
            or "timeout" in error_str
            or "connection" in error_str
            or "network" in error_str
        ):
            return UpstreamErrorCategory.NETWORK_ERROR

        return UpstreamErrorCategory.UNKNOWN_ERROR

    @staticmethod
    def redact(error: Exception) -> str:
        """Error detail with anything that looks like a credential removed."""
        detail = str(error)
        lowered = detail.lower()
        if "key=" in lowered or "secret" in lowered or "token" in lowered:
            return "[redacted: potential secret]"
        return detail

    @staticmethod
    def to_setup_error(error: Exception) -> UpstreamSetupError:
        return UpstreamSetupError(
            UpstreamErrorHandler.classify_error(error),
            UpstreamErrorHandler.redact(error),
        )
