"""
Central error classification for the delivery paths.

Turns surface/backend failure reports into the delivery error taxonomy
and keeps a short history for diagnostics.
"""

import logging
from typing import Any, Optional

import httpx

from broadcastsync.exceptions import (
    ConfigurationError,
    DeliveryError,
    DeliveryFault,
    FatalDeliveryError,
    FaultKind,
    RecoverableMediaError,
    TransientDeliveryError,
    UnsupportedFormatError,
)

logger = logging.getLogger(__name__)

# Detail strings that mean the runtime cannot decode the stream at all
UNSUPPORTED_CODEC_TERMS = (
    "buffer_add_codec_error",
    "bufferaddcodecerror",
    "codec not supported",
    "unsupported codec",
    "no decoder",
    "decoder not found",
)

NETWORK_TERMS = (
    "timeout",
    "timed out",
    "connection",
    "network",
    "dns",
    "manifest_load_error",
    "frag_load_error",
    "level_load_error",
)


class ErrorClassifier:
    """Classifies delivery faults into delivery errors."""

    @staticmethod
    def classify(fault: DeliveryFault) -> DeliveryError:
        """
        Classify a fatal fault report.

        Args:
            fault: The fault reported by the surface or backend.

        Returns:
            The delivery error describing how it must be handled.
        """
        details = fault.details.lower()

        if fault.kind in (FaultKind.UNSUPPORTED_CODEC, FaultKind.UNSUPPORTED_PLATFORM):
            return UnsupportedFormatError(
                f"Unsupported format: {fault.details or fault.kind.value}", fault
            )

        # Codec errors arrive as media errors with a codec detail
        if any(term in details for term in UNSUPPORTED_CODEC_TERMS):
            return UnsupportedFormatError(f"Unsupported codec: {fault.details}", fault)

        if fault.kind == FaultKind.NETWORK:
            return TransientDeliveryError(f"Network error: {fault.details}", fault)

        if fault.kind == FaultKind.MEDIA:
            return RecoverableMediaError(f"Media error: {fault.details}", fault)

        return FatalDeliveryError(
            f"Unrecoverable delivery error: {fault.details or fault.kind.value}", fault
        )

    @staticmethod
    def fault_from_exception(
        error: Exception, context: Optional[dict[str, Any]] = None
    ) -> DeliveryFault:
        """
        Describe an arbitrary exception as a fault report.

        Used for failures raised by our own I/O (e.g. manifest probing)
        rather than reported by the surface.
        """
        context = dict(context or {})
        error_str = str(error).lower()

        if isinstance(error, httpx.HTTPStatusError):
            context["http_status_code"] = error.response.status_code
            # 5xx and rate limiting may clear up, anything else will not
            status = error.response.status_code
            kind = FaultKind.NETWORK if status >= 500 or status == 429 else FaultKind.OTHER
        elif isinstance(error, (httpx.TransportError, TimeoutError, ConnectionError)):
            kind = FaultKind.NETWORK
        elif any(term in error_str for term in UNSUPPORTED_CODEC_TERMS):
            kind = FaultKind.UNSUPPORTED_CODEC
        elif any(term in error_str for term in NETWORK_TERMS):
            kind = FaultKind.NETWORK
        else:
            kind = FaultKind.OTHER

        return DeliveryFault(kind=kind, fatal=True, details=str(error), context=context)


class ErrorHandler:
    """Classifies faults and remembers recent ones."""

    def __init__(self, history_limit: int = 100):
        self.classifier = ErrorClassifier()
        self.history_limit = history_limit
        self.error_history: list[DeliveryError] = []
        self.transient_reports = 0

    def handle_fault(self, fault: DeliveryFault) -> DeliveryError:
        """
        Classify a fatal fault and record it.

        Args:
            fault: Fault reported by the surface or backend.

        Returns:
            The classified delivery error.
        """
        error = self.classifier.classify(fault)

        self.error_history.append(error)
        if len(self.error_history) > self.history_limit:
            self.error_history = self.error_history[-self.history_limit:]

        logger.warning(
            f"Delivery fault classified: {type(error).__name__} "
            f"(kind: {fault.kind.value}, details: {fault.details or '-'})"
        )

        return error

    def record_transient(self, fault: DeliveryFault) -> None:
        """Record a non-fatal report; these never change delivery."""
        self.transient_reports += 1
        logger.debug(
            f"Non-fatal delivery report: {fault.kind.value} ({fault.details or '-'})"
        )

    def get_recent_errors(
        self,
        error_type: Optional[type[DeliveryError]] = None,
        limit: int = 10,
    ) -> list[DeliveryError]:
        """Get recent errors, optionally filtered by type."""
        errors = self.error_history[-limit:]
        if error_type:
            errors = [e for e in errors if isinstance(e, error_type)]
        return errors


__all__ = [
    "ConfigurationError",
    "DeliveryError",
    "DeliveryFault",
    "ErrorClassifier",
    "ErrorHandler",
    "FatalDeliveryError",
    "FaultKind",
    "RecoverableMediaError",
    "TransientDeliveryError",
    "UnsupportedFormatError",
]
