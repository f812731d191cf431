"""
Unit tests for fault classification and retry logic.
"""

import httpx
import pytest

from broadcastsync.exceptions import (
    BroadcastSyncError,
    DeliveryError,
    DeliveryFault,
    FatalDeliveryError,
    FaultKind,
    RecoverableMediaError,
    TransientDeliveryError,
    UnsupportedFormatError,
)
from broadcastsync.streaming.error_handler import ErrorClassifier, ErrorHandler
from broadcastsync.streaming.retry_manager import RetryConfig, RetryManager


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://media.example.com/day.m3u8")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


@pytest.mark.unit
class TestErrorClassifier:
    """Tests for ErrorClassifier.classify."""

    def test_network_is_transient(self):
        """Network faults are recovered in place."""
        error = ErrorClassifier.classify(DeliveryFault(FaultKind.NETWORK, details="fragLoadError"))

        assert isinstance(error, TransientDeliveryError)
        assert error.fatal is False

    def test_media_is_recoverable(self):
        """Plain media faults get an in-place recovery."""
        error = ErrorClassifier.classify(DeliveryFault(FaultKind.MEDIA, details="bufferStalledError"))

        assert isinstance(error, RecoverableMediaError)

    def test_codec_detail_beats_media_kind(self):
        """A media fault about an unsupported codec is not recoverable."""
        error = ErrorClassifier.classify(
            DeliveryFault(FaultKind.MEDIA, details="bufferAddCodecError")
        )

        assert isinstance(error, UnsupportedFormatError)
        assert error.fatal is True

    def test_unsupported_kinds(self):
        """Unsupported codec and platform faults are unsupported formats."""
        for kind in (FaultKind.UNSUPPORTED_CODEC, FaultKind.UNSUPPORTED_PLATFORM):
            assert isinstance(ErrorClassifier.classify(DeliveryFault(kind)), UnsupportedFormatError)

    def test_other_is_fatal(self):
        """Anything unrecognised is fatal."""
        error = ErrorClassifier.classify(DeliveryFault(FaultKind.OTHER, details="keySystemError"))

        assert isinstance(error, FatalDeliveryError)

    def test_error_carries_fault(self):
        """Classified errors keep the original report."""
        fault = DeliveryFault(FaultKind.NETWORK, details="manifestLoadError")

        assert ErrorClassifier.classify(fault).fault is fault

    def test_taxonomy(self):
        """All delivery errors share the package base class."""
        assert issubclass(DeliveryError, BroadcastSyncError)
        assert issubclass(UnsupportedFormatError, DeliveryError)


@pytest.mark.unit
class TestFaultFromException:
    """Tests for ErrorClassifier.fault_from_exception."""

    def test_server_error_is_network(self):
        """5xx responses may clear up."""
        fault = ErrorClassifier.fault_from_exception(_status_error(503))

        assert fault.kind == FaultKind.NETWORK
        assert fault.context["http_status_code"] == 503

    def test_rate_limit_is_network(self):
        """429 responses may clear up."""
        assert ErrorClassifier.fault_from_exception(_status_error(429)).kind == FaultKind.NETWORK

    def test_not_found_is_other(self):
        """4xx responses will not clear up."""
        assert ErrorClassifier.fault_from_exception(_status_error(404)).kind == FaultKind.OTHER

    def test_transport_errors_are_network(self):
        """Connection failures are network faults."""
        fault = ErrorClassifier.fault_from_exception(httpx.ConnectError("refused"))

        assert fault.kind == FaultKind.NETWORK

    def test_codec_message(self):
        """Codec messages map to unsupported codec."""
        fault = ErrorClassifier.fault_from_exception(RuntimeError("Codec not supported: hvc1"))

        assert fault.kind == FaultKind.UNSUPPORTED_CODEC

    def test_context_is_kept(self):
        """Caller context is attached to the fault."""
        fault = ErrorClassifier.fault_from_exception(ValueError("boom"), {"url": "x"})

        assert fault.kind == FaultKind.OTHER
        assert fault.context == {"url": "x"}


@pytest.mark.unit
class TestErrorHandler:
    """Tests for ErrorHandler history."""

    def test_history_is_bounded(self):
        """Only the most recent errors are kept."""
        handler = ErrorHandler(history_limit=3)
        for i in range(5):
            handler.handle_fault(DeliveryFault(FaultKind.MEDIA, details=f"glitch {i}"))

        assert len(handler.error_history) == 3
        assert "glitch 4" in str(handler.error_history[-1])

    def test_recent_errors_filter(self):
        """Recent errors can be filtered by type."""
        handler = ErrorHandler()
        handler.handle_fault(DeliveryFault(FaultKind.MEDIA))
        handler.handle_fault(DeliveryFault(FaultKind.NETWORK))

        recent = handler.get_recent_errors(error_type=TransientDeliveryError)

        assert len(recent) == 1
        assert isinstance(recent[0], TransientDeliveryError)

    def test_transient_reports_are_counted_not_classified(self):
        """Non-fatal reports never enter the history."""
        handler = ErrorHandler()
        handler.record_transient(DeliveryFault(FaultKind.NETWORK, fatal=False))

        assert handler.transient_reports == 1
        assert handler.error_history == []


@pytest.mark.unit
class TestRetryManager:
    """Tests for RetryManager."""

    @pytest.mark.asyncio
    async def test_retries_network_failures(self):
        """Network failures are retried until success."""
        manager = RetryManager(RetryConfig(max_retries=2, backoff_base=0))
        calls = []

        async def operation():
            calls.append(1)
            if len(calls) < 3:
                raise httpx.ConnectError("refused")
            return "ok"

        assert await manager.execute_with_retry(operation) == "ok"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        """The last error is raised once retries are exhausted."""
        manager = RetryManager(RetryConfig(max_retries=1, backoff_base=0))

        async def operation():
            raise httpx.ConnectError("refused")

        with pytest.raises(httpx.ConnectError):
            await manager.execute_with_retry(operation)
        assert len(manager.attempt_history) == 2

    @pytest.mark.asyncio
    async def test_does_not_retry_other_failures(self):
        """Non-network failures fail on the first attempt."""
        manager = RetryManager(RetryConfig(max_retries=3, backoff_base=0))
        calls = []

        async def operation():
            calls.append(1)
            raise _status_error(404)

        with pytest.raises(httpx.HTTPStatusError):
            await manager.execute_with_retry(operation)
        assert len(calls) == 1

    def test_backoff(self):
        """Backoff doubles and is capped."""
        manager = RetryManager(RetryConfig(backoff_base=1.0, backoff_max=5.0))

        assert manager._calculate_backoff(0) == 1.0
        assert manager._calculate_backoff(2) == 4.0
        assert manager._calculate_backoff(5) == 5.0

    def test_linear_backoff(self):
        """Exponential backoff can be disabled."""
        manager = RetryManager(RetryConfig(backoff_base=0.5, use_exponential_backoff=False))

        assert manager._calculate_backoff(4) == 0.5
