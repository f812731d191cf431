"""
Manifest preflight for continuous delivery.

Fetches the adaptive manifest before the backend is attached and rejects
streams the runtime cannot play: unreachable manifests, bodies that are
not M3U playlists, and master playlists whose every variant uses a codec
outside the supported set (e.g. HEVC-only streams).
"""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Optional

import httpx

from broadcastsync.exceptions import (
    DeliveryFault,
    FatalDeliveryError,
    FaultKind,
    UnsupportedFormatError,
)
from broadcastsync.streaming.error_handler import ErrorClassifier
from broadcastsync.streaming.retry_manager import RetryConfig, RetryManager

logger = logging.getLogger(__name__)

_CODECS_RE = re.compile(r'CODECS="([^"]*)"', re.IGNORECASE)

STREAM_INF_TAG = "#EXT-X-STREAM-INF:"


@dataclass
class ManifestVariant:
    """One variant stream declared by a master playlist."""

    uri: str
    codecs: list[str] = field(default_factory=list)


@dataclass
class ManifestReport:
    """Result of a successful probe."""

    url: str
    variants: list[ManifestVariant] = field(default_factory=list)
    playable_variants: list[ManifestVariant] = field(default_factory=list)

    @property
    def is_master(self) -> bool:
        return bool(self.variants)


def codec_supported(codec: str, supported: Iterable[str]) -> bool:
    """True if the codec's family (the part before the first dot) is supported."""
    family = codec.strip().split(".", 1)[0].lower()
    return family in {s.lower() for s in supported}


def parse_manifest(url: str, text: str) -> ManifestReport:
    """
    Parse the variant list of an M3U playlist.

    Raises:
        FatalDeliveryError: If the body is not an M3U playlist
    """
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines or not lines[0].startswith("#EXTM3U"):
        raise FatalDeliveryError(
            f"Not an M3U playlist: {url}",
            DeliveryFault(kind=FaultKind.OTHER, details="manifest_parsing_error"),
        )

    report = ManifestReport(url=url)
    pending_codecs: Optional[list[str]] = None
    for line in lines[1:]:
        if line.startswith(STREAM_INF_TAG):
            match = _CODECS_RE.search(line)
            pending_codecs = (
                [c.strip() for c in match.group(1).split(",") if c.strip()] if match else []
            )
        elif pending_codecs is not None and not line.startswith("#"):
            report.variants.append(ManifestVariant(uri=line, codecs=pending_codecs))
            pending_codecs = None
    return report


class ManifestProbe:
    """
    Fetches and checks a manifest over HTTP.

    Usage:
        probe = ManifestProbe(supported_codecs=["avc1", "mp4a"])
        report = await probe.probe("https://example.com/day.m3u8")
    """

    def __init__(
        self,
        supported_codecs: Iterable[str],
        timeout: float = 10.0,
        retry_config: Optional[RetryConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the probe.

        Args:
            supported_codecs: Codec families the runtime can decode
            timeout: HTTP timeout per attempt (seconds)
            retry_config: Backoff settings for network failures
            client: Shared HTTP client; a private one is opened per probe otherwise
        """
        self.supported_codecs = [c.lower() for c in supported_codecs]
        self.timeout = timeout
        self.retry_manager = RetryManager(retry_config)
        self.classifier = ErrorClassifier()
        self._client = client

    async def probe(self, url: str) -> ManifestReport:
        """
        Fetch and validate ``url``.

        Raises:
            FatalDeliveryError: Manifest unreachable or malformed
            UnsupportedFormatError: No variant uses a supported codec
        """
        try:
            if self._client is not None:
                text = await self._fetch(self._client, url)
            else:
                async with httpx.AsyncClient(follow_redirects=True) as client:
                    text = await self._fetch(client, url)
        except httpx.HTTPError as e:
            fault = self.classifier.fault_from_exception(e, {"url": url})
            raise FatalDeliveryError(f"Manifest unreachable: {url} ({e})", fault) from e

        report = parse_manifest(url, text)
        report.playable_variants = [
            variant
            for variant in report.variants
            if all(codec_supported(codec, self.supported_codecs) for codec in variant.codecs)
        ]

        if report.is_master and not report.playable_variants:
            declared = sorted({codec for v in report.variants for codec in v.codecs})
            raise UnsupportedFormatError(
                f"No playable variant in {url} (codecs: {', '.join(declared)})",
                DeliveryFault(
                    kind=FaultKind.UNSUPPORTED_CODEC,
                    details=f"unsupported codecs: {', '.join(declared)}",
                    context={"url": url},
                ),
            )

        logger.info(
            f"Manifest probe ok: {url} "
            f"({len(report.playable_variants)}/{len(report.variants)} playable variants)"
        )
        return report

    async def _fetch(self, client: httpx.AsyncClient, url: str) -> str:
        async def request() -> str:
            response = await client.get(url, timeout=self.timeout)
            response.raise_for_status()
            return response.text

        return await self.retry_manager.execute_with_retry(
            request,
            operation_name=f"Manifest probe {url}",
            context={"url": url},
        )
