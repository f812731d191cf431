"""
Manifest Probe Tests

Exercises the continuous-manifest preflight over httpx.MockTransport.
"""

import httpx
import pytest

from broadcastsync.exceptions import FatalDeliveryError, FaultKind, UnsupportedFormatError
from broadcastsync.streaming.manifest_probe import (
    ManifestProbe,
    codec_supported,
    parse_manifest,
)
from broadcastsync.streaming.retry_manager import RetryConfig

URL = "https://media.example.com/day.m3u8"

MASTER_PLAYLIST = """#EXTM3U
#EXT-X-VERSION:6
#EXT-X-STREAM-INF:BANDWIDTH=2500000,RESOLUTION=1280x720,CODECS="avc1.64001f,mp4a.40.2"
720p/index.m3u8
#EXT-X-STREAM-INF:BANDWIDTH=5000000,RESOLUTION=1920x1080,CODECS="hvc1.1.6.L120.90,mp4a.40.2"
1080p/index.m3u8
"""

HEVC_ONLY_PLAYLIST = """#EXTM3U
#EXT-X-STREAM-INF:BANDWIDTH=5000000,CODECS="hvc1.1.6.L120.90,mp4a.40.2"
1080p/index.m3u8
"""

MEDIA_PLAYLIST = """#EXTM3U
#EXT-X-TARGETDURATION:6
#EXTINF:6.0,
segment0.ts
#EXTINF:6.0,
segment1.ts
"""


def _client(*replies: tuple[int, str]) -> tuple[httpx.AsyncClient, list[httpx.Request]]:
    """Client answering with ``replies`` in order (the last one repeats)."""
    requests: list[httpx.Request] = []
    queue = list(replies)

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        status, text = queue.pop(0) if len(queue) > 1 else queue[0]
        return httpx.Response(status, text=text)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), requests


def _probe(client: httpx.AsyncClient, max_retries: int = 2) -> ManifestProbe:
    return ManifestProbe(
        supported_codecs=["avc1", "mp4a"],
        retry_config=RetryConfig(max_retries=max_retries, backoff_base=0),
        client=client,
    )


@pytest.mark.unit
class TestParseManifest:
    """Tests for parse_manifest and codec_supported."""

    def test_master_playlist_variants(self):
        """Variants and their codecs are read from the master playlist."""
        report = parse_manifest(URL, MASTER_PLAYLIST)

        assert report.is_master
        assert [v.uri for v in report.variants] == ["720p/index.m3u8", "1080p/index.m3u8"]
        assert report.variants[0].codecs == ["avc1.64001f", "mp4a.40.2"]

    def test_media_playlist_has_no_variants(self):
        """A media playlist is not a master playlist."""
        report = parse_manifest(URL, MEDIA_PLAYLIST)

        assert not report.is_master

    def test_not_a_playlist(self):
        """Bodies without #EXTM3U are rejected."""
        with pytest.raises(FatalDeliveryError):
            parse_manifest(URL, "<html>Not found</html>")

    def test_codec_family_match(self):
        """Codec support is decided by family."""
        assert codec_supported("avc1.64001f", ["avc1"])
        assert codec_supported("MP4A.40.2", ["mp4a"])
        assert not codec_supported("hvc1.1.6.L120.90", ["avc1", "mp4a"])


class TestManifestProbe:
    """Tests for ManifestProbe.probe."""

    @pytest.mark.asyncio
    async def test_playable_variants_filtered(self):
        """Only variants with supported codecs are playable."""
        client, _ = _client((200, MASTER_PLAYLIST))
        async with client:
            report = await _probe(client).probe(URL)

        assert len(report.variants) == 2
        assert [v.uri for v in report.playable_variants] == ["720p/index.m3u8"]

    @pytest.mark.asyncio
    async def test_unsupported_codecs_rejected(self):
        """A manifest with no playable variant is an unsupported format."""
        client, _ = _client((200, HEVC_ONLY_PLAYLIST))
        async with client:
            with pytest.raises(UnsupportedFormatError) as exc_info:
                await _probe(client).probe(URL)

        assert exc_info.value.fault.kind == FaultKind.UNSUPPORTED_CODEC
        assert "hvc1" in exc_info.value.fault.details

    @pytest.mark.asyncio
    async def test_media_playlist_accepted(self):
        """A media playlist passes without codec checks."""
        client, _ = _client((200, MEDIA_PLAYLIST))
        async with client:
            report = await _probe(client).probe(URL)

        assert report.playable_variants == []

    @pytest.mark.asyncio
    async def test_server_error_retried(self):
        """A 503 is retried and a later success is used."""
        client, requests = _client(
            (503, ""),
            (200, MEDIA_PLAYLIST),
        )
        async with client:
            await _probe(client).probe(URL)

        assert len(requests) == 2

    @pytest.mark.asyncio
    async def test_not_found_not_retried(self):
        """A 404 fails at once."""
        client, requests = _client((404, ""))
        async with client:
            with pytest.raises(FatalDeliveryError):
                await _probe(client).probe(URL)

        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_unreachable_after_retries(self):
        """Persistent server errors become a fatal delivery error."""
        client, requests = _client((500, ""))
        async with client:
            with pytest.raises(FatalDeliveryError) as exc_info:
                await _probe(client, max_retries=1).probe(URL)

        assert len(requests) == 2
        assert exc_info.value.fault.kind == FaultKind.NETWORK
