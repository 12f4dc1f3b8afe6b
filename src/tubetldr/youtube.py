"""YouTube adapters: video id parsing, oEmbed metadata and transcript strategies.

All network I/O goes through a single httpx.AsyncClient shared across
requests. Components receive it via constructor injection; the server
lifespan owns the client lifecycle. Each call carries its own timeout; there
is no retry here.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING
from urllib.parse import parse_qs, urlparse

import httpx
import structlog
from pydantic import BaseModel

from tubetldr import __version__
from tubetldr.models.transcript import SourceReason, TranscriptResult, TranscriptSegment

if TYPE_CHECKING:
    from tubetldr.config import YouTubeSettings

log = structlog.get_logger()

OEMBED_URL = "https://www.youtube.com/oembed"
TIMEDTEXT_URL = "https://www.youtube.com/api/timedtext"
DATA_API_CAPTIONS_URL = "https://www.googleapis.com/youtube/v3/captions"

_VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")
_YOUTUBE_HOSTS = frozenset({"youtube.com", "www.youtube.com", "m.youtube.com", "music.youtube.com"})
_PATH_PREFIXES = ("/shorts/", "/embed/", "/live/", "/v/")
_SRT_TIME_RE = re.compile(
    r"(\d{1,2}):(\d{2}):(\d{2})[,.](\d{3})\s*-->\s*(\d{1,2}):(\d{2}):(\d{2})[,.](\d{3})"
)


def build_http_client() -> httpx.AsyncClient:
    """Create the shared httpx client. Called once at startup."""
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(30.0),
        headers={"User-Agent": f"tubetldr/{__version__}"},
        limits=httpx.Limits(
            max_connections=20,
            max_keepalive_connections=10,
        ),
    )


def extract_video_id(value: str) -> str | None:
    """Return the 11-character video id from a bare id or a YouTube URL.

    Returns ``None`` when nothing that looks like a video id is found.
    """
    value = value.strip()
    if _VIDEO_ID_RE.match(value):
        return value

    parsed = urlparse(value if "://" in value else f"https://{value}")
    host = (parsed.hostname or "").lower()
    candidate: str | None = None

    if host == "youtu.be":
        candidate = parsed.path.lstrip("/").split("/")[0]
    elif host in _YOUTUBE_HOSTS:
        if parsed.path == "/watch":
            candidate = parse_qs(parsed.query).get("v", [""])[0]
        else:
            for prefix in _PATH_PREFIXES:
                if parsed.path.startswith(prefix):
                    candidate = parsed.path[len(prefix) :].split("/")[0]
                    break

    if candidate and _VIDEO_ID_RE.match(candidate):
        return candidate
    return None


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


# ---------------------------------------------------------------------------
# Caption formats
# ---------------------------------------------------------------------------


def parse_json3(payload: dict) -> list[TranscriptSegment]:
    """Parse YouTube's ``fmt=json3`` timed-text document into ordered segments."""
    segments: list[TranscriptSegment] = []
    for event in payload.get("events") or []:
        segs = event.get("segs")
        if not segs:
            continue
        text = "".join(s.get("utf8", "") for s in segs).replace("\n", " ").strip()
        if not text:
            continue
        segments.append(
            TranscriptSegment(
                start=event.get("tStartMs", 0) / 1000,
                duration=event.get("dDurationMs", 0) / 1000,
                text=text,
            )
        )
    segments.sort(key=lambda s: s.start)
    return segments


def _srt_seconds(h: str, m: str, s: str, ms: str) -> float:
    return int(h) * 3600 + int(m) * 60 + int(s) + int(ms) / 1000


def parse_srt(content: str) -> list[TranscriptSegment]:
    """Parse SubRip content into ordered segments. Malformed blocks are skipped."""
    segments: list[TranscriptSegment] = []
    blocks = re.split(r"\r?\n\s*\r?\n", content.strip())
    for block in blocks:
        lines = block.strip().splitlines()
        for i, line in enumerate(lines):
            match = _SRT_TIME_RE.search(line)
            if match is None:
                continue
            start = _srt_seconds(*match.group(1, 2, 3, 4))
            end = _srt_seconds(*match.group(5, 6, 7, 8))
            text = " ".join(t.strip() for t in lines[i + 1 :] if t.strip())
            if text:
                segments.append(
                    TranscriptSegment(start=start, duration=max(end - start, 0.0), text=text)
                )
            break
    segments.sort(key=lambda s: s.start)
    return segments


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------


class VideoMetadata(BaseModel):
    title: str | None = None
    author_name: str | None = None


class OEmbedMetadataProvider:
    """Video title lookup via the public oEmbed endpoint. Never raises."""

    def __init__(self, client: httpx.AsyncClient, timeout_seconds: float = 10.0) -> None:
        self._client = client
        self._timeout = timeout_seconds

    async def fetch_metadata(self, subject_id: str) -> VideoMetadata:
        try:
            response = await self._client.get(
                OEMBED_URL,
                params={"format": "json", "url": watch_url(subject_id)},
                timeout=self._timeout,
            )
            if not response.is_success:
                log.warning(
                    "metadata_fetch_failed",
                    subject_id=subject_id,
                    status_code=response.status_code,
                )
                return VideoMetadata()
            data = response.json()
            if not isinstance(data, dict):
                log.warning(
                    "metadata_fetch_failed", subject_id=subject_id, reason="not_an_object"
                )
                return VideoMetadata()
            title = data.get("title")
            author_name = data.get("author_name")
            return VideoMetadata(
                title=title if isinstance(title, str) else None,
                author_name=author_name if isinstance(author_name, str) else None,
            )
        except (httpx.HTTPError, ValueError):
            log.warning("metadata_fetch_failed", subject_id=subject_id, exc_info=True)
            return VideoMetadata()


# ---------------------------------------------------------------------------
# Transcript strategies
# ---------------------------------------------------------------------------


class TimedTextStrategy:
    """Direct caption endpoint. Tries manual then auto-generated tracks per language."""

    name = "timedtext"

    def __init__(self, client: httpx.AsyncClient, timeout_seconds: float = 10.0) -> None:
        self._client = client
        self._timeout = timeout_seconds

    async def fetch(self, subject_id: str, languages: list[str]) -> TranscriptResult:
        for lang in languages:
            for kind in (None, "asr"):
                params = {"v": subject_id, "lang": lang, "fmt": "json3"}
                if kind is not None:
                    params["kind"] = kind
                response = await self._client.get(
                    TIMEDTEXT_URL, params=params, timeout=self._timeout
                )
                if response.status_code == 404:
                    continue
                response.raise_for_status()
                if not response.content.strip():
                    # The endpoint answers 200 with an empty body for missing tracks.
                    continue
                segments = parse_json3(response.json())
                if segments:
                    log.info(
                        "transcript_found",
                        source=self.name,
                        subject_id=subject_id,
                        lang=lang,
                        kind=kind or "standard",
                        segment_count=len(segments),
                    )
                    return TranscriptResult(
                        segments=segments, source_reason=SourceReason.OK, source=self.name
                    )
        return TranscriptResult.empty(SourceReason.NO_SUBTITLES, source=self.name)


class DataApiStrategy:
    """YouTube Data API v3 captions.

    Listing tracks needs an API key; downloading track content needs an OAuth
    token with caption access. Without credentials the strategy reports
    ``unimplemented_source`` so the chain moves on.
    """

    name = "data_api"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        oauth_token: str = "",
        timeout_seconds: float = 10.0,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._oauth_token = oauth_token
        self._timeout = timeout_seconds

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient, settings: YouTubeSettings) -> DataApiStrategy:
        return cls(
            client,
            api_key=settings.api_key,
            oauth_token=settings.oauth_token,
            timeout_seconds=settings.timeout_seconds,
        )

    async def fetch(self, subject_id: str, languages: list[str]) -> TranscriptResult:
        if not self._api_key:
            return TranscriptResult.empty(SourceReason.UNIMPLEMENTED_SOURCE, source=self.name)

        response = await self._client.get(
            DATA_API_CAPTIONS_URL,
            params={"part": "snippet", "videoId": subject_id, "key": self._api_key},
            timeout=self._timeout,
        )
        response.raise_for_status()
        track_id = _pick_track(response.json().get("items") or [], languages)
        if track_id is None:
            return TranscriptResult.empty(SourceReason.NO_SUBTITLES, source=self.name)

        if not self._oauth_token:
            log.info("caption_download_skipped", subject_id=subject_id, reason="no_oauth_token")
            return TranscriptResult.empty(SourceReason.UNIMPLEMENTED_SOURCE, source=self.name)

        response = await self._client.get(
            f"{DATA_API_CAPTIONS_URL}/{track_id}",
            params={"tfmt": "srt"},
            headers={"Authorization": f"Bearer {self._oauth_token}"},
            timeout=self._timeout,
        )
        response.raise_for_status()
        segments = parse_srt(response.text)
        if not segments:
            return TranscriptResult.empty(SourceReason.NO_SUBTITLES, source=self.name)
        log.info(
            "transcript_found",
            source=self.name,
            subject_id=subject_id,
            track_id=track_id,
            segment_count=len(segments),
        )
        return TranscriptResult(segments=segments, source_reason=SourceReason.OK, source=self.name)


def _pick_track(items: list[dict], languages: list[str]) -> str | None:
    """Choose a caption track id: language preference first, human over ASR."""
    for lang in languages:
        candidates = [
            item
            for item in items
            if (item.get("snippet") or {}).get("language", "").split("-")[0] == lang.split("-")[0]
        ]
        candidates.sort(key=lambda item: item["snippet"].get("trackKind") == "asr")
        if candidates:
            return candidates[0].get("id")
    return None
