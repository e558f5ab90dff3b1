"""Decode HLS playlists and normalize them for downloading."""

from __future__ import annotations

import re
from collections import defaultdict
from typing import Dict, List, Optional, Tuple, Union
from urllib.parse import urljoin, urlparse

import m3u8

from .errors import ParseError
from .models import (
    ByteRange,
    EncryptionKey,
    InitializationMap,
    MasterPlaylist,
    MediaPlaylist,
    PlaylistKind,
    Rendition,
    Segment,
    Variant,
)

Playlist = Union[MasterPlaylist, MediaPlaylist]

_BYTERANGE_RE = re.compile(r"^\s*(\d+)\s*(?:@\s*(\d+)\s*)?$")
_TARGET_DURATION_TAG = "#EXT-X-TARGETDURATION:"


def _parse_target_duration(line: str, lineno: int, data: dict, state: dict) -> bool:
    """m3u8 reads EXT-X-TARGETDURATION as an integer; keep fractional seconds."""
    if not line.startswith(_TARGET_DURATION_TAG):
        return False
    value = line[len(_TARGET_DURATION_TAG):].strip()
    try:
        data["targetduration"] = float(value)
    except ValueError as exc:
        raise ParseError(
            f"Malformed EXT-X-TARGETDURATION value {value!r} on line {lineno}"
        ) from exc
    return True


def decode_playlist(text: str, uri: str) -> Tuple[PlaylistKind, m3u8.M3U8]:
    """Tokenize playlist text and tell master playlists from media playlists."""
    if not text.lstrip().startswith("#EXTM3U"):
        raise ParseError(f"Invalid HLS playlist at {uri}: must start with #EXTM3U")

    try:
        raw = m3u8.loads(text, uri=uri, custom_tags_parser=_parse_target_duration)
    except (ValueError, KeyError, AttributeError) as exc:
        raise ParseError(f"Failed to decode playlist {uri}: {exc}") from exc

    if raw.is_variant or raw.iframe_playlists:
        return PlaylistKind.MASTER, raw
    return PlaylistKind.MEDIA, raw


class PlaylistNormalizer:
    """Turns decoded playlists into absolute, self-contained models."""

    RENDITION_GROUPS = ("VIDEO", "AUDIO", "SUBTITLES")

    @staticmethod
    def parse(text: str, uri: str) -> Playlist:
        """Decode and normalize playlist content fetched from ``uri``."""
        kind, raw = decode_playlist(text, uri)
        if kind is PlaylistKind.MASTER:
            return PlaylistNormalizer.normalize_master(raw, uri)
        return PlaylistNormalizer.normalize_media(raw, uri)

    @staticmethod
    def normalize_master(raw: m3u8.M3U8, uri: str) -> MasterPlaylist:
        # A set of EXT-X-MEDIA tags with the same GROUP-ID and the same TYPE
        # defines a group of renditions.
        renditions: List[Rendition] = []
        groups: Dict[Tuple[str, str], List[Rendition]] = defaultdict(list)
        for media in raw.media:
            rendition = Rendition(
                type=(media.type or "").upper(),
                group_id=media.group_id or "",
                name=media.name,
                language=media.language,
                uri=PlaylistNormalizer._resolve_optional(uri, media.uri),
                default=PlaylistNormalizer._yes(media.default),
                autoselect=PlaylistNormalizer._yes(media.autoselect),
            )
            renditions.append(rendition)
            groups[(rendition.type, rendition.group_id)].append(rendition)

        variants: List[Variant] = []
        for playlist in raw.playlists:
            info = playlist.stream_info
            variants.append(
                PlaylistNormalizer._build_variant(
                    uri,
                    playlist.uri,
                    groups,
                    bandwidth=info.bandwidth,
                    codecs=info.codecs,
                    resolution=info.resolution,
                    audio=info.audio,
                    video=info.video,
                    subtitles=info.subtitles,
                )
            )

        for playlist in raw.iframe_playlists:
            info = playlist.iframe_stream_info
            variants.append(
                PlaylistNormalizer._build_variant(
                    uri,
                    playlist.uri,
                    groups,
                    bandwidth=info.bandwidth,
                    codecs=info.codecs,
                    resolution=info.resolution,
                    video=getattr(info, "video", None),
                    iframe_only=True,
                )
            )

        start_offset, start_precise = PlaylistNormalizer._start(raw)
        return MasterPlaylist(
            uri=uri,
            variants=tuple(variants),
            renditions=tuple(renditions),
            independent_segments=bool(raw.is_independent_segments),
            start_offset=start_offset,
            start_precise=start_precise,
        )

    @staticmethod
    def normalize_media(raw: m3u8.M3U8, uri: str) -> MediaPlaylist:
        base_sequence = PlaylistNormalizer._safe_int(raw.media_sequence, default=0)

        segments: List[Segment] = []
        key: Optional[EncryptionKey] = None
        declared_key = None
        for index, raw_segment in enumerate(raw.segments):
            # EXT-X-KEY applies to every following segment until another
            # EXT-X-KEY replaces it; METHOD=NONE clears it.
            if raw_segment.key is not None and raw_segment.key is not declared_key:
                declared_key = raw_segment.key
                if (declared_key.method or "").upper() == "NONE":
                    key = None
                else:
                    key = EncryptionKey(
                        method=declared_key.method,
                        uri=PlaylistNormalizer._resolve_optional(uri, declared_key.uri),
                        iv=declared_key.iv,
                    )

            init_map = None
            init_section = getattr(raw_segment, "init_section", None)
            if init_section is not None:
                init_map = InitializationMap(
                    uri=PlaylistNormalizer._resolve_url(uri, init_section.uri or ""),
                    byterange=PlaylistNormalizer._parse_byterange(init_section.byterange),
                )

            segments.append(
                Segment(
                    sequence=base_sequence + index,
                    uri=PlaylistNormalizer._resolve_url(uri, raw_segment.uri or ""),
                    duration=float(raw_segment.duration or 0.0),
                    title=raw_segment.title or None,
                    byterange=PlaylistNormalizer._parse_byterange(raw_segment.byterange),
                    key=key,
                    map=init_map,
                    discontinuity=bool(raw_segment.discontinuity),
                )
            )

        start_offset, start_precise = PlaylistNormalizer._start(raw)
        return MediaPlaylist(
            uri=uri,
            target_duration=float(raw.target_duration or 0),
            media_sequence=base_sequence,
            closed=bool(raw.is_endlist),
            iframe_only=bool(raw.is_i_frames_only),
            segments=tuple(segments),
            version=PlaylistNormalizer._maybe_int(raw.version),
            independent_segments=bool(raw.is_independent_segments),
            start_offset=start_offset,
            start_precise=start_precise,
        )

    # ------------------------------------------------------------------
    # Helper utilities
    # ------------------------------------------------------------------

    @staticmethod
    def _build_variant(
        base: str,
        variant_uri: Optional[str],
        groups: Dict[Tuple[str, str], List[Rendition]],
        *,
        bandwidth: Optional[int],
        codecs: Optional[str] = None,
        resolution: Optional[Tuple[int, int]] = None,
        audio: Optional[str] = None,
        video: Optional[str] = None,
        subtitles: Optional[str] = None,
        iframe_only: bool = False,
    ) -> Variant:
        alternatives: List[Rendition] = []
        for group_type, group_id in zip(
            PlaylistNormalizer.RENDITION_GROUPS, (video, audio, subtitles)
        ):
            if group_id:
                alternatives.extend(groups.get((group_type, group_id), ()))

        return Variant(
            uri=PlaylistNormalizer._resolve_url(base, variant_uri or ""),
            bandwidth=PlaylistNormalizer._safe_int(bandwidth, default=0),
            iframe_only=iframe_only,
            alternatives=tuple(alternatives),
            codecs=codecs,
            resolution=tuple(resolution) if resolution else None,
            audio=audio,
            video=video,
            subtitles=subtitles,
        )

    @staticmethod
    def _resolve_url(base: str, relative: str) -> str:
        try:
            parsed = urlparse(relative)
            if parsed.scheme:
                return relative
            return urljoin(base, relative)
        except ValueError as exc:
            raise ParseError(f"Cannot resolve {relative!r} against {base!r}: {exc}") from exc

    @staticmethod
    def _resolve_optional(base: str, relative: Optional[str]) -> Optional[str]:
        if not relative:
            return None
        return PlaylistNormalizer._resolve_url(base, relative)

    @staticmethod
    def _parse_byterange(value: Optional[str]) -> Optional[ByteRange]:
        if value in (None, ""):
            return None
        match = _BYTERANGE_RE.match(str(value))
        if not match:
            raise ParseError(f"Malformed EXT-X-BYTERANGE value {value!r}")
        length, offset = match.groups()
        return ByteRange(
            length=int(length),
            offset=int(offset) if offset is not None else None,
        )

    @staticmethod
    def _start(raw: m3u8.M3U8) -> Tuple[Optional[float], bool]:
        start = getattr(raw, "start", None)
        if start is None:
            return None, False
        offset = start.time_offset
        return (
            float(offset) if offset is not None else None,
            PlaylistNormalizer._yes(start.precise),
        )

    @staticmethod
    def _yes(value) -> bool:
        if isinstance(value, bool):
            return value
        return str(value or "").upper() == "YES"

    @staticmethod
    def _safe_int(value, default: int = 0) -> int:
        if value is None:
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    @staticmethod
    def _maybe_int(value) -> Optional[int]:
        if value in (None, ""):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None


def parse_playlist(text: str, uri: str) -> Playlist:
    """Decode and normalize a playlist; see :meth:`PlaylistNormalizer.parse`."""
    return PlaylistNormalizer.parse(text, uri)
