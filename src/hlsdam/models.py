"""Dataclasses and enums for hlsdam runtime."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Dict, Optional, Tuple


class PlaylistKind(str, Enum):
    """Discriminator of a decoded playlist."""

    MASTER = "master"
    MEDIA = "media"


class PollState(str, Enum):
    """States of the live playlist poller."""

    POLLING = "polling"
    NO_CHANGE = "no_change"
    ADVANCING = "advancing"
    TERMINAL = "terminal"
    FAILED = "failed"


@dataclass(frozen=True)
class Rendition:
    """Alternate audio/video/subtitle track declared by EXT-X-MEDIA."""

    type: str
    group_id: str
    name: Optional[str] = None
    language: Optional[str] = None
    uri: Optional[str] = None
    default: bool = False
    autoselect: bool = False


@dataclass(frozen=True)
class Variant:
    """One entry of a master playlist."""

    uri: str
    bandwidth: int
    iframe_only: bool = False
    alternatives: Tuple[Rendition, ...] = ()
    codecs: Optional[str] = None
    resolution: Optional[Tuple[int, int]] = None
    audio: Optional[str] = None
    video: Optional[str] = None
    subtitles: Optional[str] = None


@dataclass(frozen=True)
class ByteRange:
    """Sub-range of a resource; ``offset`` is None when it is implicit."""

    length: int
    offset: Optional[int] = None


@dataclass(frozen=True)
class EncryptionKey:
    """Key declared by EXT-X-KEY."""

    method: str
    uri: Optional[str] = None
    iv: Optional[str] = None


@dataclass(frozen=True)
class InitializationMap:
    """Initialization section declared by EXT-X-MAP."""

    uri: str
    byterange: Optional[ByteRange] = None


@dataclass(frozen=True)
class Segment:
    """A media segment with its absolute sequence number."""

    sequence: int
    uri: str
    duration: float = 0.0
    title: Optional[str] = None
    byterange: Optional[ByteRange] = None
    key: Optional[EncryptionKey] = None
    map: Optional[InitializationMap] = None
    discontinuity: bool = False


@dataclass
class MasterPlaylist:
    """Normalized master (multivariant) playlist."""

    kind: ClassVar[PlaylistKind] = PlaylistKind.MASTER

    uri: str
    variants: Tuple[Variant, ...] = ()
    renditions: Tuple[Rendition, ...] = ()
    independent_segments: bool = False
    start_offset: Optional[float] = None
    start_precise: bool = False


@dataclass
class MediaPlaylist:
    """Normalized media playlist, rebuilt on every poll."""

    kind: ClassVar[PlaylistKind] = PlaylistKind.MEDIA

    uri: str
    target_duration: float
    media_sequence: int = 0
    closed: bool = False
    iframe_only: bool = False
    segments: Tuple[Segment, ...] = ()
    version: Optional[int] = None
    independent_segments: bool = False
    start_offset: Optional[float] = None
    start_precise: bool = False

    @property
    def last_sequence(self) -> Optional[int]:
        if not self.segments:
            return None
        return self.segments[-1].sequence


@dataclass
class DownloadConfig:
    """Configuration for a download session."""

    headers: Optional[Dict[str, str]] = None
    playlist_timeout: float = 30.0
    playlist_retry_budget: float = 10.0
    max_target_duration: float = 90.0
    backoff_step: float = 0.5
    chunk_size: int = 64 * 1024
    progress_interval: float = 1.0
    timeout: Optional[float] = None
