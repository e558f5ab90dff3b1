"""hlsdam: Download live and on-demand HLS streams into a single output."""

from .client import HLSClient, best_variant, worst_variant
from .errors import (
    FatalError,
    HLSError,
    HTTPStatusError,
    ParseError,
    ProtocolViolation,
    TransportError,
    UnsupportedFeature,
)
from .models import DownloadConfig, MasterPlaylist, MediaPlaylist, Segment, Variant

__all__ = [
    "HLSClient",
    "best_variant",
    "worst_variant",
    "DownloadConfig",
    "MasterPlaylist",
    "MediaPlaylist",
    "Segment",
    "Variant",
    "HLSError",
    "FatalError",
    "ParseError",
    "ProtocolViolation",
    "UnsupportedFeature",
    "HTTPStatusError",
    "TransportError",
]
