"""Exceptions raised while fetching and following HLS playlists."""

from __future__ import annotations

from typing import Mapping, Optional

import aiohttp
from multidict import CIMultiDict, CIMultiDictProxy


class HLSError(Exception):
    """Base class for every hlsdam error."""


class FatalError(HLSError):
    """An error that retrying cannot fix."""


class ParseError(FatalError):
    """Raised when a playlist cannot be decoded or normalized."""


class ProtocolViolation(FatalError):
    """Raised when a playlist or segment breaks the HLS rules we rely on."""


class UnsupportedFeature(FatalError):
    """Raised for valid HLS features this client does not implement."""


class TransportError(HLSError):
    """Connection, DNS or timeout failure."""


class HTTPStatusError(HLSError):
    """Raised for an unexpected HTTP status; carries the status line."""

    def __init__(
        self,
        status: int,
        reason: Optional[str] = None,
        *,
        headers: Optional[Mapping[str, str]] = None,
        url: Optional[str] = None,
    ) -> None:
        self.status = status
        self.reason = reason or ""
        self.headers = CIMultiDictProxy(CIMultiDict(headers or {}))
        self.url = url
        super().__init__(self.status_line)

    @classmethod
    def from_response(cls, response: aiohttp.ClientResponse) -> "HTTPStatusError":
        return cls(
            response.status,
            response.reason,
            headers=response.headers,
            url=str(response.url),
        )

    @property
    def status_line(self) -> str:
        return f"{self.status} {self.reason}".strip()

    @property
    def retryable(self) -> bool:
        return self.status >= 500

    @property
    def permanent(self) -> bool:
        return 400 <= self.status < 500
