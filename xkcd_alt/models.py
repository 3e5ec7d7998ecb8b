"""Data models for xkcd-alt."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from dateutil import parser as date_parser

from .transport_options import TransportCode


@dataclass(frozen=True)
class CliOptions:
    """Options parsed from the command line."""

    one_line: bool = False
    previous: int = 0  # strips back from the newest, 0 = newest
    verbose: bool = False
    insecure: bool = False


@dataclass(frozen=True)
class InfoRequest:
    """Help or version output was requested instead of a normal run."""

    kind: Literal["help", "version"]


@dataclass(frozen=True)
class RequestResult:
    """Outcome of a single HTTP[S] request."""

    status: TransportCode
    reason: str = ""
    payload: bytes = field(default=b"", repr=False)

    @property
    def ok(self) -> bool:
        return self.status is TransportCode.OK

    @property
    def text(self) -> str:
        """Response body decoded as UTF-8."""
        return self.payload.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class FeedItem:
    """Represents a single XKCD RSS feed item.

    The image fields come from the ``<img>`` embedded in the item's
    ``<description>``, not from the item itself.
    """

    title: str
    link: str
    img_src: str
    img_title: str
    img_alt: str
    pub_date: str
    guid: str

    @property
    def published(self) -> datetime | None:
        """The parsed ``pubDate``, or None if it can't be parsed."""
        try:
            return date_parser.parse(self.pub_date)
        except (ValueError, OverflowError):
            return None
