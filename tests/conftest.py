"""Shared fixtures for xkcd-alt tests."""

from unittest.mock import MagicMock, patch

import pytest

from xkcd_alt import client as client_module

ITEM_TEMPLATE = (
    "<item>"
    "<title>Comic {n}</title>"
    "<link>https://xkcd.com/{n}/</link>"
    "<description>&lt;img src=\"https://imgs.xkcd.com/comics/comic_{n}.png\" "
    "title=\"Alt text number {n}\" alt=\"Alt text number {n}\" /&gt;</description>"
    "<pubDate>Mon, 0{day} Jun 2024 04:00:00 -0000</pubDate>"
    "<guid>https://xkcd.com/{n}/</guid>"
    "</item>"
)


def build_rss(count: int, items: list[str] | None = None, extra_channel: str = "") -> bytes:
    """Build an XKCD-style RSS document.

    Items are numbered newest first, so the first item is ``Comic {count}``.
    """
    if items is None:
        items = [
            ITEM_TEMPLATE.format(n=n, day=(n % 9) + 1) for n in range(count, 0, -1)
        ]
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        '<rss version="2.0"><channel>'
        "<title>xkcd.com</title>"
        "<link>https://xkcd.com/</link>"
        "<description>xkcd.com: A webcomic of romance and math humor.</description>"
        "<language>en</language>"
        f"{extra_channel}"
        f"{''.join(items)}"
        "</channel></rss>"
    ).encode("utf-8")


@pytest.fixture
def rss_feed():
    """Factory fixture returning RSS bytes with the given number of items."""
    return build_rss


@pytest.fixture
def fresh_transport(monkeypatch):
    """Forget any completed one-time transport initialization."""
    monkeypatch.setattr(client_module, "_runtime", None)


def make_response(chunks=(b"",), status_code=200, reason="OK"):
    """Build a mock streamed requests.Response."""
    response = MagicMock()
    response.status_code = status_code
    response.reason = reason
    response.headers = {"Content-Type": "application/rss+xml"}
    response.request.headers = {"User-Agent": "xkcd-alt-test"}
    response.iter_content.return_value = list(chunks)
    return response


@pytest.fixture
def mock_session():
    """Patch requests.Session so no test touches the network."""
    with patch("xkcd_alt.client.requests.Session") as session_class:
        session = MagicMock()
        session.headers = {}
        session.get.return_value = make_response()
        session_class.return_value = session
        yield session


@pytest.fixture
def response_factory():
    """Factory fixture returning mock streamed responses."""
    return make_response
