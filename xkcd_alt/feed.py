"""XKCD RSS feed parsing for xkcd-alt."""

import io
import xml.sax

import feedparser
from bs4 import BeautifulSoup

from .logging_config import create_execution_logger
from .models import FeedItem

# (feedparser entry key, RSS element name) for the fields read off <item>
ITEM_FIELDS = (
    ("title", "title"),
    ("link", "link"),
    ("published", "pubDate"),
    ("id", "guid"),
    ("summary", "description"),
)

IMAGE_ATTRIBUTES = ("src", "title", "alt")


def has_link_element(entry: feedparser.FeedParserDict) -> bool:
    """Whether the item had its own ``<link>``.

    feedparser fills ``entry.link`` from a permalink ``<guid>`` when the item
    has no link, so only the recorded ``links`` tell the two apart.
    """
    return any(link.get("rel") == "alternate" for link in entry.get("links", []))


class FeedParseError(ValueError):
    """The feed could not be turned into feed items."""


class MissingFieldError(FeedParseError):
    """A feed item lacks a field every XKCD item is expected to have."""

    def __init__(self, field: str, index: int):
        super().__init__(f"Feed item {index} has no {field}")
        self.field = field
        self.index = index


class FeedProcessor:
    """Turns raw XKCD RSS XML into FeedItem objects."""

    def __init__(self, execution_id: str | None = None):
        """Initialize FeedProcessor.

        Args:
            execution_id: Execution ID for logging context
        """
        self.logger = create_execution_logger("feed_processor", execution_id)

    def extract_items(self, payload: bytes) -> list[FeedItem]:
        """Parse raw RSS XML and return its items in document order.

        Raises:
            FeedParseError: If the XML is malformed or an item is incomplete
        """
        return self.to_items(self.parse_feed(payload))

    def parse_feed(self, payload: bytes) -> feedparser.FeedParserDict:
        """Parse raw RSS XML into feedparser's attribute tree.

        Args:
            payload: Raw feed document

        Returns:
            The parsed feed

        Raises:
            FeedParseError: If the document is not well-formed XML or has
                no recognisable feed channel
        """
        self.logger.debug("Parsing feed content", content_length=len(payload))
        tree = feedparser.parse(io.BytesIO(payload))

        if tree.bozo:
            exc = tree.get("bozo_exception")
            if isinstance(exc, xml.sax.SAXException):
                raise FeedParseError(f"Malformed feed XML: {exc}") from exc
            self.logger.warning(
                f"Feed parsing warning: {exc}", bozo_exception=str(exc)
            )

        if not tree.get("version"):
            raise FeedParseError("No RSS channel found in feed")

        return tree

    def to_items(self, tree: feedparser.FeedParserDict) -> list[FeedItem]:
        """Convert a parsed feed into FeedItem objects.

        Only ``<item>`` children of the channel become entries, so any other
        channel children are skipped. A single incomplete item fails the
        whole call.

        Raises:
            MissingFieldError: If any item lacks a required field
        """
        if tree is None:
            raise TypeError("to_items() requires a parsed feed, got None")

        items = [
            self.normalize_item(entry, index)
            for index, entry in enumerate(tree.entries)
        ]
        self.logger.info(
            "Successfully parsed feed",
            items_count=len(items),
            feed_version=tree.get("version"),
        )
        return items

    def normalize_item(self, entry: feedparser.FeedParserDict, index: int = 0) -> FeedItem:
        """Normalize one feed entry into a FeedItem.

        Args:
            entry: Parsed ``<item>``
            index: Position of the item in the feed, for error messages
        """
        values = {}
        for key, element in ITEM_FIELDS:
            value = entry.get(key)
            if value is None or (key == "link" and not has_link_element(entry)):
                raise MissingFieldError(element, index)
            values[element] = value

        image = self.extract_image(values["description"], index)

        return FeedItem(
            title=values["title"],
            link=values["link"],
            img_src=image["src"],
            img_title=image["title"],
            img_alt=image["alt"],
            pub_date=values["pubDate"],
            guid=values["guid"],
        )

    def extract_image(self, description: str, index: int = 0) -> dict[str, str]:
        """Read ``src``, ``title`` and ``alt`` off the description's ``<img>``.

        Raises:
            MissingFieldError: If there is no image or it lacks an attribute
        """
        soup = BeautifulSoup(description, "html.parser")
        img = soup.find("img")
        if img is None:
            raise MissingFieldError("description.img", index)

        image = {}
        for attribute in IMAGE_ATTRIBUTES:
            value = img.get(attribute)
            if value is None:
                raise MissingFieldError(f"img.{attribute}", index)
            image[attribute] = value
        return image
