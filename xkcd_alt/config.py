"""Configuration management for xkcd-alt."""

import logging
import os
from dataclasses import dataclass

RSS_URL = "https://xkcd.com/rss.xml"


@dataclass
class FeedConfig:
    """Configuration for feed retrieval."""

    url: str = RSS_URL


@dataclass
class OutputConfig:
    """Configuration for printed output."""

    line_length: int = 80


class Config:
    """Main configuration manager."""

    DEFAULT_LOG_LEVEL = "CRITICAL"
    DEFAULT_LINE_LENGTH = 80

    def __init__(self):
        """Initialize configuration from environment variables."""
        self.feed_url = os.getenv("XKCD_ALT_FEED_URL", "").strip() or RSS_URL
        self.log_level = self._read_log_level()
        self.line_length = self._read_line_length()

    def _read_log_level(self) -> str:
        level = os.getenv("LOG_LEVEL", "").strip().upper() or self.DEFAULT_LOG_LEVEL
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Invalid LOG_LEVEL: {level}")
        return level

    def _read_line_length(self) -> int:
        raw = os.getenv("XKCD_ALT_LINE_LENGTH", "").strip()
        if not raw:
            return self.DEFAULT_LINE_LENGTH
        try:
            line_length = int(raw)
        except ValueError as e:
            raise ValueError(f"Invalid XKCD_ALT_LINE_LENGTH: {raw}") from e
        if line_length <= 0:
            raise ValueError(f"XKCD_ALT_LINE_LENGTH must be positive, got {line_length}")
        return line_length

    def get_feed_config(self) -> FeedConfig:
        """Get feed retrieval configuration."""
        return FeedConfig(url=self.feed_url)

    def get_output_config(self) -> OutputConfig:
        """Get output configuration."""
        return OutputConfig(line_length=self.line_length)
