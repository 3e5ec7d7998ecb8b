"""Print the alt text of the latest (or an earlier) XKCD comic."""

PROGNAME = "xkcd-alt"
__version__ = "0.1.0"
