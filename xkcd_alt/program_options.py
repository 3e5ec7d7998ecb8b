"""Command-line option parsing for xkcd-alt.

Options follow GNU conventions. ``-b``/``--back`` takes an optional value
that may be fused to the option (``-b2``, ``--back=2``) or passed as the
next token (``-b 2``). A next token that looks like an option is never
taken as the value, so ``-b -h`` means "back 1, then print help".
"""

import platform
import re
from collections.abc import Sequence
from enum import Enum

import bs4
import feedparser
import requests

from . import PROGNAME, __version__
from .models import CliOptions, InfoRequest

INT_MIN = -(2**31)
INT_MAX = 2**31 - 1

HELP_OPTIONS = ("-h", "--help")
VERSION_OPTIONS = ("-V", "--version")
BACK_OPTIONS = ("-b", "--back")
FLAG_OPTIONS = {
    "-o": "one_line",
    "--one-line": "one_line",
    "-v": "verbose",
    "--verbose": "verbose",
    "-k": "insecure",
    "--insecure": "insecure",
}

SHORT_BACK_PREFIX = "-b"
LONG_BACK_PREFIX = "--back="
IMPLICIT_BACK = "1"

_INTEGER = re.compile(r"[+-]?[0-9]+")


class ArgumentError(ValueError):
    """Base class for command-line argument errors."""

    def __init__(self, message: str, token: str):
        super().__init__(message)
        self.token = token


class UnknownOptionError(ArgumentError):
    def __init__(self, token: str):
        super().__init__(f"unknown option {token}", token)


class InvalidValueError(ArgumentError):
    def __init__(self, token: str):
        super().__init__(f"{token} is an invalid argument for -b, --back", token)


class ValueOutOfRangeError(ArgumentError):
    def __init__(self, token: str):
        super().__init__(f"{token} is out of integer range", token)


class NegativeValueError(ArgumentError):
    def __init__(self, token: str, value: int):
        super().__init__(
            f"Invalid argument {value} for -b, --back. "
            "Specified value must be non-negative",
            token,
        )
        self.value = value


class ScanState(Enum):
    """What the scanner expects from the next token."""

    NONE = "none"
    EXPECTING_BACK_VALUE = "expecting_back_value"


def takes_back_value(token: str) -> bool:
    """Return True if the token following ``-b``/``--back`` is its value.

    Anything that starts with ``-`` is treated as the next option instead,
    which also means a separate negative number is never taken as a value.
    """
    return not token.startswith("-")


def parse_back_value(text: str) -> int:
    """Convert the ``-b``/``--back`` value to a non-negative integer.

    Raises:
        InvalidValueError: If the text isn't an integer
        ValueOutOfRangeError: If it doesn't fit in a signed 32-bit integer
        NegativeValueError: If it is negative
    """
    if not _INTEGER.fullmatch(text):
        raise InvalidValueError(text)
    value = int(text)
    if not INT_MIN <= value <= INT_MAX:
        raise ValueOutOfRangeError(text)
    if value < 0:
        raise NegativeValueError(text, value)
    return value


class ArgumentScanner:
    """Index-based scanner over the command-line tokens."""

    def __init__(self, tokens: Sequence[str]):
        self.tokens = list(tokens)
        self.state = ScanState.NONE
        self.flags: dict[str, bool] = {}
        self.back_text: str | None = None

    def scan(self) -> InfoRequest | None:
        """Scan every token, stopping early at help or version.

        Returns:
            The InfoRequest if help or version was asked for, else None

        Raises:
            UnknownOptionError: On the first token that isn't an option
        """
        i = 0
        while i < len(self.tokens):
            token = self.tokens[i]
            if self.state is ScanState.EXPECTING_BACK_VALUE:
                self.state = ScanState.NONE
                if takes_back_value(token):
                    self.back_text = token
                    i += 1
                    continue
            # otherwise the token is scanned as an argument of its own
            if token in HELP_OPTIONS:
                return InfoRequest("help")
            if token in VERSION_OPTIONS:
                return InfoRequest("version")
            if token in FLAG_OPTIONS:
                self.flags[FLAG_OPTIONS[token]] = True
            elif token in BACK_OPTIONS:
                self.back_text = IMPLICIT_BACK
                self.state = ScanState.EXPECTING_BACK_VALUE
            elif token.startswith(SHORT_BACK_PREFIX):
                self.back_text = token[len(SHORT_BACK_PREFIX):]
            elif token.startswith(LONG_BACK_PREFIX):
                self.back_text = token[len(LONG_BACK_PREFIX):]
            else:
                raise UnknownOptionError(token)
            i += 1
        return None

    def options(self) -> CliOptions:
        """Build the options record from what was scanned."""
        previous = 0 if self.back_text is None else parse_back_value(self.back_text)
        return CliOptions(previous=previous, **self.flags)


def parse_options(tokens: Sequence[str]) -> CliOptions | InfoRequest:
    """Parse command-line tokens (program name excluded).

    The ``-b`` value is only validated when no help or version request was
    found, so ``-b nope -h`` still prints help.

    Returns:
        CliOptions for a normal run, or InfoRequest for help/version

    Raises:
        ArgumentError: If an option or the ``-b`` value is invalid
    """
    scanner = ArgumentScanner(tokens)
    info = scanner.scan()
    if info is not None:
        return info
    return scanner.options()


def program_description() -> str:
    """Return the usage text printed for ``-h``/``--help``."""
    return (
        f"Usage: {PROGNAME} [-h] [-V] [-b[ ][BACK]] [-o] [-v] [-k]\n"
        "\n"
        "Prints the alt text for the most recent XKCD comic.\n"
        "\n"
        "Options:\n"
        "  -h, --help          Print this usage and exit\n"
        "  -V, --version       Print version information and exit\n"
        "\n"
        "  -b[ ][BACK], --back[=][BACK]\n"
        "                      Print alt text for the bth previous XKCD strip. If\n"
        "                      not given a value, implicitly sets b=1.\n"
        "\n"
        "  -o, --one-line      Print alt text and attestation on one line.\n"
        "  -v, --verbose       Log what the HTTP transport is doing to stderr.\n"
        "                      Useful for debugging or satisfying curiosity.\n"
        "  -k, --insecure      Skip verification of the server's SSL certificate.\n"
        "                      Try not to specify this."
    )


def version_description() -> str:
    """Return the text printed for ``-V``/``--version``."""
    return (
        f"{PROGNAME} {__version__} "
        f"(Python {platform.python_version()}, "
        f"{platform.machine()} {platform.system()} {platform.release()}) "
        f"requests/{requests.__version__} "
        f"feedparser/{feedparser.__version__} "
        f"beautifulsoup4/{bs4.__version__}"
    )
