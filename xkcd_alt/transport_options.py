"""Transport option bindings for the xkcd-alt HTTP client.

Every supported option is its own frozen dataclass whose ``value`` field
has the type that option requires, so pairing an option with the wrong
kind of value is caught by the type checker. ``TransportOption`` is the
closed union of these classes and ``OPTION_BINDINGS`` is the registry the
client consults to learn whether setting an option can fail.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum
from types import MappingProxyType
from typing import Any, ClassVar


class TransportCode(IntEnum):
    """Transport status codes.

    Numeric values match libcurl's ``CURLcode`` so they stay stable across
    releases and are familiar to anyone who has read curl's output.
    """

    OK = 0
    UNSUPPORTED_PROTOCOL = 1
    FAILED_INIT = 2
    URL_MALFORMAT = 3
    COULDNT_RESOLVE_HOST = 6
    COULDNT_CONNECT = 7
    HTTP_RETURNED_ERROR = 22
    WRITE_ERROR = 23
    OPERATION_TIMEDOUT = 28
    SSL_CONNECT_ERROR = 35
    TOO_MANY_REDIRECTS = 47
    GOT_NOTHING = 52
    RECV_ERROR = 56
    PEER_FAILED_VERIFICATION = 60
    SSL_CACERT_BADFILE = 77


_ERROR_TEXT = {
    TransportCode.OK: "No error",
    TransportCode.UNSUPPORTED_PROTOCOL: "Unsupported protocol",
    TransportCode.FAILED_INIT: "Failed initialization",
    TransportCode.URL_MALFORMAT: "URL using bad/illegal format or missing URL",
    TransportCode.COULDNT_RESOLVE_HOST: "Couldn't resolve host name",
    TransportCode.COULDNT_CONNECT: "Couldn't connect to server",
    TransportCode.HTTP_RETURNED_ERROR: "HTTP response code said error",
    TransportCode.WRITE_ERROR: "Failed writing received data to disk/application",
    TransportCode.OPERATION_TIMEDOUT: "Timeout was reached",
    TransportCode.SSL_CONNECT_ERROR: "SSL connect error",
    TransportCode.TOO_MANY_REDIRECTS: "Number of redirects hit maximum amount",
    TransportCode.GOT_NOTHING: "Server returned nothing (no headers, no data)",
    TransportCode.RECV_ERROR: "Failure when receiving data from the peer",
    TransportCode.PEER_FAILED_VERIFICATION: (
        "SSL peer certificate or SSH remote key was not OK"
    ),
    TransportCode.SSL_CACERT_BADFILE: "Problem with the SSL CA cert (path? access rights?)",
}


def strerror(code: TransportCode) -> str:
    """Return the human-readable text for a transport status code."""
    return _ERROR_TEXT.get(code, f"Unknown error ({int(code)})")


# Write callbacks receive a chunk of the response body plus the registered
# write data and return how many bytes they took. Anything less than
# len(chunk) aborts the transfer.
WriteCallback = Callable[[bytes, Any], int]


@dataclass(frozen=True)
class ErrorBuffer:
    """List the client appends its failure diagnostic to."""

    value: list[str]
    always_ok: ClassVar[bool] = True


@dataclass(frozen=True)
class WriteFunction:
    """Callback receiving response body chunks."""

    value: WriteCallback
    always_ok: ClassVar[bool] = True


@dataclass(frozen=True)
class WriteData:
    """Opaque object handed to the write callback with every chunk."""

    value: Any
    always_ok: ClassVar[bool] = True


@dataclass(frozen=True)
class Url:
    """Target URL; fails when the URL can't be used."""

    value: str
    always_ok: ClassVar[bool] = False


@dataclass(frozen=True)
class Verbose:
    """Log request and response details."""

    value: bool
    always_ok: ClassVar[bool] = False


@dataclass(frozen=True)
class SslVerifyPeer:
    """Verify the server's certificate against the CA bundle."""

    value: bool
    always_ok: ClassVar[bool] = False


@dataclass(frozen=True)
class FailOnError:
    """Treat HTTP status codes >= 400 as transport failures."""

    value: bool
    always_ok: ClassVar[bool] = True


TransportOption = (
    ErrorBuffer | WriteFunction | WriteData | Url | Verbose | SslVerifyPeer | FailOnError
)


@dataclass(frozen=True)
class OptionBinding:
    """Registry entry for one transport option."""

    name: str
    value_type: Any
    always_ok: bool


def _binding(option_cls: type, name: str, value_type: Any) -> tuple[type, OptionBinding]:
    return option_cls, OptionBinding(name, value_type, option_cls.always_ok)


OPTION_BINDINGS = MappingProxyType(
    dict(
        [
            _binding(ErrorBuffer, "ERRORBUFFER", list[str]),
            _binding(WriteFunction, "WRITEFUNCTION", WriteCallback),
            _binding(WriteData, "WRITEDATA", Any),
            _binding(Url, "URL", str),
            _binding(Verbose, "VERBOSE", bool),
            _binding(SslVerifyPeer, "SSL_VERIFYPEER", bool),
            _binding(FailOnError, "FAILONERROR", bool),
        ]
    )
)


def binding_for(option: TransportOption) -> OptionBinding:
    """Return the registry entry for an option instance."""
    return OPTION_BINDINGS[type(option)]
