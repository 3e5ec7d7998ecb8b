"""HTTP client wrapper for xkcd-alt.

``HttpClient`` owns a single ``requests.Session`` for one request. Options
are applied with ``set`` (chainable) and the request runs with
``execute``. Every failure is raised as a ``TransportError`` carrying a
``TransportCode`` and a diagnostic. Use it as a context manager so the
session is released on every exit path.
"""

import logging
import os
import threading
from dataclasses import dataclass
from typing import assert_never
from urllib.parse import urlparse

import requests
from requests import certs
from requests.models import PreparedRequest
from requests.utils import default_user_agent

from . import PROGNAME, __version__
from .logging_config import create_execution_logger
from .transport_options import (
    ErrorBuffer,
    FailOnError,
    SslVerifyPeer,
    TransportCode,
    TransportOption,
    Url,
    Verbose,
    WriteData,
    WriteFunction,
    binding_for,
    strerror,
)

CHUNK_SIZE = 16 * 1024


class TransportError(Exception):
    """A transport-layer failure with its status code and diagnostic."""

    def __init__(self, code: TransportCode, diagnostic: str):
        super().__init__(diagnostic)
        self.code = code
        self.diagnostic = diagnostic

    def __repr__(self) -> str:
        return f"TransportError(code={self.code.name}, diagnostic={self.diagnostic!r})"


@dataclass(frozen=True)
class TransportRuntime:
    """Process-wide transport settings resolved once by ``init_transport``."""

    ca_bundle: str
    user_agent: str


_init_lock = threading.Lock()
_runtime: TransportRuntime | None = None


def _global_init() -> TransportRuntime:
    ca_bundle = certs.where()
    if not os.path.isfile(ca_bundle):
        raise TransportError(
            TransportCode.FAILED_INIT,
            f"{strerror(TransportCode.FAILED_INIT)}: CA bundle not found at {ca_bundle}",
        )
    # urllib3 reports unverified HTTPS requests through warnings
    logging.captureWarnings(True)
    return TransportRuntime(
        ca_bundle=ca_bundle,
        user_agent=f"{PROGNAME}/{__version__} {default_user_agent()}",
    )


def init_transport() -> TransportRuntime:
    """Perform one-time transport initialization in a thread-safe manner.

    The first caller runs the setup while concurrent callers wait on the
    lock; afterwards every call returns the same runtime without locking.
    A failed setup is not recorded, so the next caller tries again.

    Raises:
        TransportError: If the transport can't be initialized
    """
    global _runtime
    if _runtime is None:
        with _init_lock:
            if _runtime is None:
                _runtime = _global_init()
    return _runtime


def transport_runtime() -> TransportRuntime | None:
    """Return the runtime if ``init_transport`` has completed."""
    return _runtime


def _code_for(exc: requests.RequestException) -> TransportCode:
    """Map a requests exception to its transport status code."""
    if isinstance(exc, requests.exceptions.SSLError):
        if "CERTIFICATE_VERIFY_FAILED" in str(exc):
            return TransportCode.PEER_FAILED_VERIFICATION
        return TransportCode.SSL_CONNECT_ERROR
    if isinstance(exc, requests.exceptions.Timeout):
        return TransportCode.OPERATION_TIMEDOUT
    if isinstance(exc, requests.exceptions.ConnectionError):
        text = str(exc)
        if "NameResolutionError" in text or "Name or service not known" in text:
            return TransportCode.COULDNT_RESOLVE_HOST
        return TransportCode.COULDNT_CONNECT
    if isinstance(exc, requests.exceptions.TooManyRedirects):
        return TransportCode.TOO_MANY_REDIRECTS
    if isinstance(exc, requests.exceptions.InvalidSchema):
        return TransportCode.UNSUPPORTED_PROTOCOL
    if isinstance(exc, (requests.exceptions.MissingSchema, requests.exceptions.InvalidURL)):
        return TransportCode.URL_MALFORMAT
    return TransportCode.RECV_ERROR


class HttpClient:
    """Owns one transport session; not shareable between owners."""

    def __init__(self, execution_id: str | None = None):
        """Initialize the transport (once per process) and open a session.

        Args:
            execution_id: Execution ID for logging context

        Raises:
            TransportError: If initialization or session creation fails
        """
        self.runtime = init_transport()
        self.logger = create_execution_logger("transport", execution_id)

        self._url: str | None = None
        self._verbose = False
        self._verify: str | bool = self.runtime.ca_bundle
        self._fail_on_error = False
        self._error_buffer: list[str] | None = None
        self._write_function = None
        self._write_data = None
        self._saved_log_level: int | None = None

        try:
            self._session: requests.Session | None = requests.Session()
        except Exception as e:
            raise TransportError(
                TransportCode.FAILED_INIT,
                f"{strerror(TransportCode.FAILED_INIT)}: {e}",
            ) from e

        try:
            self._session.headers.update({"User-Agent": self.runtime.user_agent})
        except Exception:
            self.close()
            raise

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __copy__(self):
        raise TypeError("HttpClient owns its session and can't be copied")

    def __deepcopy__(self, memo):
        raise TypeError("HttpClient owns its session and can't be copied")

    def __reduce__(self):
        raise TypeError("HttpClient owns its session and can't be pickled")

    @property
    def closed(self) -> bool:
        return self._session is None

    def close(self) -> None:
        """Release the session. Safe to call more than once."""
        if self._session is not None:
            session, self._session = self._session, None
            session.close()
        self._restore_log_level()

    def set(self, option: TransportOption) -> "HttpClient":
        """Apply a transport option, returning the client for chaining.

        Raises:
            TransportError: If an option that can fail could not be applied
        """
        self._check_open()
        status, detail = self._apply(option)
        if not binding_for(option).always_ok and status is not TransportCode.OK:
            raise self._error(status, detail)
        return self

    def with_options(self, *options: TransportOption) -> "HttpClient":
        """Apply several options in order, stopping at the first failure."""
        for option in options:
            self.set(option)
        return self

    def _apply(self, option: TransportOption) -> tuple[TransportCode, str]:
        match option:
            case ErrorBuffer(value=buffer):
                self._error_buffer = buffer
            case WriteFunction(value=callback):
                self._write_function = callback
            case WriteData(value=data):
                self._write_data = data
            case FailOnError(value=enabled):
                self._fail_on_error = enabled
            case Url(value=url):
                return self._apply_url(url)
            case Verbose(value=enabled):
                self._verbose = enabled
                if enabled:
                    self._raise_log_level()
                else:
                    self._restore_log_level()
            case SslVerifyPeer(value=enabled):
                return self._apply_verify_peer(enabled)
            case _:
                assert_never(option)
        return TransportCode.OK, ""

    def _raise_log_level(self) -> None:
        if self._saved_log_level is None:
            self._saved_log_level = self.logger.logger.level
        self.logger.logger.setLevel(logging.DEBUG)

    def _restore_log_level(self) -> None:
        if self._saved_log_level is not None:
            self.logger.logger.setLevel(self._saved_log_level)
            self._saved_log_level = None

    def _apply_url(self, url: str) -> tuple[TransportCode, str]:
        prepared = PreparedRequest()
        try:
            prepared.prepare_url(url, None)
        except requests.RequestException as e:
            return _code_for(e), str(e)
        scheme = urlparse(prepared.url).scheme.lower()
        if scheme not in ("http", "https"):
            return TransportCode.UNSUPPORTED_PROTOCOL, f"Protocol \"{scheme}\" not supported"
        self._url = prepared.url
        return TransportCode.OK, ""

    def _apply_verify_peer(self, enabled: bool) -> tuple[TransportCode, str]:
        if not enabled:
            self._verify = False
            self.logger.debug("Server certificate verification disabled")
            return TransportCode.OK, ""
        if not os.path.isfile(self.runtime.ca_bundle):
            return TransportCode.SSL_CACERT_BADFILE, f"error setting certificate file: {self.runtime.ca_bundle}"
        self._verify = self.runtime.ca_bundle
        return TransportCode.OK, ""

    def execute(self) -> None:
        """Perform the GET request, streaming the body to the write function.

        Blocks until the transfer completes. Not safe to call concurrently
        on the same client.

        Raises:
            TransportError: If the request fails or the write function
                takes fewer bytes than it was given
        """
        self._check_open()
        if self._url is None:
            raise self._error(TransportCode.URL_MALFORMAT, "No URL set")

        if self._verbose:
            self.logger.debug(f"> GET {self._url}", feed_url=self._url)

        try:
            response = self._session.get(self._url, verify=self._verify, stream=True)
        except requests.RequestException as e:
            raise self._error(_code_for(e), str(e)) from e

        with response:
            if self._verbose:
                self._log_response(response)
            if self._fail_on_error and response.status_code >= 400:
                raise self._error(
                    TransportCode.HTTP_RETURNED_ERROR,
                    f"The requested URL returned error: {response.status_code}",
                )
            received = 0
            try:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if not chunk:
                        continue
                    taken = self._deliver(chunk)
                    if taken != len(chunk):
                        raise self._error(
                            TransportCode.WRITE_ERROR,
                            f"Failure writing output to destination, "
                            f"passed {len(chunk)} returned {taken}",
                        )
                    received += taken
            except requests.RequestException as e:
                raise self._error(_code_for(e), str(e)) from e

        self.logger.log_request(self._url, response.status_code, received)

    def _deliver(self, chunk: bytes) -> int:
        if self._write_function is None:
            return len(chunk)
        return self._write_function(chunk, self._write_data)

    def _log_response(self, response: requests.Response) -> None:
        for name, value in response.request.headers.items():
            self.logger.debug(f"> {name}: {value}")
        self.logger.debug(f"< HTTP {response.status_code} {response.reason}")
        for name, value in response.headers.items():
            self.logger.debug(f"< {name}: {value}")

    def _error(self, code: TransportCode, detail: str) -> TransportError:
        diagnostic = f"{strerror(code)}: {detail}" if detail else strerror(code)
        if self._error_buffer is not None:
            self._error_buffer.append(diagnostic)
        self.logger.debug(
            f"Transport error {int(code)}: {diagnostic}", code=int(code)
        )
        return TransportError(code, diagnostic)

    def _check_open(self) -> None:
        if self._session is None:
            raise ValueError("operation on closed HttpClient")
