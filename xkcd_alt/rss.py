"""XKCD RSS feed retrieval for xkcd-alt."""

from .client import HttpClient, TransportError
from .config import RSS_URL
from .logging_config import create_execution_logger
from .models import CliOptions, RequestResult
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
)

logger = create_execution_logger("rss")


def write_chunk(chunk: bytes, sink: bytearray) -> int:
    """Append a chunk of the response body to ``sink``.

    This runs inside the transfer loop, so it never raises: any failure is
    logged and reported as a short write, which makes the client abort the
    transfer with ``TransportCode.WRITE_ERROR``.

    Returns:
        Number of bytes taken, ``len(chunk)`` on success
    """
    try:
        sink.extend(chunk)
    except Exception as e:
        logger.error(
            f"Failed to buffer {len(chunk)} response bytes: {e!r}",
            error=repr(e),
        )
        return 0
    return len(chunk)


def http_get(
    url: str, *options: TransportOption, execution_id: str | None = None
) -> RequestResult:
    """Make a HTTP[S] GET request, returning the outcome as data.

    Transport failures are not raised; they come back as a
    ``RequestResult`` whose status is not ``TransportCode.OK``.

    Args:
        url: URL to request
        *options: Additional transport options, applied in order
        execution_id: Execution ID for logging context

    Returns:
        RequestResult with the response body on success
    """
    errors: list[str] = []
    body = bytearray()
    try:
        with HttpClient(execution_id=execution_id) as client:
            client.set(ErrorBuffer(errors)).set(WriteFunction(write_chunk)).set(
                WriteData(body)
            )
            client.set(Url(url)).with_options(*options)
            client.execute()
    except TransportError as e:
        logger.info(
            f"GET {url} failed with transport error {int(e.code)}",
            feed_url=url,
            code=int(e.code),
            buffered_errors=len(errors),
        )
        return RequestResult(status=e.code, reason=e.diagnostic)

    return RequestResult(status=TransportCode.OK, payload=bytes(body))


def get_rss(
    opts: CliOptions, url: str | None = None, execution_id: str | None = None
) -> RequestResult:
    """Get the latest XKCD RSS XML.

    Args:
        opts: Parsed command-line options (uses ``verbose`` and ``insecure``)
        url: Feed URL, defaults to ``RSS_URL``
        execution_id: Execution ID for logging context
    """
    feed_url = url or RSS_URL
    logger.info("Fetching RSS feed", feed_url=feed_url)
    return http_get(
        feed_url,
        Verbose(opts.verbose),
        SslVerifyPeer(not opts.insecure),
        FailOnError(True),
        execution_id=execution_id,
    )
