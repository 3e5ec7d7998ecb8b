"""Unit tests for the HTTP client wrapper."""

import copy
import logging
import pickle
import threading
import time
from unittest.mock import patch

import pytest
import requests

from xkcd_alt import client as client_module
from xkcd_alt.client import (
    HttpClient,
    TransportError,
    TransportRuntime,
    init_transport,
    transport_runtime,
)
from xkcd_alt.transport_options import (
    ErrorBuffer,
    FailOnError,
    SslVerifyPeer,
    TransportCode,
    Url,
    Verbose,
    WriteData,
    WriteFunction,
)

FEED_URL = "https://xkcd.com/rss.xml"


def collect(chunk, sink):
    sink.extend(chunk)
    return len(chunk)


class TestInitTransportUnit:
    """Unit tests for one-time transport initialization."""

    def test_concurrent_init_runs_once(self, fresh_transport, mock_session):
        """Setup runs exactly once no matter how many threads race for it."""
        calls = []
        real_init = client_module._global_init

        def slow_init():
            calls.append(threading.get_ident())
            time.sleep(0.05)
            return real_init()

        thread_count = 16
        barrier = threading.Barrier(thread_count)
        runtimes = []
        errors = []

        def worker():
            barrier.wait()
            try:
                with HttpClient() as http_client:
                    assert not http_client.closed
                    http_client.set(Url(FEED_URL))
                    runtimes.append(http_client.runtime)
            except Exception as e:  # collected and asserted below
                errors.append(e)

        with patch.object(client_module, "_global_init", side_effect=slow_init):
            threads = [threading.Thread(target=worker) for _ in range(thread_count)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

        assert errors == []
        assert len(calls) == 1
        assert len(runtimes) == thread_count
        assert all(runtime is runtimes[0] for runtime in runtimes)
        assert transport_runtime() is runtimes[0]

    def test_failed_init_is_retried(self, fresh_transport):
        failure = TransportError(TransportCode.FAILED_INIT, "Failed initialization")
        runtime = TransportRuntime(ca_bundle="/tmp/ca.pem", user_agent="ua")

        with patch.object(
            client_module, "_global_init", side_effect=[failure, runtime]
        ) as global_init:
            with pytest.raises(TransportError) as exc_info:
                init_transport()
            assert exc_info.value.code is TransportCode.FAILED_INIT
            assert transport_runtime() is None

            assert init_transport() is runtime
            assert init_transport() is runtime

        assert global_init.call_count == 2

    def test_runtime_has_ca_bundle_and_user_agent(self, fresh_transport):
        runtime = init_transport()
        assert runtime.ca_bundle
        assert runtime.user_agent.startswith("xkcd-alt/")


class TestHttpClientUnit:
    """Unit tests for HttpClient."""

    def test_set_is_chainable(self, mock_session):
        with HttpClient() as http_client:
            assert http_client.set(Verbose(False)) is http_client
            assert http_client.with_options(FailOnError(True), Url(FEED_URL)) is http_client

    def test_session_gets_user_agent(self, mock_session):
        with HttpClient() as http_client:
            assert mock_session.headers["User-Agent"] == http_client.runtime.user_agent

    @pytest.mark.parametrize(
        "url,code",
        [
            ("not a url", TransportCode.URL_MALFORMAT),
            ("https://", TransportCode.URL_MALFORMAT),
            ("ftp://xkcd.com/rss.xml", TransportCode.UNSUPPORTED_PROTOCOL),
        ],
    )
    def test_bad_url_raises(self, mock_session, url, code):
        errors = []
        with HttpClient() as http_client:
            http_client.set(ErrorBuffer(errors))
            with pytest.raises(TransportError) as exc_info:
                http_client.set(Url(url))

        assert exc_info.value.code is code
        assert exc_info.value.diagnostic.startswith(
            client_module.strerror(code)
        )
        assert errors == [exc_info.value.diagnostic]

    def test_missing_ca_bundle_fails_verify_peer(self, mock_session):
        with HttpClient() as http_client:
            http_client.runtime = TransportRuntime(
                ca_bundle="/nonexistent/ca.pem", user_agent="ua"
            )
            with pytest.raises(TransportError) as exc_info:
                http_client.set(SslVerifyPeer(True))
            # turning verification off never needs the bundle
            http_client.set(SslVerifyPeer(False))

        assert exc_info.value.code is TransportCode.SSL_CACERT_BADFILE

    def test_execute_streams_body_to_write_function(self, mock_session, response_factory):
        mock_session.get.return_value = response_factory([b"<rss>", b"", b"</rss>"])
        body = bytearray()

        with HttpClient() as http_client:
            http_client.set(WriteFunction(collect)).set(WriteData(body))
            http_client.set(Url(FEED_URL)).execute()
            ca_bundle = http_client.runtime.ca_bundle

        assert bytes(body) == b"<rss></rss>"
        mock_session.get.assert_called_once_with(FEED_URL, verify=ca_bundle, stream=True)
        mock_session.close.assert_called_once()

    def test_insecure_disables_verification(self, mock_session):
        with HttpClient() as http_client:
            http_client.with_options(Url(FEED_URL), SslVerifyPeer(False)).execute()

        mock_session.get.assert_called_once_with(FEED_URL, verify=False, stream=True)

    def test_execute_without_url(self, mock_session):
        with HttpClient() as http_client:
            with pytest.raises(TransportError) as exc_info:
                http_client.execute()

        assert exc_info.value.code is TransportCode.URL_MALFORMAT
        mock_session.get.assert_not_called()

    def test_short_write_aborts_transfer(self, mock_session, response_factory):
        mock_session.get.return_value = response_factory([b"abc", b"def"])
        seen = []

        def short_writer(chunk, data):
            seen.append(chunk)
            return len(chunk) - 1

        with pytest.raises(TransportError) as exc_info:
            with HttpClient() as http_client:
                http_client.set(WriteFunction(short_writer)).set(Url(FEED_URL))
                http_client.execute()

        assert exc_info.value.code is TransportCode.WRITE_ERROR
        assert "passed 3 returned 2" in exc_info.value.diagnostic
        assert seen == [b"abc"]
        mock_session.close.assert_called_once()

    def test_fail_on_error(self, mock_session, response_factory):
        mock_session.get.return_value = response_factory(status_code=404, reason="Not Found")

        with HttpClient() as http_client:
            http_client.set(Url(FEED_URL)).set(FailOnError(True))
            with pytest.raises(TransportError) as exc_info:
                http_client.execute()

        assert exc_info.value.code is TransportCode.HTTP_RETURNED_ERROR
        assert "404" in exc_info.value.diagnostic

    def test_http_error_status_is_not_failure_by_default(self, mock_session, response_factory):
        mock_session.get.return_value = response_factory([b"gone"], status_code=410)
        body = bytearray()

        with HttpClient() as http_client:
            http_client.with_options(Url(FEED_URL), WriteFunction(collect), WriteData(body))
            http_client.execute()

        assert bytes(body) == b"gone"

    @pytest.mark.parametrize(
        "exc,code",
        [
            (
                requests.exceptions.ConnectionError(
                    "Failed to resolve 'xkcd.com' (NameResolutionError)"
                ),
                TransportCode.COULDNT_RESOLVE_HOST,
            ),
            (
                requests.exceptions.ConnectionError("Connection refused"),
                TransportCode.COULDNT_CONNECT,
            ),
            (requests.exceptions.ConnectTimeout("timed out"), TransportCode.OPERATION_TIMEDOUT),
            (requests.exceptions.ReadTimeout("timed out"), TransportCode.OPERATION_TIMEDOUT),
            (
                requests.exceptions.SSLError("[SSL: CERTIFICATE_VERIFY_FAILED]"),
                TransportCode.PEER_FAILED_VERIFICATION,
            ),
            (requests.exceptions.SSLError("handshake failure"), TransportCode.SSL_CONNECT_ERROR),
            (requests.exceptions.TooManyRedirects("30 redirects"), TransportCode.TOO_MANY_REDIRECTS),
            (requests.exceptions.ChunkedEncodingError("broken"), TransportCode.RECV_ERROR),
        ],
    )
    def test_request_exceptions_are_mapped(self, mock_session, exc, code):
        mock_session.get.side_effect = exc

        with HttpClient() as http_client:
            http_client.set(Url(FEED_URL))
            with pytest.raises(TransportError) as exc_info:
                http_client.execute()

        assert exc_info.value.code is code
        assert str(exc) in exc_info.value.diagnostic
        assert exc_info.value.__cause__ is exc

    def test_error_while_streaming_is_mapped(self, mock_session, response_factory):
        response = response_factory()
        response.iter_content.side_effect = requests.exceptions.ChunkedEncodingError("cut")
        mock_session.get.return_value = response

        with HttpClient() as http_client:
            http_client.set(Url(FEED_URL))
            with pytest.raises(TransportError) as exc_info:
                http_client.execute()

        assert exc_info.value.code is TransportCode.RECV_ERROR

    def test_verbose_logs_request_and_response(self, mock_session, response_factory, caplog):
        mock_session.get.return_value = response_factory([b"x"])

        with caplog.at_level(logging.DEBUG, logger="xkcd_alt.transport"):
            with HttpClient() as http_client:
                http_client.set(Verbose(True)).set(Url(FEED_URL)).execute()

        messages = [record.getMessage() for record in caplog.records]
        assert f"> GET {FEED_URL}" in messages
        assert "< HTTP 200 OK" in messages
        assert "< Content-Type: application/rss+xml" in messages

    def test_verbose_level_is_restored_on_close(self, mock_session):
        transport_logger = logging.getLogger("xkcd_alt.transport")
        original_level = transport_logger.level
        transport_logger.setLevel(logging.CRITICAL)
        try:
            with HttpClient() as http_client:
                http_client.set(Verbose(True)).set(Verbose(True))
                assert transport_logger.level == logging.DEBUG
            assert transport_logger.level == logging.CRITICAL

            with HttpClient() as http_client:
                http_client.set(Verbose(True)).set(Verbose(False))
                assert transport_logger.level == logging.CRITICAL
        finally:
            transport_logger.setLevel(original_level)

    def test_client_cannot_be_copied(self, mock_session):
        with HttpClient() as http_client:
            with pytest.raises(TypeError):
                copy.copy(http_client)
            with pytest.raises(TypeError):
                copy.deepcopy(http_client)
            with pytest.raises(TypeError):
                pickle.dumps(http_client)

    def test_close_is_idempotent(self, mock_session):
        http_client = HttpClient()
        http_client.close()
        http_client.close()

        assert http_client.closed
        mock_session.close.assert_called_once()
        with pytest.raises(ValueError):
            http_client.set(Url(FEED_URL))
        with pytest.raises(ValueError):
            http_client.execute()

    def test_session_released_when_construction_fails(self, mock_session):
        mock_session.headers = object()  # no update()

        with pytest.raises(AttributeError):
            HttpClient()

        mock_session.close.assert_called_once()

    def test_session_creation_failure(self):
        with patch("xkcd_alt.client.requests.Session", side_effect=OSError("no fds")):
            with pytest.raises(TransportError) as exc_info:
                HttpClient()

        assert exc_info.value.code is TransportCode.FAILED_INIT
        assert "no fds" in exc_info.value.diagnostic
