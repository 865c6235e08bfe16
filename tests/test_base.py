"""Tests for chatia.providers.base helpers and the error taxonomy."""
import time
import unittest
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock, patch

import httpx

from chatia.errors import (
    CredentialMissingError,
    ProviderRejectionError,
    ProviderTimeoutError,
    TransientProviderError,
    error_kind,
)
from chatia.providers.base import (
    CallContext,
    RetryPolicy,
    call_with_timeout,
    contain,
    error_response,
    normalize_response,
    request_json,
    scrub_pii,
    wait_until,
    with_retry,
)
from chatia.types import IMAGE, ProviderResponse


def _mock_client(mock_client_cls, status=200, payload=None, text="", json_error=None):
    mock_response = MagicMock()
    mock_response.status_code = status
    mock_response.text = text
    if json_error is not None:
        mock_response.json.side_effect = json_error
    else:
        mock_response.json.return_value = payload if payload is not None else {}
    mock_client = MagicMock()
    mock_client.__enter__ = MagicMock(return_value=mock_client)
    mock_client.__exit__ = MagicMock(return_value=False)
    mock_client.post.return_value = mock_response
    mock_client.get.return_value = mock_response
    mock_client_cls.return_value = mock_client
    return mock_client


class TestScrub(unittest.TestCase):
    def test_redacts_email_card_and_phone(self):
        text = "Mail ana@example.com, card 4111 1111 1111 1111, call 555-123-4567."
        self.assertEqual(scrub_pii(text), "Mail [EMAIL], card [CARD], call [PHONE].")

    def test_plain_text_untouched(self):
        self.assertEqual(scrub_pii("Brasília tem 3 milhões de habitantes."), "Brasília tem 3 milhões de habitantes.")


class TestWithRetry(unittest.TestCase):
    def test_retries_transient_with_linear_backoff(self):
        attempts = []
        sleeps = []

        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise TransientProviderError("503")
            return "ok"

        result = with_retry(flaky, RetryPolicy(retries=2, base_delay_ms=100), sleep=sleeps.append)
        self.assertEqual(result, "ok")
        self.assertEqual(len(attempts), 3)
        self.assertEqual(sleeps, [0.1, 0.2])

    def test_gives_up_after_retries(self):
        fn = MagicMock(side_effect=TransientProviderError("still down"))
        with self.assertRaises(TransientProviderError):
            with_retry(fn, RetryPolicy(retries=2, base_delay_ms=0), sleep=lambda _: None)
        self.assertEqual(fn.call_count, 3)

    def test_permanent_errors_not_retried(self):
        for exc in (ProviderRejectionError("400"), CredentialMissingError("no key"), ProviderTimeoutError("slow")):
            fn = MagicMock(side_effect=exc)
            with self.assertRaises(type(exc)):
                with_retry(fn, RetryPolicy(retries=3, base_delay_ms=0), sleep=lambda _: None)
            self.assertEqual(fn.call_count, 1)

    def test_zero_retries(self):
        fn = MagicMock(side_effect=TransientProviderError("down"))
        with self.assertRaises(TransientProviderError):
            with_retry(fn, RetryPolicy(retries=0), sleep=lambda _: None)
        self.assertEqual(fn.call_count, 1)


class TestCallWithTimeout(unittest.TestCase):
    def test_returns_value_within_budget(self):
        self.assertEqual(call_with_timeout(lambda: 42, 500), 42)

    def test_raises_timeout_past_deadline(self):
        started = time.monotonic()
        with self.assertRaises(ProviderTimeoutError) as ctx:
            call_with_timeout(lambda: time.sleep(1.0), 50)
        self.assertEqual(str(ctx.exception), "Timeout after 50ms")
        self.assertLess(time.monotonic() - started, 0.5)

    def test_propagates_callable_errors(self):
        def fail():
            raise ProviderRejectionError("bad request")

        with self.assertRaises(ProviderRejectionError):
            call_with_timeout(fail, 500)


class TestWaitUntil(unittest.TestCase):
    def test_futures_share_one_deadline(self):
        executor = ThreadPoolExecutor(max_workers=2)
        try:
            slow = executor.submit(time.sleep, 1.0)
            fast = executor.submit(lambda: "done")
            started = time.monotonic()
            deadline = started + 0.1
            with self.assertRaises(ProviderTimeoutError) as ctx:
                wait_until(slow, deadline, 100)
            self.assertEqual(str(ctx.exception), "Timeout after 100ms")
            self.assertEqual(wait_until(fast, deadline, 100), "done")
            self.assertLess(time.monotonic() - started, 0.5)
        finally:
            executor.shutdown(wait=False)


class TestRequestJson(unittest.TestCase):
    @patch("chatia.providers.base.httpx.Client")
    def test_returns_parsed_body(self, mock_client_cls):
        client = _mock_client(mock_client_cls, payload={"ok": True})
        data = request_json("POST", "https://api.test/x", timeout=2.0, json={"a": 1}, headers={"H": "v"})
        self.assertEqual(data, {"ok": True})
        client.post.assert_called_once_with("https://api.test/x", headers={"H": "v"}, json={"a": 1})
        mock_client_cls.assert_called_once_with(timeout=2.0)

    @patch("chatia.providers.base.httpx.Client")
    def test_get(self, mock_client_cls):
        client = _mock_client(mock_client_cls, payload=[])
        request_json("GET", "https://api.test/models", timeout=1.0)
        client.get.assert_called_once()
        client.post.assert_not_called()

    @patch("chatia.providers.base.httpx.Client")
    def test_server_errors_and_rate_limits_are_transient(self, mock_client_cls):
        for status in (429, 500, 503):
            _mock_client(mock_client_cls, status=status, text="busy")
            with self.assertRaises(TransientProviderError):
                request_json("POST", "https://api.test/x", timeout=1.0)

    @patch("chatia.providers.base.httpx.Client")
    def test_client_errors_are_rejections(self, mock_client_cls):
        _mock_client(mock_client_cls, status=401, text="Unauthorized")
        with self.assertRaises(ProviderRejectionError) as ctx:
            request_json("POST", "https://api.test/x", timeout=1.0, label="OpenAI API")
        self.assertEqual(str(ctx.exception), "OpenAI API error: 401 - Unauthorized")

    @patch("chatia.providers.base.httpx.Client")
    def test_non_json_body_is_rejection(self, mock_client_cls):
        _mock_client(mock_client_cls, json_error=ValueError("not json"))
        with self.assertRaises(ProviderRejectionError):
            request_json("GET", "https://api.test/x", timeout=1.0)

    @patch("chatia.providers.base.httpx.Client")
    def test_timeout_and_transport_errors(self, mock_client_cls):
        client = _mock_client(mock_client_cls)
        client.post.side_effect = httpx.ReadTimeout("read timed out")
        with self.assertRaises(ProviderTimeoutError):
            request_json("POST", "https://api.test/x", timeout=1.0)
        client.post.side_effect = httpx.ConnectError("connection refused")
        with self.assertRaises(TransientProviderError):
            request_json("POST", "https://api.test/x", timeout=1.0)


class TestNormalize(unittest.TestCase):
    def test_text_falls_back_through_known_keys(self):
        self.assertEqual(normalize_response("p", {"text": "a"}).text, "a")
        self.assertEqual(normalize_response("p", {"content": "b"}).text, "b")
        self.assertEqual(normalize_response("p", {"response": "c"}).text, "c")

    def test_unknown_payload_defaults_to_empty(self):
        response = normalize_response("p", ["not", "a", "dict"], IMAGE)
        self.assertEqual(response.text, "")
        self.assertEqual(response.files, [])
        self.assertEqual(response.sources, [])
        self.assertEqual(response.modality, IMAGE)
        self.assertFalse(response.valid)

    def test_explicit_text_and_sources(self):
        response = normalize_response("p", {"text": "ignored", "sources": ["x"]}, text="used", sources=["y"])
        self.assertEqual(response.text, "used")
        self.assertEqual(response.sources, ["y"])


class TestContain(unittest.TestCase):
    def test_exception_becomes_error_response(self):
        def fail():
            raise TransientProviderError("OpenAI API error: 503 - down")

        response = contain("openai", "text", fail)
        self.assertEqual(response.provider, "openai")
        self.assertEqual(response.error, "OpenAI API error: 503 - down")
        self.assertEqual(response.error_kind, "transient")
        self.assertIsNone(response.text)

    def test_scrubs_successful_text(self):
        response = contain("p", "text", lambda: ProviderResponse(provider="p", text="write to bob@corp.io"))
        self.assertEqual(response.text, "write to [EMAIL]")

    def test_error_response_from_string(self):
        response = error_response("p", "plain failure", kind="timeout")
        self.assertEqual(response.error, "plain failure")
        self.assertEqual(response.error_kind, "timeout")


class TestErrorKind(unittest.TestCase):
    def test_kinds(self):
        self.assertEqual(error_kind(CredentialMissingError("x")), "credential_missing")
        self.assertEqual(error_kind(TimeoutError()), "timeout")
        self.assertEqual(error_kind(ValueError("x")), "unknown")

    def test_context_timeout_seconds(self):
        self.assertEqual(CallContext(timeout_ms=2500).timeout_seconds, 2.5)


if __name__ == "__main__":
    unittest.main()
