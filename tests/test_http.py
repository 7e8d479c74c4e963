import unittest
from datetime import datetime
from unittest.mock import MagicMock

import requests

from freshgate.extraction.content_dates import extract_published_date
from freshgate.providers.http import RequestsFetcher, validate_fetch_url


def _response(status=200, chunks=(b"<html>ok</html>",), encoding="utf-8", content_type="text/html; charset=utf-8"):
    resp = MagicMock()
    resp.status_code = status
    resp.encoding = encoding
    resp.headers = {"Content-Type": content_type}
    resp.iter_content.return_value = list(chunks)
    return resp


def _session_returning(*responses):
    session = MagicMock()
    contexts = []
    for resp in responses:
        if isinstance(resp, Exception):
            contexts.append(resp)
            continue
        ctx = MagicMock()
        ctx.__enter__.return_value = resp
        ctx.__exit__.return_value = False
        contexts.append(ctx)
    session.get.side_effect = contexts
    return session


class TestValidateFetchUrl(unittest.TestCase):
    def test_public_urls_are_allowed(self):
        self.assertIsNone(validate_fetch_url("https://www.bloomberg.com/news/articles/2025-08-25/x"))
        self.assertIsNone(validate_fetch_url("http://example.com/a?b=1"))

    def test_refused_urls(self):
        self.assertEqual(validate_fetch_url("file:///etc/passwd"), "bad_scheme")
        self.assertEqual(validate_fetch_url("http:///no-host"), "missing_host")
        self.assertEqual(validate_fetch_url("http://localhost:8080/admin"), "blocked_host")
        self.assertEqual(validate_fetch_url("http://192.168.1.10/"), "blocked_private_ip")
        self.assertEqual(validate_fetch_url("http://[::1]/"), "blocked_private_ip")


class TestRequestsFetcher(unittest.TestCase):
    def test_returns_decoded_body(self):
        session = _session_returning(_response(chunks=(b"<html>", "본문</html>".encode("utf-8"))))
        fetcher = RequestsFetcher(session=session)

        self.assertEqual(fetcher.fetch("https://example.com/a", 3), "<html>본문</html>")
        kwargs = session.get.call_args.kwargs
        self.assertEqual(kwargs["timeout"], (3, 3))
        self.assertTrue(kwargs["stream"])

    def test_non_2xx_is_none(self):
        fetcher = RequestsFetcher(session=_session_returning(_response(status=404)))
        self.assertIsNone(fetcher.fetch("https://example.com/missing", 5))

    def test_oversized_body_is_abandoned(self):
        fetcher = RequestsFetcher(session=_session_returning(_response(chunks=(b"12345", b"67890"))), max_bytes=8)
        self.assertIsNone(fetcher.fetch("https://example.com/big", 5))

    def test_blocked_url_is_never_requested(self):
        session = MagicMock()
        fetcher = RequestsFetcher(session=session)
        self.assertIsNone(fetcher.fetch("http://127.0.0.1/metadata", 5))
        session.get.assert_not_called()

    def test_connection_error_is_retried(self):
        session = _session_returning(requests.ConnectionError("reset"), _response())
        fetcher = RequestsFetcher(session=session, retries=1, retry_delay=0)

        self.assertEqual(fetcher.fetch("https://example.com/a", 5), "<html>ok</html>")
        self.assertEqual(session.get.call_count, 2)

    def test_gives_up_after_retries(self):
        session = _session_returning(requests.ConnectionError("reset"), requests.ConnectionError("reset"))
        fetcher = RequestsFetcher(session=session, retries=1, retry_delay=0)
        self.assertIsNone(fetcher.fetch("https://example.com/a", 5))

    def test_timeouts_are_not_retried(self):
        session = _session_returning(requests.Timeout("slow"), _response())
        fetcher = RequestsFetcher(session=session, retries=1, retry_delay=0)
        self.assertIsNone(fetcher.fetch("https://example.com/a", 5))
        self.assertEqual(session.get.call_count, 1)

    def test_call_headers_override_defaults(self):
        session = _session_returning(_response())
        fetcher = RequestsFetcher(session=session)
        fetcher.fetch("https://example.com/a", 5, {"User-Agent": "custom"})

        headers = session.get.call_args.kwargs["headers"]
        self.assertEqual(headers["User-Agent"], "custom")
        self.assertIn("Accept", headers)

    def test_unknown_encoding_falls_back_to_utf8(self):
        resp = _response(encoding="x-made-up", content_type="text/html; charset=x-made-up")
        fetcher = RequestsFetcher(session=_session_returning(resp))
        self.assertEqual(fetcher.fetch("https://example.com/a", 5), "<html>ok</html>")

    def test_utf8_body_without_declared_charset(self):
        body = "<html><body><p>입력 2025년 8월 25일</p></body></html>"
        resp = _response(chunks=(body.encode("utf-8"),), encoding="ISO-8859-1", content_type="text/html")
        fetcher = RequestsFetcher(session=_session_returning(resp))

        fetched = fetcher.fetch("https://www.mk.co.kr/news/stock/1", 5)

        self.assertEqual(fetched, body)
        found = extract_published_date(fetched, now=datetime(2025, 8, 25, 18, 0))
        self.assertEqual(found, (datetime(2025, 8, 25, 12, 0), "text"))

    def test_meta_charset_used_when_body_is_not_utf8(self):
        body = '<html><head><meta charset="euc-kr"></head><body>등록일 2025.08.25</body></html>'
        resp = _response(chunks=(body.encode("euc-kr"),), encoding="ISO-8859-1", content_type="text/html")
        fetcher = RequestsFetcher(session=_session_returning(resp))
        self.assertEqual(fetcher.fetch("https://www.maeil.com/news/1", 5), body)

    def test_declared_charset_wins(self):
        body = "<html><body>매일경제</body></html>"
        resp = _response(chunks=(body.encode("euc-kr"),), encoding="euc-kr", content_type="text/html; charset=EUC-KR")
        fetcher = RequestsFetcher(session=_session_returning(resp))
        self.assertEqual(fetcher.fetch("https://www.maeil.com/news/2", 5), body)


if __name__ == "__main__":
    unittest.main()
