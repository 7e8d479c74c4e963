"""requests-backed page fetcher used by the content scan.

Policy:
- Only public http(s) URLs are fetched (SSRF guard).
- Bodies are streamed with a byte cap and a total deadline.
- Connection errors are retried here; callers treat ``None`` as a step failure.
"""

import ipaddress
import re
import time
from typing import Dict, Mapping, Optional
from urllib.parse import urlparse

import requests

from freshgate.core.errors import FetchError
from freshgate.core.logger import logger
from freshgate.core.retry import with_retries
from freshgate.providers.base import HttpFetcher

DEFAULT_HEADERS = {
    "User-Agent": "freshgate/1.0 (+https://github.com/freshgate)",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}

_PRIVATE_NETS = [
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fc00::/7"),
    ipaddress.ip_network("fe80::/10"),
]

_META_CHARSET = re.compile(rb"""<meta[^>]+charset=["']?([A-Za-z0-9_.:-]+)""", re.IGNORECASE)


def _is_private_ip(hostname: str) -> bool:
    try:
        ip = ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return any(ip in net for net in _PRIVATE_NETS)


def validate_fetch_url(url: str) -> Optional[str]:
    """Return an error code if ``url`` must not be fetched, else None."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return "invalid_url"
    if parsed.scheme not in ("http", "https"):
        return "bad_scheme"
    host = (parsed.hostname or "").strip().lower()
    if not host:
        return "missing_host"
    if host in ("localhost", "localhost.localdomain"):
        return "blocked_host"
    if _is_private_ip(host):
        return "blocked_private_ip"
    return None


def _decode_body(content: bytes, content_type: str, header_encoding: Optional[str]) -> str:
    """Decode a page body.

    A charset declared in ``Content-Type`` wins. Otherwise strict UTF-8 is tried,
    then a ``<meta charset>`` declaration, then the encoding requests assumed
    (ISO-8859-1 for ``text/*``) with replacement.
    """
    candidates = []
    if header_encoding and "charset=" in (content_type or "").lower():
        candidates.append(header_encoding)
    candidates.append("utf-8")
    meta = _META_CHARSET.search(content[:4096])
    if meta:
        candidates.append(meta.group(1).decode("ascii"))
    for encoding in candidates:
        try:
            return content.decode(encoding)
        except (LookupError, UnicodeDecodeError):
            continue
    try:
        return content.decode(header_encoding or "utf-8", errors="replace")
    except LookupError:
        return content.decode("utf-8", errors="replace")


class RequestsFetcher(HttpFetcher):
    """Fetch article pages over HTTP.

    Args:
        session: Shared ``requests.Session``; one is created when omitted.
        default_headers: Headers sent with every request, merged under per-call headers.
        connect_timeout: Seconds allowed to establish the connection.
        max_bytes: Bodies larger than this are abandoned.
        retries: Retry attempts on connection errors.
        retry_delay: Initial backoff in seconds.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        default_headers: Optional[Mapping[str, str]] = None,
        connect_timeout: float = 5.0,
        max_bytes: int = 2_000_000,
        retries: int = 1,
        retry_delay: float = 0.5,
    ) -> None:
        self.session = session or requests.Session()
        self.default_headers: Dict[str, str] = dict(default_headers or DEFAULT_HEADERS)
        self.connect_timeout = connect_timeout
        self.max_bytes = max_bytes
        self._get = with_retries(
            max_retries=retries,
            initial_delay=retry_delay,
            exceptions=(requests.ConnectionError,),
        )(self._request)

    def fetch(self, url: str, timeout: float, headers: Optional[Mapping[str, str]] = None) -> Optional[str]:
        error = validate_fetch_url(url)
        if error:
            logger.warning(f"RequestsFetcher: refused url={url} reason={error}")
            return None

        merged = {**self.default_headers, **(headers or {})}
        try:
            return self._get(url, timeout, merged)
        except FetchError as exc:
            logger.info(f"RequestsFetcher: url={url} {exc}")
        except requests.RequestException as exc:
            logger.warning(f"RequestsFetcher: url={url} request failed: {exc}")
        return None

    def _request(self, url: str, timeout: float, headers: Dict[str, str]) -> str:
        deadline = time.monotonic() + timeout
        with self.session.get(
            url,
            headers=headers,
            timeout=(min(self.connect_timeout, timeout), timeout),
            allow_redirects=True,
            stream=True,
        ) as resp:
            if not 200 <= resp.status_code < 300:
                raise FetchError(f"http_{resp.status_code}")

            content = b""
            for chunk in resp.iter_content(chunk_size=64 * 1024):
                if not chunk:
                    continue
                content += chunk
                if len(content) > self.max_bytes:
                    raise FetchError("too_large")
                if time.monotonic() > deadline:
                    raise FetchError("deadline_exceeded")

            return _decode_body(content, resp.headers.get("Content-Type", ""), resp.encoding)
