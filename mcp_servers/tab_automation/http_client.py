from __future__ import annotations

import json
import ssl
import urllib.parse
from typing import Any
from urllib.error import URLError
from urllib.request import HTTPRedirectHandler, HTTPSHandler, Request, build_opener, urlopen

from .config import AutomationConfig


class HttpClientError(Exception):
    pass


class _SafeRedirectHandler(HTTPRedirectHandler):
    def __init__(self, config: AutomationConfig) -> None:
        super().__init__()
        self._config = config

    def redirect_request(self, req, fp, code, msg, headers, newurl):  # noqa: ANN001
        # urllib may pass relative URLs here; normalize against the previous URL.
        absolute = urllib.parse.urljoin(req.full_url, str(newurl))
        parsed = urllib.parse.urlparse(absolute)
        if parsed.scheme not in ("http", "https"):
            raise HttpClientError("Only http/https are supported (redirect)")
        if not self._config.is_host_allowed(parsed.hostname or ""):
            raise HttpClientError(f"Host {parsed.hostname} is not in allowlist (redirect)")
        return super().redirect_request(req, fp, code, msg, headers, absolute)


def ensure_allowed(url: str, config: AutomationConfig) -> None:
    """Strict allowlist check for HTTP(S) fetches."""
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise HttpClientError("Only http/https are supported")
    if not config.is_host_allowed(parsed.hostname or ""):
        raise HttpClientError(f"Host {parsed.hostname} is not in allowlist")


def fetch_bytes(url: str, config: AutomationConfig) -> tuple[bytes, dict[str, str]]:
    """Download a URL into memory, refusing bodies larger than ``http_max_bytes``."""
    ensure_allowed(url, config)
    req = Request(url, headers={"User-Agent": "tab-automation/1.0"})
    try:
        ctx = ssl.create_default_context()
        opener = build_opener(_SafeRedirectHandler(config), HTTPSHandler(context=ctx))
        with opener.open(req, timeout=config.http_timeout) as resp:
            body = resp.read(config.http_max_bytes + 1)
            if len(body) > config.http_max_bytes:
                raise HttpClientError(f"Response exceeds {config.http_max_bytes} bytes")
            return body, dict(resp.headers)
    except (TimeoutError, URLError) as exc:
        raise HttpClientError(str(exc)) from exc


def http_get_json(url: str, timeout: float = 2.0) -> Any:
    """Fetch JSON from a local DevTools HTTP endpoint."""
    try:
        with urlopen(url, timeout=timeout) as resp:
            return json.loads(resp.read().decode())
    except (TimeoutError, URLError, ValueError) as e:
        raise HttpClientError(str(e)) from e
