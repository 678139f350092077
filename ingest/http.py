"""HTTP session factory for the remote item API."""

from __future__ import annotations

import logging

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

log = logging.getLogger(__name__)

# ── Defaults ─────────────────────────────────────────────────────────
_TIMEOUT = 10  # seconds
_MAX_RETRIES = 0  # a failed item is simply absent for this sync
_USER_AGENT = "hn_reader/1.0"


def build_session(max_retries: int = _MAX_RETRIES, pool_size: int = 10) -> requests.Session:
    """Return a requests.Session with an explicit retry policy and pool size."""
    session = requests.Session()
    retry = Retry(
        total=max_retries,
        connect=max_retries,
        read=max_retries,
        status=max_retries,
        allowed_methods=["GET", "HEAD"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update({"User-Agent": _USER_AGENT, "Accept": "application/json"})
    return session


def fetch(
    session: requests.Session,
    url: str,
    params: dict | None = None,
    timeout: float = _TIMEOUT,
) -> requests.Response:
    """GET with debug logging.  Transport errors propagate to the caller."""
    log.debug("HTTP GET %s", url)
    resp = session.get(url, params=params, timeout=timeout)
    if resp.status_code >= 400:
        log.warning("HTTP %d for %s", resp.status_code, url)
    return resp
