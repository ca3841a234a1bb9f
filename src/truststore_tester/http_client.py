"""HTTP client factory."""

from typing import Optional

import httpx

from truststore_tester import __version__
from truststore_tester.config import DOWNLOAD_CONNECT_TIMEOUT, DOWNLOAD_TIMEOUT


def create_http_client(
    timeout: float = DOWNLOAD_TIMEOUT,
    connect_timeout: float = DOWNLOAD_CONNECT_TIMEOUT,
    proxy: Optional[str] = None,
    follow_redirects: bool = True,
) -> httpx.Client:
    """Create an httpx client with the tool's timeouts and user agent."""
    return httpx.Client(
        timeout=httpx.Timeout(timeout, connect=connect_timeout),
        follow_redirects=follow_redirects,
        proxy=proxy,
        headers={"User-Agent": f"truststore-tester/{__version__}"},
    )
