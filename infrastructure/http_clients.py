"""
HTTP Clients - instance status, wire transfer, runner jar check.

All three speak plain HTTP through httpx. None of them raise on the
"not ready yet" cases that polling loops expect; the transfer client returns
the status code and body and leaves the verdict to the caller.

Exports:
    HttpServerStatusClient: GET the status JSON an instance serves
    HttpGraphTransferClient: POST a bundle to /routers/<router_id>
    HttpUrlChecker: HEAD probe for the runner jar
"""

import os
from typing import Any, Dict, Iterator, Optional, Tuple

import httpx

from infrastructure.interface_repository import (
    IGraphTransferClient,
    IServerStatusClient,
    IUrlChecker,
)
from util_logger import LoggerFactory, ComponentType

logger = LoggerFactory.create_logger(ComponentType.REPOSITORY, "HttpClients")

UPLOAD_CHUNK_BYTES = 1024 * 1024


class HttpServerStatusClient(IServerStatusClient):
    """Reads ``status.json`` from an instance's web root."""

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout

    def fetch_status(self, url: str) -> Optional[Dict[str, Any]]:
        try:
            with httpx.Client(timeout=self.timeout, follow_redirects=True) as client:
                response = client.get(url)
        except httpx.TimeoutException:
            logger.debug(f"Status request timed out: {url}")
            return None
        except httpx.RequestError as e:
            logger.debug(f"Status request failed: {url} ({e})")
            return None

        if response.status_code != 200:
            logger.debug(f"Status file not served yet: {url} → {response.status_code}")
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning(f"⚠️ Malformed status JSON from {url}")
            return None
        return data if isinstance(data, dict) else None


def _iter_file(path: str) -> Iterator[bytes]:
    with open(path, 'rb') as f:
        while True:
            chunk = f.read(UPLOAD_CHUNK_BYTES)
            if not chunk:
                break
            yield chunk


class HttpGraphTransferClient(IGraphTransferClient):
    """
    Wire delivery of a bundle to a running routing server.

    The body is streamed from disk with an explicit Content-Length so the
    server never sees a chunked upload.
    """

    def __init__(self, timeout: float = 3600.0):
        self.timeout = timeout

    def post_bundle(self, url: str, bundle_path: str) -> Tuple[int, str]:
        size = os.path.getsize(bundle_path)
        headers = {
            'Content-Type': 'application/zip',
            'Content-Length': str(size),
        }
        logger.info(f"POST {size} bytes → {url}")
        # Connect fails fast; the server builds the graph before answering
        timeout = httpx.Timeout(self.timeout, connect=30.0)
        with httpx.Client(timeout=timeout) as client:
            response = client.post(url, content=_iter_file(bundle_path), headers=headers)
        return response.status_code, response.text


class HttpUrlChecker(IUrlChecker):
    """HEAD probe; only a 200 counts as available."""

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout

    def is_available(self, url: str) -> bool:
        try:
            with httpx.Client(timeout=self.timeout, follow_redirects=True) as client:
                response = client.head(url)
        except httpx.RequestError as e:
            logger.warning(f"⚠️ HEAD {url} failed: {e}")
            return False
        return response.status_code == 200
