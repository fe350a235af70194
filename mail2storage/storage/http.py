"""HTTP / WebDAV storage using httpx."""

from __future__ import annotations

from urllib.parse import quote

import httpx
import structlog

from ..config import HttpConfig
from ..errors import (
    PermanentStorageError,
    TransientStorageError,
    classify_http_status,
)
from .base import StorageBackend
from .target import StorageTarget

logger = structlog.get_logger()


class HttpStorage(StorageBackend):
    """PUT attachments to ``<base url>/<key>``.

    When the server answers ``409 Conflict`` (missing parent collection),
    the parent collections are created with ``MKCOL`` and the PUT is sent
    once more.
    """

    def __init__(
        self,
        target: StorageTarget,
        config: HttpConfig,
        *,
        insecure: bool = False,
    ) -> None:
        super().__init__(target, insecure=insecure)
        self._config = config
        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        auth = None
        if self._config.username:
            password = self._config.password.get_secret_value() if self._config.password else ""
            auth = httpx.BasicAuth(self._config.username, password)
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self._config.timeout_seconds),
            verify=not self.insecure,
            auth=auth,
        )
        logger.info("http_storage_started", base_url=self.target.location)

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("http_storage_stopped")

    async def put(self, key: str, data: bytes) -> None:
        assert self._client is not None, "HTTP client not started"
        object_key = self.target.object_key(key)
        response = await self._send("PUT", object_key, content=data)

        if response.status_code == 409:
            await self._make_collections(object_key)
            response = await self._send("PUT", object_key, content=data)

        if response.is_success:
            logger.debug("http_object_written", url=str(response.url), status=response.status_code)
            return
        raise classify_http_status(
            response.status_code,
            f"PUT {response.url} failed with {response.status_code}",
        )

    async def _make_collections(self, object_key: str) -> None:
        parents = object_key.split("/")[:-1]
        for depth in range(1, len(parents) + 1):
            path = "/".join(parents[:depth]) + "/"
            response = await self._send("MKCOL", path)
            # 405: collection already exists
            if not response.is_success and response.status_code != 405:
                raise classify_http_status(
                    response.status_code,
                    f"MKCOL {response.url} failed with {response.status_code}",
                )

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        assert self._client is not None
        url = f"{self.target.location}/{quote(path)}"
        try:
            return await self._client.request(method, url, **kwargs)
        except (httpx.UnsupportedProtocol, httpx.InvalidURL) as exc:
            raise PermanentStorageError(f"{method} {url}: {exc}") from exc
        except httpx.TransportError as exc:
            raise TransientStorageError(f"{method} {url}: {exc}") from exc
