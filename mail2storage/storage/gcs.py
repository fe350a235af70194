"""Google Cloud Storage backend.

The blocking google-cloud-storage client runs in a worker thread.
"""

from __future__ import annotations

import asyncio

import google.auth
import requests
import structlog
from google.api_core.exceptions import GoogleAPICallError
from google.auth.exceptions import GoogleAuthError, TransportError
from google.auth.transport.requests import AuthorizedSession
from google.cloud import storage as gcs
from google.oauth2 import service_account

from ..config import GcsConfig
from ..errors import (
    PermanentStorageError,
    TransientStorageError,
    classify_http_status,
)
from .base import StorageBackend
from .target import StorageTarget

logger = structlog.get_logger()


class GcsStorage(StorageBackend):
    """Upload attachments as objects into one bucket."""

    def __init__(
        self,
        target: StorageTarget,
        config: GcsConfig,
        *,
        insecure: bool = False,
        client: gcs.Client | None = None,
    ) -> None:
        super().__init__(target, insecure=insecure)
        self._config = config
        self._client = client
        self._bucket = None

    async def start(self) -> None:
        if self._client is None:
            self._client = await asyncio.to_thread(self._create_client)
        self._bucket = self._client.bucket(self.target.location)
        logger.info("gcs_storage_started", bucket=self.target.location)

    def _create_client(self) -> gcs.Client:
        if self._config.credentials_file:
            credentials = service_account.Credentials.from_service_account_file(
                self._config.credentials_file,
                scopes=gcs.Client.SCOPE,
            )
        else:
            credentials, _ = google.auth.default(scopes=gcs.Client.SCOPE)
        session = AuthorizedSession(credentials)
        session.verify = not self.insecure
        return gcs.Client(
            project=self._config.project,
            credentials=credentials,
            _http=session,
        )

    async def stop(self) -> None:
        if self._client is not None:
            await asyncio.to_thread(self._client.close)
        self._bucket = None
        logger.info("gcs_storage_stopped")

    async def put(self, key: str, data: bytes) -> None:
        assert self._bucket is not None, "GCS client not started"
        name = self.target.object_key(key)
        blob = self._bucket.blob(name)
        try:
            await asyncio.to_thread(blob.upload_from_string, data)
        except GoogleAPICallError as exc:
            raise classify_http_status(
                exc.code or 0,
                f"gcs upload {name} failed with {exc.code}: {exc.message}",
            ) from exc
        except (TransportError, requests.ConnectionError, requests.Timeout) as exc:
            raise TransientStorageError(f"gcs upload {name}: {exc}") from exc
        except GoogleAuthError as exc:
            raise PermanentStorageError(f"gcs upload {name}: {exc}") from exc
        logger.debug("gcs_object_written", bucket=self.target.location, name=name, size=len(data))
