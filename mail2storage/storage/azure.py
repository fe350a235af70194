"""Azure Blob Storage backend.

The blocking azure-storage-blob client runs in a worker thread.
"""

from __future__ import annotations

import asyncio

import structlog
from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ServiceRequestError,
    ServiceResponseError,
)
from azure.storage.blob import BlobServiceClient

from ..config import AzureConfig
from ..errors import (
    ConfigError,
    PermanentStorageError,
    TransientStorageError,
    classify_http_status,
)
from .base import StorageBackend
from .target import StorageTarget

logger = structlog.get_logger()


class AzureStorage(StorageBackend):
    """Upload attachments as block blobs into one container."""

    def __init__(
        self,
        target: StorageTarget,
        config: AzureConfig,
        *,
        insecure: bool = False,
        service_client: BlobServiceClient | None = None,
    ) -> None:
        super().__init__(target, insecure=insecure)
        self._config = config
        self._service = service_client
        self._container = None

    async def start(self) -> None:
        if self._service is None:
            self._service = await asyncio.to_thread(self._create_service_client)
        self._container = self._service.get_container_client(self.target.location)
        logger.info("azure_storage_started", container=self.target.location)

    def _create_service_client(self) -> BlobServiceClient:
        kwargs = {"connection_verify": not self.insecure}
        if self._config.connection_string:
            return BlobServiceClient.from_connection_string(
                self._config.connection_string.get_secret_value(),
                **kwargs,
            )
        if self._config.account_url:
            credential = (
                self._config.credential.get_secret_value() if self._config.credential else None
            )
            return BlobServiceClient(self._config.account_url, credential=credential, **kwargs)
        raise ConfigError("azure storage needs AZURE_CONNECTION_STRING or AZURE_ACCOUNT_URL")

    async def stop(self) -> None:
        if self._service is not None:
            await asyncio.to_thread(self._service.close)
        self._container = None
        logger.info("azure_storage_stopped")

    async def put(self, key: str, data: bytes) -> None:
        assert self._container is not None, "Azure client not started"
        blob_name = self.target.object_key(key)
        try:
            await asyncio.to_thread(
                self._container.upload_blob,
                blob_name,
                data,
                overwrite=True,
            )
        except ClientAuthenticationError as exc:
            raise PermanentStorageError(f"azure upload {blob_name}: {exc.message}") from exc
        except HttpResponseError as exc:
            raise classify_http_status(
                exc.status_code or 0,
                f"azure upload {blob_name} failed with {exc.status_code}: {exc.message}",
            ) from exc
        except (ServiceRequestError, ServiceResponseError) as exc:
            raise TransientStorageError(f"azure upload {blob_name}: {exc}") from exc
        logger.debug(
            "azure_blob_written",
            container=self.target.location,
            blob=blob_name,
            size=len(data),
        )
