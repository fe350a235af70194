"""S3-compatible object storage.

All boto3 calls are wrapped with ``asyncio.to_thread()`` to avoid blocking.
"""

from __future__ import annotations

import asyncio

import boto3
import structlog
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from ..config import S3Config
from ..errors import (
    PermanentStorageError,
    StorageError,
    TransientStorageError,
    classify_http_status,
)
from .base import StorageBackend
from .target import StorageTarget

logger = structlog.get_logger()

_TRANSIENT_CODES = {
    "InternalError",
    "RequestTimeout",
    "RequestTimeTooSkewed",
    "ServiceUnavailable",
    "SlowDown",
    "Throttling",
}

_TRANSIENT_BOTO_ERRORS = (
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)


class S3Storage(StorageBackend):
    """Upload attachments with ``put_object`` to ``bucket/prefix/key``."""

    def __init__(
        self,
        target: StorageTarget,
        config: S3Config,
        *,
        insecure: bool = False,
    ) -> None:
        super().__init__(target, insecure=insecure)
        self._config = config
        self._client = None  # type: ignore[assignment]

    async def start(self) -> None:
        """Create the boto3 S3 client."""
        kwargs: dict = {"region_name": self._config.region}
        if self._config.endpoint_url:
            kwargs["endpoint_url"] = self._config.endpoint_url
        if self._config.access_key_id and self._config.secret_access_key:
            kwargs["aws_access_key_id"] = self._config.access_key_id
            kwargs["aws_secret_access_key"] = self._config.secret_access_key.get_secret_value()
        if self.insecure:
            kwargs["verify"] = False
        # retries are handled by our own backoff policy
        kwargs["config"] = BotoConfig(retries={"total_max_attempts": 1, "mode": "standard"})
        self._client = await asyncio.to_thread(boto3.client, "s3", **kwargs)
        logger.info("s3_storage_started", bucket=self.target.location)

    async def stop(self) -> None:
        """Clean up the boto3 client."""
        self._client = None
        logger.info("s3_storage_stopped")

    async def put(self, key: str, data: bytes) -> None:
        assert self._client is not None, "S3 client not started"
        object_key = self.target.object_key(key)
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.target.location,
                Key=object_key,
                Body=data,
            )
        except ClientError as exc:
            raise _classify_client_error(exc) from exc
        except _TRANSIENT_BOTO_ERRORS as exc:
            raise TransientStorageError(f"s3 put {object_key}: {exc}") from exc
        except BotoCoreError as exc:
            raise PermanentStorageError(f"s3 put {object_key}: {exc}") from exc
        logger.debug(
            "s3_object_written",
            bucket=self.target.location,
            key=object_key,
            size=len(data),
        )


def _classify_client_error(exc: ClientError) -> StorageError:
    error = exc.response.get("Error", {})
    code = error.get("Code", "")
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
    message = f"s3 {code or 'error'} ({status}): {error.get('Message', exc)}"
    if code in _TRANSIENT_CODES:
        return TransientStorageError(message)
    return classify_http_status(status, message)
