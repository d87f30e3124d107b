"""
Object store access for the bucket-sync engine.

The engine only depends on the small `ObjectStore` protocol defined here:
one listing call, one whole-object read and one whole-object write. The
`S3ObjectStore` implementation speaks to any S3-compatible service through
aiobotocore.
"""

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncIterator,
    Dict,
    List,
    Optional,
    Protocol,
    Tuple,
)

from aiobotocore.session import AioSession, get_session
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from bucket_sync.config import EndpointConfig
from bucket_sync.exceptions import StoreConnectionError

if TYPE_CHECKING:
    from aiobotocore.response import StreamingBody
    from types_aiobotocore_s3.client import S3Client
    from types_aiobotocore_s3.type_defs import (
        GetObjectOutputTypeDef,
        ListObjectsOutputTypeDef,
    )

logger: logging.Logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ObjectRecord:
    """
    One entry of a bucket listing.

    Attributes:
        key (str): The object key, unique within its bucket.
        size (int): Size in bytes as reported by the listing.
        last_modified (datetime, optional): Modification time as reported
            by the listing.
    """

    key: str
    size: int = 0
    last_modified: Optional[datetime] = None


class ObjectStore(Protocol):
    """The capabilities the replication engine needs from a bucket."""

    async def list_objects(
        self, prefix: str, cursor: str, page_size: int
    ) -> Tuple[List[ObjectRecord], str]:
        """Return one page of records after `cursor` and the next cursor."""
        ...

    async def get_object(self, key: str) -> bytes:
        """Return the full content of `key`."""
        ...

    async def put_object(self, key: str, data: bytes) -> None:
        """Store `data` under `key`, overwriting any existing object."""
        ...


class S3ObjectStore:
    """An `ObjectStore` backed by one bucket of an S3-compatible service."""

    def __init__(self, client: "S3Client", bucket: str) -> None:
        """
        Args:
            client (S3Client): An open aiobotocore S3 client.
            bucket (str): The bucket all operations target.
        """
        self._client: "S3Client" = client
        self.bucket: str = bucket

    async def list_objects(
        self, prefix: str, cursor: str, page_size: int
    ) -> Tuple[List[ObjectRecord], str]:
        """
        Lists one page of objects using marker-based pagination.

        Args:
            prefix (str): Only keys starting with this prefix are listed.
            cursor (str): The marker to list after; "" starts at the beginning.
            page_size (int): The maximum number of records to return.

        Returns:
            Tuple[List[ObjectRecord], str]: The records and the next marker,
                which is "" when the listing is exhausted.
        """
        params: Dict[str, Any] = {"Bucket": self.bucket, "MaxKeys": page_size}
        if prefix:
            params["Prefix"] = prefix
        if cursor:
            params["Marker"] = cursor

        response: "ListObjectsOutputTypeDef" = await self._client.list_objects(
            **params
        )
        records: List[ObjectRecord] = [
            ObjectRecord(
                key=content["Key"],
                size=content.get("Size", 0),
                last_modified=content.get("LastModified"),
            )
            for content in response.get("Contents", [])
        ]

        next_cursor: str = ""
        if response.get("IsTruncated"):
            # NextMarker is only returned when a delimiter is used
            next_cursor = response.get("NextMarker") or (
                records[-1].key if records else ""
            )
        return records, next_cursor

    async def get_object(self, key: str) -> bytes:
        """
        Reads the whole object into memory.

        Args:
            key (str): The object key.

        Returns:
            bytes: The object content.
        """
        response: "GetObjectOutputTypeDef" = await self._client.get_object(
            Bucket=self.bucket, Key=key
        )
        stream: "StreamingBody" = response["Body"]
        async with stream:
            return await stream.read()

    async def put_object(self, key: str, data: bytes) -> None:
        """
        Writes the object, overwriting any existing one.

        Args:
            key (str): The object key.
            data (bytes): The object content.
        """
        # Send an explicit Content-Length; some S3 providers reject chunked
        # uploads.
        await self._client.put_object(
            Bucket=self.bucket, Key=key, Body=data, ContentLength=len(data)
        )


def default_boto_config(max_pool_connections: int) -> BotoConfig:
    """
    Builds the botocore client configuration shared by both stores.

    Args:
        max_pool_connections (int): Size of the HTTP connection pool.

    Returns:
        BotoConfig: The client configuration.
    """
    # SigV4 without payload signing is the configuration most non-AWS
    # S3 providers accept.
    return BotoConfig(
        signature_version="s3v4",
        max_pool_connections=max_pool_connections,
        retries={"max_attempts": 3, "mode": "standard"},
        s3={"payload_signing_enabled": False},
    )


@asynccontextmanager
async def open_store(
    endpoint: EndpointConfig,
    boto_config: BotoConfig,
    session: Optional[AioSession] = None,
) -> AsyncIterator[S3ObjectStore]:
    """
    Opens an S3 client for `endpoint` and verifies that its bucket is reachable.

    Args:
        endpoint (EndpointConfig): Connection settings for the bucket.
        boto_config (BotoConfig): The botocore client configuration.
        session (AioSession, optional): The session to create the client from.

    Yields:
        S3ObjectStore: A store bound to the configured bucket.

    Raises:
        StoreConnectionError: If the client cannot be created or the bucket
            cannot be reached.
    """
    session = session or get_session()
    async with AsyncExitStack() as stack:
        try:
            client: "S3Client" = await stack.enter_async_context(
                session.create_client(
                    "s3", **endpoint.as_boto_dict(), config=boto_config
                )
            )
            await client.head_bucket(Bucket=endpoint.bucket)
        except (BotoCoreError, ClientError, ValueError) as e:
            raise StoreConnectionError(
                f"Bucket '{endpoint.bucket}' at '{endpoint.endpoint_url}' "
                f"is not reachable: {e}"
            ) from e
        logger.debug(f"Connected to bucket '{endpoint.bucket}'.")
        yield S3ObjectStore(client, endpoint.bucket)
