# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pg2s3 Storage - Object store for backups.

Backups are stored as whole objects in a single bucket. Every write is a
single PutObject or a multipart upload that is aborted on failure, so an
interrupted upload never leaves a partial backup behind.
"""

from typing import Any, List, Protocol

import structlog
from botocore.exceptions import ClientError

from pg2s3.config import S3Config
from pg2s3.exceptions import ObjectStoreFailed
from pg2s3.streams import DEFAULT_CHUNK_SIZE, AsyncReader, AsyncWriter, read_exactly

logger = structlog.get_logger()

# Batch size for S3 listing
LIST_BATCH_SIZE = 1000

# Part size for multipart uploads (S3 requires at least 5MB for all but the last)
MULTIPART_CHUNK_SIZE = 8 * 1024 * 1024


class ObjectStore(Protocol):
    """Put/get/list/delete of named objects inside one bucket."""

    async def upload(self, name: str, source: AsyncReader) -> int:
        ...

    async def download(self, name: str, sink: AsyncWriter) -> int:
        ...

    async def list_names(self, prefix: str = "") -> List[str]:
        ...

    async def delete(self, name: str) -> None:
        ...


class S3ObjectStore:
    """
    ObjectStore backed by S3 (or any S3-compatible service such as MinIO).

    A client is created per operation from a shared aiobotocore session.

    Args:
        s3: Connection details and bucket
        session: aiobotocore session (created when not given)
    """

    def __init__(self, s3: S3Config, session: Any = None):
        if session is None:
            from aiobotocore.session import get_session

            session = get_session()
        self.s3 = s3
        self.session = session

    @property
    def bucket(self) -> str:
        return self.s3.bucket_name

    def _client(self) -> Any:
        return self.session.create_client(
            "s3",
            region_name=self.s3.region,
            endpoint_url=self.s3.endpoint_url,
            aws_access_key_id=self.s3.access_key_id,
            aws_secret_access_key=self.s3.secret_access_key,
        )

    def _failed(self, action: str, error: Exception, name: str | None = None) -> ObjectStoreFailed:
        details = {"bucket": self.bucket}
        if name is not None:
            details["name"] = name
        logger.error(f"s3_{action.replace(' ', '_')}_failed", error=str(error), **details)
        target = f" {name}" if name is not None else ""
        return ObjectStoreFailed(f"Failed to {action}{target}: {error}", details=details)

    async def check(self) -> None:
        """Verify the bucket is reachable with the configured credentials."""
        try:
            async with self._client() as s3_client:
                await s3_client.head_bucket(Bucket=self.bucket)
        except Exception as e:
            raise self._failed("access bucket", e) from e

    async def ensure_bucket(self) -> bool:
        """
        Create the bucket if it does not exist.

        Returns:
            True if the bucket was created
        """
        try:
            async with self._client() as s3_client:
                try:
                    await s3_client.head_bucket(Bucket=self.bucket)
                    return False
                except ClientError as e:
                    code = e.response.get("Error", {}).get("Code")
                    if code not in ("404", "NoSuchBucket", "NotFound"):
                        raise
                await s3_client.create_bucket(Bucket=self.bucket)
                logger.info("s3_bucket_created", bucket=self.bucket)
                return True
        except Exception as e:
            raise self._failed("create bucket", e) from e

    async def upload(self, name: str, source: AsyncReader) -> int:
        """
        Stream source into the object name.

        Sources up to MULTIPART_CHUNK_SIZE go up in one PutObject. Larger
        ones use a multipart upload, which only becomes visible once it is
        completed and is aborted on any failure.
        """
        try:
            first = await read_exactly(source, MULTIPART_CHUNK_SIZE)
            async with self._client() as s3_client:
                if len(first) < MULTIPART_CHUNK_SIZE:
                    await s3_client.put_object(Bucket=self.bucket, Key=name, Body=first)
                    total = len(first)
                else:
                    total = await self._multipart_upload(s3_client, name, first, source)
        except Exception as e:
            raise self._failed("upload", e, name) from e

        logger.info("s3_object_uploaded", bucket=self.bucket, name=name, size=total)
        return total

    async def _multipart_upload(
        self,
        s3_client: Any,
        name: str,
        first: bytes,
        source: AsyncReader,
    ) -> int:
        upload = await s3_client.create_multipart_upload(Bucket=self.bucket, Key=name)
        upload_id = upload["UploadId"]

        parts: List[dict] = []
        total = 0
        chunk = first
        try:
            while chunk:
                part_number = len(parts) + 1
                response = await s3_client.upload_part(
                    Bucket=self.bucket,
                    Key=name,
                    UploadId=upload_id,
                    PartNumber=part_number,
                    Body=chunk,
                )
                parts.append({"ETag": response["ETag"], "PartNumber": part_number})
                total += len(chunk)
                chunk = await read_exactly(source, MULTIPART_CHUNK_SIZE)

            await s3_client.complete_multipart_upload(
                Bucket=self.bucket,
                Key=name,
                UploadId=upload_id,
                MultipartUpload={"Parts": parts},
            )
        except BaseException:
            logger.warning("s3_multipart_upload_aborted", bucket=self.bucket, name=name)
            await s3_client.abort_multipart_upload(
                Bucket=self.bucket, Key=name, UploadId=upload_id
            )
            raise

        logger.debug("s3_multipart_upload_completed", name=name, parts=len(parts))
        return total

    async def download(self, name: str, sink: AsyncWriter) -> int:
        total = 0
        try:
            async with self._client() as s3_client:
                response = await s3_client.get_object(Bucket=self.bucket, Key=name)
                async with response["Body"] as stream:
                    while True:
                        chunk = await stream.read(DEFAULT_CHUNK_SIZE)
                        if not chunk:
                            break
                        await sink.write(chunk)
                        total += len(chunk)
        except Exception as e:
            raise self._failed("download", e, name) from e

        logger.info("s3_object_downloaded", bucket=self.bucket, name=name, size=total)
        return total

    async def list_names(self, prefix: str = "") -> List[str]:
        names: List[str] = []
        try:
            async with self._client() as s3_client:
                paginator = s3_client.get_paginator("list_objects_v2")
                async for page in paginator.paginate(
                    Bucket=self.bucket,
                    Prefix=prefix,
                    MaxKeys=LIST_BATCH_SIZE,
                ):
                    for obj in page.get("Contents", []):
                        names.append(obj["Key"])
        except Exception as e:
            raise self._failed("list objects", e) from e

        logger.debug("s3_objects_listed", bucket=self.bucket, prefix=prefix, total=len(names))
        return names

    async def delete(self, name: str) -> None:
        try:
            async with self._client() as s3_client:
                await s3_client.delete_object(Bucket=self.bucket, Key=name)
        except Exception as e:
            raise self._failed("delete", e, name) from e

        logger.info("s3_object_deleted", bucket=self.bucket, name=name)
