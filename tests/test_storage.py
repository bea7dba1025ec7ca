# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3 object store tests.

The aiobotocore client is replaced by mocks, so these tests check the
calls made against S3 and the mapping of failures onto ObjectStoreFailed.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from botocore.exceptions import ClientError
from conftest import S3_URL

from pg2s3.config import parse_s3_url
from pg2s3.exceptions import ObjectStoreFailed
from pg2s3 import storage
from pg2s3.storage import LIST_BATCH_SIZE, S3ObjectStore
from pg2s3.streams import MemoryStream


class _ClientContext:
    def __init__(self, client):
        self.client = client

    async def __aenter__(self):
        return self.client

    async def __aexit__(self, *exc_info):
        return False


class _Paginator:
    def __init__(self, pages):
        self.pages = pages
        self.kwargs = None

    def paginate(self, **kwargs):
        self.kwargs = kwargs
        return self._iterate()

    async def _iterate(self):
        for page in self.pages:
            yield page


class _Body:
    def __init__(self, data: bytes):
        self.stream = MemoryStream(data)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def read(self, size: int = -1) -> bytes:
        return await self.stream.read(size)


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def s3_client():
    client = MagicMock()
    client.put_object = AsyncMock()
    client.get_object = AsyncMock()
    client.delete_object = AsyncMock()
    client.head_bucket = AsyncMock()
    client.create_bucket = AsyncMock()
    client.create_multipart_upload = AsyncMock(return_value={"UploadId": "upload-1"})
    client.upload_part = AsyncMock(
        side_effect=lambda **kwargs: {"ETag": f"etag-{kwargs['PartNumber']}"}
    )
    client.complete_multipart_upload = AsyncMock()
    client.abort_multipart_upload = AsyncMock()
    return client


@pytest.fixture
def object_store(s3_client):
    session = MagicMock()
    session.create_client.return_value = _ClientContext(s3_client)
    return S3ObjectStore(parse_s3_url(S3_URL), session=session)


def test_client_uses_config(object_store):
    object_store._client()

    object_store.session.create_client.assert_called_once_with(
        "s3",
        region_name="us-east-1",
        endpoint_url="http://localhost:9000",
        aws_access_key_id="minioadmin",
        aws_secret_access_key="minioadmin",
    )


@pytest.mark.asyncio
async def test_upload(object_store, s3_client):
    size = await object_store.upload("a_2024-01-01T00:00:00Z.backup", MemoryStream(b"DUMP"))

    assert size == 4
    s3_client.put_object.assert_awaited_once_with(
        Bucket="pg2s3", Key="a_2024-01-01T00:00:00Z.backup", Body=b"DUMP"
    )


@pytest.mark.asyncio
async def test_upload_failure(object_store, s3_client):
    s3_client.put_object.side_effect = _client_error("AccessDenied", "PutObject")

    with pytest.raises(ObjectStoreFailed) as exc_info:
        await object_store.upload("a_2024-01-01T00:00:00Z.backup", MemoryStream(b"DUMP"))

    assert exc_info.value.details == {
        "bucket": "pg2s3",
        "name": "a_2024-01-01T00:00:00Z.backup",
    }

@pytest.mark.asyncio
async def test_large_upload_is_streamed_in_parts(monkeypatch, object_store, s3_client):
    monkeypatch.setattr(storage, "MULTIPART_CHUNK_SIZE", 4)
    name = "a_2024-01-01T00:00:00Z.backup"

    size = await object_store.upload(name, MemoryStream(b"AAAABBBBCC"))

    assert size == 10
    s3_client.put_object.assert_not_awaited()
    bodies = [call.kwargs["Body"] for call in s3_client.upload_part.await_args_list]
    assert bodies == [b"AAAA", b"BBBB", b"CC"]
    s3_client.complete_multipart_upload.assert_awaited_once_with(
        Bucket="pg2s3",
        Key=name,
        UploadId="upload-1",
        MultipartUpload={"Parts": [
            {"ETag": "etag-1", "PartNumber": 1},
            {"ETag": "etag-2", "PartNumber": 2},
            {"ETag": "etag-3", "PartNumber": 3},
        ]},
    )
    s3_client.abort_multipart_upload.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_part_aborts_multipart_upload(monkeypatch, object_store, s3_client):
    monkeypatch.setattr(storage, "MULTIPART_CHUNK_SIZE", 4)
    s3_client.upload_part.side_effect = _client_error("InternalError", "UploadPart")
    name = "a_2024-01-01T00:00:00Z.backup"

    with pytest.raises(ObjectStoreFailed):
        await object_store.upload(name, MemoryStream(b"AAAABBBB"))

    s3_client.abort_multipart_upload.assert_awaited_once_with(
        Bucket="pg2s3", Key=name, UploadId="upload-1"
    )
    s3_client.complete_multipart_upload.assert_not_awaited()



@pytest.mark.asyncio
async def test_download(object_store, s3_client):
    s3_client.get_object.return_value = {"Body": _Body(b"BACKUP")}
    sink = MemoryStream()

    size = await object_store.download("a_2024-01-01T00:00:00Z.backup", sink)

    assert size == 6
    assert sink.getvalue() == b"BACKUP"


@pytest.mark.asyncio
async def test_list_names_across_pages(object_store, s3_client):
    paginator = _Paginator([
        {"Contents": [{"Key": "a_2024-01-01T00:00:00Z.backup"}]},
        {"Contents": [{"Key": "a_2024-01-02T00:00:00Z.backup"}]},
        {},
    ])
    s3_client.get_paginator.return_value = paginator

    names = await object_store.list_names("a_")

    assert names == ["a_2024-01-01T00:00:00Z.backup", "a_2024-01-02T00:00:00Z.backup"]
    s3_client.get_paginator.assert_called_once_with("list_objects_v2")
    assert paginator.kwargs == {"Bucket": "pg2s3", "Prefix": "a_", "MaxKeys": LIST_BATCH_SIZE}


@pytest.mark.asyncio
async def test_delete(object_store, s3_client):
    await object_store.delete("a_2024-01-01T00:00:00Z.backup")

    s3_client.delete_object.assert_awaited_once_with(
        Bucket="pg2s3", Key="a_2024-01-01T00:00:00Z.backup"
    )


@pytest.mark.asyncio
async def test_delete_failure_names_object(object_store, s3_client):
    s3_client.delete_object.side_effect = _client_error("InternalError", "DeleteObject")

    with pytest.raises(ObjectStoreFailed, match="a_2024-01-01T00:00:00Z.backup"):
        await object_store.delete("a_2024-01-01T00:00:00Z.backup")


@pytest.mark.asyncio
async def test_check_unreachable_bucket(object_store, s3_client):
    s3_client.head_bucket.side_effect = _client_error("403", "HeadBucket")

    with pytest.raises(ObjectStoreFailed):
        await object_store.check()


@pytest.mark.asyncio
async def test_ensure_bucket_creates_missing_bucket(object_store, s3_client):
    s3_client.head_bucket.side_effect = _client_error("404", "HeadBucket")

    created = await object_store.ensure_bucket()

    assert created is True
    s3_client.create_bucket.assert_awaited_once_with(Bucket="pg2s3")


@pytest.mark.asyncio
async def test_ensure_bucket_existing(object_store, s3_client):
    created = await object_store.ensure_bucket()

    assert created is False
    s3_client.create_bucket.assert_not_awaited()


@pytest.mark.asyncio
async def test_ensure_bucket_access_denied(object_store, s3_client):
    s3_client.head_bucket.side_effect = _client_error("403", "HeadBucket")

    with pytest.raises(ObjectStoreFailed):
        await object_store.ensure_bucket()

    s3_client.create_bucket.assert_not_awaited()
