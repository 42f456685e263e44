from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.core.exceptions import DuplicateFileNameError, StorageError
from app.services.storage_service import StorageService


def response(status_code, json=None, text=""):
    request = httpx.Request("POST", "https://test.supabase.co/storage/v1")
    if json is not None:
        return httpx.Response(status_code, json=json, request=request)
    return httpx.Response(status_code, text=text, request=request)


@pytest.fixture
def storage():
    return StorageService(bucket="documents")


@pytest.mark.asyncio
async def test_upload_never_overwrites(storage):
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as post:
        post.return_value = response(200, json={"Key": "documents/org/staging/darf.pdf"})

        await storage.upload_file(b"%PDF", "org/staging/darf.pdf", content_type="application/pdf")

    headers = post.call_args.kwargs["headers"]
    assert headers["x-upsert"] == "false"
    assert post.call_args.args[0].endswith("/object/documents/org/staging/darf.pdf")


@pytest.mark.asyncio
async def test_upload_conflict_is_duplicate(storage):
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as post:
        post.return_value = response(400, text='{"error": "Duplicate", "message": "The resource already exists"}')

        with pytest.raises(DuplicateFileNameError):
            await storage.upload_file(b"%PDF", "org/staging/darf.pdf")


@pytest.mark.asyncio
async def test_move_conflict_is_duplicate(storage):
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as post:
        post.return_value = response(409, text="already exists")

        with pytest.raises(DuplicateFileNameError):
            await storage.move_file("org/staging/darf.pdf", "org/client/darf.pdf")

    body = post.call_args.kwargs["json"]
    assert body == {
        "bucketId": "documents",
        "sourceKey": "org/staging/darf.pdf",
        "destinationKey": "org/client/darf.pdf",
    }


@pytest.mark.asyncio
async def test_move_network_error_is_storage_error(storage):
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as post:
        post.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(StorageError):
            await storage.move_file("org/staging/darf.pdf", "org/client/darf.pdf")


@pytest.mark.asyncio
async def test_file_exists_matches_exact_name(storage):
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as post:
        post.return_value = response(200, json=[{"name": "darf_1.pdf"}, {"name": "darf.pdf"}])

        assert await storage.file_exists("org/client/darf.pdf") is True

    assert post.call_args.kwargs["json"]["prefix"] == "org/client"
    assert post.call_args.kwargs["json"]["search"] == "darf.pdf"


@pytest.mark.asyncio
async def test_signed_url_is_absolute(storage):
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as post:
        post.return_value = response(200, json={"signedURL": "/object/sign/documents/a.pdf?token=t"})

        url = await storage.create_download_url("a.pdf")

    assert url == "https://test.supabase.co/storage/v1/object/sign/documents/a.pdf?token=t"


@pytest.mark.asyncio
async def test_signed_url_missing_in_response(storage):
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as post:
        post.return_value = response(200, json={})

        with pytest.raises(StorageError):
            await storage.create_download_url("a.pdf")
