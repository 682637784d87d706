"""Tests for the FastAPI application."""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import timedelta

import pytest
from conftest import FakeClock, ImageFactory
from httpx import ASGITransport, AsyncClient

from object_vault import __version__
from object_vault.app import create_app
from object_vault.config import Settings
from object_vault.storage.engine import StorageEngine
from object_vault.storage.errors import BlobStoreError


@pytest.fixture
async def client(engine: StorageEngine) -> AsyncIterator[AsyncClient]:
    app = create_app(Settings(retention_hours=24), engine=engine)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def upload(client: AsyncClient, data: bytes, filename: str, mime: str = "image/png"):
    return await client.post("/api/upload", files={"file": (filename, data, mime)})


class TestHealth:
    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": __version__}


class TestUpload:
    async def test_new_upload(self, client: AsyncClient, make_image: ImageFactory) -> None:
        response = await upload(client, make_image("PNG"), "cat.png")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["is_duplicate"] is False
        assert body["file_id"].startswith("obj_20260314_092653_")
        assert len(body["digest"]) == 64

    async def test_duplicate_upload(self, client: AsyncClient, make_image: ImageFactory) -> None:
        data = make_image("PNG")
        first = (await upload(client, data, "a.png")).json()
        second = (await upload(client, data, "b.png")).json()

        assert second["success"] is True
        assert second["is_duplicate"] is True
        assert second["file_id"] == first["file_id"]
        assert "duplicate" in second["message"]

    async def test_rejected_upload(self, client: AsyncClient) -> None:
        response = await upload(client, b"plain text", "notes.txt", "text/plain")

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert "not allowed" in body["error"]

    async def test_empty_upload(self, client: AsyncClient) -> None:
        response = await upload(client, b"", "empty.png")
        assert response.status_code == 400
        assert response.json()["error"] == "File is empty"


class TestStats:
    async def test_stats(self, client: AsyncClient, make_image: ImageFactory) -> None:
        a = make_image("PNG", color=(1, 2, 3))
        b = make_image("PNG", color=(4, 5, 6))
        await upload(client, a, "a.png")
        await upload(client, a, "a.png")
        await upload(client, b, "b.png")

        body = (await client.get("/api/stats")).json()
        assert body["unique_objects"] == 2
        assert body["total_uploads"] == 3
        assert body["total_size_bytes"] == len(a) + len(b)


class TestCleanup:
    async def test_cleanup_deletes_expired(
        self, client: AsyncClient, make_image: ImageFactory, clock: FakeClock
    ) -> None:
        await upload(client, make_image("PNG"), "a.png")
        clock.advance(timedelta(hours=25))

        body = (await client.post("/api/cleanup")).json()
        assert body["success"] is True
        assert body["deleted"] == 1
        assert body["remaining"] == 0


class TestObjects:
    async def test_get_and_delete(self, client: AsyncClient, make_image: ImageFactory) -> None:
        digest = (await upload(client, make_image("PNG"), "a.png")).json()["digest"]

        response = await client.get(f"/api/objects/{digest}")
        assert response.status_code == 200
        assert response.json()["original_name"] == "a.png"

        response = await client.delete(f"/api/objects/{digest}")
        assert response.json() == {"deleted": True}

        assert (await client.get(f"/api/objects/{digest}")).status_code == 404
        assert (await client.delete(f"/api/objects/{digest}")).json() == {"deleted": False}

    async def test_delete_failure_is_500(
        self,
        client: AsyncClient,
        engine: StorageEngine,
        make_image: ImageFactory,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        digest = (await upload(client, make_image("PNG"), "a.png")).json()["digest"]

        def broken_delete(relative_path: str) -> bool:
            raise BlobStoreError("read-only filesystem")

        monkeypatch.setattr(engine.blob_store, "delete", broken_delete)
        response = await client.delete(f"/api/objects/{digest}")

        assert response.status_code == 500
        assert "read-only filesystem" in response.json()["detail"]
        assert (await client.get(f"/api/objects/{digest}")).status_code == 200
