import os
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from gridfs import AsyncGridFSBucket
from gridfs.errors import NoFile
from pymongo.errors import PyMongoError, ServerSelectionTimeoutError

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import config
from app.services.chunk_store import GridFSStore, StoreReadError, StoreWriteError


def make_grid_in(file_id=None):
    grid_in = MagicMock()
    grid_in._id = file_id or ObjectId()
    grid_in.write = AsyncMock()
    grid_in.close = AsyncMock()
    grid_in.abort = AsyncMock()
    return grid_in


def make_grid_out(chunks):
    grid_out = MagicMock()
    grid_out.readchunk = AsyncMock(side_effect=list(chunks) + [b""])
    grid_out.close = AsyncMock()
    return grid_out


async def collect(chunks):
    return [chunk async for chunk in chunks]


@pytest.mark.asyncio
async def test_write_returns_store_id():
    file_id = ObjectId()
    grid_in = make_grid_in(file_id)
    bucket = MagicMock()
    bucket.open_upload_stream.return_value = grid_in
    store = GridFSStore(bucket)

    result = await store.write("abc.png", b"payload")

    assert result == str(file_id)
    assert len(result) == 24
    bucket.open_upload_stream.assert_called_once_with("abc.png")
    grid_in.write.assert_awaited_once_with(b"payload")
    grid_in.close.assert_awaited_once()
    grid_in.abort.assert_not_awaited()


@pytest.mark.asyncio
async def test_write_failure_aborts_and_raises():
    grid_in = make_grid_in()
    grid_in.close = AsyncMock(side_effect=PyMongoError("write concern failed"))
    bucket = MagicMock()
    bucket.open_upload_stream.return_value = grid_in
    store = GridFSStore(bucket)

    with pytest.raises(StoreWriteError, match="write concern failed"):
        await store.write("abc.png", b"payload")

    grid_in.abort.assert_awaited_once()


@pytest.mark.asyncio
async def test_write_failure_when_abort_fails():
    grid_in = make_grid_in()
    grid_in.write = AsyncMock(side_effect=PyMongoError("connection reset"))
    grid_in.abort = AsyncMock(side_effect=PyMongoError("still down"))
    bucket = MagicMock()
    bucket.open_upload_stream.return_value = grid_in
    store = GridFSStore(bucket)

    with pytest.raises(StoreWriteError, match="connection reset"):
        await store.write("abc.png", b"payload")


@pytest.mark.asyncio
async def test_open_download_streams_chunks():
    grid_out = make_grid_out([b"first", b"second", b"third"])
    bucket = MagicMock()
    bucket.open_download_stream_by_name = AsyncMock(return_value=grid_out)
    store = GridFSStore(bucket)

    chunks = await store.open_download("abc.png")

    assert await collect(chunks) == [b"first", b"second", b"third"]
    bucket.open_download_stream_by_name.assert_awaited_once_with("abc.png")
    grid_out.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_open_download_missing_file():
    bucket = MagicMock()
    bucket.open_download_stream_by_name = AsyncMock(
        side_effect=NoFile("no file in gridfs collection with filename 'missing.png'")
    )
    store = GridFSStore(bucket)

    with pytest.raises(StoreReadError, match="missing.png"):
        await store.open_download("missing.png")


@pytest.mark.asyncio
async def test_open_download_driver_error():
    bucket = MagicMock()
    bucket.open_download_stream_by_name = AsyncMock(
        side_effect=ServerSelectionTimeoutError("localhost:27017: connection refused")
    )
    store = GridFSStore(bucket)

    with pytest.raises(StoreReadError):
        await store.open_download("abc.png")


@pytest.mark.asyncio
async def test_read_error_mid_stream_closes_stream():
    grid_out = MagicMock()
    grid_out.readchunk = AsyncMock(side_effect=[b"first", PyMongoError("cursor killed")])
    grid_out.close = AsyncMock()
    bucket = MagicMock()
    bucket.open_download_stream_by_name = AsyncMock(return_value=grid_out)
    store = GridFSStore(bucket)

    chunks = await store.open_download("abc.png")

    assert await chunks.__anext__() == b"first"
    with pytest.raises(StoreReadError, match="cursor killed"):
        await chunks.__anext__()
    grid_out.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_ping():
    database = MagicMock()
    database.command = AsyncMock(return_value={"ok": 1.0})
    store = GridFSStore(MagicMock(), database=database)

    assert await store.ping() is True
    database.command.assert_awaited_once_with("ping")


@pytest.mark.asyncio
async def test_initialize_logs_and_continues_when_unreachable():
    database = MagicMock()
    database.command = AsyncMock(side_effect=ServerSelectionTimeoutError("no servers"))
    store = GridFSStore(MagicMock(), database=database)

    assert await store.initialize() is False


@pytest.mark.asyncio
async def test_ping_without_database():
    store = GridFSStore(MagicMock())
    assert await store.ping() is False


@pytest.mark.asyncio
async def test_from_config(monkeypatch):
    monkeypatch.setattr(config, "MONGO_URI", "mongodb://localhost:27017/gateway_test")
    monkeypatch.setattr(config, "GRIDFS_BUCKET", "test_uploads")

    store = GridFSStore.from_config()
    try:
        assert isinstance(store.bucket, AsyncGridFSBucket)
        assert store.database.name == "gateway_test"
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_from_config_default_database(monkeypatch):
    monkeypatch.setattr(config, "MONGO_URI", "mongodb://localhost:27017")
    monkeypatch.setattr(config, "MONGO_DB", "fallback_db")

    store = GridFSStore.from_config()
    try:
        assert store.database.name == "fallback_db"
    finally:
        await store.close()
