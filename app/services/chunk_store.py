from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

from gridfs import AsyncGridFSBucket
from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError

import config
from logger_config import setup_logger

logger = setup_logger()


class StoreError(Exception):
    """Base class for chunked store failures."""


class StoreWriteError(StoreError):
    """The store reported an error while persisting a stream."""


class StoreReadError(StoreError):
    """The store could not open or read a stream."""


class ChunkStore(ABC):
    """Persists byte payloads in fixed-size chunks, addressed by filename."""

    @abstractmethod
    async def write(self, filename: str, data: bytes) -> str:
        """Store data under filename and return the id assigned by the store."""

    @abstractmethod
    async def open_download(self, filename: str) -> AsyncIterator[bytes]:
        """Open a read stream for filename.

        Raises StoreReadError when the stream cannot be opened, before any
        chunk is produced. The returned iterator yields the payload chunk by
        chunk.
        """

    async def ping(self) -> bool:
        return True

    async def close(self):
        pass


class GridFSStore(ChunkStore):
    def __init__(self, bucket: AsyncGridFSBucket, database=None, client: Optional[AsyncMongoClient] = None):
        self.bucket = bucket
        self.database = database
        self.client = client

    @classmethod
    def from_config(cls) -> "GridFSStore":
        """Build the store from config. No connection is made until first use."""
        client = AsyncMongoClient(config.MONGO_URI, serverSelectionTimeoutMS=config.MONGO_TIMEOUT_MS)
        database = client.get_default_database(default=config.MONGO_DB)
        bucket = AsyncGridFSBucket(
            database,
            bucket_name=config.GRIDFS_BUCKET,
            chunk_size_bytes=config.CHUNK_SIZE_BYTES,
        )
        return cls(bucket, database=database, client=client)

    async def initialize(self) -> bool:
        """Check the connection. A failure is logged, not raised."""
        logger.info(f"Connecting to MongoDB, bucket '{config.GRIDFS_BUCKET}'...")
        if await self.ping():
            logger.info("MongoDB connection established, GridFS bucket ready")
            return True
        logger.error("MongoDB connection failed; requests will fail until it becomes reachable")
        return False

    async def ping(self) -> bool:
        if self.database is None:
            return False
        try:
            await self.database.command("ping")
            return True
        except PyMongoError as e:
            logger.warning(f"MongoDB ping failed: {str(e)}")
            return False

    async def write(self, filename: str, data: bytes) -> str:
        grid_in = self.bucket.open_upload_stream(filename)
        try:
            await grid_in.write(data)
            await grid_in.close()
        except PyMongoError as e:
            logger.error(f"Error writing {filename} to GridFS: {str(e)}", exc_info=True)
            await self._abort(grid_in, filename)
            raise StoreWriteError(str(e)) from e

        file_id = str(grid_in._id)
        logger.debug(f"Stored {filename} ({len(data)} bytes) as {file_id}")
        return file_id

    async def _abort(self, grid_in, filename: str):
        """Remove chunks already written for a failed upload."""
        try:
            await grid_in.abort()
        except PyMongoError as e:
            logger.warning(f"Could not abort partial upload of {filename}: {str(e)}")

    async def open_download(self, filename: str) -> AsyncIterator[bytes]:
        try:
            grid_out = await self.bucket.open_download_stream_by_name(filename)
        except PyMongoError as e:  # NoFile included
            raise StoreReadError(str(e)) from e
        return self._iter_chunks(grid_out, filename)

    async def _iter_chunks(self, grid_out, filename: str) -> AsyncIterator[bytes]:
        try:
            while chunk := await grid_out.readchunk():
                yield chunk
        except PyMongoError as e:
            logger.error(f"Error reading {filename} from GridFS: {str(e)}", exc_info=True)
            raise StoreReadError(str(e)) from e
        finally:
            await grid_out.close()

    async def close(self):
        if self.client is not None:
            await self.client.close()
