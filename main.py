from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse, StreamingResponse
from starlette.datastructures import UploadFile

import config
from app.middleware.cors import AllowListCORSMiddleware
from app.models.upload import HealthOut, UploadOut
from app.services.chunk_store import ChunkStore, GridFSStore, StoreReadError, StoreWriteError
from app.services.naming import FilenameGenerationError, generate_filename
from logger_config import setup_logger

# Logger setup
logger = setup_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The listener starts even when MongoDB is unreachable
    app.state.chunk_store = GridFSStore.from_config()
    await app.state.chunk_store.initialize()
    yield
    await app.state.chunk_store.close()


# Create FastAPI app with lifespan
app = FastAPI(title="File Gateway", lifespan=lifespan)

app.add_middleware(
    AllowListCORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_methods=config.CORS_ALLOWED_METHODS,
    allow_headers=config.CORS_ALLOWED_HEADERS,
    allow_credentials=True,
)


@app.exception_handler(HTTPException)
async def plain_text_http_exception_handler(request: Request, exc: HTTPException):
    """Error responses carry the bare message as a text body."""
    return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)


def get_chunk_store(request: Request) -> ChunkStore:
    """Resolve the store attached to the app at startup."""
    chunk_store = getattr(request.app.state, "chunk_store", None)
    if chunk_store is None:
        logger.error("Chunk store requested before initialization")
        raise HTTPException(status_code=503, detail="Storage not initialized")
    return chunk_store


async def read_upload(file: UploadFile) -> bytes:
    """Read the whole upload into memory, enforcing MAX_UPLOAD_SIZE."""
    buffer = bytearray()
    while chunk := await file.read(config.READ_CHUNK_SIZE):
        buffer.extend(chunk)
        if len(buffer) > config.MAX_UPLOAD_SIZE:
            raise HTTPException(
                status_code=413,
                detail=f"File too large. Maximum size is {config.MAX_UPLOAD_SIZE} bytes"
            )
    return bytes(buffer)


@app.get("/", response_class=PlainTextResponse)
async def root():
    return "File upload API"


@app.get("/health", response_model=HealthOut)
async def health_check(request: Request):
    """Report whether the chunk store answers a ping."""
    chunk_store = getattr(request.app.state, "chunk_store", None)
    store_ok = chunk_store is not None and await chunk_store.ping()
    return HealthOut(status="ok", store="ok" if store_ok else "unavailable")


@app.post("/upload", status_code=201, response_model=UploadOut)
async def upload_file(request: Request, chunk_store: ChunkStore = Depends(get_chunk_store)):
    """Store the multipart field "file" under a freshly generated name.

    Returns the id the store assigned and the generated filename.
    """
    async with request.form() as form:
        file = form.get("file")
        if not isinstance(file, UploadFile):
            logger.info("Upload rejected: no file in request")
            raise HTTPException(status_code=400, detail="No file uploaded")

        logger.info(f"Receiving upload request for {file.filename!r}")
        data = await read_upload(file)
        logger.debug(f"Read {len(data)} bytes from upload")

    try:
        filename = generate_filename(file.filename)
    except FilenameGenerationError as e:
        logger.error(f"Error generating filename: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error generating filename")

    try:
        file_id = await chunk_store.write(filename, data)
    except StoreWriteError as e:
        raise HTTPException(status_code=500, detail=str(e))

    logger.info(f"Stored {filename} as {file_id}")
    return UploadOut(fileID=file_id, filename=filename)


@app.get("/file/{filename}")
async def get_file(filename: str, chunk_store: ChunkStore = Depends(get_chunk_store)):
    """Stream a stored file back. Every download is labelled DOWNLOAD_MEDIA_TYPE."""
    logger.info(f"Receiving download request for {filename}")

    try:
        chunks = await chunk_store.open_download(filename)
    except StoreReadError as e:
        logger.info(f"File {filename} not available: {str(e)}")
        raise HTTPException(status_code=404, detail="file not found")

    return StreamingResponse(chunks, media_type=config.DOWNLOAD_MEDIA_TYPE)


if __name__ == "__main__":
    logger.info("Starting File Gateway...")
    logger.info(f"GridFS bucket: {config.GRIDFS_BUCKET}")
    logger.info(f"Maximum upload size: {config.MAX_UPLOAD_SIZE / (1024*1024):.2f} MB")
    uvicorn.run(app, host=config.HOST, port=config.PORT)
