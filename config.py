"""Configuration settings for the File Gateway."""
import os
from dotenv import load_dotenv

load_dotenv()

# MongoDB / GridFS
MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017/file_gateway")
MONGO_DB = os.getenv("MONGO_DB", "file_gateway")  # used when the URI names no database
MONGO_TIMEOUT_MS = int(os.getenv("MONGO_TIMEOUT_MS", "5000"))
GRIDFS_BUCKET = os.getenv("GRIDFS_BUCKET", "uploads")
CHUNK_SIZE_BYTES = int(os.getenv("CHUNK_SIZE_BYTES", str(255 * 1024)))  # GridFS default

# Upload limits
MAX_UPLOAD_SIZE = int(os.getenv("MAX_UPLOAD_SIZE", str(16 * 1024 * 1024)))  # 16MB
READ_CHUNK_SIZE = 8192
RANDOM_NAME_BYTES = 16

# Every download is served with this media type
DOWNLOAD_MEDIA_TYPE = os.getenv("DOWNLOAD_MEDIA_TYPE", "image/jpeg")

# Server
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "4060"))

# Logging
LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Cross-origin policy
DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "https://127.0.0.1:5173",
]
CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOWED_ORIGINS", ",".join(DEFAULT_ALLOWED_ORIGINS)).split(",")
    if origin.strip()
]
CORS_ALLOWED_METHODS = ["OPTIONS", "GET", "PUT", "PATCH", "POST", "DELETE"]
CORS_ALLOWED_HEADERS = ["Content-Type", "X-Requested-With", "Authorization"]
