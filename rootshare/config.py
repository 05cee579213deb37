"""Configuration settings for the root file server."""
import os

# Served directory and bind address
ROOT_DIR = os.getenv("FILE_SERVER_ROOT", "./data")
HOST = os.getenv("FILE_SERVER_HOST", "0.0.0.0")
PORT = int(os.getenv("FILE_SERVER_PORT", "8080"))

# Logging
LOG_DIR = os.getenv("FILE_SERVER_LOG_DIR", "./logs")
LOG_FILE = "file_server.log"
LOG_LEVEL = os.getenv("FILE_SERVER_LOG_LEVEL", "INFO").upper()  # console level, the file always gets DEBUG
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB per log file
LOG_BACKUP_COUNT = 5

# Download transport
MMAP_THRESHOLD = 4 * 1024 * 1024  # 4MB, full files below this are memory-mapped
SMALL_RANGE_THRESHOLD = 4 * 1024 * 1024  # 4MB, ranges below this are read in one go
STREAM_BUFFER_SIZE = 1024 * 1024  # 1MB read buffer for streamed bodies
GZIP_LEVEL = 1

# Upload transport
UPLOAD_WRITE_BUFFER = 8 * 1024 * 1024  # 8MB
UPLOAD_COPY_CHUNK = 1024 * 1024  # 1MB

# Staging files
TEMP_SUFFIX = ".tmp"
UPLOAD_STAGING_PREFIX = ".upload-"
MAX_NAME_BYTES = 255
# Leaves room for the "." and ".tmp" around a chunk upload file id
MAX_FILE_ID_BYTES = MAX_NAME_BYTES - 5

# Chunked upload headers
CHUNK_UPLOAD_HEADER = "x-chunk-upload"
FILE_ID_HEADER = "x-file-id"
FILE_NAME_HEADER = "x-file-name"
CHUNK_INDEX_HEADER = "x-chunk-index"
TOTAL_CHUNKS_HEADER = "x-total-chunks"
TOTAL_SIZE_HEADER = "x-total-size"
CHUNK_START_HEADER = "x-chunk-start"
