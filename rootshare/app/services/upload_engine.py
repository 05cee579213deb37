import asyncio
import os
import re
import uuid
from pathlib import Path
from typing import AsyncIterator, List, Mapping, Optional
from urllib.parse import unquote

import aiofiles
import aiofiles.os
from fastapi import Request
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

from rootshare import config
from rootshare.app.exceptions import BadRequestError, ForbiddenError, IOFailureError, NotFoundError
from rootshare.app.models.responses import ChunkStatus, UploadRecord
from rootshare.app.models.transfer import ChunkSession
from rootshare.app.services.path_resolver import sanitize_filename
from rootshare.app.services.storage_manager import is_staging_name
from rootshare.logger_config import setup_logger

logger = setup_logger()

_BOUNDARY_PATTERN = re.compile(r'boundary=(?:"([^"]+)"|([^;\s]+))', re.IGNORECASE)
_TRUTHY = {"1", "true", "yes", "on"}


def parse_boundary(content_type: Optional[str]) -> str:
    """Extract the multipart boundary from a Content-Type header."""
    if not content_type:
        raise BadRequestError("Missing Content-Type header")
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type != "multipart/form-data":
        raise BadRequestError("Content-Type must be multipart/form-data")
    match = _BOUNDARY_PATTERN.search(content_type)
    if not match:
        raise BadRequestError("Missing multipart boundary")
    return match.group(1) or match.group(2)


def is_chunk_request(headers: Mapping[str, str]) -> bool:
    return headers.get(config.CHUNK_UPLOAD_HEADER, "").strip().lower() in _TRUTHY


def final_filename(raw: Optional[str]) -> str:
    """Sanitized destination name; staging names are reserved for in-flight uploads."""
    filename = sanitize_filename(raw)
    if not filename:
        raise BadRequestError("Invalid filename")
    if is_staging_name(filename):
        raise BadRequestError(f"{filename} is reserved for in-progress uploads")
    return filename


def _int_header(headers: Mapping[str, str], name: str) -> int:
    value = headers.get(name)
    if value is None:
        raise BadRequestError(f"Missing {name} header")
    try:
        return int(value.strip())
    except ValueError:
        raise BadRequestError(f"Invalid {name} header")


def parse_chunk_session(headers: Mapping[str, str]) -> ChunkSession:
    """Read and validate the per-request chunk upload headers."""
    file_id = sanitize_filename(headers.get(config.FILE_ID_HEADER))
    if not file_id:
        raise BadRequestError(f"Missing or invalid {config.FILE_ID_HEADER} header")
    if len(file_id.encode("utf-8")) > config.MAX_FILE_ID_BYTES:
        raise BadRequestError(f"{config.FILE_ID_HEADER} longer than {config.MAX_FILE_ID_BYTES} bytes")

    raw_name = unquote(headers.get(config.FILE_NAME_HEADER, ""))
    if not sanitize_filename(raw_name):
        raise BadRequestError(f"Missing or invalid {config.FILE_NAME_HEADER} header")
    filename = final_filename(raw_name)

    session = ChunkSession(
        file_id=file_id,
        filename=filename,
        chunk_index=_int_header(headers, config.CHUNK_INDEX_HEADER),
        total_chunks=_int_header(headers, config.TOTAL_CHUNKS_HEADER),
        total_size=_int_header(headers, config.TOTAL_SIZE_HEADER),
        chunk_start=_int_header(headers, config.CHUNK_START_HEADER),
    )

    if session.total_chunks < 1:
        raise BadRequestError("Total chunks must be at least 1")
    if not 0 <= session.chunk_index < session.total_chunks:
        raise BadRequestError("Chunk index out of range")
    if session.total_size < 0 or not 0 <= session.chunk_start <= session.total_size:
        raise BadRequestError("Chunk start outside the declared file size")
    return session


def _discard(path: Path):
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.error(f"Could not remove staging file {path.name}: {e.strerror}")


class UploadEngine:
    async def receive_multipart(self, request: Request, target_dir: Path) -> List[UploadRecord]:
        """Store every file part of a multipart body in ``target_dir``.

        Each part is staged next to its destination and renamed into place
        once flushed to disk. The first failing part aborts the request.
        """
        parse_boundary(request.headers.get("content-type"))

        try:
            form = await request.form()
        except (MultiPartException, StarletteHTTPException) as e:
            raise BadRequestError(f"Malformed multipart body: {getattr(e, 'detail', None) or e}")

        records = []
        try:
            for _, value in form.multi_items():
                # Plain form fields are not files
                if not isinstance(value, UploadFile) or not value.filename:
                    continue
                filename = final_filename(value.filename)
                size = await self._store_part(value, target_dir, filename)
                records.append(UploadRecord(success=True, filename=filename, size=size))
        finally:
            await form.close()

        logger.info(f"Stored {len(records)} file(s) from multipart upload")
        return records

    async def _store_part(self, upload: UploadFile, target_dir: Path, filename: str) -> int:
        destination = target_dir / filename
        if await aiofiles.os.path.isdir(destination):
            raise BadRequestError(f"{filename} is a directory")

        staging = target_dir / f"{config.UPLOAD_STAGING_PREFIX}{uuid.uuid4().hex}{config.TEMP_SUFFIX}"
        size = 0
        try:
            async with aiofiles.open(staging, "wb", buffering=config.UPLOAD_WRITE_BUFFER) as f:
                while chunk := await upload.read(config.UPLOAD_COPY_CHUNK):
                    size += len(chunk)
                    await f.write(chunk)
                await f.flush()
                await asyncio.to_thread(os.fsync, f.fileno())
            await aiofiles.os.replace(staging, destination)
        except OSError as e:
            logger.error(f"Error storing upload {filename}: {e.strerror}", exc_info=True)
            _discard(staging)
            raise IOFailureError.from_os_error("Write", e)
        except BaseException:
            _discard(staging)
            raise

        logger.debug(f"Stored {filename} ({size} bytes)")
        return size

    async def receive_chunk(
        self, session: ChunkSession, body: AsyncIterator[bytes], target_dir: Path
    ) -> ChunkStatus:
        """Write one chunk into the staging file and finalize on the last one.

        No state is kept between requests: the staging file named after the
        file id is the only record of the transfer. Disjoint chunks may arrive
        concurrently; overlapping ones are not detected.
        """
        temp_path = target_dir / session.temp_name
        destination = target_dir / session.filename

        if await aiofiles.os.path.islink(temp_path):
            raise ForbiddenError("Invalid upload staging file")
        if session.is_last and await aiofiles.os.path.isdir(destination):
            raise BadRequestError(f"{session.filename} is a directory")

        if session.is_first:
            mode = "wb"
        elif await aiofiles.os.path.isfile(temp_path):
            mode = "r+b"
        else:
            raise NotFoundError("Upload session not found")

        written = 0
        try:
            async with aiofiles.open(temp_path, mode, buffering=config.UPLOAD_WRITE_BUFFER) as f:
                if session.is_first:
                    # Pre-size so later chunks can seek anywhere in the file
                    await f.truncate(session.total_size)
                await f.seek(session.chunk_start)
                async for chunk in body:
                    if session.chunk_start + written + len(chunk) > session.total_size:
                        raise BadRequestError("Chunk extends past the declared total size")
                    await f.write(chunk)
                    written += len(chunk)
                await f.flush()
                await asyncio.to_thread(os.fsync, f.fileno())
        except OSError as e:
            logger.error(f"Error writing chunk {session.chunk_index} of {session.file_id}: {e.strerror}")
            raise IOFailureError.from_os_error("Chunk write", e)

        logger.debug(
            f"Chunk {session.chunk_index + 1}/{session.total_chunks} of {session.file_id}: "
            f"{written} bytes at offset {session.chunk_start}"
        )

        if not session.is_last:
            return ChunkStatus(
                success=True,
                message=f"chunk {session.chunk_index + 1}/{session.total_chunks} accepted",
                complete=False,
                chunk_index=session.chunk_index,
                total_chunks=session.total_chunks,
            )

        try:
            if await aiofiles.os.path.islink(destination) or await aiofiles.os.path.exists(destination):
                await aiofiles.os.remove(destination)
            await aiofiles.os.rename(temp_path, destination)
            size = (await aiofiles.os.stat(destination)).st_size
        except OSError as e:
            logger.error(f"Error finalizing upload {session.file_id}: {e.strerror}", exc_info=True)
            raise IOFailureError.from_os_error("Finalize", e)

        logger.info(f"Chunked upload complete: {session.filename} ({size} bytes)")
        return ChunkStatus(
            success=True,
            message="upload complete",
            complete=True,
            chunk_index=session.chunk_index,
            total_chunks=session.total_chunks,
            filename=session.filename,
            size=size,
        )
