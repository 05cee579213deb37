import asyncio
import mimetypes
import mmap
import zlib
from pathlib import Path
from typing import AsyncIterator, Dict, Optional
from urllib.parse import quote

import aiofiles
import aiofiles.os
from fastapi.responses import Response, StreamingResponse

from rootshare import config
from rootshare.app.exceptions import BadRequestError, IOFailureError, RangeUnsatisfiableError
from rootshare.app.models.transfer import RangeKind, RangeOutcome, ResolvedPath, TransportStrategy
from rootshare.app.services.range_parser import content_range, parse_range
from rootshare.logger_config import setup_logger

logger = setup_logger()


def accepts_gzip(accept_encoding: Optional[str]) -> bool:
    """Check whether an ``Accept-Encoding`` value allows gzip (q-values honored)."""
    if not accept_encoding:
        return False

    weights: Dict[str, float] = {}
    for item in accept_encoding.split(","):
        coding, _, params = item.strip().partition(";")
        coding = coding.strip().lower()
        if not coding:
            continue
        quality = 1.0
        params = params.strip()
        if params.startswith("q="):
            try:
                quality = float(params[2:])
            except ValueError:
                quality = 0.0
        weights[coding] = quality

    if "gzip" in weights:
        return weights["gzip"] > 0
    return weights.get("*", 0) > 0


def choose_strategy(outcome: RangeOutcome, file_size: int, gzip_accepted: bool) -> TransportStrategy:
    """Pick how a satisfiable request is served. No I/O."""
    if outcome.kind == RangeKind.PARTIAL:
        if outcome.byte_range.length < config.SMALL_RANGE_THRESHOLD:
            return TransportStrategy.BUFFERED_RANGE
        return TransportStrategy.STREAMED_RANGE
    if outcome.kind != RangeKind.FULL:
        raise ValueError(f"No transport for range outcome {outcome.kind}")
    if gzip_accepted:
        return TransportStrategy.COMPRESSED_STREAM
    if file_size < config.MMAP_THRESHOLD:
        return TransportStrategy.MAPPED
    return TransportStrategy.BUFFERED_FULL


def content_disposition(filename: str) -> str:
    """Attachment header with an ASCII fallback and an RFC 5987 UTF-8 name."""
    ascii_name = "".join(c if 32 <= ord(c) < 127 else "_" for c in filename)
    ascii_name = ascii_name.replace("\\", "\\\\").replace('"', '\\"')
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename, safe='')}"


def _read_mapped(path: Path) -> bytes:
    with open(path, "rb") as f:
        try:
            with mmap.mmap(f.fileno(), 0, access=mmap.ACCESS_READ) as mapped:
                return mapped[:]
        except ValueError:
            # Empty files cannot be mapped
            return b""


async def _iter_file(path: Path, offset: int, length: int) -> AsyncIterator[bytes]:
    remaining = length
    async with aiofiles.open(path, "rb", buffering=config.STREAM_BUFFER_SIZE) as f:
        await f.seek(offset)
        while remaining > 0:
            chunk = await f.read(min(config.STREAM_BUFFER_SIZE, remaining))
            if not chunk:
                logger.warning(f"File shrank while streaming {path.name}, {remaining} bytes short")
                break
            remaining -= len(chunk)
            yield chunk


async def _iter_gzip(path: Path) -> AsyncIterator[bytes]:
    compressor = zlib.compressobj(config.GZIP_LEVEL, zlib.DEFLATED, 16 + zlib.MAX_WBITS)
    async with aiofiles.open(path, "rb", buffering=config.STREAM_BUFFER_SIZE) as f:
        while chunk := await f.read(config.STREAM_BUFFER_SIZE):
            compressed = await asyncio.to_thread(compressor.compress, chunk)
            if compressed:
                yield compressed
    yield compressor.flush()


class DownloadEngine:
    async def serve(
        self,
        resolved: ResolvedPath,
        range_header: Optional[str] = None,
        accept_encoding: Optional[str] = None,
    ) -> Response:
        """Build the response for a regular file, honoring Range and gzip.

        Raises:
            BadRequestError: the Range header is malformed
            RangeUnsatisfiableError: the range lies outside the file
            IOFailureError: the file could not be read
        """
        path = resolved.require_contained()
        try:
            stat = await aiofiles.os.stat(path)
        except OSError as e:
            raise IOFailureError.from_os_error("Stat", e)
        file_size = stat.st_size

        outcome = parse_range(range_header, file_size)
        if outcome.kind == RangeKind.MALFORMED:
            raise BadRequestError("Invalid Range header")
        if outcome.kind == RangeKind.UNSATISFIABLE:
            raise RangeUnsatisfiableError(file_size)

        strategy = choose_strategy(outcome, file_size, accepts_gzip(accept_encoding))
        logger.debug(f"Serving {resolved.relative} ({file_size} bytes) via {strategy.value}")

        media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        headers = {
            "content-disposition": content_disposition(path.name),
            "accept-ranges": "bytes",
            "x-file-size": str(file_size),
        }

        try:
            if strategy == TransportStrategy.MAPPED:
                body = await asyncio.to_thread(_read_mapped, path)
                return Response(body, media_type=media_type, headers=headers)

            if strategy == TransportStrategy.BUFFERED_FULL:
                headers["content-length"] = str(file_size)
                return StreamingResponse(
                    _iter_file(path, 0, file_size), media_type=media_type, headers=headers
                )

            if strategy == TransportStrategy.COMPRESSED_STREAM:
                headers["content-encoding"] = "gzip"
                headers["transfer-encoding"] = "chunked"
                headers["vary"] = "Accept-Encoding"
                return StreamingResponse(_iter_gzip(path), media_type=media_type, headers=headers)

            byte_range = outcome.byte_range
            headers["content-range"] = content_range(byte_range, file_size)

            if strategy == TransportStrategy.BUFFERED_RANGE:
                async with aiofiles.open(path, "rb") as f:
                    await f.seek(byte_range.start)
                    body = await f.read(byte_range.length)
                if len(body) != byte_range.length:
                    raise IOFailureError("Read failed: file changed during transfer")
                return Response(body, status_code=206, media_type=media_type, headers=headers)

            headers["content-length"] = str(byte_range.length)
            return StreamingResponse(
                _iter_file(path, byte_range.start, byte_range.length),
                status_code=206,
                media_type=media_type,
                headers=headers,
            )
        except OSError as e:
            raise IOFailureError.from_os_error("Read", e)
