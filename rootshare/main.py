import argparse
import asyncio
import socket
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import aiofiles.os
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from rootshare import config
from rootshare.app.exceptions import FileServerError, NotFoundError, RangeUnsatisfiableError
from rootshare.app.services.delete_engine import DeleteEngine
from rootshare.app.services.directory_lister import render_listing
from rootshare.app.services.download_engine import DownloadEngine
from rootshare.app.services.range_parser import unsatisfied_range
from rootshare.app.services.storage_manager import StorageManager
from rootshare.app.services.upload_engine import UploadEngine, is_chunk_request, parse_chunk_session
from rootshare.logger_config import setup_logger

# Logger setup
logger = setup_logger()

download_engine = DownloadEngine()
upload_engine = UploadEngine()
delete_engine = DeleteEngine()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The root is fixed for the lifetime of the process
    app.state.storage_manager = StorageManager(Path(config.ROOT_DIR))
    await app.state.storage_manager.initialize()
    yield


app = FastAPI(title="Root File Server", lifespan=lifespan)


def _wants_json(request: Request) -> bool:
    return request.method in ("POST", "DELETE")


@app.exception_handler(FileServerError)
async def file_server_error_handler(request: Request, exc: FileServerError):
    headers = {}
    if isinstance(exc, RangeUnsatisfiableError):
        headers["content-range"] = unsatisfied_range(exc.file_size)

    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")

    if _wants_json(request):
        return JSONResponse(
            {"success": False, "message": exc.message},
            status_code=exc.status_code,
            headers=headers,
        )
    return Response(status_code=exc.status_code, headers=headers)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error on {request.method} {request.url.path}", exc_info=exc)
    if _wants_json(request):
        return JSONResponse({"success": False, "message": "Internal server error"}, status_code=500)
    return Response(status_code=500)


@app.get("/{request_path:path}")
async def get_path(request_path: str, request: Request):
    """Browse a directory or download a file (Range and gzip aware)."""
    storage_manager = request.app.state.storage_manager
    logger.info(f"Receiving GET request for /{request_path}")

    resolved = await asyncio.to_thread(storage_manager.resolver.resolve, request_path)

    if await aiofiles.os.path.isdir(resolved.path):
        return await render_listing(resolved.path, "/" + request_path)
    if not await aiofiles.os.path.isfile(resolved.path):
        raise NotFoundError("Not found")

    return await download_engine.serve(
        resolved,
        range_header=request.headers.get("range"),
        accept_encoding=request.headers.get("accept-encoding"),
    )


@app.post("/{request_path:path}")
async def post_path(request_path: str, request: Request):
    """Upload into the directory named by the path (or the parent of a file)."""
    storage_manager = request.app.state.storage_manager
    logger.info(f"Receiving upload request for /{request_path}")

    resolved = await asyncio.to_thread(storage_manager.resolver.resolve, request_path, True)
    target_dir = await asyncio.to_thread(storage_manager.resolver.upload_directory, resolved)

    if is_chunk_request(request.headers):
        session = parse_chunk_session(request.headers)
        return await upload_engine.receive_chunk(session, request.stream(), target_dir)

    return await upload_engine.receive_multipart(request, target_dir)


@app.delete("/{request_path:path}")
async def delete_path(request_path: str, request: Request):
    """Delete a file or a directory tree."""
    storage_manager = request.app.state.storage_manager
    logger.info(f"Receiving delete request for /{request_path}")

    resolved = await asyncio.to_thread(storage_manager.resolver.resolve, request_path)
    return await delete_engine.delete(resolved)


def get_local_ip() -> Optional[str]:
    """Best-effort LAN address, used only for the startup banner."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            # No packet is sent, connect() only picks the outbound interface
            s.connect(("8.8.8.8", 80))
            address = s.getsockname()[0]
    except OSError:
        return None
    if address.startswith("127.") or address == "0.0.0.0":
        return None
    return address


def run():
    parser = argparse.ArgumentParser(description="Serve one directory tree over HTTP.")
    parser.add_argument("root", nargs="?", default=config.ROOT_DIR, help="directory to serve")
    parser.add_argument("--host", default=config.HOST)
    parser.add_argument("--port", type=int, default=config.PORT)
    args = parser.parse_args()

    config.ROOT_DIR = args.root

    logger.info("Starting root file server...")
    logger.info(f"Root directory: {Path(args.root).resolve()}")
    logger.info(f"Listening on http://{args.host}:{args.port}")
    local_ip = get_local_ip()
    if local_ip:
        logger.info(f"Access files at: http://{local_ip}:{args.port}")
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    run()
