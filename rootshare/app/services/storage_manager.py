import asyncio
import os
from pathlib import Path
from typing import Optional

import aiofiles.os

from rootshare import config
from rootshare.app.services.path_resolver import PathResolver
from rootshare.logger_config import setup_logger

logger = setup_logger()


def is_staging_name(name: str) -> bool:
    """Whether a filename follows the ``.<id>.tmp`` upload staging convention."""
    return (
        name.startswith(".")
        and name.endswith(config.TEMP_SUFFIX)
        and len(name) > len(config.TEMP_SUFFIX) + 1
    )


class StorageManager:
    """Owns the served root and the startup cleanup of abandoned uploads."""

    def __init__(self, root_dir: Path):
        self.root_dir = Path(root_dir).expanduser()
        self.root: Optional[Path] = None
        self.resolver: Optional[PathResolver] = None

    async def initialize(self):
        """Canonicalize the root and sweep staging files left by dead uploads."""
        logger.info("Initializing storage manager...")

        await aiofiles.os.makedirs(self.root_dir, exist_ok=True)
        self.root = self.root_dir.resolve(strict=True)
        if not await aiofiles.os.path.isdir(self.root):
            raise RuntimeError(f"Root is not a directory: {self.root}")
        self.resolver = PathResolver(self.root)
        logger.debug(f"Serving root: {self.root}")

        files_removed = await asyncio.to_thread(self.sweep_staging_files)
        logger.info(f"Cleaned abandoned uploads, removed {files_removed} staging files")

    def sweep_staging_files(self) -> int:
        files_removed = 0
        for folder_path, _, files in os.walk(self.root):
            for name in files:
                if not is_staging_name(name):
                    continue
                file_path = Path(folder_path) / name
                try:
                    file_path.unlink()
                    files_removed += 1
                except OSError as e:
                    logger.warning(f"Could not remove staging file {file_path}: {e.strerror}")
        return files_removed
